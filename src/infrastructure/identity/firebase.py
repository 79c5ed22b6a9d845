# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider using the Firebase Authentication REST API.

Endpoints:
- accounts:signInWithPassword for e-mail/password sign-in
- accounts:sendOobCode for password reset e-mails
- securetoken token endpoint for id-token refresh

Configuration (via environment variables):
- IDENTITY_API_KEY: Web API key of the Firebase project
"""

from datetime import timedelta
from typing import Any

import httpx

from src.core.config.settings import IdentitySettings
from src.infrastructure.events import EventBus, EventTypes
from src.infrastructure.identity.base import IdentityError, IdentityProvider, Session
from src.utils.datetime import utc_now


class FirebaseIdentityProvider(IdentityProvider):
    """IdentityProvider backed by Firebase Authentication.

    Provider error messages (``INVALID_PASSWORD``, ``EMAIL_NOT_FOUND``,
    ``TOO_MANY_ATTEMPTS_TRY_LATER``...) become the IdentityError code.
    """

    def __init__(
        self,
        settings: IdentitySettings,
        client: httpx.AsyncClient | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            settings: Identity settings (API key, endpoints, timeout).
            client: Pre-built HTTP client; one is created when omitted.
            event_bus: Bus for session events.
        """
        super().__init__(event_bus=event_bus)
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout)
        self._owns_client = client is None

    @property
    def _params(self) -> dict[str, str]:
        return {"key": self._settings.api_key.get_secret_value()}

    async def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.post(url, params=self._params, **kwargs)
        except httpx.HTTPError as e:
            raise IdentityError(
                f"Identity provider unreachable: {e}",
                code="network_error",
                original_error=e,
            ) from e

        if response.status_code != 200:
            raise self._error_from_response(response)
        return response.json()

    def _error_from_response(self, response: httpx.Response) -> IdentityError:
        try:
            message = response.json().get("error", {}).get("message") or response.text
        except ValueError:
            message = response.text
        # Messages look like "TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled..."
        code = message.split(" ", 1)[0] if message else "unknown_error"
        self.logger.warning(
            "Identity request failed (%d): %s",
            response.status_code,
            message,
        )
        return IdentityError(message or "Identity request failed", code=code)

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self._post(
            f"{self._settings.auth_base_url}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        session = Session(
            uid=data["localId"],
            email=data.get("email", email),
            id_token=data["idToken"],
            refresh_token=data["refreshToken"],
            expires_at=utc_now() + timedelta(seconds=int(data.get("expiresIn", 3600))),
            display_name=data.get("displayName") or None,
        )
        self.logger.info("Signed in %s", session.uid)
        await self._set_session(session, EventTypes.Session.SIGNED_IN)
        return session

    async def refresh(self) -> Session:
        current = self._session
        if current is None:
            raise IdentityError("No session to refresh", code="no_session")

        data = await self._post(
            f"{self._settings.token_base_url}/token",
            data={"grant_type": "refresh_token", "refresh_token": current.refresh_token},
        )
        session = Session(
            uid=data.get("user_id", current.uid),
            email=current.email,
            id_token=data["id_token"],
            refresh_token=data.get("refresh_token", current.refresh_token),
            expires_at=utc_now() + timedelta(seconds=int(data.get("expires_in", 3600))),
            display_name=current.display_name,
        )
        await self._set_session(session, EventTypes.Session.REFRESHED)
        return session

    async def send_password_reset(self, email: str) -> None:
        await self._post(
            f"{self._settings.auth_base_url}/accounts:sendOobCode",
            json={"requestType": "PASSWORD_RESET", "email": email},
        )
        self.logger.info("Password reset e-mail requested")

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()
