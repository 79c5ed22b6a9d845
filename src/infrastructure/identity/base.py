# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for identity providers.

An identity provider owns the signed-in session. Screens never handle
tokens; they subscribe to session changes and pick which screen stack to
show from the session they are handed (None when signed out).

Session changes are published on the EventBus under
``EventTypes.Session.*`` so any component can observe them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from src.infrastructure.events import EventBus, EventData, EventPatterns, EventTypes, Unsubscribe
from src.utils.datetime import utc_now
from src.utils.logging import bind_context, clear_context


class IdentityError(Exception):
    """Exception raised for identity provider failures."""

    def __init__(
        self,
        message: str,
        code: str = "identity_error",
        original_error: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)


@dataclass
class Session:
    """An authenticated session.

    Attributes:
        uid: Stable user identity used as the student key.
        email: Sign-in e-mail.
        id_token: Bearer token for the remote store.
        refresh_token: Token used to renew id_token.
        expires_at: When id_token stops being valid.
        display_name: Optional profile name.
    """

    uid: str
    email: str | None
    id_token: str
    refresh_token: str
    expires_at: datetime
    display_name: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_expired(self) -> bool:
        """True once the id token has expired."""
        return utc_now() >= self.expires_at


SessionCallback = Callable[[Session | None], Awaitable[None]]


class IdentityProvider(ABC):
    """Abstract base class for identity providers.

    Subclasses implement the provider calls; this class keeps the current
    session and fans changes out through the event bus.

    Attributes:
        _session: Current session, None when signed out.
        _event_bus: Bus receiving session events.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        """Initialize the provider.

        Args:
            event_bus: Bus for session events. A private bus is created
                when omitted.
        """
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._session: Session | None = None
        self._event_bus = event_bus or EventBus()

    @property
    def current_session(self) -> Session | None:
        """The signed-in session, or None."""
        return self._session

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Begin a session with e-mail and password credentials.

        Raises:
            IdentityError: If the provider rejects the credentials.
        """
        ...

    @abstractmethod
    async def refresh(self) -> Session:
        """Renew the current session's id token.

        Raises:
            IdentityError: If there is no session or renewal fails.
        """
        ...

    @abstractmethod
    async def send_password_reset(self, email: str) -> None:
        """Ask the provider to e-mail a password reset link."""
        ...

    async def sign_out(self) -> None:
        """End the current session. Signing out twice is a no-op."""
        if self._session is None:
            return
        self.logger.info("Signing out %s", self._session.uid)
        await self._set_session(None, EventTypes.Session.SIGNED_OUT)
        clear_context()

    async def _set_session(self, session: Session | None, event_type: str) -> None:
        self._session = session
        if session is not None:
            bind_context(user_id=session.uid)
        await self._event_bus.publish(
            event_type,
            {"session": session},
            source=self.__class__.__name__,
        )

    async def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        """Observe session changes.

        The callback is invoked once immediately with the current session
        and then after every sign-in, refresh and sign-out.

        Returns:
            Callable that stops notifications.
        """

        async def on_session_event(event: EventData) -> None:
            await callback(event.payload.get("session"))

        unsubscribe = self._event_bus.subscribe(EventPatterns.ALL_SESSION, on_session_event)
        await callback(self._session)
        return unsubscribe
