# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider infrastructure for SchoolLink.

Quick Start:
    provider = FirebaseIdentityProvider(get_settings().identity)
    unsubscribe = await provider.subscribe(on_session_changed)
    session = await provider.sign_in(email, password)
"""

from src.infrastructure.identity.base import (
    IdentityError,
    IdentityProvider,
    Session,
    SessionCallback,
)
from src.infrastructure.identity.firebase import FirebaseIdentityProvider

__all__ = [
    "FirebaseIdentityProvider",
    "IdentityError",
    "IdentityProvider",
    "Session",
    "SessionCallback",
]
