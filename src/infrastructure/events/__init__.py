# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure module for SchoolLink.

This module provides an in-memory event bus for decoupled communication
between system components.

Components:
- EventBus: In-memory pub/sub with pattern matching
- EventTypes: Centralized event type constants

Architecture:
    Store write / session change → EventBus.publish() → subscribers
"""

from src.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
    Unsubscribe,
    get_event_bus,
    reset_event_bus,
)
from src.infrastructure.events.types import EventPatterns, EventTypes

__all__ = [
    # Event Bus
    "EventBus",
    "EventData",
    "EventHandler",
    "Unsubscribe",
    "get_event_bus",
    "reset_event_bus",
    # Event Types
    "EventTypes",
    "EventPatterns",
]
