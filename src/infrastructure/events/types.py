# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for SchoolLink.

Using constants instead of string literals provides a single source of
truth for event names shared by the store, identity and feed layers.
"""


class EventTypes:
    """All event types in SchoolLink organized by domain."""

    class Store:
        """Document store change notifications.

        Payload: ``{"collection": <collection path>, "document": <doc path>}``.
        """

        DOCUMENT_WRITTEN = "store.document.written"
        DOCUMENT_DELETED = "store.document.deleted"

    class Session:
        """Identity provider session events.

        Payload: ``{"session": Session | None}``.
        """

        SIGNED_IN = "session.signed_in"
        REFRESHED = "session.refreshed"
        SIGNED_OUT = "session.signed_out"

    class Feed:
        """Gallery feed events."""

        POSTS_UPDATED = "feed.posts.updated"
        COMMENTS_UPDATED = "feed.comments.updated"
        LIKE_TOGGLED = "feed.like.toggled"
        COMMENT_ADDED = "feed.comment.added"


class EventPatterns:
    """Wildcard patterns for subscribing to multiple events."""

    ALL_STORE = "store.*"
    ALL_SESSION = "session.*"
    ALL_FEED = "feed.*"

    ALL = "*"
