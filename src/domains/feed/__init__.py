# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Feed domain - the realtime gallery of class posts."""

from src.domains.feed.service import FeedError, FeedSynchronizer

__all__ = ["FeedError", "FeedSynchronizer"]
