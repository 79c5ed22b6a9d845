# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for SchoolLink.

This package contains cross-cutting utilities:
- logging: structlog rendering of standard library log records
- datetime: Timezone-aware datetime operations
"""

from src.utils.datetime import (
    coerce_datetime,
    ensure_utc,
    is_same_local_day,
    local_date_str,
    to_local_date,
    utc_from_timestamp,
    utc_now,
    week_days,
)
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "utc_from_timestamp",
    "ensure_utc",
    "coerce_datetime",
    "to_local_date",
    "is_same_local_day",
    "local_date_str",
    "week_days",
]
