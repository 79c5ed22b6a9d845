# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School data domain - what parents read about their child's school day."""

from src.domains.school_data.normalizers import build_week_view, count_by_status
from src.domains.school_data.service import (
    DashboardLoadError,
    SchoolDataError,
    SchoolDataService,
    WriteFailedError,
)

__all__ = [
    "DashboardLoadError",
    "SchoolDataError",
    "SchoolDataService",
    "WriteFailedError",
    "build_week_view",
    "count_by_status",
]
