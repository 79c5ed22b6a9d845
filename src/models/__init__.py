# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic models shared across SchoolLink domains."""

from src.models.school import (
    Announcement,
    AttendanceDay,
    AttendanceRecord,
    AttendanceStatus,
    Comment,
    DashboardData,
    EventItem,
    Grade,
    Homework,
    Media,
    Post,
    Student,
    Teacher,
    grade_letter,
    parse_score,
    performance_label,
)

__all__ = [
    "Announcement",
    "AttendanceDay",
    "AttendanceRecord",
    "AttendanceStatus",
    "Comment",
    "DashboardData",
    "EventItem",
    "Grade",
    "Homework",
    "Media",
    "Post",
    "Student",
    "Teacher",
    "grade_letter",
    "parse_score",
    "performance_label",
]
