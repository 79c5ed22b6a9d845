# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for SchoolLink.

This package contains the services the parent app's screens call.
Each domain module orchestrates store reads and writes and reshapes
documents into domain models.

Domains:
    school_data: Students, attendance, announcements, events, homework,
        grades, gallery posts and the combined dashboard load.
    feed: Realtime gallery feed (posts, likes, comments).
"""
