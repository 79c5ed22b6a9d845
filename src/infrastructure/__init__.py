# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients and managers for:
- The remote document store (in-memory and Firestore backends)
- The identity provider (Firebase Auth)
- In-process events
"""
