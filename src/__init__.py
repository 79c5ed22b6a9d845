"""SchoolLink parent data layer.

Data access, aggregation and realtime feed synchronization for the
parent-facing school app, over a remote document store and an
identity provider.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
