# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

The suite runs entirely against the in-memory document store; no
Firestore project or Firebase API key is needed.
"""

from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from src.core.config import Settings, clear_settings_cache
from src.domains.school_data import SchoolDataService
from src.infrastructure.events import reset_event_bus
from src.infrastructure.store import InMemoryDocumentStore

# Wednesday; the school week around it runs Mon 2025-03-10 to Sat 2025-03-15
FIXED_NOW = datetime(2025, 3, 12, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Drop cached settings and the global event bus around every test."""
    clear_settings_cache()
    reset_event_bus()
    yield
    clear_settings_cache()
    reset_event_bus()


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires Firestore)"
    )


# =============================================================================
# Store & Service Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Development settings pinned to UTC."""
    return Settings(environment="development", timezone="UTC")


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def service(store: InMemoryDocumentStore, settings: Settings) -> SchoolDataService:
    """SchoolDataService over the in-memory store with a frozen clock."""
    return SchoolDataService(store, settings=settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def sample_student() -> dict[str, Any]:
    """Student document stored under classes/5A/students/stu-1."""
    return {
        "studentName": "Asha Verma",
        "studentClass": "5A",
        "personal": {"dob": "2015-06-01"},
        "grades": [
            {
                "examName": "Unit Test 1",
                "date": "2025-01-20",
                "subjects": {"Math": "78", "Science": "82"},
            },
            {
                "examName": "Midterm",
                "date": "2025-02-14",
                "subjects": {"Math": "90", "English": "80", "Art": "A+"},
            },
        ],
    }


@pytest_asyncio.fixture
async def enrolled_store(
    store: InMemoryDocumentStore,
    sample_student: dict[str, Any],
) -> InMemoryDocumentStore:
    """Store with classes 4B and 5A; stu-1 is enrolled in 5A."""
    await store.set_document("classes/4B", {"name": "4B"})
    await store.set_document("classes/5A", {"name": "5A"})
    await store.set_document("classes/4B/students/stu-2", {"studentName": "Ravi", "studentClass": "4B"})
    await store.set_document("classes/5A/students/stu-1", sample_student)
    return store
