# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for SchoolDataService.

Runs against the in-memory store with the clock frozen at
Wednesday 2025-03-12 09:30 UTC.
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.domains.school_data import (
    DashboardLoadError,
    SchoolDataService,
    WriteFailedError,
    build_week_view,
    count_by_status,
)
from src.infrastructure.store import DocumentStore, InMemoryDocumentStore, StoreError
from src.models import AttendanceStatus, Student

# Same instant as the clock of the shared service fixture
FIXED_NOW = datetime(2025, 3, 12, 9, 30, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()
YESTERDAY = FIXED_NOW - timedelta(days=1)


@pytest_asyncio.fixture
async def school_store(enrolled_store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Enrolled store plus a week of attendance, announcements and homework."""
    store = enrolled_store

    # stu-1 has records on 5 of the last 7 days: 3 Present, 1 Halfday, 1 Absent
    attendance = {
        "2025-03-06": {"uid": "stu-1", "status": "Present"},
        "2025-03-07": {"uid": "stu-1", "morning": True, "afternoon": True},
        "2025-03-10": {"uid": "stu-1", "morning": True, "afternoon": True},
        "2025-03-11": {"uid": "stu-1", "morning": True, "afternoon": False},
        "2025-03-12": {"uid": "stu-1"},
    }
    for day, entry in attendance.items():
        await store.set_document(
            f"attendance/5A-{day}",
            {"className": "5A", "date": day, "students": [entry, {"uid": "stu-7", "status": "Present"}]},
        )
    await store.set_document(
        "attendance/4B-2025-03-12",
        {"className": "4B", "date": "2025-03-12", "students": [{"uid": "stu-2", "status": "Present"}]},
    )

    # Two announcements today, three yesterday
    for index in range(2):
        await store.set_document(
            f"announcement/today-{index}",
            {"title": f"Today {index}", "createdAt": FIXED_NOW - timedelta(hours=index + 1)},
        )
    for index in range(3):
        await store.set_document(
            f"announcement/yesterday-{index}",
            {"title": f"Yesterday {index}", "createdAt": YESTERDAY - timedelta(hours=index)},
        )

    # One nested per-day container for today, one flat document for yesterday
    await store.set_document(
        "classes/5A/homework/2025-03-12",
        {
            "date": "2025-03-12",
            "updatedAt": FIXED_NOW,
            "homeworks": [
                {"subject": "Math", "details": ["Ex 4.1", "Ex 4.2"], "createdAt": "2025-03-12T07:00:00+00:00"},
                {"subject": "Science", "details": "Read chapter 3", "createdAt": "2025-03-12T07:05:00+00:00"},
            ],
        },
    )
    await store.set_document(
        "classes/5A/homework/2025-03-11",
        {"subject": "English", "details": "Essay", "date": "2025-03-11", "updatedAt": YESTERDAY},
    )
    return store


class TestStudentLookup:
    """Tests for resolving students by scanning class partitions."""

    @pytest.mark.asyncio
    async def test_current_student_found(self, school_store, service: SchoolDataService) -> None:
        """Test the student is found in its class."""
        student = await service.get_current_student("stu-1")

        assert student is not None
        assert student.uid == "stu-1"
        assert student.student_name == "Asha Verma"
        assert student.student_class == "5A"
        assert student.model_extra["personal"] == {"dob": "2015-06-01"}

    @pytest.mark.asyncio
    async def test_signed_out_returns_none(self, school_store, service: SchoolDataService) -> None:
        """Test no identity means no student."""
        assert await service.get_current_student(None) is None
        assert await service.get_current_student("") is None

    @pytest.mark.asyncio
    async def test_unknown_student_returns_none(self, school_store, service: SchoolDataService) -> None:
        """Test a user enrolled nowhere resolves to None."""
        assert await service.get_student_by_id("nobody") is None

    @pytest.mark.asyncio
    async def test_scan_stops_at_first_match(
        self,
        school_store: InMemoryDocumentStore,
        service: SchoolDataService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test classes after the matching one are never read."""
        await school_store.set_document("classes/6C", {"name": "6C"})
        await school_store.set_document("classes/6C/students/stu-1", {"studentName": "Duplicate"})

        requested: list[str] = []
        original = school_store.get_document

        async def recording(path: str):
            requested.append(path)
            return await original(path)

        monkeypatch.setattr(school_store, "get_document", recording)

        student = await service.get_student_by_id("stu-1")

        assert student.student_name == "Asha Verma"
        assert requested == ["classes/4B/students/stu-1", "classes/5A/students/stu-1"]

    @pytest.mark.asyncio
    async def test_store_failure_collapses_to_none(self, settings) -> None:
        """Test a failing scan reads as not found."""
        store = AsyncMock(spec=DocumentStore)
        store.list_collection.side_effect = StoreError("unavailable")
        service = SchoolDataService(store, settings=settings, clock=lambda: FIXED_NOW)

        assert await service.get_current_student("stu-1") is None

    @pytest.mark.asyncio
    async def test_fetch_student_doc(self, school_store, service: SchoolDataService) -> None:
        """Test re-reading a student and detecting a renamed record."""
        student = await service.get_current_student("stu-1")

        fresh = await service.fetch_student_doc(student)
        stale = await service.fetch_student_doc(
            Student(uid="stu-1", student_name="Someone Else", student_class="5A")
        )

        assert fresh is not None
        assert fresh.student_name == "Asha Verma"
        assert stale is None

    @pytest.mark.asyncio
    async def test_fetch_class_students(self, school_store, service: SchoolDataService) -> None:
        """Test listing a class roster."""
        students = await service.fetch_class_students("4B")

        assert [s.uid for s in students] == ["stu-2"]


class TestAttendance:
    """Tests for attendance reads."""

    @pytest.mark.asyncio
    async def test_five_of_seven_days(self, school_store, service: SchoolDataService) -> None:
        """Test exactly the recorded days come back with their statuses."""
        records = await service.fetch_attendance_for_student("stu-1", "5A")

        by_date = {record.date: record.status for record in records}
        assert by_date == {
            "2025-03-06": AttendanceStatus.PRESENT,
            "2025-03-07": AttendanceStatus.PRESENT,
            "2025-03-10": AttendanceStatus.PRESENT,
            "2025-03-11": AttendanceStatus.HALFDAY,
            "2025-03-12": AttendanceStatus.ABSENT,
        }

    @pytest.mark.asyncio
    async def test_unrecorded_days_render_not_marked(self, school_store, service: SchoolDataService) -> None:
        """Test a filled last-seven-days view marks the gaps Not Marked."""
        records = await service.fetch_attendance_for_student("stu-1", "5A")
        by_date = {record.date: record.status for record in records}

        last_seven = [(TODAY - timedelta(days=offset)).isoformat() for offset in range(7)]
        statuses = [by_date.get(day, AttendanceStatus.NOT_MARKED) for day in last_seven]

        assert statuses.count(AttendanceStatus.NOT_MARKED) == 2
        assert AttendanceStatus.NOT_MARKED not in by_date.values()

    @pytest.mark.asyncio
    async def test_week_view(self, school_store, service: SchoolDataService) -> None:
        """Test the Monday-to-Saturday strip for the current week."""
        records = await service.fetch_attendance_for_student("stu-1", "5A")

        days = build_week_view(records, TODAY)

        assert [d.status for d in days] == [
            AttendanceStatus.PRESENT,
            AttendanceStatus.HALFDAY,
            AttendanceStatus.ABSENT,
            AttendanceStatus.NOT_MARKED,
            AttendanceStatus.NOT_MARKED,
            AttendanceStatus.NOT_MARKED,
        ]
        assert count_by_status(days, AttendanceStatus.PRESENT) == 1

    @pytest.mark.asyncio
    async def test_other_student_not_included(self, school_store, service: SchoolDataService) -> None:
        """Test a student with no roster entries gets nothing."""
        assert await service.fetch_attendance_for_student("stu-2", "5A") == []

    @pytest.mark.asyncio
    async def test_today_record_reported(self, school_store, service: SchoolDataService) -> None:
        """Test the today callback receives today's record."""
        student = await service.get_current_student("stu-1")
        today_records = []

        records = await service.fetch_attendance(student, on_today=today_records.append)

        assert len(records) == 5
        assert [r.date for r in today_records] == ["2025-03-12"]
        assert today_records[0].status == AttendanceStatus.ABSENT

    @pytest.mark.asyncio
    async def test_today_attendance_count(self, school_store, service: SchoolDataService) -> None:
        """Test counting today's attendance documents for a class."""
        assert await service.fetch_today_attendance_count("5A") == 1
        assert await service.fetch_today_attendance_count("9Z") == 0


class TestAnnouncementsAndEvents:
    """Tests for announcements and events."""

    @pytest.mark.asyncio
    async def test_today_counter(self, school_store, service: SchoolDataService) -> None:
        """Test two of the returned announcements are counted as today."""
        counts: list[int] = []

        announcements = await service.fetch_announcements(on_today_count=counts.append)

        assert counts == [2]
        assert [a.id for a in announcements] == [
            "today-0",
            "today-1",
            "yesterday-0",
            "yesterday-1",
            "yesterday-2",
        ]

    @pytest.mark.asyncio
    async def test_limit(self, school_store, service: SchoolDataService) -> None:
        """Test an explicit limit trims the newest-first list."""
        announcements = await service.fetch_announcements(limit=3)

        assert len(announcements) == 3

    @pytest.mark.asyncio
    async def test_all_announcements(self, school_store, service: SchoolDataService) -> None:
        """Test the unlimited fetch returns every announcement."""
        await school_store.set_document("announcement/old", {"title": "Old", "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc)})

        announcements = await service.fetch_all_announcements()

        assert len(announcements) == 6
        assert announcements[-1].id == "old"

    @pytest.mark.asyncio
    async def test_zero_limit(self, school_store, service: SchoolDataService) -> None:
        """Test a zero limit returns nothing rather than the default count."""
        counts: list[int] = []

        assert await service.fetch_announcements(on_today_count=counts.append, limit=0) == []
        assert counts == [0]

    @pytest.mark.asyncio
    async def test_malformed_documents_skipped(self, school_store, service: SchoolDataService) -> None:
        """Test one bad document does not hide its valid siblings."""
        await school_store.set_document(
            "announcement/bad",
            {"title": "Room change", "venue": {"room": 4}, "createdAt": FIXED_NOW - timedelta(minutes=30)},
        )
        await school_store.set_document("events/e1", {"title": "Sports Day", "startDate": "2025-03-20"})
        await school_store.set_document(
            "events/e2", {"title": "Assembly", "startDate": "2025-03-21", "startTime": 900}
        )

        announcements = await service.fetch_all_announcements()
        events = await service.fetch_events()
        upcoming = await service.fetch_upcoming_events()

        assert len(announcements) == 5
        assert "bad" not in {a.id for a in announcements}
        assert [e.id for e in events] == ["e1"]
        assert [e.id for e in upcoming] == ["e1"]

    @pytest.mark.asyncio
    async def test_failure_returns_empty_without_callback(self, settings) -> None:
        """Test failed reads degrade to empty and skip the counter."""
        store = AsyncMock(spec=DocumentStore)
        store.query.side_effect = StoreError("unavailable")
        service = SchoolDataService(store, settings=settings, clock=lambda: FIXED_NOW)
        counts: list[int] = []

        assert await service.fetch_announcements(on_today_count=counts.append) == []
        assert counts == []

    @pytest.mark.asyncio
    async def test_upcoming_events(self, store: InMemoryDocumentStore, service: SchoolDataService) -> None:
        """Test past events are excluded and the rest sorted by start date."""
        await store.set_document("events/e1", {"title": "Sports Day", "startDate": "2025-03-20"})
        await store.set_document("events/e2", {"title": "Science Fair", "startDate": "2025-03-14"})
        await store.set_document("events/e3", {"title": "Winter Fest", "startDate": "2025-01-10"})

        events = await service.fetch_upcoming_events()
        every_event = await service.fetch_events()

        assert [e.title for e in events] == ["Science Fair", "Sports Day"]
        assert len(every_event) == 3


class TestHomework:
    """Tests for homework reads."""

    @pytest.mark.asyncio
    async def test_flattened_and_counted(self, school_store, service: SchoolDataService) -> None:
        """Test nested and flat documents flatten into one newest-first list."""
        counts: list[int] = []

        homework = await service.fetch_homework("stu-1", on_today_count=counts.append)

        assert counts == [2]
        assert [h.subject for h in homework][-1] == "English"
        assert {h.subject for h in homework[:2]} == {"Math", "Science"}
        assert all(h.class_id == "5A" for h in homework)
        math = next(h for h in homework if h.subject == "Math")
        assert math.details == ["Ex 4.1", "Ex 4.2"]
        assert math.date_id == "2025-03-12"
        assert math.id == "2025-03-12T07:00:00+00:00"

    @pytest.mark.asyncio
    async def test_malformed_items_skipped(self, school_store, service: SchoolDataService) -> None:
        """Test bad homework items are dropped one by one."""
        await school_store.set_document(
            "classes/5A/homework/2025-03-09",
            {
                "date": "2025-03-09",
                "updatedAt": YESTERDAY - timedelta(days=2),
                "homeworks": [
                    {"subject": ["Art"], "createdAt": "2025-03-09T07:00:00+00:00"},
                    {"subject": "Hindi", "details": "Poem", "createdAt": "2025-03-09T07:05:00+00:00"},
                ],
            },
        )
        await school_store.set_document(
            "classes/5A/homework/2025-03-08",
            {"subject": {"name": "Music"}, "date": "2025-03-08", "updatedAt": YESTERDAY - timedelta(days=3)},
        )
        counts: list[int] = []

        by_date = await service.fetch_homework_by_date("5A", "2025-03-09")
        homework = await service.fetch_homework("stu-1", on_today_count=counts.append)

        assert [h.subject for h in by_date] == ["Hindi"]
        assert {h.subject for h in homework} == {"Math", "Science", "English", "Hindi"}
        assert counts == [2]

    @pytest.mark.asyncio
    async def test_unknown_student(self, school_store, service: SchoolDataService) -> None:
        """Test homework for a user enrolled nowhere is empty."""
        counts: list[int] = []

        assert await service.fetch_homework("nobody", on_today_count=counts.append) == []
        assert counts == []

    @pytest.mark.asyncio
    async def test_by_date(self, school_store, service: SchoolDataService) -> None:
        """Test selecting one day's container."""
        homework = await service.fetch_homework_by_date("5A", "2025-03-12")

        assert sorted(h.subject for h in homework) == ["Math", "Science"]

    @pytest.mark.asyncio
    async def test_recent(self, school_store, service: SchoolDataService) -> None:
        """Test the recent list is capped by the limit."""
        homework = await service.fetch_recent_homework("5A", limit=2)

        assert len(homework) == 2


class TestGrades:
    """Tests for embedded grade lists."""

    @pytest.mark.asyncio
    async def test_sorted_newest_first(self, school_store, service: SchoolDataService) -> None:
        """Test grades come back by exam date descending."""
        grades = await service.fetch_grades("stu-1")

        assert [g.exam_name for g in grades] == ["Midterm", "Unit Test 1"]
        assert grades[0].average() == 85.0

    @pytest.mark.asyncio
    async def test_student_without_grades(self, school_store, service: SchoolDataService) -> None:
        """Test a student with no grade list has no grades."""
        assert await service.fetch_grades("stu-2") == []
        assert await service.fetch_grades(None) == []


@pytest_asyncio.fixture
async def posts_store(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Two posts by teacher t-1 (p2 newest) and the teacher document."""
    await store.set_document(
        "posts/p1",
        {"teacherId": "t-1", "title": "Zoo trip", "createdAt": FIXED_NOW - timedelta(days=2), "likes": {"u1": True}},
    )
    await store.set_document(
        "posts/p2",
        {"teacherId": "t-1", "title": "Art day", "createdAt": FIXED_NOW, "mediaUrls": [{"url": "https://cdn/a.jpg", "type": "image"}]},
    )
    await store.set_document("teachers/doc-1", {"id": "t-1", "name": "Ms. Rao"})
    return store


class TestPostsAndTeachers:
    """Tests for gallery posts, likes and comments."""

    @pytest.mark.asyncio
    async def test_fetch_posts_newest_first_and_idempotent(self, posts_store, service: SchoolDataService) -> None:
        """Test two fetches without writes agree."""
        first = await service.fetch_posts()
        second = await service.fetch_posts()

        assert [p.id for p in first] == ["p2", "p1"]
        assert first == second
        assert first[1].like_count == 1

    @pytest.mark.asyncio
    async def test_malformed_post_skipped(self, posts_store, service: SchoolDataService) -> None:
        """Test a post with unusable media is skipped, not fatal."""
        await posts_store.set_document("posts/bad", {"mediaUrls": "not-a-list"})

        posts = await service.fetch_posts()

        assert {p.id for p in posts} == {"p1", "p2"}

    @pytest.mark.asyncio
    async def test_fetch_teacher_by_external_id(self, posts_store, service: SchoolDataService) -> None:
        """Test teachers are matched on their id field, not the document id."""
        teacher = await service.fetch_teacher("t-1")

        assert teacher is not None
        assert teacher.name == "Ms. Rao"
        assert teacher.id == "t-1"
        assert await service.fetch_teacher("doc-1") is None

    @pytest.mark.asyncio
    async def test_toggle_like_round_trip(self, posts_store, service: SchoolDataService) -> None:
        """Test toggling twice restores the like-set."""
        assert await service.toggle_like("p1", "u2") is True
        liked = (await service.fetch_posts())[1]
        assert liked.like_count == 2

        assert await service.toggle_like("p1", "u2") is False
        restored = (await service.fetch_posts())[1]
        assert restored.likes == {"u1": True}

    @pytest.mark.asyncio
    async def test_toggle_like_on_missing_post(self, posts_store, service: SchoolDataService) -> None:
        """Test a vanished post is a no-op."""
        assert await service.toggle_like("gone", "u1") is False
        assert await posts_store.get_document("posts/gone") is None

    @pytest.mark.asyncio
    async def test_write_failures_raise(self, settings) -> None:
        """Test like and comment failures reach the caller."""
        store = AsyncMock(spec=DocumentStore)
        store.toggle_map_entry.side_effect = StoreError("unavailable")
        store.add_document.side_effect = StoreError("unavailable")
        service = SchoolDataService(store, settings=settings, clock=lambda: FIXED_NOW)

        with pytest.raises(WriteFailedError) as like_error:
            await service.toggle_like("p1", "u1")
        with pytest.raises(WriteFailedError):
            await service.add_comment("p1", "u1", "Nice")

        assert like_error.value.code == "write_failed"
        assert isinstance(like_error.value.original_error, StoreError)

    @pytest.mark.asyncio
    async def test_add_comment(self, posts_store, service: SchoolDataService) -> None:
        """Test comments are appended with a server timestamp."""
        comment_id = await service.add_comment("p1", "user-9", "Great job!")

        snapshot = await posts_store.get_document(f"posts/p1/comments/{comment_id}")
        assert snapshot.data["text"] == "Great job!"
        assert snapshot.data["userId"] == "user-9"
        assert isinstance(snapshot.data["createdAt"], datetime)

    @pytest.mark.asyncio
    async def test_viewed_posts(self, posts_store, service: SchoolDataService) -> None:
        """Test viewed marks are recorded per user."""
        await service.mark_post_viewed("stu-1", "p1")
        await service.mark_post_viewed("stu-1", "p1")

        assert await service.get_viewed_posts("stu-1") == ["p1"]
        assert await service.get_viewed_posts("stu-2") == []


class TestDashboard:
    """Tests for the combined dashboard load."""

    @pytest.mark.asyncio
    async def test_loads_everything(self, school_store, service: SchoolDataService) -> None:
        """Test the dashboard aggregates all three feeds and reports counters."""
        today_attendance = []
        announcement_counts: list[int] = []
        homework_counts: list[int] = []

        dashboard = await service.load_dashboard(
            "stu-1",
            on_today_attendance=today_attendance.append,
            on_today_announcements=announcement_counts.append,
            on_today_homework=homework_counts.append,
        )

        assert dashboard is not None
        assert dashboard.student.uid == "stu-1"
        assert len(dashboard.attendance) == 5
        assert len(dashboard.announcements) == 5
        assert len(dashboard.homework) == 3
        assert today_attendance[0].date == date(2025, 3, 12).isoformat()
        assert announcement_counts == [2]
        assert homework_counts == [2]

    @pytest.mark.asyncio
    async def test_no_student(self, school_store, service: SchoolDataService) -> None:
        """Test there is no dashboard without a student."""
        assert await service.load_dashboard("nobody") is None

    @pytest.mark.asyncio
    async def test_one_failure_fails_the_load(
        self,
        school_store: InMemoryDocumentStore,
        service: SchoolDataService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a single failed sub-fetch fails the whole dashboard."""
        original = school_store.query

        async def failing_announcements(path: str, *args, **kwargs):
            if path == "announcement":
                raise StoreError("announcements unavailable")
            return await original(path, *args, **kwargs)

        monkeypatch.setattr(school_store, "query", failing_announcements)

        with pytest.raises(DashboardLoadError) as exc_info:
            await service.load_dashboard("stu-1")

        assert exc_info.value.code == "dashboard_load_failed"
        assert isinstance(exc_info.value.original_error, StoreError)
