# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School Data Service - what the parent app's screens read and write.

This service provides:
- Student lookup (scan of class partitions, first match wins)
- Attendance, announcements, events, homework and grades
- Gallery posts, teacher lookup, likes, comments and viewed-post marks
- The combined dashboard load

Every operation takes the caller's identity explicitly.

Error policy:
- Reads never raise. Store failures are logged and come back as None
  or an empty list, the same as "nothing there".
- Writes raise SchoolDataError subclasses so the caller can tell the
  user the action did not happen.
- load_dashboard() fails as a whole (DashboardLoadError) if any of its
  concurrent sub-fetches fails.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, TypeVar

from pydantic import BaseModel, ValidationError

from src.core.config.settings import Settings, get_settings
from src.domains.school_data.normalizers import (
    attendance_from_document,
    count_today,
    flatten_homework,
    sort_homework_by_activity,
    sort_homework_by_date,
)
from src.infrastructure.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    StoreError,
    collection_path,
    document_path,
    where,
)
from src.models.school import (
    Announcement,
    AttendanceRecord,
    DashboardData,
    EventItem,
    Grade,
    Homework,
    Post,
    Student,
    Teacher,
)
from src.utils.datetime import coerce_datetime, local_date_str, utc_now

logger = logging.getLogger(__name__)

# Collection names
CLASSES = "classes"
STUDENTS = "students"
ATTENDANCE = "attendance"
ANNOUNCEMENTS = "announcement"
EVENTS = "events"
HOMEWORK = "homework"
POSTS = "posts"
COMMENTS = "comments"
TEACHERS = "teachers"
VIEWED_POSTS = "viewedPosts"

# ValueError covers ids that do not form a valid store path
_READ_ERRORS = (StoreError, ValidationError, ValueError)

ModelT = TypeVar("ModelT", bound=BaseModel)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

TodayCountCallback = Callable[[int], None]
TodayAttendanceCallback = Callable[[AttendanceRecord], None]


class SchoolDataError(Exception):
    """Exception raised for school data operations."""

    def __init__(
        self,
        message: str,
        code: str = "school_data_error",
        original_error: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)


class WriteFailedError(SchoolDataError):
    """Raised when a like, comment or viewed mark could not be saved."""

    def __init__(self, action: str, original_error: Exception):
        super().__init__(
            message=f"Failed to {action}",
            code="write_failed",
            original_error=original_error,
        )
        self.action = action


class DashboardLoadError(SchoolDataError):
    """Raised when any part of the combined dashboard load fails."""

    def __init__(self, user_id: str, original_error: Exception):
        super().__init__(
            message=f"Dashboard load failed for {user_id}: {original_error}",
            code="dashboard_load_failed",
            original_error=original_error,
        )
        self.user_id = user_id


class SchoolDataService:
    """Data access and aggregation for the parent app.

    Attributes:
        _store: Remote document store.
        _settings: Application settings (limits, timezone).
        _clock: Source of "now"; injectable for tests.

    Example:
        service = SchoolDataService(get_document_store())
        student = await service.get_current_student(session.uid)
        homework = await service.fetch_homework(session.uid, on_today_count=badge.set)
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the service.

        Args:
            store: Document store backend.
            settings: Settings; the cached application settings by default.
            clock: Callable returning the current aware datetime.
        """
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._tz = self._settings.tzinfo

    def _today(self) -> str:
        return local_date_str(self._clock(), self._tz)

    # =========================================================================
    # Students
    # =========================================================================

    async def _find_student(self, user_id: str) -> tuple[str, Student] | None:
        """Scan class partitions for ``classes/{class}/students/{user_id}``.

        Stops at the first class holding the student; a student belongs
        to exactly one class. Store errors propagate.
        """
        for class_doc in await self._store.list_collection(CLASSES):
            snapshot = await self._store.get_document(
                document_path(CLASSES, class_doc.id, STUDENTS, user_id)
            )
            if snapshot is None:
                continue
            data = dict(snapshot.data)
            data["uid"] = user_id
            data.setdefault("studentClass", class_doc.id)
            return class_doc.id, Student.model_validate(data)
        return None

    async def get_current_student(self, user_id: str | None) -> Student | None:
        """Resolve the signed-in user's student record.

        Args:
            user_id: Session identity; None or empty when signed out.

        Returns:
            The student, or None if signed out, not enrolled, or the
            lookup failed.
        """
        if not user_id:
            return None
        return await self.get_student_by_id(user_id)

    async def get_student_by_id(self, user_id: str) -> Student | None:
        """Resolve any student by identity (same scan as the current student)."""
        try:
            found = await self._find_student(user_id)
        except _READ_ERRORS as e:
            logger.error("Error fetching student %s: %s", user_id, e, exc_info=True)
            return None
        return found[1] if found else None

    async def fetch_student_doc(self, student: Student) -> Student | None:
        """Re-read a student's document directly from its class.

        Returns:
            The fresh record, or None if it is gone, was renamed, or the
            read failed.
        """
        if not student.student_class or not student.uid:
            return None
        try:
            snapshot = await self._store.get_document(
                document_path(CLASSES, student.student_class, STUDENTS, student.uid)
            )
            if snapshot is None:
                return None
            fresh = Student.model_validate({**snapshot.data, "uid": student.uid})
        except _READ_ERRORS as e:
            logger.error("Error fetching student document %s: %s", student.uid, e, exc_info=True)
            return None

        if fresh.student_name != student.student_name:
            return None
        return fresh

    async def fetch_class_students(self, class_name: str) -> list[Student]:
        """All students enrolled in a class."""
        try:
            snapshots = await self._store.list_collection(collection_path(CLASSES, class_name, STUDENTS))
            return models_from_snapshots(Student, snapshots, id_field="uid")
        except _READ_ERRORS as e:
            logger.error("Error fetching students of %s: %s", class_name, e, exc_info=True)
            return []

    # =========================================================================
    # Attendance
    # =========================================================================

    async def _load_attendance(self, student_id: str, class_name: str) -> list[AttendanceRecord]:
        snapshots = await self._store.query(
            ATTENDANCE,
            filters=[where("className", "==", class_name)],
        )
        records = []
        for snapshot in snapshots:
            record = attendance_from_document(snapshot, student_id)
            if record is not None:
                records.append(record)
        return records

    async def _load_student_attendance(
        self,
        student: Student,
        on_today: TodayAttendanceCallback | None,
    ) -> list[AttendanceRecord]:
        records = await self._load_attendance(student.attendance_key, student.student_class)
        if on_today is not None:
            today = self._today()
            for record in records:
                if record.date == today:
                    on_today(record)
        return records

    async def fetch_attendance_for_student(
        self,
        student_id: str,
        class_name: str,
    ) -> list[AttendanceRecord]:
        """Attendance records of one student in one class.

        Days without a record are simply absent from the result; callers
        render them as Not Marked.
        """
        try:
            return await self._load_attendance(student_id, class_name)
        except _READ_ERRORS as e:
            logger.error("Error fetching attendance for %s: %s", student_id, e, exc_info=True)
            return []

    async def fetch_attendance(
        self,
        student: Student,
        on_today: TodayAttendanceCallback | None = None,
    ) -> list[AttendanceRecord]:
        """Attendance of a resolved student, reporting today's record.

        Args:
            student: Student from get_current_student().
            on_today: Called with today's record if there is one.
        """
        try:
            return await self._load_student_attendance(student, on_today)
        except _READ_ERRORS as e:
            logger.error("Error fetching attendance for %s: %s", student.uid, e, exc_info=True)
            return []

    async def fetch_today_attendance_count(self, class_name: str) -> int:
        """Number of attendance documents recorded today for a class."""
        try:
            snapshots = await self._store.query(
                ATTENDANCE,
                filters=[
                    where("className", "==", class_name),
                    where("date", "==", self._today()),
                ],
            )
        except StoreError as e:
            logger.error("Error counting attendance for %s: %s", class_name, e, exc_info=True)
            return 0
        return len(snapshots)

    # =========================================================================
    # Announcements & Events
    # =========================================================================

    async def _load_announcements(
        self,
        limit: int | None,
        on_today_count: TodayCountCallback | None = None,
    ) -> list[Announcement]:
        snapshots = await self._store.query(
            ANNOUNCEMENTS,
            order_by=OrderBy("createdAt", descending=True),
            limit=limit,
        )
        announcements = models_from_snapshots(Announcement, snapshots)
        if on_today_count is not None:
            on_today_count(
                count_today((item.created_at for item in announcements), self._clock(), self._tz)
            )
        return announcements

    async def fetch_announcements(
        self,
        on_today_count: TodayCountCallback | None = None,
        limit: int | None = None,
    ) -> list[Announcement]:
        """Most recent announcements, newest first.

        Args:
            on_today_count: Called with how many of the returned
                announcements were created today.
            limit: How many to return; the configured default if None.
        """
        try:
            return await self._load_announcements(
                self._settings.data.announcement_limit if limit is None else limit,
                on_today_count,
            )
        except _READ_ERRORS as e:
            logger.error("Error fetching announcements: %s", e, exc_info=True)
            return []

    async def fetch_all_announcements(self) -> list[Announcement]:
        """Every announcement, newest first."""
        try:
            return await self._load_announcements(None)
        except _READ_ERRORS as e:
            logger.error("Error fetching announcements: %s", e, exc_info=True)
            return []

    async def fetch_events(self) -> list[EventItem]:
        """Every event, most recently created first."""
        try:
            snapshots = await self._store.query(
                EVENTS,
                order_by=OrderBy("createdAt", descending=True),
            )
            return models_from_snapshots(EventItem, snapshots)
        except _READ_ERRORS as e:
            logger.error("Error fetching events: %s", e, exc_info=True)
            return []

    async def fetch_upcoming_events(self, limit: int | None = None) -> list[EventItem]:
        """Events starting today or later, soonest first."""
        try:
            snapshots = await self._store.query(
                EVENTS,
                filters=[where("startDate", ">=", self._today())],
                order_by=OrderBy("startDate"),
                limit=self._settings.data.upcoming_events_limit if limit is None else limit,
            )
            return models_from_snapshots(EventItem, snapshots)
        except _READ_ERRORS as e:
            logger.error("Error fetching upcoming events: %s", e, exc_info=True)
            return []

    # =========================================================================
    # Homework
    # =========================================================================

    def _flatten(self, snapshots: list[DocumentSnapshot], class_id: str) -> list[Homework]:
        now = self._clock()
        items: list[Homework] = []
        for snapshot in snapshots:
            items.extend(flatten_homework(snapshot, class_id, now, self._tz))
        return items

    async def _load_homework(
        self,
        class_id: str,
        limit: int | None,
        on_today_count: TodayCountCallback | None = None,
    ) -> list[Homework]:
        snapshots = await self._store.query(
            collection_path(CLASSES, class_id, HOMEWORK),
            order_by=OrderBy("updatedAt", descending=True),
            limit=self._settings.data.homework_limit if limit is None else limit,
        )
        items = self._flatten(snapshots, class_id)
        if on_today_count is not None:
            on_today_count(count_today((item.date for item in items), self._clock(), self._tz))
        return sort_homework_by_date(items)

    async def fetch_homework(
        self,
        user_id: str | None,
        on_today_count: TodayCountCallback | None = None,
        limit: int | None = None,
    ) -> list[Homework]:
        """Recent homework of the user's class, newest effective date first.

        Args:
            user_id: Session identity.
            on_today_count: Called with how many items are dated today.
            limit: Per-day containers to read; the configured default if None.
        """
        if not user_id:
            return []
        try:
            found = await self._find_student(user_id)
            if found is None:
                return []
            return await self._load_homework(found[0], limit, on_today_count)
        except _READ_ERRORS as e:
            logger.error("Error fetching homework for %s: %s", user_id, e, exc_info=True)
            return []

    async def fetch_recent_homework(self, class_id: str, limit: int | None = None) -> list[Homework]:
        """Most recently updated homework items of a class."""
        if limit is None:
            limit = self._settings.data.homework_limit
        try:
            snapshots = await self._store.query(
                collection_path(CLASSES, class_id, HOMEWORK),
                order_by=OrderBy("updatedAt", descending=True),
                limit=limit,
            )
            items = self._flatten(snapshots, class_id)
        except _READ_ERRORS as e:
            logger.error("Error fetching recent homework for %s: %s", class_id, e, exc_info=True)
            return []
        return sort_homework_by_activity(items, self._tz)[:limit]

    async def fetch_homework_by_date(self, class_id: str, date: str) -> list[Homework]:
        """Homework of a class for one ``yyyy-MM-dd`` day."""
        try:
            snapshots = await self._store.query(
                collection_path(CLASSES, class_id, HOMEWORK),
                filters=[where("date", "==", date)],
                order_by=OrderBy("updatedAt", descending=True),
            )
            return self._flatten(snapshots, class_id)
        except _READ_ERRORS as e:
            logger.error("Error fetching homework of %s on %s: %s", class_id, date, e, exc_info=True)
            return []

    # =========================================================================
    # Grades
    # =========================================================================

    async def fetch_grades(self, user_id: str | None) -> list[Grade]:
        """Exam results embedded in the student document, newest first."""
        if not user_id:
            return []
        try:
            found = await self._find_student(user_id)
        except _READ_ERRORS as e:
            logger.error("Error fetching grades for %s: %s", user_id, e, exc_info=True)
            return []
        if found is None:
            return []

        grades = []
        for raw in (found[1].model_extra or {}).get("grades") or []:
            try:
                grades.append(Grade.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed grade for %s: %s", user_id, e)

        def exam_date(grade: Grade) -> datetime:
            return coerce_datetime(grade.date, self._tz) or _EPOCH

        return sorted(grades, key=exam_date, reverse=True)

    # =========================================================================
    # Posts & Teachers
    # =========================================================================

    async def fetch_posts(self) -> list[Post]:
        """All gallery posts, newest first."""
        try:
            snapshots = await self._store.query(
                POSTS,
                order_by=OrderBy("createdAt", descending=True),
            )
        except StoreError as e:
            logger.error("Error fetching posts: %s", e, exc_info=True)
            return []
        return posts_from_snapshots(snapshots)

    async def fetch_teacher(self, teacher_id: str) -> Teacher | None:
        """Teacher whose external ``id`` field equals ``teacher_id``."""
        try:
            snapshots = await self._store.query(
                TEACHERS,
                filters=[where("id", "==", teacher_id)],
                limit=1,
            )
            if not snapshots:
                return None
            snapshot = snapshots[0]
            return Teacher.model_validate({"id": snapshot.id, **snapshot.data})
        except _READ_ERRORS as e:
            logger.error("Error fetching teacher %s: %s", teacher_id, e, exc_info=True)
            return None

    async def toggle_like(self, post_id: str, user_id: str) -> bool:
        """Flip the user's like on a post.

        The flip is atomic in the store, so concurrent toggles from other
        sessions are never lost.

        Returns:
            True if the post is now liked by the user. False if the like
            was removed or the post no longer exists.

        Raises:
            WriteFailedError: If the store rejected the write.
        """
        try:
            liked = await self._store.toggle_map_entry(document_path(POSTS, post_id), "likes", user_id)
        except StoreError as e:
            logger.error("Error toggling like on %s: %s", post_id, e, exc_info=True)
            raise WriteFailedError("update like", e) from e

        if liked is None:
            logger.warning("Like on missing post %s ignored", post_id)
            return False
        return liked

    async def add_comment(self, post_id: str, user_id: str, text: str) -> str:
        """Append a comment to a post.

        Callers are expected to reject blank text.

        Returns:
            Id of the new comment.

        Raises:
            WriteFailedError: If the store rejected the write.
        """
        try:
            comment_id = await self._store.add_document(
                collection_path(POSTS, post_id, COMMENTS),
                {"text": text, "userId": user_id, "createdAt": SERVER_TIMESTAMP},
            )
        except StoreError as e:
            logger.error("Error adding comment to %s: %s", post_id, e, exc_info=True)
            raise WriteFailedError("add comment", e) from e

        logger.info("Comment %s added to post %s", comment_id, post_id)
        return comment_id

    async def mark_post_viewed(self, user_id: str, post_id: str) -> None:
        """Record that the user has seen a post.

        Raises:
            WriteFailedError: If the store rejected the write.
        """
        try:
            await self._store.set_document(
                document_path(STUDENTS, user_id, VIEWED_POSTS, post_id),
                {"viewedAt": SERVER_TIMESTAMP},
            )
        except StoreError as e:
            raise WriteFailedError("mark post viewed", e) from e

    async def get_viewed_posts(self, user_id: str) -> list[str]:
        """Ids of the posts the user has seen."""
        try:
            snapshots = await self._store.list_collection(collection_path(STUDENTS, user_id, VIEWED_POSTS))
        except StoreError as e:
            logger.error("Error fetching viewed posts for %s: %s", user_id, e, exc_info=True)
            return []
        return [snapshot.id for snapshot in snapshots]

    # =========================================================================
    # Dashboard
    # =========================================================================

    async def load_dashboard(
        self,
        user_id: str | None,
        on_today_attendance: TodayAttendanceCallback | None = None,
        on_today_announcements: TodayCountCallback | None = None,
        on_today_homework: TodayCountCallback | None = None,
    ) -> DashboardData | None:
        """Load everything the dashboard shows in one go.

        Attendance, announcements and homework are fetched concurrently
        once the student is known.

        Returns:
            The dashboard data, or None if there is no student.

        Raises:
            DashboardLoadError: If any of the concurrent fetches failed.
        """
        if not user_id:
            return None
        try:
            found = await self._find_student(user_id)
        except _READ_ERRORS as e:
            logger.error("Error fetching student %s: %s", user_id, e, exc_info=True)
            return None
        if found is None:
            return None
        class_id, student = found

        try:
            attendance, announcements, homework = await asyncio.gather(
                self._load_student_attendance(student, on_today_attendance),
                self._load_announcements(
                    self._settings.data.announcement_limit,
                    on_today_announcements,
                ),
                self._load_homework(class_id, None, on_today_homework),
            )
        except _READ_ERRORS as e:
            logger.error("Dashboard load failed for %s: %s", user_id, e, exc_info=True)
            raise DashboardLoadError(user_id, e) from e

        logger.info(
            "Dashboard loaded for %s: %d attendance, %d announcements, %d homework",
            user_id,
            len(attendance),
            len(announcements),
            len(homework),
        )
        return DashboardData(
            student=student,
            attendance=attendance,
            announcements=announcements,
            homework=homework,
        )


def models_from_snapshots(
    model: type[ModelT],
    snapshots: list[DocumentSnapshot],
    id_field: str = "id",
) -> list[ModelT]:
    """Validate each snapshot on its own, skipping documents that do not fit ``model``.

    The document id is stored under ``id_field``.
    """
    items = []
    for snapshot in snapshots:
        try:
            items.append(model.model_validate({**snapshot.data, id_field: snapshot.id}))
        except ValidationError as e:
            logger.warning("Skipping malformed %s %s: %s", model.__name__, snapshot.path, e)
    return items


def posts_from_snapshots(snapshots: list[DocumentSnapshot]) -> list[Post]:
    """Build posts, skipping documents that do not fit the Post shape."""
    return models_from_snapshots(Post, snapshots)
