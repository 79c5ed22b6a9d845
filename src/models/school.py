# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School data models.

Pydantic models for the entities the parent app reads: students,
attendance, announcements, events, homework, grades and the gallery
feed. Stored documents use camelCase field names; models expose
snake_case attributes and accept either spelling.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class StoreModel(BaseModel):
    """Base for models built from store documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Students & Teachers
# =============================================================================


class Student(StoreModel):
    """A student document from ``classes/{class}/students/{uid}``.

    Profile sub-records (personal, parent, academic, address, medical,
    documents) and the embedded grade list are kept as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    uid: str
    id: str | None = None
    student_name: str = ""
    student_class: str = ""

    @property
    def attendance_key(self) -> str:
        """Identifier used in attendance rosters (``id`` wins over ``uid``)."""
        return self.id or self.uid


class Teacher(StoreModel):
    """A teacher document, looked up by its external ``id`` field."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = "Teacher"


# =============================================================================
# Attendance
# =============================================================================


class AttendanceStatus(str, Enum):
    """Attendance status of one student on one day.

    NOT_MARKED is only ever produced client-side for days with no record.
    """

    PRESENT = "Present"
    ABSENT = "Absent"
    HALFDAY = "Halfday"
    NOT_MARKED = "Not Marked"


class AttendanceRecord(StoreModel):
    """One student's attendance on one day.

    Attributes:
        id: Id of the class attendance document the record came from.
        date: Day as ``yyyy-MM-dd``.
        status: Explicit or derived status. Explicit values outside the
            known set are kept as written.
        morning: Morning half-day marker, when recorded.
        afternoon: Afternoon half-day marker, when recorded.
    """

    id: str
    date: str
    status: AttendanceStatus | str
    morning: bool | None = None
    afternoon: bool | None = None


class AttendanceDay(BaseModel):
    """One cell of the weekly attendance strip."""

    date: str
    status: AttendanceStatus | str
    is_today: bool = False


# =============================================================================
# Announcements & Events
# =============================================================================


class Announcement(StoreModel):
    """A school announcement. Optional event fields share the EventItem shape."""

    id: str
    title: str = ""
    description: str | None = None
    sender: str | None = None
    created_at: datetime | None = None
    event_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    venue: str | None = None


class EventItem(StoreModel):
    """A calendar event."""

    id: str
    title: str = ""
    event_type: str = ""
    start_date: str = ""
    end_date: str = ""
    start_time: str = ""
    end_time: str = ""
    venue: str = ""
    description: str | None = None


# =============================================================================
# Homework
# =============================================================================


class Homework(StoreModel):
    """A single homework item after normalization.

    Attributes:
        id: Document id, or the nested item's creation stamp.
        subject: Subject name.
        details: Free text or an ordered list of tasks.
        date: Effective date (item date, then creation date, then the
            per-day container's date, then fetch time).
        created_at: Raw creation value.
        updated_at: Raw update value.
        date_id: Id of the per-day container document.
        class_id: Owning class.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    subject: str | None = None
    details: str | list[str] = ""
    date: datetime
    created_at: Any = None
    updated_at: Any = None
    date_id: str | None = None
    class_id: str | None = None


# =============================================================================
# Grades
# =============================================================================


def parse_score(value: Any) -> float | None:
    """Numeric value of a score, or None when it is not a number."""
    try:
        score = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if score != score or score in (float("inf"), float("-inf")):
        return None
    return score


def grade_letter(score: Any) -> str:
    """Letter grade for a score; empty for non-numeric scores."""
    value = parse_score(score)
    if value is None:
        return ""
    if value >= 90:
        return "A"
    if value >= 80:
        return "B"
    if value >= 70:
        return "C"
    if value >= 60:
        return "D"
    return "F"


def performance_label(average: float | None) -> str:
    """Human label for an exam average."""
    if average is None:
        return "N/A"
    if average >= 90:
        return "Excellent"
    if average >= 80:
        return "Good"
    if average >= 70:
        return "Average"
    if average >= 60:
        return "Needs Improvement"
    return "Poor"


class Grade(StoreModel):
    """One exam result embedded in a student document."""

    exam_name: str
    date: str = ""
    subjects: dict[str, str] = Field(default_factory=dict)

    @field_validator("subjects", mode="before")
    @classmethod
    def stringify_scores(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(name): "" if score is None else str(score) for name, score in value.items()}
        return value

    def numeric_scores(self) -> dict[str, float]:
        """Subjects whose score parses as a number."""
        scores = {}
        for name, raw in self.subjects.items():
            value = parse_score(raw)
            if value is not None:
                scores[name] = value
        return scores

    def average(self) -> float | None:
        """Mean of the numeric scores, one decimal; None if there are none."""
        scores = list(self.numeric_scores().values())
        if not scores:
            return None
        return round(sum(scores) / len(scores), 1)

    @property
    def performance(self) -> str:
        return performance_label(self.average())


# =============================================================================
# Gallery feed
# =============================================================================


class Media(StoreModel):
    """An image or video attached to a post."""

    url: str
    type: Literal["image", "video"] = "image"


class Comment(StoreModel):
    """A comment in ``posts/{post}/comments``."""

    id: str
    text: str = ""
    user_id: str = ""
    created_at: datetime | None = None
    user_name: str | None = None
    user_profile: str | None = None


class Post(StoreModel):
    """A gallery post.

    ``likes`` maps user ids to True; ``like_count`` is always derived
    from it.
    """

    id: str
    teacher_id: str = ""
    title: str = ""
    text: str = ""
    description: str = ""
    created_at: datetime | None = None
    media_urls: list[Media] = Field(default_factory=list)
    likes: dict[str, bool] = Field(default_factory=dict)
    like_count: int = 0
    comments: list[Comment] = Field(default_factory=list)
    teacher_name: str | None = None

    @field_validator("likes", mode="before")
    @classmethod
    def drop_false_likes(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {user_id: True for user_id, liked in value.items() if liked}
        return value or {}

    def model_post_init(self, __context: Any) -> None:
        self.like_count = len(self.likes)

    def is_liked_by(self, user_id: str) -> bool:
        return bool(self.likes.get(user_id))


# =============================================================================
# Dashboard
# =============================================================================


class DashboardData(BaseModel):
    """Everything the dashboard screen renders from one load."""

    student: Student
    attendance: list[AttendanceRecord] = Field(default_factory=list)
    announcements: list[Announcement] = Field(default_factory=list)
    homework: list[Homework] = Field(default_factory=list)
