# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pure reshaping of store documents into school data models.

Nothing here touches the store; the service hands in snapshots and
gets back models, which keeps every rule testable on plain dicts.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Iterable
from uuid import uuid4

from pydantic import ValidationError

from src.infrastructure.store import DocumentSnapshot
from src.models.school import (
    AttendanceDay,
    AttendanceRecord,
    AttendanceStatus,
    Homework,
)
from src.utils.datetime import coerce_datetime, is_same_local_day, week_days

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

_PERSISTED_STATUSES = {
    status.value.lower(): status
    for status in (AttendanceStatus.PRESENT, AttendanceStatus.ABSENT, AttendanceStatus.HALFDAY)
}


# =============================================================================
# Attendance
# =============================================================================


def derive_attendance_status(entry: dict[str, Any]) -> AttendanceStatus | str:
    """Status of a roster entry.

    An explicit status always wins. Known values are matched ignoring
    case, spaces and hyphens ("present", "Half-day"); any other non-blank
    value is kept as written. Without one, both half-day markers mean
    Present, exactly one means Halfday and neither means Absent.
    """
    explicit = entry.get("status")
    if isinstance(explicit, str) and explicit.strip():
        key = explicit.replace("-", "").replace(" ", "").lower()
        return _PERSISTED_STATUSES.get(key, explicit.strip())

    morning = bool(entry.get("morning"))
    afternoon = bool(entry.get("afternoon"))
    if morning and afternoon:
        return AttendanceStatus.PRESENT
    if morning or afternoon:
        return AttendanceStatus.HALFDAY
    return AttendanceStatus.ABSENT


def attendance_from_document(snapshot: DocumentSnapshot, student_id: str) -> AttendanceRecord | None:
    """Pick one student's entry out of a class attendance document.

    Roster entries are matched on ``id`` or ``uid``.

    Returns:
        The student's record, or None if the roster does not list them.
    """
    for entry in snapshot.get("students") or []:
        if not isinstance(entry, dict):
            continue
        if student_id not in (entry.get("id"), entry.get("uid")):
            continue
        return AttendanceRecord(
            id=snapshot.id,
            date=str(snapshot.get("date", "")),
            status=derive_attendance_status(entry),
            morning=entry.get("morning"),
            afternoon=entry.get("afternoon"),
        )
    return None


def build_week_view(records: Iterable[AttendanceRecord], today: date) -> list[AttendanceDay]:
    """Monday-to-Saturday strip for the week containing ``today``.

    Days without a record are Not Marked, never Absent.
    """
    by_date = {record.date: record for record in records}
    days = []
    for day in week_days(today):
        key = day.isoformat()
        record = by_date.get(key)
        days.append(
            AttendanceDay(
                date=key,
                status=record.status if record else AttendanceStatus.NOT_MARKED,
                is_today=day == today,
            )
        )
    return days


def count_by_status(days: Iterable[AttendanceDay | AttendanceRecord], status: AttendanceStatus) -> int:
    return sum(1 for day in days if day.status == status)


# =============================================================================
# Homework
# =============================================================================


@dataclass(frozen=True)
class HomeworkEntry:
    """A per-day document that is itself one homework item."""

    snapshot: DocumentSnapshot


@dataclass(frozen=True)
class HomeworkBatch:
    """A per-day container holding a ``homeworks`` list."""

    snapshot: DocumentSnapshot
    items: list[dict[str, Any]]


def classify_homework(snapshot: DocumentSnapshot) -> HomeworkEntry | HomeworkBatch:
    """Tag a per-day homework document with its shape."""
    nested = snapshot.get("homeworks")
    if isinstance(nested, list) and nested:
        return HomeworkBatch(
            snapshot=snapshot,
            items=[item for item in nested if isinstance(item, dict)],
        )
    return HomeworkEntry(snapshot=snapshot)


def effective_date(candidates: Iterable[Any], now: datetime, tz: tzinfo) -> datetime:
    """First candidate that reads as a date, else ``now``."""
    for value in candidates:
        parsed = coerce_datetime(value, tz)
        if parsed is not None:
            return parsed
    return now


def _clean_details(value: Any) -> str | list[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    if value is None:
        return ""
    return str(value)


def _stamp_id(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if value:
        return str(value)
    return uuid4().hex


def flatten_homework(
    snapshot: DocumentSnapshot,
    class_id: str,
    now: datetime,
    tz: tzinfo,
) -> list[Homework]:
    """Normalize one per-day document into homework items.

    Nested items take their date from the item, then the item's creation
    stamp, then the container's date, then ``now``. Flat documents take
    their own date, then creation stamp, then ``now``.
    """
    shape = classify_homework(snapshot)
    data = snapshot.data

    if isinstance(shape, HomeworkBatch):
        items = []
        for item in shape.items:
            fields = dict(item)
            fields.update(
                id=_stamp_id(item.get("createdAt")),
                dateId=snapshot.id,
                classId=class_id,
                details=_clean_details(item.get("details")),
                date=effective_date(
                    (item.get("date"), item.get("createdAt"), data.get("date")), now, tz
                ),
                createdAt=item.get("createdAt") or data.get("createdAt"),
                updatedAt=item.get("updatedAt") or data.get("updatedAt"),
            )
            try:
                items.append(Homework.model_validate(fields))
            except ValidationError as e:
                logger.warning("Skipping malformed homework item in %s: %s", snapshot.path, e)
        return items

    fields = {key: value for key, value in data.items() if key != "homeworks"}
    fields.update(
        id=snapshot.id,
        dateId=snapshot.id,
        classId=class_id,
        details=_clean_details(data.get("details")),
        date=effective_date((data.get("date"), data.get("createdAt")), now, tz),
    )
    try:
        return [Homework.model_validate(fields)]
    except ValidationError as e:
        logger.warning("Skipping malformed homework %s: %s", snapshot.path, e)
        return []


def sort_homework_by_date(items: list[Homework]) -> list[Homework]:
    """Newest effective date first."""
    return sorted(items, key=lambda item: item.date, reverse=True)


def sort_homework_by_activity(items: list[Homework], tz: tzinfo) -> list[Homework]:
    """Most recently updated (else created, else dated) first."""

    def activity(item: Homework) -> datetime:
        for value in (item.updated_at, item.created_at, item.date):
            parsed = coerce_datetime(value, tz)
            if parsed is not None:
                return parsed
        return _EPOCH

    return sorted(items, key=activity, reverse=True)


def count_today(values: Iterable[Any], now: datetime, tz: tzinfo) -> int:
    """How many date-like values fall on today's calendar day in ``tz``."""
    return sum(1 for value in values if is_same_local_day(value, now, tz))
