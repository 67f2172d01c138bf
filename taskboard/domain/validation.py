from __future__ import annotations

import random
from datetime import date, datetime, timezone

from .enums import TaskPriority, TaskStatus
from .errors import ValidationError

TASK_FIELDS = {
    "title",
    "description",
    "status",
    "priority",
    "expected_time",
    "actual_time",
    "start_time",
    "end_time",
    "scheduled_start_time",
    "completed_at",
    "category_id",
    "day",
}
TIMESTAMP_FIELDS = ("start_time", "end_time", "scheduled_start_time", "completed_at")
CATEGORY_FIELDS = {"name", "color"}
CATEGORY_COLORS = (
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#EC4899",
    "#14B8A6",
    "#F97316",
    "#6366F1",
    "#06B6D4",
)


def normalize_task_data(data: dict, creating: bool = False) -> dict:
    """Validate a partial task payload and coerce it to canonical types.

    Unknown keys are rejected so that a typo never turns into a silent no-op.
    """
    unknown = set(data) - TASK_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    normalized = dict(data)
    if creating or "title" in normalized:
        title = (normalized.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required")
        normalized["title"] = title

    if "description" in normalized:
        normalized["description"] = normalized["description"] or ""

    if normalized.get("status") is not None:
        normalized["status"] = _coerce(TaskStatus, normalized["status"], "status")
    elif "status" in normalized:
        raise ValidationError("Status is required")

    if normalized.get("priority") is not None:
        normalized["priority"] = _coerce(TaskPriority, normalized["priority"], "priority")
    elif "priority" in normalized:
        raise ValidationError("Priority is required")

    if normalized.get("expected_time") is not None:
        normalized["expected_time"] = _non_negative(normalized["expected_time"], "expected_time")
    if "actual_time" in normalized:
        normalized["actual_time"] = _non_negative(normalized["actual_time"] or 0, "actual_time")

    for field in TIMESTAMP_FIELDS:
        if field in normalized:
            normalized[field] = parse_timestamp(normalized[field])

    if "day" in normalized:
        normalized["day"] = parse_day(normalized["day"])

    if "category_id" in normalized:
        normalized["category_id"] = normalized["category_id"] or None

    return normalized


def normalize_category_data(data: dict, creating: bool = False) -> dict:
    unknown = set(data) - CATEGORY_FIELDS
    if unknown:
        raise ValidationError(f"Unknown category fields: {', '.join(sorted(unknown))}")
    normalized = dict(data)
    if creating or "name" in normalized:
        name = (normalized.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required")
        normalized["name"] = name
    if creating and not normalized.get("color"):
        normalized["color"] = random.choice(CATEGORY_COLORS)
    return normalized


def parse_timestamp(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp: {value!r}") from exc
        if parsed.tzinfo:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValidationError(f"Invalid timestamp: {value!r}")


def parse_day(value) -> date:
    if value is None:
        raise ValidationError("Day is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as exc:
            raise ValidationError(f"Invalid day: {value!r}") from exc
    raise ValidationError(f"Invalid day: {value!r}")


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: {value!r}") from exc


def _non_negative(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number of seconds")
    if value < 0:
        raise ValidationError(f"{field} must not be negative")
    return int(value)
