from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace
from datetime import date, time
from typing import Any

from work360.errors import FieldViolation, Forbidden, InvalidTransition, ValidationError
from work360.models import AbsenceCategory, AbsenceMode, AbsenceStatus, AbsenceType, DayPart

NOTES_MAX_LENGTH = 1000


class TransitionActor(str, enum.Enum):
    OWNER = "owner"
    SELF = "self"


STATUS_TRANSITIONS: dict[AbsenceStatus, dict[AbsenceStatus, TransitionActor]] = {
    AbsenceStatus.PENDING: {
        AbsenceStatus.APPROVED: TransitionActor.OWNER,
        AbsenceStatus.REJECTED: TransitionActor.OWNER,
        AbsenceStatus.CHANGES_REQUESTED: TransitionActor.OWNER,
        AbsenceStatus.CANCELLED: TransitionActor.SELF,
    },
    AbsenceStatus.CHANGES_REQUESTED: {
        AbsenceStatus.PENDING: TransitionActor.SELF,
        AbsenceStatus.CANCELLED: TransitionActor.SELF,
    },
}

TERMINAL_STATUSES = frozenset({AbsenceStatus.APPROVED, AbsenceStatus.REJECTED, AbsenceStatus.CANCELLED})

EDITABLE_FIELDS: tuple[str, ...] = (
    "type",
    "mode",
    "category",
    "start_date",
    "end_date",
    "day_part",
    "start_time",
    "end_time",
    "notes",
    "attachment_url",
)


def ensure_transition(source: AbsenceStatus, target: AbsenceStatus, actor: TransitionActor) -> None:
    required_actor = STATUS_TRANSITIONS.get(source, {}).get(target)
    if required_actor is None:
        raise InvalidTransition(source.value, target.value)
    if required_actor != actor:
        raise Forbidden(f"Moving a request to {target.value} is reserved to the {required_actor.value} actor.")


def is_transition_allowed(source: AbsenceStatus, target: AbsenceStatus) -> bool:
    return target in STATUS_TRANSITIONS.get(source, {})


@dataclass(frozen=True, slots=True)
class AbsenceFields:
    type: AbsenceType | None
    start_date: date | None
    mode: AbsenceMode | None = None
    category: AbsenceCategory | None = None
    end_date: date | None = None
    day_part: DayPart | None = None
    start_time: time | None = None
    end_time: time | None = None
    notes: str | None = None
    attachment_url: str | None = None

    @property
    def is_single_day(self) -> bool:
        return self.end_date is None or self.end_date == self.start_date

    @property
    def is_hours_permission(self) -> bool:
        return self.type == AbsenceType.PERMESSO and self.mode == AbsenceMode.HOURS

    @property
    def is_104(self) -> bool:
        return self.category == AbsenceCategory.LEGGE_104

    @property
    def duration_minutes(self) -> int | None:
        if not self.is_hours_permission:
            return None
        return calculate_duration_minutes(self.start_time, self.end_time)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> AbsenceFields:
        known = {name: values.get(name) for name in EDITABLE_FIELDS}
        return cls(**known).normalized()

    def normalized(self) -> AbsenceFields:
        notes = self.notes.strip() if isinstance(self.notes, str) else self.notes
        attachment_url = self.attachment_url.strip() if isinstance(self.attachment_url, str) else self.attachment_url
        return replace(self, notes=notes or None, attachment_url=attachment_url or None)


def calculate_duration_minutes(start_time: time | None, end_time: time | None) -> int | None:
    if start_time is None or end_time is None:
        return None
    duration = (end_time.hour * 60 + end_time.minute) - (start_time.hour * 60 + start_time.minute)
    return duration if duration > 0 else None


def collect_violations(fields: AbsenceFields) -> list[FieldViolation]:
    violations: list[FieldViolation] = []

    def add(field: str, message: str) -> None:
        violations.append(FieldViolation(field=field, message=message))

    if fields.type is None:
        add("type", "Absence type is required.")
    if fields.start_date is None:
        add("start_date", "Start date is required.")
    if fields.start_date is not None and fields.end_date is not None and fields.end_date < fields.start_date:
        add("end_date", "End date cannot be before the start date.")
    if fields.notes is not None and len(fields.notes) > NOTES_MAX_LENGTH:
        add("notes", f"Notes cannot exceed {NOTES_MAX_LENGTH} characters.")

    if fields.type == AbsenceType.FERIE:
        if fields.mode is not None:
            add("mode", "Vacation requests do not take a mode.")
        if fields.category is not None:
            add("category", "Vacation requests do not take a category.")
        if fields.start_time is not None:
            add("start_time", "Vacation requests do not take a start time.")
        if fields.end_time is not None:
            add("end_time", "Vacation requests do not take an end time.")
        if fields.day_part is not None and not fields.is_single_day:
            add("day_part", "A day part is only allowed on single-day vacation requests.")

    elif fields.type == AbsenceType.PERMESSO:
        if fields.mode is None:
            add("mode", "Permission requests need a mode (HOURS or DAY).")
        if fields.category is None:
            add("category", "Permission requests need a category.")

        if fields.mode == AbsenceMode.HOURS:
            if fields.start_time is None:
                add("start_time", "Start time is required for hourly permissions.")
            if fields.end_time is None:
                add("end_time", "End time is required for hourly permissions.")
            if fields.day_part is not None:
                add("day_part", "Hourly permissions do not take a day part.")
        elif fields.mode == AbsenceMode.DAY:
            if fields.day_part is None:
                add("day_part", "Day part is required for daily permissions.")
            if fields.start_time is not None:
                add("start_time", "Daily permissions do not take a start time.")
            if fields.end_time is not None:
                add("end_time", "Daily permissions do not take an end time.")

    return violations


def validate_fields(fields: AbsenceFields) -> AbsenceFields:
    violations = collect_violations(fields)
    if violations:
        raise ValidationError(violations)
    return fields


def merge_resubmitted_fields(current: AbsenceFields, changes: Mapping[str, Any]) -> AbsenceFields:
    supplied = {name: value for name, value in changes.items() if name in EDITABLE_FIELDS}
    merged = replace(current, **supplied)

    cleared: dict[str, Any] = {}
    if merged.type == AbsenceType.FERIE:
        for name in ("mode", "category", "start_time", "end_time"):
            if name not in supplied:
                cleared[name] = None
        if "day_part" not in supplied and not merged.is_single_day:
            cleared["day_part"] = None
    elif merged.mode == AbsenceMode.DAY:
        for name in ("start_time", "end_time"):
            if name not in supplied:
                cleared[name] = None
    elif merged.mode == AbsenceMode.HOURS and "day_part" not in supplied:
        cleared["day_part"] = None

    return replace(merged, **cleared).normalized()


def _json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value


def snapshot_fields(fields: AbsenceFields, **extra: Any) -> dict[str, Any]:
    snapshot = {name: _json_value(value) for name, value in asdict(fields).items()}
    snapshot["duration_minutes"] = fields.duration_minutes
    for name, value in extra.items():
        snapshot[name] = _json_value(value)
    return snapshot


def changed_field_names(before: AbsenceFields, after: AbsenceFields) -> list[str]:
    return [name for name in EDITABLE_FIELDS if getattr(before, name) != getattr(after, name)]
