from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date
from enum import Enum
from typing import Any, TypeVar

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z$")

E = TypeVar("E", bound=Enum)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class ValidationError(ValueError):
    """Raised with every violated field, not only the first one."""

    def __init__(self, errors: Iterable[str], subject: str | None = None) -> None:
        self.errors = list(errors)
        self.subject = subject
        joined = "; ".join(self.errors)
        message = f"{subject} validation failed: {joined}" if subject else joined
        super().__init__(message)


class MissingReferenceError(RuntimeError):
    pass


class IntegrityGuardError(RuntimeError):
    pass


def parse_date(value: str | None, field: str) -> date | None:
    if value is None:
        return None
    if not is_iso_date(value):
        raise ValidationError([f"{field}: must be YYYY-MM-DD"])
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError([f"{field}: must be a real calendar date"]) from exc


def is_iso_date(value: Any) -> bool:
    return isinstance(value, str) and ISO_DATE_RE.match(value) is not None


def is_iso_datetime(value: Any) -> bool:
    return isinstance(value, str) and ISO_DATETIME_RE.match(value) is not None


def is_identifier(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


# Field checks below append to ``errors`` and return the normalised value, so a
# parser can run all of them before deciding whether to raise.


def check_text(raw: Any, field: str, errors: list[str], *, required: bool = False) -> str:
    if raw is MISSING or not isinstance(raw, str):
        errors.append(f"{field}: must be {'non-empty ' if required else ''}string")
        return ""
    value = raw.strip()
    if required and not value:
        errors.append(f"{field}: must be non-empty string")
    return value


def check_id(raw: Any, field: str, errors: list[str]) -> str:
    if not is_identifier(raw):
        errors.append(f"{field}: must be a non-empty identifier")
        return ""
    return raw


def check_optional_id(raw: Any, field: str, errors: list[str]) -> str | None:
    if raw is None:
        return None
    if raw is MISSING:
        errors.append(f"{field}: is required (null allowed)")
        return None
    return check_id(raw, field, errors) or None


def check_enum(raw: Any, enum_cls: type[E], field: str, errors: list[str]) -> E | None:
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, str):
        for member in enum_cls:
            if member.value == raw:
                return member
    allowed = ", ".join(member.value for member in enum_cls)
    errors.append(f"{field}: must be one of {allowed}")
    return None


def check_date(raw: Any, field: str, errors: list[str]) -> str:
    if not is_iso_date(raw):
        errors.append(f"{field}: must be YYYY-MM-DD")
        return ""
    return raw


def check_optional_date(raw: Any, field: str, errors: list[str]) -> str | None:
    if raw is None:
        return None
    if raw is MISSING:
        errors.append(f"{field}: is required (null allowed)")
        return None
    if not is_iso_date(raw):
        errors.append(f"{field}: must be null or YYYY-MM-DD")
        return None
    return raw


def check_datetime(raw: Any, field: str, errors: list[str]) -> str:
    if not is_iso_datetime(raw):
        errors.append(f"{field}: must be ISO timestamp ending in Z")
        return ""
    return raw


def check_bool(raw: Any, field: str, errors: list[str]) -> bool:
    if not isinstance(raw, bool):
        errors.append(f"{field}: must be boolean")
        return False
    return raw


def check_string_list(
    raw: Any, field: str, errors: list[str], *, identifiers: bool = False
) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        errors.append(f"{field}: must be a list")
        return ()
    cleaned: list[str] = []
    for idx, item in enumerate(raw):
        if identifiers:
            cleaned.append(check_id(item, f"{field}[{idx}]", errors))
        elif isinstance(item, str):
            cleaned.append(item.strip())
        else:
            errors.append(f"{field}[{idx}]: must be string")
    return tuple(cleaned)


def require_mapping(data: Any, subject: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError(["must be an object"], subject)
    return data


def reject_unknown_fields(changes: Mapping[str, Any], allowed: Iterable[str], subject: str) -> None:
    allowed = set(allowed)
    unknown = sorted(key for key in changes if key not in allowed)
    if unknown:
        raise ValidationError([f"{key}: cannot be updated" for key in unknown], subject)
