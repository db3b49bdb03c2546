"""Normalization helpers shared by every store lookup."""

from __future__ import annotations

from app.store.errors import InvalidInputError


def clean_display_name(value: str | None, *, field: str = "name") -> str:
    """Return the trimmed display form of ``value``, rejecting blanks."""

    if not isinstance(value, str):
        raise InvalidInputError(f"{field} is required")
    cleaned = value.strip()
    if not cleaned:
        raise InvalidInputError(f"{field} must not be blank")
    return cleaned


def normalize_name(value: str | None, *, field: str = "name") -> str:
    """Return the case-folded lookup key for a program or boss name."""

    return clean_display_name(value, field=field).casefold()


def normalize_channel_id(value: str | None) -> str | None:
    """Lower-case and trim a channel id; blank values mean "use the default channel"."""

    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def parse_count(value: int | str | None, *, field: str = "count") -> int:
    """Coerce a user supplied death count to a non-negative integer."""

    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a whole number")
    if isinstance(value, int):
        count = value
    elif isinstance(value, str):
        try:
            count = int(value.strip())
        except ValueError as exc:
            raise InvalidInputError(f"{field} must be a whole number") from exc
    else:
        raise InvalidInputError(f"{field} is required")
    if count < 0:
        raise InvalidInputError(f"{field} must not be negative")
    return count
