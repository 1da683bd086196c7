"""Timestamp helpers for feed ordering."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol, TypeVar

# Unparsable timestamps sort as the oldest possible value.
OLDEST = datetime.min.replace(tzinfo=UTC)


class _Timestamped(Protocol):
    @property
    def created_at(self) -> str: ...


T = TypeVar("T", bound=_Timestamped)


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Render a datetime the way the backend stores it (UTC, milliseconds, ``Z``)."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp, with or without fractional seconds.

    Naive values are treated as UTC. Anything that cannot be parsed returns
    :data:`OLDEST` instead of raising.
    """
    if not value:
        return OLDEST
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return OLDEST
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def sort_newest_first(items: Iterable[T]) -> list[T]:
    """Sort by ``created_at`` descending; ties keep their original order."""
    return sorted(items, key=lambda item: parse_timestamp(item.created_at), reverse=True)


def sort_oldest_first(items: Iterable[T]) -> list[T]:
    return sorted(items, key=lambda item: parse_timestamp(item.created_at))
