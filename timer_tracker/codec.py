"""Serialization of the timer collection to and from a single JSON blob."""

import pydantic
from pydantic import TypeAdapter

from .errors import StorageCorruptError
from .models import Timer

_TIMER_LIST = TypeAdapter(list[Timer])


def encode_timers(timers: list[Timer]) -> str:
    """Serialize timers, in order, as a compact JSON array with camelCase keys."""
    return _TIMER_LIST.dump_json(list(timers), by_alias=True).decode("utf-8")


def decode_timers(blob: str | bytes) -> list[Timer]:
    """Parse a stored blob. Raises StorageCorruptError if it is not a valid collection."""
    try:
        timers = _TIMER_LIST.validate_json(blob)
    except pydantic.ValidationError as e:
        raise StorageCorruptError(f"Invalid timer data: {e.error_count()} error(s)") from e

    seen: set[str] = set()
    for timer in timers:
        if timer.id in seen:
            raise StorageCorruptError(f"Duplicate timer id {timer.id!r}")
        seen.add(timer.id)
    return timers
