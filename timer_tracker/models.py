"""
Timer entity and related value types.

A Timer is immutable: every transition (user action or tick) produces a new
value via ``model_copy``. Attribute names are snake_case in Python and
camelCase on the wire.
"""

import uuid
from enum import StrEnum

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# ============================================================
# CONSTANTS
# ============================================================

TICK_INTERVAL_SECONDS = 1.0
STORAGE_KEY = "timers"
MAX_NAME_LENGTH = 200
MAX_CATEGORY_LENGTH = 200


# ============================================================
# ENUMS
# ============================================================


class TimerStatus(StrEnum):
    PAUSED = "Paused"
    RUNNING = "Running"
    COMPLETED = "Completed"


class TimerAction(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESET = "reset"


# Actions that actually change a timer in each status
VALID_ACTIONS: dict[TimerStatus, list[TimerAction]] = {
    TimerStatus.PAUSED: [TimerAction.START, TimerAction.RESET],
    TimerStatus.RUNNING: [TimerAction.PAUSE, TimerAction.RESET],
    TimerStatus.COMPLETED: [TimerAction.RESET],
}


class EventKind(StrEnum):
    HALFWAY = "halfway"
    COMPLETED = "completed"


# ============================================================
# MODELS
# ============================================================


def _new_timer_id() -> str:
    return f"timer_{uuid.uuid4().hex[:8]}"


class Timer(BaseModel):
    """A single countdown timer."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    duration: int = Field(..., ge=1, description="Total seconds")
    remaining: int = Field(..., ge=0, description="Seconds left")
    category: str = Field(..., min_length=1)
    status: TimerStatus = TimerStatus.PAUSED
    halfway_alert: bool = False
    # Older data stored this as "halfwayDuration"
    halfway_threshold: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("halfwayThreshold", "halfwayDuration", "halfway_threshold"),
        serialization_alias="halfwayThreshold",
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_numeric_id(cls, v):
        # Epoch-millisecond ids from older data
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> "Timer":
        if self.remaining > self.duration:
            raise ValueError(f"remaining {self.remaining} exceeds duration {self.duration}")
        if self.halfway_threshold > self.duration:
            raise ValueError(
                f"halfway threshold {self.halfway_threshold} exceeds duration {self.duration}"
            )
        return self

    @classmethod
    def new(cls, name: str, duration: int, category: str) -> "Timer":
        """Build a fresh, paused timer with a full countdown."""
        return cls(
            id=_new_timer_id(),
            name=name,
            duration=duration,
            remaining=duration,
            category=category,
            status=TimerStatus.PAUSED,
            halfway_alert=False,
            halfway_threshold=duration // 2,
        )

    @property
    def elapsed(self) -> int:
        return self.duration - self.remaining

    @property
    def progress(self) -> float:
        """Fraction of the countdown already consumed, 0.0 to 1.0."""
        return self.elapsed / self.duration

    @property
    def is_running(self) -> bool:
        return self.status == TimerStatus.RUNNING

    @property
    def is_completed(self) -> bool:
        return self.status == TimerStatus.COMPLETED

    def started(self) -> "Timer":
        return self.model_copy(update={"status": TimerStatus.RUNNING})

    def paused(self) -> "Timer":
        return self.model_copy(update={"status": TimerStatus.PAUSED})

    def reset(self) -> "Timer":
        return self.model_copy(update={"remaining": self.duration, "status": TimerStatus.PAUSED})

    def with_halfway_alert(self, enabled: bool) -> "Timer":
        return self.model_copy(update={"halfway_alert": enabled})


class TimerEvent(BaseModel):
    """One emitted transition, carrying the timer as of that transition."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    timer: Timer

    @property
    def message(self) -> str:
        if self.kind == EventKind.HALFWAY:
            return (
                f"{self.timer.name} has reached halfway "
                f"({self.timer.halfway_threshold} seconds)."
            )
        return f"Congratulations! {self.timer.name} completed!"
