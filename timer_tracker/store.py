"""
Timer Store

Authoritative in-memory collection of timers for one session. Every
mutation runs under a single asyncio lock (also held for a full tick pass)
and is persisted through the gateway right away.
"""

import asyncio
import logging
from collections.abc import Callable

from .codec import decode_timers, encode_timers
from .errors import PersistenceWriteError, StorageCorruptError, ValidationError
from .models import (
    MAX_CATEGORY_LENGTH,
    MAX_NAME_LENGTH,
    STORAGE_KEY,
    Timer,
    TimerStatus,
)
from .persistence import KeyValueStore

logger = logging.getLogger(__name__)


def validate_new_timer(name: str, duration: int, category: str) -> None:
    """Raise ValidationError for unusable creation input."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Timer name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Timer name must be at most {MAX_NAME_LENGTH} characters")
    if not isinstance(category, str) or not category.strip():
        raise ValidationError("Timer category must not be empty")
    if len(category) > MAX_CATEGORY_LENGTH:
        raise ValidationError(f"Timer category must be at most {MAX_CATEGORY_LENGTH} characters")
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError(f"Timer duration must be an integer, got {duration!r}")
    if duration < 1:
        raise ValidationError(f"Timer duration must be positive, got {duration}")


def start_change(timer: Timer) -> Timer | None:
    """Paused -> Running. Anything else is rejected."""
    return timer.started() if timer.status == TimerStatus.PAUSED else None


def pause_change(timer: Timer) -> Timer | None:
    """Running -> Paused. Anything else is rejected."""
    return timer.paused() if timer.status == TimerStatus.RUNNING else None


class TimerStore:
    """Owns the timer collection and its persistence."""

    def __init__(self, gateway: KeyValueStore, key: str = STORAGE_KEY):
        self._gateway = gateway
        self._key = key
        self._timers: dict[str, Timer] = {}
        self._lock = asyncio.Lock()
        self._open = False
        self._dirty = False

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def dirty(self) -> bool:
        """True when memory holds changes the backend has not accepted yet."""
        return self._dirty

    async def open(self):
        async with self._lock:
            await self._load()
            self._open = True
        logger.info("Timer store opened with %d timer(s)", len(self._timers))

    async def close(self):
        async with self._lock:
            if self._dirty:
                await self._save_quietly()
            self._open = False
        logger.info("Timer store closed")

    async def load(self):
        """Replace the collection with whatever the backend holds."""
        async with self._lock:
            await self._load()

    async def persist(self):
        """Write the collection. Raises PersistenceWriteError on failure."""
        async with self._lock:
            await self._save()

    async def _load(self):
        self._timers = {}
        self._dirty = False
        try:
            blob = await self._gateway.get(self._key)
            if blob is None:
                return
            timers = decode_timers(blob)
        except StorageCorruptError as e:
            logger.warning("Stored timers are unreadable, starting empty: %s", e)
            return
        self._timers = {t.id: t for t in timers}

    async def _save(self):
        blob = encode_timers(list(self._timers.values()))
        # Stays set if the write fails or is cancelled mid-flight
        self._dirty = True
        await self._gateway.set(self._key, blob)
        self._dirty = False

    async def _save_quietly(self) -> bool:
        try:
            await self._save()
        except PersistenceWriteError as e:
            logger.warning("Failed to persist timers, will retry on next write: %s", e)
            return False
        return True

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------

    async def create(self, name: str, duration: int, category: str) -> Timer:
        validate_new_timer(name, duration, category)
        async with self._lock:
            timer = Timer.new(name=name, duration=duration, category=category)
            while timer.id in self._timers:
                timer = Timer.new(name=name, duration=duration, category=category)
            self._timers[timer.id] = timer
            await self._save_quietly()
        logger.info("Timer %s created: %r (%ds, %r)", timer.id, name, duration, category)
        return timer

    async def start(self, timer_id: str) -> bool:
        return await self._mutate(timer_id, start_change)

    async def pause(self, timer_id: str) -> bool:
        return await self._mutate(timer_id, pause_change)

    async def reset(self, timer_id: str) -> bool:
        return await self._mutate(timer_id, lambda t: t.reset())

    async def set_halfway_alert(self, timer_id: str, enabled: bool) -> bool:
        return await self._mutate(timer_id, lambda t: t.with_halfway_alert(enabled))

    async def _mutate(self, timer_id: str, change: Callable[[Timer], Timer | None]) -> bool:
        """Apply ``change`` to one timer. ``None`` from ``change`` means rejected."""
        async with self._lock:
            timer = self._timers.get(timer_id)
            if timer is None:
                logger.debug("Ignoring operation on unknown timer %s", timer_id)
                return False
            updated = change(timer)
            if updated is None:
                return False
            self._timers[timer_id] = updated
            await self._save_quietly()
            return True

    async def update_where(
        self, predicate: Callable[[Timer], bool], change: Callable[[Timer], Timer | None]
    ) -> list[str]:
        """Apply ``change`` to every matching timer as one operation.

        The lock is held for the whole pass, so no tick sees a partial result.
        Persists once if anything changed. Returns the ids that changed.
        """
        async with self._lock:
            changed = []
            for timer_id, timer in self._timers.items():
                if not predicate(timer):
                    continue
                updated = change(timer)
                if updated is not None:
                    self._timers[timer_id] = updated
                    changed.append(timer_id)
            if changed:
                await self._save_quietly()
            return changed

    async def update_all(self, transform: Callable[[Timer], Timer]) -> bool:
        """Replace every timer with ``transform(timer)`` in one commit, then persist.

        Returns whether the write succeeded. Memory is never rolled back.
        """
        async with self._lock:
            self._timers = {tid: transform(t) for tid, t in self._timers.items()}
            return await self._save_quietly()

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def get(self, timer_id: str) -> Timer | None:
        return self._timers.get(timer_id)

    def list_timers(
        self, status: TimerStatus | None = None, category: str | None = None
    ) -> list[Timer]:
        timers = list(self._timers.values())
        if status is not None:
            timers = [t for t in timers if t.status == status]
        if category is not None:
            timers = [t for t in timers if t.category == category]
        return timers

    def history(self) -> list[Timer]:
        """Completed timers, in collection order."""
        return self.list_timers(status=TimerStatus.COMPLETED)

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, timer_id: object) -> bool:
        return timer_id in self._timers
