"""
Tick Scheduler

Advances every running timer by one second per tick. The per-timer step is
a pure function (old Timer -> new Timer + events); the scheduler commits all
new values in one store update and only then delivers the events.
"""

import asyncio
import contextlib
import logging
from typing import NamedTuple

from .models import TICK_INTERVAL_SECONDS, EventKind, Timer, TimerEvent, TimerStatus
from .notifications import NotificationSink
from .store import TimerStore

logger = logging.getLogger(__name__)


class TickOutcome(NamedTuple):
    timer: Timer
    events: list[TimerEvent]


def advance(timer: Timer) -> TickOutcome:
    """Compute one tick for a single timer.

    Completion is observed on the tick *after* remaining reaches zero: the
    tick that decrements 1 -> 0 leaves the timer Running, and the next one
    marks it Completed and emits the completion event.
    """
    if timer.status != TimerStatus.RUNNING:
        return TickOutcome(timer, [])

    if timer.remaining > 0:
        events = []
        alert = timer.halfway_alert
        if alert and timer.remaining == timer.halfway_threshold:
            alert = False
            events.append(
                TimerEvent(
                    kind=EventKind.HALFWAY,
                    timer=timer.model_copy(update={"halfway_alert": False}),
                )
            )
        updated = timer.model_copy(
            update={"remaining": timer.remaining - 1, "halfway_alert": alert}
        )
        logger.debug("Timer %s at %.0f%%", timer.id, updated.progress * 100)
        return TickOutcome(updated, events)

    completed = timer.model_copy(update={"status": TimerStatus.COMPLETED})
    return TickOutcome(completed, [TimerEvent(kind=EventKind.COMPLETED, timer=completed)])


class TickScheduler:
    """Fixed-rate driver that runs one tick pass per interval."""

    def __init__(
        self,
        store: TimerStore,
        sink: NotificationSink,
        interval: float = TICK_INTERVAL_SECONDS,
    ):
        if interval <= 0:
            raise ValueError("Tick interval must be positive")
        self.store = store
        self.sink = sink
        self.interval = interval
        self.tick_count = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Tick scheduler started (interval %.3fs)", self.interval)

    async def stop(self):
        """Cancel the tick loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Tick scheduler stopped after %d tick(s)", self.tick_count)

    async def tick(self) -> list[TimerEvent]:
        """Run one pass over all timers and deliver the resulting events."""
        events: list[TimerEvent] = []

        def step(timer: Timer) -> Timer:
            outcome = advance(timer)
            events.extend(outcome.events)
            return outcome.timer

        saved = await self.store.update_all(step)
        if not saved:
            logger.warning("Tick %d not persisted, retrying next tick", self.tick_count + 1)
        self.tick_count += 1

        for event in events:
            await self._deliver(event)
        return events

    async def _deliver(self, event: TimerEvent):
        try:
            if event.kind == EventKind.HALFWAY:
                await self.sink.notify_halfway(event.timer)
            else:
                await self.sink.notify_completion(event.timer)
        except Exception:
            logger.exception(
                "Failed to deliver %s notification for timer %s", event.kind, event.timer.id
            )

    async def _run(self):
        """Main loop - ticks every interval, dropping slots missed by a slow tick."""
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            try:
                await self.tick()
            except Exception:
                logger.exception("Tick %d failed", self.tick_count + 1)
            next_at += self.interval
            now = loop.time()
            if now > next_at:
                missed = int((now - next_at) // self.interval) + 1
                next_at += missed * self.interval
                logger.debug("Tick overran its slot, dropped %d tick(s)", missed)
