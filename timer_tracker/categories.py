"""
Category Aggregator

Read-side grouping of the store's timers by category, plus bulk
start/pause, each applied to the whole category in one store update.
"""

import logging
from collections.abc import Iterable

from .models import Timer, TimerStatus
from .store import TimerStore, pause_change, start_change

logger = logging.getLogger(__name__)


def group_by_category(timers: Iterable[Timer]) -> dict[str, list[Timer]]:
    """Group timers by category, keeping categories in first-seen order."""
    groups: dict[str, list[Timer]] = {}
    for timer in timers:
        groups.setdefault(timer.category, []).append(timer)
    return groups


class CategoryAggregator:
    def __init__(self, store: TimerStore):
        self.store = store

    def groups(self, include_completed: bool = True) -> dict[str, list[Timer]]:
        timers = self.store.list_timers()
        if not include_completed:
            timers = [t for t in timers if not t.is_completed]
        return group_by_category(timers)

    def categories(self) -> list[str]:
        return list(self.groups())

    def summary(self) -> list[dict]:
        """Per-category counts by status."""
        result = []
        for category, timers in self.groups().items():
            counts = {status: 0 for status in TimerStatus}
            for timer in timers:
                counts[timer.status] += 1
            result.append(
                {
                    "category": category,
                    "total": len(timers),
                    "running": counts[TimerStatus.RUNNING],
                    "paused": counts[TimerStatus.PAUSED],
                    "completed": counts[TimerStatus.COMPLETED],
                }
            )
        return result

    async def start_all(self, category: str) -> list[str]:
        """Start every non-completed timer in ``category``. Returns the ids started."""
        started = await self.store.update_where(lambda t: t.category == category, start_change)
        logger.info("Started %d timer(s) in category %r", len(started), category)
        return started

    async def pause_all(self, category: str) -> list[str]:
        """Pause every running timer in ``category``. Returns the ids paused."""
        paused = await self.store.update_where(lambda t: t.category == category, pause_change)
        logger.info("Paused %d timer(s) in category %r", len(paused), category)
        return paused
