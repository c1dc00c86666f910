"""Debounced background saving of the session snapshot."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config.exceptions import DatabaseError
from models.database import ProjectDatabase
from models.project import ProjectState

logger = logging.getLogger(__name__)


class DebouncedAutosave:
    """Coalesce bursts of state changes into one save after a quiet period.

    Each ``schedule`` call restarts the window; only the latest snapshot
    factory is used, and it is called at save time so the saved state is
    current.
    """

    def __init__(
        self,
        store: ProjectDatabase,
        delay: float = 5.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.store = store
        self.delay = delay
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self._factory: Optional[Callable[[], ProjectState]] = None
        self.save_count = 0

    @property
    def pending(self) -> bool:
        return self._factory is not None

    def schedule(self, snapshot_factory: Callable[[], ProjectState]) -> None:
        self._factory = snapshot_factory
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._delayed_save())

    async def _delayed_save(self) -> None:
        await self._sleep(self.delay)
        self._save_now()

    def _save_now(self) -> None:
        factory, self._factory = self._factory, None
        if factory is None:
            return
        try:
            self.store.save(factory())
            self.save_count += 1
        except DatabaseError as e:
            logger.warning("Autosave failed: %s", e)

    async def wait(self) -> None:
        """Wait for the currently scheduled save, if any."""
        task = self._task
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def flush(self) -> None:
        """Save immediately if a save is pending and cancel the timer."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._save_now()
