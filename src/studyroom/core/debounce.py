"""Cancellable delayed actions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger("studyroom.debounce")


class Debouncer:
    """Runs *action* once input has been quiet for *delay* seconds.

    Each ``trigger`` cancels the pending run and reschedules with the newest
    arguments. Failures of *action* are logged, not raised.
    """

    def __init__(
        self,
        delay: float,
        action: Callable[..., Awaitable[Any]],
        *,
        name: str = "debounce",
    ) -> None:
        self._delay = delay
        self._action = action
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None

    @property
    def pending(self) -> bool:
        """True while a run is scheduled but has not started yet."""
        return self._pending is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        self._cancel_task()
        self._pending = (args, kwargs)
        self._task = asyncio.create_task(self._run(), name=self._name)

    def cancel(self) -> bool:
        """Drop the pending run. Returns ``True`` if one was scheduled."""
        had_pending = self._pending is not None
        self._pending = None
        self._cancel_task()
        return had_pending

    async def flush(self) -> None:
        """Run the pending action now, or wait for one already running."""
        task = self._task
        if self._pending is None:
            if task is not None and not task.done():
                await task
            return
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._fire()

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        await self._fire()

    async def _fire(self) -> None:
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        try:
            await self._action(*args, **kwargs)
        except Exception:
            logger.exception("Debounced action %s failed", self._name)
