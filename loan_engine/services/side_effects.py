import asyncio
import logging
from collections.abc import Awaitable, Callable

from loan_engine.core.logging import get_side_effect_logger

SideEffect = Callable[[], Awaitable[None]]


def _fields(name: str, outcome: str | None = None) -> dict:
    return {"side_effect": name, "outcome": outcome}


class SideEffectDispatcher:
    """Run post-commit work as detached, bounded, best-effort tasks.

    Failures are logged and dropped: nothing is retried and nothing reaches
    the caller that scheduled the work.
    """

    def __init__(self, concurrency: int = 4, logger: logging.Logger | None = None) -> None:
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._tasks: set[asyncio.Task] = set()
        self.logger = logger or get_side_effect_logger()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, side_effect: SideEffect, *, name: str) -> asyncio.Task:
        # create_task copies the current context, request and loan ids included
        task = asyncio.create_task(self._run(side_effect, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.logger.info("Side effect %s scheduled", name, extra=_fields(name))
        return task

    async def _run(self, side_effect: SideEffect, name: str) -> None:
        async with self._semaphore:
            try:
                await side_effect()
            except asyncio.CancelledError:
                self.logger.warning(
                    "Side effect %s cancelled", name, extra=_fields(name, "cancelled")
                )
                raise
            except Exception:
                self.logger.exception("Side effect %s failed", name, extra=_fields(name, "failed"))
            else:
                self.logger.info(
                    "Side effect %s completed", name, extra=_fields(name, "completed")
                )

    async def drain(self) -> None:
        """Wait for every task scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
