import asyncio
from typing import Awaitable, Callable, Optional

from tiger_tracker.core.errors import IngestionError
from tiger_tracker.core.logging_config import get_logger

logger = get_logger("scheduler")


class Scheduler:
    """
    Runs the ingestion cycle, waits for it to finish, then sleeps for the
    interval. The interval is measured from the end of one cycle to the start
    of the next, so cycles never overlap and there is no catch-up.
    """

    def __init__(
        self,
        cycle,
        interval_seconds: float = 30.0,
        halt_on_error: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._cycle = cycle
        self._interval = interval_seconds
        self._halt_on_error = halt_on_error
        self._sleep = sleep
        self.completed = 0
        self.failed = 0

    async def run_forever(self, max_cycles: Optional[int] = None):
        run = 0
        while max_cycles is None or run < max_cycles:
            run += 1
            try:
                await self._cycle.run_once()
                self.completed += 1
            except IngestionError as e:
                self.failed += 1
                if self._halt_on_error:
                    logger.critical("cycle_failed_halting", cycle=run, kind=e.kind, error=str(e))
                    raise
                logger.warning("cycle_failed", cycle=run, kind=e.kind, error=str(e), retry_in_s=self._interval)

            if max_cycles is not None and run >= max_cycles:
                break
            await self._sleep(self._interval)
