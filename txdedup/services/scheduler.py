"""Scheduler for nightly deduplication sweeps."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from txdedup.services.deduplication import DeduplicationResult

logger = logging.getLogger(__name__)

RangeJob = Callable[[str, datetime, datetime], Awaitable[DeduplicationResult]]
UserSource = Callable[[], Awaitable[list[str]]]


class DeduplicationScheduler:
    """Runs range deduplication for every user once a day.

    Guarantees at most one range job per user at a time: a run requested
    while that user's previous run is still going is skipped.

    Supports:
    - Daily sweep over a lookback window
    - Manual trigger per user
    - Graceful shutdown
    """

    def __init__(
        self,
        run_job: RangeJob,
        list_users: UserSource,
        daily_run_hour: int = 3,
        lookback_days: int = 30,
    ):
        """Initialize scheduler.

        Args:
            run_job: Async function (user_id, start, end) running range detection
            list_users: Async function returning the user ids to sweep
            daily_run_hour: Hour of day (UTC) for the sweep (0-23)
            lookback_days: How far back each sweep looks
        """
        if not 0 <= daily_run_hour <= 23:
            raise ValueError(f"daily_run_hour must be 0-23, got {daily_run_hour}")
        self.run_job = run_job
        self.list_users = list_users
        self.daily_run_hour = daily_run_hour
        self.lookback_days = lookback_days
        self._running = False
        self._task: asyncio.Task | None = None
        self._user_locks: dict[str, asyncio.Lock] = {}

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        logger.info("Starting deduplication scheduler")
        self._task = asyncio.create_task(self._daily_loop())

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        self._running = False
        logger.info("Stopping deduplication scheduler")

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def is_running_for(self, user_id: str) -> bool:
        """Whether a range job is in progress for the user."""
        lock = self._user_locks.get(user_id)
        return lock is not None and lock.locked()

    async def run_for_user(
        self,
        user_id: str,
        end_date: datetime | None = None,
    ) -> DeduplicationResult | None:
        """Run one range job for a user unless one is already in progress.

        Args:
            user_id: User to deduplicate
            end_date: End of the window (defaults to now)

        Returns:
            The job result, or None if skipped
        """
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        if lock.locked():
            logger.warning(f"Deduplication already running for user {user_id}, skipping")
            return None

        end_date = end_date or datetime.now(UTC)
        start_date = end_date - timedelta(days=self.lookback_days)

        async with lock:
            return await self.run_job(user_id, start_date, end_date)

    async def run_now(self) -> dict[str, DeduplicationResult | None]:
        """Sweep all users immediately.

        Returns:
            Dict mapping user_id to its result (None when skipped or failed)
        """
        logger.info("Starting deduplication sweep")
        start_time = datetime.now(UTC)
        results: dict[str, DeduplicationResult | None] = {}

        for user_id in await self.list_users():
            try:
                results[user_id] = await self.run_for_user(user_id)
            except Exception as e:
                logger.error(f"Deduplication sweep failed for user {user_id}: {e}")
                results[user_id] = None

        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(f"Deduplication sweep of {len(results)} users completed in {duration:.1f}s")
        return results

    def next_run_after(self, now: datetime) -> datetime:
        """Next sweep time strictly after ``now``."""
        next_run = now.replace(hour=self.daily_run_hour, minute=0, second=0, microsecond=0)
        if next_run <= now:
            next_run += timedelta(days=1)
        return next_run

    async def _daily_loop(self) -> None:
        """Run the sweep at the configured hour."""
        while self._running:
            try:
                now = datetime.now(UTC)
                next_run = self.next_run_after(now)
                wait_seconds = (next_run - now).total_seconds()
                logger.info(f"Next deduplication sweep at {next_run} ({wait_seconds:.0f}s)")

                await asyncio.sleep(wait_seconds)

                if self._running:
                    await self.run_now()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in deduplication sweep loop: {e}")
                await asyncio.sleep(60)  # Wait before retry
