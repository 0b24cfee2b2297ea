"""Tests for the deduplication sweep scheduler."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from txdedup.services import DeduplicationResult, DeduplicationScheduler


def make_scheduler(run_job, users=("user-1",), **kwargs):
    async def list_users():
        return list(users)

    return DeduplicationScheduler(run_job, list_users, **kwargs)


class TestDeduplicationScheduler:
    """Tests for DeduplicationScheduler."""

    def test_invalid_hour(self):
        with pytest.raises(ValueError):
            make_scheduler(None, daily_run_hour=24)

    @pytest.mark.asyncio
    async def test_run_for_user_uses_lookback(self):
        calls = []

        async def run_job(user_id, start, end):
            calls.append((user_id, start, end))
            return DeduplicationResult(user_id=user_id, start_date=start, end_date=end)

        scheduler = make_scheduler(run_job, lookback_days=7)
        end = datetime(2024, 3, 1, tzinfo=UTC)

        result = await scheduler.run_for_user("user-1", end)

        assert result.user_id == "user-1"
        assert calls == [("user-1", end - timedelta(days=7), end)]

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self):
        """Test a second run for the same user is skipped while the first runs."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def run_job(user_id, start, end):
            started.set()
            await release.wait()
            return DeduplicationResult(user_id=user_id, start_date=start, end_date=end)

        scheduler = make_scheduler(run_job)
        first = asyncio.create_task(scheduler.run_for_user("user-1"))
        await started.wait()

        assert scheduler.is_running_for("user-1")
        assert await scheduler.run_for_user("user-1") is None

        release.set()
        assert (await first) is not None
        assert not scheduler.is_running_for("user-1")

    @pytest.mark.asyncio
    async def test_different_users_run_concurrently(self):
        running = set()
        overlap = []

        async def run_job(user_id, start, end):
            running.add(user_id)
            await asyncio.sleep(0.01)
            overlap.append(set(running))
            running.discard(user_id)
            return DeduplicationResult(user_id=user_id, start_date=start, end_date=end)

        scheduler = make_scheduler(run_job)
        results = await asyncio.gather(
            scheduler.run_for_user("user-1"), scheduler.run_for_user("user-2")
        )

        assert all(r is not None for r in results)
        assert {"user-1", "user-2"} in overlap

    @pytest.mark.asyncio
    async def test_run_now_isolates_failures(self):
        async def run_job(user_id, start, end):
            if user_id == "broken":
                raise ConnectionError("database down")
            return DeduplicationResult(user_id=user_id, start_date=start, end_date=end)

        scheduler = make_scheduler(run_job, users=("broken", "user-1"))

        results = await scheduler.run_now()

        assert results["broken"] is None
        assert results["user-1"].user_id == "user-1"

    def test_next_run_after(self):
        scheduler = make_scheduler(None, daily_run_hour=3)

        before = datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        after = datetime(2024, 1, 1, 4, 0, tzinfo=UTC)

        assert scheduler.next_run_after(before) == datetime(2024, 1, 1, 3, 0, tzinfo=UTC)
        assert scheduler.next_run_after(after) == datetime(2024, 1, 2, 3, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = make_scheduler(None)

        await scheduler.start()
        assert scheduler._task is not None

        await scheduler.stop()
        assert scheduler._task is None
