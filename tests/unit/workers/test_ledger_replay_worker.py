import pytest
from unittest.mock import AsyncMock, MagicMock

from packages.billing.models.domain.ledger import ReplayResult
from packages.billing.workers.ledger_replay_worker import LedgerReplayWorker


@pytest.fixture
def replay_service():
    service = MagicMock()
    service.replay_pending = AsyncMock(
        return_value=ReplayResult(scanned=3, applied=2, failed=1)
    )
    return service


class TestLedgerReplayWorker:
    async def test_run_once_processes_under_lock(self, replay_service):
        worker = LedgerReplayWorker(replay_service=replay_service)

        assert await worker.run_once() is True

        replay_service.replay_pending.assert_awaited_once()
        assert worker.last_result.applied == 2

    async def test_run_once_skips_when_lock_held_elsewhere(
        self, replay_service, memory_providers
    ):
        lock = memory_providers["lock"]
        token = await lock.acquire_lock("worker:ledger_replay", 60)
        assert token is not None

        worker = LedgerReplayWorker(replay_service=replay_service)

        assert await worker.run_once() is False
        replay_service.replay_pending.assert_not_awaited()

    async def test_lock_released_after_tick(self, replay_service):
        worker = LedgerReplayWorker(replay_service=replay_service)

        await worker.run_once()

        assert await worker.run_once() is True
        assert replay_service.replay_pending.await_count == 2

    async def test_process_error_does_not_escape_tick(self, replay_service):
        replay_service.replay_pending.side_effect = RuntimeError("store down")
        worker = LedgerReplayWorker(replay_service=replay_service)

        assert await worker.run_once() is True
        assert worker.last_result is None

    async def test_sweeps_real_ledger(self, memory_providers):
        worker = LedgerReplayWorker()

        await worker.run_once()

        assert worker.last_result == ReplayResult()
