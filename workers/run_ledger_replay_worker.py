from common.workers.launcher import WorkerLauncher
from packages.billing.workers.ledger_replay_worker import LedgerReplayWorker

if __name__ == "__main__":
    WorkerLauncher().run(
        worker_factory=LedgerReplayWorker, worker_name="Ledger Replay Worker"
    )
