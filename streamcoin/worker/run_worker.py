"""Run ARQ worker. Usage: python -m streamcoin.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from streamcoin.worker.tasks import get_redis_settings, reconcile_stale_transactions, shutdown, startup


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [reconcile_stale_transactions]
    cron_jobs = [
        cron(reconcile_stale_transactions, minute=set(range(0, 60, 5)), second=0),  # every 5 minutes
    ]
    on_startup = startup
    on_shutdown = shutdown


if __name__ == "__main__":
    run_worker(WorkerSettings)
