"""
定时任务调度器
"""

import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from glowcheck.core.config import settings
from glowcheck.worker.tasks import refresh_stale_snapshots

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        refresh_stale_snapshots,
        IntervalTrigger(minutes=settings.SNAPSHOT_SWEEP_INTERVAL_MINUTES),
        id="snapshot_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        f"Scheduler started. Snapshot sweep runs every {settings.SNAPSHOT_SWEEP_INTERVAL_MINUTES} minutes."
    )
    scheduler.start()


if __name__ == "__main__":
    main()
