"""
Scheduled syncs.

Runs ``SyncOrchestrator.run_all_configured`` on a crontab inside the
application's event loop. The scheduler is owned by the application
lifespan; there is no module-level instance.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import SyncMode, SyncRunStatus, SyncTrigger
from catalog_sync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

SYNC_ALL_JOB_ID = "sync_all_vendors"
STALE_RECOVERY_JOB_ID = "recover_stale_runs"
INVENTORY_SYNC_JOB_ID = "sync_vendor_inventory"


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now(timezone.utc).isoformat()}")


class SyncScheduler:
    def __init__(self, orchestrator: SyncOrchestrator, settings: Optional[Settings] = None):
        self.orchestrator = orchestrator
        self.settings = settings or get_settings()
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    async def sync_all_vendors_task(self) -> Dict[str, int]:
        """Task to sync every configured tenant/vendor pair"""
        logger.info("=== SCHEDULED SYNC STARTING ===")
        return await self._run_scheduled(SyncMode(self.settings.SYNC_SCHEDULE_MODE))

    async def sync_inventory_task(self) -> Dict[str, int]:
        """Task to apply stock/price feeds for vendors that publish one"""
        logger.info("=== SCHEDULED INVENTORY SYNC STARTING ===")
        return await self._run_scheduled(SyncMode.INVENTORY)

    async def _run_scheduled(self, mode: SyncMode) -> Dict[str, int]:
        results = await self.orchestrator.run_all_configured(mode=mode, trigger=SyncTrigger.SCHEDULED)
        summary: Dict[str, int] = {}
        for result in results:
            summary[result.status.value] = summary.get(result.status.value, 0) + 1
        failed = summary.get(SyncRunStatus.ERROR.value, 0)
        log = logger.warning if failed else logger.info
        log(f"Scheduled {mode.value} sync finished: {summary}")
        return summary

    async def recover_stale_runs_task(self):
        """Task to fail runs abandoned by crashed workers"""
        recovered = await self.orchestrator.start()
        if recovered:
            logger.info(f"Stale run recovery marked {len(recovered)} runs as interrupted")

    def configure(self) -> AsyncIOScheduler:
        if self.settings.SYNC_SCHEDULE_ENABLED:
            self.scheduler.add_job(
                self.sync_all_vendors_task,
                CronTrigger.from_crontab(self.settings.SYNC_SCHEDULE, timezone="UTC"),
                id=SYNC_ALL_JOB_ID,
                name="Sync All Vendors",
                replace_existing=True,
                max_instances=1,  # Only one sync-all at a time
                misfire_grace_time=3600,
            )
            logger.info(f"Scheduled sync job added with schedule: {self.settings.SYNC_SCHEDULE}")

            self.scheduler.add_job(
                self.recover_stale_runs_task,
                CronTrigger(minute=15, timezone="UTC"),
                id=STALE_RECOVERY_JOB_ID,
                name="Recover Stale Sync Runs",
                replace_existing=True,
                max_instances=1,
            )

            if self.settings.SYNC_INVENTORY_SCHEDULE:
                self.scheduler.add_job(
                    self.sync_inventory_task,
                    CronTrigger.from_crontab(self.settings.SYNC_INVENTORY_SCHEDULE, timezone="UTC"),
                    id=INVENTORY_SYNC_JOB_ID,
                    name="Sync Vendor Inventory",
                    replace_existing=True,
                    max_instances=1,
                    misfire_grace_time=600,
                )
                logger.info(f"Inventory sync job added with schedule: {self.settings.SYNC_INVENTORY_SCHEDULE}")
        else:
            logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")
        return self.scheduler

    def start(self):
        """Start the scheduler"""
        if self.scheduler.running:
            return
        self.configure()
        self.scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = self.scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")

    async def stop(self):
        """Stop the scheduler gracefully"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler finishes shutting down on the next loop iteration
            await asyncio.sleep(0)
            logger.info("Scheduler stopped successfully")

    def status(self) -> Dict[str, Any]:
        """Current scheduler status and job information"""
        jobs_info = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs_info.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return {
            "status": "running" if self.scheduler.running else "stopped",
            "jobs": jobs_info,
        }
