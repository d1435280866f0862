# catalog_sync/services/sync_state.py
"""
Sync status per (tenant, vendor) pair, persisted as ``SyncRun`` rows.

Allowed transitions::

    idle        -> in_progress
    in_progress -> success | error
    success     -> in_progress
    error       -> in_progress

At most one run per pair is ``in_progress``. ``begin`` relies on the partial
unique index on ``sync_runs`` for that, so two workers racing to start the
same pair cannot both succeed.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import SyncMode, SyncRunStatus, SyncTrigger
from catalog_sync.core.exceptions import InvalidTransitionError, SyncAlreadyRunningError
from catalog_sync.core.utils import ensure_utc, utcnow
from catalog_sync.models.sync_run import SyncRun
from catalog_sync.models.vendor import VendorDefinition
from catalog_sync.schemas.feed import ImportResult

logger = logging.getLogger(__name__)

S = SyncRunStatus

ALLOWED_TRANSITIONS = {
    (S.IDLE, S.IN_PROGRESS),
    (S.IN_PROGRESS, S.SUCCESS),
    (S.IN_PROGRESS, S.ERROR),
    (S.SUCCESS, S.IN_PROGRESS),
    (S.ERROR, S.IN_PROGRESS),
}

STALE_RUN_MESSAGE = "Sync was stuck in progress for more than {hours:g}h and was marked as interrupted"


def check_transition(current: SyncRunStatus, target: SyncRunStatus) -> None:
    if (SyncRunStatus(current), SyncRunStatus(target)) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Sync status cannot change from {current} to {target}")


def _duration_ms(started_at: Optional[datetime], finished_at: datetime) -> Optional[int]:
    started_at = ensure_utc(started_at)
    if started_at is None:
        return None
    return max(0, int((finished_at - started_at).total_seconds() * 1000))


class SyncStateMachine:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # --- Queries ---

    async def latest_run(self, tenant_id: str, vendor_slug: str, catalog_only: bool = False) -> Optional[SyncRun]:
        """Most recent run for the pair. ``catalog_only`` ignores inventory runs."""
        query = select(SyncRun).where(SyncRun.tenant_id == tenant_id, SyncRun.vendor_slug == vendor_slug)
        if catalog_only:
            query = query.where(SyncRun.mode != SyncMode.INVENTORY.value)
        return await self.db.scalar(
            query
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )

    async def current_status(self, tenant_id: str, vendor_slug: str) -> SyncRunStatus:
        run = await self.latest_run(tenant_id, vendor_slug)
        return SyncRunStatus(run.status) if run else SyncRunStatus.IDLE

    async def history(self, tenant_id: str, vendor_slug: Optional[str] = None, limit: int = 50) -> List[SyncRun]:
        query = select(SyncRun).where(SyncRun.tenant_id == tenant_id)
        if vendor_slug:
            query = query.where(SyncRun.vendor_slug == vendor_slug)
        result = await self.db.execute(
            query.order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def _stale_thresholds(self, vendor_slugs: Iterable[str]) -> Dict[str, float]:
        slugs = set(vendor_slugs)
        thresholds = {slug: self.settings.SYNC_STALE_AFTER_HOURS for slug in slugs}
        if not slugs:
            return thresholds
        result = await self.db.execute(
            select(VendorDefinition.slug, VendorDefinition.stale_after_hours)
            .where(VendorDefinition.slug.in_(slugs))
        )
        for slug, hours in result.all():
            if hours:
                thresholds[slug] = hours
        return thresholds

    # --- Transitions ---

    async def recover_stale(
        self,
        tenant_id: Optional[str] = None,
        vendor_slug: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[int]:
        """
        Force ``in_progress`` runs with no activity past the vendor's stale
        threshold to ``error``. Recovered runs are never retried.
        Returns the recovered run ids.
        """
        now = ensure_utc(now) or utcnow()
        query = select(SyncRun).where(SyncRun.status == S.IN_PROGRESS.value)
        if tenant_id:
            query = query.where(SyncRun.tenant_id == tenant_id)
        if vendor_slug:
            query = query.where(SyncRun.vendor_slug == vendor_slug)
        running = list((await self.db.execute(query.execution_options(populate_existing=True))).scalars())
        if not running:
            return []

        thresholds = await self._stale_thresholds(run.vendor_slug for run in running)
        recovered = []
        for run in running:
            hours = thresholds[run.vendor_slug]
            last_activity = max(
                stamp for stamp in (ensure_utc(run.started_at), ensure_utc(run.heartbeat_at)) if stamp is not None
            )
            if now - last_activity <= timedelta(hours=hours):
                continue

            outcome = await self.db.execute(
                update(SyncRun)
                .where(SyncRun.id == run.id, SyncRun.status == S.IN_PROGRESS.value)
                .values(
                    status=S.ERROR.value,
                    finished_at=now,
                    duration_ms=_duration_ms(run.started_at, now),
                    error_message=STALE_RUN_MESSAGE.format(hours=hours),
                )
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount:
                recovered.append(run.id)
                logger.warning(
                    f"Recovered stale sync run {run.id} for tenant {run.tenant_id} vendor {run.vendor_slug} "
                    f"(last activity {last_activity.isoformat()})"
                )
        await self.db.commit()
        return recovered

    async def begin(
        self,
        tenant_id: str,
        vendor_slug: str,
        mode: SyncMode = SyncMode.INCREMENTAL,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> SyncRun:
        """
        Start a run: recover stale runs for the pair, then insert an
        ``in_progress`` row.

        Raises:
            SyncAlreadyRunningError: another run for the pair is in progress.
        """
        await self.recover_stale(tenant_id, vendor_slug)

        current = await self.current_status(tenant_id, vendor_slug)
        if current == S.IN_PROGRESS:
            raise SyncAlreadyRunningError(f"A sync for tenant {tenant_id} vendor {vendor_slug} is already in progress")
        check_transition(current, S.IN_PROGRESS)

        now = utcnow()
        run = SyncRun(
            tenant_id=tenant_id,
            vendor_slug=vendor_slug,
            mode=SyncMode(mode).value,
            trigger=SyncTrigger(trigger).value,
            status=S.IN_PROGRESS.value,
            started_at=now,
            heartbeat_at=now,
        )
        self.db.add(run)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise SyncAlreadyRunningError(
                f"A sync for tenant {tenant_id} vendor {vendor_slug} is already in progress"
            )

        logger.info(f"Sync run {run.id} started for tenant {tenant_id} vendor {vendor_slug} ({run.mode}, {run.trigger})")
        return run

    async def heartbeat(self, run_id: int) -> None:
        await self.db.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id, SyncRun.status == S.IN_PROGRESS.value)
            .values(heartbeat_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _finish(self, run_id: int, target: SyncRunStatus, values: dict) -> SyncRun:
        check_transition(S.IN_PROGRESS, target)
        run = await self.db.get(SyncRun, run_id)
        if run is None:
            raise InvalidTransitionError(f"Sync run {run_id} does not exist")

        now = utcnow()
        outcome = await self.db.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id, SyncRun.status == S.IN_PROGRESS.value)
            .values(
                status=target.value,
                finished_at=now,
                duration_ms=_duration_ms(run.started_at, now),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if not outcome.rowcount:
            await self.db.rollback()
            await self.db.refresh(run)
            raise InvalidTransitionError(
                f"Sync run {run_id} is {run.status}, cannot change to {target.value}"
            )
        await self.db.commit()
        await self.db.refresh(run)
        return run

    async def complete(
        self,
        run_id: int,
        result: Optional[ImportResult] = None,
        feed_hash: Optional[str] = None,
        message: Optional[str] = None,
    ) -> SyncRun:
        """``in_progress -> success``. Also commits anything the caller flushed."""
        result = result or ImportResult()
        run = await self._finish(run_id, S.SUCCESS, {
            "records_seen": result.seen,
            "records_created": result.created,
            "records_updated": result.updated,
            "records_unchanged": result.unchanged,
            "records_skipped": result.skipped,
            "records_failed": result.failed,
            "records_deactivated": result.deactivated,
            "errors": [error.model_dump() for error in result.errors] or None,
            "feed_hash": feed_hash,
            "error_message": message,
        })
        logger.info(f"Sync run {run_id} succeeded for tenant {run.tenant_id} vendor {run.vendor_slug}")
        return run

    async def fail(self, run_id: int, message: str, result: Optional[ImportResult] = None) -> SyncRun:
        """``in_progress -> error`` with a message naming what went wrong."""
        values = {"error_message": message}
        if result is not None:
            values.update({
                "records_seen": result.seen,
                "records_created": result.created,
                "records_updated": result.updated,
                "records_unchanged": result.unchanged,
                "records_skipped": result.skipped,
                "records_failed": result.failed,
                "records_deactivated": result.deactivated,
                "errors": [error.model_dump() for error in result.errors] or None,
            })
        run = await self._finish(run_id, S.ERROR, values)
        logger.error(f"Sync run {run_id} failed for tenant {run.tenant_id} vendor {run.vendor_slug}: {message}")
        return run
