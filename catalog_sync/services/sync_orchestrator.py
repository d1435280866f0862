# catalog_sync/services/sync_orchestrator.py
"""
Top-level driver for vendor syncs.

One ``run`` call is one attempt for one (tenant, vendor) pair, with its own
database session. Stages run strictly in order::

    credentials -> fetch (with retry) -> change detection -> import -> merge -> finalize

Inventory runs apply a stock/price-only feed and skip change detection and
the merge::

    credentials -> fetch (with retry) -> import -> finalize

Every accepted run ends as ``success`` (with counts) or ``error`` (with a
message naming vendor, tenant and stage). A request for a pair that is
already running is answered with a ``rejected`` result and no run row.
"""

import asyncio
import logging
import time
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import CredentialStatus, SyncMode, SyncRunStatus, SyncStage, SyncTrigger
from catalog_sync.core.exceptions import (
    CatalogSyncError,
    InvalidTransitionError,
    SyncAlreadyRunningError,
    SyncCancelledError,
    UnsupportedSyncModeError,
)
from catalog_sync.models.credential import TenantVendorCredential
from catalog_sync.models.sync_run import SyncRun
from catalog_sync.schemas.feed import ImportResult
from catalog_sync.schemas.sync import SyncRequest, SyncRunRead, SyncRunResult
from catalog_sync.services.change_detector import ChangeDetector
from catalog_sync.services.credential_vault import CredentialVault
from catalog_sync.services.feed_importer import FeedImporter
from catalog_sync.services.priority_merge import PriorityMergeEngine
from catalog_sync.services.retry import RetryPolicy
from catalog_sync.services.sync_state import SyncStateMachine
from catalog_sync.services.vendors.registry import VendorHandlerRegistry

logger = logging.getLogger(__name__)

UNCHANGED_FEED_MESSAGE = "Feed unchanged since last successful sync; import skipped"


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: VendorHandlerRegistry,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.settings = settings or get_settings()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self._tasks: Set[asyncio.Task] = set()

    # --- Lifecycle ---

    async def start(self) -> List[int]:
        """Recover runs left ``in_progress`` by a previous process."""
        async with self.session_factory() as session:
            recovered = await SyncStateMachine(session, self.settings).recover_stale()
        if recovered:
            logger.warning(f"Recovered {len(recovered)} stale sync runs at startup: {recovered}")
        return recovered

    async def stop(self) -> None:
        """Cancel in-flight runs and wait for them to record their outcome."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelling {len(tasks)} in-flight sync runs")
            await asyncio.gather(*tasks, return_exceptions=True)

    def submit(
        self,
        tenant_id: str,
        vendor_slug: str,
        mode: SyncMode = SyncMode.INCREMENTAL,
        *,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "asyncio.Task[SyncRunResult]":
        """Schedule a run as a background task tracked for ``stop``."""
        task = asyncio.create_task(
            self.run(tenant_id, vendor_slug, mode, trigger=trigger, cancel_event=cancel_event),
            name=f"sync:{tenant_id}:{vendor_slug}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_many(
        self, requests: Iterable[SyncRequest], max_concurrent: Optional[int] = None
    ) -> List[SyncRunResult]:
        """Run several pairs with bounded parallelism. Results keep request order."""
        semaphore = asyncio.Semaphore(max_concurrent or self.settings.SYNC_MAX_CONCURRENT)

        async def _bounded(request: SyncRequest) -> SyncRunResult:
            async with semaphore:
                return await self.run(
                    request.tenant_id, request.vendor_slug, request.mode, trigger=request.trigger
                )

        tasks = [self.submit_coroutine(_bounded(request)) for request in requests]
        return list(await asyncio.gather(*tasks))

    def submit_coroutine(self, coroutine) -> asyncio.Task:
        task = asyncio.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def configured_pairs(self, mode: SyncMode = SyncMode.INCREMENTAL) -> List[SyncRequest]:
        """Every tenant/vendor pair with active credentials for a registered vendor that serves ``mode``."""
        mode = SyncMode(mode)
        async with self.session_factory() as session:
            result = await session.execute(
                select(TenantVendorCredential.tenant_id, TenantVendorCredential.vendor_slug)
                .where(TenantVendorCredential.status == CredentialStatus.ACTIVE.value)
                .order_by(TenantVendorCredential.tenant_id, TenantVendorCredential.vendor_slug)
            )
            pairs = result.all()
        return [
            SyncRequest(tenant_id=tenant_id, vendor_slug=vendor_slug)
            for tenant_id, vendor_slug in pairs
            if vendor_slug in self.registry
            and (mode.is_catalog or self.registry.get_handler(vendor_slug).supports_inventory)
        ]

    async def run_all_configured(
        self,
        mode: SyncMode = SyncMode.INCREMENTAL,
        trigger: SyncTrigger = SyncTrigger.SCHEDULED,
    ) -> List[SyncRunResult]:
        requests = [
            request.model_copy(update={"mode": mode, "trigger": trigger})
            for request in await self.configured_pairs(mode)
        ]
        logger.info(f"=== SYNC ALL STARTING: {len(requests)} tenant/vendor pairs ({SyncMode(mode).value}) ===")
        results = await self.run_many(requests)
        succeeded = sum(1 for result in results if result.status == SyncRunStatus.SUCCESS)
        logger.info(f"=== SYNC ALL FINISHED: {succeeded}/{len(results)} succeeded ===")
        return results

    async def history(
        self, tenant_id: str, vendor_slug: Optional[str] = None, limit: int = 50
    ) -> List[SyncRunRead]:
        """Recent runs for a tenant, newest first, for reporting."""
        async with self.session_factory() as session:
            runs = await SyncStateMachine(session, self.settings).history(tenant_id, vendor_slug, limit)
            return [SyncRunRead.from_orm_model(run) for run in runs]

    # --- A single run ---

    async def run(
        self,
        tenant_id: str,
        vendor_slug: str,
        mode: SyncMode = SyncMode.INCREMENTAL,
        *,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncRunResult:
        """
        Run one sync attempt.

        Raises:
            UnknownVendorError: before any run is created.
            UnsupportedSyncModeError: inventory mode for a vendor without an
                inventory feed, before any run is created.
            asyncio.CancelledError: re-raised after the run is recorded as ``error``.
        """
        mode = SyncMode(mode)
        trigger = SyncTrigger(trigger)
        handler = self.registry.get_handler(vendor_slug)
        if mode == SyncMode.INVENTORY and not handler.supports_inventory:
            raise UnsupportedSyncModeError(f"{handler.name} does not publish an inventory feed")

        async with self.session_factory() as session:
            state = SyncStateMachine(session, self.settings)
            previous = await state.latest_run(tenant_id, vendor_slug, catalog_only=True)
            previous_succeeded = previous is not None and previous.status == SyncRunStatus.SUCCESS.value

            try:
                run = await state.begin(tenant_id, vendor_slug, mode, trigger)
            except SyncAlreadyRunningError as e:
                logger.info(f"Sync request rejected: {e}")
                return SyncRunResult(
                    tenant_id=tenant_id,
                    vendor_slug=vendor_slug,
                    mode=mode,
                    trigger=trigger,
                    status=SyncRunStatus.REJECTED,
                    message=str(e),
                )

            run_id = run.id
            started = time.monotonic()
            stage = SyncStage.CREDENTIALS
            result = ImportResult()

            try:
                vault = CredentialVault(session, self.settings, registry=self.registry)
                credentials = await vault.retrieve(tenant_id, vendor_slug, expected_fields=handler.credential_fields)

                if mode == SyncMode.INVENTORY:
                    stage = SyncStage.FETCH
                    payload = await self.retry_policy.call(
                        handler.fetch_inventory_feed,
                        credentials,
                        description=f"{vendor_slug} inventory fetch for tenant {tenant_id}",
                        vendor_slug=vendor_slug,
                        tenant_id=tenant_id,
                    )
                    self._check_cancelled(cancel_event, tenant_id, vendor_slug)

                    stage = SyncStage.IMPORT
                    result = await FeedImporter(session, handler, self.settings).import_inventory(
                        tenant_id,
                        vendor_slug,
                        payload.data,
                        cancel_event=cancel_event,
                        on_batch=lambda: state.heartbeat(run_id),
                    )

                    stage = SyncStage.FINALIZE
                    finished = await state.complete(run_id, result)
                    return self._result(finished, mode, trigger, result, started)

                stage = SyncStage.FETCH
                detector = ChangeDetector(session)
                since = await detector.last_success_at(tenant_id, vendor_slug) if mode == SyncMode.INCREMENTAL else None
                payload = await self.retry_policy.call(
                    handler.fetch_feed,
                    credentials,
                    since=since,
                    description=f"{vendor_slug} feed fetch for tenant {tenant_id}",
                    vendor_slug=vendor_slug,
                    tenant_id=tenant_id,
                )
                self._check_cancelled(cancel_event, tenant_id, vendor_slug)

                stage = SyncStage.CHANGE_DETECTION
                feed_hash = detector.compute_hash(payload.data)
                if mode != SyncMode.FORCED and not await detector.has_changed(tenant_id, vendor_slug, payload.data):
                    stage = SyncStage.FINALIZE
                    await detector.remember(tenant_id, vendor_slug, feed_hash, run_id)
                    finished = await state.complete(run_id, result, feed_hash=feed_hash, message=UNCHANGED_FEED_MESSAGE)
                    logger.info(f"{vendor_slug} feed for tenant {tenant_id} unchanged; nothing to import")
                    return self._result(finished, mode, trigger, result, started, UNCHANGED_FEED_MESSAGE)

                stage = SyncStage.IMPORT
                importer = FeedImporter(session, handler, self.settings)
                result = await importer.import_feed(
                    tenant_id,
                    vendor_slug,
                    payload.data,
                    run_id=run_id,
                    complete=payload.is_complete,
                    cancel_event=cancel_event,
                    on_batch=lambda: state.heartbeat(run_id),
                )

                stage = SyncStage.MERGE
                scope = set(result.affected_upcs)
                if mode == SyncMode.FORCED or not previous_succeeded:
                    # rows left unchanged by an interrupted earlier run still need merging
                    scope |= result.seen_upcs
                await PriorityMergeEngine(session).recompute_many(scope)
                self._check_cancelled(cancel_event, tenant_id, vendor_slug)

                stage = SyncStage.FINALIZE
                await detector.remember(tenant_id, vendor_slug, feed_hash, run_id)
                finished = await state.complete(run_id, result, feed_hash=feed_hash)
                return self._result(finished, mode, trigger, result, started)

            except asyncio.CancelledError:
                await self._record_failure(session, state, run_id, stage, tenant_id, vendor_slug, "cancelled", result)
                raise
            except SyncCancelledError:
                finished = await self._record_failure(session, state, run_id, stage, tenant_id, vendor_slug, "cancelled", result)
                return self._result(finished, mode, trigger, result, started, stage=stage)
            except CatalogSyncError as e:
                finished = await self._record_failure(session, state, run_id, stage, tenant_id, vendor_slug, str(e), result)
                return self._result(finished, mode, trigger, result, started, stage=stage)
            except Exception as e:
                logger.exception(f"Unexpected error during {stage.value} for {vendor_slug}/{tenant_id}")
                detail = f"unexpected {type(e).__name__}: {e}"
                finished = await self._record_failure(session, state, run_id, stage, tenant_id, vendor_slug, detail, result)
                return self._result(finished, mode, trigger, result, started, stage=stage)

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event], tenant_id: str, vendor_slug: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError(f"Sync for tenant {tenant_id} vendor {vendor_slug} was cancelled")

    async def _record_failure(
        self,
        session: AsyncSession,
        state: SyncStateMachine,
        run_id: int,
        stage: SyncStage,
        tenant_id: str,
        vendor_slug: str,
        detail: str,
        result: ImportResult,
    ):
        message = f"{stage.value} failed for vendor {vendor_slug}, tenant {tenant_id}: {detail}"
        await session.rollback()
        try:
            return await state.fail(run_id, message, result)
        except InvalidTransitionError as e:
            # recovered as stale by another worker in the meantime
            logger.warning(f"Could not record failure of sync run {run_id}: {e}")
            return await session.get(SyncRun, run_id)

    def _result(
        self,
        run,
        mode: SyncMode,
        trigger: SyncTrigger,
        result: ImportResult,
        started: float,
        message: Optional[str] = None,
        stage: Optional[SyncStage] = None,
    ) -> SyncRunResult:
        return SyncRunResult(
            run_id=run.id,
            tenant_id=run.tenant_id,
            vendor_slug=run.vendor_slug,
            mode=mode,
            trigger=trigger,
            status=SyncRunStatus(run.status),
            counts=result.counts,
            errors=[error.model_dump() for error in result.errors],
            message=run.error_message or message,
            stage=stage.value if stage and run.status == SyncRunStatus.ERROR.value else None,
            duration_ms=run.duration_ms if run.duration_ms is not None else int((time.monotonic() - started) * 1000),
        )
