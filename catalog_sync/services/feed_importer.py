# catalog_sync/services/feed_importer.py
"""
Feed import: parse a raw vendor feed and upsert the tenant's
``VendorProductMapping`` rows.

Row-level problems never abort an import. A missing or unusable UPC counts
as ``skipped``; anything else wrong with a row counts as ``failed`` and is
listed in ``ImportResult.errors``. Only a feed that cannot be parsed at all
raises ``FeedFormatError``.

Upserts are idempotent, so an interrupted import can simply be run again.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import FeedFormat
from catalog_sync.core.exceptions import RowValidationError, SyncCancelledError
from catalog_sync.core.utils import chunked, stable_hash, utcnow
from catalog_sync.models.vendor_product import VendorProductMapping
from catalog_sync.schemas.feed import ImportResult, NormalizedRow, normalize_upc
from catalog_sync.services.feed_parser import parse_feed
from catalog_sync.services.vendors.base import VendorHandler

logger = logging.getLogger(__name__)

MAPPED_FIELDS = (
    "vendor_sku", "price", "msrp", "quantity",
    "name", "brand", "model", "category", "description", "image_url",
)


def row_hash(row: NormalizedRow) -> str:
    return stable_hash(row.model_dump(mode="json"))


class FeedImporter:
    def __init__(self, db: AsyncSession, handler: VendorHandler, settings: Optional[Settings] = None):
        self.db = db
        self.handler = handler
        self.settings = settings or get_settings()

    @property
    def error_limit(self) -> int:
        return self.settings.SYNC_MAX_RECORDED_ERRORS

    async def _load_mappings(self, tenant_id: str, vendor_slug: str) -> Dict[str, VendorProductMapping]:
        result = await self.db.execute(
            select(VendorProductMapping).where(
                VendorProductMapping.tenant_id == tenant_id,
                VendorProductMapping.vendor_slug == vendor_slug,
            )
        )
        return {mapping.upc: mapping for mapping in result.scalars()}

    def _parse(self, feed_bytes: bytes, inventory: bool = False):
        if inventory:
            feed_format = self.handler.spec.inventory_feed.feed_format
            options = self.handler.spec.inventory_feed.feed_options
        else:
            feed_format = self.handler.feed_format
            options = self.handler.feed_options
        required = []
        if feed_format == FeedFormat.CSV:
            required = [self.handler.sources_for("upc", inventory)]
        return parse_feed(
            feed_bytes,
            feed_format,
            record_path=options.get("record_path"),
            delimiter=options.get("delimiter", ","),
            required_columns=required,
        )

    async def import_feed(
        self,
        tenant_id: str,
        vendor_slug: str,
        feed_bytes: bytes,
        *,
        run_id: Optional[int] = None,
        complete: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
        on_batch: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> ImportResult:
        """
        Import one feed for a tenant.

        Args:
            complete: the feed is the vendor's full catalog; active mappings
                missing from it are deactivated.
            cancel_event: checked between batches, raises SyncCancelledError.
            on_batch: awaited after every committed batch (run heartbeat).

        Raises:
            FeedFormatError: the feed as a whole could not be parsed.
            SyncCancelledError: cancellation was requested.
        """
        if vendor_slug != self.handler.slug:
            raise ValueError(f"Importer for {self.handler.slug} cannot import {vendor_slug} feeds")

        parsed = self._parse(feed_bytes)
        result = ImportResult(seen=len(parsed.records) + len(parsed.malformed))

        for bad in parsed.malformed:
            result.failed += 1
            result.add_error(bad.message, self.error_limit, row=bad.row)

        existing = await self._load_mappings(tenant_id, vendor_slug)
        present_upcs = set()
        batch_size = self.settings.SYNC_IMPORT_BATCH_SIZE

        numbered = list(enumerate(parsed.records, start=1))
        for batch in chunked(numbered, batch_size):
            self._check_cancelled(cancel_event, tenant_id, vendor_slug)
            for position, record in batch:
                self._import_record(tenant_id, vendor_slug, position, record, existing, present_upcs, run_id, result)
            await self.db.commit()
            if on_batch is not None:
                await on_batch()

        self._check_cancelled(cancel_event, tenant_id, vendor_slug)
        if complete:
            self._deactivate_missing(tenant_id, vendor_slug, existing, present_upcs, result)
            await self.db.commit()

        logger.info(
            f"Imported {vendor_slug} feed for tenant {tenant_id}: "
            f"{result.created} created, {result.updated} updated, {result.unchanged} unchanged, "
            f"{result.skipped} skipped, {result.failed} failed, {result.deactivated} deactivated"
        )
        return result

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event], tenant_id: str, vendor_slug: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError(f"Import of {vendor_slug} feed for tenant {tenant_id} was cancelled")

    def _import_record(
        self,
        tenant_id: str,
        vendor_slug: str,
        position: int,
        record: Dict[str, Any],
        existing: Dict[str, VendorProductMapping],
        present_upcs: set,
        run_id: Optional[int],
        result: ImportResult,
    ) -> None:
        sku = self.handler.vendor_sku_of(record)
        try:
            row = self.handler.parse_row(record)
        except RowValidationError as e:
            upc = normalize_upc(self.handler.map_record(record).get("upc"))
            if upc:
                present_upcs.add(upc)
            result.failed += 1
            result.add_error(str(e), self.error_limit, row=position, sku=sku, upc=upc)
            return

        if row is None:
            result.skipped += 1
            return

        if row.upc in result.seen_upcs:
            result.skipped += 1
            result.add_error("Duplicate UPC in feed; first occurrence kept", self.error_limit,
                             row=position, sku=sku, upc=row.upc)
            return
        result.seen_upcs.add(row.upc)
        present_upcs.add(row.upc)

        digest = row_hash(row)
        mapping = existing.get(row.upc)
        now = utcnow()

        if mapping is None:
            mapping = VendorProductMapping(
                tenant_id=tenant_id,
                vendor_slug=vendor_slug,
                upc=row.upc,
                created_at=now,
            )
            self.db.add(mapping)
            existing[row.upc] = mapping
            result.created += 1
        elif mapping.row_hash == digest and mapping.is_active:
            result.unchanged += 1
            return
        else:
            result.updated += 1

        for attribute in MAPPED_FIELDS:
            setattr(mapping, attribute, getattr(row, attribute))
        mapping.row_hash = digest
        mapping.is_active = True
        mapping.last_seen_run_id = run_id
        mapping.updated_at = now
        result.affected_upcs.add(row.upc)

    def _deactivate_missing(
        self,
        tenant_id: str,
        vendor_slug: str,
        existing: Dict[str, VendorProductMapping],
        present_upcs: set,
        result: ImportResult,
    ) -> None:
        stale: List[VendorProductMapping] = [
            mapping for upc, mapping in existing.items()
            if mapping.is_active and upc not in present_upcs
        ]
        if not stale:
            return
        if not present_upcs:
            logger.warning(
                f"{vendor_slug} feed for tenant {tenant_id} had no usable rows; "
                f"keeping {len(stale)} existing mappings active"
            )
            return

        now = utcnow()
        for mapping in stale:
            mapping.is_active = False
            mapping.updated_at = now
            result.deactivated += 1
            result.affected_upcs.add(mapping.upc)
        logger.info(f"Deactivated {len(stale)} {vendor_slug} mappings absent from the feed for tenant {tenant_id}")

    async def import_inventory(
        self,
        tenant_id: str,
        vendor_slug: str,
        feed_bytes: bytes,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_batch: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> ImportResult:
        """
        Apply a stock/price-only feed to the tenant's existing mappings.

        Only ``quantity`` and, when the feed carries it, ``price`` change.
        Rows for products the catalog has not imported, or has deactivated,
        are skipped. Nothing is created or deactivated, and descriptive
        fields are left to the catalog feed.
        """
        if vendor_slug != self.handler.slug:
            raise ValueError(f"Importer for {self.handler.slug} cannot import {vendor_slug} feeds")
        if not self.handler.supports_inventory:
            raise ValueError(f"{self.handler.slug} has no inventory feed")

        parsed = self._parse(feed_bytes, inventory=True)
        result = ImportResult(seen=len(parsed.records) + len(parsed.malformed))
        for bad in parsed.malformed:
            result.failed += 1
            result.add_error(bad.message, self.error_limit, row=bad.row)

        existing = await self._load_mappings(tenant_id, vendor_slug)
        numbered = list(enumerate(parsed.records, start=1))
        for batch in chunked(numbered, self.settings.SYNC_IMPORT_BATCH_SIZE):
            self._check_cancelled(cancel_event, tenant_id, vendor_slug)
            for position, record in batch:
                self._apply_inventory_record(position, record, existing, result)
            await self.db.commit()
            if on_batch is not None:
                await on_batch()

        self._check_cancelled(cancel_event, tenant_id, vendor_slug)
        logger.info(
            f"Applied {vendor_slug} inventory feed for tenant {tenant_id}: "
            f"{result.updated} updated, {result.unchanged} unchanged, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _apply_inventory_record(
        self,
        position: int,
        record: Dict[str, Any],
        existing: Dict[str, VendorProductMapping],
        result: ImportResult,
    ) -> None:
        mapped = self.handler.map_record(record, inventory=True)
        sku = None if mapped.get("vendor_sku") is None else str(mapped["vendor_sku"])
        try:
            row = self.handler.parse_inventory_row(record)
        except RowValidationError as e:
            result.failed += 1
            result.add_error(str(e), self.error_limit, row=position, sku=sku, upc=normalize_upc(mapped.get("upc")))
            return

        if row is None:
            result.skipped += 1
            return
        if row.upc in result.seen_upcs:
            result.skipped += 1
            result.add_error("Duplicate UPC in feed; first occurrence kept", self.error_limit,
                             row=position, sku=sku, upc=row.upc)
            return
        result.seen_upcs.add(row.upc)

        mapping = existing.get(row.upc)
        if mapping is None or not mapping.is_active:
            result.skipped += 1
            return

        changes = {}
        for attribute in ("quantity", "price"):
            value = getattr(row, attribute)
            if value is not None:
                changes[attribute] = value
        if all(getattr(mapping, attribute) == value for attribute, value in changes.items()):
            result.unchanged += 1
            return

        # row_hash keeps describing the catalog row, so an unchanged catalog
        # row does not overwrite the newer stock level
        for attribute, value in changes.items():
            setattr(mapping, attribute, value)
        mapping.updated_at = utcnow()
        result.updated += 1
