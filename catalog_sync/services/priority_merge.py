# catalog_sync/services/priority_merge.py
"""
Field-level priority merge of vendor data into ``MasterProduct``.

For every descriptive field the value comes from the highest-priority active
mapping (lowest ``priority_rank``) that supplies a non-empty value. Equal
ranks are broken by the most recently updated mapping, then by vendor slug,
tenant and mapping id so the result never depends on row order. A field no
candidate supplies keeps its previous value.

``recompute`` writes only when something changed, so rerunning it without
new input leaves the row bit-identical.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import DEFAULT_PRIORITY_RANK
from catalog_sync.core.utils import chunked, ensure_utc, is_blank, utcnow
from catalog_sync.models.master_product import MERGED_FIELDS, MasterProduct
from catalog_sync.models.vendor import VendorDefinition
from catalog_sync.models.vendor_product import VendorProductMapping
from catalog_sync.schemas.sync import VendorOffer

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


@dataclass
class PriorityTie:
    upc: str
    field: str
    priority_rank: int
    vendors: List[str]


@dataclass
class MergeSummary:
    recomputed: int = 0
    created: int = 0
    changed: int = 0
    deactivated: int = 0
    ties: List[PriorityTie] = field(default_factory=list)


def _candidate_key(candidate: Tuple[VendorProductMapping, int]):
    mapping, rank = candidate
    updated = ensure_utc(mapping.updated_at) or ensure_utc(_EPOCH)
    return (rank, -updated.timestamp(), mapping.vendor_slug, mapping.tenant_id, mapping.id or 0)


class PriorityMergeEngine:
    def __init__(self, db: AsyncSession, batch_size: int = 200):
        self.db = db
        self.batch_size = batch_size

    async def _candidates(self, upc: str) -> List[Tuple[VendorProductMapping, int]]:
        rank = func.coalesce(VendorDefinition.priority_rank, DEFAULT_PRIORITY_RANK)
        result = await self.db.execute(
            select(VendorProductMapping, rank)
            .outerjoin(VendorDefinition, VendorDefinition.slug == VendorProductMapping.vendor_slug)
            .where(
                VendorProductMapping.upc == upc,
                VendorProductMapping.is_active.is_(True),
            )
        )
        candidates = [(mapping, int(priority)) for mapping, priority in result.all()]
        candidates.sort(key=_candidate_key)
        return candidates

    def _resolve(
        self, upc: str, candidates: List[Tuple[VendorProductMapping, int]], summary: MergeSummary
    ) -> Dict[str, Tuple[Any, Dict[str, Any]]]:
        """Winning (value, provenance) per field that at least one candidate supplies."""
        chosen = {}
        for field_name in MERGED_FIELDS:
            supplying = [(m, rank) for m, rank in candidates if not is_blank(getattr(m, field_name))]
            if not supplying:
                continue
            winner, rank = supplying[0]
            chosen[field_name] = (
                getattr(winner, field_name),
                {
                    "vendor": winner.vendor_slug,
                    "tenant": winner.tenant_id,
                    "priority": rank,
                    "mapping_id": winner.id,
                },
            )

            rivals = [
                m for m, r in supplying[1:]
                if r == rank and m.vendor_slug != winner.vendor_slug
                and getattr(m, field_name) != getattr(winner, field_name)
            ]
            if rivals:
                vendors = sorted({winner.vendor_slug, *(m.vendor_slug for m in rivals)})
                summary.ties.append(PriorityTie(upc=upc, field=field_name, priority_rank=rank, vendors=vendors))
                logger.warning(
                    f"Priority tie on {field_name} for UPC {upc}: vendors {', '.join(vendors)} share rank {rank}; "
                    f"using most recently updated value from {winner.vendor_slug}"
                )
        return chosen

    async def _merge(self, upc: str, summary: MergeSummary) -> Optional[MasterProduct]:
        candidates = await self._candidates(upc)
        master = await self.db.scalar(select(MasterProduct).where(MasterProduct.upc == upc))
        summary.recomputed += 1

        if not candidates:
            if master is not None and master.is_active:
                master.is_active = False
                master.updated_at = utcnow()
                summary.deactivated += 1
                logger.info(f"Deactivated master product {upc}: no active vendor mappings")
            return master

        if master is None:
            master = MasterProduct(upc=upc, provenance={}, is_active=True, created_at=utcnow())
            self.db.add(master)
            summary.created += 1

        chosen = self._resolve(upc, candidates, summary)
        provenance = dict(master.provenance or {})
        changed = not master.is_active or master.id is None

        for field_name, (value, source) in chosen.items():
            if getattr(master, field_name) != value:
                setattr(master, field_name, value)
                changed = True
            if provenance.get(field_name) != source:
                provenance[field_name] = source
                changed = True

        if changed:
            master.provenance = provenance
            master.is_active = True
            master.updated_at = utcnow()
            await self.db.flush()
            summary.changed += 1
        return master

    async def recompute(self, upc: str) -> Optional[MasterProduct]:
        """
        Recompute one master product and commit. Returns None only when the
        UPC has never had an active mapping.
        """
        summary = MergeSummary()
        masters = await self._run_batch([upc], summary)
        return masters[0]

    async def recompute_many(self, upcs: Iterable[str]) -> MergeSummary:
        """Recompute in sorted batches, committing each batch."""
        summary = MergeSummary()
        for batch in chunked(sorted(set(upcs)), self.batch_size):
            await self._run_batch(batch, summary)
        if summary.recomputed:
            logger.info(
                f"Merged {summary.recomputed} master products: {summary.created} created, "
                f"{summary.changed} changed, {summary.deactivated} deactivated, {len(summary.ties)} priority ties"
            )
        return summary

    async def _run_batch(self, upcs: List[str], summary: MergeSummary) -> List[Optional[MasterProduct]]:
        """
        A concurrent sync may create the same master first; on a unique
        conflict the batch is rolled back and replayed once against the
        committed row.
        """
        for attempt in (1, 2):
            attempt_summary = MergeSummary()
            try:
                masters = [await self._merge(upc, attempt_summary) for upc in upcs]
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if attempt == 2:
                    raise
                logger.info(f"Concurrent master product creation detected; replaying batch of {len(upcs)}")
                continue
            summary.recomputed += attempt_summary.recomputed
            summary.created += attempt_summary.created
            summary.changed += attempt_summary.changed
            summary.deactivated += attempt_summary.deactivated
            summary.ties.extend(attempt_summary.ties)
            return masters
        return []

    async def ranked_offers(self, upc: str, tenant_id: Optional[str] = None) -> List[VendorOffer]:
        """Active offers for a UPC in merge priority order (price comparison view)."""
        offers = []
        for mapping, rank in await self._candidates(upc):
            if tenant_id is not None and mapping.tenant_id != tenant_id:
                continue
            offers.append(VendorOffer(
                tenant_id=mapping.tenant_id,
                vendor_slug=mapping.vendor_slug,
                priority_rank=rank,
                vendor_sku=mapping.vendor_sku,
                price=mapping.price,
                msrp=mapping.msrp,
                quantity=mapping.quantity,
                updated_at=mapping.updated_at,
            ))
        return offers
