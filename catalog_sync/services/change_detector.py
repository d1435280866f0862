"""
Content-hash comparison between a freshly retrieved feed and the last feed
that was imported successfully for the same (tenant, vendor).
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.utils import sha256_hex, utcnow
from catalog_sync.models.feed_state import VendorFeedState

logger = logging.getLogger(__name__)


class ChangeDetector:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def compute_hash(feed_bytes: bytes) -> str:
        return sha256_hex(feed_bytes)

    async def get_state(self, tenant_id: str, vendor_slug: str) -> Optional[VendorFeedState]:
        return await self.db.scalar(
            select(VendorFeedState).where(
                VendorFeedState.tenant_id == tenant_id,
                VendorFeedState.vendor_slug == vendor_slug,
            )
        )

    async def has_changed(self, tenant_id: str, vendor_slug: str, feed_bytes: bytes) -> bool:
        """False only when the hash matches the stored one exactly. No side effects."""
        state = await self.get_state(tenant_id, vendor_slug)
        if state is None or not state.last_feed_hash:
            return True
        return state.last_feed_hash != self.compute_hash(feed_bytes)

    async def last_success_at(self, tenant_id: str, vendor_slug: str) -> Optional[datetime]:
        state = await self.get_state(tenant_id, vendor_slug)
        return state.last_success_at if state else None

    async def remember(self, tenant_id: str, vendor_slug: str, feed_hash: str, run_id: Optional[int] = None) -> VendorFeedState:
        """
        Persist the hash of a fully imported feed. Flushes only; the caller
        commits together with the run's terminal status.
        """
        state = await self.get_state(tenant_id, vendor_slug)
        if state is None:
            state = VendorFeedState(tenant_id=tenant_id, vendor_slug=vendor_slug)
            self.db.add(state)
        state.last_feed_hash = feed_hash
        state.last_success_at = utcnow()
        state.last_run_id = run_id
        await self.db.flush()
        logger.debug(f"Remembered feed hash {feed_hash[:12]} for {tenant_id}/{vendor_slug}")
        return state
