"""
Schemas for sync run results and reporting.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from catalog_sync.core.enums import SyncMode, SyncRunStatus, SyncTrigger
from catalog_sync.schemas.base import BaseSchema


class SyncRunResult(BaseSchema):
    """Outcome of one orchestrated sync request"""
    run_id: Optional[int] = None
    tenant_id: str
    vendor_slug: str
    mode: SyncMode
    trigger: SyncTrigger = SyncTrigger.MANUAL
    status: SyncRunStatus
    counts: Dict[str, int] = Field(default_factory=dict)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None
    stage: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncRunStatus.SUCCESS


class SyncRunRead(BaseSchema):
    id: int
    tenant_id: str
    vendor_slug: str
    mode: str
    trigger: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    records_seen: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_unchanged: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    records_deactivated: int = 0
    error_message: Optional[str] = None


class SyncRequest(BaseSchema):
    tenant_id: str
    vendor_slug: str
    mode: SyncMode = SyncMode.INCREMENTAL
    trigger: SyncTrigger = SyncTrigger.MANUAL


class VendorOffer(BaseSchema):
    """One row of the priority-ranked price comparison view"""
    tenant_id: str
    vendor_slug: str
    priority_rank: int
    vendor_sku: Optional[str] = None
    price: Optional[Any] = None
    msrp: Optional[Any] = None
    quantity: Optional[int] = None
    updated_at: Optional[datetime] = None
