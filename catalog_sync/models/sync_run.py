# catalog_sync/models/sync_run.py
from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text, text

from catalog_sync.core.enums import SyncRunStatus
from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base

_IN_PROGRESS = text("status = 'in_progress'")


class SyncRun(Base):
    """
    One sync attempt for a (tenant, vendor) pair. Audit record: rows are
    inserted and updated, never deleted.

    The partial unique index allows at most one ``in_progress`` row per pair,
    which is what makes the check-and-set in ``SyncStateMachine.begin`` atomic.
    """
    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    vendor_slug = Column(String(64), nullable=False, index=True)

    mode = Column(String(16), nullable=False)       # incremental, full, forced, inventory
    trigger = Column(String(16), nullable=False)    # manual, scheduled
    status = Column(String(16), nullable=False, default=SyncRunStatus.IN_PROGRESS.value, index=True)

    # --- Timing ---
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    heartbeat_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # --- Counts ---
    records_seen = Column(Integer, nullable=False, default=0)
    records_created = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)
    records_unchanged = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    records_deactivated = Column(Integer, nullable=False, default=0)

    # --- Outcome ---
    feed_hash = Column(String(64), nullable=True)
    errors = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index(
            'uq_sync_runs_one_in_progress',
            'tenant_id', 'vendor_slug',
            unique=True,
            postgresql_where=_IN_PROGRESS,
            sqlite_where=_IN_PROGRESS,
        ),
    )

    def __repr__(self):
        return (f"<SyncRun(id={self.id}, tenant='{self.tenant_id}', vendor='{self.vendor_slug}', "
                f"mode='{self.mode}', status='{self.status}')>")
