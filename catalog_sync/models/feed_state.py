# catalog_sync/models/feed_state.py
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class VendorFeedState(Base):
    """Hash of the last fully imported feed per (tenant, vendor). Written only after success."""
    __tablename__ = "vendor_feed_states"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    vendor_slug = Column(String(64), nullable=False)

    last_feed_hash = Column(String(64), nullable=True)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    last_run_id = Column(Integer, nullable=True)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'vendor_slug', name='uq_vendor_feed_state'),
    )
