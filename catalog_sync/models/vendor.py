# catalog_sync/models/vendor.py
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String

from catalog_sync.core.enums import DEFAULT_PRIORITY_RANK
from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class VendorDefinition(Base):
    """
    A supported upstream vendor. Global, shared by every tenant.

    ``credential_fields`` is the ordered credential schema the vault validates
    against; ``priority_rank`` drives the master catalog merge (lower wins).
    """
    __tablename__ = "vendor_definitions"

    id = Column(Integer, primary_key=True)
    slug = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    protocol = Column(String(16), nullable=False)       # ftp, rest, soap
    feed_format = Column(String(16), nullable=False)    # csv, xml, json

    credential_fields = Column(JSON, nullable=False, default=list)
    priority_rank = Column(Integer, nullable=False, default=DEFAULT_PRIORITY_RANK)
    stale_after_hours = Column(Float, nullable=True)   # falls back to SYNC_STALE_AFTER_HOURS
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<VendorDefinition(slug='{self.slug}', protocol='{self.protocol}', priority={self.priority_rank})>"
