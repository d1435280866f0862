# catalog_sync/models/master_product.py
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base

MERGED_FIELDS = ("name", "brand", "model", "category", "description", "image_url")


class MasterProduct(Base):
    """
    Canonical product record keyed by UPC, shared across tenants.

    Descriptive fields are owned by ``PriorityMergeEngine``. ``provenance``
    records which vendor mapping supplied each field. Never hard-deleted.
    """
    __tablename__ = "master_products"

    id = Column(Integer, primary_key=True)
    upc = Column(String(14), nullable=False, unique=True, index=True)

    name = Column(String(512), nullable=True)
    brand = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(1024), nullable=True)

    provenance = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MasterProduct(upc='{self.upc}', name='{self.name}', active={self.is_active})>"
