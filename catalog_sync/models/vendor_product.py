# catalog_sync/models/vendor_product.py
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class VendorProductMapping(Base):
    """
    A tenant's view of one vendor's offer for a UPC: the vendor SKU, price and
    availability plus the vendor's own descriptive snapshot used by the merge.
    """
    __tablename__ = "vendor_product_mappings"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    vendor_slug = Column(String(64), nullable=False, index=True)
    upc = Column(String(14), nullable=False, index=True)

    # --- Offer ---
    vendor_sku = Column(String(128), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    msrp = Column(Numeric(12, 2), nullable=True)
    quantity = Column(Integer, nullable=True)

    # --- Vendor descriptive snapshot ---
    name = Column(String(512), nullable=True)
    brand = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(1024), nullable=True)

    # --- Sync bookkeeping ---
    row_hash = Column(String(64), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_seen_run_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'vendor_slug', 'upc', name='uq_vendor_product_mapping'),
    )

    def __repr__(self):
        return (f"<VendorProductMapping(tenant='{self.tenant_id}', vendor='{self.vendor_slug}', "
                f"upc='{self.upc}', price={self.price}, active={self.is_active})>")
