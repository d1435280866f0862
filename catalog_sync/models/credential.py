# catalog_sync/models/credential.py
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from catalog_sync.core.enums import ConnectionStatus, CredentialStatus
from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class TenantVendorCredential(Base):
    """Encrypted credential blob for one (tenant, vendor) pair. Revoked, never deleted."""
    __tablename__ = "tenant_vendor_credentials"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    vendor_slug = Column(String(64), nullable=False, index=True)

    encrypted_blob = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default=CredentialStatus.ACTIVE.value)
    revoked_reason = Column(Text, nullable=True)

    # --- Connection test bookkeeping ---
    connection_status = Column(String(16), nullable=False, default=ConnectionStatus.UNTESTED.value)
    connection_message = Column(Text, nullable=True)
    last_verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'vendor_slug', name='uq_tenant_vendor_credential'),
    )

    def __repr__(self):
        return f"<TenantVendorCredential(tenant='{self.tenant_id}', vendor='{self.vendor_slug}', status='{self.status}')>"
