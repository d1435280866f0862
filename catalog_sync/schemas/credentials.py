"""
Schemas describing vendor credential forms and connection checks.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from catalog_sync.core.enums import CredentialFieldType
from catalog_sync.schemas.base import BaseSchema


class CredentialField(BaseSchema):
    """One entry of a vendor's credential schema"""
    name: str
    label: str
    type: CredentialFieldType = CredentialFieldType.TEXT
    required: bool = True
    secret: Optional[bool] = None
    placeholder: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError('Credential field name is required')
        return v

    @model_validator(mode='after')
    def default_secret_from_type(self):
        if self.secret is None:
            self.secret = self.type.is_secret
        return self


def schema_signature(fields: List[CredentialField]) -> List[tuple]:
    """Comparable form of a credential schema: (name, type, required) per field"""
    return sorted((f.name, f.type.value, f.required) for f in fields)


class ConnectionTestResult(BaseSchema):
    success: bool
    message: str
    tested_at: Optional[datetime] = None


class CredentialSummary(BaseSchema):
    """Masked view of stored credentials for display surfaces"""
    tenant_id: str
    vendor_slug: str
    status: str
    connection_status: str
    last_verified_at: Optional[datetime] = None
    fields: dict = Field(default_factory=dict)
