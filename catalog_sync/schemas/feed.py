"""
Schemas for normalized feed rows and import results.
"""
import html
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from catalog_sync.schemas.base import BaseSchema

UPC_MIN_LENGTH = 8
UPC_MAX_LENGTH = 14
UPC_PAD_LENGTH = 12

_PRICE_NOISE = re.compile(r"[\s$,]")


def normalize_upc(value: Any) -> Optional[str]:
    """
    Clean a vendor-supplied UPC.

    Returns None when the value cannot identify a product (blank, non-numeric,
    wrong length, all zeros). Short codes are left-padded to 12 digits.
    """
    if value is None:
        return None
    text = str(value).strip()
    if text.endswith(".0"):
        # spreadsheet exports turn numeric UPCs into floats
        text = text[:-2]
    text = text.replace("-", "").replace(" ", "")
    if not text.isdigit():
        return None
    if not UPC_MIN_LENGTH <= len(text) <= UPC_MAX_LENGTH:
        return None
    if not text.strip("0"):
        return None
    if len(text) < UPC_PAD_LENGTH:
        text = text.zfill(UPC_PAD_LENGTH)
    return text


def clean_price(v):
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    try:
        price = Decimal(_PRICE_NOISE.sub("", str(v)))
    except InvalidOperation:
        raise ValueError(f'Price must be a valid number, got: {v}')
    if not price.is_finite():
        raise ValueError(f'Price must be a valid number, got: {v}')
    if price < 0:
        raise ValueError(f'Price cannot be negative, got: {v}')
    return price.quantize(Decimal("0.01"))


def clean_quantity(v):
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    try:
        quantity = Decimal(str(v).replace(",", "").strip())
    except InvalidOperation:
        raise ValueError(f'Quantity must be a whole number, got: {v}')
    if not quantity.is_finite() or quantity != quantity.to_integral_value():
        raise ValueError(f'Quantity must be a whole number, got: {v}')
    if quantity < 0:
        raise ValueError(f'Quantity cannot be negative, got: {v}')
    return int(quantity)


def clean_text(v):
    if v is None:
        return None
    text = html.unescape(str(v)).strip()
    return text or None


def _require_upc(v):
    upc = normalize_upc(v)
    if upc is None:
        raise ValueError(f'Unusable UPC: {v!r}')
    return upc


class NormalizedRow(BaseSchema):
    """A feed record mapped onto the normalized product/offer attributes"""
    upc: str
    vendor_sku: Optional[str] = None
    price: Optional[Decimal] = None
    msrp: Optional[Decimal] = None
    quantity: Optional[int] = None

    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('upc', mode='before')
    @classmethod
    def validate_upc(cls, v):
        return _require_upc(v)

    @field_validator('price', 'msrp', mode='before')
    @classmethod
    def validate_price(cls, v):
        return clean_price(v)

    @field_validator('quantity', mode='before')
    @classmethod
    def validate_quantity(cls, v):
        return clean_quantity(v)

    @field_validator('vendor_sku', 'name', 'brand', 'model', 'category', 'description', 'image_url', mode='before')
    @classmethod
    def validate_text(cls, v):
        return clean_text(v)


class InventoryRow(BaseSchema):
    """A record from a stock/price-only feed. Descriptive fields are never carried."""
    upc: str
    vendor_sku: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None

    @field_validator('upc', mode='before')
    @classmethod
    def validate_upc(cls, v):
        return _require_upc(v)

    @field_validator('price', mode='before')
    @classmethod
    def validate_price(cls, v):
        return clean_price(v)

    @field_validator('quantity', mode='before')
    @classmethod
    def validate_quantity(cls, v):
        return clean_quantity(v)

    @field_validator('vendor_sku', mode='before')
    @classmethod
    def clean_sku(cls, v):
        return clean_text(v)


class RowError(BaseModel):
    """A single row that could not be imported"""
    row: Optional[int] = None
    sku: Optional[str] = None
    upc: Optional[str] = None
    message: str


class ImportResult(BaseModel):
    seen: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    deactivated: int = 0
    errors: List[RowError] = Field(default_factory=list)
    seen_upcs: Set[str] = Field(default_factory=set)
    affected_upcs: Set[str] = Field(default_factory=set)

    def add_error(self, message: str, limit: int, row: Optional[int] = None,
                  sku: Optional[str] = None, upc: Optional[str] = None):
        if len(self.errors) < limit:
            self.errors.append(RowError(row=row, sku=sku, upc=upc, message=message))

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "seen": self.seen,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
            "deactivated": self.deactivated,
        }
