"""
Shared capability interface for vendor handlers.

A handler knows how to reach one vendor (FTP, REST or SOAP), which
credentials that takes, and how the vendor's records map onto
``NormalizedRow``. Handlers are built once at startup from ``VendorSpec``
entries and are read-only afterwards.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from catalog_sync.core.enums import DEFAULT_PRIORITY_RANK, FeedFormat, FeedProtocol
from catalog_sync.core.exceptions import RowValidationError, VendorError
from catalog_sync.core.utils import first_present, lookup_path, utcnow
from catalog_sync.schemas.credentials import ConnectionTestResult, CredentialField
from catalog_sync.schemas.feed import InventoryRow, NormalizedRow, normalize_upc

logger = logging.getLogger(__name__)

NORMALIZED_ATTRIBUTES = (
    "upc", "vendor_sku", "price", "msrp", "quantity",
    "name", "brand", "model", "category", "description", "image_url",
)

FieldSource = Union[str, List[str]]

INVENTORY_ATTRIBUTES = ("upc", "vendor_sku", "price", "quantity")


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


class InventoryFeedSpec(BaseModel):
    """A lightweight stock/price feed published alongside the catalog"""
    model_config = ConfigDict(frozen=True)

    field_mapping: Dict[str, FieldSource]
    feed_format: FeedFormat = FeedFormat.CSV
    feed_options: Dict[str, Any] = Field(default_factory=dict)


class VendorSpec(BaseModel):
    """Static description of a supported vendor"""
    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    protocol: FeedProtocol
    feed_format: FeedFormat
    credential_fields: List[CredentialField]
    priority_rank: int = DEFAULT_PRIORITY_RANK
    stale_after_hours: Optional[float] = None
    field_mapping: Dict[str, FieldSource] = Field(default_factory=dict)
    feed_options: Dict[str, Any] = Field(default_factory=dict)
    inventory_feed: Optional[InventoryFeedSpec] = None


class FeedPayload(BaseModel):
    """Raw feed bytes as retrieved from the vendor"""
    data: bytes
    format: FeedFormat
    is_complete: bool = True   # False for incremental (since-date) pulls
    fetched_at: datetime = Field(default_factory=utcnow)
    source: Optional[str] = None


class VendorHandler(ABC):
    protocol: FeedProtocol

    def __init__(self, spec: VendorSpec, timeout: float = 60.0):
        if spec.protocol != self.protocol:
            raise ValueError(f"{type(self).__name__} cannot serve {spec.protocol.value} vendor {spec.slug}")
        self.spec = spec
        self.timeout = timeout

    def __repr__(self):
        return f"<{type(self).__name__}(slug='{self.slug}')>"

    @property
    def slug(self) -> str:
        return self.spec.slug

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def credential_fields(self) -> List[CredentialField]:
        return self.spec.credential_fields

    @property
    def feed_format(self) -> FeedFormat:
        return self.spec.feed_format

    @property
    def feed_options(self) -> Dict[str, Any]:
        return self.spec.feed_options

    @property
    def record_path(self) -> Optional[str]:
        """Dotted path to the record list inside a JSON or XML document"""
        return self.feed_options.get("record_path")

    @abstractmethod
    async def fetch_feed(self, credentials: Dict[str, Any], since: Optional[datetime] = None) -> FeedPayload:
        """Retrieve the raw feed. ``since`` requests an incremental pull where supported."""
        pass

    @abstractmethod
    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionTestResult:
        """Lightweight reachability and authentication check. Never raises vendor errors."""
        pass

    @property
    def supports_inventory(self) -> bool:
        return self.spec.inventory_feed is not None

    async def fetch_inventory_feed(self, credentials: Dict[str, Any]) -> FeedPayload:
        """Retrieve the stock/price-only feed. Only vendors with an ``inventory_feed`` have one."""
        raise VendorError(f"{self.name} does not publish an inventory feed", vendor_slug=self.slug)

    # --- Record mapping ---

    def sources_for(self, attribute: str, inventory: bool = False) -> List[str]:
        mapping = self.spec.inventory_feed.field_mapping if inventory else self.spec.field_mapping
        source = mapping.get(attribute)
        if source is None:
            return []
        return [source] if isinstance(source, str) else list(source)

    def map_record(self, record: Dict[str, Any], inventory: bool = False) -> Dict[str, Any]:
        """Pick each normalized attribute from its primary source field, then its fallbacks."""
        mapped = {}
        for attribute in (INVENTORY_ATTRIBUTES if inventory else NORMALIZED_ATTRIBUTES):
            value = first_present(lookup_path(record, source) for source in self.sources_for(attribute, inventory))
            if value is not None:
                mapped[attribute] = value
        return mapped

    def parse_row(self, record: Dict[str, Any]) -> Optional[NormalizedRow]:
        """
        Map and validate one feed record.

        Returns None when the record has no usable UPC (the importer counts
        it as skipped).

        Raises:
            RowValidationError: the record has a UPC but invalid field values.
        """
        mapped = self.map_record(record)
        if normalize_upc(mapped.get("upc")) is None:
            return None
        try:
            return NormalizedRow.model_validate(mapped)
        except ValidationError as e:
            raise RowValidationError(_describe(e))

    def parse_inventory_row(self, record: Dict[str, Any]) -> Optional[InventoryRow]:
        """Like ``parse_row`` for the inventory feed: only UPC, SKU, price and quantity."""
        mapped = self.map_record(record, inventory=True)
        if normalize_upc(mapped.get("upc")) is None:
            return None
        try:
            return InventoryRow.model_validate(mapped)
        except ValidationError as e:
            raise RowValidationError(_describe(e))

    def vendor_sku_of(self, record: Dict[str, Any]) -> Optional[str]:
        value = self.map_record(record).get("vendor_sku")
        return None if value is None else str(value)

    def _failed(self, message: str) -> ConnectionTestResult:
        logger.warning(f"{self.name} connection test failed: {message}")
        return ConnectionTestResult(success=False, message=message)
