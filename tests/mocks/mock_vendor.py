import csv
import io
from datetime import datetime
from typing import Any, Dict, List, Optional

from catalog_sync.core.enums import CredentialFieldType, FeedFormat, FeedProtocol
from catalog_sync.schemas.credentials import ConnectionTestResult, CredentialField
from catalog_sync.services.vendors.base import FeedPayload, InventoryFeedSpec, VendorHandler, VendorSpec

CSV_COLUMNS = ["UPC", "SKU", "Name", "Brand", "Model", "Category", "Price", "MSRP", "Qty"]

MOCK_CREDENTIAL_FIELDS = [
    CredentialField(name="account", label="Account Number", type=CredentialFieldType.TEXT),
    CredentialField(name="api_key", label="API Key", type=CredentialFieldType.API_KEY),
    CredentialField(name="region", label="Region", type=CredentialFieldType.TEXT, required=False),
]

MOCK_FIELD_MAPPING = {
    "upc": ["UPC", "upc"],
    "vendor_sku": "SKU",
    "name": "Name",
    "brand": "Brand",
    "model": "Model",
    "category": "Category",
    "price": "Price",
    "msrp": "MSRP",
    "quantity": "Qty",
}

ACME_SPEC = VendorSpec(
    slug="acme-supply",
    name="Acme Supply",
    protocol=FeedProtocol.REST,
    feed_format=FeedFormat.CSV,
    priority_rank=1,
    credential_fields=MOCK_CREDENTIAL_FIELDS,
    field_mapping=MOCK_FIELD_MAPPING,
    feed_options={"delimiter": ","},
)

BUDGET_SPEC = VendorSpec(
    slug="budget-wholesale",
    name="Budget Wholesale",
    protocol=FeedProtocol.REST,
    feed_format=FeedFormat.CSV,
    priority_rank=2,
    credential_fields=MOCK_CREDENTIAL_FIELDS,
    field_mapping=MOCK_FIELD_MAPPING,
    feed_options={"delimiter": ","},
)

INVENTORY_COLUMNS = ["UPC", "SKU", "Price", "Qty"]

# Acme with an hourly stock/price file alongside its catalog
STOCKED_SPEC = ACME_SPEC.model_copy(update={
    "inventory_feed": InventoryFeedSpec(
        field_mapping={"upc": "UPC", "vendor_sku": "SKU", "price": "Price", "quantity": "Qty"},
        feed_options={"delimiter": ","},
    ),
})

VALID_CREDENTIALS = {"account": "A-1001", "api_key": "sk_test_123456"}


def make_row(index: int, **overrides) -> Dict[str, str]:
    row = {
        "UPC": f"{700000000000 + index}",
        "SKU": f"SKU-{index:04d}",
        "Name": f"Widget {index}",
        "Brand": "Acme",
        "Model": f"W{index}",
        "Category": "Widgets",
        "Price": "19.99",
        "MSRP": "24.99",
        "Qty": "5",
    }
    row.update(overrides)
    return row


def make_csv(rows: List[Dict[str, str]], columns: List[str] = CSV_COLUMNS) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({column: row.get(column, "") for column in columns})
    return buffer.getvalue().encode("utf-8")


class MockVendorHandler(VendorHandler):
    """
    In-memory vendor. ``feed`` is served by ``fetch_feed``; exceptions queued
    in ``errors`` are raised first, one per call.
    ``inventory`` is served by ``fetch_inventory_feed`` when ``inventory_feed`` is declared.
    """
    protocol = FeedProtocol.REST

    def __init__(self, spec: VendorSpec = ACME_SPEC, feed: bytes = b"", is_complete: bool = True):
        super().__init__(spec, timeout=1.0)
        self.feed = feed or make_csv([])
        self.is_complete = is_complete
        self.errors: List[Exception] = []
        self.fetch_calls: List[Dict[str, Any]] = []
        self.connection_result = ConnectionTestResult(success=True, message="Connected to mock vendor")
        self.before_return = None
        self.inventory = make_csv([], INVENTORY_COLUMNS)

    async def fetch_feed(self, credentials: Dict[str, Any], since: Optional[datetime] = None) -> FeedPayload:
        self.fetch_calls.append({"credentials": dict(credentials), "since": since})
        if self.errors:
            raise self.errors.pop(0)
        if self.before_return is not None:
            await self.before_return()
        return FeedPayload(data=self.feed, format=self.feed_format, is_complete=self.is_complete)

    async def fetch_inventory_feed(self, credentials: Dict[str, Any]) -> FeedPayload:
        if not self.supports_inventory:
            return await super().fetch_inventory_feed(credentials)
        self.fetch_calls.append({"credentials": dict(credentials), "inventory": True})
        if self.errors:
            raise self.errors.pop(0)
        return FeedPayload(data=self.inventory, format=FeedFormat.CSV, is_complete=False)

    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionTestResult:
        return self.connection_result.model_copy()


class FakeFTP:
    """
    Stand-in for ftplib.FTP. ``files`` maps directory -> {file name: bytes}.
    ``connect_errors`` are raised by successive connect() calls.
    """

    def __init__(self, files=None, connect_errors=None, login_error=None):
        self.files = files or {}
        self.connect_errors = list(connect_errors or [])
        self.login_error = login_error
        self.cwd_path = "/"
        self.calls: List[tuple] = []

    def __call__(self):
        return self

    def connect(self, host, port, timeout=None):
        self.calls.append(("connect", host, port, timeout))
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        return "220 Welcome"

    def login(self, user, passwd):
        self.calls.append(("login", user))
        if self.login_error is not None:
            raise self.login_error
        return "230 Logged in"

    def pwd(self):
        return self.cwd_path

    def cwd(self, path):
        import ftplib
        self.calls.append(("cwd", path))
        if path not in self.files:
            raise ftplib.error_perm(f"550 {path}: No such file or directory")
        self.cwd_path = path
        return "250 OK"

    def nlst(self):
        return list(self.files.get(self.cwd_path, {}))

    def retrbinary(self, cmd, callback):
        self.calls.append(("retrbinary", cmd))
        name = cmd.split(" ", 1)[1]
        data = self.files[self.cwd_path][name]
        for start in range(0, len(data), 8192):
            callback(data[start:start + 8192])
        return "226 Transfer complete"

    def quit(self):
        self.calls.append(("quit",))
        return "221 Bye"

    def close(self):
        self.calls.append(("close",))
