"""
The explicit table of supported vendors.

Everything vendor-specific lives here: credential forms, feed locations,
field mappings (primary source first, then fallbacks) and default merge
priority. Handlers are generic per protocol.
"""

from typing import List

from catalog_sync.core.enums import CredentialFieldType as T, FeedFormat, FeedProtocol
from catalog_sync.schemas.credentials import CredentialField
from catalog_sync.services.vendors.base import InventoryFeedSpec, VendorSpec

SPORTS_SOUTH_ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/" xmlns:ss="http://webservices.theshootingwarehouse.com/smart/Inventory.asmx">
  <soap:Body>
    <ss:DailyItemUpdate>
      <ss:CustomerNumber>{customer_number}</ss:CustomerNumber>
      <ss:UserName>{username}</ss:UserName>
      <ss:Password>{password}</ss:Password>
      <ss:Source>{source}</ss:Source>
      <ss:LastUpdate>{since}</ss:LastUpdate>
      <ss:LastItem>-1</ss:LastItem>
    </ss:DailyItemUpdate>
  </soap:Body>
</soap:Envelope>"""


BILL_HICKS = VendorSpec(
    slug="bill-hicks",
    name="Bill Hicks & Co.",
    protocol=FeedProtocol.FTP,
    feed_format=FeedFormat.CSV,
    priority_rank=3,
    credential_fields=[
        CredentialField(name="host", label="FTP Server", type=T.TEXT),
        CredentialField(name="username", label="FTP Username", type=T.TEXT),
        CredentialField(name="password", label="FTP Password", type=T.PASSWORD),
        CredentialField(name="port", label="FTP Port", type=T.NUMBER, required=False, placeholder="21"),
        CredentialField(name="base_path", label="Base Directory", type=T.TEXT, required=False,
                        placeholder="/MicroBiz/Feeds"),
    ],
    field_mapping={
        "upc": "universal_product_code",
        "vendor_sku": "product_name",
        "name": ["short_description", "long_description", "product_name"],
        "description": ["long_description", "short_description"],
        "brand": "MFG_product",
        "category": "category_description",
        "price": "product_price",
        "msrp": "msrp",
        "quantity": ["qty_avail", "Qty Avail"],
    },
    feed_options={
        "base_path": "/MicroBiz/Feeds",
        "file_name": "MicroBiz_Daily_Catalog.csv",
        "delimiter": ",",
    },
    inventory_feed=InventoryFeedSpec(
        field_mapping={
            "upc": "UPC",
            "vendor_sku": "Product",
            "quantity": "Qty Avail",
        },
        feed_options={"file_name": "MicroBiz_Hourly_Inventory.csv", "delimiter": ","},
    ),
)

CHATTANOOGA = VendorSpec(
    slug="chattanooga",
    name="Chattanooga Shooting Supplies",
    protocol=FeedProtocol.REST,
    feed_format=FeedFormat.JSON,
    priority_rank=2,
    credential_fields=[
        CredentialField(name="sid", label="API SID", type=T.TEXT),
        CredentialField(name="token", label="API Token", type=T.TOKEN),
        CredentialField(name="account_number", label="Account Number", type=T.TEXT, required=False),
    ],
    field_mapping={
        "upc": ["upc", "UPC"],
        "vendor_sku": ["cssi_id", "SKU"],
        "name": ["name", "Web Item Name", "Item Name", "model"],
        "description": ["Web Item Description", "name"],
        "brand": ["manufacturer", "Manufacturer"],
        "model": "model",
        "category": ["category", "Category"],
        "price": ["custom_price", "price", "retail_price", "map_price"],
        "msrp": ["msrp", "MSRP"],
        "quantity": ["inventory", "quantity"],
        "image_url": ["image_location", "image_url"],
    },
    feed_options={
        "base_url": "https://api.chattanoogashooting.com/rest/v5",
        "feed_path": "/items",
        "auth": {"type": "basic", "username_field": "sid", "password_field": "token"},
        "pagination": {
            "page_param": "page",
            "per_page_param": "per_page",
            "per_page": 250,
            "items_key": "items",
            "page_count_key": "pagination.page_count",
        },
        "since_param": "modified_since",
        "since_format": "%Y-%m-%d",
    },
)

LIPSEYS = VendorSpec(
    slug="lipseys",
    name="Lipsey's",
    protocol=FeedProtocol.REST,
    feed_format=FeedFormat.JSON,
    priority_rank=1,
    credential_fields=[
        CredentialField(name="email", label="Account Email", type=T.EMAIL),
        CredentialField(name="password", label="Password", type=T.PASSWORD),
    ],
    field_mapping={
        "upc": "upc",
        "vendor_sku": "itemNo",
        "name": ["description1", "description2", "model"],
        "description": ["description2", "description1"],
        "brand": "manufacturer",
        "model": "model",
        "category": ["itemType", "type"],
        "price": ["price", "currentPrice"],
        "msrp": ["msrp", "retailMap"],
        "quantity": "quantity",
        "image_url": "imageName",
    },
    feed_options={
        "base_url": "https://api.lipseys.com/api/Integration",
        "feed_path": "/Items/CatalogFeed",
        "items_key": "data",
        "auth": {
            "type": "login",
            "path": "/Authentication/Login",
            "username_field": "email",
            "password_field": "password",
            "username_key": "Email",
            "password_key": "Password",
            "token_key": "token",
            "header": "Token",
        },
    },
)

SPORTS_SOUTH = VendorSpec(
    slug="sports-south",
    name="Sports South",
    protocol=FeedProtocol.SOAP,
    feed_format=FeedFormat.XML,
    priority_rank=4,
    credential_fields=[
        CredentialField(name="customer_number", label="Customer Number", type=T.TEXT),
        CredentialField(name="username", label="Username", type=T.TEXT),
        CredentialField(name="password", label="Password", type=T.PASSWORD),
        CredentialField(name="source", label="Source Code", type=T.TEXT),
    ],
    field_mapping={
        "upc": ["ITUPC", "UPC"],
        "vendor_sku": "ITEMNO",
        "name": ["TXTREF", "IDESC", "IMODEL"],
        "description": ["IDESC", "TXTREF"],
        "brand": "MFGR_NAME",
        "model": ["IMODEL", "MFGINO"],
        "category": "CATID",
        "price": "CPRC",
        "msrp": "MFPRC",
        "quantity": "QTYOH",
    },
    feed_options={
        "base_url": "http://webservices.theshootingwarehouse.com/smart/inventory.asmx",
        "soap_action": "http://webservices.theshootingwarehouse.com/smart/Inventory.asmx/DailyItemUpdate",
        "envelope": SPORTS_SOUTH_ENVELOPE,
        "full_since": "1/1/1990",
        "since_format": "%m/%d/%Y",
        "record_path": "Envelope.Body.DailyItemUpdateResponse.DailyItemUpdateResult.diffgram.NewDataSet.Table",
    },
)

DEFAULT_VENDORS: List[VendorSpec] = [BILL_HICKS, CHATTANOOGA, LIPSEYS, SPORTS_SOUTH]
