from decimal import Decimal

import pytest

from catalog_sync.core.exceptions import RowValidationError
from catalog_sync.services.vendors.definitions import BILL_HICKS, CHATTANOOGA, LIPSEYS, SPORTS_SOUTH
from catalog_sync.services.vendors.ftp import FTPHandler
from catalog_sync.services.vendors.rest import RESTHandler
from catalog_sync.services.vendors.soap import SOAPHandler


def test_bill_hicks_csv_record():
    """Test a Bill Hicks catalog line maps onto the normalized row"""
    handler = FTPHandler(BILL_HICKS)
    row = handler.parse_row({
        "universal_product_code": "12345678905",
        "product_name": "BH-12345",
        "short_description": "",
        "long_description": "Widget, blued finish",
        "MFG_product": "Acme",
        "category_description": "Widgets",
        "product_price": "$1,049.00",
        "msrp": "1299",
        "qty_avail": "3",
    })

    assert row.upc == "012345678905"
    assert row.vendor_sku == "BH-12345"
    # short description is blank so the long one is used
    assert row.name == "Widget, blued finish"
    assert row.brand == "Acme"
    assert row.price == Decimal("1049.00")
    assert row.quantity == 3


def test_chattanooga_json_record():
    handler = RESTHandler(CHATTANOOGA)
    row = handler.parse_row({
        "cssi_id": "CSSI-1",
        "upc": 12345678905,
        "name": "Widget",
        "manufacturer": "Acme",
        "custom_price": None,
        "price": 10.5,
        "inventory": 12,
        "image_location": "https://img.example.com/w.jpg",
    })

    assert row.upc == "012345678905"
    assert row.price == Decimal("10.50")
    assert row.image_url == "https://img.example.com/w.jpg"


def test_lipseys_json_record():
    handler = RESTHandler(LIPSEYS)
    row = handler.parse_row({
        "itemNo": "LP-1",
        "upc": "012345678905",
        "description1": "Widget",
        "description2": "Blued finish",
        "manufacturer": "Acme",
        "price": 12,
        "msrp": 15,
        "quantity": 0,
    })
    assert row.vendor_sku == "LP-1"
    assert row.description == "Blued finish"
    assert row.quantity == 0


def test_sports_south_xml_record():
    handler = SOAPHandler(SPORTS_SOUTH)
    row = handler.parse_row({"ITEMNO": "1001", "ITUPC": "012345678905", "IDESC": "Widget", "CPRC": "9.99"})
    assert row.vendor_sku == "1001"
    assert row.name == "Widget"
    assert row.price == Decimal("9.99")


def test_record_without_upc_is_skipped():
    handler = RESTHandler(LIPSEYS)
    assert handler.parse_row({"itemNo": "LP-1", "upc": ""}) is None


def test_invalid_values_raise_row_error():
    """Test a usable UPC with a bad price is a row failure, not a skip"""
    handler = RESTHandler(LIPSEYS)
    with pytest.raises(RowValidationError) as exc_info:
        handler.parse_row({"itemNo": "LP-1", "upc": "012345678905", "price": "TBD"})
    assert "price" in str(exc_info.value)
    assert handler.vendor_sku_of({"itemNo": "LP-1"}) == "LP-1"


def test_bill_hicks_inventory_record():
    """Test an hourly stock line maps only identity and stock fields"""
    handler = FTPHandler(BILL_HICKS)
    row = handler.parse_inventory_row({"UPC": "12345678905", "Product": "BH-12345", "Qty Avail": "1,200"})

    assert row.upc == "012345678905"
    assert row.vendor_sku == "BH-12345"
    assert row.quantity == 1200
    assert row.price is None
    assert set(handler.map_record({"UPC": "12345678905", "Qty Avail": "2"}, inventory=True)) == {"upc", "quantity"}


def test_inventory_record_errors():
    handler = FTPHandler(BILL_HICKS)
    assert handler.parse_inventory_row({"UPC": "n/a", "Qty Avail": "3"}) is None
    with pytest.raises(RowValidationError) as exc_info:
        handler.parse_inventory_row({"UPC": "012345678905", "Qty Avail": "lots"})
    assert "quantity" in str(exc_info.value)


def test_inventory_feed_support():
    assert FTPHandler(BILL_HICKS).supports_inventory is True
    assert RESTHandler(LIPSEYS).supports_inventory is False
