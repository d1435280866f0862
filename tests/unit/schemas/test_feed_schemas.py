from decimal import Decimal

import pytest
from pydantic import ValidationError

from catalog_sync.schemas.feed import ImportResult, NormalizedRow, normalize_upc


@pytest.mark.parametrize("value,expected", [
    ("012345678905", "012345678905"),
    ("12345678905.0", "012345678905"),
    ("0-12345-67890-5", "012345678905"),
    ("12345678", "000012345678"),
    ("00012345678905", "00012345678905"),
    ("", None),
    (None, None),
    ("000000000000", None),
    ("ABC123456789", None),
    ("1234567", None),
    ("123456789012345", None),
])
def test_normalize_upc(value, expected):
    assert normalize_upc(value) == expected


def test_normalized_row_cleans_values():
    """Test prices, quantities and text are normalized"""
    row = NormalizedRow.model_validate({
        "upc": "12345678905",
        "price": "$1,299.5",
        "msrp": " 1499 ",
        "quantity": "12.0",
        "name": "  Smith &amp; Wesson  ",
        "brand": "   ",
    })
    assert row.upc == "012345678905"
    assert row.price == Decimal("1299.50")
    assert row.msrp == Decimal("1499.00")
    assert row.quantity == 12
    assert row.name == "Smith & Wesson"
    assert row.brand is None


@pytest.mark.parametrize("field,value", [
    ("price", "call for price"),
    ("price", "-5"),
    ("quantity", "2.5"),
    ("quantity", "-1"),
    ("upc", "n/a"),
])
def test_normalized_row_rejects_bad_values(field, value):
    with pytest.raises(ValidationError):
        NormalizedRow.model_validate({"upc": "012345678905", field: value})


def test_import_result_error_limit():
    """Test recorded row errors are capped while counts keep going"""
    result = ImportResult()
    for row in range(5):
        result.failed += 1
        result.add_error("bad row", limit=3, row=row)

    assert result.failed == 5
    assert len(result.errors) == 3
    assert result.counts["failed"] == 5
