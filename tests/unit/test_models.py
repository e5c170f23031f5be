"""Tests for receipt records and amount reconciliation."""

from datetime import date

import pytest

from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.receipt import (
    AMOUNT_TOLERANCE,
    MAX_LINE_QUANTITY,
    ExtractedReceiptData,
    LineItem,
    reconcile_amounts,
)
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorType
from receipt_pipeline.utils.exceptions import DeadlineExceeded, MalformedResponse, ProviderTimeout


@pytest.mark.parametrize("total,subtotal,tax,expected", [
    (42.50, 0, 0, (42.5, 42.5, 0.0)),
    (0, 7.82, 0.13, (7.95, 7.82, 0.13)),
    (7.95, 7.82, 0, (7.95, 7.82, 0.13)),
    (7.95, 0, 0.13, (7.95, 7.82, 0.13)),
    (5.00, 7.82, 0.13, (5.0, 5.0, 0.0)),
    (0, 0, 0, (0.0, 0.0, 0.0)),
])
def test_reconcile_amounts(total, subtotal, tax, expected):
    assert reconcile_amounts(total, subtotal, tax) == expected


@pytest.mark.parametrize("total,subtotal,tax", [
    (10.00, 9.00, 2.50),
    (100.00, 99.99, 0.00),
    (-3.00, 1.00, -1.00),
    (19.99, 18.50, 1.48),
])
def test_reconciled_amounts_within_tolerance(total, subtotal, tax):
    t, s, x = reconcile_amounts(total, subtotal, tax)
    assert abs(s + x - t) <= AMOUNT_TOLERANCE
    assert t >= 0 and s >= 0 and x >= 0
    assert s <= t


def test_line_item_repair_recomputes_unit_price():
    item = LineItem("item-0", "Bananas", quantity=6, unit_price=1.0, total_price=0.78).repaired()
    assert item.unit_price == pytest.approx(0.13)
    assert item.is_consistent


def test_line_item_repair_defaults():
    item = LineItem("item-0", "  ", quantity=0, unit_price=2.0, total_price=0).repaired()
    assert item.description == "Unknown Item"
    assert item.quantity == 1.0
    assert item.total_price == 2.0


def test_line_item_repair_caps_huge_quantity():
    item = LineItem("item-0", "Bolts", quantity=1e9, unit_price=0, total_price=12.5).repaired()
    assert item.quantity == MAX_LINE_QUANTITY
    assert item.unit_price > 0
    assert item.is_consistent


def test_line_item_from_dict_ignores_non_dict_vendor_data():
    item = LineItem.from_dict({"description": "Milk", "totalPrice": 3.48, "vendorSpecificData": "n/a"}, 0)
    assert item.vendor_specific_data == {}


def test_line_item_from_dict_accepts_both_key_styles():
    camel = LineItem.from_dict({"description": "Milk", "unitPrice": "3.48", "totalPrice": 3.48}, 2)
    snake = LineItem.from_dict({"description": "Milk", "unit_price": 3.48, "total_price": "$3.48"}, 2)
    assert camel.id == snake.id == "item-2"
    assert camel.unit_price == snake.unit_price == 3.48
    assert camel.total_price == snake.total_price == 3.48


def test_placeholder_vendor_is_not_a_vendor():
    assert not ExtractedReceiptData(vendor="Unknown").has_vendor
    assert not ExtractedReceiptData(vendor="Unknown Vendor").has_vendor
    assert ExtractedReceiptData(vendor="Walmart").has_vendor


def test_missing_fields():
    data = ExtractedReceiptData(vendor="Unknown", total_amount=0)
    assert data.missing_fields == ['vendor', 'totalAmount']


def test_reconciled_returns_copy():
    original = ExtractedReceiptData(vendor="Shop", total_amount=10.0, subtotal=9.0, tax=2.0, confidence=150)
    fixed = original.reconciled()
    assert fixed is not original
    assert original.tax == 2.0
    assert fixed.is_consistent
    assert fixed.confidence == 100.0


def test_to_dict_and_back():
    data = ExtractedReceiptData(
        vendor="Walmart", date=date(2024, 9, 15), total_amount=7.95, subtotal=7.82, tax=0.13,
        line_items=[LineItem("item-0", "Milk", 1, 3.48, 3.48, sku="007874201234")],
        receipt_number="03456",
    )
    payload = data.to_dict()
    assert payload["date"] == "2024-09-15"
    assert payload["lineItems"][0]["sku"] == "007874201234"
    assert payload["receiptNumber"] == "03456"

    restored = ExtractedReceiptData.from_dict(payload)
    assert restored.date == date(2024, 9, 15)
    assert restored.line_items[0].description == "Milk"


def test_add_note_appends():
    data = ExtractedReceiptData()
    data.add_note("first")
    data.add_note("second")
    assert data.notes == "first; second"


def test_agent_result_failure_from_exception():
    import time
    result = AgentResult.failure("recognition", ProviderTimeout("stub recognition", 1.0), time.time())
    assert not result.success
    assert result.error_type == "ProviderTimeout"
    assert result.confidence == 0.0
    assert result.retryable
    assert not result.terminal


def test_agent_result_failure_flags():
    import time
    malformed = AgentResult.failure("vendor_parsing", MalformedResponse("stub"), time.time())
    expired = AgentResult.failure("fallback", DeadlineExceeded("fallback"), time.time())
    assert not malformed.retryable and not malformed.terminal
    assert expired.terminal
    assert expired.to_dict()["terminal"] is True
    assert "terminal" not in malformed.to_dict()


def test_agent_result_clamps_confidence():
    result = AgentResult(success=True, agent_name="x", confidence=140)
    assert result.confidence == 100.0


def test_detection_confidence_clamped():
    detection = VendorDetectionResult(VendorType.WALMART, confidence=1.7)
    assert detection.confidence == 1.0
