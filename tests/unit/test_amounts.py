"""Tests for amount candidate classification and total inference."""

import pytest

from receipt_pipeline.parser.amounts import AmountExtractor
from receipt_pipeline.parser.normalizers import AmountNormalizer


@pytest.fixture
def extractor():
    return AmountExtractor()


def test_explicit_totals(extractor):
    summary = extractor.extract(["SUBTOTAL 7.82", "TAX 0.13", "TOTAL 7.95"])
    assert (summary.total, summary.subtotal, summary.tax) == (7.95, 7.82, 0.13)
    assert not summary.inferred_total
    assert summary.selected['total'].confidence == 100


def test_single_trailing_amount_becomes_total(extractor):
    summary = extractor.extract(["CORNER CAFE", "Coffee and pastry", "$42.50"])
    assert summary.total == 42.50
    assert summary.subtotal == 42.50
    assert summary.tax == 0.0
    assert summary.inferred_total


def test_change_and_payment_not_inferred_as_total(extractor):
    summary = extractor.extract(["Latte 4.50", "CASH 20.00", "CHANGE 15.50"])
    assert summary.total == 4.50


def test_total_tax_line_is_tax(extractor):
    summary = extractor.extract(["SUBTOTAL 10.00", "TOTAL TAX 0.80", "TOTAL 10.80"])
    assert summary.selected['tax'].amount == 0.80
    assert summary.total == 10.80


def test_subtotal_and_tax_complete_total(extractor):
    summary = extractor.extract(["Sub-total: $20.00", "Sales Tax: $1.60"])
    assert summary.total == 21.60


def test_late_total_gets_position_boost(extractor):
    lines = ["Shop", "Item 1.00", "Item 2.00", "Item 3.00", "Amount due 6.00"]
    summary = extractor.extract(lines)
    assert summary.selected['total'].confidence == 100
    assert summary.total == 6.00


def test_candidates_ignore_implausible_amounts(extractor):
    candidates = extractor.find_candidates(["REF 123456789.00", "Item 3.00"])
    assert [c.amount for c in candidates] == [3.00]


@pytest.mark.parametrize("raw,expected", [
    ("$1,234.56", 1234.56),
    ("12,50", 12.5),
    ("7.95", 7.95),
])
def test_amount_normalizer(raw, expected):
    assert AmountNormalizer().to_float(raw) == expected
