"""
Receipt Data Classes.

This module defines the canonical structured expense record produced by
every parsing path (heuristic parser, vendor parsing agent, fallback
strategies), together with the amount reconciliation rules that keep
totals and line items arithmetically consistent.

Author: ML Engineering Team
"""

import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from receipt_pipeline.utils.helpers import round_money, safe_float

# Vendor values that count as "no vendor found"
PLACEHOLDER_VENDORS = {"", "unknown", "unknown vendor"}

# Descriptions that count as "no description found"
PLACEHOLDER_DESCRIPTIONS = {"", "unknown item", "item"}

AMOUNT_TOLERANCE = 0.02
LINE_ITEM_TOLERANCE = 0.05
# Keeps round(total / quantity, 6) within LINE_ITEM_TOLERANCE of the total
MAX_LINE_QUANTITY = 10000


def reconcile_amounts(
    total: float,
    subtotal: float,
    tax: float,
    tolerance: float = AMOUNT_TOLERANCE
) -> Tuple[float, float, float]:
    """
    Complete and reconcile receipt totals.

    Missing values are derived algebraically (total = subtotal + tax,
    subtotal = total - tax, tax = total - subtotal), subtotal is clamped
    to the total and tax to zero, and any remaining disagreement is
    resolved in favour of the total by recomputing tax.

    Args:
        total: Total amount (0 when unknown).
        subtotal: Subtotal (0 when unknown).
        tax: Tax (0 when unknown).
        tolerance: Allowed |subtotal + tax - total|.

    Returns:
        Tuple of (total, subtotal, tax), each rounded to cents and >= 0.

    Example:
        >>> reconcile_amounts(42.50, 0, 0)
        (42.5, 42.5, 0.0)
        >>> reconcile_amounts(0, 7.82, 0.13)
        (7.95, 7.82, 0.13)
    """
    total = max(0.0, round_money(total))
    subtotal = max(0.0, round_money(subtotal))
    tax = max(0.0, round_money(tax))

    # Step 1: Fill whichever value is missing
    if total == 0 and (subtotal > 0 or tax > 0):
        total = round_money(subtotal + tax)
    elif subtotal == 0 and total > 0:
        subtotal = max(0.0, round_money(total - tax))
    elif tax == 0 and 0 < subtotal < total:
        tax = round_money(total - subtotal)

    # Step 2: Clamp
    subtotal = min(subtotal, total)

    # Step 3: Total wins any remaining disagreement
    if abs(subtotal + tax - total) > tolerance:
        tax = max(0.0, round_money(total - subtotal))

    return total, subtotal, tax


def _parse_date(value: Any) -> Optional[date]:
    """Parse an ISO string, date or datetime into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError):
        return None


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, accepting camelCase and snake_case."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class LineItem:
    """
    One purchased product or service entry.

    Attributes:
        id: Stable identifier within the receipt (e.g. "item-0")
        description: Cleaned, non-empty description
        quantity: Quantity purchased (> 0)
        unit_price: Price per unit (>= 0)
        total_price: Extended price (>= 0)
        category: Expense category
        sku: Optional product code
        vendor_specific_data: Extra vendor fields such as bulk pricing

    Example:
        >>> item = LineItem("item-0", "Bananas", 6, 0.13, 0.78)
        >>> item.is_consistent
        True
    """
    id: str
    description: str
    quantity: float = 1.0
    unit_price: float = 0.0
    total_price: float = 0.0
    category: str = "Other"
    sku: Optional[str] = None
    vendor_specific_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_consistent(self) -> bool:
        """Whether quantity x unit price matches the total price."""
        return abs(self.quantity * self.unit_price - self.total_price) < LINE_ITEM_TOLERANCE

    @property
    def has_placeholder_description(self) -> bool:
        return self.description.strip().lower() in PLACEHOLDER_DESCRIPTIONS

    def repaired(self) -> 'LineItem':
        """
        Return a copy satisfying the line-item invariants.

        Quantity defaults to 1 and is capped at MAX_LINE_QUANTITY, negative
        prices are zeroed, and when quantity x unit price disagrees with
        the total price the unit price is recomputed from the total (or
        the total from the unit price when no total is known).
        """
        quantity = self.quantity if self.quantity and self.quantity > 0 else 1.0
        if quantity > MAX_LINE_QUANTITY:
            quantity = float(MAX_LINE_QUANTITY)
        unit_price = max(0.0, float(self.unit_price or 0.0))
        total_price = max(0.0, round_money(self.total_price or 0.0))
        description = self.description.strip() or "Unknown Item"

        if abs(quantity * unit_price - total_price) >= LINE_ITEM_TOLERANCE:
            if total_price > 0:
                unit_price = round(total_price / quantity, 6)
            else:
                total_price = round_money(quantity * unit_price)

        return replace(
            self,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase output format."""
        result = {
            'id': self.id,
            'description': self.description,
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'totalPrice': self.total_price,
            'category': self.category,
        }
        if self.sku:
            result['sku'] = self.sku
        if self.vendor_specific_data:
            result['vendorSpecificData'] = self.vendor_specific_data
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> 'LineItem':
        """
        Build a line item from loosely-typed data, applying defaults.

        Args:
            data: Dictionary with camelCase or snake_case keys.
            index: Position used for the default id.
        """
        sku = _pick(data, 'sku')
        vendor_data = _pick(data, 'vendorSpecificData', 'vendor_specific_data')
        return cls(
            id=str(_pick(data, 'id', default=f"item-{index}")),
            description=str(_pick(data, 'description', default="Unknown Item")).strip() or "Unknown Item",
            quantity=safe_float(_pick(data, 'quantity'), 1.0) or 1.0,
            unit_price=safe_float(_pick(data, 'unitPrice', 'unit_price'), 0.0),
            total_price=safe_float(_pick(data, 'totalPrice', 'total_price'), 0.0),
            category=str(_pick(data, 'category', default="Other")),
            sku=str(sku) if sku else None,
            vendor_specific_data=dict(vendor_data) if isinstance(vendor_data, dict) else {},
        )

    def __repr__(self) -> str:
        return (
            f"LineItem('{self.description}', qty={self.quantity}, "
            f"unit={self.unit_price}, total={self.total_price})"
        )


@dataclass
class ExtractedReceiptData:
    """
    Structured, validated expense record for one receipt.

    Attributes:
        vendor: Merchant name
        date: Transaction date
        total_amount: Amount paid
        subtotal: Pre-tax amount
        tax: Tax amount
        currency: ISO currency code
        line_items: Purchased items
        category: Expense category
        confidence: Extraction confidence (0-100)
        notes: Free-form notes from the extracting stage
        receipt_number: Transaction/receipt identifier, if found
        payment_method: Tender type, if found

    Example:
        >>> data = ExtractedReceiptData(vendor="Walmart", total_amount=7.95,
        ...                             subtotal=7.82, tax=0.13)
        >>> data.is_consistent
        True
    """
    vendor: str = "Unknown"
    date: date = field(default_factory=date.today)
    total_amount: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    currency: str = "USD"
    line_items: List[LineItem] = field(default_factory=list)
    category: str = "Other"
    confidence: float = 0.0
    notes: Optional[str] = None
    receipt_number: Optional[str] = None
    payment_method: Optional[str] = None

    @property
    def has_vendor(self) -> bool:
        """Whether a real vendor name was found."""
        return (self.vendor or "").strip().lower() not in PLACEHOLDER_VENDORS

    @property
    def is_consistent(self) -> bool:
        """Whether subtotal + tax matches the total within tolerance."""
        return abs(self.subtotal + self.tax - self.total_amount) <= AMOUNT_TOLERANCE

    @property
    def missing_fields(self) -> List[str]:
        """Required fields that are absent or zero."""
        missing = []
        if not self.has_vendor:
            missing.append('vendor')
        if self.date is None:
            missing.append('date')
        if self.total_amount <= 0:
            missing.append('totalAmount')
        return missing

    def reconciled(self) -> 'ExtractedReceiptData':
        """
        Return a copy whose totals and line items satisfy the invariants.

        Returns:
            New ExtractedReceiptData; this instance is not modified.
        """
        total, subtotal, tax = reconcile_amounts(self.total_amount, self.subtotal, self.tax)
        return replace(
            self,
            total_amount=total,
            subtotal=subtotal,
            tax=tax,
            line_items=[item.repaired() for item in self.line_items],
            confidence=min(100.0, max(0.0, float(self.confidence))),
        )

    def add_note(self, note: str) -> None:
        """Append a note, separating from existing notes."""
        self.notes = f"{self.notes}; {note}" if self.notes else note

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the camelCase output format.

        Returns:
            Dictionary representation of the receipt.
        """
        result = {
            'vendor': self.vendor,
            'date': self.date.isoformat() if self.date else None,
            'totalAmount': self.total_amount,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'currency': self.currency,
            'lineItems': [item.to_dict() for item in self.line_items],
            'category': self.category,
            'confidence': self.confidence,
        }
        if self.notes:
            result['notes'] = self.notes
        if self.receipt_number:
            result['receiptNumber'] = self.receipt_number
        if self.payment_method:
            result['paymentMethod'] = self.payment_method
        return result

    def to_json(self, indent: int = 2) -> str:
        """Convert to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractedReceiptData':
        """
        Build a record from loosely-typed data without applying defaults
        beyond the dataclass ones. See VendorParsingAgent for full coercion.

        Args:
            data: Dictionary with camelCase or snake_case keys.
        """
        items = _pick(data, 'lineItems', 'line_items', default=[]) or []
        return cls(
            vendor=str(_pick(data, 'vendor', default="Unknown")),
            date=_parse_date(_pick(data, 'date')) or date.today(),
            total_amount=safe_float(_pick(data, 'totalAmount', 'total_amount')),
            subtotal=safe_float(_pick(data, 'subtotal')),
            tax=safe_float(_pick(data, 'tax')),
            currency=str(_pick(data, 'currency', default="USD")),
            line_items=[
                item if isinstance(item, LineItem) else LineItem.from_dict(item, i)
                for i, item in enumerate(items)
                if isinstance(item, (LineItem, dict))
            ],
            category=str(_pick(data, 'category', default="Other")),
            confidence=safe_float(_pick(data, 'confidence'), 0.0),
            notes=_pick(data, 'notes'),
            receipt_number=_pick(data, 'receiptNumber', 'receipt_number'),
            payment_method=_pick(data, 'paymentMethod', 'payment_method'),
        )

    def __repr__(self) -> str:
        return (
            f"ExtractedReceiptData(vendor='{self.vendor}', total={self.total_amount}, "
            f"items={len(self.line_items)}, confidence={self.confidence:.0f})"
        )
