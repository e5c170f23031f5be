"""
Line Item Extraction Module.

Turns receipt lines into LineItem records using an ordered list of item
patterns. The first pattern whose captured quantity, unit price and
total price pass validation wins. Vendor override patterns from the
registry are tried before the generic ones. For vendors whose record
carries a bulk-pricing pattern, "N AT price FOR total" lines qualify the
item directly above them instead of becoming items of their own.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from config import get_config
from receipt_pipeline.models.receipt import LineItem
from receipt_pipeline.parser.normalizers import AmountNormalizer
from receipt_pipeline.utils.helpers import round_money
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.vendors.registry import VendorPattern

# Initialize module logger
logger = get_logger(__name__)

# Lines that can never be items
SKIP_LINE_RE = re.compile(
    r'\b(?:sub\s*-?\s*total|total|tax|change|cash|visa|master\s*card|mastercard|amex|discover|'
    r'debit|credit|tend(?:er(?:ed)?)?|balance|amount\s+due|payment|paid|approv(?:al|ed)|auth|'
    r'thank\s+you|items?\s+sold|savings?|you\s+saved)\b',
    re.IGNORECASE
)
DATE_ONLY_RE = re.compile(r'^[\s\d/\-.:,#]*(?:[AaPp][Mm])?[\s\d/\-.:,#]*$')

_QTY = r'(?P<quantity>\d+(?:\.\d+)?)'
_UNIT = r'\$?(?P<unit_price>\d+(?:\.\d{1,2})?)'
_TOTAL = r'\$?(?P<total_price>\d+\.\d{2})'
_FLAG = r'(?:\s+[A-Z]{1,2})?'


@dataclass(frozen=True)
class ItemPattern:
    """
    One item regex with an optional description filter.

    Attributes:
        name: Pattern name used in debug logs
        regex: Regex with named groups description, quantity, unit_price,
            total_price and sku (all optional except description)
        reject: Descriptions matching this are not accepted by this pattern
    """
    name: str
    regex: Pattern
    reject: Optional[Pattern] = None


ITEM_PATTERNS: Tuple[ItemPattern, ...] = (
    ItemPattern('qty_at_unit', re.compile(
        rf'^(?P<description>.+?)\s+{_QTY}\s*@\s*{_UNIT}\s*(?:=\s*)?{_TOTAL}{_FLAG}$')),
    ItemPattern('qty_first_at_unit', re.compile(
        rf'^{_QTY}\s*@\s*{_UNIT}\s+(?P<description>.+?)\s+{_TOTAL}{_FLAG}$')),
    ItemPattern('qty_times_unit', re.compile(
        rf'^(?P<description>.+?)\s+{_QTY}\s*[xX×]\s*{_UNIT}\s*(?:=\s*)?{_TOTAL}{_FLAG}$')),
    ItemPattern('qty_times_desc', re.compile(
        rf'^{_QTY}\s*[xX×]\s+(?P<description>.+?)\s+{_TOTAL}{_FLAG}$')),
    ItemPattern('parenthetical_unit', re.compile(
        rf'^(?P<description>.+?)\s*\(\s*{_QTY}\s*@\s*{_UNIT}\s*\)\s*{_TOTAL}{_FLAG}$')),
    ItemPattern('parenthetical_price', re.compile(
        rf'^(?P<description>.+?)\s*\(\s*{_TOTAL}\s*\){_FLAG}$')),
    ItemPattern('trailing_price', re.compile(
        rf'^(?P<description>[A-Za-z][^$]*?)\s+{_TOTAL}{_FLAG}$'),
        reject=re.compile(r'(?:\d|\b(?:ea|each|pcs?|units?)\.?)$', re.IGNORECASE)),
    ItemPattern('qty_price', re.compile(
        rf'^(?P<description>.*?[A-Za-z].*?)\s+(?P<quantity>\d{{1,2}})\s+{_TOTAL}{_FLAG}$')),
    ItemPattern('qty_each', re.compile(
        rf'^(?P<description>.+?)\s+{_QTY}\s*(?:ea|each|pcs?|units?)\.?\s*(?:@\s*{_UNIT}\s+)?{_TOTAL}{_FLAG}$',
        re.IGNORECASE)),
    ItemPattern('trailing_decimal', re.compile(
        r'^(?P<description>.*?[A-Za-z].*?)\s+\$?(?P<total_price>\d+\.\d{2})\b')),
)

BULLET_RE = re.compile(r'^[\s\-*•·#>]+')
NUMERIC_MARKER_RE = re.compile(r'^\d{1,3}[.)]\s+')
LONG_NUMERIC_CODE_RE = re.compile(r'\b\d{6,}\b')
LONG_ALNUM_CODE_RE = re.compile(r'\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])[A-Z0-9]{8,}\b')


def clean_description(description: str) -> str:
    """
    Strip bullets, numeric list markers and long product codes.

    Example:
        >>> clean_description("1. GV MILK 078742012345")
        'GV MILK'
    """
    cleaned = BULLET_RE.sub('', description)
    cleaned = NUMERIC_MARKER_RE.sub('', cleaned)
    cleaned = LONG_NUMERIC_CODE_RE.sub('', cleaned)
    cleaned = LONG_ALNUM_CODE_RE.sub('', cleaned)
    cleaned = re.sub(r'\s+', ' ', cleaned)
    return cleaned.strip(' -:*.')


class LineItemExtractor:
    """
    Extracts validated line items from receipt lines.

    Attributes:
        max_quantity: Upper bound for quantity
        max_price: Upper bound for unit and total price
        tolerance: Allowed |quantity x unit - total|

    Example:
        >>> items = LineItemExtractor().extract(["Bananas 2 @ 0.59 1.18"])
        >>> items[0].quantity, items[0].total_price
        (2.0, 1.18)
    """

    TOTALS_WORDS = {'total', 'subtotal', 'tax', 'change', 'cash', 'balance', 'amount'}

    def __init__(self) -> None:
        self.max_quantity = get_config("parser.max_item_quantity", 100)
        self.max_price = get_config("parser.max_item_price", 10000)
        self.tolerance = get_config("parser.identity_tolerance", 0.05)
        self.normalizer = AmountNormalizer()

    def should_skip(self, line: str) -> bool:
        """Whether a line is a totals/payment/date-only line."""
        stripped = line.strip()
        if not stripped:
            return True
        return bool(SKIP_LINE_RE.search(stripped) or DATE_ONLY_RE.match(stripped))

    def extract(
        self,
        lines: Sequence[str],
        vendor_pattern: Optional[VendorPattern] = None,
        category: str = "Other"
    ) -> List[LineItem]:
        """
        Extract line items from receipt lines.

        Args:
            lines: Receipt lines.
            vendor_pattern: Registry record whose override patterns run first
                and whose bulk-pricing pattern, if any, folds bulk lines.
            category: Category assigned to every extracted item.

        Returns:
            Line items in receipt order.
        """
        overrides = [ItemPattern(f'override_{i}', p)
                     for i, p in enumerate(vendor_pattern.line_item_patterns)] if vendor_pattern else []
        patterns = overrides + list(ITEM_PATTERNS)
        sku_pattern = vendor_pattern.sku_pattern if vendor_pattern else None
        bulk_pattern = vendor_pattern.bulk_pricing_pattern if vendor_pattern else None

        items: List[LineItem] = []
        previous_was_item = False

        for line in lines:
            stripped = line.strip()

            bulk = bulk_pattern.match(stripped) if bulk_pattern is not None else None
            if bulk:
                self._apply_bulk_pricing(items, bulk, previous_was_item, category)
                previous_was_item = False
                continue

            if self.should_skip(stripped):
                previous_was_item = False
                continue

            item = self._match_line(stripped, patterns, len(items), category)
            if item is not None:
                if item.sku is None and sku_pattern is not None:
                    sku_match = sku_pattern.search(stripped)
                    if sku_match:
                        item.sku = sku_match.group(1)
                items.append(item)
                previous_was_item = True
            else:
                previous_was_item = False

        logger.debug(f"Extracted {len(items)} line items from {len(lines)} lines")
        return items

    def _match_line(
        self,
        line: str,
        patterns: Sequence[ItemPattern],
        index: int,
        category: str
    ) -> Optional[LineItem]:
        for pattern in patterns:
            match = pattern.regex.match(line)
            if not match:
                continue

            groups = match.groupdict()
            description = clean_description(groups.get('description') or '')
            if pattern.reject is not None and pattern.reject.search(groups.get('description') or ''):
                continue
            if not self._valid_description(description):
                continue

            values = self._resolve_prices(groups)
            if values is None:
                continue
            quantity, unit_price, total_price = values

            logger.debug(f"Line '{line}' matched item pattern '{pattern.name}'")
            return LineItem(
                id=f"item-{index}",
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                category=category,
                sku=groups.get('sku'),
            )
        return None

    def _valid_description(self, description: str) -> bool:
        if len(description) <= 2 or not re.search(r'[A-Za-z]', description):
            return False
        return description.lower() not in self.TOTALS_WORDS

    def _resolve_prices(self, groups: dict) -> Optional[Tuple[float, float, float]]:
        """
        Derive quantity, unit and total from captured groups and validate.

        Returns:
            (quantity, unit_price, total_price), or None when any bound or
            the multiplicative identity fails.
        """
        quantity = self.normalizer.to_float(groups['quantity']) if groups.get('quantity') else 1.0
        unit_price = self.normalizer.to_float(groups['unit_price']) if groups.get('unit_price') else None
        total_price = self.normalizer.to_float(groups['total_price']) if groups.get('total_price') else None

        if quantity is None or (total_price is None and unit_price is None):
            return None
        if total_price is None:
            total_price = round_money(quantity * unit_price)
        if unit_price is None:
            unit_price = round(total_price / quantity, 6) if quantity else 0.0

        if not (0 < quantity <= self.max_quantity):
            return None
        if not (0 < unit_price <= self.max_price and 0 < total_price <= self.max_price):
            return None
        if abs(quantity * unit_price - total_price) > self.tolerance:
            return None
        return quantity, unit_price, total_price

    def _apply_bulk_pricing(
        self,
        items: List[LineItem],
        match: re.Match,
        previous_was_item: bool,
        category: str
    ) -> None:
        """
        Fold an "N AT price FOR total" line into the item above it.

        The item becomes one entry with quantity N and the bulk total; a
        bulk line with no item directly above becomes its own item.
        """
        quantity = float(match.group('quantity'))
        total_price = round_money(float(match.group('total_price')))
        if quantity <= 0 or total_price <= 0:
            return

        bulk_info = {
            'bulkPricing': {
                'quantity': quantity,
                'unit': float(match.group('unit')),
                'total': total_price,
            }
        }

        if previous_was_item and items:
            item = items[-1]
            item.quantity = quantity
            item.total_price = total_price
            item.unit_price = round(total_price / quantity, 6)
            item.vendor_specific_data.update(bulk_info)
            return

        items.append(LineItem(
            id=f"item-{len(items)}",
            description=f"Bulk item ({int(quantity)} AT {match.group('unit')})",
            quantity=quantity,
            unit_price=round(total_price / quantity, 6),
            total_price=total_price,
            category=category,
            vendor_specific_data=bulk_info,
        ))
