"""
Vendor Pattern Registry.

This module holds every vendor-specific rule as data: one VendorPattern
record per known VendorType. Vendor detection scores text against the
matcher fields, the heuristic parser uses the brand variants and
override regexes, and the vendor parsing agent uses the template key,
bulk-pricing and SKU rules. Adding a vendor means adding a record.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Pattern, Tuple

from receipt_pipeline.models.vendor import VendorType

_FLAGS = re.IGNORECASE | re.MULTILINE


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


@dataclass(frozen=True)
class VendorPattern:
    """
    Registry record describing one known vendor.

    Attributes:
        vendor_type: Tag this record describes
        display_name: Canonical vendor name for output
        name_matchers: Regexes matching the vendor name (40% of score)
        brand_phrases: Slogans and house brands (20% of score)
        format_indicators: Receipt layout markers (10% each, capped at 20%)
        price_patterns: Vendor price notation (10% of score)
        item_patterns: Vendor item line layout (10% of score)
        name_variants: Upper-case substrings identifying the brand in a header line
        line_item_patterns: Override item regexes with named groups
            description, quantity, unit_price, total_price, sku
        date_patterns: Override (regex, strptime format) pairs
        bulk_pricing_pattern: "N AT price FOR total" line notation, if used
        sku_pattern: Regex whose first group is a SKU-like code
        template: Prompt template key for the vendor parsing agent
        category: Default expense category for the vendor
        special_handling: Post-processing rules applied to model output
            (bulk_pricing, sku_extraction)
    """
    vendor_type: VendorType
    display_name: str
    name_matchers: Tuple[Pattern, ...] = ()
    brand_phrases: Tuple[str, ...] = ()
    format_indicators: Tuple[Pattern, ...] = ()
    price_patterns: Tuple[Pattern, ...] = ()
    item_patterns: Tuple[Pattern, ...] = ()
    name_variants: Tuple[str, ...] = ()
    line_item_patterns: Tuple[Pattern, ...] = ()
    date_patterns: Tuple[Tuple[Pattern, str], ...] = ()
    bulk_pricing_pattern: Optional[Pattern] = None
    sku_pattern: Optional[Pattern] = None
    template: Optional[str] = None
    category: str = "Other"
    special_handling: Tuple[str, ...] = field(default_factory=tuple)

    def handles(self, rule: str) -> bool:
        """Whether a post-processing rule applies to this vendor."""
        return rule in self.special_handling


BULK_PRICING_PATTERN = re.compile(
    r'^\s*(?P<quantity>\d+)\s+AT\s+(?P<unit>\d+(?:\.\d+)?)\s+FOR\s+\$?(?P<total_price>\d+(?:\.\d{1,2})?)\s*[A-Z]?\s*$',
    re.IGNORECASE
)


VENDOR_REGISTRY: Dict[VendorType, VendorPattern] = {
    VendorType.WALMART: VendorPattern(
        vendor_type=VendorType.WALMART,
        display_name="Walmart",
        name_matchers=_compile(r'walmart\s*supercenter', r'wal-mart', r'walmart'),
        brand_phrases=('Save money. Live better.', 'Great Value', 'Equate'),
        format_indicators=_compile(
            r'\d+\s+AT\s+\d+(?:\.\d+)?\s+FOR\s+\$?\d+\.\d{2}',
            r'TC#\s*\d+',
            r'ST#\s*\d+',
        ),
        price_patterns=_compile(r'\$?\d+\.\d{2}\s*[A-Z]?$', r'\d+\s*@\s*\$?\d+\.\d{2}'),
        item_patterns=_compile(r'^[A-Z0-9 &\'-]{3,}\s+\d{6,12}\s+\$?\d+\.\d{2}'),
        name_variants=('WALMART', 'WAL-MART', 'WAL MART'),
        line_item_patterns=_compile(
            r'^(?P<description>.+?)\s+(?P<quantity>\d+(?:\.\d+)?)\s*LB\s*@\s*\$?(?P<unit_price>\d+\.\d{2})\s*/\s*LB\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
            r'^(?P<description>.+?)\s+(?P<sku>\d{6,12})\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
            r'^(?P<description>[A-Za-z].*?)\s+\$?(?P<total_price>\d+\.\d{2})\s+[A-Z]$',
        ),
        date_patterns=(
            (re.compile(r'\b(\d{2}/\d{2}/\d{2})\s+\d{1,2}:\d{2}'), '%m/%d/%y'),
        ),
        bulk_pricing_pattern=BULK_PRICING_PATTERN,
        sku_pattern=re.compile(r'\b(\d{12})\b'),
        template="walmart",
        category="Other",
        special_handling=('bulk_pricing', 'sku_extraction'),
    ),
    VendorType.HOME_DEPOT: VendorPattern(
        vendor_type=VendorType.HOME_DEPOT,
        display_name="The Home Depot",
        name_matchers=_compile(r'home\s*depot', r'homedepot\.com'),
        brand_phrases=('How doers get more done', 'More saving. More doing.', 'Pro Xtra'),
        format_indicators=_compile(r'SKU\s*#?\s*\d+', r'STORE\s*#?\s*\d+', r'INTERNET\s*#\s*\d+'),
        price_patterns=_compile(r'\$\d+\.\d{2}\s*EA', r'\d+\s*@\s*\$?\d+\.\d{2}'),
        item_patterns=_compile(r'^\d{12}\s+.+'),
        name_variants=('HOME DEPOT', 'HOMEDEPOT'),
        line_item_patterns=_compile(
            r'^(?P<description>.+?)\s+(?P<quantity>\d+)\s*@\s*\$?(?P<unit_price>\d+\.\d{2})\s+\$?(?P<total_price>\d+\.\d{2})$',
            r'^(?P<sku>\d{12})\s+(?P<description>.+?)\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
        ),
        date_patterns=(
            (re.compile(r'\b(\d{2}/\d{2}/\d{2})\b'), '%m/%d/%y'),
        ),
        sku_pattern=re.compile(r'SKU\s*#?\s*(\d+)', re.IGNORECASE),
        template="home_depot",
        category="Equipment & Software",
        special_handling=('sku_extraction',),
    ),
    VendorType.TARGET: VendorPattern(
        vendor_type=VendorType.TARGET,
        display_name="Target",
        name_matchers=_compile(r'\btarget\b', r'target\.com'),
        brand_phrases=('Expect More. Pay Less.', 'Good & Gather', 'up & up'),
        format_indicators=_compile(r'REF\s*#\s*\d+', r'\b\d{3}-\d{2}-\d{4}\b'),
        price_patterns=_compile(r'\$?\d+\.\d{2}\s*[TFN]\s*$'),
        item_patterns=_compile(r'^\d{3}-\d{2}-\d{4}\s+.+'),
        name_variants=('TARGET',),
        line_item_patterns=_compile(
            r'^(?P<sku>\d{3}-\d{2}-\d{4})\s+(?P<description>.+?)\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
            r'^(?P<description>.+?)\s+(?P<sku>\d{9})\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
        ),
        sku_pattern=re.compile(r'\b(\d{3}-\d{2}-\d{4})\b'),
        template="target",
        category="Other",
        special_handling=('sku_extraction',),
    ),
    VendorType.LOWES: VendorPattern(
        vendor_type=VendorType.LOWES,
        display_name="Lowe's",
        name_matchers=_compile(r"\blowe'?s\b", r'lowes\.com'),
        brand_phrases=("Let's Build Something Together", 'Never stop improving'),
        format_indicators=_compile(r'ITEM\s*#\s*\d+', r'MODEL\s*#'),
        price_patterns=_compile(r'QTY\s*:?\s*\d+'),
        name_variants=("LOWE'S", 'LOWES'),
        line_item_patterns=_compile(
            r'^(?P<description>.+?)\s+QTY\s*:?\s*(?P<quantity>\d+)(?:\s*@\s*\$?(?P<unit_price>\d+\.\d{2}))?\s+\$?(?P<total_price>\d+\.\d{2})$',
        ),
        sku_pattern=re.compile(r'ITEM\s*#\s*(\d+)', re.IGNORECASE),
        category="Equipment & Software",
    ),
    VendorType.COSTCO: VendorPattern(
        vendor_type=VendorType.COSTCO,
        display_name="Costco",
        name_matchers=_compile(r'costco\s+wholesale', r'costco'),
        brand_phrases=('Kirkland Signature', 'Kirkland'),
        format_indicators=_compile(r'MEMBER\s*#?\s*\d+', r'TOTAL NUMBER OF ITEMS SOLD'),
        item_patterns=_compile(r'^E?\s*\d{4,7}\s+[A-Z].+\d+\.\d{2}'),
        name_variants=('COSTCO',),
        line_item_patterns=_compile(
            r'^(?:E\s+)?(?P<sku>\d{4,7})\s+(?P<description>.+?)\s+\$?(?P<total_price>\d+\.\d{2})\s*[A-Z]?$',
        ),
        category="Other",
    ),
    VendorType.GROCERY_GENERIC: VendorPattern(
        vendor_type=VendorType.GROCERY_GENERIC,
        display_name="Grocery Store",
        name_matchers=_compile(r'grocery', r'supermarket', r'\bmarket\b', r'\bfoods?\b', r'\bdeli\b'),
        brand_phrases=('Fresh Produce', 'Organic'),
        format_indicators=_compile(r'\d+(?:\.\d+)?\s*LB\s*@', r'\d+\s*@\s*\$?\d+\.\d{2}'),
        price_patterns=_compile(r'\d+\.\d{2}\s*/\s*LB'),
        item_patterns=_compile(r'^(?:PRODUCE|DAIRY|MEAT|BAKERY|DELI)\b'),
        category="Groceries",
    ),
}


def get_vendor_pattern(vendor_type: VendorType) -> Optional[VendorPattern]:
    """Return the registry record for a vendor type, if one exists."""
    return VENDOR_REGISTRY.get(vendor_type)


def find_brand(line: str) -> Optional[VendorPattern]:
    """
    Find a known brand in a header line by case-insensitive substring.

    Args:
        line: One receipt line.

    Returns:
        Matching registry record, or None.

    Example:
        >>> find_brand("WALMART SUPERCENTER").display_name
        'Walmart'
    """
    upper = line.upper()
    for pattern in VENDOR_REGISTRY.values():
        if any(variant in upper for variant in pattern.name_variants):
            return pattern
    return None

