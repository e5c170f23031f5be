"""
Expense Categorization.

Maps vendor names and item descriptions onto a closed category taxonomy
through fixed keyword tables. Vendor keywords win; otherwise the most
common item category is used.

Author: ML Engineering Team
"""

import re
from collections import Counter
from typing import List, Optional, Pattern, Tuple

from receipt_pipeline.models.receipt import LineItem
from receipt_pipeline.vendors.registry import VendorPattern

EXPENSE_CATEGORIES = (
    'Travel & Transportation',
    'Office Supplies',
    'Meals & Entertainment',
    'Equipment & Software',
    'Groceries',
    'Other',
)

DEFAULT_CATEGORY = 'Other'


def _keywords(*words: str) -> Pattern:
    return re.compile(r'\b(?:' + '|'.join(words) + r')\b', re.IGNORECASE)


# Ordered: first match wins
VENDOR_KEYWORDS: Tuple[Tuple[str, Pattern], ...] = (
    ('Equipment & Software', _keywords(r'home\s*depot', r"lowe'?s", 'hardware', 'ace', 'menards')),
    ('Travel & Transportation', _keywords('gas', 'shell', 'exxon', 'chevron', 'mobil', 'bp',
                                          'uber', 'lyft', 'airlines?', 'parking', 'hotel')),
    ('Office Supplies', _keywords('office', 'staples', r'office\s*depot', 'officemax')),
    ('Meals & Entertainment', _keywords('restaurant', 'cafe', 'coffee', 'starbucks', "mcdonald'?s",
                                        'grill', 'pizza', 'diner', 'bar', 'kitchen')),
    ('Groceries', _keywords('grocery', 'groceries', 'safeway', 'kroger', 'supermarket',
                            'market', 'foods?', r"trader\s+joe'?s", 'aldi', 'publix')),
    ('Other', _keywords('walmart', 'wal-mart', 'target', 'marshalls', r'tj\s*maxx', 'costco')),
)

ITEM_KEYWORDS: Tuple[Tuple[str, Pattern], ...] = (
    ('Office Supplies', _keywords('paper', 'pens?', 'staples?', 'toner', 'ink', 'notebook',
                                  'folders?', 'envelopes?')),
    ('Travel & Transportation', _keywords('gas', 'fuel', 'unleaded', 'diesel', 'parking', 'toll')),
    ('Meals & Entertainment', _keywords('food', 'coffee', 'meal', 'lunch', 'dinner', 'breakfast',
                                        'latte', 'sandwich', 'burger', 'pizza')),
    ('Equipment & Software', _keywords('software', 'hardware', 'computer', 'laptop', 'cable',
                                       'drill', 'lumber', 'screws?', 'tools?')),
    ('Groceries', _keywords('milk', 'bread', 'eggs', 'bananas?', 'produce', 'cheese', 'apples?')),
)


def categorize_item(description: str) -> str:
    """
    Categorize one item description.

    Example:
        >>> categorize_item("Printer paper 500ct")
        'Office Supplies'
    """
    for category, pattern in ITEM_KEYWORDS:
        if pattern.search(description):
            return category
    return DEFAULT_CATEGORY


def categorize_receipt(
    vendor: str,
    items: List[LineItem],
    vendor_pattern: Optional[VendorPattern] = None
) -> str:
    """
    Categorize a receipt from its vendor, then its items.

    Args:
        vendor: Vendor name.
        items: Line items (already categorized).
        vendor_pattern: Registry record, whose category wins when present.

    Returns:
        One of EXPENSE_CATEGORIES.
    """
    if vendor_pattern is not None:
        return vendor_pattern.category

    for category, pattern in VENDOR_KEYWORDS:
        if pattern.search(vendor or ''):
            return category

    counts = Counter(item.category for item in items if item.category != DEFAULT_CATEGORY)
    if not counts:
        return DEFAULT_CATEGORY
    return counts.most_common(1)[0][0]
