"""
Vendor Registry Module.

Known vendors are described by data records (VendorPattern) keyed by
VendorType, shared by vendor detection, the heuristic parser and the
vendor parsing agent.
"""

from .registry import (
    VendorPattern,
    VENDOR_REGISTRY,
    BULK_PRICING_PATTERN,
    get_vendor_pattern,
    find_brand,
)

__all__ = [
    'VendorPattern',
    'VENDOR_REGISTRY',
    'BULK_PRICING_PATTERN',
    'get_vendor_pattern',
    'find_brand',
]
