"""
Vendor Classification Data Classes.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from .agent_result import ParseQuality
from .receipt import ExtractedReceiptData


class VendorType(str, Enum):
    """Closed classification tag for a receipt's issuing merchant."""
    WALMART = "walmart"
    HOME_DEPOT = "home_depot"
    TARGET = "target"
    COSTCO = "costco"
    LOWES = "lowes"
    GROCERY_GENERIC = "grocery_generic"
    RESTAURANT = "restaurant"
    GAS_STATION = "gas_station"
    PHARMACY = "pharmacy"
    OFFICE_SUPPLIES = "office_supplies"
    HARDWARE_STORE = "hardware_store"
    GENERIC = "generic"
    UNKNOWN = "unknown"


@dataclass
class VendorDetectionResult:
    """
    Outcome of vendor classification.

    Attributes:
        vendor_type: Detected vendor tag
        confidence: Detection confidence in [0, 1]
        evidence: Human-readable reasons for the classification
        fallback_to_generic: Whether downstream parsing should use generic rules
        metadata: Scoring details (candidates, scores)
    """
    vendor_type: VendorType
    confidence: float
    evidence: List[str] = field(default_factory=list)
    fallback_to_generic: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vendorType': self.vendor_type.value,
            'confidence': round(self.confidence, 4),
            'evidence': list(self.evidence),
            'fallbackToGeneric': self.fallback_to_generic,
            'metadata': dict(self.metadata),
        }


@dataclass
class VendorParsingResult:
    """
    Payload of a successful vendor-specific parse.

    Attributes:
        extracted_data: Coerced receipt record
        parse_quality: Quality assessment of the record
        vendor_specific_fields: Vendor-level details (bulk/SKU counts)
        warnings: Non-fatal issues found while parsing
    """
    extracted_data: ExtractedReceiptData
    parse_quality: ParseQuality
    vendor_specific_fields: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'extractedData': self.extracted_data.to_dict(),
            'parseQuality': self.parse_quality.to_dict(),
            'vendorSpecificFields': dict(self.vendor_specific_fields),
            'warnings': list(self.warnings),
        }
