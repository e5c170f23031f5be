"""
Data Models for the Receipt Pipeline.

Classes:
    LineItem, ExtractedReceiptData: The structured expense record
    AgentResult, ParseQuality: Stage envelope and quality assessment
    VendorType, VendorDetectionResult, VendorParsingResult: Vendor classification
    FallbackContext, FallbackResult: Recovery inputs and outcome
"""

from .receipt import LineItem, ExtractedReceiptData, reconcile_amounts
from .agent_result import AgentResult, ParseQuality
from .vendor import VendorType, VendorDetectionResult, VendorParsingResult
from .fallback import FallbackContext, FallbackResult

__all__ = [
    'LineItem',
    'ExtractedReceiptData',
    'reconcile_amounts',
    'AgentResult',
    'ParseQuality',
    'VendorType',
    'VendorDetectionResult',
    'VendorParsingResult',
    'FallbackContext',
    'FallbackResult',
]
