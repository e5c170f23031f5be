"""
Parse Quality Assessment.

Scores an extracted receipt on arithmetic consistency, line-item
usefulness, vendor format agreement and completeness.

Author: ML Engineering Team
"""

from receipt_pipeline.models.agent_result import ParseQuality
from receipt_pipeline.models.receipt import AMOUNT_TOLERANCE, ExtractedReceiptData

MATH_WEIGHT = 0.3
ITEMS_WEIGHT = 0.4
VENDOR_WEIGHT = 0.2
COMPLETENESS_WEIGHT = 0.1

MISSING_FIELD_PENALTY = 20
MATH_ERROR_PENALTY = 50
NO_ITEMS_ACCURACY = 50.0
SUSPICIOUS_MATH_ERROR = 1.0
LOW_CONFIDENCE = 50


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def assess_parse_quality(data: ExtractedReceiptData, detection_confidence: float) -> ParseQuality:
    """
    Assess the quality of an extracted receipt.

    Args:
        data: Extracted record, before reconciliation.
        detection_confidence: Vendor detection confidence in [0, 1].

    Returns:
        ParseQuality with every score in [0, 100].

    Example:
        >>> quality = assess_parse_quality(data, 0.9)
        >>> quality.math_consistency
        100.0
    """
    math_error = abs(data.subtotal + data.tax - data.total_amount)
    if math_error <= AMOUNT_TOLERANCE:
        math_consistency = 100.0
    else:
        math_consistency = 100.0 - min(100.0, MATH_ERROR_PENALTY * math_error)

    items = data.line_items
    if items:
        valid = [item for item in items if not item.has_placeholder_description and item.total_price > 0]
        line_item_accuracy = len(valid) / len(items) * 100.0
    else:
        line_item_accuracy = NO_ITEMS_ACCURACY

    vendor_format_match = _clamp(detection_confidence * 100.0)
    missing_fields = data.missing_fields

    suspicious = []
    if math_error > SUSPICIOUS_MATH_ERROR:
        suspicious.append('Math inconsistency detected')
    if not items:
        suspicious.append('No line items found')
    if data.confidence < LOW_CONFIDENCE:
        suspicious.append('Low parsing confidence')

    overall = (
        MATH_WEIGHT * math_consistency
        + ITEMS_WEIGHT * line_item_accuracy
        + VENDOR_WEIGHT * vendor_format_match
        + COMPLETENESS_WEIGHT * (100 - MISSING_FIELD_PENALTY * len(missing_fields))
    )

    return ParseQuality(
        overall_score=_clamp(overall),
        line_item_accuracy=_clamp(line_item_accuracy),
        math_consistency=_clamp(math_consistency),
        vendor_format_match=vendor_format_match,
        missing_fields=missing_fields,
        suspicious_patterns=suspicious,
    )
