"""
Prompt Templates for Text-Understanding Providers.

Templates are keyed by the `template` field of a VendorPattern record.
Vendors without a template use the enhanced generic prompt, which
carries the vendor detection outcome. The fallback prompt adds the
failures of earlier stages.

Author: ML Engineering Team
"""

from typing import Iterable, Optional

from receipt_pipeline.models.vendor import VendorDetectionResult

JSON_SCHEMA = """Return ONLY a JSON object (no markdown, no explanation) with this structure:
{
  "vendor": "Business Name",
  "date": "YYYY-MM-DD",
  "totalAmount": 0.00,
  "subtotal": 0.00,
  "tax": 0.00,
  "currency": "USD",
  "lineItems": [
    {
      "description": "item description",
      "quantity": 1,
      "unitPrice": 0.00,
      "totalPrice": 0.00,
      "category": "Other",
      "sku": "code if printed"
    }
  ],
  "category": "Other",
  "confidence": 85,
  "receiptNumber": "if found",
  "paymentMethod": "if found"
}"""

VENDOR_TEMPLATES = {
    'walmart': """You are an expert at parsing Walmart receipts. You understand Walmart's format:
- Bulk pricing lines like "6 AT 1 FOR 0.78" qualify the item above them:
  6 units, $0.78 total for the line
- Tax flags after prices (T = taxable, F = food stamp eligible, N = non-taxable)
- Store and terminal codes (ST#, TC#) and 12-digit UPC codes

Rules:
1. "X AT Y FOR Z" means quantity X with total price Z
2. Subtotal + tax must equal total
3. Every line item needs description, quantity, unit price and total price

Parse this Walmart receipt:

{raw_text}

VENDOR INDICATORS FOUND: {evidence}

""",
    'home_depot': """You are an expert at parsing Home Depot receipts. You understand:
- SKU numbers (12-digit codes or "SKU #") and department codes
- Per-unit pricing (EA, SQ FT) and "N @ price" quantity lines
- Contractor and Pro Xtra pricing

Parse this Home Depot receipt, keeping SKU numbers in the "sku" field:

{raw_text}

VENDOR INDICATORS FOUND: {evidence}

""",
    'target': """You are an expert at parsing Target receipts. You understand:
- DPCI item codes in the form 123-45-6789
- Tax flags after prices (T, F, N)
- Circle offers and REF # lines

Parse this Target receipt, keeping DPCI codes in the "sku" field:

{raw_text}

VENDOR INDICATORS FOUND: {evidence}

""",
}

GENERIC_TEMPLATE = """You are an expert receipt parser. Parse the following receipt text and extract structured data.

Pay special attention to:
- Complex pricing patterns and bulk discounts
- Multi-line items where description and price may be separated
- Tax calculations and line-item categorization

{raw_text}

VENDOR CONTEXT: Detected vendor: {vendor_type}, Confidence: {confidence:.2f}
Indicators: {evidence}

"""

FALLBACK_TEMPLATE = """You are an expert receipt parser in fallback mode. Parse this receipt carefully.
{failures}
- Complex pricing patterns (bulk pricing, per-unit pricing)
- Multi-line item descriptions
- Tax calculations and math consistency
- Unclear vendor names or dates
{detection}
RECEIPT TEXT:
{raw_text}

Extract accurate structured data focusing on getting the basics right: vendor, date, total, and line items.

"""


def _evidence(detection: Optional[VendorDetectionResult]) -> str:
    if detection is None or not detection.evidence:
        return "none"
    return ', '.join(detection.evidence)


def build_vendor_prompt(
    raw_text: str,
    detection: VendorDetectionResult,
    template_key: Optional[str] = None
) -> str:
    """
    Build the parsing prompt for a detected vendor.

    Args:
        raw_text: Recognized receipt text.
        detection: Vendor detection outcome.
        template_key: Registry template key; None selects the generic prompt.

    Returns:
        Prompt text ending with the JSON schema.
    """
    if template_key in VENDOR_TEMPLATES:
        body = VENDOR_TEMPLATES[template_key].format(
            raw_text=raw_text,
            evidence=_evidence(detection),
        )
    else:
        body = GENERIC_TEMPLATE.format(
            raw_text=raw_text,
            vendor_type=detection.vendor_type.value,
            confidence=detection.confidence,
            evidence=_evidence(detection),
        )
    return body + JSON_SCHEMA


def build_fallback_prompt(
    raw_text: str,
    error_messages: Iterable[str],
    detection: Optional[VendorDetectionResult] = None
) -> str:
    """
    Build the enhanced generic prompt used after a failed parse.

    Includes a PREVIOUS PARSING FAILURES block when errors are known and
    a VENDOR DETECTION RESULT block when detection ran.
    """
    errors = [e for e in error_messages if e]
    failures = ""
    if errors:
        failures = "\nPREVIOUS PARSING FAILURES:\n" + '\n'.join(errors) + "\n\nPlease be extra careful with:"

    vendor_block = ""
    if detection is not None:
        vendor_block = (
            f"\nVENDOR DETECTION RESULT:\n"
            f"Detected: {detection.vendor_type.value} ({detection.confidence * 100:.0f}% confidence)\n"
            f"Indicators: {_evidence(detection)}\n"
        )

    return FALLBACK_TEMPLATE.format(
        failures=failures,
        detection=vendor_block,
        raw_text=raw_text,
    ) + JSON_SCHEMA
