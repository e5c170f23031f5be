"""
Heuristic Receipt Parser.

This module provides the HeuristicParser class, the rule-based path from
raw recognized text to an ExtractedReceiptData record. It is used as the
baseline parse, as the stand-in parse when specialized parsing is
disabled, and inside the baseline fallback strategy.

Operations:
    - Detect the vendor from the receipt header
    - Extract the transaction date
    - Extract and reconcile total, subtotal and tax
    - Extract, deduplicate and categorize line items
    - Score the result

Author: ML Engineering Team
"""

import re
from datetime import date
from typing import List, Optional, Tuple

from config import get_config
from receipt_pipeline.models.receipt import ExtractedReceiptData
from receipt_pipeline.models.vendor import VendorType
from receipt_pipeline.parser.amounts import AmountExtractor
from receipt_pipeline.parser.categorizer import categorize_item, categorize_receipt
from receipt_pipeline.parser.dedup import deduplicate_items
from receipt_pipeline.parser.line_items import DATE_ONLY_RE, LineItemExtractor
from receipt_pipeline.parser.normalizers import AmountNormalizer, DateNormalizer
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.vendors.registry import VendorPattern, find_brand, get_vendor_pattern

# Initialize module logger
logger = get_logger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"
VENDOR_LINES = 5

NUMERIC_ONLY_RE = re.compile(r'^[\d$.,\s#:*\-/]+$')
RECEIPT_NUMBER_RE = re.compile(
    r'\b(?:receipt|trans(?:action)?|invoice|order|ticket|TR|TC)\s*(?:#|no\.?|number)\s*:?\s*([A-Z0-9][A-Z0-9\-]{2,})',
    re.IGNORECASE
)
PAYMENT_METHODS = (
    ('Visa', re.compile(r'\bvisa\b', re.IGNORECASE)),
    ('Mastercard', re.compile(r'\bmaster\s*card\b', re.IGNORECASE)),
    ('American Express', re.compile(r'\bamex\b|\bamerican\s+express\b', re.IGNORECASE)),
    ('Discover', re.compile(r'\bdiscover\b', re.IGNORECASE)),
    ('Debit', re.compile(r'\bdebit\b', re.IGNORECASE)),
    ('Cash', re.compile(r'\bcash\b', re.IGNORECASE)),
)


class HeuristicParser:
    """
    Rule-based receipt parser.

    The parser never raises: any internal failure yields a minimal record
    carrying the error in its notes.

    Attributes:
        amount_extractor: AmountExtractor instance
        item_extractor: LineItemExtractor instance
        date_normalizer: DateNormalizer instance

    Example:
        >>> parser = HeuristicParser()
        >>> data = parser.parse("CORNER CAFE\\nCoffee and pastry\\n$42.50")
        >>> data.vendor, data.total_amount
        ('CORNER CAFE', 42.5)
    """

    def __init__(self) -> None:
        """Initialize the parser with its extractors."""
        self.amount_extractor = AmountExtractor()
        self.item_extractor = LineItemExtractor()
        self.date_normalizer = DateNormalizer()
        self.amount_normalizer = AmountNormalizer()
        self.default_currency = get_config("parser.default_currency", "USD")

    def parse(
        self,
        raw_text: str,
        ocr_confidence: Optional[float] = None,
        vendor_type: Optional[VendorType] = None
    ) -> ExtractedReceiptData:
        """
        Parse raw receipt text into a structured record.

        Args:
            raw_text: Recognized receipt text.
            ocr_confidence: Recognition confidence (0-100) capping the result.
            vendor_type: Known vendor whose registry overrides apply,
                instead of detecting one from the header.

        Returns:
            ExtractedReceiptData (reconciled).
        """
        try:
            return self._parse(raw_text or '', ocr_confidence, vendor_type)
        except Exception as e:
            logger.warning(f"Heuristic parsing failed: {e}")
            confidence = 30.0 if ocr_confidence is None else min(30.0, float(ocr_confidence))
            return ExtractedReceiptData(
                vendor=UNKNOWN_VENDOR,
                currency=self.default_currency,
                confidence=max(0.0, confidence),
                notes=f"Heuristic parsing failed: {e}",
            )

    def _parse(
        self,
        raw_text: str,
        ocr_confidence: Optional[float],
        vendor_type: Optional[VendorType]
    ) -> ExtractedReceiptData:
        lines = [line.strip() for line in raw_text.splitlines() if line.strip()]

        # Step 1: Vendor
        vendor, vendor_pattern = self.detect_vendor(lines)
        if vendor_type is not None:
            forced = get_vendor_pattern(vendor_type)
            if forced is not None:
                vendor, vendor_pattern = forced.display_name, forced

        # Step 2: Date
        override_dates = vendor_pattern.date_patterns if vendor_pattern else ()
        receipt_date = self.date_normalizer.extract_date(raw_text, override_dates)

        # Step 3: Amounts
        amounts = self.amount_extractor.extract(lines)

        # Step 4: Line items
        items = self.item_extractor.extract(lines, vendor_pattern)
        items = deduplicate_items(items)
        for item in items:
            item.category = categorize_item(item.description)

        data = ExtractedReceiptData(
            vendor=vendor,
            date=receipt_date or date.today(),
            total_amount=amounts.total,
            subtotal=amounts.subtotal,
            tax=amounts.tax,
            currency=self.amount_normalizer.detect_currency(raw_text, self.default_currency),
            line_items=items,
            category=categorize_receipt(vendor, items, vendor_pattern),
            receipt_number=self._extract_receipt_number(raw_text),
            payment_method=self._extract_payment_method(lines),
        )

        if amounts.inferred_total:
            data.add_note("Total inferred from largest amount")
        if receipt_date is None:
            data.add_note("Date not found, defaulted to today")

        # Step 5: Confidence
        data.confidence = self.score(data, ocr_confidence)

        logger.debug(
            f"Heuristic parse: vendor='{data.vendor}', total={data.total_amount:.2f}, "
            f"items={len(data.line_items)}, confidence={data.confidence:.0f}"
        )
        return data.reconciled()

    def detect_vendor(self, lines: List[str]) -> Tuple[str, Optional[VendorPattern]]:
        """
        Find the vendor name in the receipt header.

        Known brand variants win; otherwise the first substantial line.

        Args:
            lines: Non-empty receipt lines.

        Returns:
            Tuple of (vendor name, registry record or None).
        """
        header = [line for line in lines if not NUMERIC_ONLY_RE.match(line)][:VENDOR_LINES]

        for line in header:
            pattern = find_brand(line)
            if pattern is not None:
                return pattern.display_name, pattern

        for line in header:
            if len(line) > 3 and not DATE_ONLY_RE.match(line):
                return line, None

        return UNKNOWN_VENDOR, None

    def score(self, data: ExtractedReceiptData, ocr_confidence: Optional[float] = None) -> float:
        """
        Score a parse by what it found, capped by recognition confidence.

        Returns:
            Confidence between 30 and 100, or lower when recognition was.
        """
        score = 100.0
        if not data.has_vendor:
            score -= 20
        if data.total_amount <= 0:
            score -= 30
        if not data.line_items:
            score -= 25
        score = max(30.0, score)

        if ocr_confidence is not None:
            score = min(score, max(0.0, float(ocr_confidence)))
        return score

    def _extract_receipt_number(self, text: str) -> Optional[str]:
        match = RECEIPT_NUMBER_RE.search(text)
        return match.group(1) if match else None

    def _extract_payment_method(self, lines: List[str]) -> Optional[str]:
        # Tender lines sit at the bottom
        for line in reversed(lines):
            for name, pattern in PAYMENT_METHODS:
                if pattern.search(line):
                    return name
        return None
