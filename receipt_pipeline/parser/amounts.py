"""
Amount Extraction Module.

Finds every money token in the receipt, classifies each one by the
keywords on its line, selects the best candidate per class and completes
the totals algebraically.

Classes:
    AmountCandidate: One money token with its class and confidence
    AmountSummary: Selected totals plus the candidates they came from
    AmountExtractor: The extraction pipeline

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import get_config
from receipt_pipeline.models.receipt import reconcile_amounts
from receipt_pipeline.parser.normalizers import AmountNormalizer
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

_NUMBER = r'(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+\.\d{2})'

# Money token regexes, most specific first
MONEY_PATTERNS = [
    re.compile(r'\$\s*(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)(?![\d.])'),  # $X.XX
    re.compile(_NUMBER + r'\s*\$'),                                                  # X.XX$
    re.compile(r':\s*\$?\s*' + _NUMBER),                                             # colon-prefixed
    re.compile(_NUMBER + r'\s*[A-Z]?\s*$'),                                          # end-of-line
    re.compile(r'(?<![\d.,])' + _NUMBER + r'(?![\d.,])'),                            # bare
]

SUBTOTAL_RE = re.compile(r'\bsub\s*-?\s*total\b', re.IGNORECASE)
TAX_RE = re.compile(r'\b(?:total\s+tax|tax\s+total|(?:sales\s+)?tax|hst|gst|vat)\b', re.IGNORECASE)
CHANGE_RE = re.compile(r'\bchange\b', re.IGNORECASE)
TOTAL_RE = re.compile(r'\b(?:grand\s+total|total|amount\s+due|balance\s+due|balance)\b', re.IGNORECASE)
PAYMENT_RE = re.compile(
    r'\b(?:cash|visa|master\s*card|mastercard|amex|american\s+express|discover|debit|credit|'
    r'tend(?:er(?:ed)?)?|paid|payment|card)\b',
    re.IGNORECASE
)

EXACT_TOTAL_RE = re.compile(r'^(?:grand\s+)?total\s*:?\s*\$?\s*[\d,]+\.\d{2}$', re.IGNORECASE)
EXACT_SUBTOTAL_RE = re.compile(r'^sub\s*-?\s*total\s*:?\s*\$?\s*[\d,]+\.\d{2}$', re.IGNORECASE)
EXACT_TAX_RE = re.compile(r'^(?:sales\s+)?tax\s*(?:\d+(?:\.\d+)?\s*%)?\s*:?\s*\$?\s*[\d,]+\.\d{2}$', re.IGNORECASE)

CATEGORIES = ('total', 'subtotal', 'tax', 'change', 'payment', 'unknown')


@dataclass
class AmountCandidate:
    """
    One money token found in the receipt.

    Attributes:
        amount: Parsed value
        line_index: Zero-based line number
        line: The line text
        category: One of total, subtotal, tax, change, payment, unknown
        confidence: Classification confidence (0-100)
    """
    amount: float
    line_index: int
    line: str
    category: str = 'unknown'
    confidence: float = 0.0


@dataclass
class AmountSummary:
    """
    Selected receipt totals.

    Attributes:
        total: Total amount (0 when nothing usable was found)
        subtotal: Subtotal after completion
        tax: Tax after completion
        inferred_total: Whether the total came from the largest-amount rule
        candidates: Every candidate considered
        selected: Winning candidate per category
    """
    total: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    inferred_total: bool = False
    candidates: List[AmountCandidate] = field(default_factory=list)
    selected: Dict[str, AmountCandidate] = field(default_factory=dict)


class AmountExtractor:
    """
    Extracts and classifies receipt amounts.

    Example:
        >>> summary = AmountExtractor().extract(["SUBTOTAL 7.82", "TAX 0.13", "TOTAL 7.95"])
        >>> (summary.total, summary.subtotal, summary.tax)
        (7.95, 7.82, 0.13)
    """

    def __init__(self) -> None:
        self.max_amount = get_config("parser.max_amount", 99999)
        self.normalizer = AmountNormalizer()

    def find_candidates(self, lines: List[str]) -> List[AmountCandidate]:
        """
        Scan every line with all money regexes.

        A value found by several regexes on the same line is kept once.

        Args:
            lines: Receipt lines.

        Returns:
            Candidates in line order.
        """
        candidates = []
        total_lines = len(lines)

        for index, line in enumerate(lines):
            seen = set()
            for pattern in MONEY_PATTERNS:
                for match in pattern.finditer(line):
                    amount = self.normalizer.to_float(match.group(1))
                    if amount is None or not (0 < amount <= self.max_amount):
                        continue
                    key = round(amount, 2)
                    if key in seen:
                        continue
                    seen.add(key)
                    candidate = AmountCandidate(amount=key, line_index=index, line=line)
                    self._classify(candidate, total_lines)
                    candidates.append(candidate)

        return candidates

    def _classify(self, candidate: AmountCandidate, total_lines: int) -> None:
        """
        Assign a category and confidence from the candidate's line.

        Checks run subtotal before tax before total so that "SUBTOTAL"
        and "TOTAL TAX" are not read as totals.
        """
        line = candidate.line.strip()
        position = (candidate.line_index + 1) / max(1, total_lines)

        if SUBTOTAL_RE.search(line):
            candidate.category = 'subtotal'
            candidate.confidence = 95 if EXACT_SUBTOTAL_RE.match(line) else 85
        elif TAX_RE.search(line):
            candidate.category = 'tax'
            candidate.confidence = 95 if EXACT_TAX_RE.match(line) else 85
        elif CHANGE_RE.search(line):
            candidate.category = 'change'
            candidate.confidence = 95
        elif TOTAL_RE.search(line):
            candidate.category = 'total'
            if EXACT_TOTAL_RE.match(line):
                candidate.confidence = 100
            else:
                candidate.confidence = 90 + (10 if position > 0.6 else 0)
        elif PAYMENT_RE.search(line):
            candidate.category = 'payment'
            candidate.confidence = 80
        else:
            candidate.category = 'unknown'
            candidate.confidence = 0

    def extract(self, lines: List[str]) -> AmountSummary:
        """
        Run candidate search, selection, inference and completion.

        Args:
            lines: Receipt lines.

        Returns:
            AmountSummary with reconciled totals.
        """
        candidates = self.find_candidates(lines)
        summary = AmountSummary(candidates=candidates)

        # Step 1: Highest confidence per category, later lines break ties
        for candidate in candidates:
            current = summary.selected.get(candidate.category)
            if current is None or (candidate.confidence, candidate.line_index) > (
                current.confidence, current.line_index
            ):
                summary.selected[candidate.category] = candidate

        total = summary.selected['total'].amount if 'total' in summary.selected else 0.0
        subtotal = summary.selected['subtotal'].amount if 'subtotal' in summary.selected else 0.0
        tax = summary.selected['tax'].amount if 'tax' in summary.selected else 0.0

        # Step 2: Infer a missing total from the largest plausible amount
        if total == 0 and subtotal == 0:
            inferred = self._infer_total(candidates)
            if inferred is not None:
                total = inferred
                summary.inferred_total = True
                logger.debug(f"Inferred total {total:.2f} from largest amount")

        # Step 3: Algebraic completion and clamping
        summary.total, summary.subtotal, summary.tax = reconcile_amounts(total, subtotal, tax)
        return summary

    def _infer_total(self, candidates: List[AmountCandidate]) -> Optional[float]:
        """Largest amount above 1 that is not change or payment."""
        plausible = [
            c.amount for c in candidates
            if c.category not in ('change', 'payment') and 1 < c.amount <= self.max_amount
        ]
        return max(plausible) if plausible else None
