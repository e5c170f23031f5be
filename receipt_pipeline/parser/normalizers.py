"""
Data Normalizers Module.

This module provides normalization for the two value types every
receipt parser needs:
    - Dates (numeric, ISO and month-name formats) to datetime.date
    - Money tokens ("$1,234.56", "12,50") to float

Author: ML Engineering Team
"""

import re
from datetime import date, datetime
from typing import List, Optional, Tuple

from dateutil import parser as date_parser

from config import get_config
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

MONTHS = r'(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?'


class DateNormalizer:
    """
    Finds and normalizes receipt dates.

    Patterns are tried in order; the first one yielding a real calendar
    date wins. Each candidate string is parsed with explicit formats
    first and dateutil's fuzzy parser second.

    Attributes:
        input_formats: Ordered strptime formats
        min_year: Earliest plausible receipt year
        max_year: Latest plausible receipt year

    Example:
        >>> normalizer = DateNormalizer()
        >>> normalizer.extract_date("STORE 12\\n10/12/2024 14:32")
        datetime.date(2024, 10, 12)
        >>> normalizer.normalize("Jan 5, 2025")
        datetime.date(2025, 1, 5)
    """

    # Ordered: numeric slash/dash, ISO, month-name
    DATE_PATTERNS = [
        re.compile(r'\b(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})\b'),
        re.compile(r'\b(\d{4}[/\-]\d{1,2}[/\-]\d{1,2})\b'),
        re.compile(rf'\b({MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{2,4}})\b', re.IGNORECASE),
        re.compile(rf'\b(\d{{1,2}}(?:st|nd|rd|th)?\s+{MONTHS},?\s+\d{{2,4}})\b', re.IGNORECASE),
    ]

    DEFAULT_FORMATS = [
        "%m/%d/%Y",
        "%m/%d/%y",
        "%m-%d-%Y",
        "%m-%d-%y",
        "%Y-%m-%d",
        "%Y/%m/%d",
        "%d/%m/%Y",
        "%d-%m-%Y",
        "%B %d, %Y",
        "%b %d, %Y",
        "%B %d %Y",
        "%b %d %Y",
        "%d %B %Y",
        "%d %b %Y",
    ]

    def __init__(self) -> None:
        """Initialize the date normalizer with configuration."""
        self.input_formats: List[str] = get_config("parser.date_formats", self.DEFAULT_FORMATS)
        self.min_year = get_config("parser.min_year", 1990)
        self.max_year = date.today().year + 1

    def normalize(self, date_str: str) -> Optional[date]:
        """
        Parse a date string into a calendar date.

        Args:
            date_str: Input date string in any recognized format.

        Returns:
            Parsed date, or None if parsing fails or the year is implausible.
        """
        if not date_str:
            return None

        date_str = self._clean_date_string(date_str)

        parsed = self._try_explicit_formats(date_str)
        if parsed is None:
            parsed = self._try_dateutil_parser(date_str)

        if parsed is None or not (self.min_year <= parsed.year <= self.max_year):
            logger.debug(f"Could not parse date: {date_str}")
            return None
        return parsed

    def _clean_date_string(self, date_str: str) -> str:
        """Collapse whitespace and drop ordinal suffixes and trailing dots."""
        date_str = ' '.join(date_str.split())
        date_str = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', date_str, flags=re.IGNORECASE)
        date_str = re.sub(r'([A-Za-z])\.', r'\1', date_str)
        return date_str.strip()

    def _try_explicit_formats(self, date_str: str) -> Optional[date]:
        for fmt in self.input_formats:
            try:
                return datetime.strptime(date_str, fmt).date()
            except ValueError:
                continue
        return None

    def _try_dateutil_parser(self, date_str: str) -> Optional[date]:
        """
        Try dateutil's fuzzy parser, US month-first then day-first.
        """
        for dayfirst in (False, True):
            try:
                return date_parser.parse(date_str, dayfirst=dayfirst, fuzzy=True).date()
            except (ValueError, OverflowError):
                continue
        return None

    def extract_date(
        self,
        text: str,
        override_patterns: Tuple[Tuple[re.Pattern, str], ...] = ()
    ) -> Optional[date]:
        """
        Extract the first parseable date from text.

        Args:
            text: Receipt text.
            override_patterns: Vendor-specific (regex, format) pairs tried first.

        Returns:
            Parsed date or None.
        """
        for pattern, fmt in override_patterns:
            for match in pattern.finditer(text):
                try:
                    return datetime.strptime(match.group(1), fmt).date()
                except ValueError:
                    continue

        for pattern in self.DATE_PATTERNS:
            for match in pattern.finditer(text):
                parsed = self.normalize(match.group(1))
                if parsed:
                    return parsed
        return None


class AmountNormalizer:
    """
    Converts money tokens to floats.

    Handles currency symbols, thousands separators and comma decimals.

    Example:
        >>> AmountNormalizer().to_float("$1,234.56")
        1234.56
        >>> AmountNormalizer().to_float("12,50")
        12.5
    """

    CURRENCY_SYMBOLS = ['$', '€', '£', '¥', '₹']
    CURRENCY_CODES = ['USD', 'EUR', 'GBP', 'CAD', 'AUD']

    def to_float(self, amount_str: str) -> Optional[float]:
        """
        Normalize an amount string to a float.

        Args:
            amount_str: Input amount string.

        Returns:
            Parsed value or None.
        """
        if not amount_str:
            return None

        cleaned = amount_str.strip()
        for symbol in self.CURRENCY_SYMBOLS:
            cleaned = cleaned.replace(symbol, '')
        for code in self.CURRENCY_CODES:
            cleaned = re.sub(rf'\b{code}\b', '', cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r'[^\d,.\-]', '', cleaned)

        cleaned = self._handle_comma_decimal(cleaned)
        cleaned = cleaned.replace(',', '')

        try:
            return float(cleaned)
        except ValueError:
            logger.debug(f"Could not parse amount: {amount_str}")
            return None

    def _handle_comma_decimal(self, amount_str: str) -> str:
        """Convert "1.234,56" or "12,50" to dot-decimal form."""
        if amount_str.count(',') == 1:
            comma_pos = amount_str.rfind(',')
            if comma_pos > amount_str.rfind('.'):
                after_comma = amount_str[comma_pos + 1:]
                if len(after_comma) == 2 and after_comma.isdigit():
                    return amount_str.replace('.', '').replace(',', '.')
        return amount_str

    def detect_currency(self, text: str, default: str = "USD") -> str:
        """Return the first currency code or symbol found in text."""
        symbol_codes = {'€': 'EUR', '£': 'GBP', '¥': 'JPY', '₹': 'INR'}
        for symbol, code in symbol_codes.items():
            if symbol in text:
                return code
        match = re.search(r'\b(USD|EUR|GBP|CAD|AUD)\b', text)
        return match.group(1) if match else default
