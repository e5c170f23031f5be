"""
Heuristic Parsing Module for the Receipt Pipeline.

This module provides functionality for:
    - Date and amount normalization
    - Amount candidate classification and total inference
    - Line item extraction with vendor overrides
    - Fuzzy deduplication of line items
    - Expense categorization

Author: ML Engineering Team
"""

from .heuristic_parser import HeuristicParser
from .normalizers import DateNormalizer, AmountNormalizer
from .amounts import AmountExtractor, AmountCandidate, AmountSummary
from .line_items import LineItemExtractor, clean_description
from .dedup import deduplicate_items, string_similarity
from .categorizer import categorize_item, categorize_receipt, EXPENSE_CATEGORIES

__all__ = [
    'HeuristicParser',
    'DateNormalizer',
    'AmountNormalizer',
    'AmountExtractor',
    'AmountCandidate',
    'AmountSummary',
    'LineItemExtractor',
    'clean_description',
    'deduplicate_items',
    'string_similarity',
    'categorize_item',
    'categorize_receipt',
    'EXPENSE_CATEGORIES',
]
