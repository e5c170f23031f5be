"""
Line Item Deduplication.

OCR frequently emits the same item twice with different casing or a
dropped character. Items whose descriptions are near-identical under a
normalized Levenshtein similarity are merged, keeping the more complete
description.

Author: ML Engineering Team
"""

from typing import List, Optional

from config import get_config
from receipt_pipeline.models.receipt import LineItem


def string_similarity(s1: str, s2: str) -> float:
    """
    Calculate similarity between two strings using Levenshtein ratio.

    Comparison is case-insensitive and ignores surrounding whitespace.

    Args:
        s1: First string.
        s2: Second string.

    Returns:
        (longer - distance) / longer, between 0 and 1.

    Example:
        >>> string_similarity("Bananas", "BANANAS")
        1.0
    """
    s1 = ' '.join(s1.lower().split())
    s2 = ' '.join(s2.lower().split())

    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0

    len1, len2 = len(s1), len(s2)

    # Two-row distance matrix
    previous = list(range(len2 + 1))
    for i in range(1, len1 + 1):
        current = [i] + [0] * len2
        for j in range(1, len2 + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost
            )
        previous = current

    longer = max(len1, len2)
    return (longer - previous[len2]) / longer


def deduplicate_items(
    items: List[LineItem],
    threshold: Optional[float] = None
) -> List[LineItem]:
    """
    Merge line items with near-identical descriptions.

    Passes repeat until no pair of kept items exceeds the threshold, so
    the result is a fixed point: deduplicating it again changes nothing.

    Args:
        items: Line items in receipt order.
        threshold: Similarity above which items merge.
            Defaults to parser.similarity_threshold (0.8).

    Returns:
        Deduplicated items, renumbered item-0..item-n.
    """
    if threshold is None:
        threshold = get_config("parser.similarity_threshold", 0.8)

    current = list(items)
    while True:
        merged = _merge_pass(current, threshold)
        if len(merged) == len(current):
            break
        current = merged

    for index, item in enumerate(current):
        item.id = f"item-{index}"
    return current


def _merge_pass(items: List[LineItem], threshold: float) -> List[LineItem]:
    kept: List[LineItem] = []
    for item in items:
        for index, existing in enumerate(kept):
            if string_similarity(item.description, existing.description) > threshold:
                if len(item.description.strip()) > len(existing.description.strip()):
                    kept[index] = item
                break
        else:
            kept.append(item)
    return kept
