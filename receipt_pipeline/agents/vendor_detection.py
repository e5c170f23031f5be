"""
Vendor Detection Agent.

This module provides the VendorDetectionAgent class, which classifies
recognized receipt text into a VendorType by scoring it against every
record in the vendor registry. Detection is rule-based and free.

Scoring per vendor:
    - Name matcher hit:        0.40
    - Brand phrase hit:        0.20
    - Format indicator hits:   0.10 each, capped at 0.20
    - Price pattern hit:       0.10
    - Item pattern hit:        0.10

Author: ML Engineering Team
"""

import time
from typing import Dict, List, Optional, Tuple

from config import get_config
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorType
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.vendors.registry import VENDOR_REGISTRY, VendorPattern

# Initialize module logger
logger = get_logger(__name__)

AGENT_NAME = "vendor_detection"

NAME_WEIGHT = 0.4
BRAND_WEIGHT = 0.2
FORMAT_WEIGHT = 0.1
FORMAT_CAP = 0.2
PRICE_WEIGHT = 0.1
ITEM_WEIGHT = 0.1

MIN_TEXT_LENGTH = 10


class VendorDetectionAgent:
    """
    Rule-based vendor classifier.

    Attributes:
        registry: Vendor pattern records to score against
        confidence_threshold: Below this, downstream parsing falls back to generic
        fallback_threshold: Below this, the result becomes 'generic'
        min_consideration: Candidates at or below this score are ignored

    Example:
        >>> agent = VendorDetectionAgent()
        >>> result = agent.detect("WALMART SUPERCENTER\\nST# 1234 TC# 56")
        >>> result.data.vendor_type
        <VendorType.WALMART: 'walmart'>
    """

    def __init__(self, registry: Optional[Dict[VendorType, VendorPattern]] = None) -> None:
        self.registry = registry if registry is not None else VENDOR_REGISTRY
        self.confidence_threshold = get_config("vendor_detection.confidence_threshold", 0.6)
        self.fallback_threshold = get_config("vendor_detection.fallback_threshold", 0.3)
        self.min_consideration = get_config("vendor_detection.min_consideration", 0.1)

    def can_handle(self, raw_text: Optional[str]) -> bool:
        """Whether the text is long enough to classify."""
        return bool(raw_text) and len(raw_text) > MIN_TEXT_LENGTH

    def detect(self, raw_text: str) -> AgentResult[VendorDetectionResult]:
        """
        Classify receipt text.

        Args:
            raw_text: Recognized receipt text.

        Returns:
            AgentResult wrapping a VendorDetectionResult. Cost is always 0.
        """
        start_time = time.time()

        try:
            candidates = self.score_candidates(raw_text or "")
            vendor_type, confidence, evidence = self._select_best(candidates)

            result = VendorDetectionResult(
                vendor_type=vendor_type,
                confidence=confidence,
                evidence=evidence,
                fallback_to_generic=confidence < self.confidence_threshold,
                metadata={
                    'candidateVendors': [
                        {'type': vt.value, 'confidence': round(score, 4)}
                        for vt, score, _ in candidates
                    ],
                    'detectionMethod': 'pattern_matching',
                },
            )
        except Exception as e:
            logger.warning(f"Vendor detection failed: {e}")
            return AgentResult.failure(AGENT_NAME, e, start_time)

        logger.info(
            f"Vendor detected: {result.vendor_type.value} "
            f"(confidence={result.confidence:.2f}, generic={result.fallback_to_generic})"
        )
        return AgentResult.ok(
            AGENT_NAME,
            result,
            confidence=result.confidence * 100,
            started=start_time,
            metadata=result.metadata,
        )

    def score_candidates(self, raw_text: str) -> List[Tuple[VendorType, float, List[str]]]:
        """
        Score the text against every registry record.

        Returns:
            (vendor_type, score, evidence) for candidates above the
            consideration threshold, best first.
        """
        candidates = []
        for vendor_type, pattern in self.registry.items():
            score = self.score_vendor(raw_text, pattern)
            logger.debug(f"Vendor score {vendor_type.value}: {score:.2f}")
            if score > self.min_consideration:
                candidates.append((vendor_type, score, self.collect_evidence(raw_text, pattern)))

        candidates.sort(key=lambda c: c[1], reverse=True)
        return candidates

    @staticmethod
    def score_vendor(raw_text: str, pattern: VendorPattern) -> float:
        """
        Score one vendor record against the text.

        Args:
            raw_text: Recognized receipt text.
            pattern: Vendor registry record.

        Returns:
            Score in [0, 1].
        """
        lowered = raw_text.lower()
        score = 0.0

        if any(matcher.search(raw_text) for matcher in pattern.name_matchers):
            score += NAME_WEIGHT

        if any(phrase.lower() in lowered for phrase in pattern.brand_phrases):
            score += BRAND_WEIGHT

        format_hits = sum(1 for indicator in pattern.format_indicators if indicator.search(raw_text))
        score += min(FORMAT_CAP, format_hits * FORMAT_WEIGHT)

        if any(p.search(raw_text) for p in pattern.price_patterns):
            score += PRICE_WEIGHT

        if any(p.search(raw_text) for p in pattern.item_patterns):
            score += ITEM_WEIGHT

        return min(1.0, round(score, 4))

    @staticmethod
    def collect_evidence(raw_text: str, pattern: VendorPattern) -> List[str]:
        """Human-readable reasons a vendor record matched."""
        evidence = []
        lowered = raw_text.lower()

        for matcher in pattern.name_matchers:
            match = matcher.search(raw_text)
            if match:
                evidence.append(f"Name match: {match.group(0)}")
                break

        for indicator in pattern.format_indicators:
            match = indicator.search(raw_text)
            if match:
                evidence.append(f"Format indicator: {match.group(0)}")

        for phrase in pattern.brand_phrases:
            if phrase.lower() in lowered:
                evidence.append(f"Brand text: {phrase}")

        return evidence

    def _select_best(
        self,
        candidates: List[Tuple[VendorType, float, List[str]]]
    ) -> Tuple[VendorType, float, List[str]]:
        if not candidates:
            return VendorType.UNKNOWN, 0.0, ['No vendor patterns matched']

        vendor_type, score, evidence = candidates[0]
        if score < self.fallback_threshold:
            return VendorType.GENERIC, 0.2, ['Fallback to generic parsing'] + evidence

        return vendor_type, score, evidence
