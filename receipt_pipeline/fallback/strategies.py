"""
Fallback Strategies.

Each recovery strategy is a FallbackStrategy record. The default chain,
in priority order:

    1. baseline_ocr_fallback      plain recognition + heuristic parser
    2. enhanced_generic_parsing   generic LLM prompt with failure context
    3. pattern_based_extraction   regex-only extraction
    4. partial_data_recovery      merge of earlier partial results

Author: ML Engineering Team
"""

import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from config import get_config
from receipt_pipeline.agents.prompts import build_fallback_prompt
from receipt_pipeline.agents.vendor_parser import VendorParsingAgent
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.fallback import FallbackContext
from receipt_pipeline.models.receipt import ExtractedReceiptData, LineItem
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorType
from receipt_pipeline.ocr_engine.adapter import RecognitionAdapter
from receipt_pipeline.parser.amounts import SUBTOTAL_RE, TAX_RE, TOTAL_RE
from receipt_pipeline.parser.dedup import deduplicate_items
from receipt_pipeline.parser.heuristic_parser import HeuristicParser
from receipt_pipeline.parser.normalizers import DateNormalizer
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

PATTERN_TOTAL_RE = re.compile(r'total\s*:?\s*\$?(\d+\.\d{2})', re.IGNORECASE)
PATTERN_DATE_RE = re.compile(r'(\d{1,2}/\d{1,2}/\d{2,4})|(\d{4}-\d{2}-\d{2})')
PATTERN_ITEM_RE = re.compile(r'^(.+?)\s+\$?(\d+\.\d{2})$')
LEADING_DIGIT_RE = re.compile(r'^\d')

PATTERN_CONFIDENCE_RANGE = (30.0, 60.0)


@dataclass
class FallbackStrategy:
    """
    One recovery strategy.

    Attributes:
        name: Strategy name used in traces
        priority: Lower runs first
        cost: Declared cost per execution in USD
        expected_accuracy: Informational accuracy estimate (0-1)
        can_handle: Whether the strategy applies to a context
        execute: Async callable producing an AgentResult of ExtractedReceiptData
    """
    name: str
    priority: int
    cost: float
    expected_accuracy: Optional[float]
    can_handle: Callable[[FallbackContext], bool]
    execute: Callable[[FallbackContext], Awaitable[AgentResult[ExtractedReceiptData]]]


def baseline_ocr_strategy(adapter: RecognitionAdapter, parser: HeuristicParser) -> FallbackStrategy:
    """Re-run plain recognition on the image and parse heuristically."""
    name = "baseline_ocr_fallback"

    def can_handle(context: FallbackContext) -> bool:
        return context.image is not None and 'baseline_ocr' not in context.failed_agents

    async def execute(context: FallbackContext) -> AgentResult[ExtractedReceiptData]:
        start_time = time.time()
        recognition = await adapter.recognize(context.image)
        if not recognition.success:
            return AgentResult(
                success=False, agent_name=name, error=recognition.error,
                error_type=recognition.error_type, cost=recognition.cost,
                processing_time=time.time() - start_time,
                terminal=recognition.terminal, retryable=recognition.retryable,
            )

        data = parser.parse(recognition.data.text, recognition.data.confidence)
        return AgentResult.ok(name, data, data.confidence, start_time, cost=recognition.cost,
                              metadata={'warnings': ['Fallback to baseline OCR']})

    return FallbackStrategy(
        name=name,
        priority=1,
        cost=get_config("fallback.baseline_cost", 0.005),
        expected_accuracy=0.8,
        can_handle=can_handle,
        execute=execute,
    )


def enhanced_generic_strategy(agent: VendorParsingAgent) -> FallbackStrategy:
    """Generic LLM parse with the earlier failures in the prompt."""
    name = "enhanced_generic_parsing"

    def can_handle(context: FallbackContext) -> bool:
        return name not in context.failed_agents

    async def execute(context: FallbackContext) -> AgentResult[ExtractedReceiptData]:
        start_time = time.time()
        detection = context.vendor_detection or VendorDetectionResult(
            vendor_type=VendorType.GENERIC,
            confidence=0.5,
            evidence=['Fallback parsing'],
            fallback_to_generic=True,
        )
        prompt = build_fallback_prompt(context.raw_text, context.error_messages, context.vendor_detection)
        result = await agent.parse(context.raw_text, detection, prompt=prompt)

        if not result.success:
            return AgentResult(
                success=False, agent_name=name, error=result.error, error_type=result.error_type,
                cost=result.cost, processing_time=time.time() - start_time,
                terminal=result.terminal, retryable=result.retryable,
            )

        parsed = result.data
        return AgentResult.ok(
            name, parsed.extracted_data, parsed.parse_quality.overall_score, start_time,
            cost=result.cost,
            metadata={'parseQuality': parsed.parse_quality.to_dict(), 'enhancedPrompt': True},
        )

    return FallbackStrategy(
        name=name,
        priority=2,
        cost=get_config("fallback.generic_cost", 0.01),
        expected_accuracy=0.75,
        can_handle=can_handle,
        execute=execute,
    )


def extract_using_patterns(raw_text: str, max_items: int = 10) -> ExtractedReceiptData:
    """
    Last-resort regex extraction.

    Args:
        raw_text: Recognized receipt text.
        max_items: Maximum number of line items to keep.

    Returns:
        Record with vendor, total, date and simple line items.

    Example:
        >>> data = extract_using_patterns("CORNER CAFE\\nLatte $4.50\\nTotal $4.50")
        >>> data.vendor, data.total_amount
        ('CORNER CAFE', 4.5)
    """
    lines = [line.strip() for line in raw_text.split('\n') if line.strip()]

    vendor = "Unknown"
    for line in lines[:5]:
        if 3 < len(line) < 50 and not LEADING_DIGIT_RE.match(line):
            vendor = line
            break

    total = 0.0
    for line in lines:
        if SUBTOTAL_RE.search(line):
            continue
        match = PATTERN_TOTAL_RE.search(line)
        if match:
            total = float(match.group(1))
            break

    receipt_date = None
    normalizer = DateNormalizer()
    for line in lines:
        match = PATTERN_DATE_RE.search(line)
        if match:
            receipt_date = normalizer.normalize(match.group(0))
            if receipt_date:
                break

    items: List[LineItem] = []
    for line in lines:
        if len(items) >= max_items:
            break
        if TOTAL_RE.search(line) or SUBTOTAL_RE.search(line) or TAX_RE.search(line):
            continue
        match = PATTERN_ITEM_RE.match(line)
        if match:
            price = float(match.group(2))
            items.append(LineItem(
                id=f"pattern-item-{len(items)}",
                description=match.group(1).strip(),
                quantity=1.0,
                unit_price=price,
                total_price=price,
            ))

    data = ExtractedReceiptData(
        vendor=vendor,
        total_amount=total,
        subtotal=total,
        tax=0.0,
        line_items=items,
        notes="Extracted using pattern-based fallback",
    )
    if receipt_date:
        data.date = receipt_date

    logger.debug(f"Pattern extraction: vendor='{vendor}', total={total}, items={len(items)}")
    return data


def pattern_strategy() -> FallbackStrategy:
    """Regex-only extraction from the raw text."""
    name = "pattern_based_extraction"
    low, high = PATTERN_CONFIDENCE_RANGE
    confidence = min(high, max(low, get_config("fallback.pattern_confidence", 50)))
    max_items = get_config("fallback.max_pattern_items", 10)

    def can_handle(context: FallbackContext) -> bool:
        return bool(context.raw_text and context.raw_text.strip())

    async def execute(context: FallbackContext) -> AgentResult[ExtractedReceiptData]:
        start_time = time.time()
        data = extract_using_patterns(context.raw_text, max_items)
        data.confidence = confidence
        return AgentResult.ok(name, data, confidence, start_time,
                              metadata={'warnings': ['Rule-based pattern extraction']})

    return FallbackStrategy(
        name=name,
        priority=3,
        cost=0.0,
        expected_accuracy=0.6,
        can_handle=can_handle,
        execute=execute,
    )


def recover_partial_data(partials: List[ExtractedReceiptData]) -> ExtractedReceiptData:
    """
    Merge the non-empty fields of earlier results; later results win.
    """
    recovered = ExtractedReceiptData(notes="Recovered from partial results")
    items: List[LineItem] = []
    for partial in partials:
        if partial.has_vendor:
            recovered.vendor = partial.vendor
        if partial.date:
            recovered.date = partial.date
        if partial.total_amount > 0:
            recovered.total_amount = partial.total_amount
        if partial.subtotal > 0:
            recovered.subtotal = partial.subtotal
        if partial.tax > 0:
            recovered.tax = partial.tax
        if partial.category and partial.category != "Other":
            recovered.category = partial.category
        items.extend(partial.line_items)

    if items:
        recovered.line_items = deduplicate_items(items)
    return recovered


def partial_recovery_strategy() -> FallbackStrategy:
    """Merge whatever earlier attempts produced."""
    name = "partial_data_recovery"
    confidence = get_config("fallback.partial_confidence", 40)

    def can_handle(context: FallbackContext) -> bool:
        return bool(context.partial_results)

    async def execute(context: FallbackContext) -> AgentResult[ExtractedReceiptData]:
        start_time = time.time()
        data = recover_partial_data(context.partial_results)
        data.confidence = confidence
        return AgentResult.ok(name, data, confidence, start_time,
                              metadata={'partialCount': len(context.partial_results)})

    return FallbackStrategy(
        name=name,
        priority=4,
        cost=0.0,
        expected_accuracy=None,
        can_handle=can_handle,
        execute=execute,
    )


def default_strategies(
    adapter: Optional[RecognitionAdapter] = None,
    parser: Optional[HeuristicParser] = None,
    parsing_agent: Optional[VendorParsingAgent] = None
) -> List[FallbackStrategy]:
    """
    Build the default strategy chain.

    Strategies whose collaborator is not supplied are left out.
    """
    strategies = []
    if adapter is not None:
        strategies.append(baseline_ocr_strategy(adapter, parser or HeuristicParser()))
    if parsing_agent is not None:
        strategies.append(enhanced_generic_strategy(parsing_agent))
    strategies.append(pattern_strategy())
    strategies.append(partial_recovery_strategy())
    return strategies


__all__ = [
    'FallbackStrategy',
    'default_strategies',
    'baseline_ocr_strategy',
    'enhanced_generic_strategy',
    'pattern_strategy',
    'partial_recovery_strategy',
    'extract_using_patterns',
    'recover_partial_data',
]
