"""
Receipt Orchestrator Module.

This module provides the ReceiptOrchestrator class that sequences the
whole pipeline for one receipt and records what happened in a trace.

Pipeline:
    1. Cache lookup (sha256 fingerprint of the image)
    2. Document scanning
    3. Text recognition
    4. Optional baseline heuristic parse
    5. Vendor detection
    6. Vendor-specific parsing
    7. Quality gate
    8. Fallback recovery
    9. Assembly and reconciliation
    10. Cache write

Usage:
    from receipt_pipeline.orchestrator import ReceiptOrchestrator

    orchestrator = ReceiptOrchestrator()
    result = asyncio.run(orchestrator.process_file("receipt.jpg"))
    print(result.data.to_json())

Author: ML Engineering Team
"""

import asyncio
import copy
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from PIL import Image

from config import get_config
from receipt_pipeline.agents.llm_client import TextUnderstandingClient
from receipt_pipeline.agents.quality import assess_parse_quality
from receipt_pipeline.agents.vendor_detection import VendorDetectionAgent
from receipt_pipeline.agents.vendor_parser import VendorParsingAgent
from receipt_pipeline.fallback.manager import FallbackManager
from receipt_pipeline.fallback.strategies import default_strategies
from receipt_pipeline.input_handler.handler import InputHandler
from receipt_pipeline.models.agent_result import AgentResult, ParseQuality
from receipt_pipeline.models.fallback import FallbackContext
from receipt_pipeline.models.receipt import ExtractedReceiptData
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorType
from receipt_pipeline.ocr_engine.adapter import RecognitionAdapter
from receipt_pipeline.orchestrator.cache import ResultCache
from receipt_pipeline.orchestrator.pipeline_config import PipelineConfig
from receipt_pipeline.orchestrator.result import PipelineResult, PipelineTrace
from receipt_pipeline.parser.heuristic_parser import HeuristicParser
from receipt_pipeline.scanner.scanner import DocumentScanner
from receipt_pipeline.utils.exceptions import (
    AllStrategiesExhausted,
    BudgetExceeded,
    ConfigurationError,
    DeadlineExceeded,
    InputError,
    LowConfidenceParse,
    ReceiptPipelineError,
)
from receipt_pipeline.utils.helpers import image_fingerprint
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.vendors.registry import VENDOR_REGISTRY

# Initialize module logger
logger = get_logger(__name__)

DEFAULT_TEXT_LENGTH = 1000
PROMPT_OVERHEAD_CHARS = 1500


class ReceiptOrchestrator:
    """
    Sequences scanning, recognition, parsing and recovery for receipts.

    Collaborators are built once here and injected into the stages;
    pass your own to replace any of them.

    Attributes:
        config: Pipeline options
        scanner: DocumentScanner
        adapter: RecognitionAdapter
        llm_client: TextUnderstandingClient
        cache: ResultCache, or None when caching is disabled
        heuristic_parser: HeuristicParser
        detection_agent: VendorDetectionAgent
        parsing_agent: VendorParsingAgent
        fallback_manager: FallbackManager

    Example:
        >>> orchestrator = ReceiptOrchestrator(PipelineConfig.for_mode("testing"))
        >>> result = asyncio.run(orchestrator.process_text(raw_text))
        >>> result.data.vendor
        'Walmart'
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        scanner: Optional[DocumentScanner] = None,
        adapter: Optional[RecognitionAdapter] = None,
        llm_client: Optional[TextUnderstandingClient] = None,
        cache: Optional[ResultCache] = None,
        fallback_manager: Optional[FallbackManager] = None
    ) -> None:
        self.config = config or PipelineConfig.from_config()
        self.scanner = scanner or DocumentScanner(enhanced=self.config.enable_enhanced_preprocessing)
        self.adapter = adapter or RecognitionAdapter()
        self.llm_client = llm_client or TextUnderstandingClient()

        if cache is None and get_config("cache.enabled", True):
            cache = ResultCache()
        self.cache = cache

        self.heuristic_parser = HeuristicParser()
        self.detection_agent = VendorDetectionAgent()
        self.parsing_agent = VendorParsingAgent(self.llm_client)
        self.fallback_manager = fallback_manager or FallbackManager(
            default_strategies(self.adapter, self.heuristic_parser, self.parsing_agent),
            max_attempts=self.config.max_fallback_attempts,
            max_total_cost=self.config.max_total_fallback_cost,
        )
        self.input_handler = InputHandler()

        logger.info(f"ReceiptOrchestrator initialized: {self.config.to_dict()}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_receipt(
        self,
        image: Image.Image,
        *,
        deadline: Optional[float] = None,
        compare_baseline: bool = False,
        force_vendor: Optional[Union[str, VendorType]] = None,
        source: Optional[str] = None
    ) -> PipelineResult:
        """
        Process one receipt image.

        Args:
            image: Decoded receipt image.
            deadline: Seconds allowed for this receipt. Defaults to
                pipeline.timeout_ms.
            compare_baseline: Also run the heuristic parser and report
                the improvement over it.
            force_vendor: Skip detection and parse as this vendor.
            source: Input name recorded in the result.

        Returns:
            PipelineResult. Terminal failures (DeadlineExceeded,
            AllStrategiesExhausted) are returned, not raised.

        Raises:
            ConfigurationError: If force_vendor is not a known vendor type.
        """
        start_time = time.time()
        forced = self._resolve_vendor(force_vendor)
        deadline_at = start_time + (deadline if deadline is not None else self.config.timeout_ms / 1000)
        trace = PipelineTrace()

        # Step 1: Cache lookup
        cache_key = None
        if self.cache is not None:
            cache_key = image_fingerprint(image)
            if forced is not None:
                cache_key = f"{cache_key}:{forced.value}"
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for {source or cache_key[:12]}")
                result = copy.deepcopy(cached)
                result.trace.cached = True
                result.source = source or result.source
                return result

        try:
            # Step 2: Scan
            scan_started = time.time()
            scan = await self.scanner.scan_async(image)
            trace.record('scanner', AgentResult.ok(
                'scanner', scan.to_dict(), scan.metadata['quality']['overall_score'], scan_started
            ))
            trace.scan = scan.to_dict()
            trace.warnings.extend(scan.warnings)
            self._check_deadline(deadline_at, 'scanner')

            # Step 3: Recognize
            if scan.method == 'basic':
                recognition = await self.adapter.recognize(scan.image)
            else:
                recognition = await self.adapter.recognize(scan.corrected, enhanced=scan.image)
            trace.record('recognition', recognition)
            self._check_budget(trace, 'recognition')
            self._check_deadline(deadline_at, 'recognition')

            failed_agents: List[str] = []
            errors: List[str] = []
            raw_text = ""
            ocr_confidence = None
            if recognition.success:
                raw_text = recognition.data.text
                ocr_confidence = recognition.data.confidence
            else:
                failed_agents.extend(['recognition', 'baseline_ocr'])
                errors.append(recognition.error or "Recognition failed")

            result = await self._process_text(
                raw_text, ocr_confidence, scan.corrected, trace, deadline_at,
                compare_baseline, forced, failed_agents, errors
            )
        except ReceiptPipelineError as e:
            result = self._terminal(e, trace)

        result.source = source
        result.trace.total_processing_time = time.time() - start_time

        # Step 10: Cache write
        if cache_key is not None and result.success:
            self.cache.put(cache_key, copy.deepcopy(result))

        self._log_outcome(result)
        return result

    async def process_text(
        self,
        raw_text: str,
        *,
        ocr_confidence: Optional[float] = None,
        deadline: Optional[float] = None,
        compare_baseline: bool = False,
        force_vendor: Optional[Union[str, VendorType]] = None,
        source: Optional[str] = None
    ) -> PipelineResult:
        """
        Process already-recognized receipt text (steps 4 to 9).

        Args:
            raw_text: Recognized receipt text.
            ocr_confidence: Recognition confidence (0-100), if known.
            deadline: Seconds allowed. Defaults to pipeline.timeout_ms.
            compare_baseline: Also run the heuristic parser.
            force_vendor: Skip detection and parse as this vendor.
            source: Input name recorded in the result.
        """
        start_time = time.time()
        forced = self._resolve_vendor(force_vendor)
        deadline_at = start_time + (deadline if deadline is not None else self.config.timeout_ms / 1000)
        trace = PipelineTrace()

        try:
            result = await self._process_text(
                raw_text, ocr_confidence, None, trace, deadline_at,
                compare_baseline, forced, [], []
            )
        except ReceiptPipelineError as e:
            result = self._terminal(e, trace)

        result.source = source
        result.trace.total_processing_time = time.time() - start_time
        self._log_outcome(result)
        return result

    async def process_file(self, filepath: Union[str, Path], **kwargs: Any) -> PipelineResult:
        """
        Load a receipt file (image or first PDF page) and process it.

        Input errors come back as failed results.
        """
        try:
            loaded = self.input_handler.load(filepath)
        except InputError as e:
            logger.error(f"Could not load {filepath}: {e}")
            return PipelineResult(
                success=False, error=str(e), error_type=type(e).__name__, source=str(filepath)
            )
        return await self.process_receipt(loaded.image, source=loaded.filename, **kwargs)

    async def process_batch(
        self,
        inputs: List[Union[str, Path, Image.Image]],
        **kwargs: Any
    ) -> List[PipelineResult]:
        """
        Process independent receipts concurrently.

        Args:
            inputs: File paths or decoded images.
            **kwargs: Options passed to each run.

        Returns:
            Results in input order.
        """
        tasks = []
        for item in inputs:
            if isinstance(item, Image.Image):
                tasks.append(self.process_receipt(item, **kwargs))
            else:
                tasks.append(self.process_file(item, **kwargs))

        logger.info(f"Processing batch of {len(tasks)} receipts")
        results = await asyncio.gather(*tasks)
        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Batch complete: {succeeded}/{len(results)} succeeded")
        return list(results)

    # ------------------------------------------------------------------
    # Text stages
    # ------------------------------------------------------------------

    async def _process_text(
        self,
        raw_text: str,
        ocr_confidence: Optional[float],
        image: Optional[Image.Image],
        trace: PipelineTrace,
        deadline_at: float,
        compare_baseline: bool,
        forced: Optional[VendorType],
        failed_agents: List[str],
        errors: List[str]
    ) -> PipelineResult:
        # Step 4: Baseline heuristic parse
        baseline: Optional[ExtractedReceiptData] = None
        if raw_text and (compare_baseline or not self.config.enable_specialized_parsing):
            started = time.time()
            baseline = self.heuristic_parser.parse(raw_text, ocr_confidence)
            trace.record('baseline_parse', AgentResult.ok(
                'baseline_parse', baseline, baseline.confidence, started
            ))

        # Step 5: Vendor detection
        detection = self._detect_vendor(raw_text, forced, trace)

        # Step 6: Parsing
        primary: Optional[ExtractedReceiptData] = None
        quality: Optional[ParseQuality] = None
        if not raw_text:
            errors.append("No text to parse")
        elif self.config.enable_specialized_parsing:
            parsed = await self._parse_with_retries(raw_text, detection, trace)
            if parsed.success:
                primary = parsed.data.extracted_data
                quality = parsed.data.parse_quality
            else:
                failed_agents.append('vendor_parsing')
                errors.append(parsed.error or "Vendor parsing failed")
        else:
            primary = baseline
            quality = assess_parse_quality(primary, detection.confidence)
            logger.info(f"Specialized parsing disabled, heuristic parse stands in (quality={quality.overall_score:.1f})")
        self._check_deadline(deadline_at, 'parsing')

        # Step 7: Quality gate
        reasons = self._fallback_reasons(primary, quality, detection)
        if quality is not None and quality.overall_score < self.config.quality_threshold * 100:
            gate = LowConfidenceParse(quality.overall_score, self.config.quality_threshold * 100, reasons)
            errors.append(str(gate))
            failed_agents.append('quality_gate')

        final = primary
        final_confidence = quality.overall_score if quality is not None else 0.0

        # Step 8: Fallback
        if reasons:
            logger.warning(f"Fallback triggered: {', '.join(reasons)}")
            if self.config.enable_fallbacks:
                partials = [r for r in (primary, baseline) if r is not None]
                context = FallbackContext(
                    raw_text=raw_text,
                    image=image,
                    failed_agents=list(failed_agents),
                    error_messages=list(errors),
                    vendor_detection=detection,
                    partial_results=partials,
                    original_cost=trace.total_cost,
                    cost_budget_remaining=max(0.0, self.config.cost_threshold_per_receipt - trace.total_cost),
                    time_remaining=max(0.0, deadline_at - time.time()),
                    recognition_confidence=ocr_confidence,
                )
                started = time.time()
                recovery = await self.fallback_manager.recover(context)
                trace.record('fallback', AgentResult(
                    success=recovery.success,
                    agent_name='fallback',
                    data=recovery.data,
                    error=recovery.error,
                    error_type=recovery.error_type,
                    confidence=recovery.confidence,
                    processing_time=time.time() - started,
                    cost=recovery.cost,
                    metadata={'strategy': recovery.strategy, **recovery.metadata},
                ))
                trace.fallbacks_triggered.extend(recovery.attempted)
                self._check_budget(trace, 'fallback')
                self._check_deadline(deadline_at, 'fallback')

                if recovery.success:
                    final = recovery.data
                    final_confidence = recovery.confidence
                elif primary is not None:
                    trace.warnings.append(f"Fallback failed ({recovery.strategy}), keeping primary result")
                    logger.warning(f"Fallback failed ({recovery.strategy}), keeping primary result")
                else:
                    raise AllStrategiesExhausted(recovery.attempted)
            elif primary is not None:
                trace.warnings.append("Fallbacks disabled, keeping primary result")
            else:
                raise AllStrategiesExhausted([])

        # Step 9: Assembly
        final = final.reconciled()
        if compare_baseline and baseline is not None:
            trace.improvement_over_baseline = final_confidence - baseline.confidence

        logger.info(
            f"Receipt assembled: vendor={final.vendor}, total={final.total_amount:.2f}, "
            f"score={final_confidence:.1f}, cost=${trace.total_cost:.4f}"
        )
        return PipelineResult(success=True, data=final, trace=trace)

    def _detect_vendor(
        self,
        raw_text: str,
        forced: Optional[VendorType],
        trace: PipelineTrace
    ) -> VendorDetectionResult:
        started = time.time()

        if forced is not None:
            detection = VendorDetectionResult(
                vendor_type=forced,
                confidence=1.0,
                evidence=['Vendor forced by caller'],
                fallback_to_generic=False,
            )
        elif not self.config.enable_vendor_detection:
            detection = VendorDetectionResult(
                vendor_type=VendorType.GENERIC,
                confidence=0.5,
                evidence=['Vendor detection disabled'],
                fallback_to_generic=True,
            )
        else:
            if self.detection_agent.can_handle(raw_text):
                result = self.detection_agent.detect(raw_text)
            else:
                result = AgentResult.failure(
                    'vendor_detection', ValueError("Text too short for vendor detection"), started
                )
            trace.record('vendor_detection', result)
            if result.success:
                return result.data
            return VendorDetectionResult(
                vendor_type=VendorType.GENERIC,
                confidence=0.3,
                evidence=[f"Vendor detection failed: {result.error}"],
                fallback_to_generic=True,
            )

        trace.record('vendor_detection', AgentResult.ok(
            'vendor_detection', detection, detection.confidence * 100, started
        ))
        return detection

    async def _parse_with_retries(
        self,
        raw_text: str,
        detection: VendorDetectionResult,
        trace: PipelineTrace
    ) -> AgentResult:
        result = await self.parsing_agent.parse(raw_text, detection)
        retries = 0
        while self._should_retry(result) and retries < self.config.max_retries:
            retries += 1
            logger.warning(f"Vendor parsing failed with {result.error_type}, retry {retries}/{self.config.max_retries}")
            trace.add_cost('vendor_parsing', result.cost)
            result = await self.parsing_agent.parse(raw_text, detection)

        trace.record('vendor_parsing', result)
        self._check_budget(trace, 'vendor_parsing')
        return result

    @staticmethod
    def _should_retry(result: AgentResult) -> bool:
        return not result.success and result.retryable and not result.terminal

    def _fallback_reasons(
        self,
        primary: Optional[ExtractedReceiptData],
        quality: Optional[ParseQuality],
        detection: VendorDetectionResult
    ) -> List[str]:
        reasons = []
        if primary is None or quality is None:
            reasons.append('parse failed')
        else:
            if quality.overall_score < self.config.quality_threshold * 100:
                reasons.append(f"quality {quality.overall_score:.1f} below threshold")
            if quality.math_consistency < self.config.min_math_consistency:
                reasons.append(f"math consistency {quality.math_consistency:.1f}")
        if detection.confidence < self.config.min_vendor_confidence:
            reasons.append(f"vendor confidence {detection.confidence:.2f}")
        return reasons

    # ------------------------------------------------------------------
    # Budget, deadline, outcome
    # ------------------------------------------------------------------

    def _check_budget(self, trace: PipelineTrace, stage: str) -> None:
        """Record a BudgetExceeded warning; processing continues."""
        if trace.total_cost > self.config.cost_threshold_per_receipt:
            warning = BudgetExceeded(trace.total_cost, self.config.cost_threshold_per_receipt, stage)
            logger.warning(str(warning))
            trace.budget_warnings.append(str(warning))

    @staticmethod
    def _check_deadline(deadline_at: float, stage: str) -> None:
        if time.time() > deadline_at:
            raise DeadlineExceeded(stage)

    @staticmethod
    def _terminal(error: ReceiptPipelineError, trace: PipelineTrace) -> PipelineResult:
        logger.error(f"Receipt processing failed: {error}")
        return PipelineResult(
            success=False,
            error=str(error),
            error_type=type(error).__name__,
            trace=trace,
        )

    @staticmethod
    def _resolve_vendor(force_vendor: Optional[Union[str, VendorType]]) -> Optional[VendorType]:
        if force_vendor is None or isinstance(force_vendor, VendorType):
            return force_vendor
        try:
            return VendorType(str(force_vendor).strip().lower())
        except ValueError:
            raise ConfigurationError('force_vendor', force_vendor, "unknown vendor type")

    @staticmethod
    def _log_outcome(result: PipelineResult) -> None:
        trace = result.trace
        if trace.budget_warnings:
            logger.warning(f"{len(trace.budget_warnings)} budget warning(s) for {result.source or 'receipt'}")
        logger.debug(f"Stages: {trace.agents_used}, fallbacks: {trace.fallbacks_triggered}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def estimate_cost(self, raw_text_length: Optional[int] = None) -> Dict[str, Any]:
        """
        Estimate the cost of processing one receipt.

        Args:
            raw_text_length: Expected recognized text length in characters.

        Returns:
            Cost per stage, the worst-case total and whether it fits the budget.
        """
        length = raw_text_length if raw_text_length is not None else DEFAULT_TEXT_LENGTH

        try:
            recognition = self.adapter.select_provider().cost
        except ReceiptPipelineError:
            # No provider available
            recognition = 0.0

        parsing = 0.0
        if self.config.enable_specialized_parsing:
            parsing = self.llm_client.estimated_cost(length + PROMPT_OVERHEAD_CHARS)

        fallback = self.config.max_total_fallback_cost if self.config.enable_fallbacks else 0.0
        expected = round(recognition + parsing, 6)
        worst_case = round(expected + fallback, 6)

        return {
            'recognition': recognition,
            'parsing': parsing,
            'fallbackMax': fallback,
            'expected': expected,
            'worstCase': worst_case,
            'budget': self.config.cost_threshold_per_receipt,
            'withinBudget': expected <= self.config.cost_threshold_per_receipt,
        }

    def get_agent_status(self) -> Dict[str, Any]:
        """Availability and configuration of every collaborator."""
        return {
            'recognition': self.adapter.get_status(),
            'textUnderstanding': self.llm_client.get_status(),
            'vendorDetection': {
                'enabled': self.config.enable_vendor_detection,
                'registeredVendors': [vt.value for vt in VENDOR_REGISTRY],
            },
            'specializedParsing': {'enabled': self.config.enable_specialized_parsing},
            'fallback': {
                'enabled': self.config.enable_fallbacks,
                'strategies': [s.name for s in self.fallback_manager.strategies],
            },
            'cache': self.cache.stats() if self.cache is not None else None,
            'config': self.config.to_dict(),
        }
