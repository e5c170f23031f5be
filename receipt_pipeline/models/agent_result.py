"""
Agent Result Data Classes.

Every pipeline stage returns its outcome wrapped in an AgentResult so
that the orchestrator can treat recognition, detection, parsing and
fallback uniformly: a failed stage is a value, not an exception.

Author: ML Engineering Team
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


def _serialize(value: Any) -> Any:
    """Serialize nested data classes through their to_dict()."""
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass
class AgentResult(Generic[T]):
    """
    Uniform envelope returned by every stage.

    Attributes:
        success: Whether the stage produced usable data
        agent_name: Name of the producing stage
        data: Stage payload when successful
        error: Error message when unsuccessful
        error_type: Exception class name for failures (e.g. "ProviderTimeout")
        confidence: Stage confidence (0-100)
        processing_time: Wall time in seconds
        cost: Provider-reported cost in USD
        metadata: Additional stage details
        terminal: The failure ends the run (see ReceiptPipelineError.terminal)
        retryable: Repeating the same call may succeed

    Example:
        >>> started = time.time()
        >>> result = AgentResult.ok("vendor_detection", data, confidence=80, started=started)
        >>> result.success
        True
    """
    success: bool
    agent_name: str
    data: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    confidence: float = 0.0
    processing_time: float = 0.0
    cost: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    terminal: bool = False
    retryable: bool = False

    def __post_init__(self):
        self.confidence = min(100.0, max(0.0, float(self.confidence)))
        self.cost = max(0.0, float(self.cost))

    @classmethod
    def ok(
        cls,
        agent_name: str,
        data: T,
        confidence: float,
        started: float,
        cost: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'AgentResult[T]':
        """Build a successful result timed from `started` (time.time())."""
        return cls(
            success=True,
            agent_name=agent_name,
            data=data,
            confidence=confidence,
            processing_time=time.time() - started,
            cost=cost,
            metadata=metadata or {},
        )

    @classmethod
    def failure(
        cls,
        agent_name: str,
        error: Exception,
        started: float,
        cost: float = 0.0,
        data: Optional[T] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'AgentResult[T]':
        """
        Build a failed result from an exception.

        Args:
            agent_name: Name of the failing stage.
            error: The exception that ended the stage.
            started: Stage start time (time.time()).
            cost: Cost already incurred.
            data: Partial data, if any, kept for partial-result recovery.
            metadata: Additional details.
        """
        return cls(
            success=False,
            agent_name=agent_name,
            data=data,
            error=str(error),
            error_type=type(error).__name__,
            confidence=0.0,
            processing_time=time.time() - started,
            cost=cost,
            metadata=metadata or {},
            terminal=getattr(error, 'terminal', False),
            retryable=getattr(error, 'retryable', False),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase trace format."""
        result = {
            'success': self.success,
            'agentName': self.agent_name,
            'confidence': self.confidence,
            'processingTime': round(self.processing_time, 4),
            'cost': self.cost,
        }
        if self.data is not None:
            result['data'] = _serialize(self.data)
        if self.error:
            result['error'] = self.error
            result['errorType'] = self.error_type
        if self.terminal:
            result['terminal'] = True
        if self.metadata:
            result['metadata'] = _serialize(self.metadata)
        return result

    def __repr__(self) -> str:
        status = "ok" if self.success else f"failed: {self.error_type}"
        return f"AgentResult({self.agent_name}, {status}, conf={self.confidence:.0f}, cost={self.cost:.4f})"


@dataclass
class ParseQuality:
    """
    Multi-dimensional quality assessment of an extraction.

    All scores are in [0, 100].

    Attributes:
        overall_score: Weighted combination of the component scores
        line_item_accuracy: Share of items with real descriptions and prices
        math_consistency: Agreement of subtotal + tax with the total
        vendor_format_match: Vendor detection confidence scaled to 100
        missing_fields: Required fields that are absent or zero
        suspicious_patterns: Human-readable warnings
    """
    overall_score: float
    line_item_accuracy: float
    math_consistency: float
    vendor_format_match: float
    missing_fields: List[str] = field(default_factory=list)
    suspicious_patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overallScore': round(self.overall_score, 2),
            'lineItemAccuracy': round(self.line_item_accuracy, 2),
            'mathConsistency': round(self.math_consistency, 2),
            'vendorFormatMatch': round(self.vendor_format_match, 2),
            'missingFields': list(self.missing_fields),
            'suspiciousPatterns': list(self.suspicious_patterns),
        }
