"""
Fallback Data Classes.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from PIL import Image

from .receipt import ExtractedReceiptData
from .vendor import VendorDetectionResult


@dataclass
class FallbackContext:
    """
    Everything a recovery strategy may need from the failed run.

    Attributes:
        raw_text: Recognized receipt text
        image: Rectified image, when the run started from pixels
        failed_agents: Names of stages that failed or fell below the quality gate
        error_messages: Error messages collected from those stages
        vendor_detection: Vendor detection outcome, if any
        partial_results: Records produced by earlier attempts, even failed ones
        original_cost: Cost spent before fallback started
        cost_budget_remaining: Spend allowed for fallback strategies
        time_remaining: Seconds left before the caller deadline, if any
        recognition_confidence: Recognition confidence (0-100), if known
    """
    raw_text: str
    image: Optional[Image.Image] = None
    failed_agents: List[str] = field(default_factory=list)
    error_messages: List[str] = field(default_factory=list)
    vendor_detection: Optional[VendorDetectionResult] = None
    partial_results: List[ExtractedReceiptData] = field(default_factory=list)
    original_cost: float = 0.0
    cost_budget_remaining: float = 0.0
    time_remaining: Optional[float] = None
    recognition_confidence: Optional[float] = None


@dataclass
class FallbackResult:
    """
    Outcome of the fallback chain.

    Attributes:
        success: Whether a strategy produced an acceptable record
        strategy: Winning strategy name, or "none_available" / "all_failed"
        data: Winning record
        cost: Total spend across all attempted strategies
        confidence: Winning strategy confidence (0-100)
        processing_time: Wall time in seconds
        attempted: Trace of attempted strategies; failures end in "_failed"
        error: Error message when unsuccessful
        error_type: Exception class name when unsuccessful
        metadata: originalFailures, recoveryMethod and per-attempt details
    """
    success: bool
    strategy: str
    data: Optional[ExtractedReceiptData] = None
    cost: float = 0.0
    confidence: float = 0.0
    processing_time: float = 0.0
    attempted: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def executions(self) -> int:
        """Number of strategies that were actually executed."""
        return len(self.attempted)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.success,
            'strategy': self.strategy,
            'cost': self.cost,
            'confidence': self.confidence,
            'processingTime': round(self.processing_time, 4),
            'strategiesAttempted': list(self.attempted),
            'metadata': dict(self.metadata),
        }
        if self.data is not None:
            result['data'] = self.data.to_dict()
        if self.error:
            result['error'] = self.error
            result['errorType'] = self.error_type
        return result
