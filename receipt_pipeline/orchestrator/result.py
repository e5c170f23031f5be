"""
Pipeline Result Data Classes.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.receipt import ExtractedReceiptData


@dataclass
class PipelineTrace:
    """
    Record of what happened while processing one receipt.

    Attributes:
        stages: AgentResult per stage, in execution order
        total_cost: Sum of all stage costs in USD
        total_processing_time: Wall time in seconds
        agents_used: Names of stages that ran
        fallbacks_triggered: Fallback strategies attempted
        cost_breakdown: Cost per stage
        improvement_over_baseline: Final quality minus baseline confidence
        budget_warnings: BudgetExceeded messages
        warnings: Other non-fatal issues (scanner degradations, kept primary)
        scan: Scanner summary
        cached: Whether the result came from the cache
    """
    stages: Dict[str, AgentResult] = field(default_factory=dict)
    total_cost: float = 0.0
    total_processing_time: float = 0.0
    agents_used: List[str] = field(default_factory=list)
    fallbacks_triggered: List[str] = field(default_factory=list)
    cost_breakdown: Dict[str, float] = field(default_factory=dict)
    improvement_over_baseline: Optional[float] = None
    budget_warnings: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    scan: Optional[Dict[str, Any]] = None
    cached: bool = False

    def record(self, stage: str, result: AgentResult) -> None:
        """Add a stage result and account for its cost."""
        self.stages[stage] = result
        self.agents_used.append(stage)
        self.cost_breakdown[stage] = round(self.cost_breakdown.get(stage, 0.0) + result.cost, 6)
        self.total_cost = round(self.total_cost + result.cost, 6)

    def add_cost(self, stage: str, cost: float) -> None:
        self.cost_breakdown[stage] = round(self.cost_breakdown.get(stage, 0.0) + cost, 6)
        self.total_cost = round(self.total_cost + cost, 6)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'stages': {name: stage.to_dict() for name, stage in self.stages.items()},
            'totalCost': self.total_cost,
            'totalProcessingTime': round(self.total_processing_time, 4),
            'agentsUsed': list(self.agents_used),
            'fallbacksTriggered': list(self.fallbacks_triggered),
            'costBreakdown': dict(self.cost_breakdown),
            'budgetWarnings': list(self.budget_warnings),
            'warnings': list(self.warnings),
            'cached': self.cached,
        }
        if self.improvement_over_baseline is not None:
            result['improvementOverBaseline'] = round(self.improvement_over_baseline, 2)
        if self.scan is not None:
            result['scan'] = self.scan
        return result


@dataclass
class PipelineResult:
    """
    Final outcome of processing one receipt.

    Attributes:
        success: Whether a usable record was produced
        data: Reconciled record
        error: Error message for terminal failures
        error_type: Exception class name for terminal failures
        trace: Processing trace
        source: Input name, when known
    """
    success: bool
    data: Optional[ExtractedReceiptData] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    trace: PipelineTrace = field(default_factory=PipelineTrace)
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase JSON output format."""
        result: Dict[str, Any] = {'success': self.success}
        if self.source:
            result['source'] = self.source
        if self.data is not None:
            result['data'] = self.data.to_dict()
        if self.error:
            result['error'] = self.error
            result['errorType'] = self.error_type
        result['trace'] = self.trace.to_dict()
        return result

    def __repr__(self) -> str:
        if self.success and self.data is not None:
            return (
                f"PipelineResult(success=True, vendor='{self.data.vendor}', "
                f"total={self.data.total_amount}, cost={self.trace.total_cost:.4f})"
            )
        return f"PipelineResult(success=False, error_type={self.error_type})"
