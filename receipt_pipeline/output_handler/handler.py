"""
Main Output Handler Module.

This module provides the OutputHandler class that writes pipeline
results to a JSON file and formats one-line summaries for the CLI.

Author: ML Engineering Team
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config import get_config
from receipt_pipeline.orchestrator.result import PipelineResult
from receipt_pipeline.utils.helpers import ensure_directory
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class OutputHandler:
    """
    Writes pipeline results as a JSON array.

    Attributes:
        output_dir: Directory results are written to
        default_filename: File name used when none is given
        indent: JSON indentation

    Example:
        >>> handler = OutputHandler()
        >>> path = handler.save(results)
        >>> print(f"Saved to: {path}")
    """

    def __init__(self, output_dir: Optional[Union[str, Path]] = None) -> None:
        """
        Initialize the output handler.

        Args:
            output_dir: Override for output.directory.
        """
        self.output_dir = Path(output_dir or get_config("output.directory", "outputs"))
        self.default_filename = get_config("output.filename", "receipt_results.json")
        self.indent = get_config("output.indent", 2)

        logger.debug(f"OutputHandler initialized (dir: {self.output_dir})")

    def save(
        self,
        results: Union[PipelineResult, List[PipelineResult]],
        filename: Optional[str] = None
    ) -> str:
        """
        Save results to a JSON file.

        Args:
            results: Single result or list of results.
            filename: Output file name, or a full path ending in .json.

        Returns:
            Path to the written file.
        """
        # Normalize to list
        if isinstance(results, PipelineResult):
            results = [results]

        target = Path(filename or self.default_filename)
        if target.parent == Path('.'):
            target = self.output_dir / target
        ensure_directory(target.parent)

        payload = [result.to_dict() for result in results]
        with open(target, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=self.indent, default=str)

        logger.info(f"Saved {len(payload)} result(s) to {target}")
        return str(target)

    @staticmethod
    def summarize(result: PipelineResult) -> str:
        """One summary line for a result."""
        name = result.source or "receipt"
        if not result.success or result.data is None:
            return f"[FAIL] {name}: {result.error_type}: {result.error}"

        data = result.data
        fallbacks = f", fallbacks={','.join(result.trace.fallbacks_triggered)}" if result.trace.fallbacks_triggered else ""
        return (
            f"[OK]   {name}: {data.vendor} | {data.date or 'no date'} | "
            f"{len(data.line_items)} items | total ${data.total_amount:.2f} | "
            f"cost ${result.trace.total_cost:.4f}{fallbacks}"
        )

    @staticmethod
    def statistics(results: List[PipelineResult]) -> Dict[str, Any]:
        """Aggregate counts and costs over a batch."""
        succeeded = [r for r in results if r.success]
        total_cost = round(sum(r.trace.total_cost for r in results), 6)
        return {
            'total': len(results),
            'succeeded': len(succeeded),
            'failed': len(results) - len(succeeded),
            'totalCost': total_cost,
            'averageCost': round(total_cost / len(results), 6) if results else 0.0,
            'fallbacksUsed': sum(1 for r in results if r.trace.fallbacks_triggered),
            'cached': sum(1 for r in results if r.trace.cached),
        }
