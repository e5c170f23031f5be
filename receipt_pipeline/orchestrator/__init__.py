"""
Orchestrator Module for the Receipt Pipeline.

This module provides:
    - ReceiptOrchestrator: sequencing, budgets, deadlines and fallback
    - PipelineConfig: validated options and operating modes
    - ResultCache: fingerprint-keyed result cache
    - PipelineResult / PipelineTrace: outcome and trace records
"""

from .orchestrator import ReceiptOrchestrator
from .pipeline_config import PipelineConfig, OPERATING_MODES
from .cache import ResultCache
from .result import PipelineResult, PipelineTrace

__all__ = [
    'ReceiptOrchestrator',
    'PipelineConfig',
    'OPERATING_MODES',
    'ResultCache',
    'PipelineResult',
    'PipelineTrace',
]
