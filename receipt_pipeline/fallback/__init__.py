"""
Fallback Module for the Receipt Pipeline.

This module provides the recovery chain run after a failed or
low-quality parse:
    - Strategy records (baseline OCR, enhanced generic, pattern, partial)
    - FallbackManager with attempt, cost and time limits
"""

from .manager import FallbackManager
from .strategies import (
    FallbackStrategy,
    default_strategies,
    baseline_ocr_strategy,
    enhanced_generic_strategy,
    pattern_strategy,
    partial_recovery_strategy,
    extract_using_patterns,
    recover_partial_data,
)

__all__ = [
    'FallbackManager',
    'FallbackStrategy',
    'default_strategies',
    'baseline_ocr_strategy',
    'enhanced_generic_strategy',
    'pattern_strategy',
    'partial_recovery_strategy',
    'extract_using_patterns',
    'recover_partial_data',
]
