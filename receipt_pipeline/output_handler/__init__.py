"""
Output Handler Module for the Receipt Pipeline.

This module provides functionality for:
    - JSON result files
    - Per-receipt summary lines and batch statistics

Author: ML Engineering Team
"""

from .handler import OutputHandler

__all__ = ['OutputHandler']
