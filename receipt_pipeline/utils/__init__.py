"""
Utility Module for the Receipt Pipeline.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - Money rounding, fingerprints and async timeouts
"""

from .logger import setup_logger, get_logger
from .helpers import (
    ensure_directory,
    get_file_extension,
    generate_timestamp,
    round_money,
    safe_float,
    image_fingerprint,
    call_with_timeout,
)

__all__ = [
    'setup_logger',
    'get_logger',
    'ensure_directory',
    'get_file_extension',
    'generate_timestamp',
    'round_money',
    'safe_float',
    'image_fingerprint',
    'call_with_timeout',
]
