"""
Document Scanner Module for the Receipt Pipeline.

This module provides functionality for:
    - Edge detection and document outline detection
    - Perspective correction through a solved homography
    - Illumination normalization (multi-scale Retinex)
    - Adaptive binarization (Sauvola)
    - Image quality analysis

Author: ML Engineering Team
"""

from .scanner import DocumentScanner, ScanResult, SCAN_METHODS
from .quality import ImageQualityMetrics, analyze_quality

__all__ = [
    'DocumentScanner',
    'ScanResult',
    'SCAN_METHODS',
    'ImageQualityMetrics',
    'analyze_quality',
]
