"""
Image Quality Analysis Module.

Measures sharpness, contrast, brightness and text density of a receipt
photo and derives an overall score and a processing route.

Author: ML Engineering Team
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

import numpy as np
from PIL import Image

# Analysis runs on a copy no larger than this
ANALYSIS_MAX_DIM = 1000
TEXT_GRADIENT_THRESHOLD = 30


@dataclass
class ImageQualityMetrics:
    """
    Quality measurements of one image, each on a 0-100 scale.

    Attributes:
        sharpness: Laplacian variance / 100, capped at 100
        contrast: Grayscale standard deviation / 2.55
        brightness: Mean luminance / 2.55
        text_density: Share of strong-gradient pixels, scaled
        overall_score: Weighted combination of the above
        processing_route: 'simple', 'standard' or 'complex'
        estimated_line_items: Rough line item count from text density
    """
    sharpness: float
    contrast: float
    brightness: float
    text_density: float
    overall_score: float
    processing_route: str
    estimated_line_items: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with rounded values."""
        return {
            key: round(value, 2) if isinstance(value, float) else value
            for key, value in asdict(self).items()
        }


def analyze_quality(image: Image.Image) -> ImageQualityMetrics:
    """
    Analyze image quality.

    Args:
        image: PIL Image in any mode.

    Returns:
        ImageQualityMetrics.

    Example:
        >>> metrics = analyze_quality(Image.new('L', (100, 100), 255))
        >>> metrics.contrast
        0.0
    """
    gray = image.convert('L')
    if max(gray.size) > ANALYSIS_MAX_DIM:
        gray = gray.copy()
        gray.thumbnail((ANALYSIS_MAX_DIM, ANALYSIS_MAX_DIM))

    pixels = np.asarray(gray, dtype=np.float64)

    sharpness = _sharpness(pixels)
    contrast = min(100.0, float(pixels.std()) / 2.55)
    brightness = float(pixels.mean()) / 2.55
    text_density = _text_density(pixels)

    overall = _overall_score(sharpness, contrast, brightness, text_density)
    return ImageQualityMetrics(
        sharpness=sharpness,
        contrast=contrast,
        brightness=brightness,
        text_density=text_density,
        overall_score=overall,
        processing_route=_processing_route(overall, text_density),
        estimated_line_items=max(1, int(text_density // 10)),
    )


def _sharpness(pixels: np.ndarray) -> float:
    if pixels.shape[0] < 3 or pixels.shape[1] < 3:
        return 0.0
    center = pixels[1:-1, 1:-1]
    neighborhood = (
        pixels[:-2, :-2] + pixels[:-2, 1:-1] + pixels[:-2, 2:]
        + pixels[1:-1, :-2] + pixels[1:-1, 2:]
        + pixels[2:, :-2] + pixels[2:, 1:-1] + pixels[2:, 2:]
    )
    laplacian = 8 * center - neighborhood
    return min(100.0, float(laplacian.var()) / 100.0)


def _text_density(pixels: np.ndarray) -> float:
    if pixels.shape[0] < 2 or pixels.shape[1] < 2:
        return 0.0
    gradient_x = np.abs(pixels[:-1, 1:] - pixels[:-1, :-1])
    gradient_y = np.abs(pixels[1:, :-1] - pixels[:-1, :-1])
    edges = np.count_nonzero((gradient_x > TEXT_GRADIENT_THRESHOLD) | (gradient_y > TEXT_GRADIENT_THRESHOLD))
    return min(100.0, edges / pixels.size * 10000)


def _overall_score(sharpness: float, contrast: float, brightness: float, text_density: float) -> float:
    # Brightness is best around 50%
    penalty = abs(brightness - 50) / 50
    adjusted_brightness = brightness * (1 - penalty * 0.5)
    return sharpness * 0.3 + contrast * 0.3 + adjusted_brightness * 0.2 + text_density * 0.2


def _processing_route(overall_score: float, text_density: float) -> str:
    if overall_score >= 70 and text_density <= 30:
        return 'simple'
    if overall_score >= 50 or text_density <= 50:
        return 'standard'
    return 'complex'
