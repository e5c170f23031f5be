"""
Edge Detection Module.

Canny edge detection in numpy:
    1. Separable Gaussian blur
    2. Sobel gradients
    3. Non-maximum suppression along the quantized gradient direction
    4. Double threshold
    5. Hysteresis linking of weak edges to strong ones

Author: ML Engineering Team
"""

import math

import numpy as np

from receipt_pipeline.scanner.contours import trace_components


def gaussian_kernel(sigma: float) -> np.ndarray:
    """Normalized 1-D Gaussian kernel with radius ceil(3 sigma)."""
    radius = max(1, int(math.ceil(3 * sigma)))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-(x ** 2) / (2 * sigma ** 2))
    return kernel / kernel.sum()


def gaussian_blur(gray: np.ndarray, sigma: float) -> np.ndarray:
    """
    Blur a 2-D array with a separable Gaussian kernel.

    Borders are extended by edge replication.
    """
    kernel = gaussian_kernel(sigma)
    radius = len(kernel) // 2
    height, width = gray.shape
    padded = np.pad(gray.astype(np.float64), radius, mode='edge')

    horizontal = np.zeros((height + 2 * radius, width), dtype=np.float64)
    for offset, weight in enumerate(kernel):
        horizontal += weight * padded[:, offset:offset + width]

    blurred = np.zeros((height, width), dtype=np.float64)
    for offset, weight in enumerate(kernel):
        blurred += weight * horizontal[offset:offset + height, :]
    return blurred


def sobel(gray: np.ndarray):
    """
    Sobel gradients.

    Returns:
        Tuple of (gx, gy) arrays with the input's shape.
    """
    p = np.pad(gray.astype(np.float64), 1, mode='edge')
    gx = (p[:-2, 2:] + 2 * p[1:-1, 2:] + p[2:, 2:]) - (p[:-2, :-2] + 2 * p[1:-1, :-2] + p[2:, :-2])
    gy = (p[2:, :-2] + 2 * p[2:, 1:-1] + p[2:, 2:]) - (p[:-2, :-2] + 2 * p[:-2, 1:-1] + p[:-2, 2:])
    return gx, gy


# (dy, dx) of one neighbor per direction bin; the other is its mirror
_DIRECTION_OFFSETS = {
    0: (0, 1),     # 0 degrees
    1: (1, 1),     # 45 degrees
    2: (1, 0),     # 90 degrees
    3: (1, -1),    # 135 degrees
}


def non_maximum_suppression(magnitude: np.ndarray, gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    """
    Thin edges to one pixel by keeping local maxima across the edge.

    Returns:
        Magnitude array with suppressed pixels set to 0.
    """
    angle = np.rad2deg(np.arctan2(gy, gx)) % 180.0
    direction = ((angle + 22.5) // 45).astype(np.int64) % 4

    height, width = magnitude.shape
    padded = np.pad(magnitude, 1, mode='constant')
    result = np.zeros_like(magnitude)

    for bin_index, (dy, dx) in _DIRECTION_OFFSETS.items():
        forward = padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
        backward = padded[1 - dy:1 - dy + height, 1 - dx:1 - dx + width]
        keep = (direction == bin_index) & (magnitude >= forward) & (magnitude >= backward)
        result[keep] = magnitude[keep]

    return result


def hysteresis(strong: np.ndarray, weak: np.ndarray) -> np.ndarray:
    """
    Keep weak edge pixels connected (8-neighborhood) to a strong pixel.

    Args:
        strong: Boolean mask of pixels above the high threshold.
        weak: Boolean mask of pixels above the low threshold.

    Returns:
        Boolean edge mask.
    """
    edges = np.zeros_like(strong, dtype=bool)
    for component in trace_components(weak | strong):
        xs, ys = component[:, 0], component[:, 1]
        if strong[ys, xs].any():
            edges[ys, xs] = True
    return edges


def canny(blurred: np.ndarray, high_ratio: float = 0.2, low_ratio: float = 0.4) -> np.ndarray:
    """
    Canny edge map of an already-blurred grayscale array.

    Args:
        blurred: 2-D float array.
        high_ratio: High threshold as a fraction of the maximum magnitude.
        low_ratio: Low threshold as a fraction of the high threshold.

    Returns:
        Boolean edge mask.
    """
    gx, gy = sobel(blurred)
    magnitude = np.hypot(gx, gy)
    peak = float(magnitude.max()) if magnitude.size else 0.0
    if peak <= 0:
        return np.zeros(blurred.shape, dtype=bool)

    thinned = non_maximum_suppression(magnitude, gx, gy)
    high = peak * high_ratio
    low = high * low_ratio
    return hysteresis(thinned >= high, thinned >= low)


def dilate(mask: np.ndarray) -> np.ndarray:
    """3x3 binary dilation, closing one-pixel gaps at corners."""
    padded = np.pad(mask, 1, mode='constant')
    height, width = mask.shape
    result = np.zeros_like(mask, dtype=bool)
    for dy in range(3):
        for dx in range(3):
            result |= padded[dy:dy + height, dx:dx + width]
    return result
