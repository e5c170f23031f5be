"""
Perspective Geometry Module.

Corner ordering, homography estimation and inverse warping with
bilinear sampling.

Author: ML Engineering Team
"""

from typing import Tuple

import numpy as np

# Out-of-bounds samples are paper-white
FILL_VALUE = 255.0


def order_corners(points: np.ndarray) -> np.ndarray:
    """
    Order four points as top-left, top-right, bottom-right, bottom-left.

    TL and BR minimize and maximize x + y; TR and BL minimize and
    maximize y - x.

    Example:
        >>> order_corners(np.array([[10, 90], [90, 90], [90, 10], [10, 10]]))
        array([[10., 10.], [90., 10.], [90., 90.], [10., 90.]])
    """
    points = np.asarray(points, dtype=np.float64)
    sums = points[:, 0] + points[:, 1]
    diffs = points[:, 1] - points[:, 0]
    return np.array([
        points[np.argmin(sums)],
        points[np.argmin(diffs)],
        points[np.argmax(sums)],
        points[np.argmax(diffs)],
    ])


def target_size(corners: np.ndarray) -> Tuple[int, int]:
    """
    Output (width, height) from the longer edge of each opposite pair.

    Args:
        corners: Ordered TL, TR, BR, BL corners.
    """
    tl, tr, br, bl = corners
    width = max(np.linalg.norm(tr - tl), np.linalg.norm(br - bl))
    height = max(np.linalg.norm(bl - tl), np.linalg.norm(br - tr))
    return max(1, int(round(width))), max(1, int(round(height)))


def solve_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """
    Solve the 3x3 homography H with H @ src_i ~ dst_i.

    Builds the 8x8 linear system for h0..h7 (h8 fixed to 1) and solves
    it with numpy.linalg.solve.

    Args:
        src: (4, 2) source points.
        dst: (4, 2) destination points.

    Returns:
        3x3 homography matrix.

    Raises:
        numpy.linalg.LinAlgError: If the points are degenerate.
    """
    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)

    for i, ((u, v), (x, y)) in enumerate(zip(src, dst)):
        a[2 * i] = [u, v, 1, 0, 0, 0, -u * x, -v * x]
        a[2 * i + 1] = [0, 0, 0, u, v, 1, -u * y, -v * y]
        b[2 * i] = x
        b[2 * i + 1] = y

    h = np.linalg.solve(a, b)
    return np.append(h, 1.0).reshape(3, 3)


def warp_perspective(
    source: np.ndarray,
    corners: np.ndarray,
    size: Tuple[int, int],
    chunk_rows: int = 256
) -> np.ndarray:
    """
    Rectify the quadrilateral `corners` of `source` into a size[0] x size[1] image.

    Each output pixel is mapped back into the source through the
    homography from the target rectangle to the quad, then sampled
    bilinearly. Rows are processed in chunks.

    Args:
        source: 2-D grayscale array.
        corners: Ordered TL, TR, BR, BL corners in source coordinates.
        size: Output (width, height).
        chunk_rows: Rows per processing chunk.

    Returns:
        uint8 array of shape (height, width).
    """
    out_w, out_h = size
    rectangle = np.array(
        [[0, 0], [out_w - 1, 0], [out_w - 1, out_h - 1], [0, out_h - 1]],
        dtype=np.float64
    )
    homography = solve_homography(rectangle, corners)

    src = source.astype(np.float64)
    src_h, src_w = src.shape
    output = np.empty((out_h, out_w), dtype=np.uint8)
    columns = np.arange(out_w, dtype=np.float64)

    for top in range(0, out_h, max(1, chunk_rows)):
        bottom = min(out_h, top + chunk_rows)
        v, u = np.meshgrid(np.arange(top, bottom, dtype=np.float64), columns, indexing='ij')

        denominator = homography[2, 0] * u + homography[2, 1] * v + homography[2, 2]
        denominator = np.where(np.abs(denominator) < 1e-12, 1e-12, denominator)
        x = (homography[0, 0] * u + homography[0, 1] * v + homography[0, 2]) / denominator
        y = (homography[1, 0] * u + homography[1, 1] * v + homography[1, 2]) / denominator

        output[top:bottom] = _bilinear(src, x, y, src_w, src_h)

    return output


def _bilinear(src: np.ndarray, x: np.ndarray, y: np.ndarray, width: int, height: int) -> np.ndarray:
    inside = (x >= 0) & (x <= width - 1) & (y >= 0) & (y <= height - 1)

    xc = np.clip(x, 0, width - 1)
    yc = np.clip(y, 0, height - 1)
    x0 = np.floor(xc).astype(np.int64)
    y0 = np.floor(yc).astype(np.int64)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)
    fx = xc - x0
    fy = yc - y0

    top = src[y0, x0] * (1 - fx) + src[y0, x1] * fx
    bottom = src[y1, x0] * (1 - fx) + src[y1, x1] * fx
    values = top * (1 - fy) + bottom * fy

    values = np.where(inside, values, FILL_VALUE)
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)
