"""
Contour Tracing and Polygon Approximation.

Functions:
    - trace_components: 8-connected components of a binary mask
    - convex_hull: Monotone-chain convex hull
    - douglas_peucker: Iterative polyline simplification
    - approximate_quad: Reduce a component to a 4-vertex polygon
    - polygon_area: Shoelace area

Points are (x, y) float or int arrays of shape (N, 2).

Author: ML Engineering Team
"""

from typing import List, Optional

import numpy as np


def trace_components(mask: np.ndarray, min_size: int = 1) -> List[np.ndarray]:
    """
    Collect the 8-connected components of a boolean mask.

    Uses a stack-based flood fill over flat pixel indices.

    Args:
        mask: 2-D boolean array.
        min_size: Components with fewer pixels are discarded.

    Returns:
        List of (N, 2) integer arrays of (x, y) pixel coordinates.
    """
    height, width = mask.shape
    remaining = set(np.flatnonzero(mask).tolist())
    components = []

    while remaining:
        seed = remaining.pop()
        stack = [seed]
        members = [seed]

        while stack:
            y, x = divmod(stack.pop(), width)
            for ny in (y - 1, y, y + 1):
                if ny < 0 or ny >= height:
                    continue
                row = ny * width
                for nx in (x - 1, x, x + 1):
                    if nx < 0 or nx >= width:
                        continue
                    neighbor = row + nx
                    if neighbor in remaining:
                        remaining.discard(neighbor)
                        stack.append(neighbor)
                        members.append(neighbor)

        if len(members) >= min_size:
            flat = np.asarray(members, dtype=np.int64)
            components.append(np.column_stack((flat % width, flat // width)))

    return components


def _cross(o, a, b) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: np.ndarray) -> np.ndarray:
    """
    Convex hull by Andrew's monotone chain.

    Returns:
        Hull vertices in counter-clockwise order (image coordinates),
        without repeating the first vertex.
    """
    unique = sorted(set(map(tuple, np.asarray(points).tolist())))
    if len(unique) <= 2:
        return np.asarray(unique, dtype=np.float64)

    lower = []
    for p in unique:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper = []
    for p in reversed(unique):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return np.asarray(lower[:-1] + upper[:-1], dtype=np.float64)


def polygon_area(points: np.ndarray) -> float:
    """Absolute shoelace area of a closed polygon."""
    if len(points) < 3:
        return 0.0
    x = points[:, 0]
    y = points[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def polygon_perimeter(points: np.ndarray) -> float:
    """Perimeter of a closed polygon."""
    if len(points) < 2:
        return 0.0
    return float(np.sum(np.linalg.norm(points - np.roll(points, -1, axis=0), axis=1)))


def _distances_to_line(points: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    direction = end - start
    length = np.hypot(direction[0], direction[1])
    if length == 0:
        return np.hypot(points[:, 0] - start[0], points[:, 1] - start[1])
    return np.abs(direction[0] * (points[:, 1] - start[1]) - direction[1] * (points[:, 0] - start[0])) / length


def douglas_peucker(points: np.ndarray, epsilon: float) -> np.ndarray:
    """
    Simplify an open polyline, keeping both endpoints.

    Runs with an explicit stack instead of recursion.

    Args:
        points: (N, 2) polyline.
        epsilon: Maximum allowed deviation.

    Returns:
        Simplified (M, 2) polyline.
    """
    count = len(points)
    if count < 3:
        return points.copy()

    keep = np.zeros(count, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, count - 1)]

    while stack:
        start, end = stack.pop()
        if end <= start + 1:
            continue
        distances = _distances_to_line(points[start + 1:end], points[start], points[end])
        index = int(np.argmax(distances))
        if distances[index] > epsilon:
            split = start + 1 + index
            keep[split] = True
            stack.append((start, split))
            stack.append((split, end))

    return points[keep]


def simplify_closed(points: np.ndarray, epsilon: float) -> np.ndarray:
    """
    Douglas-Peucker on a closed polygon.

    The ring is split at the vertex farthest from the first one and each
    half is simplified separately.
    """
    count = len(points)
    if count < 4:
        return points.copy()

    distances = np.hypot(points[:, 0] - points[0, 0], points[:, 1] - points[0, 1])
    far = int(np.argmax(distances))
    if far == 0:
        return points[:1].copy()

    first = douglas_peucker(points[:far + 1], epsilon)
    second = douglas_peucker(np.vstack((points[far:], points[:1])), epsilon)
    return np.vstack((first[:-1], second[:-1]))


def approximate_quad(component: np.ndarray, epsilon_ratio: float = 0.02) -> Optional[np.ndarray]:
    """
    Approximate a traced component by a quadrilateral.

    The component is ordered through its convex hull and simplified with
    a tolerance proportional to the hull perimeter.

    Args:
        component: (N, 2) pixel coordinates.
        epsilon_ratio: Tolerance as a fraction of the perimeter.

    Returns:
        (4, 2) float array of vertices, or None when the simplified
        polygon does not have exactly four vertices.
    """
    hull = convex_hull(component)
    if len(hull) < 4:
        return None

    epsilon = epsilon_ratio * polygon_perimeter(hull)
    approx = simplify_closed(hull, epsilon)
    if len(approx) != 4:
        return None
    return approx
