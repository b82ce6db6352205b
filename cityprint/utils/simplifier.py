"""Scale-aware Douglas-Peucker simplification."""

import numpy as np


def auto_simplify_tolerance(scale_mm_per_m):
    """
    Choose a simplification tolerance (model mm) from the model scale.

    For a 200mm model: a 1km selection keeps full detail, 3km drops
    ~0.25mm wiggles, 5km+ drops up to 0.6mm. Detail below ~0.3mm is not
    visible on a print anyway.
    """
    if scale_mm_per_m >= 0.15:
        return 0.0
    if scale_mm_per_m >= 0.08:
        return 0.25
    if scale_mm_per_m >= 0.04:
        return 0.4
    return 0.6


def _perpendicular_distances(points, a, b):
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return np.hypot(points[:, 0] - a[0], points[:, 1] - a[1])
    return np.abs(dy * points[:, 0] - dx * points[:, 1] + b[0] * a[1] - b[1] * a[0]) / np.sqrt(length_sq)


def _douglas_peucker(points, tolerance):
    keep = np.zeros(len(points), dtype=bool)
    keep[0] = True
    keep[-1] = True

    # Iterative stack instead of recursion; long coastlines can be deep
    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = _perpendicular_distances(points[first + 1:last], points[first], points[last])
        offset = int(np.argmax(distances))
        if distances[offset] > tolerance:
            index = first + 1 + offset
            keep[index] = True
            stack.append((first, index))
            stack.append((index, last))

    return points[keep]


def simplify_ring(points, tolerance):
    """
    Douglas-Peucker reduction of a closed ring.

    A repeated closing point is ignored. The ring is split at the vertex
    farthest from its first vertex and each half is reduced as an open
    polyline, so both split vertices survive. Rings of three or fewer
    distinct vertices come back unchanged, as does any ring the reduction
    would leave with fewer than three.

    Args:
        points: Numpy array of shape (N, 2) or list of (x, y)
        tolerance: Maximum deviation (model mm) of a dropped point

    Returns:
        numpy array of the retained vertices, without a closing point
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) > 1 and np.allclose(points[0], points[-1]):
        points = points[:-1]
    if len(points) <= 3 or tolerance <= 0:
        return points

    reach = np.hypot(points[:, 0] - points[0, 0], points[:, 1] - points[0, 1])
    split = int(np.argmax(reach))
    if reach[split] == 0:
        return points

    first_half = _douglas_peucker(points[:split + 1], tolerance)
    second_half = _douglas_peucker(np.vstack([points[split:], points[:1]]), tolerance)
    reduced = np.vstack([first_half, second_half[1:-1]])
    if len(reduced) < 3:
        return points
    return reduced


def simplify_polyline(points, tolerance):
    """
    Douglas-Peucker reduction of an open polyline.

    The first and last points are always kept and inputs of three or
    fewer points are returned unchanged. A polyline whose last point
    repeats its first is reduced with simplify_ring and returned closed.

    Args:
        points: Numpy array of shape (N, 2) or list of (x, y)
        tolerance: Maximum deviation (model mm) of a dropped point

    Returns:
        numpy array of the retained points, in input order
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) <= 3 or tolerance <= 0:
        return points

    if np.allclose(points[0], points[-1]):
        ring = simplify_ring(points, tolerance)
        return np.vstack([ring, ring[:1]])

    return _douglas_peucker(points, tolerance)
