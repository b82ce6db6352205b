"""Buffer polylines into closed strip polygons."""

import numpy as np


def _unit_normal(a, b):
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length = np.hypot(dx, dy) or 1.0
    return np.array([-dy / length, dx / length])


def buffer_line_to_polygon(line, half_width):
    """
    Buffer a polyline into a closed strip polygon.

    Endpoints are offset along the normal of their single segment;
    interior vertices along the normalized average of both adjacent
    segment normals (simple mitre, no bevel or round joins).

    Args:
        line: List of (x, y) points or numpy array of shape (N, 2)
        half_width: Offset distance on each side

    Returns:
        numpy array: Left rail followed by the reversed right rail, shape
        (2N, 2), or an empty (0, 2) array for degenerate input
    """
    if len(line) < 2:
        return np.zeros((0, 2))

    # Remove duplicate consecutive points
    points = np.asarray(line, dtype=np.float64)
    clean = [points[0]]
    for point in points[1:]:
        if not np.allclose(point, clean[-1], atol=1e-9):
            clean.append(point)
    if len(clean) < 2:
        return np.zeros((0, 2))
    points = np.array(clean)

    n = len(points)
    left = np.empty((n, 2))
    right = np.empty((n, 2))

    for i in range(n):
        if i == 0:
            normal = _unit_normal(points[0], points[1])
        elif i == n - 1:
            normal = _unit_normal(points[i - 1], points[i])
        else:
            averaged = (_unit_normal(points[i - 1], points[i]) +
                        _unit_normal(points[i], points[i + 1])) / 2
            normal = averaged / (np.hypot(averaged[0], averaged[1]) or 1.0)

        left[i] = points[i] + normal * half_width
        right[i] = points[i] - normal * half_width

    return np.vstack([left, right[::-1]])
