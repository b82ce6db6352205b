"""Clipping utilities for the rectangular print-bed boundary."""

import math

import numpy as np


class RectangleClipper:
    """
    Axis-aligned rectangle clipper in bed-aligned model space.

    Polygons and lines are rotated into bed axes by the projector before
    they reach the clipper, so a rotated bed is handled as an axis-aligned
    rectangle here.

    The perimeter is parametrised as a single coordinate in [0, 4), one unit
    per side, increasing clockwise (Y up) from the top-left corner:
    0 = top-left, 1 = top-right, 2 = bottom-right, 3 = bottom-left.
    """

    def __init__(self, center_x, center_y, half_width, half_height):
        """
        Initialize rectangle clipper.

        Args:
            center_x: Center X coordinate
            center_y: Center Y coordinate
            half_width: Half of rectangle width (X direction)
            half_height: Half of rectangle height (Y direction)
        """
        self.center_x = center_x
        self.center_y = center_y
        self.half_width = half_width
        self.half_height = half_height

        self.min_x = center_x - half_width
        self.max_x = center_x + half_width
        self.min_y = center_y - half_height
        self.max_y = center_y + half_height

    @classmethod
    def for_model(cls, model_width_mm, model_depth_mm):
        """Clipper for a base plate centred on the model origin."""
        return cls(0.0, 0.0, model_width_mm / 2, model_depth_mm / 2)

    def is_inside(self, x, y):
        """Test if point(s) are inside (or on) the rectangle."""
        return (np.abs(x - self.center_x) <= self.half_width) & \
               (np.abs(y - self.center_y) <= self.half_height)

    def _edges(self):
        # (is_inside, intersect) pairs for left, right, bottom, top
        min_x, max_x, min_y, max_y = self.min_x, self.max_x, self.min_y, self.max_y

        def cross_x(a, b, x):
            t = (x - a[0]) / (b[0] - a[0])
            return (x, a[1] + t * (b[1] - a[1]))

        def cross_y(a, b, y):
            t = (y - a[1]) / (b[1] - a[1])
            return (a[0] + t * (b[0] - a[0]), y)

        return [
            (lambda p: p[0] >= min_x, lambda a, b: cross_x(a, b, min_x)),
            (lambda p: p[0] <= max_x, lambda a, b: cross_x(a, b, max_x)),
            (lambda p: p[1] >= min_y, lambda a, b: cross_y(a, b, min_y)),
            (lambda p: p[1] <= max_y, lambda a, b: cross_y(a, b, max_y)),
        ]

    def clip_polygon(self, points):
        """
        Clip a polygon with the Sutherland-Hodgman algorithm.

        Each of the four half-planes is applied in turn; intersections are
        inserted where an edge crosses the boundary and outside vertices are
        dropped. A polygon already inside is returned point for point.

        Args:
            points: List of (x, y) tuples or numpy array of shape (N, 2),
                implicitly closed

        Returns:
            numpy array or None: Clipped polygon vertices, or None if fully outside
        """
        if len(points) == 0:
            return None

        output = [(float(x), float(y)) for x, y in points]

        for inside, intersect in self._edges():
            if not output:
                return None
            polygon = output
            output = []

            for i, current in enumerate(polygon):
                prev = polygon[i - 1]
                current_in = inside(current)
                prev_in = inside(prev)

                if current_in:
                    if not prev_in:
                        output.append(intersect(prev, current))
                    output.append(current)
                elif prev_in:
                    output.append(intersect(prev, current))

        if not output:
            return None
        return np.array(output)

    def clip_segment(self, p1, p2):
        """
        Liang-Barsky clip of one segment.

        Returns:
            tuple or None: (t0, t1) parameters of the inside portion along
            p1 -> p2, or None if the segment misses the rectangle
        """
        x1, y1 = p1
        dx = p2[0] - x1
        dy = p2[1] - y1

        t0, t1 = 0.0, 1.0
        for p, q in ((-dx, x1 - self.min_x), (dx, self.max_x - x1),
                     (-dy, y1 - self.min_y), (dy, self.max_y - y1)):
            if p == 0:
                if q < 0:
                    return None
                continue
            r = q / p
            if p < 0:
                t0 = max(t0, r)
            else:
                t1 = min(t1, r)
            if t0 > t1:
                return None

        return t0, t1

    def on_boundary(self, x, y, atol=1e-9):
        if not self.is_inside(x, y):
            return False
        return (abs(x - self.min_x) <= atol or abs(x - self.max_x) <= atol or
                abs(y - self.min_y) <= atol or abs(y - self.max_y) <= atol)

    def clip_linestring(self, points):
        """
        Split a linestring into the pieces lying inside the rectangle.

        Unlike polygon clipping, every piece remembers where it crossed the
        boundary so callers can close it along the perimeter.

        Returns:
            list: Dicts with 'points' (numpy array of shape (M, 2)), 'entry'
            and 'exit' ((x, y) on the boundary, or None when the line starts
            or ends strictly inside)
        """
        if len(points) < 2:
            return []

        points = [(float(x), float(y)) for x, y in points]
        pieces = []
        current = None

        def at(p, q, t):
            return (p[0] + t * (q[0] - p[0]), p[1] + t * (q[1] - p[1]))

        def append(piece, point):
            if piece['points'][-1] != point:
                piece['points'].append(point)

        first = points[0]
        if self.is_inside(*first):
            entry = first if self.on_boundary(*first) else None
            current = {'points': [first], 'entry': entry, 'exit': None}

        for i in range(len(points) - 1):
            p, q = points[i], points[i + 1]
            p_in = bool(self.is_inside(*p))
            q_in = bool(self.is_inside(*q))

            if p_in and q_in:
                append(current, q)
            elif p_in:
                span = self.clip_segment(p, q)
                exit_point = at(p, q, span[1]) if span else p
                append(current, exit_point)
                current['exit'] = exit_point
                pieces.append(current)
                current = None
            elif q_in:
                span = self.clip_segment(p, q)
                entry_point = at(p, q, span[0]) if span else q
                current = {'points': [entry_point], 'entry': entry_point, 'exit': None}
                append(current, q)
            else:
                span = self.clip_segment(p, q)
                if span and span[1] - span[0] > 1e-12:
                    a = at(p, q, span[0])
                    b = at(p, q, span[1])
                    pieces.append({'points': [a, b], 'entry': a, 'exit': b})

        if current is not None:
            last = current['points'][-1]
            if len(current['points']) > 1 and self.on_boundary(*last):
                current['exit'] = last
            pieces.append(current)

        kept = []
        for piece in pieces:
            piece_points = np.array(piece['points'])
            # A line that only touches the boundary leaves a single point
            if len(piece_points) < 2 or np.allclose(piece_points, piece_points[0], atol=1e-12):
                continue
            piece['points'] = piece_points
            kept.append(piece)
        return kept

    def perimeter_position(self, x, y):
        """Map a boundary point to its clockwise perimeter coordinate in [0, 4)."""
        width = self.max_x - self.min_x
        height = self.max_y - self.min_y

        distances = [
            abs(y - self.max_y),  # top
            abs(x - self.max_x),  # right
            abs(y - self.min_y),  # bottom
            abs(x - self.min_x),  # left
        ]
        side = distances.index(min(distances))

        if side == 0:
            frac = (x - self.min_x) / width if width > 0 else 0.0
        elif side == 1:
            frac = (self.max_y - y) / height if height > 0 else 0.0
        elif side == 2:
            frac = (self.max_x - x) / width if width > 0 else 0.0
        else:
            frac = (y - self.min_y) / height if height > 0 else 0.0

        return (side + min(max(frac, 0.0), 1.0)) % 4.0

    def corner(self, index):
        """Corner point for perimeter coordinate `index` (0-3)."""
        return [
            (self.min_x, self.max_y),
            (self.max_x, self.max_y),
            (self.max_x, self.min_y),
            (self.min_x, self.min_y),
        ][index % 4]

    def walk_clockwise(self, from_position, to_position):
        """
        Corners passed when walking the perimeter clockwise between two
        perimeter coordinates, both endpoints excluded.
        """
        target = to_position if to_position > from_position else to_position + 4.0
        corners = []
        k = math.floor(from_position) + 1
        while k < target:
            corners.append(self.corner(k))
            k += 1
        return corners
