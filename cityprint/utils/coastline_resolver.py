"""
Sea polygons from OSM coastline fragments.

OSM coastline ways are drawn with the sea on the right-hand side of the
direction of travel. Fragments are chained without ever being reversed,
clipped to the print bed, and each inside piece is closed by walking the
bed perimeter clockwise from where it leaves the bed back to where it
entered.

Known limitation: source data with inconsistent winding yields a land
polygon reported as sea. This is kept as-is rather than guessed at.
"""

import numpy as np

from .osm_elements import resolve_way_coords
from .ring_assembler import chain_fragments
from .simplifier import simplify_polyline, simplify_ring


def signed_area(points):
    """Shoelace signed area; positive for counter-clockwise rings (Y up)."""
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return 0.0
    x = pts[:, 0]
    y = pts[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def _strip_closing_point(points):
    if len(points) > 1 and np.allclose(points[0], points[-1]):
        return points[:-1]
    return points


def close_piece(piece, clipper):
    """
    Close one clipped coastline piece into a sea polygon.

    Returns:
        numpy array or None: Polygon vertices, or None when the piece does
        not both enter and leave the boundary along a stretch of coast
    """
    if piece['entry'] is None or piece['exit'] is None:
        return None
    if len(piece['points']) < 2:
        return None

    exit_position = clipper.perimeter_position(*piece['exit'])
    entry_position = clipper.perimeter_position(*piece['entry'])
    corners = clipper.walk_clockwise(exit_position, entry_position)

    if corners:
        return np.vstack([piece['points'], np.array(corners)])
    return np.array(piece['points'])


def resolve_coastline(coastline_ways, nodes, projector, clipper, stats=None, tolerance=0.0):
    """
    Build sea polygons from coastline ways.

    Args:
        coastline_ways: List of way dicts tagged natural=coastline
        nodes: Node lookup table, id -> (lat, lon)
        projector: CoordinateProjector for the current pass
        clipper: RectangleClipper for the print bed
        stats: Optional dict of drop counters to increment
        tolerance: Simplification tolerance (model mm) applied before clipping

    Returns:
        list: Sea polygons as numpy arrays of shape (N, 2), not closed
    """
    def count(key):
        if stats is not None:
            stats[key] = stats.get(key, 0) + 1

    polygons = []
    chains = chain_fragments(
        [way.get('nodes', []) for way in coastline_ways],
        allow_reverse=False,
        extend_head=True,
    )

    for chain in chains:
        coords = resolve_way_coords(chain, nodes)
        if coords is None:
            count('incomplete_reference')
            continue
        points = projector.project(coords)

        if chain[0] == chain[-1]:
            ring = _strip_closing_point(simplify_ring(points, tolerance))
            if len(ring) < 3:
                count('degenerate')
                continue
            # Clockwise ring: sea on the right is the interior
            if signed_area(ring) >= 0:
                count('land_ring')
                continue
            clipped = clipper.clip_polygon(ring)
            if clipped is None or len(clipped) < 3:
                count('degenerate')
                continue
            polygons.append(clipped)
            continue

        points = simplify_polyline(points, tolerance)
        for piece in clipper.clip_linestring(points):
            polygon = close_piece(piece, clipper)
            if polygon is None:
                count('not_closed')
                continue
            if len(polygon) < 3:
                count('degenerate')
                continue
            polygons.append(polygon)

    return polygons
