"""Build a millimetre-scale scene description from raw OSM elements."""

import time

import numpy as np

from .app_config import ModelConfig
from .coastline_resolver import resolve_coastline
from .feature_classifier import (
    BUILDING,
    COASTLINE,
    RAILWAY,
    ROAD,
    WATER,
    building_height_mm,
    classify_road,
    classify_tags,
    road_half_width_mm,
)
from .line_buffer import buffer_line_to_polygon
from .osm_elements import index_elements, is_closed_way, relation_member_ways, resolve_way_coords
from .projection import CoordinateProjector
from .ring_assembler import assemble_rings
from .shape_clipper import RectangleClipper
from .simplifier import auto_simplify_tolerance, simplify_polyline, simplify_ring


def _drop_repeated_points(polygon):
    """Remove consecutive duplicates, including a repeated closing point."""
    if len(polygon) == 0:
        return polygon
    keep = [0]
    for i in range(1, len(polygon)):
        if not np.allclose(polygon[i], polygon[keep[-1]], atol=1e-9):
            keep.append(i)
    if len(keep) > 1 and np.allclose(polygon[keep[-1]], polygon[keep[0]], atol=1e-9):
        keep.pop()
    return polygon[keep]


def point_in_polygon(x, y, polygon):
    """Ray casting point-in-polygon test."""
    inside = False
    n = len(polygon)
    for j in range(n):
        k = (j + 1) % n
        x1, y1 = polygon[j]
        x2, y2 = polygon[k]
        if ((y1 > y) != (y2 > y)) and \
           (x < (x2 - x1) * (y - y1) / (y2 - y1) + x1):
            inside = not inside
    return inside


def _as_list(polygon):
    return [[float(x), float(y)] for x, y in polygon]


class SceneBuilder:
    """
    One processing pass from raw elements to scene features.

    All lookup tables live on the instance and are discarded with it; build a
    new SceneBuilder for every selection.
    """

    def __init__(self, bounds, bearing=0.0, config=None, rng=None):
        self.config = config or ModelConfig()
        self.projector = CoordinateProjector(bounds, bearing, self.config.footprint_mm)
        self.clipper = RectangleClipper.for_model(
            self.projector.model_width_mm, self.projector.model_depth_mm)
        self.tolerance = auto_simplify_tolerance(self.projector.scale_mm_per_m)
        # Only consulted for buildings without height or level tags
        self.rng = rng if rng is not None else np.random.default_rng()

        self.nodes = {}
        self.ways = {}
        self.relations = []
        self.buildings = []
        self.water = []
        self.roads = []
        self.dropped = {}

    def _drop(self, reason):
        self.dropped[reason] = self.dropped.get(reason, 0) + 1

    def _merge_drops(self, stats):
        for reason, count in stats.items():
            self.dropped[reason] = self.dropped.get(reason, 0) + count

    def project_ring(self, coords):
        """
        Project, simplify and clip a closed (lat, lon) ring.

        Returns:
            numpy array or None: Clipped polygon (not closed), or None when
            nothing with at least 3 vertices remains
        """
        points = self.projector.project(coords)
        points = simplify_ring(points, self.tolerance)
        points = _drop_repeated_points(points)
        if len(points) < 3:
            return None
        clipped = self.clipper.clip_polygon(points)
        if clipped is None:
            return None
        clipped = _drop_repeated_points(clipped)
        if len(clipped) < 3:
            return None
        return clipped

    def project_line(self, coords, kind):
        """Project, simplify, buffer and clip a road or rail centerline."""
        points = self.projector.project(coords)
        points = simplify_polyline(points, self.tolerance)
        half_width = road_half_width_mm(kind, self.projector.scale_mm_per_m, self.config)
        strip = buffer_line_to_polygon(points, half_width)
        if len(strip) < 3:
            return None
        clipped = self.clipper.clip_polygon(strip)
        if clipped is None:
            return None
        clipped = _drop_repeated_points(clipped)
        if len(clipped) < 3:
            return None
        return clipped

    def _attach_holes(self, outers, inner_rings):
        """Pair each clipped hole with the outer polygon containing it."""
        holes = [[] for _ in outers]
        for ring in inner_rings:
            hole = self.project_ring(ring)
            if hole is None:
                self._drop('degenerate')
                continue
            hx, hy = hole[0]
            for index, outer in enumerate(outers):
                if point_in_polygon(hx, hy, outer):
                    holes[index].append(_as_list(hole))
                    break
            else:
                self._drop('orphan_hole')
        return holes

    def _add_area(self, kind, element_id, polygon, holes, tags, source):
        if kind == BUILDING:
            self.buildings.append({
                'type': 'building',
                'id': element_id,
                'source': source,
                'polygon': _as_list(polygon),
                'holes': holes,
                'height_mm': building_height_mm(
                    tags, self.projector.scale_mm_per_m, self.config, self.rng),
            })
        else:
            self.water.append({
                'type': 'water',
                'id': element_id,
                'source': source,
                'polygon': _as_list(polygon),
                'holes': holes,
            })

    def process_way(self, way, coastline_ways):
        tags = way.get('tags') or {}
        kind = classify_tags(tags)
        if kind is None:
            self._drop('unclassified')
            return
        if kind == COASTLINE:
            coastline_ways.append(way)
            return

        node_ids = way.get('nodes', [])
        coords = resolve_way_coords(node_ids, self.nodes)
        if coords is None:
            self._drop('incomplete_reference')
            return

        if kind in (ROAD, RAILWAY):
            if len(coords) < 2:
                self._drop('degenerate')
                return
            road_kind = RAILWAY if kind == RAILWAY else classify_road(tags.get('highway', ''))
            polygon = self.project_line(coords, road_kind)
            if polygon is None:
                self._drop('degenerate')
                return
            self.roads.append({
                'type': 'railway' if kind == RAILWAY else 'road',
                'id': way.get('id'),
                'kind': road_kind,
                'polygon': _as_list(polygon),
            })
            return

        if not is_closed_way(node_ids):
            self._drop('not_closed')
            return
        polygon = self.project_ring(coords)
        if polygon is None:
            self._drop('degenerate')
            return
        self._add_area(kind, way.get('id'), polygon, [], tags, 'way')

    def process_relation(self, relation):
        tags = relation.get('tags') or {}
        kind = classify_tags(tags)
        if kind not in (BUILDING, WATER):
            self._drop('unclassified')
            return
        if kind == WATER and tags.get('type') == 'waterway':
            self._drop('unclassified')
            return

        stats = {}
        outer_ways = relation_member_ways(relation, self.ways, 'outer')
        inner_ways = relation_member_ways(relation, self.ways, 'inner')
        outer_rings = assemble_rings(outer_ways, self.nodes, stats)
        inner_rings = assemble_rings(inner_ways, self.nodes, stats)
        self._merge_drops(stats)

        outers = []
        height_tags = []
        for ring in outer_rings:
            polygon = self.project_ring(ring)
            if polygon is None:
                self._drop('degenerate')
                continue
            outers.append(polygon)
            height_tags.append(self._ring_tags(tags, ring, outer_ways))

        holes = self._attach_holes(outers, inner_rings)
        for polygon, ring_holes, ring_tags in zip(outers, holes, height_tags):
            self._add_area(kind, relation.get('id'), polygon, ring_holes, ring_tags, 'relation')

    def _ring_tags(self, tags, ring, outer_ways):
        # A single closed member way may carry its own height tags
        merged = dict(tags)
        ring_nodes = set(ring)
        for way in outer_ways:
            way_tags = way.get('tags') or {}
            if not way_tags:
                continue
            way_coords = resolve_way_coords(way.get('nodes', []), self.nodes)
            if way_coords and set(way_coords) <= ring_nodes:
                merged.update(way_tags)
        return merged

    def build(self, elements):
        """
        Run the pass over a flat element list.

        Returns:
            dict: Scene with 'buildings', 'water', 'roads', model size and
            metadata
        """
        t_start = time.time()
        self.nodes, self.ways, self.relations = index_elements(elements)

        coastline_ways = []
        for way in self.ways.values():
            self.process_way(way, coastline_ways)

        for relation in self.relations:
            self.process_relation(relation)

        if coastline_ways:
            stats = {}
            sea = resolve_coastline(coastline_ways, self.nodes, self.projector, self.clipper, stats,
                                    tolerance=self.tolerance)
            self._merge_drops(stats)
            for polygon in sea:
                polygon = _drop_repeated_points(polygon)
                if len(polygon) < 3:
                    self._drop('degenerate')
                    continue
                self.water.append({
                    'type': 'water',
                    'id': None,
                    'source': 'coastline',
                    'polygon': _as_list(polygon),
                    'holes': [],
                })

        counts = {
            'building': len(self.buildings),
            'water': len(self.water),
            'road': sum(1 for r in self.roads if r['type'] == 'road'),
            'railway': sum(1 for r in self.roads if r['type'] == 'railway'),
        }
        t_total = time.time() - t_start
        print(f"[INFO] Scene built: {counts['building']} buildings, {counts['water']} water, "
              f"{counts['road']} roads, {counts['railway']} railways; dropped {self.dropped}")
        print(f"[PERF] build_scene() took {t_total:.3f}s")

        return {
            'buildings': self.buildings,
            'water': self.water,
            'roads': self.roads,
            'model_width_mm': self.projector.model_width_mm,
            'model_depth_mm': self.projector.model_depth_mm,
            'base_thickness_mm': self.config.base_thickness_mm,
            'scale_mm_per_m': self.projector.scale_mm_per_m,
            'metadata': {
                'feature_counts_by_type': counts,
                'dropped': dict(self.dropped),
                'simplify_tolerance_mm': self.tolerance,
                'real_width_m': self.projector.real_width_m,
                'real_height_m': self.projector.real_height_m,
                'bearing': self.projector.bearing,
                'bounds': list(self.projector.bounds),
            },
        }


def build_scene(elements, bounds, bearing=0.0, config=None, rng=None):
    """
    Transform raw OSM elements into a validated millimetre-scale scene.

    Args:
        elements: Flat list of Overpass node/way/relation dicts
        bounds: Selection as (south, west, north, east) or a dict
        bearing: Rotation of the print bed relative to north, degrees
        config: ModelConfig (defaults if None)
        rng: numpy Generator for the building height fallback; a fresh
            unseeded one is used if None, making that fallback
            non-deterministic

    Returns:
        dict: Scene description; see SceneBuilder.build
    """
    return SceneBuilder(bounds, bearing, config, rng).build(elements)


def scene_is_empty(scene):
    """True when a pass produced no features of any kind."""
    return not (scene.get('buildings') or scene.get('water') or scene.get('roads'))
