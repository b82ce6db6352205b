import unittest

import numpy as np

from cityprint.utils.app_config import ModelConfig
from cityprint.utils.coastline_resolver import signed_area
from cityprint.utils.scene_builder import SceneBuilder, build_scene, point_in_polygon, scene_is_empty

# Roughly 1.1km square at the equator; 1/1000 degree is about 20mm on the model
BOUNDS = (0.0, 0.0, 0.01, 0.01)


def node(node_id, lat, lon):
    return {'type': 'node', 'id': node_id, 'lat': lat, 'lon': lon}


def way(way_id, nodes, tags=None):
    element = {'type': 'way', 'id': way_id, 'nodes': nodes}
    if tags is not None:
        element['tags'] = tags
    return element


def relation(relation_id, members, tags):
    return {
        'type': 'relation',
        'id': relation_id,
        'members': [{'type': 'way', 'ref': ref, 'role': role} for ref, role in members],
        'tags': tags,
    }


def make_elements():
    return [
        # Building square, +/-10mm around the centre
        node(1, 0.0045, 0.0045), node(2, 0.0045, 0.0055),
        node(3, 0.0055, 0.0055), node(4, 0.0055, 0.0045),
        way(100, [1, 2, 3, 4, 1], {'building': 'yes', 'height': '20'}),
        # Building far outside the selection
        node(5, 0.05, 0.05), node(6, 0.05, 0.051), node(7, 0.051, 0.051),
        way(101, [5, 6, 7, 5], {'building': 'yes', 'building:levels': '2'}),
        # Water way that is not a closed ring
        way(102, [1, 2, 3], {'natural': 'water'}),
        # Primary road crossing the whole selection west to east
        node(10, 0.005, -0.005), node(11, 0.005, 0.015),
        way(103, [10, 11], {'highway': 'primary'}),
        # Building referencing a node that was never delivered
        way(104, [1, 999, 3, 1], {'building': 'yes'}),
        # Railway inside, and an abandoned one that is ignored
        node(12, 0.002, 0.002), node(13, 0.008, 0.008),
        way(105, [12, 13], {'railway': 'rail'}),
        way(106, [12, 13], {'railway': 'abandoned'}),
        # Lake relation: outer ring in two fragments plus an island
        node(20, 0.003, 0.003), node(21, 0.003, 0.007),
        node(22, 0.007, 0.007), node(23, 0.007, 0.003),
        node(24, 0.0035, 0.0035), node(25, 0.0035, 0.004), node(26, 0.004, 0.004),
        way(200, [20, 21, 22]),
        way(201, [22, 23, 20]),
        way(202, [24, 25, 26, 24]),
        relation(300, [(200, 'outer'), (201, 'outer'), (202, 'inner')],
                 {'type': 'multipolygon', 'natural': 'water'}),
        relation(301, [], {'type': 'waterway', 'waterway': 'river'}),
    ]


class BuildSceneTests(unittest.TestCase):
    def setUp(self):
        self.scene = build_scene(make_elements(), BOUNDS, rng=np.random.default_rng(1))

    def test_feature_counts(self):
        counts = self.scene['metadata']['feature_counts_by_type']
        self.assertEqual(counts, {'building': 1, 'water': 1, 'road': 1, 'railway': 1})
        self.assertEqual(len(self.scene['buildings']), 1)
        self.assertEqual(len(self.scene['water']), 1)
        self.assertEqual(len(self.scene['roads']), 2)

    def test_model_size_fits_footprint(self):
        self.assertAlmostEqual(self.scene['model_depth_mm'], 200.0, places=6)
        self.assertLessEqual(self.scene['model_width_mm'], 200.0 + 1e-9)
        self.assertEqual(self.scene['base_thickness_mm'], 4.0)

    def test_building_geometry_and_height(self):
        building = self.scene['buildings'][0]
        self.assertEqual(building['id'], 100)
        polygon = np.array(building['polygon'])
        self.assertEqual(len(polygon), 4)
        np.testing.assert_allclose(np.abs(polygon), 10.0, atol=1e-3)
        self.assertAlmostEqual(building['height_mm'], 20.0 * self.scene['scale_mm_per_m'])

    def test_dropped_features_are_counted(self):
        dropped = self.scene['metadata']['dropped']
        self.assertEqual(dropped['not_closed'], 1)
        self.assertEqual(dropped['incomplete_reference'], 1)
        self.assertEqual(dropped['degenerate'], 1)
        self.assertGreaterEqual(dropped['unclassified'], 1)

    def test_relation_lake_has_island_hole(self):
        lake = self.scene['water'][0]
        self.assertEqual(lake['id'], 300)
        self.assertEqual(lake['source'], 'relation')
        self.assertEqual(len(lake['polygon']), 4)
        self.assertEqual(len(lake['holes']), 1)
        hole = lake['holes'][0]
        self.assertEqual(len(hole), 3)
        self.assertTrue(point_in_polygon(hole[0][0], hole[0][1], lake['polygon']))

    def test_road_is_clipped_strip(self):
        road = next(r for r in self.scene['roads'] if r['type'] == 'road')
        self.assertEqual(road['kind'], 'major')
        polygon = np.array(road['polygon'])
        half_width = 6.0 * self.scene['scale_mm_per_m']
        np.testing.assert_allclose(np.abs(polygon[:, 1]), half_width, atol=1e-6)
        self.assertAlmostEqual(polygon[:, 0].max(), self.scene['model_width_mm'] / 2)
        self.assertAlmostEqual(polygon[:, 0].min(), -self.scene['model_width_mm'] / 2)

    def test_railway_kind(self):
        rail = next(r for r in self.scene['roads'] if r['type'] == 'railway')
        self.assertEqual(rail['kind'], 'railway')
        self.assertEqual(len(rail['polygon']), 4)

    def test_every_vertex_is_on_the_base_plate(self):
        half_w = self.scene['model_width_mm'] / 2 + 1e-6
        half_d = self.scene['model_depth_mm'] / 2 + 1e-6
        features = self.scene['buildings'] + self.scene['water'] + self.scene['roads']
        for feature in features:
            rings = [feature['polygon']] + feature.get('holes', [])
            for ring in rings:
                ring = np.array(ring)
                self.assertGreaterEqual(len(ring), 3)
                self.assertTrue(np.all(np.abs(ring[:, 0]) <= half_w))
                self.assertTrue(np.all(np.abs(ring[:, 1]) <= half_d))

    def test_identical_input_gives_identical_output(self):
        again = build_scene(make_elements(), BOUNDS, rng=np.random.default_rng(1))
        self.assertEqual(self.scene, again)

    def test_unseeded_runs_differ_only_in_fallback_height(self):
        elements = [
            node(1, 0.0045, 0.0045), node(2, 0.0045, 0.0055),
            node(3, 0.0055, 0.0055), node(4, 0.0055, 0.0045),
            way(100, [1, 2, 3, 4, 1], {'building': 'yes'}),
        ]
        first = build_scene(elements, BOUNDS)
        second = build_scene(elements, BOUNDS)
        self.assertEqual(first['buildings'][0]['polygon'], second['buildings'][0]['polygon'])
        for scene in (first, second):
            height = scene['buildings'][0]['height_mm']
            scale = scene['scale_mm_per_m']
            self.assertGreaterEqual(height, 6.0 * scale)
            self.assertLess(height, 18.0 * scale)


class EdgeCaseTests(unittest.TestCase):
    def test_building_outside_degree_box_gives_no_buildings(self):
        elements = [
            node(1, 2.0, 2.0), node(2, 2.0, 2.001), node(3, 2.001, 2.001),
            way(10, [1, 2, 3, 1], {'building': 'yes'}),
        ]
        scene = build_scene(elements, [0, 0, 1, 1])
        self.assertEqual(scene['buildings'], [])
        self.assertTrue(scene_is_empty(scene))

    def test_empty_input_is_an_empty_scene(self):
        scene = build_scene([], BOUNDS)
        self.assertTrue(scene_is_empty(scene))
        self.assertEqual(scene['metadata']['dropped'], {})

    def test_coastline_produces_sea_polygon(self):
        elements = [
            node(1, 0.005, -0.005), node(2, 0.005, 0.005), node(3, 0.005, 0.015),
            way(10, [1, 2], {'natural': 'coastline'}),
            way(11, [2, 3], {'natural': 'coastline'}),
        ]
        scene = build_scene(elements, BOUNDS)
        self.assertEqual(len(scene['water']), 1)
        sea = scene['water'][0]
        self.assertEqual(sea['source'], 'coastline')
        self.assertEqual(len(sea['polygon']), 5)
        # Travelling east, the sea is the southern half of the plate
        polygon = np.array(sea['polygon'])
        self.assertTrue(np.all(polygon[:, 1] <= 1e-9))
        expected_area = scene['model_width_mm'] * scene['model_depth_mm'] / 2
        self.assertAlmostEqual(abs(signed_area(polygon)), expected_area, places=3)

    def test_bearing_keeps_output_on_plate(self):
        scene = build_scene(make_elements(), BOUNDS, bearing=30.0, rng=np.random.default_rng(2))
        half_w = scene['model_width_mm'] / 2 + 1e-6
        half_d = scene['model_depth_mm'] / 2 + 1e-6
        for feature in scene['buildings'] + scene['water'] + scene['roads']:
            ring = np.array(feature['polygon'])
            self.assertTrue(np.all(np.abs(ring[:, 0]) <= half_w))
            self.assertTrue(np.all(np.abs(ring[:, 1]) <= half_d))
        self.assertEqual(scene['metadata']['bearing'], 30.0)

    def test_custom_footprint(self):
        config = ModelConfig(footprint_mm=100.0)
        scene = SceneBuilder(BOUNDS, config=config).build([])
        self.assertAlmostEqual(scene['model_depth_mm'], 100.0, places=6)

    def test_building_relation_uses_member_height(self):
        elements = [
            node(1, 0.0045, 0.0045), node(2, 0.0045, 0.0055),
            node(3, 0.0055, 0.0055), node(4, 0.0055, 0.0045),
            way(50, [1, 2, 3, 4, 1], {'height': '30'}),
            relation(60, [(50, 'outer')], {'type': 'multipolygon', 'building': 'yes'}),
        ]
        scene = build_scene(elements, BOUNDS)
        self.assertEqual(len(scene['buildings']), 1)
        building = scene['buildings'][0]
        self.assertEqual(building['source'], 'relation')
        self.assertAlmostEqual(building['height_mm'], 30.0 * scene['scale_mm_per_m'])


# About 11km square: the coarsest simplification band applies
COARSE_BOUNDS = (0.0, 0.0, 0.1, 0.1)


class CoarseScaleTests(unittest.TestCase):
    def build(self, elements):
        builder = SceneBuilder(COARSE_BOUNDS, rng=np.random.default_rng(3))
        return builder, builder.build(elements)

    def test_tolerance_is_coarsest_band(self):
        _, scene = self.build([])
        self.assertEqual(scene['metadata']['simplify_tolerance_mm'], 0.6)

    def test_small_triangle_building_survives(self):
        # Roughly 14m x 22m, well under a millimetre on the model
        elements = [
            node(1, 0.05, 0.05), node(2, 0.05, 0.050126), node(3, 0.050198, 0.050063),
            way(10, [1, 2, 3, 1], {'building': 'yes'}),
        ]
        _, scene = self.build(elements)
        self.assertEqual(len(scene['buildings']), 1)
        self.assertEqual(len(scene['buildings'][0]['polygon']), 3)
        self.assertEqual(scene['metadata']['dropped'], {})

    def test_small_square_building_keeps_its_corners(self):
        elements = [
            node(1, 0.05, 0.05), node(2, 0.05, 0.05018),
            node(3, 0.05018, 0.05018), node(4, 0.05018, 0.05),
            way(10, [1, 2, 3, 4, 1], {'building': 'yes'}),
        ]
        _, scene = self.build(elements)
        self.assertEqual(len(scene['buildings']), 1)
        self.assertEqual(len(scene['buildings'][0]['polygon']), 4)

    def test_large_ring_loses_wiggles_but_keeps_first_vertex(self):
        elements = [
            node(1, 0.045, 0.045), node(2, 0.04501, 0.0475), node(3, 0.04499, 0.05),
            node(4, 0.04501, 0.0525), node(5, 0.045, 0.055),
            node(6, 0.055, 0.055), node(7, 0.055, 0.045),
            way(10, [1, 2, 3, 4, 5, 6, 7, 1], {'building': 'yes'}),
        ]
        builder, scene = self.build(elements)
        polygon = np.array(scene['buildings'][0]['polygon'])
        self.assertEqual(len(polygon), 4)
        np.testing.assert_allclose(polygon[0], builder.projector.project([(0.045, 0.045)])[0])
        self.assertFalse(np.allclose(polygon[0], polygon[-1]))

    def test_small_closed_road_loop_survives(self):
        elements = [
            node(1, 0.05, 0.05), node(2, 0.05, 0.05018),
            node(3, 0.05018, 0.05018), node(4, 0.05018, 0.05),
            way(10, [1, 2, 3, 4, 1], {'highway': 'residential'}),
        ]
        _, scene = self.build(elements)
        self.assertEqual(len(scene['roads']), 1)


if __name__ == "__main__":
    unittest.main()
