"""
Unit Tests for Geometry Clipping

Covers Cohen-Sutherland polyline clipping, Sutherland-Hodgman ring
clipping, rescaling with round-half-up and the per-feature drop rules.
"""

import unittest
from fractions import Fraction
from pathlib import Path

from shapely.geometry import Polygon

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from basemap_tiles.addressing import Rectangle, clip_rect
from basemap_tiles.clipping import (
    GeometryClipper,
    as_bbox,
    clip_polyline,
    clip_ring,
    clip_to_edge,
    dedupe,
    round_half_up,
    signed_area,
)
from basemap_tiles.clipping.line_clip import LEFT, TOP
from basemap_tiles.codec import Feature, GeometryType


class TestPolylineClip(unittest.TestCase):
    """Test suite for clip_polyline."""

    def test_line_leaving_and_reentering(self):
        line = [
            (-10, 10), (10, 10), (10, -10), (20, -10), (20, 10), (40, 10),
            (40, 20), (20, 20), (20, 40), (10, 40), (10, 20), (5, 20), (-10, 20),
        ]
        self.assertEqual(clip_polyline(line, as_bbox(0, 0, 30, 30)), [
            [(0, 10), (10, 10), (10, 0)],
            [(20, 0), (20, 10), (30, 10)],
            [(30, 20), (20, 20), (20, 30)],
            [(10, 30), (10, 20), (5, 20), (0, 20)],
        ])

    def test_intersections_are_exact(self):
        parts = clip_polyline([(10, -10), (5, 5), (10, 10)], as_bbox(3, 3, 6, 6))
        self.assertEqual(parts, [[(Fraction(17, 3), 3), (5, 5), (6, 6)]])

    def test_line_outside_box(self):
        self.assertEqual(clip_polyline([(-5, -5), (-1, 50)], as_bbox(0, 0, 30, 30)), [])

    def test_line_inside_box(self):
        self.assertEqual(
            clip_polyline([(1, 1), (2, 2), (3, 1)], as_bbox(0, 0, 30, 30)),
            [[(1, 1), (2, 2), (3, 1)]]
        )

    def test_single_point_line(self):
        self.assertEqual(clip_polyline([(1, 1)], as_bbox(0, 0, 30, 30)), [])


class TestRingClip(unittest.TestCase):
    """Test suite for clip_ring and its edge stages."""

    def test_ring_clip(self):
        ring = [
            (-10, 10), (0, 10), (10, 10), (10, 5), (10, -5), (10, -10), (20, -10),
            (20, 10), (40, 10), (40, 20), (20, 20), (20, 40), (10, 40), (10, 20),
            (5, 20), (-10, 20),
        ]
        self.assertEqual(clip_ring(ring, as_bbox(0, 0, 30, 30)), [
            (0, 10), (0, 10), (10, 10), (10, 5), (10, 0), (20, 0), (20, 10), (30, 10),
            (30, 20), (20, 20), (20, 30), (10, 30), (10, 20), (5, 20), (0, 20),
        ])

    def test_single_edge_stage(self):
        bbox = as_bbox(0, 0, 10, 10)
        square = [(Fraction(x), Fraction(y)) for x, y in [(-5, 0), (5, 0), (5, 5), (-5, 5)]]
        self.assertEqual(clip_to_edge(square, LEFT, bbox), [(0, 0), (5, 0), (5, 5), (0, 5)])
        self.assertEqual(clip_to_edge(square, TOP, bbox), square)

    def test_ring_outside_box(self):
        self.assertEqual(clip_ring([(40, 40), (50, 40), (50, 50)], as_bbox(0, 0, 30, 30)), [])

    def test_orientation_preserved(self):
        ring = [(-10, -10), (20, -10), (20, 20), (-10, 20)]
        clipped = [(int(x), int(y)) for x, y in clip_ring(ring, as_bbox(0, 0, 10, 10))]
        self.assertGreater(signed_area(ring), 0)
        self.assertGreater(signed_area(dedupe(clipped, closed=True)), 0)


class TestHelpers(unittest.TestCase):

    def test_round_half_up(self):
        self.assertEqual(round_half_up(Fraction(5, 2)), 3)
        self.assertEqual(round_half_up(Fraction(-5, 2)), -2)
        self.assertEqual(round_half_up(Fraction(7, 3)), 2)
        self.assertEqual(round_half_up(Fraction(-7, 3)), -2)
        self.assertEqual(round_half_up(Fraction(4)), 4)

    def test_signed_area(self):
        self.assertEqual(signed_area([(0, 0), (10, 0), (10, 10), (0, 10)]), 100)
        self.assertEqual(signed_area([(0, 0), (0, 10), (10, 10), (10, 0)]), -100)
        self.assertEqual(signed_area([(0, 0), (5, 5), (10, 10)]), 0)
        self.assertEqual(signed_area([(0, 0), (1, 1)]), 0)

    def test_dedupe(self):
        self.assertEqual(dedupe([(0, 0), (0, 0), (1, 1), (1, 1), (0, 0)]), [(0, 0), (1, 1), (0, 0)])
        self.assertEqual(dedupe([(0, 0), (1, 1), (2, 0), (0, 0)], closed=True), [(0, 0), (1, 1), (2, 0)])


class TestGeometryClipper(unittest.TestCase):
    """Test suite for GeometryClipper."""

    def test_point_rescaled_into_quadrant(self):
        clipper = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096)
        self.assertEqual(clipper.clip_points([(10, 10)]), [(20, 20)])

    def test_point_outside_quadrant_dropped(self):
        clipper = GeometryClipper(clip_rect(4096, 1, 1, 1), 4096)
        feature = Feature(GeometryType.POINT, [(10, 10)], {"name": "a"})
        self.assertIsNone(clipper.clip_feature(feature))

    def test_boundary_point_belongs_to_one_quadrant(self):
        point = [(2048, 2048)]
        owners = [
            (qx, qy)
            for qx in range(2) for qy in range(2)
            if GeometryClipper(clip_rect(4096, 1, qx, qy), 4096).clip_points(point)
        ]
        self.assertEqual(owners, [(1, 1)])

    def test_buffer_keeps_nearby_points(self):
        rect = clip_rect(4096, 1, 1, 0)
        self.assertEqual(GeometryClipper(rect, 4096).clip_points([(2040, 100)]), [])
        # 8 ancestor units = 16 output units
        self.assertEqual(GeometryClipper(rect, 4096, buffer=16).clip_points([(2040, 100)]), [(-16, 200)])

    def test_line_pieces_rescaled(self):
        clipper = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096)
        lines = clipper.clip_lines([[(0, 100), (3000, 100)], [(3000, 0), (3000, 50)]])
        self.assertEqual(lines, [[(0, 200), (4096, 200)]])

    def test_degenerate_line_pieces_dropped(self):
        # Touches the quadrant corner only
        clipper = GeometryClipper(clip_rect(4096, 1, 1, 1), 4096)
        self.assertEqual(clipper.clip_lines([[(0, 4096), (2048, 2048), (0, 0)]]), [])

    def test_full_extent_polygon(self):
        ring = [(0, 0), (4096, 0), (4096, 4096), (0, 4096)]
        for qx in range(4):
            for qy in range(4):
                clipper = GeometryClipper(clip_rect(4096, 2, qx, qy), 4096)
                rings = clipper.clip_rings([ring])
                self.assertEqual(len(rings), 1)
                self.assertEqual(set(rings[0]), {(0, 0), (4096, 0), (4096, 4096), (0, 4096)})
                self.assertEqual(len(rings[0]), 4)
                self.assertGreater(signed_area(rings[0]), 0)

    def test_hole_dropped_with_exterior(self):
        exterior = [(3000, 3000), (4000, 3000), (4000, 4000), (3000, 4000)]
        hole = [(3100, 3100), (3100, 3200), (3200, 3200), (3200, 3100)]
        clipper = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096)
        self.assertEqual(clipper.clip_rings([exterior, hole]), [])

    def test_hole_kept_with_surviving_exterior(self):
        exterior = [(0, 0), (4096, 0), (4096, 4096), (0, 4096)]
        hole = [(100, 100), (100, 200), (200, 200), (200, 100)]
        clipper = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096)
        rings = clipper.clip_rings([exterior, hole])
        self.assertEqual(len(rings), 2)
        self.assertEqual(rings[1], [(200, 200), (200, 400), (400, 400), (400, 200)])
        self.assertLess(signed_area(rings[1]), 0)

    def test_sliver_collapsing_after_rounding_dropped(self):
        # Ring 1/4 unit wide after scaling to a quarter of the extent
        sliver = [(0, 0), (1, 0), (1, 4000), (0, 4000)]
        clipper = GeometryClipper(Rectangle(0, 0, 4096, 4096), 1024)
        self.assertIsNone(clipper.clip_feature(Feature(GeometryType.POLYGON, [sliver])))

    def test_properties_carried_over(self):
        clipper = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096)
        feature = Feature(GeometryType.POINT, [(1, 1)], {"kind": "water"}, id=9)
        clipped = clipper.clip_feature(feature)
        self.assertEqual(clipped.properties, {"kind": "water"})
        self.assertEqual(clipped.id, 9)
        self.assertEqual(clipped.geometry_type, GeometryType.POINT)

    def test_adjacent_quadrants_share_edge_coordinates(self):
        # A diagonal crossing the vertical seam at a non-integer rescaled y
        line = [(1000, 1001), (3000, 2000)]
        left = GeometryClipper(clip_rect(4096, 1, 0, 0), 4096).clip_lines([line])
        right = GeometryClipper(clip_rect(4096, 1, 1, 0), 4096).clip_lines([line])
        self.assertEqual(left[0][-1][0], 4096)
        self.assertEqual(right[0][0][0], 0)
        self.assertEqual(left[0][-1][1], right[0][0][1])

    def test_non_integer_scale_rounds_half_up(self):
        # 3 ancestor units -> 4096 output units: scale 4096/3
        clipper = GeometryClipper(Rectangle(0, 0, 3, 3), 4096)
        self.assertEqual(clipper.scale_point((1, 2)), (1365, 2731))

    def test_clipped_polygon_matches_shapely_intersection(self):
        ring = [(-500, 1000), (2500, -200), (3500, 3000), (1000, 3800)]
        rect = clip_rect(4096, 1, 0, 1)
        clipper = GeometryClipper(rect, rect.width)
        rings = clipper.clip_rings([ring])
        expected = Polygon(ring).intersection(
            Polygon([(0, 2048), (2048, 2048), (2048, 4096), (0, 4096)])
        )
        self.assertEqual(len(rings), 1)
        shifted = Polygon([(x, y + 2048) for x, y in rings[0]])
        self.assertAlmostEqual(shifted.area, expected.area, delta=expected.length)
