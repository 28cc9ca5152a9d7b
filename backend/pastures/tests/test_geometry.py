import math

from django.test import SimpleTestCase

from pastures.geometry import (
    EARTH_RADIUS_M, ShapeDataError, PolygonShape, SvgShape, parse_shape, polygon_shape,
    polygon_area_acres, polygon_area_square_meters, project_to_meters, shape_area_acres,
)


def square_ring(side_m, lng=0.0, lat=0.0):
    """A square of roughly side_m meters with its south-west corner at lng/lat"""
    d = side_m / (EARTH_RADIUS_M * math.pi / 180)
    return [[lng, lat], [lng + d, lat], [lng + d, lat + d], [lng, lat + d]]


class AreaCalculatorTests(SimpleTestCase):

    def test_one_acre_square_near_equator(self):
        acres = polygon_area_acres(square_ring(63.6149))
        self.assertAlmostEqual(acres, 1.0, delta=0.01)

    def test_result_is_rounded_to_two_decimals(self):
        acres = polygon_area_acres(square_ring(100))
        self.assertEqual(acres, round(acres, 2))

    def test_fewer_than_three_vertices_has_no_area(self):
        self.assertIsNone(polygon_area_acres([]))
        self.assertIsNone(polygon_area_acres([[0, 0]]))
        self.assertIsNone(polygon_area_acres([[0, 0], [0.001, 0.001]]))
        self.assertIsNone(polygon_area_acres(None))

    def test_winding_order_does_not_change_area(self):
        ring = square_ring(200, lng=-97.9, lat=32.4)
        self.assertAlmostEqual(polygon_area_acres(ring), polygon_area_acres(list(reversed(ring))), places=2)

    def test_explicitly_closed_ring_matches_open_ring(self):
        ring = square_ring(150, lng=-97.9, lat=32.4)
        closed = ring + [ring[0]]
        self.assertAlmostEqual(polygon_area_square_meters(ring), polygon_area_square_meters(closed))

    def test_degenerate_ring_has_zero_area(self):
        line = [[0, 0], [0.001, 0.001], [0.002, 0.002]]
        self.assertEqual(polygon_area_acres(line), 0.0)

    def test_projection_inflates_area_away_from_equator(self):
        equator = polygon_area_acres(square_ring(200))
        north = polygon_area_acres(square_ring(200, lat=60))
        self.assertGreater(north, equator)

    def test_projection_clamps_polar_latitudes(self):
        x, y = project_to_meters(0, 90)
        self.assertTrue(math.isfinite(y))
        self.assertEqual(x, 0)


class ShapeDataTests(SimpleTestCase):

    def test_parse_polygon(self):
        shape = parse_shape({'type': 'polygon', 'coordinates': [[-97.9, 32.4], [-97.8, 32.4], [-97.8, 32.5]]})
        self.assertIsInstance(shape, PolygonShape)
        self.assertEqual(shape.coordinates[0], [-97.9, 32.4])

    def test_parse_svg(self):
        shape = parse_shape({'type': 'svg', 'svg_path': 'M0 0 L10 0 L10 10 Z'})
        self.assertIsInstance(shape, SvgShape)
        self.assertIsNone(shape.area_acres())

    def test_missing_shape_is_undrawn(self):
        self.assertIsNone(parse_shape(None))
        self.assertIsNone(shape_area_acres(None))

    def test_unknown_type_is_rejected(self):
        with self.assertRaises(ShapeDataError):
            parse_shape({'type': 'circle', 'radius': 4})

    def test_out_of_range_vertex_is_rejected(self):
        with self.assertRaises(ShapeDataError):
            polygon_shape([[-97.9, 32.4], [200, 32.4], [-97.8, 32.5]])

    def test_non_numeric_vertex_is_rejected(self):
        with self.assertRaises(ShapeDataError):
            polygon_shape([['a', 'b'], [0, 0], [1, 1]])

    def test_polygon_shape_keeps_lng_lat_order(self):
        coordinates = [[-97.9, 32.4], [-97.8, 32.4], [-97.8, 32.5], [-97.9, 32.5]]
        self.assertEqual(polygon_shape(coordinates), {'type': 'polygon', 'coordinates': coordinates})
