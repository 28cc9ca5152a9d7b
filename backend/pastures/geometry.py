"""
Pasture geometry: the stored shape format and the acreage calculator.

Coordinates are always stored as [longitude, latitude] pairs. Conversion to
the [latitude, longitude] order used by map widgets lives in
pastures.map_editor and nowhere else.
"""
import math
from dataclasses import dataclass, field

EARTH_RADIUS_M = 6378137
SQUARE_METERS_PER_ACRE = 4046.8564224
# Web Mercator is undefined at the poles
MAX_MERCATOR_LATITUDE = 85.0511287798

SHAPE_POLYGON = 'polygon'
SHAPE_SVG = 'svg'


class ShapeDataError(ValueError):
    """Raised when a shape_data payload is not a polygon or svg shape"""


@dataclass
class PolygonShape:
    coordinates: list = field(default_factory=list)
    type: str = SHAPE_POLYGON

    def to_json(self):
        return {'type': SHAPE_POLYGON, 'coordinates': [list(c) for c in self.coordinates]}

    def area_acres(self):
        return polygon_area_acres(self.coordinates)


@dataclass
class SvgShape:
    svg_path: str = ''
    type: str = SHAPE_SVG

    def to_json(self):
        return {'type': SHAPE_SVG, 'svg_path': self.svg_path}

    def area_acres(self):
        # SVG outlines are drawn in screen space and carry no map scale
        return None


def _validate_coordinates(coordinates):
    if not isinstance(coordinates, (list, tuple)):
        raise ShapeDataError('Polygon coordinates must be a list of [lng, lat] pairs.')

    cleaned = []
    for index, point in enumerate(coordinates):
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            raise ShapeDataError(f'Vertex {index} must be a [lng, lat] pair.')
        lng, lat = point[0], point[1]
        for value in (lng, lat):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ShapeDataError(f'Vertex {index} must contain numeric values.')
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ShapeDataError(f'Vertex {index} is outside longitude/latitude range.')
        cleaned.append([lng, lat])
    return cleaned


def parse_shape(data):
    """
    Turn a stored shape_data dict into a PolygonShape or SvgShape.
    Returns None when no geometry has been drawn.
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ShapeDataError('Shape data must be an object.')

    shape_type = data.get('type')
    if shape_type == SHAPE_POLYGON:
        return PolygonShape(coordinates=_validate_coordinates(data.get('coordinates') or []))
    if shape_type == SHAPE_SVG:
        svg_path = data.get('svg_path')
        if not isinstance(svg_path, str) or not svg_path.strip():
            raise ShapeDataError('SVG shapes need a non-empty svg_path.')
        return SvgShape(svg_path=svg_path)
    raise ShapeDataError(f"Unknown shape type '{shape_type}'. Expected 'polygon' or 'svg'.")


def polygon_shape(coordinates):
    """Build the stored shape_data dict for a drawn ring of [lng, lat] vertices"""
    return PolygonShape(coordinates=_validate_coordinates(coordinates)).to_json()


def project_to_meters(lng, lat):
    """Spherical Web Mercator projection of one vertex, in meters"""
    lat = max(-MAX_MERCATOR_LATITUDE, min(MAX_MERCATOR_LATITUDE, lat))
    x = EARTH_RADIUS_M * lng * math.pi / 180
    y = EARTH_RADIUS_M * math.log(math.tan(math.pi / 4 + lat * math.pi / 360))
    return x, y


def polygon_area_square_meters(coordinates):
    """
    Shoelace area of the projected ring. The ring is treated as closed, so
    the last vertex connects back to the first whether or not it repeats.
    """
    if not coordinates or len(coordinates) < 3:
        return None

    points = [project_to_meters(c[0], c[1]) for c in coordinates]
    total = 0.0
    for i in range(len(points)):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % len(points)]
        total += x1 * y2 - x2 * y1
    return abs(total) / 2


def polygon_area_acres(coordinates):
    """
    Area in acres of a ring of [lng, lat] vertices, rounded to 2 decimals.

    Farm-scale approximation only. Returns None for fewer than 3 vertices;
    self-intersecting rings are not rejected.
    """
    area_m2 = polygon_area_square_meters(coordinates)
    if area_m2 is None:
        return None
    return round(area_m2 / SQUARE_METERS_PER_ACRE, 2)


def shape_area_acres(data):
    """Acreage for a stored shape_data dict, None if undrawn or not a polygon"""
    shape = parse_shape(data)
    if shape is None:
        return None
    return shape.area_acres()
