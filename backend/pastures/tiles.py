"""
Slippy-map tile maths and a bounded tile prefetcher.

The prefetcher warms the tile server's cache for the farm extent before
going out to the field. It fetches at most `limit` tiles one after another
and counts failures instead of retrying them.
"""
import logging
import math
import urllib.request

from django.conf import settings

from .geometry import MAX_MERCATOR_LATITUDE

logger = logging.getLogger(__name__)

USER_AGENT = 'boldfarm-tile-prefetch/1.0'

# Half-width of the default extent around the farm center, in degrees
DEFAULT_EXTENT_PADDING = 0.01


def lnglat_to_tile(lng, lat, zoom):
    """Tile (x, y) containing the point at the given zoom"""
    lat = max(-MAX_MERCATOR_LATITUDE, min(MAX_MERCATOR_LATITUDE, lat))
    n = 2 ** zoom
    x = int((lng + 180.0) / 360.0 * n)
    lat_rad = math.radians(lat)
    y = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tiles_for_bounds(west, south, east, north, zoom):
    """All (z, x, y) tiles covering a lng/lat bounding box, row by row"""
    x_min, y_min = lnglat_to_tile(west, north, zoom)
    x_max, y_max = lnglat_to_tile(east, south, zoom)
    return [
        (zoom, x, y)
        for y in range(y_min, y_max + 1)
        for x in range(x_min, x_max + 1)
    ]


def bounds_of(coordinates):
    """(west, south, east, north) of a ring of [lng, lat] vertices"""
    lngs = [c[0] for c in coordinates]
    lats = [c[1] for c in coordinates]
    return min(lngs), min(lats), max(lngs), max(lats)


def farm_extent(property_map=None, padding=DEFAULT_EXTENT_PADDING):
    """
    Bounding box to prefetch: the drawn property boundary when there is one,
    otherwise a square around the map center (or the configured farm center).
    """
    if property_map is not None:
        boundary = property_map.boundary_data or {}
        coordinates = boundary.get('coordinates') if boundary.get('type') == 'polygon' else None
        if coordinates and len(coordinates) >= 3:
            return bounds_of(coordinates)

    center = settings.FARM_CENTER
    if property_map is not None and property_map.map_center:
        center = property_map.map_center
    lng, lat = float(center[0]), float(center[1])
    return lng - padding, lat - padding, lng + padding, lat + padding


def tiles_for_zoom_range(extent, min_zoom, max_zoom):
    west, south, east, north = extent
    tiles = []
    for zoom in range(min_zoom, max_zoom + 1):
        tiles.extend(tiles_for_bounds(west, south, east, north, zoom))
    return tiles


def fetch_tile(url, timeout):
    request = urllib.request.Request(url, headers={'User-Agent': USER_AGENT})
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.read()


def prefetch_tiles(layer, tiles, limit=None, timeout=None, fetch=fetch_tile):
    """
    Request each tile URL once. Returns (fetched, failed, skipped) where
    skipped counts tiles left out because of the limit.
    """
    limit = settings.TILE_PREFETCH_LIMIT if limit is None else limit
    timeout = settings.TILE_PREFETCH_TIMEOUT if timeout is None else timeout

    batch = tiles[:limit]
    fetched = 0
    failed = 0
    for z, x, y in batch:
        url = layer.tile_url(z, x, y)
        try:
            fetch(url, timeout)
            fetched += 1
        except OSError as e:
            failed += 1
            logger.warning(f"Tile fetch failed for {url}: {e}")

    skipped = len(tiles) - len(batch)
    logger.info(f"Prefetched {fetched} '{layer.id}' tiles ({failed} failed, {skipped} over limit)")
    return fetched, failed, skipped
