"""Public basemap tile sources. None of them need an API key."""
from dataclasses import dataclass, asdict

from django.conf import settings

OSM_ATTRIBUTION = '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
CARTO_ATTRIBUTION = f'{OSM_ATTRIBUTION} &copy; <a href="https://carto.com/attributions">CARTO</a>'

LAYER_TYPES = ['satellite', 'topographic', 'street', 'hybrid']

DEFAULT_SUBDOMAINS = ['a', 'b', 'c']


@dataclass(frozen=True)
class MapLayer:
    id: str
    name: str
    url: str
    attribution: str
    type: str
    subdomains: tuple = tuple(DEFAULT_SUBDOMAINS)

    def tile_url(self, z, x, y, retina=False):
        """Expand the URL template for one tile"""
        subdomain = self.subdomains[(x + y) % len(self.subdomains)] if self.subdomains else ''
        return (
            self.url
            .replace('{s}', subdomain)
            .replace('{z}', str(z))
            .replace('{x}', str(x))
            .replace('{y}', str(y))
            .replace('{r}', '@2x' if retina else '')
        )

    def to_dict(self):
        data = asdict(self)
        data['subdomains'] = list(self.subdomains)
        return data


MAP_LAYERS = [
    MapLayer(
        id='osm',
        name='OpenStreetMap',
        url='https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png',
        attribution=OSM_ATTRIBUTION,
        type='street',
    ),
    MapLayer(
        id='osm-hot',
        name='OpenStreetMap (Hot)',
        url='https://{s}.tile.openstreetmap.fr/hot/{z}/{x}/{y}.png',
        attribution=(
            f'{OSM_ATTRIBUTION}, Tiles style by '
            '<a href="https://www.hot.openstreetmap.org/" target="_blank">Humanitarian OpenStreetMap Team</a>'
        ),
        type='street',
    ),
    MapLayer(
        id='esri-imagery',
        name='Satellite Imagery',
        url='https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}',
        attribution=(
            'Tiles &copy; Esri &mdash; Source: Esri, i-cubed, USDA, USGS, AEX, GeoEye, Getmapping, '
            'Aerogrid, IGN, IGP, UPR-EGP, and the GIS User Community'
        ),
        type='satellite',
        subdomains=(),
    ),
    MapLayer(
        id='esri-topo',
        name='Topographic',
        url='https://server.arcgisonline.com/ArcGIS/rest/services/World_Topo_Map/MapServer/tile/{z}/{y}/{x}',
        attribution=(
            'Tiles &copy; Esri &mdash; Esri, DeLorme, NAVTEQ, TomTom, Intermap, iPC, USGS, FAO, NPS, '
            'NRCAN, GeoBase, Kadaster NL, Ordnance Survey, Esri Japan, METI, Esri China (Hong Kong), '
            'and the GIS User Community'
        ),
        type='topographic',
        subdomains=(),
    ),
    MapLayer(
        id='carto-positron',
        name='CartoDB Positron',
        url='https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png',
        attribution=CARTO_ATTRIBUTION,
        type='street',
        subdomains=('a', 'b', 'c', 'd'),
    ),
    MapLayer(
        id='carto-dark',
        name='CartoDB Dark Matter',
        url='https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png',
        attribution=CARTO_ATTRIBUTION,
        type='street',
        subdomains=('a', 'b', 'c', 'd'),
    ),
]

FALLBACK_LAYER_ID = 'esri-imagery'


def get_layer(layer_id):
    for layer in MAP_LAYERS:
        if layer.id == layer_id:
            return layer
    return None


def default_layer():
    """The configured default basemap, falling back to satellite imagery"""
    layer_id = getattr(settings, 'MAP_DEFAULT_LAYER', FALLBACK_LAYER_ID)
    return get_layer(layer_id) or get_layer(FALLBACK_LAYER_ID)
