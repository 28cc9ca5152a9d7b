"""
Map editor boundary.

Turns resolved pastures, the property map and gates into map overlays, and
routes draw/edit/delete events coming back from the map widget to save
callbacks. This module is the only place that converts between stored
[lng, lat] order and the [lat, lng] order map widgets use.

Every rendered polygon carries a layer id ('pasture-<id>' or
'property-boundary') so edits are matched to their pasture by id.
"""
import logging

from django.conf import settings

from .exceptions import MapEditorError
from .geometry import SHAPE_POLYGON, ShapeDataError, polygon_shape
from .resolver import STATUS_GRAZING, STATUS_OFF_LIMITS, STATUS_RESTING

logger = logging.getLogger(__name__)

MODE_VIEW = 'view'
MODE_EDIT = 'edit'
MODES = [MODE_VIEW, MODE_EDIT]

TARGET_PROPERTY = 'property'
TARGET_PASTURE = 'pasture'
TARGET_PASTURE_REDRAW = 'pasture-redraw'
DRAW_TARGETS = [TARGET_PROPERTY, TARGET_PASTURE, TARGET_PASTURE_REDRAW]

PROPERTY_LAYER_ID = 'property-boundary'
PASTURE_LAYER_PREFIX = 'pasture-'
GATE_LAYER_PREFIX = 'gate-'

COLOR_OFF_LIMITS = '#6b7280'
COLOR_GRAZING = '#16a34a'
COLOR_NEEDS_ATTENTION = '#dc2626'
COLOR_RESTING = '#2563eb'
COLOR_AVAILABLE = '#eab308'
COLOR_PROPERTY = '#6366f1'
COLOR_GATE_OPEN = '#16a34a'
COLOR_GATE_CLOSED = '#dc2626'

FIT_BOUNDS_PADDING = [50, 50]


# Coordinate order adapters

def to_map_positions(coordinates):
    """[[lng, lat], ...] -> [[lat, lng], ...]"""
    return [[point[1], point[0]] for point in coordinates or []]


def from_map_positions(positions):
    """
    [[lat, lng], ...] or [{'lat': .., 'lng': ..}, ...] -> [[lng, lat], ...]
    """
    coordinates = []
    for point in positions or []:
        if isinstance(point, dict):
            try:
                lat, lng = point['lat'], point['lng']
            except KeyError:
                raise MapEditorError('Map positions need both lat and lng.')
        elif isinstance(point, (list, tuple)) and len(point) >= 2:
            lat, lng = point[0], point[1]
        else:
            raise MapEditorError('Map positions must be [lat, lng] pairs.')
        coordinates.append([lng, lat])
    return coordinates


def pasture_layer_id(pasture_id):
    return f'{PASTURE_LAYER_PREFIX}{pasture_id}'


def pasture_color(details):
    """Fill color for a resolved pasture"""
    custom_fields = details.pasture.typed_custom_fields
    if details.status == STATUS_OFF_LIMITS:
        return COLOR_OFF_LIMITS
    if details.status == STATUS_GRAZING:
        return COLOR_GRAZING
    if details.needs_attention or custom_fields.needs_maintenance:
        return COLOR_NEEDS_ATTENTION
    if details.status == STATUS_RESTING:
        return COLOR_RESTING
    return COLOR_AVAILABLE


def _polygon_coordinates(shape_data):
    if not isinstance(shape_data, dict) or shape_data.get('type') != SHAPE_POLYGON:
        return None
    coordinates = shape_data.get('coordinates')
    return coordinates or None


class MapEditor:
    """
    One editing session over the farm map.

    The callbacks receive [lng, lat] coordinates:
      on_property_boundary_save(coordinates)
      on_property_boundary_clear()
      on_pasture_create(name, coordinates)
      on_pasture_save(pasture_id, coordinates)
      on_pasture_clear(pasture_id)
    """

    def __init__(self, pastures, property_map=None, gates=(), mode=MODE_VIEW, boundary_locked=None,
                 on_property_boundary_save=None, on_property_boundary_clear=None,
                 on_pasture_create=None, on_pasture_save=None, on_pasture_clear=None):
        self.pastures = list(pastures)
        self.property_map = property_map
        self.gates = list(gates)
        self.mode = MODE_VIEW
        self.set_mode(mode)

        if boundary_locked is None:
            boundary_locked = self._boundary_coordinates() is not None
        self.boundary_locked = boundary_locked

        self.on_property_boundary_save = on_property_boundary_save
        self.on_property_boundary_clear = on_property_boundary_clear
        self.on_pasture_create = on_pasture_create
        self.on_pasture_save = on_pasture_save
        self.on_pasture_clear = on_pasture_clear

        self._layers = {}
        for details in self.pastures:
            if _polygon_coordinates(details.pasture.shape_data):
                self._layers[pasture_layer_id(details.id)] = details.id

    def _boundary_coordinates(self):
        if self.property_map is None:
            return None
        return _polygon_coordinates(self.property_map.boundary_data)

    # Mode and controls

    def set_mode(self, mode):
        if mode not in MODES:
            raise MapEditorError(f"Unknown map mode '{mode}'. Expected 'view' or 'edit'.")
        if mode != self.mode:
            logger.info(f"Map editor switched to {mode} mode")
        self.mode = mode

    @property
    def is_editing(self):
        return self.mode == MODE_EDIT

    def lock_boundary(self):
        self.boundary_locked = True

    def unlock_boundary(self):
        self.boundary_locked = False

    def controls(self):
        """Draw toolbar options, or None when the toolbar is detached"""
        if not self.is_editing:
            return None
        return {
            'position': 'topright',
            'draw': {
                'polygon': {'allowIntersection': False, 'showArea': True, 'metric': True},
                'rectangle': False,
                'circle': False,
                'marker': False,
                'circlemarker': False,
                'polyline': False,
            },
            'edit': {'featureGroup': 'drawn-items', 'remove': True},
            'boundary_locked': self.boundary_locked,
            'draw_targets': DRAW_TARGETS,
        }

    # Rendering

    def overlays(self):
        layers = []

        boundary = self._boundary_coordinates()
        if boundary:
            layers.append({
                'id': PROPERTY_LAYER_ID,
                'kind': 'property',
                'name': self.property_map.name,
                'positions': to_map_positions(boundary),
                'area_acres': self.property_map.boundary_area_acres,
                'path_options': {
                    'color': COLOR_PROPERTY,
                    'fillColor': COLOR_PROPERTY,
                    'fillOpacity': 0.1,
                    'weight': 3,
                    'dashArray': '10, 5',
                },
            })

        for details in self.pastures:
            coordinates = _polygon_coordinates(details.pasture.shape_data)
            if not coordinates:
                continue
            color = pasture_color(details)
            layers.append({
                'id': pasture_layer_id(details.id),
                'kind': 'pasture',
                'pasture_id': details.id,
                'name': details.name,
                'status': details.status,
                'needs_attention': details.needs_attention,
                'positions': to_map_positions(coordinates),
                'area_acres': details.pasture.computed_area_acres,
                'path_options': {
                    'color': color,
                    'fillColor': color,
                    'fillOpacity': 0.3,
                    'weight': 2,
                },
            })

        for gate in self.gates:
            layers.append({
                'id': f'{GATE_LAYER_PREFIX}{gate.pk}',
                'kind': 'gate',
                'gate_id': gate.pk,
                'name': gate.name,
                'is_open': gate.is_open,
                'position': [float(gate.lat), float(gate.lng)],
                'color': COLOR_GATE_OPEN if gate.is_open else COLOR_GATE_CLOSED,
            })

        return layers

    def viewport(self):
        """
        Fit every drawn outline when there are any, else use the saved map
        center and zoom, else the configured farm location.
        """
        points = []
        boundary = self._boundary_coordinates()
        if boundary:
            points.extend(boundary)
        for details in self.pastures:
            points.extend(_polygon_coordinates(details.pasture.shape_data) or [])

        if points:
            lngs = [p[0] for p in points]
            lats = [p[1] for p in points]
            return {
                'bounds': [[min(lats), min(lngs)], [max(lats), max(lngs)]],
                'padding': FIT_BOUNDS_PADDING,
            }

        if self.property_map is not None and self.property_map.map_center and self.property_map.map_zoom:
            lng, lat = self.property_map.map_center[:2]
            return {'center': [lat, lng], 'zoom': float(self.property_map.map_zoom)}

        lng, lat = settings.FARM_CENTER
        return {'center': [lat, lng], 'zoom': float(settings.FARM_MAP_ZOOM)}

    # Events

    def _require_edit_mode(self, event):
        if not self.is_editing:
            raise MapEditorError(f'Cannot {event} polygons in view mode.')

    def _require_unlocked_boundary(self):
        if self.boundary_locked:
            raise MapEditorError('The property boundary is locked. Unlock it before changing it.')

    @staticmethod
    def _require_callback(callback, name):
        if callback is None:
            raise MapEditorError(f'No handler is attached for {name}.')
        return callback

    def handle_created(self, positions, target=None, name=None, pasture_id=None):
        """
        Route a newly drawn polygon. Returns whatever the save callback
        returns, or None when no draw target was armed.
        """
        self._require_edit_mode('draw')
        coordinates = from_map_positions(positions)

        if target is None:
            logger.warning('Ignoring drawn polygon with no draw target')
            return None
        if target not in DRAW_TARGETS:
            raise MapEditorError(f"Unknown draw target '{target}'.")

        if target == TARGET_PROPERTY:
            self._require_unlocked_boundary()
            save = self._require_callback(self.on_property_boundary_save, 'property boundary saves')
            logger.info(f"Routing {len(coordinates)}-vertex drawing to the property boundary")
            return save(coordinates)

        if target == TARGET_PASTURE:
            if not name or not str(name).strip():
                raise MapEditorError('A name is required to create a pasture.')
            create = self._require_callback(self.on_pasture_create, 'pasture creation')
            logger.info(f"Routing {len(coordinates)}-vertex drawing to new pasture '{name}'")
            pasture = create(str(name).strip(), coordinates)
            if pasture is not None and getattr(pasture, 'pk', None) is not None:
                self._layers[pasture_layer_id(pasture.pk)] = pasture.pk
            return pasture

        if pasture_id is None:
            raise MapEditorError('Redrawing needs the id of the pasture being redrawn.')
        if not any(details.id == pasture_id for details in self.pastures):
            raise MapEditorError(f'Unknown pasture {pasture_id}.')
        save = self._require_callback(self.on_pasture_save, 'pasture saves')
        logger.info(f"Routing {len(coordinates)}-vertex redraw to pasture {pasture_id}")
        result = save(pasture_id, coordinates)
        self._layers[pasture_layer_id(pasture_id)] = pasture_id
        return result

    def _resolve_layer(self, layer_id):
        if layer_id == PROPERTY_LAYER_ID:
            if self._boundary_coordinates() is None:
                raise MapEditorError('There is no property boundary on the map.')
            return PROPERTY_LAYER_ID, None
        if layer_id in self._layers:
            return 'pasture', self._layers[layer_id]
        raise MapEditorError(f"Unknown map layer '{layer_id}'.")

    def handle_edited(self, edits):
        """
        Save vertex edits. `edits` maps layer id to the edited positions.
        Every layer id and every edited ring is checked before anything is
        saved.
        """
        self._require_edit_mode('edit')
        resolved = []
        for layer_id, positions in edits.items():
            kind, pasture_id = self._resolve_layer(layer_id)
            if kind == PROPERTY_LAYER_ID:
                self._require_unlocked_boundary()
            coordinates = from_map_positions(positions)
            try:
                polygon_shape(coordinates)
            except ShapeDataError as e:
                raise MapEditorError(f"Layer '{layer_id}': {e}") from e
            resolved.append((kind, pasture_id, coordinates))

        results = []
        for kind, pasture_id, coordinates in resolved:
            if kind == PROPERTY_LAYER_ID:
                save = self._require_callback(self.on_property_boundary_save, 'property boundary saves')
                results.append(save(coordinates))
            else:
                save = self._require_callback(self.on_pasture_save, 'pasture saves')
                results.append(save(pasture_id, coordinates))
        logger.info(f"Saved edits to {len(results)} map layer(s)")
        return results

    def handle_deleted(self, layer_ids):
        """
        Remove drawn outlines. The pasture record and its history stay; only
        its geometry is cleared.
        """
        self._require_edit_mode('delete')
        resolved = []
        for layer_id in layer_ids:
            kind, pasture_id = self._resolve_layer(layer_id)
            if kind == PROPERTY_LAYER_ID:
                self._require_unlocked_boundary()
            resolved.append((layer_id, kind, pasture_id))

        results = []
        for layer_id, kind, pasture_id in resolved:
            if kind == PROPERTY_LAYER_ID:
                clear = self._require_callback(self.on_property_boundary_clear, 'property boundary removal')
                results.append(clear())
            else:
                clear = self._require_callback(self.on_pasture_clear, 'pasture outline removal')
                results.append(clear(pasture_id))
                self._layers.pop(layer_id, None)
        logger.info(f"Removed {len(results)} map layer(s)")
        return results
