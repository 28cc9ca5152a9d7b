"""
Write operations for pastures and their grazing/rest ledgers.

Every function here talks to the database directly; callers refresh their
PastureRepository afterwards instead of patching cached state. Database
failures are re-raised as PersistenceError, and attempts to open a second
current rotation or active rest period for one pasture as LedgerConflict.
"""
import functools
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction, DatabaseError, IntegrityError

from .custom_fields import merge_custom_fields
from .exceptions import PersistenceError, LedgerConflict
from .geometry import polygon_shape, ShapeDataError
from .models import (
    Pasture, GrazingRotation, PastureRestPeriod, PastureObservation, PropertyMap, Gate,
)
from .resolver import duplicate_open_rows

logger = logging.getLogger(__name__)

PASTURE_FIELDS = [
    'name', 'description', 'area_size', 'area_unit', 'shape_data', 'quality_rating',
    'forage_type', 'water_source', 'shade_available', 'fencing_type', 'fencing_condition',
    'notes', 'custom_fields', 'is_active',
]

ROTATION_FIELDS = [
    'start_date', 'end_date', 'is_current', 'animal_type', 'animal_count', 'animal_ids',
    'grazing_pressure', 'pasture_quality_start', 'pasture_quality_end', 'notes',
]

REST_PERIOD_FIELDS = [
    'start_date', 'planned_end_date', 'actual_end_date', 'reason', 'recovery_actions',
    'is_active', 'notes',
]

OBSERVATION_FIELDS = [
    'quality_rating', 'forage_height', 'moisture_level', 'weed_pressure',
    'bare_spots_percentage', 'needs_reseeding', 'needs_mowing', 'needs_fertilizing',
    'photos', 'notes', 'observed_by',
]

PROPERTY_MAP_FIELDS = [
    'name', 'total_area', 'area_unit', 'boundary_data', 'map_center', 'map_zoom',
    'map_image_url', 'map_svg', 'map_scale', 'notes',
]


def persistence_errors(action):
    """Turn database failures raised by the wrapped operation into PersistenceError"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DatabaseError as e:
                logger.error(f"Failed to {action}: {e}")
                raise PersistenceError(f"Failed to {action}: {e}") from e
        return wrapper
    return decorator


def _apply_fields(instance, fields, allowed):
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValidationError({name: 'Unknown field.' for name in unknown})
    for name, value in fields.items():
        setattr(instance, name, value)


# Pasture store

@persistence_errors('create pasture')
def create_pasture(**fields):
    """Create a pasture. Only the name is required."""
    pasture = Pasture()
    _apply_fields(pasture, fields, PASTURE_FIELDS)
    pasture.full_clean()
    pasture.save()
    logger.info(f"Created pasture {pasture.pk} '{pasture.name}'")
    return pasture


@persistence_errors('update pasture')
def update_pasture(pasture, **fields):
    """
    Partial update. Fields not supplied are left alone; custom_fields, when
    supplied, replaces the stored map as a whole.
    """
    _apply_fields(pasture, fields, PASTURE_FIELDS)
    pasture.full_clean()
    pasture.save()
    return pasture


@persistence_errors('delete pasture')
def delete_pasture(pasture):
    """Delete a pasture together with its rotations, rest periods and observations"""
    pasture_id = pasture.pk
    pasture.delete()
    logger.info(f"Deleted pasture {pasture_id} and its ledger history")


@persistence_errors('save pasture geometry')
def save_pasture_geometry(pasture, coordinates):
    """Replace the pasture outline with a newly drawn [lng, lat] ring"""
    try:
        pasture.shape_data = polygon_shape(coordinates)
    except ShapeDataError as e:
        raise ValidationError({'shape_data': str(e)})
    pasture.save(update_fields=['shape_data', 'updated_at'])
    logger.info(f"Saved {len(coordinates)}-vertex outline for pasture {pasture.pk}")
    return pasture


def create_drawn_pasture(name, coordinates):
    """Create a pasture straight from a polygon drawn on the map"""
    try:
        shape_data = polygon_shape(coordinates)
    except ShapeDataError as e:
        raise ValidationError({'shape_data': str(e)})
    return create_pasture(name=name, shape_data=shape_data)


@persistence_errors('clear pasture geometry')
def clear_pasture_geometry(pasture):
    pasture.shape_data = None
    pasture.save(update_fields=['shape_data', 'updated_at'])
    logger.info(f"Cleared outline for pasture {pasture.pk}")
    return pasture


@persistence_errors('update pasture status')
def set_pasture_status(pasture, statuses=None, grazing_animals=None):
    """Read-merge-write on custom_fields so unrelated custom keys survive"""
    pasture.custom_fields = merge_custom_fields(
        pasture.custom_fields,
        statuses=statuses,
        grazing_animals=grazing_animals,
    )
    pasture.save(update_fields=['custom_fields', 'updated_at'])
    return pasture


# Grazing rotations

def _open_rotation(pasture, rotation):
    """Clear any current rotation on the pasture, then save rotation as current"""
    try:
        with transaction.atomic():
            Pasture.objects.select_for_update().filter(pk=pasture.pk).first()
            cleared = (
                GrazingRotation.objects
                .filter(pasture=pasture, is_current=True)
                .exclude(pk=rotation.pk)
                .update(is_current=False)
            )
            rotation.is_current = True
            rotation.save()
    except IntegrityError as e:
        logger.warning(f"Concurrent rotation start rejected for pasture {pasture.pk}: {e}")
        raise LedgerConflict(f"Pasture {pasture.pk} already has a current rotation.") from e
    if cleared:
        logger.info(f"Cleared {cleared} current rotation(s) on pasture {pasture.pk}")
    return rotation


@persistence_errors('start rotation')
def start_rotation(pasture, start_date, animal_type, **fields):
    """Begin grazing a pasture; this becomes its only current rotation"""
    rotation = GrazingRotation(pasture=pasture, start_date=start_date, animal_type=animal_type)
    _apply_fields(rotation, fields, ROTATION_FIELDS)
    rotation.end_date = None
    rotation.full_clean(validate_constraints=False)
    _open_rotation(pasture, rotation)
    logger.info(f"Started rotation {rotation.pk} ({animal_type}) on pasture {pasture.pk}")
    return rotation


@persistence_errors('end rotation')
def end_rotation(rotation, end_date, quality_end=None):
    """Close a rotation. Starting a rest period afterwards is up to the caller."""
    rotation.end_date = end_date
    rotation.pasture_quality_end = quality_end
    rotation.is_current = False
    rotation.full_clean(validate_constraints=False)
    rotation.save(update_fields=['end_date', 'pasture_quality_end', 'is_current', 'updated_at'])
    logger.info(f"Ended rotation {rotation.pk} on pasture {rotation.pasture_id}")
    return rotation


def _reconcile_open_flag(entry, fields, flag, end_field):
    """An end date closes the entry; reopening it clears the end date"""
    closing = fields.get(end_field) is not None
    opening = fields.get(flag) is True
    if closing and opening:
        raise ValidationError({flag: f'An entry with an {end_field} cannot be left open.'})
    if closing:
        setattr(entry, flag, False)
    elif opening:
        setattr(entry, end_field, None)


@persistence_errors('update rotation')
def update_rotation(rotation, **fields):
    _apply_fields(rotation, fields, ROTATION_FIELDS)
    _reconcile_open_flag(rotation, fields, 'is_current', 'end_date')
    rotation.full_clean(validate_constraints=False)
    if rotation.is_current:
        return _open_rotation(rotation.pasture, rotation)
    rotation.save()
    return rotation


# Rest periods

def _open_rest_period(pasture, rest_period):
    try:
        with transaction.atomic():
            Pasture.objects.select_for_update().filter(pk=pasture.pk).first()
            (
                PastureRestPeriod.objects
                .filter(pasture=pasture, is_active=True)
                .exclude(pk=rest_period.pk)
                .update(is_active=False)
            )
            rest_period.is_active = True
            rest_period.save()
    except IntegrityError as e:
        logger.warning(f"Concurrent rest start rejected for pasture {pasture.pk}: {e}")
        raise LedgerConflict(f"Pasture {pasture.pk} already has an active rest period.") from e
    return rest_period


@persistence_errors('start rest period')
def start_rest_period(pasture, start_date, **fields):
    """Begin resting a pasture; this becomes its only active rest period"""
    rest_period = PastureRestPeriod(pasture=pasture, start_date=start_date)
    _apply_fields(rest_period, fields, REST_PERIOD_FIELDS)
    rest_period.actual_end_date = None
    rest_period.full_clean(validate_constraints=False)
    _open_rest_period(pasture, rest_period)
    logger.info(f"Started rest period {rest_period.pk} on pasture {pasture.pk}")
    return rest_period


@persistence_errors('end rest period')
def end_rest_period(rest_period, actual_end_date):
    rest_period.actual_end_date = actual_end_date
    rest_period.is_active = False
    rest_period.full_clean(validate_constraints=False)
    rest_period.save(update_fields=['actual_end_date', 'is_active', 'updated_at'])
    logger.info(f"Ended rest period {rest_period.pk} on pasture {rest_period.pasture_id}")
    return rest_period


@persistence_errors('update rest period')
def update_rest_period(rest_period, **fields):
    _apply_fields(rest_period, fields, REST_PERIOD_FIELDS)
    _reconcile_open_flag(rest_period, fields, 'is_active', 'actual_end_date')
    rest_period.full_clean(validate_constraints=False)
    if rest_period.is_active:
        return _open_rest_period(rest_period.pasture, rest_period)
    rest_period.save()
    return rest_period


# Ledger repair

@persistence_errors('repair pasture ledger')
def find_duplicate_open_entries():
    """
    Rotations and rest periods left open alongside another open entry for the
    same pasture. The entry the resolver already shows is never included.
    """
    rotations = {}
    for rotation in GrazingRotation.objects.filter(is_current=True):
        rotations.setdefault(rotation.pasture_id, []).append(rotation)
    rest_periods = {}
    for rest_period in PastureRestPeriod.objects.filter(is_active=True):
        rest_periods.setdefault(rest_period.pasture_id, []).append(rest_period)

    stale_rotations = []
    for rows in rotations.values():
        stale_rotations.extend(duplicate_open_rows(rows, 'is_current'))
    stale_rest_periods = []
    for rows in rest_periods.values():
        stale_rest_periods.extend(duplicate_open_rows(rows, 'is_active'))
    return stale_rotations, stale_rest_periods


@persistence_errors('repair pasture ledger')
def close_duplicate_open_entries(rotations, rest_periods):
    with transaction.atomic():
        for rotation in rotations:
            rotation.is_current = False
            rotation.save(update_fields=['is_current', 'updated_at'])
        for rest_period in rest_periods:
            rest_period.is_active = False
            rest_period.save(update_fields=['is_active', 'updated_at'])
    logger.info(f"Closed {len(rotations)} duplicate rotation(s) and {len(rest_periods)} duplicate rest period(s)")


# Observations

@persistence_errors('record observation')
def add_observation(pasture, observation_date, **fields):
    observation = PastureObservation(pasture=pasture, observation_date=observation_date)
    _apply_fields(observation, fields, OBSERVATION_FIELDS)
    observation.full_clean()
    observation.save()
    return observation


# Property map

# Primary key of the singleton row; racing first saves collide on it
PROPERTY_MAP_PK = 1


@persistence_errors('load property map')
def get_property_map():
    return PropertyMap.objects.order_by('id').first()


def _locked_property_map():
    return PropertyMap.objects.select_for_update().order_by('id').first()


@persistence_errors('save property map')
def save_property_map(**fields):
    """Update the property map row if there is one, otherwise insert it"""
    with transaction.atomic():
        property_map = _locked_property_map()
        created = False
        if property_map is None:
            property_map, created = PropertyMap.objects.select_for_update().get_or_create(pk=PROPERTY_MAP_PK)
        _apply_fields(property_map, fields, PROPERTY_MAP_FIELDS)
        property_map.full_clean()
        property_map.save()
    if created:
        logger.info(f"Created property map '{property_map.name}'")
    return property_map


@persistence_errors('load property map')
def ensure_property_map():
    """
    Return the property map, filling in the configured farm location when the
    map has never been centred.
    """
    property_map = get_property_map()
    if property_map is not None and property_map.map_center:
        return property_map
    logger.info('Property map has no center yet, initialising from farm location settings')
    return save_property_map(
        name=settings.FARM_NAME,
        map_center=list(settings.FARM_CENTER),
        map_zoom=settings.FARM_MAP_ZOOM,
    )


def save_property_boundary(coordinates):
    try:
        boundary = polygon_shape(coordinates)
    except ShapeDataError as e:
        raise ValidationError({'boundary_data': str(e)})
    return save_property_map(boundary_data=boundary)


def clear_property_boundary():
    return save_property_map(boundary_data=None)


def save_property_location(center, zoom):
    lng, lat = center
    return save_property_map(map_center=[lng, lat], map_zoom=zoom)


# Gates

@persistence_errors('toggle gate')
def toggle_gate(gate):
    gate.is_open = not gate.is_open
    gate.save(update_fields=['is_open', 'updated_at'])
    return gate


def detach_pasture_from_gates(pasture_id):
    """Drop a deleted pasture id from every gate that lists it"""
    updated = 0
    for gate in Gate.objects.all():
        ids = gate.connected_pasture_ids or []
        if pasture_id in ids:
            gate.connected_pasture_ids = [i for i in ids if i != pasture_id]
            gate.save(update_fields=['connected_pasture_ids', 'updated_at'])
            updated += 1
    return updated
