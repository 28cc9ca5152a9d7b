from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from rest_framework.fields import get_error_detail

from pastures import services
from pastures.geometry import parse_shape, ShapeDataError
from pastures.models import (
    Pasture, GrazingRotation, PastureRestPeriod, PastureObservation, PropertyMap, Gate,
)
from pastures.map_editor import DRAW_TARGETS, MODES


def call_service(func, *args, **kwargs):
    """Run a service function, reporting model validation failures per field"""
    try:
        return func(*args, **kwargs)
    except DjangoValidationError as e:
        raise serializers.ValidationError(get_error_detail(e))


def validate_shape(value):
    try:
        parse_shape(value)
    except ShapeDataError as e:
        raise serializers.ValidationError(str(e))
    return value


# Pasture Serializers
class PastureSerializer(serializers.ModelSerializer):
    computed_area_acres = serializers.SerializerMethodField()

    def get_computed_area_acres(self, obj):
        return obj.computed_area_acres

    def validate_shape_data(self, value):
        return validate_shape(value)

    def validate_custom_fields(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError('Custom fields must be an object.')
        return value

    class Meta:
        model = Pasture
        fields = [
            'id', 'name', 'description', 'area_size', 'area_unit', 'shape_data',
            'computed_area_acres', 'quality_rating', 'forage_type', 'water_source',
            'shade_available', 'fencing_type', 'fencing_condition', 'notes',
            'custom_fields', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def create(self, validated_data):
        return call_service(services.create_pasture, **validated_data)

    def update(self, instance, validated_data):
        return call_service(services.update_pasture, instance, **validated_data)


class PastureStatusSerializer(serializers.Serializer):
    statuses = serializers.ListField(child=serializers.CharField(), required=False)
    grazing_animals = serializers.ListField(child=serializers.CharField(), required=False)


# Ledger Serializers
class GrazingRotationSerializer(serializers.ModelSerializer):
    # Declared so no uniqueness validator is derived from the single-current constraint
    pasture = serializers.PrimaryKeyRelatedField(queryset=Pasture.objects.all())
    pasture_name = serializers.CharField(source='pasture.name', read_only=True)
    animal_ids = serializers.ListField(child=serializers.IntegerField(), required=False)

    class Meta:
        model = GrazingRotation
        fields = [
            'id', 'pasture', 'pasture_name', 'start_date', 'end_date', 'is_current',
            'animal_type', 'animal_count', 'animal_ids', 'grazing_pressure',
            'pasture_quality_start', 'pasture_quality_end', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, data):
        if self.instance is not None and 'pasture' in data and data['pasture'] != self.instance.pasture:
            raise serializers.ValidationError({'pasture': 'A rotation cannot be moved to another pasture.'})
        end_date = data.get('end_date', getattr(self.instance, 'end_date', None))
        start_date = data.get('start_date', getattr(self.instance, 'start_date', None))
        if end_date and start_date and end_date < start_date:
            raise serializers.ValidationError({'end_date': 'End date cannot be before the start date.'})
        return data

    def create(self, validated_data):
        pasture = validated_data.pop('pasture')
        validated_data.pop('is_current', None)
        validated_data.pop('end_date', None)
        return call_service(
            services.start_rotation,
            pasture,
            validated_data.pop('start_date'),
            validated_data.pop('animal_type'),
            **validated_data
        )

    def update(self, instance, validated_data):
        validated_data.pop('pasture', None)
        return call_service(services.update_rotation, instance, **validated_data)


class StartRotationSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    animal_type = serializers.CharField(max_length=100)
    animal_count = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    animal_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    grazing_pressure = serializers.ChoiceField(
        choices=GrazingRotation.GRAZING_PRESSURE_CHOICES, required=False, allow_null=True
    )
    pasture_quality_start = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class EndRotationSerializer(serializers.Serializer):
    end_date = serializers.DateField()
    pasture_quality_end = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)


class PastureRestPeriodSerializer(serializers.ModelSerializer):
    pasture = serializers.PrimaryKeyRelatedField(queryset=Pasture.objects.all())
    pasture_name = serializers.CharField(source='pasture.name', read_only=True)
    recovery_actions = serializers.ListField(child=serializers.CharField(), required=False)

    class Meta:
        model = PastureRestPeriod
        fields = [
            'id', 'pasture', 'pasture_name', 'start_date', 'planned_end_date',
            'actual_end_date', 'reason', 'recovery_actions', 'is_active', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, data):
        if self.instance is not None and 'pasture' in data and data['pasture'] != self.instance.pasture:
            raise serializers.ValidationError({'pasture': 'A rest period cannot be moved to another pasture.'})
        return data

    def create(self, validated_data):
        pasture = validated_data.pop('pasture')
        validated_data.pop('is_active', None)
        validated_data.pop('actual_end_date', None)
        return call_service(
            services.start_rest_period, pasture, validated_data.pop('start_date'), **validated_data
        )

    def update(self, instance, validated_data):
        validated_data.pop('pasture', None)
        return call_service(services.update_rest_period, instance, **validated_data)


class StartRestPeriodSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    planned_end_date = serializers.DateField(required=False, allow_null=True)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    recovery_actions = serializers.ListField(child=serializers.CharField(), required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        planned = data.get('planned_end_date')
        if planned and planned < data['start_date']:
            raise serializers.ValidationError({'planned_end_date': 'Planned end cannot be before the start date.'})
        return data


class EndRestPeriodSerializer(serializers.Serializer):
    actual_end_date = serializers.DateField()


class PastureObservationSerializer(serializers.ModelSerializer):
    pasture_name = serializers.CharField(source='pasture.name', read_only=True)
    photos = serializers.ListField(child=serializers.URLField(), required=False)

    class Meta:
        model = PastureObservation
        fields = [
            'id', 'pasture', 'pasture_name', 'observation_date', 'quality_rating',
            'forage_height', 'moisture_level', 'weed_pressure', 'bare_spots_percentage',
            'needs_reseeding', 'needs_mowing', 'needs_fertilizing', 'photos', 'notes',
            'observed_by', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def create(self, validated_data):
        pasture = validated_data.pop('pasture')
        return call_service(
            services.add_observation, pasture, validated_data.pop('observation_date'), **validated_data
        )


# Derived state
class PastureWithDetailsSerializer(serializers.Serializer):
    """A pasture flattened together with its resolved ledger state"""

    def to_representation(self, instance):
        data = PastureSerializer(instance.pasture).data
        rotation = instance.current_rotation
        rest_period = instance.rest_period
        observation = instance.last_observation
        data.update({
            'current_rotation': GrazingRotationSerializer(rotation).data if rotation else None,
            'rest_period': PastureRestPeriodSerializer(rest_period).data if rest_period else None,
            'days_resting': instance.days_resting,
            'last_observation': PastureObservationSerializer(observation).data if observation else None,
            'status': instance.status,
            'needs_attention': instance.needs_attention,
        })
        return data


class PastureDashboardSerializer(serializers.Serializer):
    total_pastures = serializers.IntegerField()
    current_rotations = serializers.IntegerField()
    active_rest_periods = serializers.IntegerField()
    needs_attention = serializers.IntegerField()
    pastures = PastureWithDetailsSerializer(many=True)


# Property map and gates
class PropertyMapSerializer(serializers.ModelSerializer):
    boundary_area_acres = serializers.SerializerMethodField()

    def get_boundary_area_acres(self, obj):
        return obj.boundary_area_acres

    def validate_boundary_data(self, value):
        return validate_shape(value)

    def validate_map_center(self, value):
        if value is None:
            return value
        if (
            not isinstance(value, (list, tuple)) or len(value) != 2
            or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
        ):
            raise serializers.ValidationError('Map center must be a [lng, lat] pair.')
        return list(value)

    class Meta:
        model = PropertyMap
        fields = [
            'id', 'name', 'total_area', 'area_unit', 'boundary_data', 'boundary_area_acres',
            'map_center', 'map_zoom', 'map_image_url', 'map_svg', 'map_scale', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class GateSerializer(serializers.ModelSerializer):
    connected_pasture_ids = serializers.ListField(child=serializers.IntegerField(), required=False)

    class Meta:
        model = Gate
        fields = [
            'id', 'name', 'type', 'lng', 'lat', 'is_open', 'connected_pasture_ids', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


# Map editor requests
class MapPositionsField(serializers.ListField):
    """Vertices in map order, [lat, lng] pairs or {'lat', 'lng'} objects"""
    child = serializers.JSONField()


class MapDrawSerializer(serializers.Serializer):
    positions = MapPositionsField()
    target = serializers.ChoiceField(choices=DRAW_TARGETS, required=False, allow_null=True)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    pasture_id = serializers.IntegerField(required=False, allow_null=True)
    boundary_locked = serializers.BooleanField(required=False, allow_null=True, default=None)


class MapEditSerializer(serializers.Serializer):
    edits = serializers.DictField(child=MapPositionsField())
    boundary_locked = serializers.BooleanField(required=False, allow_null=True, default=None)


class MapDeleteSerializer(serializers.Serializer):
    layer_ids = serializers.ListField(child=serializers.CharField())
    boundary_locked = serializers.BooleanField(required=False, allow_null=True, default=None)


class MapModeSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=MODES, default='view')
