import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.fields import get_error_detail
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.response import Response
from rest_framework.views import APIView

from pastures import services
from pastures.custom_fields import DEFAULT_STATUS_OPTIONS
from pastures.exceptions import PastureError, PersistenceError, LedgerConflict
from pastures.map_editor import MapEditor
from pastures.map_layers import MAP_LAYERS, default_layer
from pastures.models import (
    Pasture, GrazingRotation, PastureRestPeriod, PastureObservation, PropertyMap, Gate,
    AREA_UNIT_CHOICES, FORAGE_TYPES, FENCING_TYPES, ANIMAL_TYPES, RECOVERY_ACTIONS,
)
from pastures.repository import PastureRepository

from .filters import (
    PastureFilter, GrazingRotationFilter, PastureRestPeriodFilter, PastureObservationFilter, GateFilter,
)
from .serializers import (
    # Pasture serializers
    PastureSerializer, PastureStatusSerializer, PastureWithDetailsSerializer,
    PastureDashboardSerializer,

    # Ledger serializers
    GrazingRotationSerializer, StartRotationSerializer, EndRotationSerializer,
    PastureRestPeriodSerializer, StartRestPeriodSerializer, EndRestPeriodSerializer,
    PastureObservationSerializer,

    # Map serializers
    PropertyMapSerializer, GateSerializer, MapDrawSerializer, MapEditSerializer,
    MapDeleteSerializer, MapModeSerializer,
)

logger = logging.getLogger(__name__)

# Ledger rows are closed, never physically deleted
LEDGER_HTTP_METHODS = ['get', 'post', 'put', 'patch', 'head', 'options']


def error_response(exc):
    """The {'success': False, 'error': ...} body used by every action endpoint"""
    if isinstance(exc, PersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, LedgerConflict):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response({'success': False, 'error': str(exc)}, status=code)


class PastureErrorsMixin:
    """Render pasture domain errors instead of letting them reach the error page"""

    def get_repository(self):
        return PastureRepository()

    def handle_exception(self, exc):
        if isinstance(exc, IntegrityError):
            logger.warning(f"Write rejected by a constraint in {self.__class__.__name__}: {exc}")
            exc = LedgerConflict(f"Rejected by a database constraint: {exc}")
        elif isinstance(exc, DatabaseError):
            logger.error(f"Database failure in {self.__class__.__name__}: {exc}")
            exc = PersistenceError(f"Database unavailable: {exc}")
        if isinstance(exc, PastureError):
            return error_response(exc)
        if isinstance(exc, DjangoValidationError):
            exc = ValidationError(get_error_detail(exc))
        return super().handle_exception(exc)


def serialize_saved(result):
    """Serialize whatever a map editor callback returned"""
    if isinstance(result, Pasture):
        return {'pasture': PastureSerializer(result).data}
    if isinstance(result, PropertyMap):
        return {'property_map': PropertyMapSerializer(result).data}
    return {}


def build_map_editor(repository, mode, boundary_locked=None):
    """A MapEditor over the current farm state, wired to the pasture services"""

    def save_pasture(pasture_id, coordinates):
        return services.save_pasture_geometry(get_object_or_404(Pasture, pk=pasture_id), coordinates)

    def clear_pasture(pasture_id):
        return services.clear_pasture_geometry(get_object_or_404(Pasture, pk=pasture_id))

    return MapEditor(
        repository.all(),
        property_map=services.ensure_property_map(),
        gates=Gate.objects.all(),
        mode=mode,
        boundary_locked=boundary_locked,
        on_property_boundary_save=services.save_property_boundary,
        on_property_boundary_clear=services.clear_property_boundary,
        on_pasture_create=services.create_drawn_pasture,
        on_pasture_save=save_pasture,
        on_pasture_clear=clear_pasture,
    )


# Pasture Views
class PastureViewSet(PastureErrorsMixin, viewsets.ModelViewSet):
    queryset = Pasture.objects.all()
    serializer_class = PastureSerializer
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PastureFilter
    search_fields = ['name', 'description', 'forage_type', 'notes']
    ordering_fields = ['name', 'quality_rating', 'area_size', 'created_at']
    ordering = ['name']

    def perform_destroy(self, instance):
        services.delete_pasture(instance)

    @action(detail=True, methods=['get'])
    def area(self, request, pk=None):
        pasture = self.get_object()
        return Response({
            'pasture_id': pasture.id,
            'computed_area_acres': pasture.computed_area_acres,
            'area_size': pasture.area_size,
            'area_unit': pasture.area_unit,
        })

    @action(detail=True, methods=['get'])
    def details(self, request, pk=None):
        pasture = self.get_object()
        details = self.get_repository().get(pasture.id)
        return Response(PastureWithDetailsSerializer(details).data)

    @action(detail=True, methods=['post'])
    def set_status(self, request, pk=None):
        pasture = self.get_object()
        serializer = PastureStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pasture = services.set_pasture_status(pasture, **serializer.validated_data)
        return Response({
            'success': True,
            'pasture': PastureSerializer(pasture).data
        })

    @action(detail=True, methods=['post'])
    def start_rotation(self, request, pk=None):
        pasture = self.get_object()
        serializer = StartRotationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        rotation = services.start_rotation(pasture, data.pop('start_date'), data.pop('animal_type'), **data)
        return Response({
            'success': True,
            'message': f'{rotation.animal_type} now grazing {pasture.name}.',
            'rotation': GrazingRotationSerializer(rotation).data
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def start_rest(self, request, pk=None):
        pasture = self.get_object()
        serializer = StartRestPeriodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        rest_period = services.start_rest_period(pasture, data.pop('start_date'), **data)
        return Response({
            'success': True,
            'message': f'{pasture.name} is now resting.',
            'rest_period': PastureRestPeriodSerializer(rest_period).data
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        summary = self.get_repository().dashboard()
        return Response(PastureDashboardSerializer(summary).data)

    @action(detail=False, methods=['get'], url_path='options')
    def form_options(self, request):
        """Suggested values for the pasture forms"""
        return Response({
            'statuses': DEFAULT_STATUS_OPTIONS,
            'forage_types': FORAGE_TYPES,
            'fencing_types': FENCING_TYPES,
            'fencing_conditions': [value for value, _ in Pasture.FENCING_CONDITION_CHOICES],
            'animal_types': ANIMAL_TYPES,
            'recovery_actions': RECOVERY_ACTIONS,
            'grazing_pressures': [value for value, _ in GrazingRotation.GRAZING_PRESSURE_CHOICES],
            'moisture_levels': [value for value, _ in PastureObservation.MOISTURE_LEVEL_CHOICES],
            'weed_pressures': [value for value, _ in PastureObservation.WEED_PRESSURE_CHOICES],
            'area_units': [value for value, _ in AREA_UNIT_CHOICES],
        })


# Ledger Views
class GrazingRotationViewSet(PastureErrorsMixin, viewsets.ModelViewSet):
    queryset = GrazingRotation.objects.select_related('pasture')
    http_method_names = LEDGER_HTTP_METHODS
    serializer_class = GrazingRotationSerializer
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = GrazingRotationFilter
    ordering_fields = ['start_date', 'end_date', 'created_at']
    ordering = ['-start_date', '-id']

    @action(detail=True, methods=['post'])
    def end(self, request, pk=None):
        rotation = self.get_object()
        serializer = EndRotationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if serializer.validated_data['end_date'] < rotation.start_date:
            return Response({
                'success': False,
                'error': 'End date cannot be before the start date.'
            }, status=status.HTTP_400_BAD_REQUEST)

        rotation = services.end_rotation(
            rotation,
            serializer.validated_data['end_date'],
            quality_end=serializer.validated_data.get('pasture_quality_end'),
        )
        return Response({
            'success': True,
            'rotation': GrazingRotationSerializer(rotation).data
        })

    @action(detail=False, methods=['get'])
    def current(self, request):
        rotations = self.get_repository().current_rotations()
        return Response(GrazingRotationSerializer(rotations, many=True).data)


class PastureRestPeriodViewSet(PastureErrorsMixin, viewsets.ModelViewSet):
    queryset = PastureRestPeriod.objects.select_related('pasture')
    http_method_names = LEDGER_HTTP_METHODS
    serializer_class = PastureRestPeriodSerializer
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = PastureRestPeriodFilter
    ordering_fields = ['start_date', 'planned_end_date', 'created_at']
    ordering = ['-start_date', '-id']

    @action(detail=True, methods=['post'])
    def end(self, request, pk=None):
        rest_period = self.get_object()
        serializer = EndRestPeriodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if serializer.validated_data['actual_end_date'] < rest_period.start_date:
            return Response({
                'success': False,
                'error': 'End date cannot be before the start date.'
            }, status=status.HTTP_400_BAD_REQUEST)

        rest_period = services.end_rest_period(rest_period, serializer.validated_data['actual_end_date'])
        return Response({
            'success': True,
            'rest_period': PastureRestPeriodSerializer(rest_period).data
        })

    @action(detail=False, methods=['get'])
    def active(self, request):
        rest_periods = self.get_repository().active_rest_periods()
        return Response(PastureRestPeriodSerializer(rest_periods, many=True).data)


class PastureObservationViewSet(PastureErrorsMixin,
                                mixins.CreateModelMixin,
                                mixins.RetrieveModelMixin,
                                mixins.ListModelMixin,
                                viewsets.GenericViewSet):
    """Append-only: observations are recorded and read, never edited"""
    queryset = PastureObservation.objects.select_related('pasture')
    serializer_class = PastureObservationSerializer
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PastureObservationFilter
    search_fields = ['notes', 'observed_by', 'pasture__name']
    ordering_fields = ['observation_date', 'quality_rating', 'created_at']
    ordering = ['-observation_date', '-id']


# Property Map Views
class PropertyMapView(PastureErrorsMixin, APIView):
    """Singleton farm map: GET reads it, POST and PUT both upsert"""

    def get(self, request):
        property_map = services.ensure_property_map()
        return Response(PropertyMapSerializer(property_map).data)

    def post(self, request):
        return self._upsert(request)

    def put(self, request):
        return self._upsert(request)

    def _upsert(self, request):
        existing = services.get_property_map()
        serializer = PropertyMapSerializer(existing, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        property_map = services.save_property_map(**serializer.validated_data)
        return Response(
            PropertyMapSerializer(property_map).data,
            status=status.HTTP_200_OK if existing else status.HTTP_201_CREATED
        )


class GateViewSet(PastureErrorsMixin, viewsets.ModelViewSet):
    queryset = Gate.objects.all()
    serializer_class = GateSerializer
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = GateFilter
    search_fields = ['name', 'notes']
    ordering_fields = ['name', 'created_at']
    ordering = ['name']

    @action(detail=True, methods=['post'])
    def toggle(self, request, pk=None):
        gate = services.toggle_gate(self.get_object())
        return Response({
            'success': True,
            'message': f"{gate.name} is now {'open' if gate.is_open else 'closed'}.",
            'gate': GateSerializer(gate).data
        })


# Map Views
class MapLayersView(APIView):

    def get(self, request):
        return Response({
            'default': default_layer().id,
            'layers': [layer.to_dict() for layer in MAP_LAYERS],
        })


class MapOverlaysView(PastureErrorsMixin, APIView):
    """Everything the map widget needs to render the farm in view or edit mode"""

    def get(self, request):
        serializer = MapModeSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        editor = build_map_editor(self.get_repository(), serializer.validated_data['mode'])
        return Response({
            'mode': editor.mode,
            'boundary_locked': editor.boundary_locked,
            'controls': editor.controls(),
            'viewport': editor.viewport(),
            'overlays': editor.overlays(),
        })


class MapDrawView(PastureErrorsMixin, APIView):

    def post(self, request):
        serializer = MapDrawSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        editor = build_map_editor(self.get_repository(), 'edit', boundary_locked=data['boundary_locked'])
        result = editor.handle_created(
            data['positions'],
            target=data.get('target'),
            name=data.get('name'),
            pasture_id=data.get('pasture_id'),
        )
        if result is None:
            return Response({'success': True, 'ignored': True})

        response = {'success': True, 'target': data['target']}
        response.update(serialize_saved(result))
        created = data['target'] == 'pasture'
        return Response(response, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class MapEditView(PastureErrorsMixin, APIView):

    def post(self, request):
        serializer = MapEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        editor = build_map_editor(self.get_repository(), 'edit', boundary_locked=data['boundary_locked'])
        with transaction.atomic():
            results = editor.handle_edited(data['edits'])
        return Response({
            'success': True,
            'saved': [serialize_saved(result) for result in results]
        })


class MapDeleteView(PastureErrorsMixin, APIView):

    def post(self, request):
        serializer = MapDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        editor = build_map_editor(self.get_repository(), 'edit', boundary_locked=data['boundary_locked'])
        with transaction.atomic():
            results = editor.handle_deleted(data['layer_ids'])
        return Response({
            'success': True,
            'cleared': [serialize_saved(result) for result in results]
        })
