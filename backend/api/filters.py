import django_filters

from pastures.models import Pasture, GrazingRotation, PastureRestPeriod, PastureObservation, Gate


class PastureFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    forage_type = django_filters.CharFilter(lookup_expr='icontains')
    fencing_condition = django_filters.ChoiceFilter(choices=Pasture.FENCING_CONDITION_CHOICES)
    quality_min = django_filters.NumberFilter(field_name='quality_rating', lookup_expr='gte')
    quality_max = django_filters.NumberFilter(field_name='quality_rating', lookup_expr='lte')
    has_geometry = django_filters.BooleanFilter(method='filter_has_geometry')

    class Meta:
        model = Pasture
        fields = ['is_active', 'water_source', 'shade_available', 'area_unit']

    def filter_has_geometry(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(shape_data__isnull=not value)


class GrazingRotationFilter(django_filters.FilterSet):
    animal_type = django_filters.CharFilter(lookup_expr='icontains')
    grazing_pressure = django_filters.ChoiceFilter(choices=GrazingRotation.GRAZING_PRESSURE_CHOICES)
    date_from = django_filters.DateFilter(field_name='start_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='start_date', lookup_expr='lte')

    class Meta:
        model = GrazingRotation
        fields = ['pasture', 'is_current']


class PastureRestPeriodFilter(django_filters.FilterSet):
    reason = django_filters.CharFilter(lookup_expr='icontains')
    date_from = django_filters.DateFilter(field_name='start_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='start_date', lookup_expr='lte')

    class Meta:
        model = PastureRestPeriod
        fields = ['pasture', 'is_active']


class PastureObservationFilter(django_filters.FilterSet):
    date_from = django_filters.DateFilter(field_name='observation_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='observation_date', lookup_expr='lte')
    quality_max = django_filters.NumberFilter(field_name='quality_rating', lookup_expr='lte')
    moisture_level = django_filters.ChoiceFilter(choices=PastureObservation.MOISTURE_LEVEL_CHOICES)
    weed_pressure = django_filters.ChoiceFilter(choices=PastureObservation.WEED_PRESSURE_CHOICES)

    class Meta:
        model = PastureObservation
        fields = ['pasture', 'needs_reseeding', 'needs_mowing', 'needs_fertilizing']


class GateFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')

    class Meta:
        model = Gate
        fields = ['type', 'is_open']
