from django.contrib import admin
from django.utils.html import format_html

from .models import Pasture, GrazingRotation, PastureRestPeriod, PastureObservation, PropertyMap, Gate
from .map_editor import COLOR_GATE_OPEN, COLOR_GATE_CLOSED


class GrazingRotationInline(admin.TabularInline):
    """Rotation history on the pasture page"""
    model = GrazingRotation
    extra = 0
    fields = ['start_date', 'end_date', 'is_current', 'animal_type', 'animal_count', 'grazing_pressure']
    show_change_link = True


class PastureRestPeriodInline(admin.TabularInline):
    model = PastureRestPeriod
    extra = 0
    fields = ['start_date', 'planned_end_date', 'actual_end_date', 'reason', 'is_active']
    show_change_link = True


class PastureObservationInline(admin.TabularInline):
    model = PastureObservation
    extra = 0
    fields = ['observation_date', 'quality_rating', 'forage_height', 'moisture_level', 'observed_by']
    readonly_fields = ['created_at']
    show_change_link = True


@admin.register(Pasture)
class PastureAdmin(admin.ModelAdmin):
    """Admin interface for pastures"""
    list_display = [
        'name', 'area_size', 'area_unit', 'computed_area_display', 'quality_rating',
        'forage_type', 'fencing_condition', 'is_active', 'updated_at'
    ]
    list_filter = ['is_active', 'area_unit', 'fencing_condition', 'water_source', 'shade_available']
    search_fields = ['name', 'description', 'forage_type', 'notes']
    readonly_fields = ['computed_area_display', 'created_at', 'updated_at']
    ordering = ['name']
    inlines = [GrazingRotationInline, PastureRestPeriodInline, PastureObservationInline]

    fieldsets = (
        ('Pasture', {
            'fields': ('name', 'description', 'is_active')
        }),
        ('Size and Geometry', {
            'fields': ('area_size', 'area_unit', 'shape_data', 'computed_area_display')
        }),
        ('Condition', {
            'fields': (
                'quality_rating', 'forage_type', 'water_source', 'shade_available',
                'fencing_type', 'fencing_condition'
            )
        }),
        ('Notes', {
            'fields': ('notes', 'custom_fields'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def computed_area_display(self, obj):
        acres = obj.computed_area_acres
        return f"{acres} acres" if acres is not None else '-'
    computed_area_display.short_description = 'Drawn Area'


@admin.register(GrazingRotation)
class GrazingRotationAdmin(admin.ModelAdmin):
    list_display = [
        'pasture', 'animal_type', 'animal_count', 'start_date', 'end_date', 'is_current', 'grazing_pressure'
    ]
    list_filter = ['is_current', 'animal_type', 'grazing_pressure', 'start_date']
    search_fields = ['pasture__name', 'animal_type', 'notes']
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'start_date'


@admin.register(PastureRestPeriod)
class PastureRestPeriodAdmin(admin.ModelAdmin):
    list_display = ['pasture', 'start_date', 'planned_end_date', 'actual_end_date', 'reason', 'is_active']
    list_filter = ['is_active', 'start_date']
    search_fields = ['pasture__name', 'reason', 'notes']
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'start_date'


@admin.register(PastureObservation)
class PastureObservationAdmin(admin.ModelAdmin):
    list_display = [
        'pasture', 'observation_date', 'quality_rating', 'forage_height', 'moisture_level',
        'weed_pressure', 'observed_by'
    ]
    list_filter = ['moisture_level', 'weed_pressure', 'needs_reseeding', 'needs_mowing', 'needs_fertilizing']
    search_fields = ['pasture__name', 'notes', 'observed_by']
    readonly_fields = ['created_at']
    date_hierarchy = 'observation_date'


@admin.register(PropertyMap)
class PropertyMapAdmin(admin.ModelAdmin):
    list_display = ['name', 'total_area', 'area_unit', 'map_zoom', 'updated_at']
    readonly_fields = ['boundary_area_acres', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        # Single row per farm
        return not PropertyMap.objects.exists()


@admin.register(Gate)
class GateAdmin(admin.ModelAdmin):
    list_display = ['name', 'type', 'state_display', 'lng', 'lat']
    list_filter = ['type', 'is_open']
    search_fields = ['name', 'notes']
    readonly_fields = ['created_at', 'updated_at']

    def state_display(self, obj):
        color = COLOR_GATE_OPEN if obj.is_open else COLOR_GATE_CLOSED
        label = 'Open' if obj.is_open else 'Closed'
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 8px; border-radius: 3px;">{}</span>',
            color, label
        )
    state_display.short_description = 'State'
