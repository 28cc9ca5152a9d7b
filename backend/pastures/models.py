from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q

from .custom_fields import CustomFields
from .geometry import shape_area_acres, parse_shape, ShapeDataError

AREA_UNIT_CHOICES = [
    ('acres', 'Acres'),
    ('sq_ft', 'Square Feet'),
    ('sq_meters', 'Square Meters'),
]

QUALITY_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]

# Dropdown suggestions; the fields themselves are free text
FORAGE_TYPES = [
    'Mixed Grass',
    'Clover',
    'Browse',
    'Mixed Grass and Clover',
    'Alfalfa',
    'Timothy',
    'Orchardgrass',
    'Legume Mix',
    'Other',
]

FENCING_TYPES = [
    'Electric',
    'Woven Wire',
    'T-Post',
    'High Tensile',
    'Combination',
    'Other',
]

ANIMAL_TYPES = [
    'Goats',
    'Cows',
    'Chickens',
    'Mixed',
    'Other',
]

RECOVERY_ACTIONS = [
    'Mowed',
    'Fertilized',
    'Reseeded',
    'Harrowed',
    'Dragged',
    'Limed',
    'Weed Treatment',
    'Irrigation',
    'Other',
]


class Pasture(models.Model):
    """A named grazing area with an optional drawn boundary"""

    FENCING_CONDITION_CHOICES = [
        ('Excellent', 'Excellent'),
        ('Good', 'Good'),
        ('Fair', 'Fair'),
        ('Poor', 'Poor'),
        ('Needs Repair', 'Needs Repair'),
    ]

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    area_size = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        blank=True,
        null=True,
        help_text="Manually entered size, independent of the drawn boundary"
    )
    area_unit = models.CharField(max_length=10, choices=AREA_UNIT_CHOICES, default='acres')
    shape_data = models.JSONField(
        blank=True,
        null=True,
        help_text="{'type': 'polygon', 'coordinates': [[lng, lat], ...]} or {'type': 'svg', 'svg_path': ...}"
    )
    quality_rating = models.PositiveSmallIntegerField(blank=True, null=True, validators=QUALITY_VALIDATORS)
    forage_type = models.CharField(max_length=100, blank=True, null=True)
    water_source = models.BooleanField(default=False)
    shade_available = models.BooleanField(default=False)
    fencing_type = models.CharField(max_length=100, blank=True, null=True)
    fencing_condition = models.CharField(
        max_length=20,
        choices=FENCING_CONDITION_CHOICES,
        blank=True,
        null=True
    )
    notes = models.TextField(blank=True, null=True)
    custom_fields = models.JSONField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        try:
            parse_shape(self.shape_data)
        except ShapeDataError as e:
            raise ValidationError({'shape_data': str(e)})

    @property
    def has_geometry(self):
        return self.shape_data is not None

    @property
    def computed_area_acres(self):
        """Acreage of the drawn polygon, None when undrawn or under 3 vertices"""
        return shape_area_acres(self.shape_data)

    @property
    def typed_custom_fields(self):
        return CustomFields.from_json(self.custom_fields)

    @property
    def needs_attention(self):
        return self.quality_rating is not None and self.quality_rating < 3


class GrazingRotation(models.Model):
    """A period during which animals graze one pasture"""

    GRAZING_PRESSURE_CHOICES = [
        ('Light', 'Light'),
        ('Moderate', 'Moderate'),
        ('Heavy', 'Heavy'),
        ('Intensive', 'Intensive'),
    ]

    pasture = models.ForeignKey(Pasture, on_delete=models.CASCADE, related_name='rotations')
    start_date = models.DateField()
    end_date = models.DateField(blank=True, null=True)
    is_current = models.BooleanField(default=False)
    animal_type = models.CharField(max_length=100)
    animal_count = models.PositiveIntegerField(blank=True, null=True)
    animal_ids = models.JSONField(default=list, blank=True, help_text="IDs of the animals in this rotation")
    grazing_pressure = models.CharField(
        max_length=20,
        choices=GRAZING_PRESSURE_CHOICES,
        blank=True,
        null=True
    )
    pasture_quality_start = models.PositiveSmallIntegerField(blank=True, null=True, validators=QUALITY_VALIDATORS)
    pasture_quality_end = models.PositiveSmallIntegerField(blank=True, null=True, validators=QUALITY_VALIDATORS)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['pasture'],
                condition=Q(is_current=True),
                name='unique_current_rotation_per_pasture',
            ),
        ]
        indexes = [
            models.Index(fields=['pasture', 'start_date']),
        ]

    def __str__(self):
        return f"{self.animal_type} on {self.pasture.name} from {self.start_date}"

    @property
    def is_ongoing(self):
        return self.end_date is None


class PastureRestPeriod(models.Model):
    """A period during which a pasture is deliberately left ungrazed"""

    pasture = models.ForeignKey(Pasture, on_delete=models.CASCADE, related_name='rest_periods')
    start_date = models.DateField()
    planned_end_date = models.DateField(blank=True, null=True)
    actual_end_date = models.DateField(blank=True, null=True)
    reason = models.CharField(max_length=255, blank=True, null=True)
    recovery_actions = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['pasture'],
                condition=Q(is_active=True),
                name='unique_active_rest_period_per_pasture',
            ),
        ]

    def __str__(self):
        return f"Rest for {self.pasture.name} from {self.start_date}"


class PastureObservation(models.Model):
    """Append-only field observation of a pasture"""

    MOISTURE_LEVEL_CHOICES = [
        ('Very Dry', 'Very Dry'),
        ('Dry', 'Dry'),
        ('Moderate', 'Moderate'),
        ('Moist', 'Moist'),
        ('Wet', 'Wet'),
        ('Very Wet', 'Very Wet'),
    ]

    WEED_PRESSURE_CHOICES = [
        ('None', 'None'),
        ('Low', 'Low'),
        ('Moderate', 'Moderate'),
        ('High', 'High'),
        ('Severe', 'Severe'),
    ]

    pasture = models.ForeignKey(Pasture, on_delete=models.CASCADE, related_name='observations')
    observation_date = models.DateField()
    quality_rating = models.PositiveSmallIntegerField(blank=True, null=True, validators=QUALITY_VALIDATORS)
    forage_height = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        blank=True,
        null=True,
        help_text="Forage height in inches"
    )
    moisture_level = models.CharField(max_length=20, choices=MOISTURE_LEVEL_CHOICES, blank=True, null=True)
    weed_pressure = models.CharField(max_length=20, choices=WEED_PRESSURE_CHOICES, blank=True, null=True)
    bare_spots_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        blank=True,
        null=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    needs_reseeding = models.BooleanField(default=False)
    needs_mowing = models.BooleanField(default=False)
    needs_fertilizing = models.BooleanField(default=False)
    photos = models.JSONField(default=list, blank=True, help_text="Photo URLs")
    notes = models.TextField(blank=True, null=True)
    observed_by = models.CharField(max_length=100, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-observation_date', '-id']

    def __str__(self):
        return f"{self.pasture.name} observed {self.observation_date}"


class PropertyMap(models.Model):
    """Farm-wide map settings; the table holds zero or one row"""

    name = models.CharField(max_length=200, default='The Bold Farm')
    total_area = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    area_unit = models.CharField(max_length=10, choices=AREA_UNIT_CHOICES, default='acres')
    boundary_data = models.JSONField(blank=True, null=True)
    map_center = models.JSONField(blank=True, null=True, help_text="[lng, lat]")
    map_zoom = models.DecimalField(max_digits=3, decimal_places=1, blank=True, null=True)
    map_image_url = models.URLField(max_length=500, blank=True, null=True)
    map_svg = models.TextField(blank=True, null=True)
    map_scale = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Property Map'

    def __str__(self):
        return self.name

    @property
    def boundary_area_acres(self):
        return shape_area_acres(self.boundary_data)


class Gate(models.Model):
    TYPE_CHOICES = [
        ('permanent', 'Permanent'),
        ('temporary', 'Temporary'),
    ]

    name = models.CharField(max_length=100)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='permanent')
    lng = models.DecimalField(max_digits=10, decimal_places=6)
    lat = models.DecimalField(max_digits=10, decimal_places=6)
    is_open = models.BooleanField(default=False)
    connected_pasture_ids = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        state = 'open' if self.is_open else 'closed'
        return f"{self.name} ({state})"
