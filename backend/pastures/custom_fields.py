"""
Typed view over Pasture.custom_fields.

The stored value is an open JSON object. The keys the application actually
uses (statuses and grazing animals) get typed attributes; anything else is
kept untouched in ``extra`` so saving never drops unknown keys.
"""
from dataclasses import dataclass, field

STATUSES_KEY = 'statuses'
GRAZING_ANIMALS_KEY = 'grazingAnimals'
# Misspelled key written by an older version of the admin screen
LEGACY_GRAZING_ANIMALS_KEY = 'grazingAnginals'

STATUS_AVAILABLE = 'Available'
STATUS_RESTING = 'Resting'
STATUS_GRAZING = 'Grazing'
STATUS_NEEDS_MAINTENANCE = 'Needs Maintenance'
STATUS_FALLOW = 'Fallow Season'
STATUS_OFF_LIMITS = 'Off Limits'

DEFAULT_STATUS_OPTIONS = [
    STATUS_AVAILABLE,
    STATUS_RESTING,
    STATUS_GRAZING,
    STATUS_NEEDS_MAINTENANCE,
    STATUS_FALLOW,
    STATUS_OFF_LIMITS,
]


def read_string_list(data, key):
    """Return data[key] if it is a list of strings, else an empty list"""
    if not isinstance(data, dict):
        return []
    value = data.get(key)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    return []


@dataclass
class CustomFields:
    statuses: list = field(default_factory=list)
    grazing_animals: list = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            return cls()

        grazing_animals = read_string_list(data, GRAZING_ANIMALS_KEY)
        if not grazing_animals:
            grazing_animals = read_string_list(data, LEGACY_GRAZING_ANIMALS_KEY)

        known = {STATUSES_KEY, GRAZING_ANIMALS_KEY, LEGACY_GRAZING_ANIMALS_KEY}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(
            statuses=read_string_list(data, STATUSES_KEY),
            grazing_animals=grazing_animals,
            extra=extra,
        )

    def to_json(self):
        data = dict(self.extra)
        data[STATUSES_KEY] = list(self.statuses)
        data[GRAZING_ANIMALS_KEY] = list(self.grazing_animals)
        return data

    @property
    def is_off_limits(self):
        return STATUS_OFF_LIMITS in self.statuses

    @property
    def needs_maintenance(self):
        return STATUS_NEEDS_MAINTENANCE in self.statuses


def merge_custom_fields(existing, statuses=None, grazing_animals=None, extra=None):
    """
    Read-merge-write helper: start from the stored map, overwrite only the
    keys that were supplied and return the new JSON object.
    """
    fields = CustomFields.from_json(existing)
    if statuses is not None:
        fields.statuses = list(statuses)
    if grazing_animals is not None:
        fields.grazing_animals = list(grazing_animals)
    if extra:
        fields.extra.update(extra)
    return fields.to_json()
