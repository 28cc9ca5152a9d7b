import logging

from django.db import DatabaseError
from django.utils import timezone

from .exceptions import PersistenceError
from .models import Pasture, GrazingRotation, PastureRestPeriod, PastureObservation
from .resolver import resolve_pastures

logger = logging.getLogger(__name__)


class PastureRepository:
    """
    Read side of pasture management.

    Loads every pasture with its ledgers once and keeps the resolved view
    until refresh() is called. Handlers create one per request and call
    refresh() after a write rather than patching the cached rows.
    """

    def __init__(self, today=None):
        self._today = today
        self._snapshot = None

    @property
    def today(self):
        return self._today or timezone.localdate()

    def refresh(self):
        self._snapshot = None

    def _load(self):
        try:
            pastures = list(Pasture.objects.order_by('name', 'id'))
            rotations = list(GrazingRotation.objects.all())
            rest_periods = list(PastureRestPeriod.objects.all())
            observations = list(PastureObservation.objects.all())
        except DatabaseError as e:
            logger.error(f"Error fetching pasture data: {e}")
            raise PersistenceError(f"Failed to fetch pasture data: {e}") from e

        return {
            'pastures': resolve_pastures(pastures, rotations, rest_periods, observations, today=self.today),
            'rotations': rotations,
            'rest_periods': rest_periods,
            'observations': observations,
        }

    @property
    def snapshot(self):
        if self._snapshot is None:
            self._snapshot = self._load()
        return self._snapshot

    def all(self):
        return self.snapshot['pastures']

    def get(self, pasture_id):
        for details in self.all():
            if details.id == pasture_id:
                return details
        return None

    def current_rotations(self):
        return [r for r in self.snapshot['rotations'] if r.is_current]

    def active_rest_periods(self):
        return [rp for rp in self.snapshot['rest_periods'] if rp.is_active]

    def needing_attention(self):
        return [details for details in self.all() if details.needs_attention]

    def dashboard(self):
        pastures = self.all()
        return {
            'total_pastures': len(pastures),
            'current_rotations': len(self.current_rotations()),
            'active_rest_periods': len(self.active_rest_periods()),
            'needs_attention': len(self.needing_attention()),
            'pastures': pastures,
        }
