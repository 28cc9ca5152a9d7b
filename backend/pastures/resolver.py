"""
Derived pasture state.

Joins pastures with their rotation, rest and observation ledgers and works
out what each pasture is doing right now. Nothing here touches the
database; callers pass in plain sequences of model instances.
"""
from dataclasses import dataclass
from datetime import date, datetime

STATUS_OFF_LIMITS = 'Off Limits'
STATUS_GRAZING = 'Currently Grazing'
STATUS_RESTING = 'Resting'
STATUS_AVAILABLE = 'Available'

@dataclass
class PastureWithDetails:
    pasture: object
    current_rotation: object = None
    rest_period: object = None
    days_resting: int = None
    last_observation: object = None
    status: str = STATUS_AVAILABLE
    needs_attention: bool = False

    @property
    def id(self):
        return self.pasture.pk

    @property
    def name(self):
        return self.pasture.name


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def _group_by_pasture(rows):
    grouped = {}
    for row in rows:
        grouped.setdefault(row.pasture_id, []).append(row)
    return grouped


def pick_current(rows, flag):
    """
    The open ledger entry among rows, or None. If more than one row carries
    the flag, the lowest id wins so repeated reads agree.
    """
    open_rows = [row for row in rows if getattr(row, flag)]
    if not open_rows:
        return None
    return min(open_rows, key=lambda row: row.pk)


def latest_observation(observations):
    if not observations:
        return None
    return max(observations, key=lambda obs: (_as_date(obs.observation_date), obs.pk))


def days_between(start, today):
    """Whole days elapsed since start, floored; a start in the future counts as 0"""
    return max(0, (_as_date(today) - _as_date(start)).days)


def display_status(pasture, current_rotation, rest_period):
    """Off Limits beats Currently Grazing, which beats Resting, which beats Available"""
    if pasture.typed_custom_fields.is_off_limits:
        return STATUS_OFF_LIMITS
    if current_rotation is not None:
        return STATUS_GRAZING
    if rest_period is not None:
        return STATUS_RESTING
    return STATUS_AVAILABLE


def resolve_pasture(pasture, rotations, rest_periods, observations, today=None):
    """Build the PastureWithDetails for one pasture from its own ledger rows"""
    today = today or date.today()
    current_rotation = pick_current(rotations, 'is_current')
    rest_period = pick_current(rest_periods, 'is_active')

    days_resting = None
    if rest_period is not None:
        days_resting = days_between(rest_period.start_date, today)

    return PastureWithDetails(
        pasture=pasture,
        current_rotation=current_rotation,
        rest_period=rest_period,
        days_resting=days_resting,
        last_observation=latest_observation(observations),
        status=display_status(pasture, current_rotation, rest_period),
        needs_attention=pasture.needs_attention,
    )


def resolve_pastures(pastures, rotations, rest_periods, observations, today=None):
    """One PastureWithDetails per pasture, in the order the pastures were given"""
    rotations_by_pasture = _group_by_pasture(rotations)
    rest_by_pasture = _group_by_pasture(rest_periods)
    observations_by_pasture = _group_by_pasture(observations)

    return [
        resolve_pasture(
            pasture,
            rotations_by_pasture.get(pasture.pk, []),
            rest_by_pasture.get(pasture.pk, []),
            observations_by_pasture.get(pasture.pk, []),
            today=today,
        )
        for pasture in pastures
    ]


def duplicate_open_rows(rows, flag):
    """Open rows other than the one pick_current would show"""
    kept = pick_current(rows, flag)
    return [row for row in rows if getattr(row, flag) and row is not kept]
