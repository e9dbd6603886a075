"""
validation.py — Structural input checks for the engine entry points

Each public entry point (assign, optimize, check, detect, run_engine) calls
validate_inputs() once. The algorithms themselves assume validated input.

Infeasible-but-well-formed input is NOT an error here: empty slots, relaxed
assignments and uncovered clinic weeks are reported as data downstream.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import Period, RotationGrid, TimeOff, Trainee, parse_slot_key, slot_trainee
from .schedule_config import ROTATION_CATEGORIES

logger = logging.getLogger(__name__)


class ScheduleInputError(ValueError):
    """Malformed engine input. `errors` lists every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        summary = "; ".join(self.errors[:5])
        more = f" (+{len(self.errors) - 5} more)" if len(self.errors) > 5 else ""
        super().__init__(f"Invalid schedule input: {summary}{more}")


def check_roster(roster: Sequence[Trainee]) -> List[str]:
    errors = []
    names = [t.name for t in roster]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        errors.append(f"Duplicate trainee names in roster: {dupes}")
    for t in roster:
        if not t.name:
            errors.append("Roster entry with empty name")
        if not 0 <= t.clinic_day <= 5:
            errors.append(f"{t.name}: clinic day {t.clinic_day} outside 0-5")
    return errors


def check_rotation_grid(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    n_periods: Optional[int] = None,
) -> List[str]:
    errors = []
    for t in roster:
        row = rotation_grid.get(t.name)
        if row is None:
            errors.append(f"{t.name}: no row in rotation grid")
            continue
        if n_periods is not None and len(row) != n_periods:
            errors.append(f"{t.name}: rotation grid has {len(row)} periods, expected {n_periods}")
        unknown = sorted({label for label in row if label not in ROTATION_CATEGORIES})
        if unknown:
            errors.append(f"{t.name}: unknown rotation labels {unknown}")
    if n_periods is None:
        lengths = {len(rotation_grid[t.name]) for t in roster if t.name in rotation_grid}
        if len(lengths) > 1:
            errors.append(f"Rotation grid rows have differing lengths: {sorted(lengths)}")
    return errors


def check_targets(
    roster: Sequence[Trainee],
    targets: Dict[int, int],
    label: str,
) -> List[str]:
    errors = []
    tiers = {t.tier for t in roster}
    missing = sorted(tiers - set(targets))
    if missing:
        errors.append(f"{label} targets missing for tiers {missing}")
    for tier, value in targets.items():
        if value < 0:
            errors.append(f"{label} target for tier {tier} is negative ({value})")
    return errors


def check_periods(periods: Sequence[Period], n_periods: Optional[int] = None) -> List[str]:
    errors = []
    if n_periods is not None and len(periods) != n_periods:
        errors.append(f"Period calendar has {len(periods)} periods, rotation grid has {n_periods}")
    for i, p in enumerate(periods):
        if p.number != i + 1:
            errors.append(f"Period at position {i} is numbered {p.number}, expected {i + 1}")
        if p.end < p.start:
            errors.append(f"Period {p.number}: end {p.end} before start {p.start}")
        if i > 0 and (p.start - periods[i - 1].end).days != 1:
            errors.append(
                f"Period {p.number} starts {p.start}, not the day after period "
                f"{periods[i - 1].number} ends ({periods[i - 1].end})"
            )
    return errors


def check_time_off(
    roster: Sequence[Trainee],
    time_off: Iterable[TimeOff],
    n_periods: Optional[int] = None,
) -> List[str]:
    errors = []
    names = {t.name for t in roster}
    for req in time_off:
        if req.trainee not in names:
            errors.append(f"Time off references unknown trainee {req.trainee!r}")
        if req.start_period > req.end_period:
            errors.append(f"Time off for {req.trainee}: start period {req.start_period} after end {req.end_period}")
        if req.start_period < 1 or (n_periods is not None and req.end_period > n_periods):
            errors.append(
                f"Time off for {req.trainee}: periods {req.start_period}-{req.end_period} out of range"
            )
    return errors


def check_schedule(
    roster: Sequence[Trainee],
    schedule: Dict[str, Any],
    label: str,
    n_periods: Optional[int] = None,
) -> List[str]:
    """Slot keys must parse and fall inside the calendar; holders must be on the roster."""
    errors = []
    names = {t.name for t in roster}
    for key, value in schedule.items():
        try:
            period, _weekend = parse_slot_key(key)
        except ValueError as e:
            errors.append(f"{label} schedule: {e}")
            continue
        if period < 1 or (n_periods is not None and period > n_periods):
            errors.append(f"{label} schedule: slot {key} outside periods 1-{n_periods}")
        holder = slot_trainee(value)
        if holder is not None and holder not in names:
            errors.append(f"{label} schedule: {key} held by unknown trainee {holder!r}")
    return errors


def validate_inputs(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    periods: Optional[Sequence[Period]] = None,
    call_targets: Optional[Dict[int, int]] = None,
    float_targets: Optional[Dict[int, int]] = None,
    time_off: Optional[Iterable[TimeOff]] = None,
    call_schedule: Optional[Dict[str, Any]] = None,
    float_schedule: Optional[Dict[str, Any]] = None,
) -> None:
    """Raise ScheduleInputError listing every structural problem found."""
    n_periods = len(periods) if periods is not None else None

    errors = check_roster(roster)
    errors += check_rotation_grid(roster, rotation_grid, n_periods)
    if periods is not None:
        errors += check_periods(periods)
    if call_targets is not None:
        errors += check_targets(roster, call_targets, "Call")
    if float_targets is not None:
        errors += check_targets(roster, float_targets, "Float")
    if time_off is not None:
        errors += check_time_off(roster, time_off, n_periods)
    if call_schedule is not None:
        errors += check_schedule(roster, call_schedule, "Call", n_periods)
    if float_schedule is not None:
        errors += check_schedule(roster, float_schedule, "Float", n_periods)

    if errors:
        logger.debug(f"Input validation failed with {len(errors)} error(s)")
        raise ScheduleInputError(errors)


def grid_length(roster: Sequence[Trainee], rotation_grid: RotationGrid) -> int:
    """Number of periods in a validated grid (0 for an empty roster)."""
    for t in roster:
        return len(rotation_grid[t.name])
    return 0
