"""
conflicts.py — Conflict Aggregator

Read-only audit that combines:
  - double bookings in manual day overrides (data integrity)
  - coverage gaps: a must-staff rotation with nobody on it in a period
  - duty-hour violations from the compliance checker

Day override keys may be (trainee, period, "YYYY-MM-DD") tuples or the
string form "Trainee#B<period>#YYYY-MM-DD".
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .compliance import check
from .models import ConflictReport, Period, RotationGrid, Schedule, TimeOff, Trainee
from .schedule_config import MUST_STAFF_ROTATIONS

logger = logging.getLogger(__name__)

OverrideKey = Union[Tuple[str, int, str], str]


def parse_override_key(key: OverrideKey) -> Optional[Tuple[str, int, str]]:
    """Normalize an override key to (trainee, period, date). None if unreadable."""
    if isinstance(key, tuple):
        if len(key) != 3:
            return None
        trainee, period, day = key
        return str(trainee), int(period), str(day)

    parts = str(key).split("#")
    if len(parts) < 3 or not parts[1].startswith("B"):
        return None
    try:
        period = int(parts[1][1:])
    except ValueError:
        return None
    return parts[0], period, parts[2]


def detect_double_bookings(day_overrides: Optional[Dict[OverrideKey, str]]) -> List[Dict[str, Any]]:
    """Two different override labels recorded for one trainee on one date."""
    seen: Dict[Tuple[str, str], str] = {}
    issues = []
    for key, rotation in (day_overrides or {}).items():
        parsed = parse_override_key(key)
        if parsed is None:
            logger.debug(f"Skipping unreadable override key {key!r}")
            continue
        trainee, period, day = parsed
        lookup = (trainee, day)
        if lookup in seen and seen[lookup] != rotation:
            issues.append({
                "type": "double_booking",
                "severity": "error",
                "trainee": trainee,
                "period": period,
                "date": day,
                "detail": f'{trainee} has conflicting overrides on {day}: "{seen[lookup]}" vs "{rotation}"',
            })
        seen[lookup] = rotation
    return issues


def detect_coverage_gaps(
    rotation_grid: RotationGrid,
    roster: Sequence[Trainee],
    periods: Sequence[Period],
    required: Sequence[str] = tuple(MUST_STAFF_ROTATIONS),
) -> List[Dict[str, Any]]:
    """Every (period, must-staff rotation) with no trainee assigned."""
    issues = []
    for idx, period in enumerate(periods):
        on_service = {rotation_grid[t.name][idx] for t in roster}
        for rotation in required:
            if rotation in on_service:
                continue
            issues.append({
                "type": "coverage_gap",
                "severity": "warning",
                "period": period.number,
                "rotation": rotation,
                "detail": (
                    f"Period {period.number} ({period.start} – {period.end}): "
                    f"No trainee assigned to {rotation}"
                ),
            })
    return issues


def detect(
    rotation_grid: RotationGrid,
    call_schedule: Schedule,
    float_schedule: Schedule,
    roster: Sequence[Trainee],
    periods: Sequence[Period],
    approved_time_off: Optional[Iterable[TimeOff]] = None,
    day_overrides: Optional[Dict[OverrideKey, str]] = None,
) -> ConflictReport:
    # check() validates the shared inputs
    violations = check(roster, rotation_grid, call_schedule, float_schedule, periods, approved_time_off)
    report = ConflictReport(
        double_bookings=detect_double_bookings(day_overrides),
        coverage_gaps=detect_coverage_gaps(rotation_grid, roster, periods),
        acgme_violations=violations,
    )
    logger.info(
        f"Conflicts: {len(report.double_bookings)} double bookings, "
        f"{len(report.coverage_gaps)} coverage gaps, {len(report.acgme_violations)} violations"
    )
    return report
