"""
suggestions.py — Fix suggestions for compliance violations

For one violation, try handing each call/float slot the violating trainee
holds (in the violation's period and the periods either side) to every other
trainee. The receiving trainee must be strictly eligible for that slot and
still below their tier target for the duty type. A candidate is kept when,
re-checked on a copy of the schedules:
  - the original violation (same rule, trainee, start date) is gone, and
  - the two affected trainees have no more violations than before.

Candidates are ranked by net change in violation count (most negative first).
"""

import copy
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .compliance import ComplianceChecker, slot_names
from .config import EngineSettings, targets_for
from .eligibility import EligibilityEvaluator
from .models import Period, RotationGrid, Schedule, TimeOff, Trainee, Violation, parse_slot_key, slot_key
from .schedule_config import DEFAULT_TIER_TARGETS, SLOT_WEEKENDS
from .validation import validate_inputs

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5


@dataclass
class Suggestion:
    duty_type: str          # "call" | "float"
    slot_key: str
    from_trainee: str
    to_trainee: str
    net_change: int

    @property
    def description(self) -> str:
        return f"Reassign {self.slot_key} {self.duty_type} from {self.from_trainee} to {self.to_trainee}"

    def __str__(self) -> str:
        return f"{self.description} (net {self.net_change:+d})"


def _held_slots(
    violation: Violation,
    call_schedule: Schedule,
    float_schedule: Schedule,
    n_periods: int,
) -> List[Tuple[str, str]]:
    """(duty_type, key) for slots the violating trainee holds near the violation."""
    calls, floats = slot_names(call_schedule), slot_names(float_schedule)
    held = []
    for number in (violation.period - 1, violation.period, violation.period + 1):
        if not 1 <= number <= n_periods:
            continue
        for weekend in SLOT_WEEKENDS:
            key = slot_key(number, weekend)
            if calls.get(key) == violation.trainee:
                held.append(("call", key))
            if floats.get(key) == violation.trainee:
                held.append(("float", key))
    return held


def _same_violation(a: Violation, b: Violation) -> bool:
    return a.rule == b.rule and a.trainee == b.trainee and a.start_date == b.start_date


def _can_take(ev: EligibilityEvaluator, duty_type: str, trainee: str, period_idx: int) -> bool:
    if duty_type == "call":
        return ev.is_eligible_for_call(trainee, period_idx)
    return bool(ev.is_eligible_for_float(trainee, period_idx))


def suggest_fixes(
    violation: Violation,
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    call_schedule: Schedule,
    float_schedule: Schedule,
    periods: Sequence[Period],
    time_off: Optional[Iterable[TimeOff]] = None,
    limit: int = MAX_SUGGESTIONS,
    call_targets: Optional[Dict[int, int]] = None,
    float_targets: Optional[Dict[int, int]] = None,
    settings: Optional[EngineSettings] = None,
) -> List[Suggestion]:
    """
    Up to `limit` reassignments that remove `violation` without adding new ones.

    Targets default to the program's tier targets.
    """
    if violation.trainee is None or violation.period is None:
        return []

    time_off = list(time_off or [])
    if call_targets is None:
        call_targets = targets_for(DEFAULT_TIER_TARGETS, "call")
    if float_targets is None:
        float_targets = targets_for(DEFAULT_TIER_TARGETS, "float")
    validate_inputs(
        roster, rotation_grid, periods,
        call_targets=call_targets,
        float_targets=float_targets,
        time_off=time_off,
        call_schedule=call_schedule,
        float_schedule=float_schedule,
    )
    by_name = {t.name: t for t in roster}
    baseline = ComplianceChecker(roster, rotation_grid, periods, time_off).check_all(call_schedule, float_schedule)
    ev = EligibilityEvaluator.for_roster(roster, rotation_grid, periods, settings, time_off)
    targets = {"call": call_targets, "float": float_targets}
    held = {
        "call": Counter(slot_names(call_schedule).values()),
        "float": Counter(slot_names(float_schedule).values()),
    }

    suggestions: List[Suggestion] = []
    for duty_type, key in _held_slots(violation, call_schedule, float_schedule, len(periods)):
        period_idx = parse_slot_key(key)[0] - 1
        for other in roster:
            if other.name == violation.trainee:
                continue
            if not _can_take(ev, duty_type, other.name, period_idx):
                continue
            if held[duty_type][other.name] >= targets[duty_type][other.tier]:
                continue
            pair = [by_name[violation.trainee], other]
            calls = copy.deepcopy(call_schedule)
            floats = copy.deepcopy(float_schedule)
            (calls if duty_type == "call" else floats)[key] = other.name

            after = ComplianceChecker(pair, rotation_grid, periods, time_off).check_all(calls, floats)
            before = [v for v in baseline if v.trainee in (violation.trainee, other.name)]
            if any(_same_violation(v, violation) for v in after):
                continue
            if len(after) > len(before):
                continue
            suggestions.append(Suggestion(
                duty_type=duty_type,
                slot_key=key,
                from_trainee=violation.trainee,
                to_trainee=other.name,
                net_change=len(after) - len(before),
            ))

    # stable: ties keep slot then roster order
    suggestions.sort(key=lambda s: s.net_change)
    logger.debug(f"{len(suggestions)} candidate fixes for {violation.rule} / {violation.trainee}")
    return suggestions[:limit]


def apply_suggestion(
    suggestion: Suggestion,
    call_schedule: Schedule,
    float_schedule: Schedule,
) -> Tuple[Schedule, Schedule]:
    """Return new schedules with the suggestion applied."""
    calls = copy.deepcopy(call_schedule)
    floats = copy.deepcopy(float_schedule)
    (calls if suggestion.duty_type == "call" else floats)[suggestion.slot_key] = suggestion.to_trainee
    return calls, floats
