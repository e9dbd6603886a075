"""
assigner.py — Balanced Call / Float Duty Assigner

Greedy, target-driven allocator. Periods are folded in ascending order over
an AssignmentState accumulator (running counts + schedules so far):

  for idx in range(n_periods):
      state = assign_period(ctx, state, idx)

Per period:
  1. FLOAT pass  W1 then W2
       W2 fast path: a trainee on Nights ("preferred") and under target
       W1: Nights trainees held back while anyone else qualifies
  2. CALL pass   W1 then W2, each from a freshly recomputed candidate set

Candidate selection: lowest running count, ties by roster order.

Relaxation ladder (per slot):
  (a) strict eligibility + under target                → rule "strict"
  (b) relaxed eligibility (history rules dropped)
      + under target                                   → relaxed=True
  (c) nobody                                           → slot left MISSING
The target ceiling is never relaxed.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .config import EngineSettings
from .eligibility import PREFERRED, EligibilityEvaluator
from .models import (
    AssignmentResult,
    DutySlot,
    Period,
    RotationGrid,
    TimeOff,
    Trainee,
    Violation,
    slot_key,
)
from .schedule_config import SLOT_WEEKENDS, DutyType
from .validation import grid_length, validate_inputs

logger = logging.getLogger(__name__)

RULE_STRICT = "strict"
RULE_PREFERRED = "preferred"
RULE_RELAXED = "relaxed"


# ---------------------------------------------------------------------------
# Fold context and accumulator
# ---------------------------------------------------------------------------

@dataclass
class AssignmentContext:
    """Read-only inputs shared by every period step."""
    roster: List[Trainee]
    evaluator: EligibilityEvaluator
    call_targets: Dict[int, int]
    float_targets: Dict[int, int]
    periods: Optional[Sequence[Period]] = None

    def __post_init__(self):
        self._tiers = {t.name: t.tier for t in self.roster}

    def target(self, name: str, duty_type: DutyType) -> int:
        targets = self.call_targets if duty_type is DutyType.CALL else self.float_targets
        return targets.get(self._tiers[name], 0)

    def period_number(self, idx: int) -> int:
        if self.periods:
            return self.periods[idx].number
        return idx + 1


@dataclass
class AssignmentState:
    """Running counts and schedules after the periods folded so far."""
    call_schedule: Dict[str, DutySlot] = field(default_factory=dict)
    float_schedule: Dict[str, DutySlot] = field(default_factory=dict)
    call_counts: Dict[str, int] = field(default_factory=dict)
    float_counts: Dict[str, int] = field(default_factory=dict)
    violations: List[Violation] = field(default_factory=list)

    @classmethod
    def initial(cls, roster: Iterable[Trainee]) -> "AssignmentState":
        names = [t.name for t in roster]
        return cls(
            call_counts={n: 0 for n in names},
            float_counts={n: 0 for n in names},
        )

    def copy(self) -> "AssignmentState":
        return AssignmentState(
            call_schedule=dict(self.call_schedule),
            float_schedule=dict(self.float_schedule),
            call_counts=dict(self.call_counts),
            float_counts=dict(self.float_counts),
            violations=list(self.violations),
        )

    def counts(self, duty_type: DutyType) -> Dict[str, int]:
        return self.call_counts if duty_type is DutyType.CALL else self.float_counts

    def schedule(self, duty_type: DutyType) -> Dict[str, DutySlot]:
        return self.call_schedule if duty_type is DutyType.CALL else self.float_schedule

    def to_result(self) -> AssignmentResult:
        return AssignmentResult(
            call_schedule=dict(self.call_schedule),
            float_schedule=dict(self.float_schedule),
            call_counts=dict(self.call_counts),
            float_counts=dict(self.float_counts),
            violations=list(self.violations),
        )


# ---------------------------------------------------------------------------
# Selection helpers
# ---------------------------------------------------------------------------

def _under_target(ctx: AssignmentContext, state: AssignmentState, name: str, duty_type: DutyType) -> bool:
    return state.counts(duty_type)[name] < ctx.target(name, duty_type)


def _lowest_count(candidates: List[str], counts: Dict[str, int]) -> Optional[str]:
    """Lowest running count; min() keeps the first of equals, i.e. roster order."""
    if not candidates:
        return None
    return min(candidates, key=lambda n: counts[n])


def _candidates(
    ctx: AssignmentContext,
    state: AssignmentState,
    duty_type: DutyType,
    predicate: Callable[[str], bool],
) -> List[str]:
    return [
        t.name for t in ctx.roster
        if predicate(t.name) and _under_target(ctx, state, t.name, duty_type)
    ]


def _record(
    ctx: AssignmentContext,
    state: AssignmentState,
    idx: int,
    weekend: int,
    duty_type: DutyType,
    name: Optional[str],
    rule: Optional[str],
) -> DutySlot:
    """Write one slot into the state, bump the count, log any violation."""
    number = ctx.period_number(idx)
    slot = DutySlot(
        period=number,
        weekend=weekend,
        duty_type=duty_type,
        trainee=name,
        relaxed=(rule == RULE_RELAXED),
        rule=rule,
    )
    state.schedule(duty_type)[slot.key] = slot

    if name is None:
        missing_rule = "missing_call" if duty_type is DutyType.CALL else "missing_float"
        state.violations.append(Violation(
            trainee=None,
            period=number,
            rule=missing_rule,
            detail=f"No eligible trainee under target for {duty_type.value} {slot.key}",
            severity="error" if duty_type is DutyType.CALL else "warn",
            duty_type=duty_type.value,
            weekend=weekend,
        ))
        logger.debug(f"{slot.key} {duty_type.value}: MISSING")
        return slot

    state.counts(duty_type)[name] += 1
    if slot.relaxed:
        prereq = "a completed ICU period" if duty_type is DutyType.CALL else "a completed floor period"
        state.violations.append(Violation(
            trainee=name,
            period=number,
            rule="relaxed_fallback",
            detail=f"{name} assigned {duty_type.value} {slot.key} without {prereq}",
            severity="warn",
            duty_type=duty_type.value,
            weekend=weekend,
        ))
    logger.debug(f"{slot.key} {duty_type.value} → {name} ({rule})")
    return slot


# ---------------------------------------------------------------------------
# FLOAT pass
# ---------------------------------------------------------------------------

def _pick_float(ctx: AssignmentContext, state: AssignmentState, idx: int, weekend: int):
    ev = ctx.evaluator
    counts = state.float_counts

    def preferred(n: str) -> bool:
        return ev.is_eligible_for_float(n, idx) == PREFERRED

    strict = _candidates(ctx, state, DutyType.FLOAT, lambda n: bool(ev.is_eligible_for_float(n, idx)))

    if weekend == 2:
        nights = [n for n in strict if preferred(n)]
        if nights:
            return nights[0], RULE_PREFERRED
        pick = _lowest_count(strict, counts)
        if pick:
            return pick, RULE_STRICT
        relaxed = _candidates(ctx, state, DutyType.FLOAT, lambda n: ev.is_eligible_for_float_relaxed(n, idx))
        pick = _lowest_count(relaxed, counts)
        return (pick, RULE_RELAXED) if pick else (None, None)

    # Weekend 1: Nights trainees are the last resort, their float falls on W2
    pick = _lowest_count([n for n in strict if not preferred(n)], counts)
    if pick:
        return pick, RULE_STRICT
    relaxed = _candidates(
        ctx, state, DutyType.FLOAT,
        lambda n: ev.is_eligible_for_float_relaxed(n, idx) and not preferred(n),
    )
    pick = _lowest_count(relaxed, counts)
    if pick:
        return pick, RULE_RELAXED
    pick = _lowest_count(strict, counts)
    return (pick, RULE_STRICT) if pick else (None, None)


# ---------------------------------------------------------------------------
# CALL pass
# ---------------------------------------------------------------------------

def _pick_call(ctx: AssignmentContext, state: AssignmentState, idx: int):
    ev = ctx.evaluator
    counts = state.call_counts

    pick = _lowest_count(_candidates(ctx, state, DutyType.CALL, lambda n: ev.is_eligible_for_call(n, idx)), counts)
    if pick:
        return pick, RULE_STRICT
    pick = _lowest_count(
        _candidates(ctx, state, DutyType.CALL, lambda n: ev.is_eligible_for_call_relaxed(n, idx)),
        counts,
    )
    return (pick, RULE_RELAXED) if pick else (None, None)


# ---------------------------------------------------------------------------
# Fold step / full run
# ---------------------------------------------------------------------------

def assign_period(ctx: AssignmentContext, state: AssignmentState, idx: int) -> AssignmentState:
    """
    Fill the two float and two call slots of period `idx` (0-based).

    Returns a new state; the incoming one is left untouched.
    """
    state = state.copy()

    for weekend in SLOT_WEEKENDS:
        name, rule = _pick_float(ctx, state, idx, weekend)
        _record(ctx, state, idx, weekend, DutyType.FLOAT, name, rule)

    for weekend in SLOT_WEEKENDS:
        name, rule = _pick_call(ctx, state, idx)
        _record(ctx, state, idx, weekend, DutyType.CALL, name, rule)

    return state


def assign(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    call_targets: Dict[int, int],
    float_targets: Dict[int, int],
    periods: Optional[Sequence[Period]] = None,
    time_off: Optional[Sequence[TimeOff]] = None,
    settings: Optional[EngineSettings] = None,
) -> AssignmentResult:
    """
    Assign call and float slots for every period.

    Never raises on an infeasible roster: unfillable slots come back as
    DutySlot(trainee=None) plus a missing_call / missing_float violation.
    Raises ScheduleInputError on malformed input.
    """
    validate_inputs(roster, rotation_grid, periods, call_targets, float_targets, time_off)

    roster = list(roster)
    evaluator = EligibilityEvaluator.for_roster(roster, rotation_grid, periods, settings, time_off)
    ctx = AssignmentContext(roster, evaluator, call_targets, float_targets, periods)

    state = AssignmentState.initial(roster)
    for idx in range(grid_length(roster, rotation_grid)):
        state = assign_period(ctx, state, idx)

    result = state.to_result()
    logger.info(
        f"Assigned {len(result.call_schedule)} call / {len(result.float_schedule)} float slots: "
        f"{len(result.relaxed_slots)} relaxed, {len(result.missing_slots)} missing"
    )
    return result


def slot_for(result: AssignmentResult, duty_type: DutyType, period: int, weekend: int) -> DutySlot:
    """Convenience lookup by 1-based period number."""
    schedule = result.call_schedule if duty_type is DutyType.CALL else result.float_schedule
    return schedule[slot_key(period, weekend)]
