"""
clinic_coverage.py — Clinic Coverage Optimizer

A trainee on Nights misses their weekly clinic. For each such (period, week)
a covering trainee is chosen.

  Entries      one per (period, week 1/2, Nights trainee with a clinic day)
               whose week window contains that clinic weekday
  Hard rules   coverer ≠ absent trainee
               coverer rotation not in cannot_cover
               junior tier excluded in periods 1..junior_exclusion_periods
               senior tier excluded from senior_exclusion_start onward
               coverer not on approved time off
               coverer not already covering another clinic that date
  Soft rules   same clinic weekday as the absent trainee   (w_same)
               covering in the week adjacent to another own coverage (w_b2b)

  cost = Σ (count − target)²  +  w_same · #same_day  +  w_b2b · #back_to_back

Search: restart 0 starts from the greedy baseline, later restarts from a
seeded random feasible assignment. Each restart proposes random single-entry
reassignments and keeps strict improvements. Best result overall wins, so
the result cost never exceeds the baseline cost.

Randomness comes only from random.Random(f"{seed}_restart_{n}").
"""

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .config import EngineSettings
from .eligibility import approved_time_off_periods
from .models import CoverageEntry, CoverageResult, Period, RotationGrid, TimeOff, Trainee
from .schedule_config import (
    BACK_TO_BACK_PENALTY,
    CANNOT_COVER_ROTATIONS,
    COVERAGE_ITERATIONS,
    COVERAGE_RESTARTS,
    COVERAGE_TARGET_PER_TRAINEE,
    JUNIOR_COVERAGE_EXCLUSION_PERIODS,
    SAME_CLINIC_DAY_PENALTY,
    SENIOR_COVERAGE_EXCLUSION_START,
    RotationCategory,
    classify_rotation,
)
from .validation import ScheduleInputError, grid_length, validate_inputs

logger = logging.getLogger(__name__)

Assignment = List[Optional[str]]     # entry index → coverer name


@dataclass
class CoverageConstraints:
    cannot_cover: Set[str] = field(default_factory=lambda: set(CANNOT_COVER_ROTATIONS))
    junior_exclusion_periods: int = JUNIOR_COVERAGE_EXCLUSION_PERIODS
    senior_exclusion_start: int = SENIOR_COVERAGE_EXCLUSION_START
    target_per_trainee: Union[int, Dict[int, int]] = COVERAGE_TARGET_PER_TRAINEE
    seed: Optional[int] = None
    iterations: int = COVERAGE_ITERATIONS
    restarts: int = COVERAGE_RESTARTS
    same_clinic_day_penalty: float = SAME_CLINIC_DAY_PENALTY
    back_to_back_penalty: float = BACK_TO_BACK_PENALTY

    def target_for(self, tier: int) -> int:
        if isinstance(self.target_per_trainee, dict):
            return self.target_per_trainee.get(tier, 0)
        return self.target_per_trainee


def _check_constraints(constraints: CoverageConstraints) -> None:
    errors = []
    if constraints.seed is None:
        errors.append("Clinic coverage optimizer requires an explicit seed")
    if constraints.iterations < 0:
        errors.append(f"iterations must be ≥ 0 (got {constraints.iterations})")
    if constraints.restarts < 1:
        errors.append(f"restarts must be ≥ 1 (got {constraints.restarts})")
    if errors:
        raise ScheduleInputError(errors)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

def clinic_date_in_week(period: Period, week: int, clinic_day: int) -> Optional[date]:
    """First date in the period's week window falling on clinic_day (1=Mon..5=Fri)."""
    first, last = period.week_window(week)
    d = first
    while d <= last:
        if d.isoweekday() == clinic_day:
            return d
        d += timedelta(days=1)
    return None


def build_entries(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    periods: Optional[Sequence[Period]] = None,
) -> List[CoverageEntry]:
    """
    One uncovered entry per missed clinic session, ordered by period, week,
    then roster order.
    """
    entries: List[CoverageEntry] = []
    for idx in range(grid_length(roster, rotation_grid)):
        period = periods[idx] if periods else None
        number = period.number if period else idx + 1
        for week in (1, 2):
            for t in roster:
                if t.clinic_day == 0:
                    continue
                if classify_rotation(rotation_grid[t.name][idx]) is not RotationCategory.NIGHTS:
                    continue
                clinic_date = None
                if period is not None:
                    clinic_date = clinic_date_in_week(period, week, t.clinic_day)
                    if clinic_date is None:
                        continue
                entries.append(CoverageEntry(
                    period=number,
                    week=week,
                    absent=t.name,
                    absent_clinic_day=t.clinic_day,
                    clinic_date=clinic_date,
                ))
    return entries


# ---------------------------------------------------------------------------
# Feasibility
# ---------------------------------------------------------------------------

def feasible_coverers(
    entry: CoverageEntry,
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    constraints: CoverageConstraints,
    time_off_idx: Dict[str, Set[int]],
    settings: EngineSettings,
) -> List[str]:
    idx = entry.period - 1
    out = []
    for t in roster:
        if t.name == entry.absent:
            continue
        if rotation_grid[t.name][idx] in constraints.cannot_cover:
            continue
        if t.tier == settings.junior_tier and entry.period <= constraints.junior_exclusion_periods:
            continue
        if t.tier == settings.senior_tier and entry.period >= constraints.senior_exclusion_start:
            continue
        if idx in time_off_idx.get(t.name, set()):
            continue
        out.append(t.name)
    return out


# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------

def _week_index(entry: CoverageEntry) -> int:
    return (entry.period - 1) * 2 + (entry.week - 1)


def _session(entry: CoverageEntry):
    """Calendar date of the missed clinic; (period, week, weekday) without a calendar."""
    if entry.clinic_date is not None:
        return entry.clinic_date
    return entry.period, entry.week, entry.absent_clinic_day


def _same_session(entries: Sequence[CoverageEntry]) -> List[List[int]]:
    """For each entry, indices of the other entries held on the same date."""
    by_session: Dict[object, List[int]] = {}
    for i, entry in enumerate(entries):
        by_session.setdefault(_session(entry), []).append(i)
    return [[j for j in by_session[_session(e)] if j != i] for i, e in enumerate(entries)]


def _flags(
    entries: Sequence[CoverageEntry],
    assignment: Assignment,
    clinic_days: Dict[str, int],
) -> Tuple[List[bool], List[bool]]:
    """Per-entry (same_clinic_day, back_to_back) flags for an assignment."""
    weeks_by_coverer: Dict[str, List[int]] = {}
    for entry, coverer in zip(entries, assignment):
        if coverer is not None:
            weeks_by_coverer.setdefault(coverer, []).append(_week_index(entry))

    same, b2b = [], []
    for i, (entry, coverer) in enumerate(zip(entries, assignment)):
        if coverer is None:
            same.append(False)
            b2b.append(False)
            continue
        own = clinic_days.get(coverer, 0)
        same.append(own != 0 and own == entry.absent_clinic_day)
        w = _week_index(entry)
        others = list(weeks_by_coverer[coverer])
        others.remove(w)
        b2b.append(any(abs(o - w) <= 1 for o in others))
    return same, b2b


def coverage_cost(
    entries: Sequence[CoverageEntry],
    assignment: Assignment,
    roster: Sequence[Trainee],
    constraints: CoverageConstraints,
) -> float:
    counts = _counts(roster, assignment)
    clinic_days = {t.name: t.clinic_day for t in roster}
    same, b2b = _flags(entries, assignment, clinic_days)

    balance = sum((counts[t.name] - constraints.target_for(t.tier)) ** 2 for t in roster)
    return (
        balance
        + constraints.same_clinic_day_penalty * sum(same)
        + constraints.back_to_back_penalty * sum(b2b)
    )


def _counts(roster: Sequence[Trainee], assignment: Assignment) -> Dict[str, int]:
    counts = {t.name: 0 for t in roster}
    for coverer in assignment:
        if coverer is not None:
            counts[coverer] += 1
    return counts


# ---------------------------------------------------------------------------
# Initial assignments
# ---------------------------------------------------------------------------

def baseline_assignment(
    entries: Sequence[CoverageEntry],
    candidates: Sequence[List[str]],
    roster: Sequence[Trainee],
) -> Assignment:
    """
    Deterministic single pass: each entry goes to the candidate with the
    lowest running count, then not sharing the clinic day, then not covering
    the adjacent week, then roster order. A candidate already covering
    another clinic on the same date is skipped; if none is left the entry
    stays uncovered.
    """
    clinic_days = {t.name: t.clinic_day for t in roster}
    counts = {t.name: 0 for t in roster}
    last_week: Dict[str, int] = {}
    booked: Dict[object, Set[str]] = {}
    assignment: Assignment = []

    for entry, options in zip(entries, candidates):
        taken = booked.setdefault(_session(entry), set())
        options = [name for name in options if name not in taken]
        if not options:
            assignment.append(None)
            continue
        w = _week_index(entry)

        def key(name: str) -> Tuple[int, int, int]:
            same = int(clinic_days[name] != 0 and clinic_days[name] == entry.absent_clinic_day)
            adjacent = int(name in last_week and w - last_week[name] <= 1)
            return counts[name], same, adjacent

        pick = min(options, key=key)
        counts[pick] += 1
        last_week[pick] = w
        taken.add(pick)
        assignment.append(pick)
    return assignment


def random_assignment(
    entries: Sequence[CoverageEntry],
    candidates: Sequence[List[str]],
    rng: random.Random,
) -> Assignment:
    booked: Dict[object, Set[str]] = {}
    assignment: Assignment = []
    for entry, options in zip(entries, candidates):
        taken = booked.setdefault(_session(entry), set())
        options = [name for name in options if name not in taken]
        pick = rng.choice(options) if options else None
        if pick is not None:
            taken.add(pick)
        assignment.append(pick)
    return assignment


# ---------------------------------------------------------------------------
# Local search
# ---------------------------------------------------------------------------

def local_search(
    entries: Sequence[CoverageEntry],
    candidates: Sequence[List[str]],
    start: Assignment,
    roster: Sequence[Trainee],
    constraints: CoverageConstraints,
    rng: random.Random,
) -> Tuple[Assignment, float]:
    """
    Random single-entry reassignments; a move is kept only if cost drops.
    Moves onto a trainee already covering that date are never proposed.
    """
    current = list(start)
    cost = coverage_cost(entries, current, roster, constraints)
    same_session = _same_session(entries)
    movable = [i for i, options in enumerate(candidates) if options]
    if not movable:
        return current, cost

    for _ in range(constraints.iterations):
        i = rng.choice(movable)
        taken = {current[j] for j in same_session[i]}
        options = [c for c in candidates[i] if c != current[i] and c not in taken]
        if not options:
            continue
        proposal = rng.choice(options)
        previous = current[i]
        current[i] = proposal
        new_cost = coverage_cost(entries, current, roster, constraints)
        if new_cost < cost:
            cost = new_cost
        else:
            current[i] = previous
    return current, cost


def _prepare(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    clinic_days: Optional[Dict[str, int]],
    constraints: CoverageConstraints,
    periods: Optional[Sequence[Period]],
    time_off: List[TimeOff],
    settings: EngineSettings,
) -> Tuple[List[Trainee], List[CoverageEntry], List[List[str]]]:
    """Validate, apply clinic day overrides, build entries and their candidates."""
    validate_inputs(roster, rotation_grid, periods, time_off=time_off)

    if clinic_days:
        errors = []
        unknown = sorted(set(clinic_days) - {t.name for t in roster})
        if unknown:
            errors.append(f"Clinic days given for unknown trainees {unknown}")
        bad = sorted(n for n, d in clinic_days.items() if not 0 <= d <= 5)
        if bad:
            errors.append(f"Clinic day outside 0-5 for {bad}")
        if errors:
            raise ScheduleInputError(errors)
        roster = [replace(t, clinic_day=clinic_days.get(t.name, t.clinic_day)) for t in roster]
    roster = list(roster)

    entries = build_entries(roster, rotation_grid, periods)
    time_off_idx = approved_time_off_periods(time_off)
    candidates = [
        feasible_coverers(e, roster, rotation_grid, constraints, time_off_idx, settings)
        for e in entries
    ]
    return roster, entries, candidates


def optimize(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    clinic_days: Optional[Dict[str, int]] = None,
    constraints: Optional[CoverageConstraints] = None,
    periods: Optional[Sequence[Period]] = None,
    time_off: Optional[Iterable[TimeOff]] = None,
    settings: Optional[EngineSettings] = None,
) -> CoverageResult:
    """
    Assign a coverer to every missed clinic session.

    `clinic_days` overrides Trainee.clinic_day per name. Entries with no
    feasible coverer keep coverer=None. Raises ScheduleInputError on
    malformed input or a missing seed.
    """
    constraints = constraints or CoverageConstraints()
    settings = settings or EngineSettings()
    _check_constraints(constraints)
    roster, entries, candidates = _prepare(
        roster, rotation_grid, clinic_days, constraints, periods, list(time_off or []), settings
    )

    baseline = baseline_assignment(entries, candidates, roster)
    best, best_cost = baseline, coverage_cost(entries, baseline, roster, constraints)
    logger.debug(f"Coverage baseline cost {best_cost:.2f} over {len(entries)} entries")

    for restart in range(constraints.restarts):
        rng = random.Random(f"{constraints.seed}_restart_{restart}")
        start = baseline if restart == 0 else random_assignment(entries, candidates, rng)
        found, cost = local_search(entries, candidates, start, roster, constraints, rng)
        logger.debug(f"Restart {restart}: cost {cost:.2f}")
        if cost < best_cost:
            best, best_cost = found, cost

    result = _materialize(entries, best, roster, rotation_grid, best_cost)
    logger.info(
        f"Clinic coverage: {len(entries)} entries, {len(result.uncovered)} uncovered, "
        f"cost {best_cost:.2f} (baseline restart included)"
    )
    return result


def _materialize(
    entries: Sequence[CoverageEntry],
    assignment: Assignment,
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    cost: float,
) -> CoverageResult:
    clinic_days = {t.name: t.clinic_day for t in roster}
    same, b2b = _flags(entries, assignment, clinic_days)
    out = []
    for i, (entry, coverer) in enumerate(zip(entries, assignment)):
        out.append(replace(
            entry,
            coverer=coverer,
            coverer_rotation=rotation_grid[coverer][entry.period - 1] if coverer else None,
            coverer_clinic_day=clinic_days[coverer] if coverer else None,
            relaxed_same_clinic_day=same[i],
            relaxed_back_to_back=b2b[i],
        ))
    return CoverageResult(entries=out, counts=_counts(roster, assignment), cost=cost)


def baseline_cost(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    constraints: Optional[CoverageConstraints] = None,
    periods: Optional[Sequence[Period]] = None,
    time_off: Optional[Iterable[TimeOff]] = None,
    settings: Optional[EngineSettings] = None,
    clinic_days: Optional[Dict[str, int]] = None,
) -> float:
    """Cost of the greedy single-pass assignment, without any search."""
    constraints = constraints or CoverageConstraints()
    settings = settings or EngineSettings()
    roster, entries, candidates = _prepare(
        roster, rotation_grid, clinic_days, constraints, periods, list(time_off or []), settings
    )
    return coverage_cost(entries, baseline_assignment(entries, candidates, roster), roster, constraints)
