"""
compliance.py — Duty-Hour Compliance Checker

Builds a day-by-day duty timeline per trainee (rotation shift + call/float
overlays) and evaluates it against program and ACGME rules.

Program rules:
  time_off_duty                 call/float in an approved time-off period
                                (one violation per trainee × period)
  nights_adjacent_call          call while on Nights, or W2 call right before
                                a Nights period
  same_weekend_call_and_float   call and float on the same duty weekend
  back_to_back_weekends         duty on two consecutive weekends
  ineligible_duty               check_swap only: a swapped-in holder fails
                                call/float eligibility

ACGME rules (timeline):
  80hr_weekly_avg        4-week rolling average of Monday-based weeks > 80h
  24plus4_max_duty       more than 24h of duty on one day
  8hr_between_shifts     under 8h between consecutive days' shifts  (warn)
  1_day_off_in_7         under 4 days off in a 28-day window
  6_consecutive_nights   more than 6 consecutive night-duty days
  14hr_post_call_rest    next shift under 14h after a 24h day        (warn)

Timeline:
  Rotation shift   every day of the period (weekdays only where the label's
                   template says so); skipped in approved time-off periods
  Call overlay     Sat + Sun of the duty weekend, 07-19
  Float overlay    Sat night of the duty weekend, 19-07 (hours count on Sat)

The checker never mutates its inputs; check_swap() works on copies.

Usage:
  checker = ComplianceChecker(roster, grid, periods, time_off)
  violations = checker.check_all(call_schedule, float_schedule)
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import EngineSettings
from .eligibility import EligibilityEvaluator, approved_time_off_periods
from .models import (
    Period,
    RotationGrid,
    Schedule,
    TimeOff,
    Trainee,
    Violation,
    parse_slot_key,
    slot_key,
    slot_trainee,
)
from .schedule_config import (
    ACGME_LIMITS,
    CALL_TEMPLATE,
    FLOAT_TEMPLATE,
    SHIFT_TEMPLATES,
    SLOT_WEEKENDS,
    RotationCategory,
    classify_rotation,
)
from .validation import ScheduleInputError, validate_inputs

logger = logging.getLogger(__name__)


@dataclass
class Shift:
    kind: str               # "rotation" | "call" | "float"
    start_hour: int
    end_hour: int
    hours: float
    is_night: bool
    rotation: Optional[str] = None


@dataclass
class DutyDay:
    day: date
    period: int
    hours: float = 0
    is_night: bool = False
    shifts: List[Shift] = field(default_factory=list)

    def add(self, shift: Shift) -> None:
        self.shifts.append(shift)
        self.hours += shift.hours
        if shift.is_night:
            self.is_night = True


Timeline = Dict[date, DutyDay]


def slot_names(schedule: Optional[Schedule]) -> Dict[str, Optional[str]]:
    """slot key → trainee name, whatever shape the schedule values have."""
    return {key: slot_trainee(value) for key, value in (schedule or {}).items()}


def _shift(kind: str, template: Dict[str, Any], rotation: Optional[str] = None) -> Shift:
    return Shift(
        kind=kind,
        start_hour=template["start_hour"],
        end_hour=template["end_hour"],
        hours=template["hours"],
        is_night=template["is_night"],
        rotation=rotation,
    )


class ComplianceChecker:
    """
    Evaluates call/float schedules over one rotation grid and calendar.

    Schedules may hold DutySlot objects, {"name": ...} dicts or plain names.
    """

    def __init__(
        self,
        roster: Sequence[Trainee],
        rotation_grid: RotationGrid,
        periods: Sequence[Period],
        approved_time_off: Optional[Iterable[TimeOff]] = None,
        limits: Optional[Dict[str, float]] = None,
    ):
        self.roster = list(roster)
        self.rotation_grid = rotation_grid
        self.periods = list(periods)
        self.limits = {**ACGME_LIMITS, **(limits or {})}
        self._time_off = approved_time_off_periods(approved_time_off)

    # -----------------------------------------------------------------------
    # Calendar helpers
    # -----------------------------------------------------------------------

    def period_for_date(self, day: date) -> Optional[int]:
        for p in self.periods:
            if p.start <= day <= p.end:
                return p.number
        return None

    def _window_period(self, start: date, end: date) -> Optional[int]:
        found = self.period_for_date(start)
        return found if found is not None else self.period_for_date(end)

    def _category(self, trainee: str, idx: int) -> RotationCategory:
        row = self.rotation_grid[trainee]
        return classify_rotation(row[idx]) if 0 <= idx < len(row) else RotationCategory.EMPTY

    def duties(
        self,
        trainee: str,
        calls: Dict[str, Optional[str]],
        floats: Dict[str, Optional[str]],
    ) -> List[Tuple[Period, int, str]]:
        """(period, weekend, "call"|"float") for every slot the trainee holds."""
        out = []
        for p in self.periods:
            for weekend in SLOT_WEEKENDS:
                key = slot_key(p.number, weekend)
                if calls.get(key) == trainee:
                    out.append((p, weekend, "call"))
                if floats.get(key) == trainee:
                    out.append((p, weekend, "float"))
        return out

    # -----------------------------------------------------------------------
    # Timeline
    # -----------------------------------------------------------------------

    def build_timeline(
        self,
        trainee: str,
        calls: Dict[str, Optional[str]],
        floats: Dict[str, Optional[str]],
    ) -> Timeline:
        timeline: Timeline = {}
        off = self._time_off.get(trainee, set())
        row = self.rotation_grid[trainee]

        for idx, period in enumerate(self.periods):
            label = row[idx]
            template = SHIFT_TEMPLATES.get(label, SHIFT_TEMPLATES[""])
            for d in period.days():
                entry = DutyDay(day=d, period=period.number)
                if idx not in off and template["hours"] > 0:
                    if not (template["weekdays_only"] and d.weekday() >= 5):
                        entry.add(_shift("rotation", template, label))
                timeline[d] = entry

        # Overlays go on after every day exists; a W2 Sunday may sit in the next period
        for period, weekend, kind in self.duties(trainee, calls, floats):
            sat = period.weekend_saturday(weekend)
            if kind == "call":
                for d in (sat, sat + timedelta(days=1)):
                    if d in timeline:
                        timeline[d].add(_shift("call", CALL_TEMPLATE))
            elif sat in timeline:
                timeline[sat].add(_shift("float", FLOAT_TEMPLATE))

        return timeline

    # -----------------------------------------------------------------------
    # PROGRAM: duty during approved time off
    # -----------------------------------------------------------------------

    def check_time_off_duty(self, trainee, calls, floats) -> List[Violation]:
        off = self._time_off.get(trainee, set())
        by_period: Dict[int, List[str]] = {}
        for period, weekend, kind in self.duties(trainee, calls, floats):
            if period.number - 1 in off:
                by_period.setdefault(period.number, []).append(f"{kind} W{weekend}")

        violations = []
        for number, held in sorted(by_period.items()):
            period = self.periods[number - 1]
            violations.append(Violation(
                trainee=trainee,
                period=number,
                rule="time_off_duty",
                detail=f"{trainee} holds {', '.join(held)} in period {number} during approved time off",
                start_date=period.start.isoformat(),
                end_date=period.end.isoformat(),
            ))
        return violations

    # -----------------------------------------------------------------------
    # PROGRAM: call next to night coverage
    # -----------------------------------------------------------------------

    def check_nights_adjacent_call(self, trainee, calls, floats) -> List[Violation]:
        violations = []
        for period, weekend, kind in self.duties(trainee, calls, floats):
            if kind != "call":
                continue
            idx = period.number - 1
            sat = period.weekend_saturday(weekend)
            if self._category(trainee, idx) is RotationCategory.NIGHTS:
                detail = f"{trainee} on call {slot_key(period.number, weekend)} while on Nights"
            elif weekend == 2 and self._category(trainee, idx + 1) is RotationCategory.NIGHTS:
                detail = f"{trainee} on call {slot_key(period.number, weekend)} right before starting Nights"
            else:
                continue
            violations.append(Violation(
                trainee=trainee,
                period=period.number,
                rule="nights_adjacent_call",
                detail=detail,
                start_date=sat.isoformat(),
                end_date=(sat + timedelta(days=1)).isoformat(),
                duty_type="call",
                weekend=weekend,
            ))
        return violations

    # -----------------------------------------------------------------------
    # PROGRAM: prohibited duty combinations
    # -----------------------------------------------------------------------

    def check_duty_combinations(self, trainee, calls, floats) -> List[Violation]:
        violations = []
        weekends: Dict[date, Tuple[Period, int, Set[str]]] = {}
        for period, weekend, kind in self.duties(trainee, calls, floats):
            sat = period.weekend_saturday(weekend)
            weekends.setdefault(sat, (period, weekend, set()))[2].add(kind)

        for sat, (period, weekend, kinds) in sorted(weekends.items()):
            if kinds == {"call", "float"}:
                violations.append(Violation(
                    trainee=trainee,
                    period=period.number,
                    rule="same_weekend_call_and_float",
                    detail=f"{trainee} has both call and float on {slot_key(period.number, weekend)}",
                    start_date=sat.isoformat(),
                    end_date=(sat + timedelta(days=1)).isoformat(),
                    weekend=weekend,
                ))
            prev = sat - timedelta(days=7)
            if prev in weekends:
                prev_period, prev_weekend, prev_kinds = weekends[prev]
                violations.append(Violation(
                    trainee=trainee,
                    period=period.number,
                    rule="back_to_back_weekends",
                    detail=(
                        f"{trainee} has {'/'.join(sorted(prev_kinds))} on "
                        f"{slot_key(prev_period.number, prev_weekend)} and "
                        f"{'/'.join(sorted(kinds))} on {slot_key(period.number, weekend)}"
                    ),
                    severity="warn",
                    start_date=prev.isoformat(),
                    end_date=(sat + timedelta(days=1)).isoformat(),
                    weekend=weekend,
                ))
        return violations

    # -----------------------------------------------------------------------
    # ACGME: 80-hour weekly average
    # -----------------------------------------------------------------------

    def check_80_hour_average(self, trainee: str, timeline: Timeline) -> List[Violation]:
        violations = []
        days = sorted(timeline)
        if not days:
            return violations

        limit = self.limits["weekly_hours_avg"]
        span = int(self.limits["averaging_weeks"])
        week_start = days[0] - timedelta(days=days[0].weekday())
        weeks: List[Tuple[date, float]] = []
        while week_start <= days[-1]:
            hours = sum(
                timeline[d].hours
                for d in (week_start + timedelta(days=i) for i in range(7))
                if d in timeline
            )
            weeks.append((week_start, hours))
            week_start += timedelta(days=7)

        for i in range(len(weeks) - span + 1):
            avg = round(sum(h for _, h in weeks[i:i + span]) / span, 1)
            if avg > limit:
                start = weeks[i][0]
                end = weeks[i + span - 1][0] + timedelta(days=6)
                violations.append(Violation(
                    trainee=trainee,
                    period=self._window_period(start, end),
                    rule="80hr_weekly_avg",
                    detail=f"{avg}h/wk average over {span} weeks ({start} to {end}). Limit: {limit:g}h.",
                    start_date=start.isoformat(),
                    end_date=end.isoformat(),
                    hours=avg,
                ))
        return violations

    # -----------------------------------------------------------------------
    # ACGME: 24+4 continuous duty
    # -----------------------------------------------------------------------

    def check_max_daily_duty(self, trainee: str, timeline: Timeline) -> List[Violation]:
        limit = self.limits["max_daily_hours"]
        return [
            Violation(
                trainee=trainee,
                period=entry.period,
                rule="24plus4_max_duty",
                detail=f"{entry.hours:g}h duty on {d}. Max continuous duty: {limit + 4:g}h.",
                start_date=d.isoformat(),
                end_date=d.isoformat(),
                hours=entry.hours,
            )
            for d, entry in sorted(timeline.items())
            if entry.hours > limit
        ]

    # -----------------------------------------------------------------------
    # ACGME: rest between shifts
    # -----------------------------------------------------------------------

    def check_rest_between_shifts(self, trainee: str, timeline: Timeline) -> List[Violation]:
        violations = []
        minimum = self.limits["min_rest_hours"]
        days = sorted(timeline)
        for today, tomorrow in zip(days, days[1:]):
            a, b = timeline[today], timeline[tomorrow]
            if not a.shifts or not b.shifts:
                continue
            # night shifts end the next morning
            latest_end = max(24 + s.end_hour if s.is_night else s.end_hour for s in a.shifts)
            earliest_start = min(s.start_hour for s in b.shifts)
            gap = (24 - latest_end) + earliest_start
            if 0 <= gap < minimum:
                violations.append(Violation(
                    trainee=trainee,
                    period=a.period,
                    rule="8hr_between_shifts",
                    detail=f"Only {gap:g}h rest between {today} and {tomorrow}. Minimum: {minimum:g}h.",
                    severity="warn",
                    start_date=today.isoformat(),
                    end_date=tomorrow.isoformat(),
                    hours=gap,
                ))
        return violations

    # -----------------------------------------------------------------------
    # ACGME: one day off in seven
    # -----------------------------------------------------------------------

    def check_days_off(self, trainee: str, timeline: Timeline) -> List[Violation]:
        """At least 4 free days in every 28-day window; overlapping windows report once."""
        violations = []
        required = self.limits["days_off_per_28"]
        days = sorted(timeline)
        last_end: Optional[date] = None
        for i in range(len(days) - 27):
            window = days[i:i + 28]
            free = sum(1 for d in window if timeline[d].hours == 0)
            if free >= required:
                continue
            if last_end is not None and window[0] <= last_end:
                continue
            last_end = window[-1]
            violations.append(Violation(
                trainee=trainee,
                period=timeline[window[0]].period,
                rule="1_day_off_in_7",
                detail=(
                    f"Only {free} days off in 28-day window ({window[0]} to {window[-1]}). "
                    f"Minimum: {required:g} days."
                ),
                start_date=window[0].isoformat(),
                end_date=window[-1].isoformat(),
            ))
        return violations

    # -----------------------------------------------------------------------
    # ACGME: consecutive nights
    # -----------------------------------------------------------------------

    def check_consecutive_nights(self, trainee: str, timeline: Timeline) -> List[Violation]:
        violations = []
        limit = self.limits["max_consecutive_nights"]
        streak: List[date] = []

        def close_streak():
            if len(streak) > limit:
                violations.append(Violation(
                    trainee=trainee,
                    period=timeline[streak[0]].period,
                    rule="6_consecutive_nights",
                    detail=(
                        f"{len(streak)} consecutive night shifts ({streak[0]} to {streak[-1]}). "
                        f"Max: {limit:g}."
                    ),
                    start_date=streak[0].isoformat(),
                    end_date=streak[-1].isoformat(),
                ))

        for d in sorted(timeline):
            if timeline[d].is_night:
                streak.append(d)
            else:
                close_streak()
                streak = []
        close_streak()
        return violations

    # -----------------------------------------------------------------------
    # ACGME: post-call rest
    # -----------------------------------------------------------------------

    def check_post_call_rest(self, trainee: str, timeline: Timeline) -> List[Violation]:
        violations = []
        minimum = self.limits["post_call_rest_hours"]
        long_day = self.limits["max_daily_hours"]
        days = sorted(timeline)
        for today, tomorrow in zip(days, days[1:]):
            if timeline[today].hours < long_day or not timeline[tomorrow].shifts:
                continue
            earliest_start = min(s.start_hour for s in timeline[tomorrow].shifts)
            if earliest_start < minimum:
                violations.append(Violation(
                    trainee=trainee,
                    period=timeline[today].period,
                    rule="14hr_post_call_rest",
                    detail=(
                        f"Only {earliest_start}h rest after {timeline[today].hours:g}h duty on {today}. "
                        f"Minimum: {minimum:g}h."
                    ),
                    severity="warn",
                    start_date=today.isoformat(),
                    end_date=tomorrow.isoformat(),
                    hours=earliest_start,
                ))
        return violations

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_trainee(self, trainee: str, calls, floats) -> List[Violation]:
        timeline = self.build_timeline(trainee, calls, floats)
        violations: List[Violation] = []
        violations.extend(self.check_time_off_duty(trainee, calls, floats))
        violations.extend(self.check_nights_adjacent_call(trainee, calls, floats))
        violations.extend(self.check_duty_combinations(trainee, calls, floats))
        violations.extend(self.check_80_hour_average(trainee, timeline))
        violations.extend(self.check_max_daily_duty(trainee, timeline))
        violations.extend(self.check_rest_between_shifts(trainee, timeline))
        violations.extend(self.check_days_off(trainee, timeline))
        violations.extend(self.check_consecutive_nights(trainee, timeline))
        violations.extend(self.check_post_call_rest(trainee, timeline))
        return violations

    def check_all(self, call_schedule: Schedule, float_schedule: Schedule) -> List[Violation]:
        """
        Evaluate every trainee. Returns violations sorted by start date, then
        trainee.
        """
        calls = slot_names(call_schedule)
        floats = slot_names(float_schedule)

        violations: List[Violation] = []
        for t in self.roster:
            violations.extend(self.check_trainee(t.name, calls, floats))

        violations.sort(key=lambda v: (v.start_date or "", v.trainee or ""))
        logger.debug(f"Compliance check: {len(violations)} violations for {len(self.roster)} trainees")
        return violations


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def check(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    call_schedule: Schedule,
    float_schedule: Schedule,
    periods: Sequence[Period],
    approved_time_off: Optional[Iterable[TimeOff]] = None,
) -> List[Violation]:
    """Validate, then run every rule. Side-effect free."""
    approved_time_off = list(approved_time_off or [])
    validate_inputs(
        roster, rotation_grid, periods,
        time_off=approved_time_off,
        call_schedule=call_schedule,
        float_schedule=float_schedule,
    )
    checker = ComplianceChecker(roster, rotation_grid, periods, approved_time_off)
    return checker.check_all(call_schedule, float_schedule)


def apply_swap(
    call_schedule: Schedule,
    float_schedule: Schedule,
    first: Tuple[str, str],
    second: Tuple[str, str],
) -> Tuple[Schedule, Schedule]:
    """
    Exchange the holders of two slots, each given as (duty_type, slot key)
    with duty_type "call" or "float". Returns new schedules.
    """
    schedules = {"call": copy.deepcopy(call_schedule), "float": copy.deepcopy(float_schedule)}
    errors = []
    for duty_type, key in (first, second):
        if duty_type not in schedules:
            errors.append(f"Unknown duty type {duty_type!r} (expected 'call' or 'float')")
        else:
            try:
                parse_slot_key(key)
            except ValueError as e:
                errors.append(str(e))
    if errors:
        raise ScheduleInputError(errors)

    (type_a, key_a), (type_b, key_b) = first, second
    held_a = slot_trainee(schedules[type_a].get(key_a))
    held_b = slot_trainee(schedules[type_b].get(key_b))
    for duty_type, key, holder in ((type_a, key_a, held_b), (type_b, key_b, held_a)):
        if holder is None:
            schedules[duty_type].pop(key, None)
        else:
            schedules[duty_type][key] = holder
    return schedules["call"], schedules["float"]


def check_swap(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    call_schedule: Schedule,
    float_schedule: Schedule,
    periods: Sequence[Period],
    approved_time_off: Optional[Iterable[TimeOff]],
    first: Tuple[str, str],
    second: Tuple[str, str],
    settings: Optional[EngineSettings] = None,
) -> List[Violation]:
    """
    Violations of the schedule as it would look after swapping two slots.

    A trainee moved into a slot they are not eligible for is reported as
    ineligible_duty, on top of the duty-hour rules.
    """
    approved_time_off = list(approved_time_off or [])
    swapped_calls, swapped_floats = apply_swap(call_schedule, float_schedule, first, second)
    violations = check(roster, rotation_grid, swapped_calls, swapped_floats, periods, approved_time_off)

    ev = EligibilityEvaluator.for_roster(roster, rotation_grid, periods, settings, approved_time_off)
    swapped = {"call": slot_names(swapped_calls), "float": slot_names(swapped_floats)}
    for duty_type, key in (first, second):
        holder = swapped[duty_type].get(key)
        if holder is None:
            continue
        number, weekend = parse_slot_key(key)
        if duty_type == "call":
            reason = ev.call_block_reason(holder, number - 1)
        else:
            reason = ev.float_block_reason(holder, number - 1)
        if reason is None:
            continue
        sat = periods[number - 1].weekend_saturday(weekend)
        violations.append(Violation(
            trainee=holder,
            period=number,
            rule="ineligible_duty",
            detail=f"{holder} not eligible for {duty_type} on {key}: {reason}",
            start_date=sat.isoformat(),
            end_date=(sat + timedelta(days=1)).isoformat(),
            duty_type=duty_type,
            weekend=weekend,
        ))

    violations.sort(key=lambda v: (v.start_date or "", v.trainee or ""))
    return violations


def index_violations(violations: Iterable[Violation]) -> Dict[Tuple[Optional[str], Optional[int]], List[Violation]]:
    """Group violations by (trainee, period) for cell-level highlighting."""
    index: Dict[Tuple[Optional[str], Optional[int]], List[Violation]] = {}
    for v in violations:
        index.setdefault((v.trainee, v.period), []).append(v)
    return index
