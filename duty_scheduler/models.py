"""
models.py — Records passed between the engine components

Schedules are keyed by slot key "B<period>-W<weekend>" (1-based period).
Values may be DutySlot, {"name": ..., "relaxed": ...} or a plain name —
slot_trainee() reads all three.
"""

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from .schedule_config import DutyType

MISSING = "MISSING"

_SLOT_KEY_RE = re.compile(r"^B(\d+)-W([12])$")


@dataclass(frozen=True)
class Trainee:
    name: str
    tier: int
    clinic_day: int = 0     # 0 = none, 1-5 = Mon-Fri


@dataclass(frozen=True)
class Period:
    number: int             # 1-based
    start: date
    end: date
    cycle: int

    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range((self.end - self.start).days + 1)]

    def weekend_saturday(self, weekend: int) -> date:
        """Saturday of duty weekend 1 or 2 (first Saturday on/after start, then +7)."""
        sat1 = self.start + timedelta(days=(5 - self.start.weekday()) % 7)
        return sat1 + timedelta(days=7 * (weekend - 1))

    def week_window(self, week: int) -> Tuple[date, date]:
        """Week 1/2 of the period, anchored at the start and clamped to the end."""
        first = self.start + timedelta(days=7 * (week - 1))
        last = min(first + timedelta(days=6), self.end)
        return first, last


@dataclass(frozen=True)
class TimeOff:
    trainee: str
    start_period: int       # 1-based, inclusive
    end_period: int
    status: str = "approved"
    reason: str = "Vacation"

    @property
    def approved(self) -> bool:
        return self.status == "approved"

    def covers(self, period_number: int) -> bool:
        return self.start_period <= period_number <= self.end_period


@dataclass
class DutySlot:
    period: int             # 1-based
    weekend: int
    duty_type: DutyType
    trainee: Optional[str] = None
    relaxed: bool = False
    rule: Optional[str] = None

    @property
    def key(self) -> str:
        return slot_key(self.period, self.weekend)

    @property
    def is_missing(self) -> bool:
        return self.trainee is None

    def __str__(self) -> str:
        who = self.trainee or MISSING
        flag = " (relaxed)" if self.relaxed else ""
        return f"{self.key} {self.duty_type.value}: {who}{flag}"


@dataclass
class CoverageEntry:
    period: int
    week: int
    absent: str
    absent_clinic_day: int
    clinic_date: Optional[date] = None
    coverer: Optional[str] = None
    coverer_rotation: Optional[str] = None
    coverer_clinic_day: Optional[int] = None
    relaxed_same_clinic_day: bool = False
    relaxed_back_to_back: bool = False

    @property
    def uncovered(self) -> bool:
        return self.coverer is None


@dataclass
class Violation:
    trainee: Optional[str]
    period: Optional[int]
    rule: str
    detail: str
    severity: str = "error"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    hours: Optional[float] = None
    duty_type: Optional[str] = None
    weekend: Optional[int] = None

    def __str__(self) -> str:
        parts = [f"[{self.severity.upper()}] {self.rule}"]
        if self.trainee:
            parts.append(f"trainee={self.trainee}")
        if self.period is not None:
            parts.append(f"period={self.period}")
        if self.weekend is not None:
            parts.append(f"weekend=W{self.weekend}")
        parts.append(f"→ {self.detail}")
        return " | ".join(parts)


Schedule = Dict[str, Any]          # slot key → DutySlot | dict | name
RotationGrid = Dict[str, List[str]]


@dataclass
class AssignmentResult:
    call_schedule: Dict[str, DutySlot]
    float_schedule: Dict[str, DutySlot]
    call_counts: Dict[str, int]
    float_counts: Dict[str, int]
    violations: List[Violation] = field(default_factory=list)

    @property
    def missing_slots(self) -> List[DutySlot]:
        slots = list(self.call_schedule.values()) + list(self.float_schedule.values())
        return [s for s in slots if s.is_missing]

    @property
    def relaxed_slots(self) -> List[DutySlot]:
        slots = list(self.call_schedule.values()) + list(self.float_schedule.values())
        return [s for s in slots if s.relaxed]


@dataclass
class CoverageResult:
    entries: List[CoverageEntry]
    counts: Dict[str, int]
    cost: float = 0.0

    @property
    def uncovered(self) -> List[CoverageEntry]:
        return [e for e in self.entries if e.uncovered]


@dataclass
class ConflictReport:
    double_bookings: List[Dict[str, Any]]
    coverage_gaps: List[Dict[str, Any]]
    acgme_violations: List[Violation]

    @property
    def total(self) -> int:
        return len(self.double_bookings) + len(self.coverage_gaps) + len(self.acgme_violations)

    @property
    def has_errors(self) -> bool:
        return len(self.double_bookings) > 0

    @property
    def has_warnings(self) -> bool:
        return len(self.coverage_gaps) > 0 or len(self.acgme_violations) > 0


# ---------------------------------------------------------------------------
# Slot key helpers
# ---------------------------------------------------------------------------

def slot_key(period: int, weekend: int) -> str:
    return f"B{period}-W{weekend}"


def parse_slot_key(key: str) -> Tuple[int, int]:
    """"B3-W2" → (3, 2). Raises ValueError on malformed keys."""
    m = _SLOT_KEY_RE.match(key)
    if not m:
        raise ValueError(f"Malformed slot key: {key!r} (expected 'B<period>-W<1|2>')")
    return int(m.group(1)), int(m.group(2))


def slot_trainee(value: Union[DutySlot, Dict[str, Any], str, None]) -> Optional[str]:
    """Trainee name held by a schedule value, whatever its shape."""
    if value is None:
        return None
    if isinstance(value, DutySlot):
        return value.trainee
    if isinstance(value, dict):
        return value.get("name")
    if isinstance(value, str):
        return value or None
    return None


def schedule_to_dict(schedule: Dict[str, DutySlot]) -> Dict[str, Union[str, Dict[str, Any]]]:
    """
    Sparse output form: relaxed slots as {"name", "relaxed": True}, the rest
    as plain names. Missing slots are omitted.
    """
    out: Dict[str, Union[str, Dict[str, Any]]] = {}
    for key, slot in schedule.items():
        if slot.is_missing:
            continue
        out[key] = {"name": slot.trainee, "relaxed": True} if slot.relaxed else slot.trainee
    return out
