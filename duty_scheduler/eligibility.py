"""
eligibility.py — Call / Night-Float Eligibility Rules

Pure predicates over a read-only rotation grid and seniority map. Period
indices are 0-based here; Period.number is 1-based.

CALL (weekend in-house duty)
  ✗  current rotation is Nights or a floor service
  ✗  senior tier, period starts before the senior-call milestone
  ✗  senior tier, inside a board-exam hard window
  ✗  junior tier without a completed ICU period     (history — relaxable)
  ✗  next period is Nights
  ✗  approved time off this period

FLOAT (Saturday-night duty)
  ✗  current rotation is ICU or a floor service
  ✗  senior tier, inside a board-exam hard window
  ✗  approved time off this period
  ★  current rotation is Nights → "preferred"
  ✗  junior tier without a completed floor period   (history — relaxable)

Relaxed variants drop only the history rules; everything else is hard.
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, Optional, Sequence, Set, Union

from .config import EngineSettings
from .models import Period, RotationGrid, TimeOff, Trainee
from .schedule_config import RotationCategory, classify_rotation

logger = logging.getLogger(__name__)

PREFERRED = "preferred"

FloatEligibility = Union[bool, str]


def approved_time_off_periods(time_off: Optional[Iterable[TimeOff]]) -> Dict[str, Set[int]]:
    """trainee → 0-based period indices covered by approved time off."""
    out: Dict[str, Set[int]] = {}
    for req in time_off or []:
        if not req.approved:
            continue
        out.setdefault(req.trainee, set()).update(
            range(req.start_period - 1, req.end_period)
        )
    return out


class EligibilityEvaluator:
    """
    Eligibility predicates bound to one immutable input snapshot.

    Usage:
        ev = EligibilityEvaluator(grid, {"Nor": 4, ...}, periods)
        ev.is_eligible_for_call("Nor", 8)      → bool
        ev.is_eligible_for_float("Nor", 8)     → False | True | "preferred"
    """

    def __init__(
        self,
        rotation_grid: RotationGrid,
        tiers: Dict[str, int],
        periods: Optional[Sequence[Period]] = None,
        settings: Optional[EngineSettings] = None,
        time_off: Optional[Iterable[TimeOff]] = None,
    ):
        self.rotation_grid = rotation_grid
        self.tiers = tiers
        self.periods = periods
        self.settings = settings or EngineSettings()
        self._time_off = approved_time_off_periods(time_off)
        self._blackout = set(self.settings.exam_blackout_periods)
        self._senior_call_start = self._find_senior_call_start()

    @classmethod
    def for_roster(
        cls,
        roster: Sequence[Trainee],
        rotation_grid: RotationGrid,
        periods: Optional[Sequence[Period]] = None,
        settings: Optional[EngineSettings] = None,
        time_off: Optional[Iterable[TimeOff]] = None,
    ) -> "EligibilityEvaluator":
        return cls(rotation_grid, {t.name: t.tier for t in roster}, periods, settings, time_off)

    def _find_senior_call_start(self) -> int:
        if not self.periods:
            return self.settings.senior_call_start_idx
        milestone = self.settings.senior_call_milestone
        if milestone is None:
            milestone = self.periods[0].start + timedelta(days=self.settings.senior_call_offset_days)
        for idx, period in enumerate(self.periods):
            if period.start >= milestone:
                return idx
        return len(self.periods)

    # -----------------------------------------------------------------------
    # Grid lookups
    # -----------------------------------------------------------------------

    def rotation(self, trainee: str, period_idx: int) -> str:
        row = self.rotation_grid.get(trainee, [])
        if 0 <= period_idx < len(row):
            return row[period_idx]
        return ""

    def category(self, trainee: str, period_idx: int) -> RotationCategory:
        return classify_rotation(self.rotation(trainee, period_idx))

    def has_completed(self, trainee: str, period_idx: int, category: RotationCategory) -> bool:
        """True if any period strictly before period_idx is in `category`."""
        row = self.rotation_grid.get(trainee, [])
        return any(classify_rotation(label) is category for label in row[:period_idx])

    def on_time_off(self, trainee: str, period_idx: int) -> bool:
        return period_idx in self._time_off.get(trainee, set())

    def in_exam_window(self, trainee: str, period_idx: int) -> bool:
        return self.tiers.get(trainee) == self.settings.senior_tier and period_idx in self._blackout

    # -----------------------------------------------------------------------
    # CALL
    # -----------------------------------------------------------------------

    def _call_hard_block(self, trainee: str, period_idx: int) -> Optional[str]:
        tier = self.tiers.get(trainee)
        if tier is None:
            return "not on roster"
        cat = self.category(trainee, period_idx)
        if cat in (RotationCategory.NIGHTS, RotationCategory.FLOOR):
            return f"on {self.rotation(trainee, period_idx)}"
        if tier == self.settings.senior_tier and period_idx < self._senior_call_start:
            return "senior tier before call milestone"
        if self.in_exam_window(trainee, period_idx):
            return "board exam window"
        if self.category(trainee, period_idx + 1) is RotationCategory.NIGHTS:
            return "starts Nights next period"
        if self.on_time_off(trainee, period_idx):
            return "approved time off"
        return None

    def is_eligible_for_call(self, trainee: str, period_idx: int) -> bool:
        if self._call_hard_block(trainee, period_idx) is not None:
            return False
        if self.tiers[trainee] == self.settings.junior_tier:
            return self.has_completed(trainee, period_idx, RotationCategory.ICU)
        return True

    def is_eligible_for_call_relaxed(self, trainee: str, period_idx: int) -> bool:
        """Call eligibility without the junior ICU prerequisite."""
        return self._call_hard_block(trainee, period_idx) is None

    def call_block_reason(self, trainee: str, period_idx: int) -> Optional[str]:
        """Human-readable reason a trainee is not call-eligible (None if eligible)."""
        reason = self._call_hard_block(trainee, period_idx)
        if reason is None and not self.is_eligible_for_call(trainee, period_idx):
            reason = "no completed ICU period"
        return reason

    # -----------------------------------------------------------------------
    # FLOAT
    # -----------------------------------------------------------------------

    def _float_hard_block(self, trainee: str, period_idx: int) -> Optional[str]:
        if trainee not in self.tiers:
            return "not on roster"
        cat = self.category(trainee, period_idx)
        if cat in (RotationCategory.ICU, RotationCategory.FLOOR):
            return f"on {self.rotation(trainee, period_idx)}"
        if self.in_exam_window(trainee, period_idx):
            return "board exam window"
        if self.on_time_off(trainee, period_idx):
            return "approved time off"
        return None

    def is_eligible_for_float(self, trainee: str, period_idx: int) -> FloatEligibility:
        if self._float_hard_block(trainee, period_idx) is not None:
            return False
        if self.category(trainee, period_idx) is RotationCategory.NIGHTS:
            return PREFERRED
        if self.tiers[trainee] == self.settings.junior_tier:
            return self.has_completed(trainee, period_idx, RotationCategory.FLOOR)
        return True

    def is_eligible_for_float_relaxed(self, trainee: str, period_idx: int) -> bool:
        """Float eligibility without the junior floor prerequisite."""
        return self._float_hard_block(trainee, period_idx) is None

    def float_block_reason(self, trainee: str, period_idx: int) -> Optional[str]:
        reason = self._float_hard_block(trainee, period_idx)
        if reason is None and not self.is_eligible_for_float(trainee, period_idx):
            reason = "no completed floor period"
        return reason


# ---------------------------------------------------------------------------
# Function-style wrappers
# ---------------------------------------------------------------------------

def is_eligible_for_call(
    trainee: str,
    period_idx: int,
    rotation_grid: RotationGrid,
    tiers: Dict[str, int],
    periods: Optional[Sequence[Period]] = None,
    settings: Optional[EngineSettings] = None,
) -> bool:
    return EligibilityEvaluator(rotation_grid, tiers, periods, settings).is_eligible_for_call(trainee, period_idx)


def is_eligible_for_float(
    trainee: str,
    period_idx: int,
    rotation_grid: RotationGrid,
    tiers: Dict[str, int],
    periods: Optional[Sequence[Period]] = None,
    settings: Optional[EngineSettings] = None,
) -> FloatEligibility:
    return EligibilityEvaluator(rotation_grid, tiers, periods, settings).is_eligible_for_float(trainee, period_idx)
