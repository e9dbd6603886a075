"""
tests/test_eligibility.py — Call / float eligibility predicates

Tests: hard blocks (Nights, floor, ICU, time off, exam windows, senior
milestone), junior history prerequisites, relaxed variants, purity.
"""

import copy
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from duty_scheduler.config import EngineSettings
from duty_scheduler.eligibility import (
    PREFERRED,
    EligibilityEvaluator,
    approved_time_off_periods,
    is_eligible_for_call,
    is_eligible_for_float,
)
from duty_scheduler.models import Period, TimeOff


GRID = {
    "Jun": ["Cath", "ICU", "Echo", "Floor A", "Echo", "Nights"],
    "Mid": ["Floor B", "Nights", "Cath", "ICU", "EP", "Echo"],
    "Sen": ["Echo", "Echo", "Nights", "Research", "", "AI"],
}
TIERS = {"Jun": 4, "Mid": 5, "Sen": 6}

NO_EXAMS = EngineSettings(exam_blackout_periods=frozenset())


def make_periods(n, start=date(2026, 7, 6)):
    return [
        Period(i + 1, start + timedelta(days=14 * i), start + timedelta(days=14 * i + 13), i // 2 + 1)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def ev():
    return EligibilityEvaluator(GRID, TIERS, settings=NO_EXAMS)


@pytest.fixture
def ev_exams():
    return EligibilityEvaluator(GRID, TIERS)


# ---------------------------------------------------------------------------
# CALL
# ---------------------------------------------------------------------------

class TestCallEligibility:

    def test_nights_blocks_call(self, ev):
        assert ev.is_eligible_for_call("Mid", 1) is False
        assert ev.call_block_reason("Mid", 1) == "on Nights"

    def test_floor_blocks_call(self, ev):
        assert ev.is_eligible_for_call("Mid", 0) is False
        assert ev.is_eligible_for_call_relaxed("Mid", 0) is False

    def test_junior_needs_completed_icu(self, ev):
        assert ev.is_eligible_for_call("Jun", 0) is False
        assert ev.call_block_reason("Jun", 0) == "no completed ICU period"

    def test_icu_period_itself_does_not_count(self, ev):
        # history means strictly earlier periods
        assert ev.is_eligible_for_call("Jun", 1) is False

    def test_junior_eligible_after_icu(self, ev):
        assert ev.is_eligible_for_call("Jun", 2) is True
        assert ev.call_block_reason("Jun", 2) is None

    def test_relaxed_drops_icu_prerequisite(self, ev):
        assert ev.is_eligible_for_call("Jun", 0) is False
        assert ev.is_eligible_for_call_relaxed("Jun", 0) is True

    def test_next_period_nights_is_hard(self, ev):
        assert ev.is_eligible_for_call("Jun", 4) is False
        assert ev.is_eligible_for_call_relaxed("Jun", 4) is False
        assert ev.call_block_reason("Jun", 4) == "starts Nights next period"

    def test_senior_before_milestone_without_calendar(self, ev):
        assert ev.is_eligible_for_call("Sen", 0) is False
        assert ev.call_block_reason("Sen", 0) == "senior tier before call milestone"

    def test_senior_unassigned_period_is_callable(self, ev):
        assert ev.is_eligible_for_call("Sen", 3) is True
        assert ev.is_eligible_for_call("Sen", 4) is True

    def test_senior_exam_window(self, ev_exams):
        # default board-exam windows cover periods 0-3
        assert ev_exams.is_eligible_for_call("Sen", 3) is False
        assert ev_exams.call_block_reason("Sen", 3) == "board exam window"

    def test_exam_window_only_applies_to_senior_tier(self, ev_exams):
        assert ev_exams.is_eligible_for_call("Mid", 2) is True

    def test_senior_milestone_from_calendar(self):
        grid = {"Sen": ["Echo", "Echo", "Echo"]}
        periods = make_periods(3, start=date(2026, 6, 29))
        ev = EligibilityEvaluator(grid, {"Sen": 6}, periods, NO_EXAMS)
        assert ev.is_eligible_for_call("Sen", 0) is False
        assert ev.is_eligible_for_call("Sen", 1) is True

    def test_calendar_after_fixed_milestone_allows_first_period(self):
        grid = {"Sen": ["Echo", "Echo", "Echo"]}
        periods = make_periods(3, start=date(2026, 7, 20))
        settings = EngineSettings(exam_blackout_periods=frozenset(), senior_call_milestone=date(2026, 7, 13))
        ev = EligibilityEvaluator(grid, {"Sen": 6}, periods, settings)
        assert ev.is_eligible_for_call("Sen", 0) is True

    def test_milestone_follows_next_academic_year(self):
        grid = {"Sen": ["Echo", "Echo", "Echo"]}
        periods = make_periods(3, start=date(2027, 6, 30))
        ev = EligibilityEvaluator(grid, {"Sen": 6}, periods, NO_EXAMS)
        assert ev.is_eligible_for_call("Sen", 0) is False
        assert ev.call_block_reason("Sen", 0) == "senior tier before call milestone"
        assert ev.is_eligible_for_call("Sen", 1) is True

    def test_zero_offset_allows_first_period(self):
        grid = {"Sen": ["Echo", "Echo", "Echo"]}
        periods = make_periods(3, start=date(2027, 6, 30))
        settings = EngineSettings(exam_blackout_periods=frozenset(), senior_call_offset_days=0)
        ev = EligibilityEvaluator(grid, {"Sen": 6}, periods, settings)
        assert ev.is_eligible_for_call("Sen", 0) is True

    def test_approved_time_off_blocks_call(self):
        time_off = [TimeOff("Mid", 3, 3)]
        ev = EligibilityEvaluator(GRID, TIERS, settings=NO_EXAMS, time_off=time_off)
        assert ev.is_eligible_for_call("Mid", 2) is False
        assert ev.is_eligible_for_call_relaxed("Mid", 2) is False

    def test_pending_time_off_is_ignored(self):
        time_off = [TimeOff("Mid", 3, 3, status="pending")]
        ev = EligibilityEvaluator(GRID, TIERS, settings=NO_EXAMS, time_off=time_off)
        assert ev.is_eligible_for_call("Mid", 2) is True

    def test_unknown_trainee(self, ev):
        assert ev.is_eligible_for_call("Nobody", 2) is False
        assert ev.call_block_reason("Nobody", 2) == "not on roster"


# ---------------------------------------------------------------------------
# FLOAT
# ---------------------------------------------------------------------------

class TestFloatEligibility:

    def test_nights_is_preferred(self, ev):
        assert ev.is_eligible_for_float("Mid", 1) == PREFERRED

    def test_junior_on_nights_preferred_without_floor_history(self):
        ev = EligibilityEvaluator({"New": ["Nights"]}, {"New": 4}, settings=NO_EXAMS)
        assert ev.is_eligible_for_float("New", 0) == PREFERRED

    def test_icu_and_floor_block_float(self, ev):
        assert ev.is_eligible_for_float("Jun", 1) is False
        assert ev.is_eligible_for_float("Mid", 0) is False
        assert ev.is_eligible_for_float_relaxed("Jun", 1) is False

    def test_junior_needs_completed_floor(self, ev):
        assert ev.is_eligible_for_float("Jun", 2) is False
        assert ev.is_eligible_for_float_relaxed("Jun", 2) is True
        assert ev.is_eligible_for_float("Jun", 4) is True

    def test_non_junior_has_no_history_rule(self, ev):
        assert ev.is_eligible_for_float("Mid", 2) is True

    def test_senior_exam_window_blocks_float(self, ev_exams, ev):
        assert ev_exams.is_eligible_for_float("Sen", 0) is False
        assert ev.is_eligible_for_float("Sen", 0) is True

    def test_time_off_blocks_even_nights(self):
        ev = EligibilityEvaluator(GRID, TIERS, settings=NO_EXAMS, time_off=[TimeOff("Mid", 2, 2)])
        assert ev.is_eligible_for_float("Mid", 1) is False
        assert ev.is_eligible_for_float_relaxed("Mid", 1) is False


# ---------------------------------------------------------------------------
# Function wrappers / purity
# ---------------------------------------------------------------------------

class TestWrappers:

    def test_function_forms_match_evaluator(self, ev):
        for name in TIERS:
            for idx in range(len(GRID[name])):
                assert is_eligible_for_call(name, idx, GRID, TIERS, settings=NO_EXAMS) == ev.is_eligible_for_call(name, idx)
                assert is_eligible_for_float(name, idx, GRID, TIERS, settings=NO_EXAMS) == ev.is_eligible_for_float(name, idx)

    def test_predicates_do_not_touch_grid(self, ev):
        before = copy.deepcopy(GRID)
        for name in TIERS:
            for idx in range(len(GRID[name])):
                ev.is_eligible_for_call(name, idx)
                ev.is_eligible_for_float_relaxed(name, idx)
        assert GRID == before

    def test_approved_time_off_periods_are_zero_based(self):
        periods = approved_time_off_periods([
            TimeOff("A", 2, 3),
            TimeOff("B", 1, 1, status="denied"),
        ])
        assert periods == {"A": {1, 2}}
