"""
tests/test_suggestions.py — Fix suggestions for compliance violations

Tests: candidate reassignments, eligibility and tier-target filtering,
rejection of fixes that add violations, ranking/limit, apply_suggestion on
copies.
"""

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from duty_scheduler.compliance import check
from duty_scheduler.models import Period, Trainee, Violation
from duty_scheduler.suggestions import Suggestion, apply_suggestion, suggest_fixes
from duty_scheduler.validation import ScheduleInputError


def make_periods(n, start=date(2026, 7, 6)):
    return [
        Period(i + 1, start + timedelta(days=14 * i), start + timedelta(days=14 * i + 13), i // 2 + 1)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def periods():
    return make_periods(2)


@pytest.fixture
def before_nights(periods):
    """A holds W2 call right before starting Nights."""
    roster = [Trainee("A", 5), Trainee("B", 5), Trainee("C", 5)]
    grid = {"A": ["Echo", "Nights"], "B": ["Echo", "Echo"], "C": ["Echo", "Echo"]}
    calls = {"B1-W2": "A"}
    violation = check(roster, grid, calls, {}, periods)[0]
    return roster, grid, calls, violation


# ---------------------------------------------------------------------------
# suggest_fixes
# ---------------------------------------------------------------------------

class TestSuggestFixes:

    def test_violation_is_nights_adjacent(self, before_nights):
        _, _, _, violation = before_nights
        assert violation.rule == "nights_adjacent_call"
        assert violation.trainee == "A"

    def test_reassign_to_each_other_trainee(self, before_nights, periods):
        roster, grid, calls, violation = before_nights
        fixes = suggest_fixes(violation, roster, grid, calls, {}, periods)
        assert [(s.duty_type, s.slot_key, s.from_trainee, s.to_trainee) for s in fixes] == [
            ("call", "B1-W2", "A", "B"),
            ("call", "B1-W2", "A", "C"),
        ]
        assert all(s.net_change == -1 for s in fixes)

    def test_fix_that_adds_violations_rejected(self, periods):
        roster = [Trainee("A", 5), Trainee("B", 5)]
        grid = {"A": ["Echo", "Nights"], "B": ["Nights", "Echo"]}
        calls = {"B1-W2": "A"}
        violation = check(roster, grid, calls, {}, periods)[0]
        assert suggest_fixes(violation, roster, grid, calls, {}, periods) == []

    def test_limit(self, periods):
        roster = [Trainee("A", 5)] + [Trainee(f"O{i}", 5) for i in range(6)]
        grid = {t.name: ["Echo", "Echo"] for t in roster}
        grid["A"] = ["Echo", "Nights"]
        calls = {"B1-W2": "A"}
        violation = check(roster, grid, calls, {}, periods)[0]
        assert len(suggest_fixes(violation, roster, grid, calls, {}, periods)) == 5
        assert len(suggest_fixes(violation, roster, grid, calls, {}, periods, limit=2)) == 2

    def test_ineligible_trainee_not_offered(self, periods):
        roster = [Trainee("A", 5), Trainee("B", 5)]
        grid = {"A": ["Echo", "Nights"], "B": ["Floor A", "Echo"]}
        calls = {"B1-W2": "A"}
        violation = check(roster, grid, calls, {}, periods)[0]
        assert violation.rule == "nights_adjacent_call"
        assert suggest_fixes(violation, roster, grid, calls, {}, periods) == []

    def test_trainee_at_target_not_offered(self, periods):
        roster = [Trainee("A", 5), Trainee("B", 5), Trainee("C", 5)]
        grid = {"A": ["Echo", "Nights"], "B": ["Echo", "Echo"], "C": ["Echo", "Echo"]}
        calls = {"B1-W2": "A", "B2-W2": "C"}
        violation = check(roster, grid, calls, {}, periods)[0]
        assert violation.trainee == "A"

        everyone = suggest_fixes(violation, roster, grid, calls, {}, periods)
        assert [s.to_trainee for s in everyone] == ["B", "C"]

        capped = suggest_fixes(violation, roster, grid, calls, {}, periods, call_targets={5: 1})
        assert [s.to_trainee for s in capped] == ["B"]

    def test_targets_missing_tier_rejected(self, before_nights, periods):
        roster, grid, calls, violation = before_nights
        with pytest.raises(ScheduleInputError):
            suggest_fixes(violation, roster, grid, calls, {}, periods, call_targets={4: 2})

    def test_schedule_level_violation_has_no_fix(self, before_nights, periods):
        roster, grid, calls, _ = before_nights
        missing = Violation(trainee=None, period=1, rule="missing_call", detail="No eligible trainee")
        assert suggest_fixes(missing, roster, grid, calls, {}, periods) == []

    def test_inputs_untouched(self, before_nights, periods):
        roster, grid, calls, violation = before_nights
        suggest_fixes(violation, roster, grid, calls, {}, periods)
        assert calls == {"B1-W2": "A"}
        assert grid["A"] == ["Echo", "Nights"]


# ---------------------------------------------------------------------------
# apply_suggestion
# ---------------------------------------------------------------------------

class TestApplySuggestion:

    def test_applied_fix_clears_violation(self, before_nights, periods):
        roster, grid, calls, violation = before_nights
        fix = suggest_fixes(violation, roster, grid, calls, {}, periods)[0]
        new_calls, new_floats = apply_suggestion(fix, calls, {})
        assert new_calls == {"B1-W2": "B"}
        assert new_floats == {}
        assert calls == {"B1-W2": "A"}
        assert check(roster, grid, new_calls, new_floats, periods) == []

    def test_str(self):
        s = Suggestion("call", "B1-W2", "A", "B", -1)
        assert str(s) == "Reassign B1-W2 call from A to B (net -1)"
