"""
tests/test_full_orchestration.py

Full orchestration test suite over the reference config/:
  1. Load and validate roster, rotation grid, calendar, time off, targets
  2. Run the engine (assign → optimize → detect)
  3. Call / float counts never exceed tier targets
  4. Strict slots pass eligibility, no call next to Nights, time off respected
  5. Clinic coverage never worse than the greedy baseline
  6. Determinism (same inputs + seed → same result)
  7. Dry-run CLI writes the JSON result

Run with:
  python -m pytest tests/test_full_orchestration.py -v
"""

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from duty_scheduler.clinic_coverage import CoverageConstraints, baseline_cost
from duty_scheduler.config import get_config, targets_for
from duty_scheduler.dry_run import main, run_dry_run
from duty_scheduler.eligibility import EligibilityEvaluator
from duty_scheduler.engine import run_engine, tier_balance
from duty_scheduler.schedule_config import RotationCategory, classify_rotation
from duty_scheduler.validation import ScheduleInputError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def cfg():
    return get_config()


@pytest.fixture(scope="module")
def result(cfg):
    return run_engine(
        cfg["roster"],
        cfg["rotation_grid"],
        cfg["periods"],
        cfg["tier_targets"],
        time_off=cfg["time_off"],
        day_overrides=cfg["day_overrides"],
        settings=cfg["settings"],
    )


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

class TestAssignment:

    def test_every_slot_present(self, result):
        assert len(result.assignment.call_schedule) == 52
        assert len(result.assignment.float_schedule) == 52

    def test_counts_within_targets(self, cfg, result):
        for t in cfg["roster"]:
            counts = result.running_counts[t.name]
            assert counts["call"] <= counts["call_target"]
            assert counts["float"] <= counts["float_target"]

    def test_strict_slots_eligible(self, cfg, result):
        ev = EligibilityEvaluator.for_roster(
            cfg["roster"], cfg["rotation_grid"], cfg["periods"], cfg["settings"], cfg["time_off"]
        )
        for slot in result.assignment.call_schedule.values():
            if slot.trainee and not slot.relaxed:
                assert ev.is_eligible_for_call(slot.trainee, slot.period - 1), str(slot)
        for slot in result.assignment.float_schedule.values():
            if slot.trainee and not slot.relaxed:
                assert ev.is_eligible_for_float(slot.trainee, slot.period - 1), str(slot)

    def test_no_w2_call_before_nights(self, cfg, result):
        grid = cfg["rotation_grid"]
        for slot in result.assignment.call_schedule.values():
            if slot.weekend != 2 or slot.trainee is None or slot.period >= 26:
                continue
            assert classify_rotation(grid[slot.trainee][slot.period]) is not RotationCategory.NIGHTS

    def test_time_off_respected(self, result):
        # Alkhawlani: approved vacation in period 3
        for schedule in (result.assignment.call_schedule, result.assignment.float_schedule):
            for key in ("B3-W1", "B3-W2"):
                assert schedule[key].trainee != "Alkhawlani"

    def test_no_hard_rule_violations(self, result):
        rules = {v.rule for v in result.conflicts.acgme_violations}
        assert "time_off_duty" not in rules
        assert "nights_adjacent_call" not in rules


# ---------------------------------------------------------------------------
# Clinic coverage
# ---------------------------------------------------------------------------

class TestCoverage:

    def test_entries_exist(self, result):
        assert result.coverage.entries

    def test_not_worse_than_baseline(self, cfg, result):
        constraints = CoverageConstraints(target_per_trainee=targets_for(cfg["tier_targets"], "coverage"))
        base = baseline_cost(
            cfg["roster"], cfg["rotation_grid"], constraints,
            cfg["periods"], cfg["time_off"], cfg["settings"],
        )
        assert result.coverage.cost <= base + 1e-9

    def test_coverers_not_absent(self, result):
        for e in result.coverage.entries:
            assert e.coverer != e.absent


# ---------------------------------------------------------------------------
# Engine facade
# ---------------------------------------------------------------------------

class TestEngine:

    def test_deterministic(self, cfg, result):
        again = run_engine(
            cfg["roster"],
            cfg["rotation_grid"],
            cfg["periods"],
            cfg["tier_targets"],
            time_off=cfg["time_off"],
            day_overrides=cfg["day_overrides"],
            settings=cfg["settings"],
        )
        assert again.to_dict() == result.to_dict()

    def test_to_dict_is_json_ready(self, result):
        data = json.loads(json.dumps(result.to_dict()))
        assert set(data) >= {"call_schedule", "float_schedule", "coverage", "violations", "running_counts"}

    def test_tier_balance(self, cfg, result):
        balance = tier_balance(cfg["roster"], result.running_counts)
        assert sorted(balance) == [4, 5, 6]
        for kinds in balance.values():
            for stats in kinds.values():
                assert stats["min"] <= stats["mean"] <= stats["max"]

    def test_bad_input_rejected_up_front(self, cfg):
        grid = dict(cfg["rotation_grid"])
        grid["Nor"] = grid["Nor"][:-1]
        with pytest.raises(ScheduleInputError):
            run_engine(cfg["roster"], grid, cfg["periods"], cfg["tier_targets"])


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------

class TestDryRun:

    def test_run_dry_run(self, tmp_path):
        out = tmp_path / "run.json"
        result = run_dry_run(output_json=out)
        assert result is not None
        assert out.exists()
        assert json.loads(out.read_text())["running_counts"]

    def test_cli_missing_config_dir(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["--config-dir", str(tmp_path / "missing")])

    def test_cli_writes_json(self, tmp_path):
        out = tmp_path / "cli.json"
        main(["--seed", "11", "--output-json", str(out)])
        assert out.exists()
