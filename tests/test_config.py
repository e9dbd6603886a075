"""
tests/test_config.py — Config loaders

Tests: roster / rotation grid / period calendar / time off / tier targets /
day override loaders (tmp files), missing-file behavior, reference config.
"""

import json
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from duty_scheduler.config import (
    EngineSettings,
    get_config,
    load_day_overrides,
    load_periods,
    load_rotation_grid,
    load_roster,
    load_tier_targets,
    load_time_off,
    targets_for,
)
from duty_scheduler.schedule_config import DEFAULT_TIER_TARGETS
from duty_scheduler.validation import validate_inputs


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


# ---------------------------------------------------------------------------
# Individual loaders
# ---------------------------------------------------------------------------

class TestLoaders:

    def test_roster(self, tmp_path):
        path = write(tmp_path / "roster.csv", "name,tier,clinic_day\nNor,4,3\nAli,5,\n")
        roster = load_roster(path)
        assert [(t.name, t.tier, t.clinic_day) for t in roster] == [("Nor", 4, 3), ("Ali", 5, 0)]

    def test_roster_missing_columns(self, tmp_path):
        path = write(tmp_path / "roster.csv", "name,clinic_day\nNor,3\n")
        with pytest.raises(ValueError):
            load_roster(path)

    def test_roster_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_roster(tmp_path / "nope.csv")

    def test_rotation_grid_blank_cells(self, tmp_path):
        path = write(tmp_path / "grid.csv", "name,P1,P2\nA,Echo,\nB,,ICU\n")
        assert load_rotation_grid(path) == {"A": ["Echo", ""], "B": ["", "ICU"]}

    def test_periods_sorted(self, tmp_path):
        path = write(
            tmp_path / "periods.csv",
            "period,start,end,cycle\n2,2026-07-13,2026-07-26,1\n1,2026-07-01,2026-07-12,1\n",
        )
        periods = load_periods(path)
        assert [p.number for p in periods] == [1, 2]
        assert periods[0].start == date(2026, 7, 1)
        assert periods[1].end == date(2026, 7, 26)

    def test_time_off(self, tmp_path):
        path = write(
            tmp_path / "time_off.csv",
            "trainee,start_period,end_period,status,reason\nNor,3,4,Approved,Vacation\nAli,5,5,pending,Conference\n",
        )
        requests = load_time_off(path)
        assert [(r.trainee, r.start_period, r.end_period, r.approved) for r in requests] == [
            ("Nor", 3, 4, True),
            ("Ali", 5, 5, False),
        ]

    def test_time_off_missing_file(self, tmp_path):
        assert load_time_off(tmp_path / "nope.csv") == []

    def test_tier_targets(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({
            "notes": "test",
            "4": {"call": 6, "float": 5, "coverage": 3},
        }))
        assert load_tier_targets(path) == {4: {"call": 6, "float": 5, "coverage": 3}}

    def test_tier_targets_default(self, tmp_path):
        assert load_tier_targets(tmp_path / "nope.json") == DEFAULT_TIER_TARGETS

    def test_day_overrides(self, tmp_path):
        path = write(tmp_path / "overrides.csv", "trainee,period,date,rotation\nNor,3,2026-08-05,Cath\n")
        assert load_day_overrides(path) == {("Nor", 3, "2026-08-05"): "Cath"}

    def test_day_overrides_missing_file(self, tmp_path):
        assert load_day_overrides(tmp_path / "nope.csv") == {}

    def test_targets_for(self):
        assert targets_for(DEFAULT_TIER_TARGETS, "call") == {4: 5, 5: 4, 6: 2}
        assert targets_for({4: {"call": 1}}, "float") == {}


# ---------------------------------------------------------------------------
# Reference config/
# ---------------------------------------------------------------------------

class TestReferenceConfig:

    @pytest.fixture(scope="class")
    def cfg(self):
        return get_config()

    def test_shape(self, cfg):
        assert len(cfg["roster"]) == 13
        assert len(cfg["periods"]) == 26
        assert all(len(row) == 26 for row in cfg["rotation_grid"].values())
        assert isinstance(cfg["settings"], EngineSettings)

    def test_tiers(self, cfg):
        tiers = sorted({t.tier for t in cfg["roster"]})
        assert tiers == [4, 5, 6]
        assert set(cfg["call_targets"]) == {4, 5, 6}

    def test_calendar(self, cfg):
        periods = cfg["periods"]
        assert periods[0].start == date(2026, 7, 1)
        assert periods[-1].end == date(2027, 6, 27)

    def test_validates(self, cfg):
        validate_inputs(
            cfg["roster"], cfg["rotation_grid"], cfg["periods"],
            cfg["call_targets"], cfg["float_targets"], cfg["time_off"],
        )

    def test_senior_call_milestone_lands_on_period_two(self, cfg):
        settings = cfg["settings"]
        assert settings.senior_call_milestone is None
        milestone = cfg["periods"][0].start + timedelta(days=settings.senior_call_offset_days)
        assert milestone == cfg["periods"][1].start == date(2026, 7, 13)
