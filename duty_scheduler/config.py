"""
config.py — Configuration Module for the Duty Assignment Engine

Loads the roster, rotation grid, period calendar, approved time off, tier
targets and day-level overrides from the config/ directory, and collects
rule tunables in EngineSettings.

File layout (config/):
  roster.csv          name, tier, clinic_day
  rotation_grid.csv   name, P1 .. P26         (blank cell = unassigned)
  periods.csv         period, start, end, cycle
  time_off.csv        trainee, start_period, end_period, status, reason
  tier_targets.json   {"4": {"call": 5, "float": 5, "coverage": 4}, ...}
  day_overrides.csv   trainee, period, date, rotation   (optional)
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .models import Period, RotationGrid, TimeOff, Trainee
from .schedule_config import (
    DEFAULT_TIER_TARGETS,
    JUNIOR_TIER,
    SENIOR_CALL_OFFSET_DAYS,
    SENIOR_TIER,
    exam_blackout_periods,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_ROSTER_PATH = DEFAULT_CONFIG_DIR / "roster.csv"
DEFAULT_GRID_PATH = DEFAULT_CONFIG_DIR / "rotation_grid.csv"
DEFAULT_PERIODS_PATH = DEFAULT_CONFIG_DIR / "periods.csv"
DEFAULT_TIME_OFF_PATH = DEFAULT_CONFIG_DIR / "time_off.csv"
DEFAULT_TARGETS_PATH = DEFAULT_CONFIG_DIR / "tier_targets.json"
DEFAULT_OVERRIDES_PATH = DEFAULT_CONFIG_DIR / "day_overrides.csv"


# ---------------------------------------------------------------------------
# Rule tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineSettings:
    junior_tier: int = JUNIOR_TIER
    senior_tier: int = SENIOR_TIER
    # fixed milestone date; None means first period start + senior_call_offset_days
    senior_call_milestone: Optional[date] = None
    senior_call_offset_days: int = SENIOR_CALL_OFFSET_DAYS
    # used only when no period calendar is supplied
    senior_call_start_idx: int = 1
    exam_blackout_periods: FrozenSet[int] = field(
        default_factory=lambda: frozenset(exam_blackout_periods())
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and value != value):
        return ""
    return str(value).strip()


def _require(path: Path, what: str) -> None:
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

def load_roster(roster_path: Optional[Path] = None) -> List[Trainee]:
    """
    Load trainees from roster.csv (columns: name, tier, clinic_day).

    Row order is the roster order used for tie-breaking.
    """
    import pandas as pd

    path = roster_path or DEFAULT_ROSTER_PATH
    _require(path, "Roster")

    df = pd.read_csv(path, keep_default_na=False)
    missing = {"name", "tier"} - set(df.columns)
    if missing:
        raise ValueError(f"Roster {path} missing columns: {sorted(missing)}")

    roster: List[Trainee] = []
    for _, row in df.iterrows():
        clinic_raw = _cell(row.get("clinic_day", ""))
        roster.append(Trainee(
            name=_cell(row["name"]),
            tier=int(row["tier"]),
            clinic_day=int(clinic_raw) if clinic_raw else 0,
        ))

    logger.info(f"Loaded {len(roster)} trainees from {path}")
    return roster


# ---------------------------------------------------------------------------
# Rotation grid
# ---------------------------------------------------------------------------

def load_rotation_grid(grid_path: Optional[Path] = None) -> RotationGrid:
    """
    Load the rotation grid: one row per trainee, one column per period.

    Blank cells become "" (unassigned). Column order after `name` is the
    period order.
    """
    import pandas as pd

    path = grid_path or DEFAULT_GRID_PATH
    _require(path, "Rotation grid")

    df = pd.read_csv(path, keep_default_na=False, dtype=str)
    if "name" not in df.columns:
        raise ValueError(f"Rotation grid {path} has no 'name' column")
    period_cols = [c for c in df.columns if c != "name"]

    grid: RotationGrid = {}
    for _, row in df.iterrows():
        grid[_cell(row["name"])] = [_cell(row[c]) for c in period_cols]

    logger.info(f"Loaded rotation grid: {len(grid)} trainees × {len(period_cols)} periods from {path}")
    return grid


# ---------------------------------------------------------------------------
# Period calendar
# ---------------------------------------------------------------------------

def load_periods(periods_path: Optional[Path] = None) -> List[Period]:
    """Load the period calendar (columns: period, start, end, cycle), sorted by period."""
    import pandas as pd

    path = periods_path or DEFAULT_PERIODS_PATH
    _require(path, "Period calendar")

    df = pd.read_csv(path, keep_default_na=False, dtype=str)
    periods = [
        Period(
            number=int(row["period"]),
            start=_parse_date(row["start"]),
            end=_parse_date(row["end"]),
            cycle=int(row["cycle"]),
        )
        for _, row in df.iterrows()
    ]
    periods.sort(key=lambda p: p.number)

    logger.info(f"Loaded {len(periods)} periods from {path}")
    return periods


# ---------------------------------------------------------------------------
# Time off
# ---------------------------------------------------------------------------

def load_time_off(time_off_path: Optional[Path] = None) -> List[TimeOff]:
    """Load time-off ranges. Returns [] (with a warning) if the file is missing."""
    import pandas as pd

    path = time_off_path or DEFAULT_TIME_OFF_PATH
    if not path.exists():
        logger.warning(f"Time-off file not found: {path}. Returning no time off.")
        return []

    df = pd.read_csv(path, keep_default_na=False, dtype=str)
    requests = [
        TimeOff(
            trainee=_cell(row["trainee"]),
            start_period=int(row["start_period"]),
            end_period=int(row["end_period"]),
            status=_cell(row.get("status", "approved")).lower() or "approved",
            reason=_cell(row.get("reason", "Vacation")) or "Vacation",
        )
        for _, row in df.iterrows()
    ]

    approved = sum(1 for r in requests if r.approved)
    logger.info(f"Loaded {len(requests)} time-off ranges ({approved} approved) from {path}")
    return requests


# ---------------------------------------------------------------------------
# Tier targets
# ---------------------------------------------------------------------------

def load_tier_targets(targets_path: Optional[Path] = None) -> Dict[int, Dict[str, int]]:
    """
    Load per-tier call/float/coverage targets from JSON.
    Falls back to DEFAULT_TIER_TARGETS if the file is missing.
    """
    path = targets_path or DEFAULT_TARGETS_PATH
    if not path.exists():
        logger.warning(f"Tier targets not found: {path}. Using defaults.")
        return {tier: dict(v) for tier, v in DEFAULT_TIER_TARGETS.items()}

    with open(path) as f:
        data = json.load(f)

    targets: Dict[int, Dict[str, int]] = {}
    for tier, values in data.items():
        if tier in ("notes", "last_updated"):
            continue
        targets[int(tier)] = {k: int(v) for k, v in values.items()}

    logger.info(f"Loaded tier targets for tiers {sorted(targets)} from {path}")
    return targets


def targets_for(tier_targets: Dict[int, Dict[str, int]], kind: str) -> Dict[int, int]:
    """Project {tier: {call, float, coverage}} onto one kind → {tier: n}."""
    return {tier: values[kind] for tier, values in tier_targets.items() if kind in values}


# ---------------------------------------------------------------------------
# Day-level overrides
# ---------------------------------------------------------------------------

def load_day_overrides(overrides_path: Optional[Path] = None) -> Dict[Tuple[str, int, str], str]:
    """Load sparse (trainee, period, date) → rotation overrides. {} if missing."""
    import pandas as pd

    path = overrides_path or DEFAULT_OVERRIDES_PATH
    if not path.exists():
        logger.debug(f"No day overrides at {path}")
        return {}

    df = pd.read_csv(path, keep_default_na=False, dtype=str)
    overrides: Dict[Tuple[str, int, str], str] = {}
    for _, row in df.iterrows():
        key = (_cell(row["trainee"]), int(row["period"]), _parse_date(row["date"]).isoformat())
        overrides[key] = _cell(row["rotation"])

    logger.info(f"Loaded {len(overrides)} day overrides from {path}")
    return overrides


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load every input file from `config_dir` (default: config/)."""
    base = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    tier_targets = load_tier_targets(base / "tier_targets.json")
    return {
        "roster":        load_roster(base / "roster.csv"),
        "rotation_grid": load_rotation_grid(base / "rotation_grid.csv"),
        "periods":       load_periods(base / "periods.csv"),
        "time_off":      load_time_off(base / "time_off.csv"),
        "tier_targets":  tier_targets,
        "call_targets":  targets_for(tier_targets, "call"),
        "float_targets": targets_for(tier_targets, "float"),
        "day_overrides": load_day_overrides(base / "day_overrides.csv"),
        "settings":      EngineSettings(),
    }
