"""
Fellowship Duty Assignment & Compliance Engine

Modules:
- schedule_config: Rotation labels, shift templates, tiers, exam windows, limits
- config: Loaders for config/ (roster, rotation grid, periods, time off, targets)
- eligibility: Call / float eligibility predicates
- assigner: Balanced call / float assignment (ordered fold over periods)
- clinic_coverage: Seeded local search for clinic coverage
- compliance: Duty-hour timeline rules, swap pre-validation
- conflicts: Double bookings, coverage gaps, compliance report
- suggestions: Call / float reassignments that fix a violation
- engine: run_engine facade and running counts
"""

from .config import (
    EngineSettings,
    load_roster,
    load_rotation_grid,
    load_periods,
    load_time_off,
    load_tier_targets,
    load_day_overrides,
    get_config,
)

from .models import (
    MISSING,
    Trainee,
    Period,
    TimeOff,
    DutySlot,
    CoverageEntry,
    Violation,
    AssignmentResult,
    CoverageResult,
    ConflictReport,
    slot_key,
    schedule_to_dict,
)

from .validation import ScheduleInputError, validate_inputs
from .eligibility import EligibilityEvaluator, is_eligible_for_call, is_eligible_for_float
from .assigner import assign, assign_period, AssignmentState, AssignmentContext
from .clinic_coverage import CoverageConstraints, optimize
from .compliance import ComplianceChecker, check, check_swap, index_violations
from .conflicts import detect
from .suggestions import suggest_fixes
from .engine import EngineResult, run_engine, running_counts

__all__ = [
    "EngineSettings",
    "load_roster",
    "load_rotation_grid",
    "load_periods",
    "load_time_off",
    "load_tier_targets",
    "load_day_overrides",
    "get_config",
    "MISSING",
    "Trainee",
    "Period",
    "TimeOff",
    "DutySlot",
    "CoverageEntry",
    "Violation",
    "AssignmentResult",
    "CoverageResult",
    "ConflictReport",
    "slot_key",
    "schedule_to_dict",
    "ScheduleInputError",
    "validate_inputs",
    "EligibilityEvaluator",
    "is_eligible_for_call",
    "is_eligible_for_float",
    "assign",
    "assign_period",
    "AssignmentState",
    "AssignmentContext",
    "CoverageConstraints",
    "optimize",
    "ComplianceChecker",
    "check",
    "check_swap",
    "index_violations",
    "detect",
    "suggest_fixes",
    "EngineResult",
    "run_engine",
    "running_counts",
]
