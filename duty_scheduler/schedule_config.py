"""
schedule_config.py — Rotation Labels, Shift Templates & Duty Rules

Reference deployment: cardiology fellowship, 26 two-week periods, 13 cycles.

ROTATION LABELS
───────────────
  Closed enumeration. Every label in the rotation grid must appear in
  ROTATION_CATEGORIES; anything else is rejected by validation.

    CLINICAL        Cath*, Echo*, EP, Nuclear*, AI*, CTS, SPC, Structural, Vascular
    ICU             ICU
    FLOOR           Floor A, Floor B
    NIGHTS          Nights (multi-week night-coverage rotation)
    RESEARCH        Research, Research 2
    ADMINISTRATIVE  Admin, E
    EMPTY           "" (unassigned)

SENIORITY TIERS
───────────────
  4 = most junior (first-year fellow), 6 = most senior.
    Tier 4: call only after a completed ICU period,
            float only after a completed floor period.
    Tier 6: no call before the senior-call milestone,
            no call/float inside a board-exam hard window.

DUTY WEEKENDS
─────────────
  Each period has two duty weekends. W1 Saturday = first Saturday on or after
  the period start, W2 Saturday = W1 + 7 days.
    Call   → Sat + Sun, 07:00-19:00 in-house
    Float  → Sat night only, 19:00-07:00
"""

from enum import Enum
from typing import Any, Dict, List, Set, Tuple


class RotationCategory(Enum):
    CLINICAL = "clinical"
    ICU = "icu"
    FLOOR = "floor"
    NIGHTS = "nights"
    RESEARCH = "research"
    ADMINISTRATIVE = "administrative"
    EMPTY = "empty"


class DutyType(Enum):
    CALL = "call"
    FLOAT = "float"


# ---------------------------------------------------------------------------
# Rotation label → category
# ---------------------------------------------------------------------------
ROTATION_CATEGORIES: Dict[str, RotationCategory] = {
    "":           RotationCategory.EMPTY,
    "AI":         RotationCategory.CLINICAL,
    "AI 2":       RotationCategory.CLINICAL,
    "AI 3":       RotationCategory.CLINICAL,
    "Admin":      RotationCategory.ADMINISTRATIVE,
    "CTS":        RotationCategory.CLINICAL,
    "Cath":       RotationCategory.CLINICAL,
    "Cath 2":     RotationCategory.CLINICAL,
    "Cath 3":     RotationCategory.CLINICAL,
    "E":          RotationCategory.ADMINISTRATIVE,
    "EP":         RotationCategory.CLINICAL,
    "Echo":       RotationCategory.CLINICAL,
    "Echo 2":     RotationCategory.CLINICAL,
    "Floor A":    RotationCategory.FLOOR,
    "Floor B":    RotationCategory.FLOOR,
    "ICU":        RotationCategory.ICU,
    "Nights":     RotationCategory.NIGHTS,
    "Nuclear":    RotationCategory.CLINICAL,
    "Nuclear 2":  RotationCategory.CLINICAL,
    "Research":   RotationCategory.RESEARCH,
    "Research 2": RotationCategory.RESEARCH,
    "SPC":        RotationCategory.CLINICAL,
    "Structural": RotationCategory.CLINICAL,
    "Vascular":   RotationCategory.CLINICAL,
}


def classify_rotation(label: str) -> RotationCategory:
    """
    Return the category for a rotation label.

    Raises KeyError for labels outside the enumeration; validation reports
    those before any component runs.
    """
    return ROTATION_CATEGORIES[label]


# ---------------------------------------------------------------------------
# Shift templates (hours are 0-23; night shifts cross midnight)
# weekdays_only: rotation not worked on Saturday/Sunday
# ---------------------------------------------------------------------------
SHIFT_TEMPLATES: Dict[str, Dict[str, Any]] = {
    # 12-hour rotations
    "ICU":        {"start_hour": 7,  "end_hour": 19, "hours": 12, "is_night": False, "weekdays_only": False},
    "Nights":     {"start_hour": 19, "end_hour": 7,  "hours": 12, "is_night": True,  "weekdays_only": True},

    # 10-hour weekday rotations
    "Floor A":    {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Floor B":    {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Cath":       {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Cath 2":     {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Cath 3":     {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Echo":       {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Echo 2":     {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "EP":         {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Nuclear":    {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},
    "Nuclear 2":  {"start_hour": 7,  "end_hour": 17, "hours": 10, "is_night": False, "weekdays_only": True},

    # 8-hour weekday rotations
    "AI":         {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "AI 2":       {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "AI 3":       {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "Research":   {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "Research 2": {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "CTS":        {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "Structural": {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "Vascular":   {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},
    "SPC":        {"start_hour": 8,  "end_hour": 16, "hours": 8,  "is_night": False, "weekdays_only": True},

    # No duty
    "Admin":      {"start_hour": 0,  "end_hour": 0,  "hours": 0,  "is_night": False, "weekdays_only": True},
    "E":          {"start_hour": 0,  "end_hour": 0,  "hours": 0,  "is_night": False, "weekdays_only": True},
    "":           {"start_hour": 0,  "end_hour": 0,  "hours": 0,  "is_night": False, "weekdays_only": True},
}

CALL_TEMPLATE: Dict[str, Any] = {"start_hour": 7, "end_hour": 19, "hours": 12, "is_night": False}
FLOAT_TEMPLATE: Dict[str, Any] = {"start_hour": 19, "end_hour": 7, "hours": 12, "is_night": True}


# ---------------------------------------------------------------------------
# Tiers & targets
# ---------------------------------------------------------------------------
JUNIOR_TIER = 4
SENIOR_TIER = 6

# tier → {call, float, coverage}
DEFAULT_TIER_TARGETS: Dict[int, Dict[str, int]] = {
    4: {"call": 5, "float": 5, "coverage": 4},
    5: {"call": 4, "float": 4, "coverage": 4},
    6: {"call": 2, "float": 3, "coverage": 4},
}

# Senior tier takes no call in periods starting before this many days after
# the first calendar day (2026-07-01 + 12 = period 2 of the reference year).
SENIOR_CALL_OFFSET_DAYS = 12


# ---------------------------------------------------------------------------
# Board exams (senior tier blackout)
# Hard window: 2 periods prior through the exam period.
# ---------------------------------------------------------------------------
BOARD_EXAMS: List[Dict[str, Any]] = [
    {"name": "ASE",   "exam_period_idx": 0,  "exam_weekend": 2},
    {"name": "CBCCT", "exam_period_idx": 3,  "exam_weekend": 2},
    {"name": "CBNC",  "exam_period_idx": 13, "exam_weekend": 1},
    {"name": "ACC",   "exam_period_idx": 19, "exam_weekend": 1},
    {"name": "CBCMR", "exam_period_idx": 21, "exam_weekend": 1},
]
EXAM_HARD_WINDOW_PERIODS = 2


def exam_blackout_periods(
    exams: List[Dict[str, Any]] = BOARD_EXAMS,
    lead_periods: int = EXAM_HARD_WINDOW_PERIODS,
) -> Set[int]:
    """Return the 0-based period indices covered by any exam's hard window."""
    blocked: Set[int] = set()
    for exam in exams:
        end = exam["exam_period_idx"]
        blocked.update(range(max(0, end - lead_periods), end + 1))
    return blocked


# ---------------------------------------------------------------------------
# Clinic coverage defaults
# ---------------------------------------------------------------------------
CANNOT_COVER_ROTATIONS: Set[str] = {
    "Cath", "Cath 2", "Cath 3", "ICU", "Floor A", "Floor B", "Nights", "",
}
JUNIOR_COVERAGE_EXCLUSION_PERIODS = 4     # junior tier cannot cover in periods 1-4
SENIOR_COVERAGE_EXCLUSION_START = 21      # senior tier cannot cover from period 21
COVERAGE_TARGET_PER_TRAINEE = 4
COVERAGE_SEED = 7
COVERAGE_ITERATIONS = 200
COVERAGE_RESTARTS = 3
SAME_CLINIC_DAY_PENALTY = 6.0
BACK_TO_BACK_PENALTY = 3.0

CLINIC_DAY_NAMES: Dict[int, str] = {0: "None", 1: "Mon", 2: "Tue", 3: "Wed", 4: "Thu", 5: "Fri"}


# ---------------------------------------------------------------------------
# Conflict detection
# ---------------------------------------------------------------------------
MUST_STAFF_ROTATIONS: List[str] = ["ICU", "Floor A", "Floor B", "Nights"]


# ---------------------------------------------------------------------------
# ACGME limits
# ---------------------------------------------------------------------------
ACGME_LIMITS: Dict[str, float] = {
    "weekly_hours_avg": 80,
    "averaging_weeks": 4,
    "max_daily_hours": 24,
    "min_rest_hours": 8,
    "days_off_per_28": 4,
    "max_consecutive_nights": 6,
    "post_call_rest_hours": 14,
}

RULE_LABELS: Dict[str, str] = {
    "80hr_weekly_avg":             "80-Hour Weekly Average",
    "24plus4_max_duty":            "24+4 Max Continuous Duty",
    "8hr_between_shifts":          "8-Hour Rest Between Shifts",
    "1_day_off_in_7":              "1 Day Off per 7 Days",
    "6_consecutive_nights":        "6 Consecutive Night Limit",
    "14hr_post_call_rest":         "14-Hour Post-Call Rest",
    "time_off_duty":               "Duty During Approved Time Off",
    "nights_adjacent_call":        "Call Adjacent to Night Coverage",
    "same_weekend_call_and_float": "Call and Float Same Weekend",
    "back_to_back_weekends":       "Back-to-Back Weekend Duty",
    "ineligible_duty":             "Duty Outside Eligibility",
    "relaxed_fallback":            "Relaxed Eligibility Assignment",
    "missing_call":                "Missing Call",
    "missing_float":               "Missing Float",
}

SLOT_WEEKENDS: Tuple[int, int] = (1, 2)
