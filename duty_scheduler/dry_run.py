"""
dry_run.py — Full engine run over the configured inputs

Full orchestration:
  1. Load roster, rotation grid, period calendar, time off, tier targets
  2. Validate inputs
  3. Assign call / float duty
  4. Optimize clinic coverage
  5. Detect conflicts (double bookings, coverage gaps, duty-hour rules)
  6. Print summary to console (optionally write the result as JSON)

Usage:
  python -m duty_scheduler.dry_run
  python -m duty_scheduler.dry_run --config-dir config/ --seed 11 --output-json outputs/run.json
  duty-dry-run --verbose
"""

import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Optional

from duty_scheduler.clinic_coverage import CoverageConstraints
from duty_scheduler.config import DEFAULT_CONFIG_DIR, get_config, targets_for
from duty_scheduler.engine import EngineResult, run_engine, tier_balance
from duty_scheduler.schedule_config import CLINIC_DAY_NAMES, COVERAGE_SEED, RULE_LABELS
from duty_scheduler.validation import ScheduleInputError, validate_inputs

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def run_dry_run(
    config_dir: Optional[Path] = None,
    seed: int = COVERAGE_SEED,
    output_json: Optional[Path] = None,
) -> Optional[EngineResult]:
    """
    Run the whole engine on config_dir and print a step-by-step summary.

    Returns the EngineResult, or None if the inputs failed validation.
    """
    sep = "=" * 60
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

    print(f"\n{sep}")
    print(f"  DRY RUN — Duty Assignment & Compliance Engine")
    print(f"  Config: {config_dir}")
    print(f"{sep}\n")

    # Step 1: Load
    print("Step 1/5: Loading configuration...")
    cfg = get_config(config_dir)
    roster = cfg["roster"]
    periods = cfg["periods"]
    time_off = cfg["time_off"]
    tier_targets = cfg["tier_targets"]
    approved = sum(1 for r in time_off if r.approved)
    print(
        f"  ✓ {len(roster)} trainees | {len(periods)} periods "
        f"({periods[0].start} → {periods[-1].end}) | {approved} approved time-off ranges"
        if periods else f"  ✓ {len(roster)} trainees | no periods"
    )

    # Step 2: Validate
    print("\nStep 2/5: Validating inputs...")
    try:
        validate_inputs(
            roster, cfg["rotation_grid"], periods,
            targets_for(tier_targets, "call"),
            targets_for(tier_targets, "float"),
            time_off,
        )
    except ScheduleInputError as e:
        for err in e.errors:
            print(f"  ✗ INPUT ERROR: {err}")
        print("\n  ✗ Cannot proceed — fix input errors above.")
        return None
    print("  ✓ Inputs valid")

    # Steps 3-5: Engine
    print("\nStep 3/5: Assigning call / float...")
    constraints = CoverageConstraints(
        target_per_trainee=targets_for(tier_targets, "coverage"),
        seed=seed,
    )
    result = run_engine(
        roster,
        cfg["rotation_grid"],
        periods,
        tier_targets,
        time_off=time_off,
        day_overrides=cfg["day_overrides"],
        coverage_constraints=constraints,
        settings=cfg["settings"],
    )
    assignment = result.assignment
    n_slots = len(assignment.call_schedule) + len(assignment.float_schedule)
    status = "✓" if not assignment.missing_slots else "✗"
    print(f"  {status} {n_slots} slots | {len(assignment.relaxed_slots)} relaxed | {len(assignment.missing_slots)} missing")
    for slot in assignment.missing_slots:
        print(f"    ✗ {slot}")

    print("\nStep 4/5: Optimizing clinic coverage...")
    coverage = result.coverage
    status = "✓" if not coverage.uncovered else "✗"
    print(f"  {status} {len(coverage.entries)} clinic weeks | {len(coverage.uncovered)} uncovered | cost {coverage.cost:.2f} (seed {seed})")
    for e in coverage.uncovered:
        print(f"    ✗ B{e.period} week {e.week}: {e.absent} ({CLINIC_DAY_NAMES[e.absent_clinic_day]} clinic) uncovered")

    print("\nStep 5/5: Detecting conflicts...")
    conflicts = result.conflicts
    status = "✗" if conflicts.has_errors else "✓"
    print(f"  {status} Double bookings: {len(conflicts.double_bookings)}")
    print(f"    Coverage gaps:   {len(conflicts.coverage_gaps)}")
    print(f"    Violations:      {len(conflicts.acgme_violations)}")
    by_rule = Counter(v.rule for v in conflicts.acgme_violations)
    for rule, n in sorted(by_rule.items()):
        print(f"      {RULE_LABELS.get(rule, rule):<34} {n}")

    # Summary
    print(f"\n{sep}")
    print("  RUNNING COUNTS (actual / target)")
    print(f"{sep}")
    print(f"  {'Trainee':<16} {'Tier':>4} {'Call':>7} {'Float':>7} {'Clinic':>7}")
    tiers = {t.name: t.tier for t in roster}
    for name, c in result.running_counts.items():
        print(
            f"  {name:<16} {tiers[name]:>4} "
            f"{c['call']:>3}/{c['call_target']:<3} {c['float']:>3}/{c['float_target']:<3} "
            f"{c['coverage']:>3}/{c['coverage_target']:<3}"
        )

    print(f"\n  Tier balance (min-max):")
    for tier, kinds in tier_balance(roster, result.running_counts).items():
        spread = "  ".join(f"{k} {v['min']}-{v['max']}" for k, v in kinds.items())
        print(f"    Tier {tier}: {spread}")
    print(f"\n{sep}\n")

    if output_json:
        output_json = Path(output_json)
        output_json.parent.mkdir(parents=True, exist_ok=True)
        with open(output_json, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"  ✓ Result JSON → {output_json}")

    return result


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Dry-run duty assignment, clinic coverage and compliance check"
    )
    parser.add_argument("--config-dir",  default=None, help="Input directory (default: config/)")
    parser.add_argument("--seed",        type=int, default=COVERAGE_SEED, help="Clinic coverage search seed")
    parser.add_argument("--output-json", default=None, help="Write the engine result to this JSON file")
    parser.add_argument("--verbose",     action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config_dir = Path(args.config_dir) if args.config_dir else None
    if config_dir is not None and not config_dir.is_dir():
        print(f"Error: config directory not found: {config_dir}")
        sys.exit(1)

    result = run_dry_run(
        config_dir,
        seed=args.seed,
        output_json=Path(args.output_json) if args.output_json else None,
    )
    if result is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
