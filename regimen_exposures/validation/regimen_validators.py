"""
Regimen Validators
==================

Validation suite for each pipeline stage.

Validation targets:
- Exposures: no nulls, no exposure ending before it starts
- Eras: end >= start, dense unique ids, per-person eras disjoint and
  separated by more than the gap tolerance
- Regimen exposures: every era's ingredient set equals its regimen's set
"""

import logging
from typing import List, Optional

import pandas as pd

from ..config.regimen_config import ERA_CONFIG, EXPOSURE_COLUMNS
from ..utils.interval_utils import grouped_frozensets

logger = logging.getLogger(__name__)


class ValidationResult:
    """Container for validation results."""

    def __init__(self, name: str):
        self.name = name
        self.checks = []
        self.passed = 0
        self.failed = 0

    def add_check(self, description: str, passed: bool, details: str = ""):
        """Add a validation check result."""
        self.checks.append({
            'description': description,
            'passed': bool(passed),
            'details': details,
        })
        if passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        """Get summary string."""
        status = "PASS" if self.failed == 0 else "FAIL"
        return f"{self.name}: {status} ({self.passed}/{self.passed + self.failed} checks)"

    def report(self) -> str:
        """Get full report string."""
        lines = [f"\n{'='*60}", f"{self.name}", "="*60]
        for check in self.checks:
            icon = "✓" if check['passed'] else "✗"
            lines.append(f"  {icon} {check['description']}")
            if check['details']:
                lines.append(f"      {check['details']}")
        lines.append(self.summary())
        return "\n".join(lines)


def validate_exposures(exposures: pd.DataFrame) -> ValidationResult:
    """Validate ingredient-level exposure records."""
    result = ValidationResult("Exposures: Ingredient Records")

    # Informational: no catalogued exposures is a valid input
    result.add_check("Exposure records counted", True, f"{len(exposures):,} records")

    missing = [c for c in EXPOSURE_COLUMNS if c not in exposures.columns]
    result.add_check(
        "Required columns present",
        not missing,
        f"Missing: {missing}" if missing else ""
    )
    if missing:
        return result

    n_null = int(exposures[EXPOSURE_COLUMNS].isna().any(axis=1).sum())
    result.add_check("No null fields", n_null == 0, f"{n_null:,} rows with nulls")

    n_inverted = int((exposures['end_date'] < exposures['start_date']).sum())
    result.add_check("No exposure ends before it starts", n_inverted == 0, f"{n_inverted:,} rows")

    return result


def validate_eras(eras: pd.DataFrame, gap_days: Optional[int] = None) -> ValidationResult:
    """Validate era construction invariants."""
    if gap_days is None:
        gap_days = ERA_CONFIG.gap_days

    result = ValidationResult("Eras: Gap-Tolerant Collapsing")

    n_inverted = int((eras['era_end_date'] < eras['era_start_date']).sum())
    result.add_check("Every era ends on or after its start", n_inverted == 0, f"{n_inverted:,} eras")

    ids = eras['era_id']
    dense = ids.is_unique and (len(ids) == 0 or (ids.min() == 1 and ids.max() == len(ids)))
    result.add_check("Era ids are dense and unique", dense, f"{len(ids):,} eras")

    ordered = eras.sort_values(['person_id', 'era_start_date'])
    prev_end = ordered.groupby('person_id')['era_end_date'].shift()
    gaps = (ordered['era_start_date'] - prev_end).dt.days
    n_too_close = int((gaps.notna() & (gaps <= gap_days)).sum())
    result.add_check(
        f"Consecutive eras of a person are more than {gap_days} days apart",
        n_too_close == 0,
        f"{n_too_close:,} violations"
    )

    return result


def validate_regimen_exposures(
    regimen_exposures: pd.DataFrame,
    era_ingredients: pd.DataFrame,
    catalog: pd.DataFrame
) -> ValidationResult:
    """Validate that every matched era has exactly its regimen's ingredients."""
    result = ValidationResult("Regimen Exposures: Exact Matching")

    era_sets = grouped_frozensets(era_ingredients, 'era_id', 'ingredient_id')
    regimen_sets = grouped_frozensets(catalog, 'regimen_id', 'ingredient_id')

    mismatched = [
        (int(row.era_id), int(row.regimen_id))
        for row in regimen_exposures.itertuples(index=False)
        if era_sets.get(int(row.era_id)) != regimen_sets.get(int(row.regimen_id))
    ]
    result.add_check(
        "Era ingredient set equals regimen ingredient set",
        not mismatched,
        f"Mismatched (era_id, regimen_id): {mismatched[:10]}" if mismatched
        else f"{len(regimen_exposures):,} rows checked"
    )

    n_dupes = int(regimen_exposures.duplicated(['era_id', 'regimen_id']).sum())
    result.add_check("One row per era and regimen", n_dupes == 0, f"{n_dupes:,} duplicates")

    return result


def run_all_validations(
    exposures: pd.DataFrame,
    eras: pd.DataFrame,
    era_ingredients: pd.DataFrame,
    regimen_exposures: pd.DataFrame,
    catalog: pd.DataFrame,
    gap_days: Optional[int] = None
) -> List[ValidationResult]:
    """Run every validator and log each report."""
    results = [
        validate_exposures(exposures),
        validate_eras(eras, gap_days),
        validate_regimen_exposures(regimen_exposures, era_ingredients, catalog),
    ]

    for r in results:
        logger.info(r.report())

    n_failed = sum(1 for r in results if not r.ok)
    if n_failed:
        logger.warning(f"{n_failed}/{len(results)} validation stages failed")

    return results
