"""
Regimen Exposure Transformers
=============================

Exposure records -> eras -> era ingredient sets -> regimen exposures.

- Era building: gap-tolerant collapsing of each person's exposures
- Era ingredients: distinct ingredients starting inside each era
- Regimen matching: exact ingredient-set equality against the catalog
"""

from .era_builder import (
    EraConstructionError,
    collapse_intervals,
    build_eras,
)

from .era_ingredient_aggregator import (
    build_era_ingredients,
    era_ingredient_sets,
)

from .regimen_matcher import (
    find_exact_matches,
    match_regimens,
    summarize_matches,
)

__all__ = [
    'EraConstructionError',
    'collapse_intervals',
    'build_eras',
    'build_era_ingredients',
    'era_ingredient_sets',
    'find_exact_matches',
    'match_regimens',
    'summarize_matches',
]
