"""
Era Ingredient Aggregator
=========================

Attaches to each era the set of distinct ingredients whose exposures start
inside the era window [era_start_date, era_end_date] (inclusive). Only the
exposure start is tested, the same windowing the era builder uses, so an
exposure that runs past the era end still counts.
"""

import logging
from typing import Dict, FrozenSet

import pandas as pd

from ..config.regimen_config import ERA_INGREDIENT_COLUMNS
from ..utils.interval_utils import grouped_frozensets

logger = logging.getLogger(__name__)


def build_era_ingredients(eras: pd.DataFrame, exposures: pd.DataFrame) -> pd.DataFrame:
    """
    Build the era -> ingredient relation.

    Eras of one person never overlap, so each exposure is matched to the
    latest era starting on or before it, then kept only if it also starts on
    or before that era's end.

    Args:
        eras: Era table (era_id, person_id, era_start_date, era_end_date)
        exposures: Exposure records (person_id, ingredient_id, start_date, ...)

    Returns:
        DataFrame with era_id, ingredient_id; one row per distinct pair
    """
    if len(eras) == 0 or len(exposures) == 0:
        return pd.DataFrame({
            'era_id': pd.Series(dtype='int64'),
            'ingredient_id': pd.Series(dtype='int64'),
        })

    left = exposures[['person_id', 'ingredient_id', 'start_date']]
    right = eras[['era_id', 'person_id', 'era_start_date', 'era_end_date']]

    # merge_asof needs the "by" and "on" keys to share a dtype on both sides
    left = left.astype({'start_date': 'datetime64[ns]'}).sort_values('start_date')
    right = right.astype({
        'person_id': left['person_id'].dtype,
        'era_start_date': 'datetime64[ns]',
        'era_end_date': 'datetime64[ns]',
    }).sort_values('era_start_date')

    joined = pd.merge_asof(
        left,
        right,
        left_on='start_date',
        right_on='era_start_date',
        by='person_id',
        direction='backward',
    )

    in_window = joined['era_id'].notna() & (joined['start_date'] <= joined['era_end_date'])
    n_outside = int((~in_window).sum())
    if n_outside:
        logger.warning(f"{n_outside:,} exposures start outside every era of their person")

    result = joined.loc[in_window, ERA_INGREDIENT_COLUMNS].astype('int64')
    result = result.drop_duplicates().sort_values(ERA_INGREDIENT_COLUMNS).reset_index(drop=True)

    logger.info(
        f"Attached {len(result):,} distinct ingredients to "
        f"{result['era_id'].nunique():,} eras"
    )
    return result


def era_ingredient_sets(era_ingredients: pd.DataFrame) -> Dict[int, FrozenSet[int]]:
    """Map era_id -> frozenset of ingredient ids."""
    return grouped_frozensets(era_ingredients, 'era_id', 'ingredient_id')
