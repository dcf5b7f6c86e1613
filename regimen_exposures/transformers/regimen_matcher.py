"""
Regimen Matcher
===============

Matches each era's ingredient set against the regimen catalog. A match
requires exact set equality:

    match_count == regimen_size == era_size

where match_count is the number of ingredients the era and regimen share.
Checking the era size as well as the regimen size is what stops an era with
extra ingredients from matching a smaller regimen.

Regimens with identical ingredient sets each produce their own row.
"""

import logging

import pandas as pd

from ..config.regimen_config import REGIMEN_EXPOSURE_COLUMNS

logger = logging.getLogger(__name__)


def empty_regimen_exposures() -> pd.DataFrame:
    """RegimenExposure table with no rows and the expected dtypes."""
    return pd.DataFrame({
        'era_id': pd.Series(dtype='int64'),
        'person_id': pd.Series(dtype='int64'),
        'regimen_start_date': pd.Series(dtype='datetime64[ns]'),
        'regimen_end_date': pd.Series(dtype='datetime64[ns]'),
        'regimen_id': pd.Series(dtype='int64'),
        'regimen_name': pd.Series(dtype='object'),
    })[REGIMEN_EXPOSURE_COLUMNS]


# =============================================================================
# SET EQUALITY JOIN
# =============================================================================

def find_exact_matches(era_ingredients: pd.DataFrame, catalog: pd.DataFrame) -> pd.DataFrame:
    """
    Find (era, regimen) pairs whose ingredient sets are equal.

    Args:
        era_ingredients: era_id, ingredient_id (distinct pairs)
        catalog: regimen_id, regimen_name, ingredient_id (distinct pairs)

    Returns:
        DataFrame with era_id, regimen_id, match_count, regimen_size, era_size
    """
    era_ing = era_ingredients[['era_id', 'ingredient_id']].drop_duplicates()
    regimen_ing = catalog[['regimen_id', 'ingredient_id']].drop_duplicates()

    era_size = era_ing.groupby('era_id').size().rename('era_size')
    regimen_size = regimen_ing.groupby('regimen_id').size().rename('regimen_size')

    # Pairs sharing at least one ingredient, with the size of the intersection
    shared = era_ing.merge(regimen_ing, on='ingredient_id', how='inner')
    pairs = shared.groupby(['era_id', 'regimen_id']).size().rename('match_count').reset_index()

    pairs = pairs.join(era_size, on='era_id').join(regimen_size, on='regimen_id')

    exact = (
        (pairs['match_count'] == pairs['regimen_size'])
        & (pairs['era_size'] == pairs['regimen_size'])
    )
    return pairs[exact].reset_index(drop=True)


def match_regimens(
    eras: pd.DataFrame,
    era_ingredients: pd.DataFrame,
    catalog: pd.DataFrame
) -> pd.DataFrame:
    """
    Build regimen exposures.

    Args:
        eras: Era table (era_id, person_id, era_start_date, era_end_date)
        era_ingredients: Era ingredient relation (era_id, ingredient_id)
        catalog: Validated regimen catalog

    Returns:
        DataFrame with era_id, person_id, regimen_start_date,
        regimen_end_date, regimen_id, regimen_name; one row per exact match
    """
    if len(eras) == 0 or len(era_ingredients) == 0 or len(catalog) == 0:
        logger.warning("0 regimens found")
        return empty_regimen_exposures()

    matches = find_exact_matches(era_ingredients, catalog)

    names = catalog[['regimen_id', 'regimen_name']].drop_duplicates('regimen_id')

    result = (
        matches[['era_id', 'regimen_id']]
        .merge(eras, on='era_id', how='inner')
        .merge(names, on='regimen_id', how='left')
        .rename(columns={
            'era_start_date': 'regimen_start_date',
            'era_end_date': 'regimen_end_date',
        })
    )
    result = result[REGIMEN_EXPOSURE_COLUMNS]
    result = result.sort_values(['era_id', 'regimen_id']).reset_index(drop=True)

    if len(result) == 0:
        logger.warning("0 regimens found")
    else:
        logger.info(
            f"Matched {len(result):,} regimen exposures "
            f"({result['person_id'].nunique():,} persons, "
            f"{result['regimen_id'].nunique():,} regimens)"
        )

    return result


# =============================================================================
# REPORTING
# =============================================================================

def summarize_matches(regimen_exposures: pd.DataFrame, catalog: pd.DataFrame) -> pd.DataFrame:
    """
    Per-regimen match counts, including regimens that never matched.

    Returns:
        DataFrame with regimen_id, regimen_name, n_ingredients, n_eras,
        n_persons, sorted by n_eras descending
    """
    regimens = (
        catalog.groupby(['regimen_id', 'regimen_name'])['ingredient_id']
        .nunique()
        .rename('n_ingredients')
        .reset_index()
    )

    counts = regimen_exposures.groupby('regimen_id').agg(
        n_eras=('era_id', 'nunique'),
        n_persons=('person_id', 'nunique'),
    )

    summary = regimens.join(counts, on='regimen_id')
    summary[['n_eras', 'n_persons']] = summary[['n_eras', 'n_persons']].fillna(0).astype('int64')

    return summary.sort_values(['n_eras', 'regimen_id'], ascending=[False, True]).reset_index(drop=True)
