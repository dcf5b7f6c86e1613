"""
Drug Exposure Extractor
=======================

Loads raw drug exposure records, fills in missing end dates, and resolves
each record to ingredient-level exposure records restricted to the
ingredients referenced by the regimen catalog.

Output columns: person_id, ingredient_id, start_date, end_date
"""

import logging
from pathlib import Path
from typing import Optional, Set, Union

import pandas as pd

from ..config.regimen_config import (
    RAW_DATE_COLUMNS,
    EXPOSURE_COLUMNS,
    ERA_CONFIG,
)
from .ingredient_resolver import IngredientResolver

logger = logging.getLogger(__name__)


# =============================================================================
# LOADING
# =============================================================================

def read_table(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """
    Read a parquet, CSV or pipe-delimited (.txt) table.

    Column names are lower-cased so OMOP exports in either case work.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == '.parquet':
        df = pd.read_parquet(path)
    else:
        sep = '|' if suffix == '.txt' else ','
        df = pd.read_csv(path, sep=sep, low_memory=False, **kwargs)

    return df.rename(columns=str.lower)


def load_drug_exposures(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load raw DRUG_EXPOSURE records.

    Args:
        path: .parquet, .csv or pipe-delimited .txt file

    Returns:
        DataFrame with parsed start/end dates
    """
    df = read_table(path)

    for col in RAW_DATE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors='coerce')

    logger.info(f"Loaded {len(df):,} drug exposure records from {path}")
    return df


def _require_columns(df: pd.DataFrame, columns, table: str):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"{table} is missing columns: {missing}")


# =============================================================================
# END DATE NORMALIZATION
# =============================================================================

def _as_dates(values: pd.Series) -> pd.Series:
    """Parse to midnight-normalised dates at nanosecond resolution."""
    # Start and end columns may arrive in different units (e.g. s vs ns)
    return pd.to_datetime(values, errors='coerce').dt.normalize().astype('datetime64[ns]')


def normalize_end_dates(
    df: pd.DataFrame,
    default_days: Optional[int] = None
) -> pd.DataFrame:
    """
    Fill drug_exposure_end_date in priority order:
    recorded end date, start + days_supply, start + default_days.

    Records whose end precedes their start are clamped to the start date.
    Records without a person or start date are dropped.

    Args:
        df: Raw drug exposure records
        default_days: Fallback exposure length (default from ERA_CONFIG)

    Returns:
        Copy of df with a complete drug_exposure_end_date column
    """
    if default_days is None:
        default_days = ERA_CONFIG.default_exposure_days

    _require_columns(df, ['person_id', 'drug_exposure_start_date'], 'Drug exposure table')

    # Date fallbacks align on the index, so it must be unique
    df = df.reset_index(drop=True)
    start = _as_dates(df['drug_exposure_start_date'])
    df['drug_exposure_start_date'] = start

    n_dropped = int((df['person_id'].isna() | start.isna()).sum())
    if n_dropped:
        logger.warning(f"Dropping {n_dropped:,} exposures without person_id or start date")
        df = df[df['person_id'].notna() & df['drug_exposure_start_date'].notna()].copy()
        start = df['drug_exposure_start_date']

    if 'drug_exposure_end_date' in df.columns:
        end = _as_dates(df['drug_exposure_end_date'])
    else:
        end = pd.Series(pd.NaT, index=df.index, dtype='datetime64[ns]')

    if 'days_supply' in df.columns:
        supply = pd.to_numeric(df['days_supply'], errors='coerce')
        end = end.fillna(start + pd.to_timedelta(supply, unit='D'))

    end = end.fillna(start + pd.Timedelta(days=default_days))

    inverted = end < start
    if inverted.any():
        logger.warning(f"Clamping {int(inverted.sum()):,} exposures that end before they start")
        end = end.where(~inverted, start)

    df['drug_exposure_end_date'] = end
    return df


# =============================================================================
# INGREDIENT RESOLUTION
# =============================================================================

def resolve_exposures(
    df: pd.DataFrame,
    resolver: IngredientResolver,
    allowlist: Optional[Set[int]] = None
) -> pd.DataFrame:
    """
    Explode raw exposures to one row per resolved ingredient.

    Ingredients outside the allowlist are dropped silently: they belong to no
    regimen and take no part in era construction.

    Args:
        df: Drug exposures with a complete drug_exposure_end_date
        resolver: Ingredient resolver
        allowlist: Ingredient ids to keep (None keeps all)

    Returns:
        DataFrame with person_id, ingredient_id, start_date, end_date
    """
    _require_columns(
        df,
        ['person_id', 'drug_concept_id', 'drug_exposure_start_date', 'drug_exposure_end_date'],
        'Drug exposure table'
    )

    lookup = resolver.mapping_frame(df['drug_concept_id'], allowlist)

    records = df[['person_id', 'drug_concept_id',
                  'drug_exposure_start_date', 'drug_exposure_end_date']].copy()
    records = records[records['drug_concept_id'].notna()]
    records['drug_concept_id'] = records['drug_concept_id'].astype('int64')

    records = records.merge(lookup, on='drug_concept_id', how='inner')
    records = records.rename(columns={
        'drug_exposure_start_date': 'start_date',
        'drug_exposure_end_date': 'end_date',
    })
    records['person_id'] = records['person_id'].astype('int64')

    return records[EXPOSURE_COLUMNS]


def extract_exposure_records(
    raw_df: pd.DataFrame,
    resolver: IngredientResolver,
    allowlist: Optional[Set[int]] = None,
    default_days: Optional[int] = None
) -> pd.DataFrame:
    """
    Full extraction: normalise end dates, then resolve to ingredients.

    Returns:
        Exposure records sorted by person_id, start_date, ingredient_id
    """
    normalized = normalize_end_dates(raw_df, default_days=default_days)
    records = resolve_exposures(normalized, resolver, allowlist)

    records = records.sort_values(['person_id', 'start_date', 'ingredient_id'])
    records = records.reset_index(drop=True)

    logger.info(
        f"Resolved {len(raw_df):,} drug exposures to {len(records):,} ingredient exposures "
        f"for {records['person_id'].nunique():,} persons"
    )
    return records
