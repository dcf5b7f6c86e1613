"""
Regimen Catalog Loader
======================

Loads regimen definitions (regimen id, name, ingredient ids) from CSV, YAML
or an in-memory DataFrame, and validates them before any era is built.

A catalog row is one (regimen, ingredient) pair; grouped by regimen_id the
ingredient ids form the regimen's required ingredient set.
"""

import logging
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Set, Union

import pandas as pd

from ..config.regimen_config import (
    CATALOG_COLUMNS,
    CATALOG_RENAMES,
    REGIMEN_DEFINITIONS_YAML,
    load_regimen_definitions,
)
from ..utils.interval_utils import grouped_frozensets

logger = logging.getLogger(__name__)


class RegimenCatalogError(ValueError):
    """Raised when a regimen catalog breaks its invariants."""


# =============================================================================
# LOADING
# =============================================================================

def catalog_from_definitions(definitions: Dict) -> pd.DataFrame:
    """
    Flatten YAML regimen definitions into catalog rows.

    Args:
        definitions: Mapping of regimen key -> {regimen_id, name, ingredients}.
            Keys starting with '_' are skipped. ``ingredients`` is either a
            mapping of ingredient name -> id or a list of ids.

    Returns:
        Catalog DataFrame with regimen_id, regimen_name, ingredient_id,
        ingredient_name
    """
    rows = []

    for key, regimen in definitions.items():
        if str(key).startswith('_') or not isinstance(regimen, dict):
            continue

        regimen_id = regimen.get('regimen_id')
        regimen_name = regimen.get('name', key)
        ingredients = regimen.get('ingredients') or {}

        if isinstance(ingredients, dict):
            pairs = [(name, ing_id) for name, ing_id in ingredients.items()]
        else:
            pairs = [(None, ing_id) for ing_id in ingredients]

        if not pairs:
            # Kept so validation can report the empty regimen by id
            rows.append({
                'regimen_id': regimen_id,
                'regimen_name': regimen_name,
                'ingredient_id': None,
                'ingredient_name': None,
            })

        for ingredient_name, ingredient_id in pairs:
            rows.append({
                'regimen_id': regimen_id,
                'regimen_name': regimen_name,
                'ingredient_id': ingredient_id,
                'ingredient_name': ingredient_name,
            })

    return pd.DataFrame(rows, columns=CATALOG_COLUMNS + ['ingredient_name'])


def load_regimen_catalog(
    path: Optional[Union[str, Path]] = None,
    validate: bool = True
) -> pd.DataFrame:
    """
    Load a regimen catalog.

    ``.yaml``/``.yml`` files are read as regimen definitions; anything else is
    read as a delimited table (pipe-delimited for ``.txt``). Columns named
    regimen_concept_id / ingredient_concept_id are renamed.

    Args:
        path: Catalog file (default: bundled regimen_definitions.yaml)
        validate: Validate and normalise before returning

    Returns:
        Catalog DataFrame
    """
    path = Path(path) if path else REGIMEN_DEFINITIONS_YAML

    if path.suffix.lower() in ('.yaml', '.yml'):
        catalog = catalog_from_definitions(load_regimen_definitions(path))
    else:
        sep = '|' if path.suffix.lower() == '.txt' else ','
        catalog = pd.read_csv(path, sep=sep)
        catalog = catalog.rename(columns=CATALOG_RENAMES)

    logger.info(f"Loaded {len(catalog):,} catalog rows from {path}")

    if validate:
        catalog = validate_regimen_catalog(catalog)

    return catalog


# =============================================================================
# VALIDATION
# =============================================================================

def validate_regimen_catalog(catalog: pd.DataFrame) -> pd.DataFrame:
    """
    Validate a regimen catalog and return a normalised copy.

    Checks:
    - regimen_id, regimen_name and ingredient_id columns are present
    - no regimen_id is missing, and ids are numeric
    - each regimen_id maps to exactly one regimen_name
    - each regimen has at least one ingredient

    Duplicate (regimen_id, ingredient_id) rows are collapsed.

    Raises:
        RegimenCatalogError: on any violation
    """
    df = catalog.rename(columns=CATALOG_RENAMES).copy()

    missing = [c for c in CATALOG_COLUMNS if c not in df.columns]
    if missing:
        raise RegimenCatalogError(f"Regimen catalog is missing columns: {missing}")

    if df['regimen_id'].isna().any():
        raise RegimenCatalogError(
            f"{int(df['regimen_id'].isna().sum())} catalog rows have no regimen_id"
        )

    for col in ('regimen_id', 'ingredient_id'):
        numeric = pd.to_numeric(df[col], errors='coerce')
        bad = numeric.isna() & df[col].notna()
        if bad.any():
            raise RegimenCatalogError(
                f"Non-numeric {col} in catalog rows {df.index[bad].tolist()}: "
                f"{df.loc[bad, col].astype(str).unique().tolist()}"
            )
        df[col] = numeric

    unnamed = sorted(df.loc[df['regimen_name'].isna(), 'regimen_id'].unique().tolist())
    if unnamed:
        raise RegimenCatalogError(f"Regimens with no regimen_name: {unnamed}")

    names_per_regimen = df.groupby('regimen_id')['regimen_name'].nunique(dropna=False)
    inconsistent = sorted(names_per_regimen[names_per_regimen != 1].index.tolist())
    if inconsistent:
        raise RegimenCatalogError(
            f"Regimens with inconsistent regimen_name: {inconsistent}"
        )

    ingredients_per_regimen = df.groupby('regimen_id')['ingredient_id'].count()
    empty = sorted(ingredients_per_regimen[ingredients_per_regimen == 0].index.tolist())
    if empty:
        raise RegimenCatalogError(f"Regimens with no ingredients: {empty}")

    # Rows with a null ingredient next to real ones carry nothing
    df = df[df['ingredient_id'].notna()].copy()

    df['regimen_id'] = df['regimen_id'].astype('int64')
    df['ingredient_id'] = df['ingredient_id'].astype('int64')

    n_before = len(df)
    df = df.drop_duplicates(subset=['regimen_id', 'ingredient_id'])
    if len(df) < n_before:
        logger.info(f"Collapsed {n_before - len(df)} duplicate regimen ingredient rows")

    return df.sort_values(['regimen_id', 'ingredient_id']).reset_index(drop=True)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_ingredient_allowlist(catalog: pd.DataFrame) -> Set[int]:
    """Ingredient ids referenced by at least one regimen."""
    return set(catalog['ingredient_id'].dropna().astype('int64').tolist())


def get_regimen_ingredient_sets(catalog: pd.DataFrame) -> Dict[int, FrozenSet[int]]:
    """Map regimen_id -> frozenset of required ingredient ids."""
    return grouped_frozensets(catalog, 'regimen_id', 'ingredient_id')
