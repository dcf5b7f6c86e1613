"""
Regimen Exposure Extractors
===========================

Raw drug exposures -> ingredient-level exposure records, and the regimen
catalog they are matched against.
"""

from .ingredient_resolver import (
    IngredientResolver,
    MappingResolver,
    ConceptAncestorResolver,
    RxNormResolver,
)

from .exposure_extractor import (
    read_table,
    load_drug_exposures,
    normalize_end_dates,
    resolve_exposures,
    extract_exposure_records,
)

from .regimen_catalog import (
    RegimenCatalogError,
    catalog_from_definitions,
    load_regimen_catalog,
    validate_regimen_catalog,
    get_ingredient_allowlist,
    get_regimen_ingredient_sets,
)

__all__ = [
    # Ingredient resolution
    'IngredientResolver',
    'MappingResolver',
    'ConceptAncestorResolver',
    'RxNormResolver',
    # Exposure extraction
    'read_table',
    'load_drug_exposures',
    'normalize_end_dates',
    'resolve_exposures',
    'extract_exposure_records',
    # Regimen catalog
    'RegimenCatalogError',
    'catalog_from_definitions',
    'load_regimen_catalog',
    'validate_regimen_catalog',
    'get_ingredient_allowlist',
    'get_regimen_ingredient_sets',
]
