"""
Regimen Exposure Configuration Package
"""

from .regimen_config import (
    # Paths
    MODULE_ROOT,
    DATA_DIR,
    OUTPUT_DIR,
    DRUG_EXPOSURE_FILE,
    CONCEPT_ANCESTOR_FILE,
    CONCEPT_FILE,
    RXNORM_DB,
    REGIMEN_DEFINITIONS_YAML,

    # Columns
    RAW_EXPOSURE_COLUMNS,
    EXPOSURE_COLUMNS,
    ERA_COLUMNS,
    ERA_INGREDIENT_COLUMNS,
    CATALOG_COLUMNS,
    REGIMEN_EXPOSURE_COLUMNS,

    # Configs
    EraConfig,
    OutputConfig,
    PipelineConfig,
    ERA_CONFIG,
    OUTPUT_CONFIG,

    # Helpers
    load_regimen_definitions,
    ensure_directories,
)

__all__ = [
    'MODULE_ROOT',
    'DATA_DIR',
    'OUTPUT_DIR',
    'DRUG_EXPOSURE_FILE',
    'CONCEPT_ANCESTOR_FILE',
    'CONCEPT_FILE',
    'RXNORM_DB',
    'REGIMEN_DEFINITIONS_YAML',
    'RAW_EXPOSURE_COLUMNS',
    'EXPOSURE_COLUMNS',
    'ERA_COLUMNS',
    'ERA_INGREDIENT_COLUMNS',
    'CATALOG_COLUMNS',
    'REGIMEN_EXPOSURE_COLUMNS',
    'EraConfig',
    'OutputConfig',
    'PipelineConfig',
    'ERA_CONFIG',
    'OUTPUT_CONFIG',
    'load_regimen_definitions',
    'ensure_directories',
]
