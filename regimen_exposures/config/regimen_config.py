"""
Regimen Exposure Configuration
==============================

Central configuration for the regimen exposure pipeline.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import yaml


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

MODULE_ROOT = Path(__file__).parent.parent
DATA_DIR = MODULE_ROOT / "data"
OUTPUT_DIR = MODULE_ROOT / "outputs"

# Input data
DRUG_EXPOSURE_FILE = DATA_DIR / "drug_exposure.txt"
CONCEPT_ANCESTOR_FILE = DATA_DIR / "concept_ancestor.txt"
CONCEPT_FILE = DATA_DIR / "concept.txt"
RXNORM_DB = DATA_DIR / "rxnorm" / "rxnorm.db"

# Config files
CONFIG_DIR = MODULE_ROOT / "config"
REGIMEN_DEFINITIONS_YAML = CONFIG_DIR / "regimen_definitions.yaml"


# =============================================================================
# TABLE COLUMNS
# =============================================================================

# Raw OMOP DRUG_EXPOSURE subset
RAW_EXPOSURE_COLUMNS: List[str] = [
    'drug_exposure_id',
    'person_id',
    'drug_concept_id',
    'drug_exposure_start_date',
    'drug_exposure_end_date',
    'days_supply',
]
RAW_DATE_COLUMNS = ['drug_exposure_start_date', 'drug_exposure_end_date']

# Ingredient-level exposure records
EXPOSURE_COLUMNS = ['person_id', 'ingredient_id', 'start_date', 'end_date']

ERA_COLUMNS = ['era_id', 'person_id', 'era_start_date', 'era_end_date']

ERA_INGREDIENT_COLUMNS = ['era_id', 'ingredient_id']

CATALOG_COLUMNS = ['regimen_id', 'regimen_name', 'ingredient_id']

# Column renames applied to catalog CSVs exported from the OMOP tooling
CATALOG_RENAMES: Dict[str, str] = {
    'regimen_concept_id': 'regimen_id',
    'ingredient_concept_id': 'ingredient_id',
}

REGIMEN_EXPOSURE_COLUMNS = [
    'era_id',
    'person_id',
    'regimen_start_date',
    'regimen_end_date',
    'regimen_id',
    'regimen_name',
]


# =============================================================================
# ERA CONFIGURATION
# =============================================================================

@dataclass
class EraConfig:
    """Era collapsing settings."""

    # Maximum idle days between two exposures of the same era
    gap_days: int = 30

    # Exposure length when neither an end date nor days supply is recorded
    default_exposure_days: int = 1

    # Worker processes for era building (1 = in-process)
    n_workers: int = 1


ERA_CONFIG = EraConfig()


# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================

@dataclass
class OutputConfig:
    """Result table settings."""

    table_name: str = "regimen"

    # One of: 'parquet', 'csv', 'sqlite'
    sink: str = "parquet"

    # Directory for parquet/csv sinks, database file for the sqlite sink
    location: Path = OUTPUT_DIR


OUTPUT_CONFIG = OutputConfig()


@dataclass
class PipelineConfig:
    """Everything run_pipeline needs, passed explicitly."""

    era: EraConfig = field(default_factory=EraConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Run the validation suite after matching
    validate: bool = False


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def load_regimen_definitions(path: Optional[Path] = None) -> Dict:
    """Load regimen definitions from YAML."""
    with open(path or REGIMEN_DEFINITIONS_YAML, 'r') as f:
        return yaml.safe_load(f)


def ensure_directories():
    """Create all required output directories."""
    for dir_path in [DATA_DIR, OUTPUT_DIR]:
        dir_path.mkdir(parents=True, exist_ok=True)
