"""
Regimen Exposure Pipeline
=========================

Identifies drug regimen exposures: continuous periods during which a person
is exposed to exactly the combination of ingredients that defines a regimen.

Stages:
1. Resolve raw drug exposures to catalog ingredients (others are ignored)
2. Collapse each person's exposures into eras with a 30-day gap tolerance,
   ignoring which ingredient each exposure is for
3. Collect the distinct ingredients starting inside each era
4. Keep eras whose ingredient set equals a regimen's ingredient set
5. Write the regimen table
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .config.regimen_config import (
    CONCEPT_ANCESTOR_FILE,
    CONCEPT_FILE,
    DRUG_EXPOSURE_FILE,
    EraConfig,
    OutputConfig,
    PipelineConfig,
)
from .extractors.exposure_extractor import (
    read_table,
    load_drug_exposures,
    extract_exposure_records,
)
from .extractors.ingredient_resolver import (
    IngredientResolver,
    ConceptAncestorResolver,
    RxNormResolver,
)
from .extractors.regimen_catalog import (
    load_regimen_catalog,
    validate_regimen_catalog,
    get_ingredient_allowlist,
)
from .transformers.era_builder import build_eras
from .transformers.era_ingredient_aggregator import build_era_ingredients
from .transformers.regimen_matcher import match_regimens, summarize_matches
from .exporters.result_sink import ResultSink, WriteResult, get_sink
from .validation.regimen_validators import ValidationResult, run_all_validations

logger = logging.getLogger(__name__)


@dataclass
class RegimenPipelineResult:
    """Every intermediate table of one pipeline run."""

    exposures: pd.DataFrame
    eras: pd.DataFrame
    era_ingredients: pd.DataFrame
    regimen_exposures: pd.DataFrame
    write_result: Optional[WriteResult] = None
    validation: Optional[List[ValidationResult]] = None

    @property
    def n_rows(self) -> int:
        return len(self.regimen_exposures)


def run_pipeline(
    raw_exposures: pd.DataFrame,
    catalog: pd.DataFrame,
    resolver: IngredientResolver,
    config: Optional[PipelineConfig] = None,
    sink: Optional[ResultSink] = None,
) -> RegimenPipelineResult:
    """
    Run the regimen exposure pipeline.

    Args:
        raw_exposures: DRUG_EXPOSURE records (person_id, drug_concept_id,
            drug_exposure_start_date, drug_exposure_end_date, days_supply)
        catalog: Regimen catalog (regimen_id, regimen_name, ingredient_id)
        resolver: Maps drug_concept_id to ingredient ids
        config: Pipeline settings (default: PipelineConfig())
        sink: Optional destination for the regimen table

    Returns:
        RegimenPipelineResult with every intermediate table

    Raises:
        RegimenCatalogError: if the catalog is malformed
    """
    config = config or PipelineConfig()
    catalog = validate_regimen_catalog(catalog)
    allowlist = get_ingredient_allowlist(catalog)

    logger.info(
        f"Catalog: {catalog['regimen_id'].nunique():,} regimens over "
        f"{len(allowlist):,} ingredients"
    )

    # Stage 1: ingredient-level exposures
    exposures = extract_exposure_records(
        raw_exposures,
        resolver,
        allowlist,
        default_days=config.era.default_exposure_days,
    )

    # Stage 2: eras
    eras = build_eras(exposures, gap_days=config.era.gap_days, n_workers=config.era.n_workers)

    # Stage 3: era ingredient sets
    era_ingredients = build_era_ingredients(eras, exposures)

    # Stage 4: exact regimen matches
    regimen_exposures = match_regimens(eras, era_ingredients, catalog)

    result = RegimenPipelineResult(
        exposures=exposures,
        eras=eras,
        era_ingredients=era_ingredients,
        regimen_exposures=regimen_exposures,
    )

    if config.validate:
        result.validation = run_all_validations(
            exposures, eras, era_ingredients, regimen_exposures, catalog,
            gap_days=config.era.gap_days,
        )

    # Stage 5: persist
    if sink is not None:
        result.write_result = sink.write(regimen_exposures, config.output.table_name)

    return result


def create_regimens(
    exposures_path: Optional[Path] = None,
    catalog_path: Optional[Path] = None,
    resolver: Optional[IngredientResolver] = None,
    config: Optional[PipelineConfig] = None,
) -> int:
    """
    Load inputs from disk, run the pipeline and write the regimen table.

    Args:
        exposures_path: DRUG_EXPOSURE file (default: DRUG_EXPOSURE_FILE)
        catalog_path: Regimen catalog (default: bundled YAML)
        resolver: Ingredient resolver (default: OMOP concept tables from DATA_DIR)
        config: Pipeline settings

    Returns:
        Number of regimen exposure rows
    """
    config = config or PipelineConfig()

    raw = load_drug_exposures(exposures_path or DRUG_EXPOSURE_FILE)
    catalog = load_regimen_catalog(catalog_path)

    if resolver is None:
        resolver = ConceptAncestorResolver(
            read_table(CONCEPT_ANCESTOR_FILE),
            read_table(CONCEPT_FILE),
        )

    sink = get_sink(config.output.sink, config.output.location)
    result = run_pipeline(raw, catalog, resolver, config=config, sink=sink)

    return result.n_rows


# =============================================================================
# CLI
# =============================================================================

def main():
    """Main entry point for CLI."""
    import argparse

    parser = argparse.ArgumentParser(description="Identify drug regimen exposures")
    parser.add_argument('--exposures', type=Path, default=DRUG_EXPOSURE_FILE,
                        help='DRUG_EXPOSURE table (.parquet, .csv or pipe-delimited .txt)')
    parser.add_argument('--catalog', type=Path, default=None,
                        help='Regimen catalog (.yaml or .csv); default is the bundled catalog')
    parser.add_argument('--concept-ancestor', type=Path, default=CONCEPT_ANCESTOR_FILE,
                        help='OMOP CONCEPT_ANCESTOR table')
    parser.add_argument('--concept', type=Path, default=CONCEPT_FILE,
                        help='OMOP CONCEPT table')
    parser.add_argument('--rxnorm-db', type=Path, default=None,
                        help='Resolve through an RxNorm SQLite database instead of OMOP tables')
    parser.add_argument('--output', type=Path, default=OutputConfig.location,
                        help='Output directory, or database file for --format sqlite')
    parser.add_argument('--format', choices=['parquet', 'csv', 'sqlite'], default='parquet')
    parser.add_argument('--table-name', default=OutputConfig.table_name)
    parser.add_argument('--gap-days', type=int, default=EraConfig.gap_days,
                        help='Maximum gap between exposures of one era')
    parser.add_argument('--workers', type=int, default=EraConfig.n_workers,
                        help='Worker processes for era building')
    parser.add_argument('--validate', action='store_true', help='Run the validation suite')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = PipelineConfig(
        era=EraConfig(gap_days=args.gap_days, n_workers=args.workers),
        output=OutputConfig(table_name=args.table_name, sink=args.format, location=args.output),
        validate=args.validate,
    )

    print("=" * 60)
    print("Regimen Exposures")
    print("=" * 60)

    print(f"\n1. Loading inputs")
    raw = load_drug_exposures(args.exposures)
    catalog = load_regimen_catalog(args.catalog)
    print(f"   Drug exposures: {len(raw):,}")
    print(f"   Regimens: {catalog['regimen_id'].nunique():,}")

    if args.rxnorm_db:
        resolver = RxNormResolver(args.rxnorm_db)
    else:
        resolver = ConceptAncestorResolver(read_table(args.concept_ancestor), read_table(args.concept))

    print(f"\n2. Building eras and matching regimens (gap {args.gap_days} days)")
    sink = get_sink(args.format, args.output)
    try:
        result = run_pipeline(raw, catalog, resolver, config=config, sink=sink)
    finally:
        if isinstance(resolver, RxNormResolver):
            resolver.close()

    print(f"   Ingredient exposures: {len(result.exposures):,}")
    print(f"   Eras: {len(result.eras):,}")
    print(f"   Regimen exposures: {result.n_rows:,}")

    print("\n3. Matches per regimen")
    summary = summarize_matches(result.regimen_exposures, catalog)
    for row in summary.itertuples(index=False):
        print(f"   {row.regimen_name}: {row.n_eras:,} eras, {row.n_persons:,} persons")

    if result.validation:
        for r in result.validation:
            print(r.report())

    print("\n" + "=" * 60)
    print(result.write_result.message())
    print("=" * 60)


if __name__ == "__main__":
    main()
