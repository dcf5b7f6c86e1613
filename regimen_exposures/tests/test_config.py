"""Tests for pipeline configuration."""

from regimen_exposures.config import (
    ERA_CONFIG,
    OUTPUT_CONFIG,
    REGIMEN_DEFINITIONS_YAML,
    PipelineConfig,
    load_regimen_definitions,
)


class TestDefaults:
    """Test default settings."""

    def test_era_defaults(self):
        """Gap tolerance defaults to 30 days, one default exposure day."""
        assert ERA_CONFIG.gap_days == 30
        assert ERA_CONFIG.default_exposure_days == 1
        assert ERA_CONFIG.n_workers == 1

    def test_output_defaults(self):
        """The result table is named 'regimen'."""
        assert OUTPUT_CONFIG.table_name == 'regimen'
        assert OUTPUT_CONFIG.sink == 'parquet'

    def test_pipeline_configs_independent(self):
        """Each PipelineConfig gets its own era settings."""
        a = PipelineConfig()
        b = PipelineConfig()
        a.era.gap_days = 5

        assert b.era.gap_days == 30


class TestRegimenDefinitions:
    """Test the bundled definitions file."""

    def test_bundled_file_exists(self):
        assert REGIMEN_DEFINITIONS_YAML.exists()

    def test_definitions_have_ids_and_ingredients(self):
        """Every regimen entry carries an id and ingredients."""
        definitions = load_regimen_definitions()

        regimens = {k: v for k, v in definitions.items() if not k.startswith('_')}
        assert regimens
        for regimen in regimens.values():
            assert 'regimen_id' in regimen
            assert regimen['ingredients']
