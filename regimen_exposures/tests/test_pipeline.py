"""End-to-end tests for the regimen exposure pipeline."""

import sys

import pytest
import pandas as pd

from regimen_exposures import build_regimens
from regimen_exposures.build_regimens import create_regimens, run_pipeline
from regimen_exposures.config.regimen_config import EraConfig, OutputConfig, PipelineConfig
from regimen_exposures.exporters.result_sink import ParquetSink
from regimen_exposures.extractors.ingredient_resolver import MappingResolver, RxNormResolver
from regimen_exposures.extractors.regimen_catalog import RegimenCatalogError


@pytest.fixture
def catalog():
    """Regimen 1 "X+Y" = {10, 20}; regimen 2 "Z-only" = {30}."""
    return pd.DataFrame({
        'regimen_id': [1, 1, 2],
        'regimen_name': ['X+Y', 'X+Y', 'Z-only'],
        'ingredient_id': [10, 20, 30],
    })


@pytest.fixture
def resolver():
    # Drug 99 resolves to an ingredient no regimen uses
    return MappingResolver({10: 10, 20: 20, 30: 30, 99: 999})


@pytest.fixture
def raw_exposures():
    return pd.DataFrame({
        'person_id': [1, 1, 1, 2],
        'drug_concept_id': [10, 20, 99, 30],
        'drug_exposure_start_date': pd.to_datetime(
            ['2023-01-01', '2023-01-04', '2023-03-01', '2023-01-01']),
        'drug_exposure_end_date': pd.to_datetime(
            ['2023-01-06', '2023-01-09', '2023-03-02', '2023-01-03']),
    })


class TestRunPipeline:
    """Test the full pipeline on in-memory tables."""

    def test_expected_regimen_exposures(self, raw_exposures, catalog, resolver):
        """Person 1 matches X+Y over [day 0, day 8]; person 2 matches Z-only."""
        result = run_pipeline(raw_exposures, catalog, resolver)

        out = result.regimen_exposures
        assert result.n_rows == 2
        assert out['person_id'].tolist() == [1, 2]
        assert out['regimen_name'].tolist() == ['X+Y', 'Z-only']
        assert out['regimen_start_date'].tolist() == [pd.Timestamp('2023-01-01')] * 2
        assert out['regimen_end_date'].tolist() == [pd.Timestamp('2023-01-09'), pd.Timestamp('2023-01-03')]

    def test_uncatalogued_ingredient_ignored(self, raw_exposures, catalog, resolver):
        """An exposure to an ingredient no regimen uses forms no era."""
        result = run_pipeline(raw_exposures, catalog, resolver)

        assert 999 not in result.exposures['ingredient_id'].tolist()
        assert len(result.eras) == 2

    def test_extra_ingredient_blocks_match(self, raw_exposures, catalog, resolver):
        """Adding Z to person 1's era stops it matching X+Y."""
        extra = pd.DataFrame({
            'person_id': [1],
            'drug_concept_id': [30],
            'drug_exposure_start_date': pd.to_datetime(['2023-01-05']),
            'drug_exposure_end_date': pd.to_datetime(['2023-01-06']),
        })

        result = run_pipeline(pd.concat([raw_exposures, extra], ignore_index=True), catalog, resolver)

        assert result.regimen_exposures['person_id'].tolist() == [2]

    def test_rerun_is_identical(self, raw_exposures, catalog, resolver):
        """Running twice on the same input gives the same table."""
        first = run_pipeline(raw_exposures, catalog, resolver).regimen_exposures
        second = run_pipeline(raw_exposures, catalog, resolver).regimen_exposures

        pd.testing.assert_frame_equal(first, second)

    def test_validation_passes(self, raw_exposures, catalog, resolver):
        """The validation suite passes on a clean run."""
        result = run_pipeline(raw_exposures, catalog, resolver, config=PipelineConfig(validate=True))

        assert result.validation
        assert all(r.ok for r in result.validation)

    def test_gap_setting_respected(self, catalog, resolver):
        """X and Y 20 days apart form one era only with a wide enough gap."""
        raw = pd.DataFrame({
            'person_id': [1, 1],
            'drug_concept_id': [10, 20],
            'drug_exposure_start_date': pd.to_datetime(['2023-01-01', '2023-01-25']),
            'drug_exposure_end_date': pd.to_datetime(['2023-01-05', '2023-01-30']),
        })

        wide = run_pipeline(raw, catalog, resolver)
        narrow = run_pipeline(raw, catalog, resolver, config=PipelineConfig(era=EraConfig(gap_days=10)))

        assert wide.n_rows == 1
        assert narrow.n_rows == 0

    def test_sink_receives_table(self, tmp_path, raw_exposures, catalog, resolver):
        """A sink writes the table and the outcome is reported."""
        result = run_pipeline(raw_exposures, catalog, resolver, sink=ParquetSink(tmp_path))

        assert result.write_result.success
        assert len(pd.read_parquet(tmp_path / 'regimen.parquet')) == 2

    def test_malformed_catalog_rejected(self, raw_exposures, resolver):
        """A catalog error stops the run before any era is built."""
        bad = pd.DataFrame({
            'regimen_id': [1, 1],
            'regimen_name': ['X', 'Y'],
            'ingredient_id': [10, 20],
        })

        with pytest.raises(RegimenCatalogError):
            run_pipeline(raw_exposures, bad, resolver)

    def test_mixed_date_units(self, raw_exposures, catalog, resolver):
        """Start and end columns at different datetime resolutions still match."""
        raw = raw_exposures.copy()
        raw['drug_exposure_start_date'] = raw['drug_exposure_start_date'].dt.as_unit('s')
        raw['drug_exposure_end_date'] = raw['drug_exposure_end_date'].dt.as_unit('ns')

        result = run_pipeline(raw, catalog, resolver)

        assert result.regimen_exposures['regimen_name'].tolist() == ['X+Y', 'Z-only']
        assert result.regimen_exposures['regimen_end_date'].tolist() == [
            pd.Timestamp('2023-01-09'), pd.Timestamp('2023-01-03'),
        ]

    def test_validation_passes_without_catalogued_exposures(self, catalog, resolver):
        """Only uncatalogued drugs gives empty tables and every stage passes."""
        raw = pd.DataFrame({
            'person_id': [1],
            'drug_concept_id': [99],
            'drug_exposure_start_date': pd.to_datetime(['2023-01-01']),
            'drug_exposure_end_date': pd.to_datetime(['2023-01-05']),
        })

        result = run_pipeline(raw, catalog, resolver, config=PipelineConfig(validate=True))

        assert len(result.exposures) == 0
        assert result.n_rows == 0
        assert all(r.ok for r in result.validation)


class TestFromFiles:
    """Test running from files on disk."""

    @pytest.fixture
    def files(self, tmp_path):
        exposures = tmp_path / "drug_exposure.txt"
        exposures.write_text(
            "PERSON_ID|DRUG_CONCEPT_ID|DRUG_EXPOSURE_START_DATE|DRUG_EXPOSURE_END_DATE|DAYS_SUPPLY\n"
            "1|10|2023-01-01|2023-01-06|\n"
            "1|20|2023-01-04||5\n"
            "2|30|2023-01-01|2023-01-03|\n"
        )
        catalog = tmp_path / "regimenIngredients.csv"
        catalog.write_text(
            "regimen_name,regimen_concept_id,ingredient_name,ingredient_concept_id\n"
            "X+Y,1,x,10\n"
            "X+Y,1,y,20\n"
            "Z-only,2,z,30\n"
        )
        concept = tmp_path / "concept.txt"
        concept.write_text(
            "concept_id|domain_id|concept_class_id\n"
            "10|Drug|Ingredient\n"
            "20|Drug|Ingredient\n"
            "30|Drug|Ingredient\n"
        )
        concept_ancestor = tmp_path / "concept_ancestor.txt"
        concept_ancestor.write_text(
            "ancestor_concept_id|descendant_concept_id\n"
            "10|10\n"
            "20|20\n"
            "30|30\n"
        )
        return exposures, catalog, concept, concept_ancestor

    def test_create_regimens(self, tmp_path, files, resolver):
        """create_regimens writes the table and returns its row count."""
        exposures, catalog, _, _ = files
        out_dir = tmp_path / "out"
        config = PipelineConfig(output=OutputConfig(sink='csv', location=out_dir))

        n_rows = create_regimens(exposures, catalog, resolver=resolver, config=config)

        assert n_rows == 2
        written = pd.read_csv(out_dir / "regimen.csv")
        assert written['regimen_end_date'].tolist() == ['2023-01-09', '2023-01-03']

    def test_cli(self, tmp_path, files, monkeypatch, capsys):
        """The CLI runs on OMOP vocabulary files and reports the write."""
        exposures, catalog, concept, concept_ancestor = files
        db_path = tmp_path / "results.db"
        monkeypatch.setattr(sys, 'argv', [
            'regimen-exposures',
            '--exposures', str(exposures),
            '--catalog', str(catalog),
            '--concept', str(concept),
            '--concept-ancestor', str(concept_ancestor),
            '--format', 'sqlite',
            '--output', str(db_path),
            '--validate',
        ])

        build_regimens.main()

        out = capsys.readouterr().out
        assert f"Regimen table with 2 rows saved to {db_path}:regimen" in out
        assert "X+Y: 1 eras, 1 persons" in out

    def test_cli_closes_rxnorm_on_failure(self, tmp_path, files, monkeypatch):
        """The RxNorm connection is closed even when the run raises."""
        exposures, catalog, _, _ = files
        closed = []

        def failing_run(*args, **kwargs):
            raise RuntimeError("run failed")

        monkeypatch.setattr(build_regimens, 'run_pipeline', failing_run)
        monkeypatch.setattr(RxNormResolver, 'close', lambda self: closed.append(True))
        monkeypatch.setattr(sys, 'argv', [
            'regimen-exposures',
            '--exposures', str(exposures),
            '--catalog', str(catalog),
            '--rxnorm-db', str(tmp_path / "rxnorm.db"),
            '--output', str(tmp_path / "out"),
        ])

        with pytest.raises(RuntimeError):
            build_regimens.main()

        assert closed == [True]
