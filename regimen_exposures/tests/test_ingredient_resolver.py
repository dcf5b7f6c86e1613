"""Tests for drug concept to ingredient resolution."""

import sqlite3

import pytest
import pandas as pd

from regimen_exposures.extractors.ingredient_resolver import (
    ConceptAncestorResolver,
    MappingResolver,
    RxNormResolver,
)


class TestMappingResolver:
    """Test dict-based resolution."""

    def test_single_and_multiple(self):
        """Scalars and lists are both accepted."""
        resolver = MappingResolver({5: 10, 6: [30, 20, 20]})

        assert resolver.resolve(5) == [10]
        assert resolver.resolve(6) == [20, 30]
        assert resolver.resolve(7) == []

    def test_mapping_frame_applies_allowlist(self):
        """mapping_frame keeps only allowlisted ingredients."""
        resolver = MappingResolver({5: [10, 20], 6: [30]})

        frame = resolver.mapping_frame([5, 5, 6, None], allowlist={10, 30})

        assert sorted(map(tuple, frame.values.tolist())) == [(5, 10), (6, 30)]
        assert frame['ingredient_id'].dtype == 'int64'


class TestConceptAncestorResolver:
    """Test resolution through OMOP vocabulary tables."""

    @pytest.fixture
    def resolver(self):
        concept = pd.DataFrame({
            'CONCEPT_ID': [10, 20, 500, 600],
            'DOMAIN_ID': ['Drug', 'Drug', 'Drug', 'Device'],
            'CONCEPT_CLASS_ID': ['Ingredient', 'Ingredient', 'Clinical Drug', 'Ingredient'],
        })
        concept_ancestor = pd.DataFrame({
            'ANCESTOR_CONCEPT_ID': [10, 20, 10, 20, 500, 600],
            'DESCENDANT_CONCEPT_ID': [10, 20, 500, 500, 500, 500],
        })
        return ConceptAncestorResolver(concept_ancestor, concept)

    def test_ingredient_resolves_to_itself(self, resolver):
        """An ingredient's self-row maps it to itself."""
        assert resolver.resolve(10) == [10]

    def test_combination_drug_resolves_to_ingredients(self, resolver):
        """A clinical drug maps to its Drug-domain ingredient ancestors only."""
        assert resolver.resolve(500) == [10, 20]

    def test_unknown_concept(self, resolver):
        """Concepts with no ingredient ancestor resolve to nothing."""
        assert resolver.resolve(999) == []


class TestRxNormResolver:
    """Test resolution through an RxNorm SQLite database."""

    @pytest.fixture
    def db_path(self, tmp_path):
        path = tmp_path / "rxnorm.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE RXNCONSO (RXCUI TEXT, SAB TEXT, TTY TEXT, STR TEXT)")
        conn.execute("CREATE TABLE RXNREL (RXCUI1 TEXT, RXCUI2 TEXT, RELA TEXT)")
        conn.executemany("INSERT INTO RXNCONSO VALUES (?, ?, ?, ?)", [
            ('10', 'RXNORM', 'IN', 'venetoclax'),
            ('20', 'RXNORM', 'IN', 'obinutuzumab'),
            ('30', 'RXNORM', 'PIN', 'doxycycline hyclate'),
            ('5', 'RXNORM', 'SCD', 'combination product'),
        ])
        conn.executemany("INSERT INTO RXNREL VALUES (?, ?, ?)", [
            ('5', '10', 'has_ingredient'),
            ('5', '20', 'has_ingredient'),
            ('5', '30', 'has_ingredient'),
            ('5', '10', 'has_tradename'),
        ])
        conn.commit()
        conn.close()
        return path

    def test_ingredient_resolves_to_itself(self, db_path):
        """An IN concept maps to itself."""
        with RxNormResolver(db_path) as resolver:
            assert resolver.resolve(10) == [10]

    def test_product_resolves_to_in_ingredients(self, db_path):
        """A product maps to its IN ingredients, skipping precise ingredients."""
        with RxNormResolver(db_path) as resolver:
            assert resolver.resolve(5) == [10, 20]

    def test_results_cached(self, db_path):
        """Resolved concepts are served from the cache after close."""
        resolver = RxNormResolver(db_path)
        first = resolver.resolve(5)
        resolver.close()
        db_path.unlink()

        assert resolver.resolve(5) == first

    def test_missing_database(self, tmp_path):
        """A missing database file is reported on first use."""
        resolver = RxNormResolver(tmp_path / "missing.db")

        with pytest.raises(FileNotFoundError):
            resolver.resolve(5)
