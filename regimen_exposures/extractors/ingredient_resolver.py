"""
Ingredient Resolver
===================

Rolls drug concepts up to the ingredient level. A single drug concept can
resolve to several ingredients (combination products), so every resolver
returns a list.

Resolvers:
1. ConceptAncestorResolver - OMOP CONCEPT_ANCESTOR + CONCEPT tables
2. RxNormResolver - rxnorm.db SQLite database (RXNCONSO / RXNREL)
3. MappingResolver - plain dict, for hand-built lookups and tests
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import pandas as pd

from ..config.regimen_config import RXNORM_DB

logger = logging.getLogger(__name__)


class IngredientResolver:
    """Base class: subclasses implement resolve()."""

    def resolve(self, drug_concept_id: int) -> List[int]:
        """Return every ingredient id the drug concept rolls up to."""
        raise NotImplementedError

    def mapping_frame(
        self,
        drug_concept_ids: Iterable[int],
        allowlist: Optional[Set[int]] = None
    ) -> pd.DataFrame:
        """
        Build a drug_concept_id -> ingredient_id lookup table.

        Args:
            drug_concept_ids: Drug concepts to resolve (duplicates are fine)
            allowlist: If given, only these ingredient ids are kept

        Returns:
            DataFrame with drug_concept_id, ingredient_id
        """
        rows = []
        for concept_id in pd.unique(pd.Series(list(drug_concept_ids)).dropna()):
            for ingredient_id in self.resolve(int(concept_id)):
                if allowlist is None or ingredient_id in allowlist:
                    rows.append((int(concept_id), int(ingredient_id)))

        return pd.DataFrame(rows, columns=['drug_concept_id', 'ingredient_id'], dtype='int64')


# =============================================================================
# DICT LOOKUP
# =============================================================================

class MappingResolver(IngredientResolver):
    """Resolve from an in-memory {drug_concept_id: [ingredient_id, ...]} dict."""

    def __init__(self, mapping: Dict[int, Union[int, Iterable[int]]]):
        self.mapping = {}
        for concept_id, ingredients in mapping.items():
            if isinstance(ingredients, int):
                ingredients = [ingredients]
            self.mapping[int(concept_id)] = sorted({int(i) for i in ingredients})

    def resolve(self, drug_concept_id: int) -> List[int]:
        return self.mapping.get(int(drug_concept_id), [])


# =============================================================================
# OMOP VOCABULARY
# =============================================================================

class ConceptAncestorResolver(IngredientResolver):
    """
    Resolve through the OMOP vocabulary.

    Keeps CONCEPT_ANCESTOR rows whose ancestor is a Drug-domain concept of
    class 'Ingredient'. OMOP ships a self-row (ancestor == descendant) for
    every standard concept, so ingredients resolve to themselves.
    """

    def __init__(self, concept_ancestor: pd.DataFrame, concept: pd.DataFrame):
        ancestor = concept_ancestor.rename(columns=str.lower)
        concept = concept.rename(columns=str.lower)

        ingredients = concept[
            (concept['domain_id'] == 'Drug')
            & (concept['concept_class_id'] == 'Ingredient')
        ]['concept_id']

        links = ancestor[ancestor['ancestor_concept_id'].isin(ingredients)]
        links = links[['descendant_concept_id', 'ancestor_concept_id']].drop_duplicates()

        self.mapping: Dict[int, List[int]] = {
            int(descendant): sorted(int(a) for a in group['ancestor_concept_id'])
            for descendant, group in links.groupby('descendant_concept_id')
        }
        logger.info(
            f"Ingredient lookup built: {len(self.mapping):,} drug concepts, "
            f"{len(ingredients):,} ingredients"
        )

    def resolve(self, drug_concept_id: int) -> List[int]:
        return self.mapping.get(int(drug_concept_id), [])


# =============================================================================
# RXNORM DATABASE
# =============================================================================

class RxNormResolver(IngredientResolver):
    """
    Resolve RXCUIs to ingredient RXCUIs using rxnorm.db.

    An RXCUI that is itself an ingredient (TTY = 'IN') resolves to itself;
    otherwise every 'has_ingredient' relationship is followed.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else RXNORM_DB
        self._conn: Optional[sqlite3.Connection] = None
        self._cache: Dict[int, List[int]] = {}

    def _connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            if not self.db_path.exists():
                raise FileNotFoundError(f"RxNorm database not found: {self.db_path}")
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self):
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def resolve(self, drug_concept_id: int) -> List[int]:
        rxcui = int(drug_concept_id)
        if rxcui in self._cache:
            return self._cache[rxcui]

        conn = self._connection()

        # Check if already an ingredient
        cursor = conn.execute("""
            SELECT RXCUI
            FROM RXNCONSO
            WHERE RXCUI = ?
              AND SAB = 'RXNORM'
              AND TTY = 'IN'
            LIMIT 1
        """, (str(rxcui),))

        if cursor.fetchone():
            result = [rxcui]
        else:
            cursor = conn.execute("""
                SELECT DISTINCT r.RXCUI2 AS ingredient_rxcui
                FROM RXNREL r
                JOIN RXNCONSO c ON r.RXCUI2 = c.RXCUI
                WHERE r.RXCUI1 = ?
                  AND r.RELA = 'has_ingredient'
                  AND c.SAB = 'RXNORM'
                  AND c.TTY = 'IN'
            """, (str(rxcui),))
            result = sorted(int(row['ingredient_rxcui']) for row in cursor)

        self._cache[rxcui] = result
        return result

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
