#!/usr/bin/env python3
"""
Identifier Mapping
==================
Translation of gene identifiers between Ensembl, Entrez and HGNC symbol
namespaces from a biomaRt-style mapping table.

Coverage across databases is partial, so identifiers without a mapping are
dropped rather than reported as errors.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from dasmeta.constants import MAPPING_COLUMNS, NAMESPACES
from dasmeta.utils import GENE_ID_NORMALIZERS

logger = logging.getLogger(__name__)

_NORMALIZERS = GENE_ID_NORMALIZERS


def _check_namespace(namespace: str):
    if namespace not in NAMESPACES:
        raise ValueError(f"Unknown namespace '{namespace}'. Available: {list(NAMESPACES)}")


class IdentifierMapper:
    """
    Lookup table between identifier namespaces.

    Args:
        table: DataFrame with one column per namespace ('ensembl', 'entrez',
               'symbol'); missing cells are allowed. A row links identifiers
               that refer to the same gene.
    """

    def __init__(self, table: pd.DataFrame):
        missing = [ns for ns in NAMESPACES if ns not in table.columns]
        if missing:
            raise ValueError(f"Mapping table missing namespace columns: {missing}")

        clean = table[list(NAMESPACES)].copy()
        for ns in NAMESPACES:
            clean[ns] = [
                _NORMALIZERS[ns](v) if pd.notna(v) and str(v).strip() else None
                for v in clean[ns]
            ]
        self._table = clean.drop_duplicates().reset_index(drop=True)
        self._lookup_cache: Dict[tuple, Dict[str, List[str]]] = {}
        logger.debug(f"Identifier mapper built from {len(self._table)} rows")

    @classmethod
    def from_csv(cls, path, column_map: Optional[Dict[str, str]] = None) -> 'IdentifierMapper':
        """
        Load a mapping export (e.g. biomaRt getBM output saved as CSV).

        Args:
            path: CSV file
            column_map: namespace -> column name; defaults to MAPPING_COLUMNS
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Identifier mapping file not found: {path}")
        column_map = column_map or MAPPING_COLUMNS
        df = pd.read_csv(path, dtype=str)
        df = df.rename(columns={col: ns for ns, col in column_map.items()})
        logger.info(f"Loaded identifier mapping from {path.name} ({len(df)} rows)")
        return cls(df)

    def __len__(self):
        return len(self._table)

    def _lookup(self, source: str, target: str) -> Dict[str, List[str]]:
        key = (source, target)
        if key not in self._lookup_cache:
            pairs = self._table[[source, target]].dropna().drop_duplicates()
            lookup: Dict[str, List[str]] = {}
            for src, tgt in zip(pairs[source], pairs[target]):
                lookup.setdefault(src, []).append(tgt)
            self._lookup_cache[key] = lookup
        return self._lookup_cache[key]

    def normalize(self, ids: Iterable[str], namespace: str) -> List[str]:
        """Identifiers in the canonical form used by the lookup tables"""
        _check_namespace(namespace)
        return [_NORMALIZERS[namespace](i) for i in ids]

    def map_ids(self, ids: Iterable[str], source: str, target: str) -> pd.DataFrame:
        """
        Map identifiers from `source` to `target` namespace.

        Returns:
            DataFrame with columns [source, target], one row per mapping, in
            input order; one-to-many mappings give several rows and unmapped
            identifiers give none.
        """
        _check_namespace(source)
        _check_namespace(target)
        lookup = self._lookup(source, target)
        normalize = _NORMALIZERS[source]

        rows = []
        for raw in ids:
            src = normalize(raw)
            for tgt in lookup.get(src, []):
                rows.append((src, tgt))
        return pd.DataFrame(rows, columns=[source, target])

    def translate(self, ids: Iterable[str], source: str, target: str) -> List[str]:
        """Flattened, de-duplicated target identifiers in first-seen order"""
        mapped = self.map_ids(ids, source, target)
        return list(dict.fromkeys(mapped[target]))

    def unmapped(self, ids: Iterable[str], source: str, target: str) -> List[str]:
        """Source identifiers with no mapping into `target`"""
        _check_namespace(source)
        _check_namespace(target)
        lookup = self._lookup(source, target)
        normalize = _NORMALIZERS[source]
        return [i for i in ids if normalize(i) not in lookup]
