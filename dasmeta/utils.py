#!/usr/bin/env python3
"""
Shared utilities for DasMeta Framework.
Canonical identifier normalisation, applied once at ingestion and relied on
everywhere downstream.
"""

import logging
import re
from typing import Callable, Dict, Iterable, List

import pandas as pd

from dasmeta.constants import ENSEMBL, ENTREZ, NAMESPACES, SYMBOL

logger = logging.getLogger(__name__)


def normalize_cell_line_name(name) -> str:
    """
    Canonical cell-line identifier.

    Upper-cases and removes every non-alphanumeric character so that
    'NCI-H1975', 'nci_h1975' and 'NCIH1975' compare equal (the CCLE
    convention).
    """
    return re.sub(r'[^A-Z0-9]', '', str(name).upper())


def normalize_cell_line_names(names: Iterable) -> List[str]:
    return [normalize_cell_line_name(n) for n in names]


def strip_ensembl_version(ensembl_id) -> str:
    """'ENSG00000141510.16' -> 'ENSG00000141510'"""
    return str(ensembl_id).strip().split('.')[0]


def normalize_entrez_id(entrez_id) -> str:
    """
    Entrez IDs as plain integer strings.

    CSV round trips through R or pandas often turn 1234 into 1234.0.
    """
    text = str(entrez_id).strip()
    if re.fullmatch(r'\d+\.0+', text):
        text = text.split('.')[0]
    return text


def normalize_gene_symbol(symbol) -> str:
    return str(symbol).strip()


# Per-namespace canonical form of a gene identifier. Only Ensembl IDs carry a
# '.version' suffix; symbols such as 'RP11-34P13.7' keep their dots.
GENE_ID_NORMALIZERS: Dict[str, Callable[[object], str]] = {
    ENSEMBL: strip_ensembl_version,
    ENTREZ: normalize_entrez_id,
    SYMBOL: normalize_gene_symbol,
}


def _first_unique(labels: List[str], raw: Iterable, kind: str):
    """Boolean mask keeping the first of each normalised label; warns on merges"""
    keep = ~pd.Index(labels).duplicated()
    if not keep.all():
        groups: Dict[str, List[str]] = {}
        for label, original in zip(labels, raw):
            groups.setdefault(label, []).append(str(original))
        merged = {k: v for k, v in groups.items() if len(v) > 1}
        details = '; '.join(f"{k} <- {', '.join(v)}" for k, v in merged.items())
        logger.warning(f"{len(merged)} {kind} collide after normalisation, keeping the "
                       f"first of each: {details}")
    return keep


def with_canonical_columns(expression: pd.DataFrame,
                           namespace: str = ENSEMBL) -> pd.DataFrame:
    """
    Copy of an expression matrix with canonical cell-line columns and gene
    IDs normalised for `namespace` (version suffixes are only stripped from
    Ensembl IDs). Rows or columns that collide after normalisation keep the
    first occurrence and are reported in a WARNING naming the originals.
    """
    if namespace not in GENE_ID_NORMALIZERS:
        raise ValueError(f"Unknown namespace '{namespace}', expected one of {NAMESPACES}")
    normalize = GENE_ID_NORMALIZERS[namespace]

    columns = normalize_cell_line_names(expression.columns)
    genes = [normalize(g) for g in expression.index]
    keep_cols = _first_unique(columns, expression.columns, 'sample columns')
    keep_rows = _first_unique(genes, expression.index, f'{namespace} gene IDs')

    expr = expression.copy()
    expr.columns = columns
    expr.index = genes
    return expr.loc[keep_rows, keep_cols]
