#!/usr/bin/env python3
"""
Differential Expression Results
===============================
Contract for the external differential expression service (limma-voom /
eBayes style) and the filtering built on its output.

A DE service is any callable

    de_service(expression: DataFrame genes x samples, groups: Series sample -> label)
        -> DataFrame

whose result carries per-gene effect size and raw / adjusted p-values.
limma topTable column names are accepted and mapped onto the canonical
names in DE_COLUMN_ALIASES.
"""

import logging
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from dasmeta.constants import (
    DE_COLUMN_ALIASES,
    DE_FDR_CUTOFF,
    DE_REQUIRED_COLUMNS,
    ENSEMBL,
    REPORT_DECIMALS,
    SYMBOL,
)
from dasmeta.id_mapping import IdentifierMapper
from dasmeta.utils import strip_ensembl_version

logger = logging.getLogger(__name__)

DEService = Callable[[pd.DataFrame, pd.Series], pd.DataFrame]


def validate_de_table(table: pd.DataFrame) -> pd.DataFrame:
    """
    Canonical DE table sorted by raw p-value.

    A gene index is promoted to a `gene_id` column when no ID column exists.
    When the moderated statistic is absent, a signed -log10(p) stands in for
    it so the table can still be ranked.
    """
    df = table.rename(columns=DE_COLUMN_ALIASES)
    if 'gene_id' not in df.columns:
        df = df.rename_axis('gene_id').reset_index()

    missing = [c for c in DE_REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"DE table missing columns: {missing}")

    df = df.copy()
    df['gene_id'] = df['gene_id'].map(strip_ensembl_version)
    if 'statistic' not in df.columns:
        logger.debug("No moderated statistic in DE table; ranking by signed -log10(p)")
        df['statistic'] = -np.log10(df['p_value'].clip(lower=1e-300)) * np.sign(df['log_fc'])
    return df.sort_values('p_value', kind='mergesort').reset_index(drop=True)


def ranked_statistic(table: pd.DataFrame) -> pd.Series:
    """gene_id -> moderated statistic, highest first (GSEA input ranking)"""
    df = validate_de_table(table)
    ranked = df.set_index('gene_id')['statistic']
    ranked = ranked[~ranked.index.duplicated()]
    return ranked.sort_values(ascending=False, kind='mergesort')


def significant_genes(table: pd.DataFrame, fdr: float = DE_FDR_CUTOFF) -> List[str]:
    """Genes with adjusted p-value below `fdr`, most significant first"""
    df = validate_de_table(table)
    return df.loc[df['adj_p_value'] < fdr, 'gene_id'].tolist()


def combine_contrasts(tables: Dict[str, pd.DataFrame],
                      fdr: float = DE_FDR_CUTOFF,
                      decimals: int = REPORT_DECIMALS,
                      mapper: Optional[IdentifierMapper] = None,
                      id_namespace: str = ENSEMBL) -> pd.DataFrame:
    """
    Side-by-side DE results for several response metrics (e.g. LN_IC50 and
    AUC groupings), keeping genes significant in at least one of them.

    Args:
        tables: metric label -> DE table
        fdr: Adjusted p-value cutoff
        decimals: Rounding for numeric columns
        mapper: Fills `gene_symbol` for genes whose DE tables carry no
                symbol column (first mapped symbol per gene)
        id_namespace: Namespace of the DE tables' gene IDs, for `mapper`

    Returns:
        DataFrame indexed by gene_id with `gene_symbol` (when a table or the
        mapper provides one), `avg_expr` (first table that has it) and
        `<label>_log_fc`, `<label>_adj_p_value` per metric
    """
    if not tables:
        raise ValueError("No DE tables to combine")

    combined = None
    avg_expr = None
    symbols = None
    for label, table in tables.items():
        df = validate_de_table(table).drop_duplicates('gene_id').set_index('gene_id')
        if avg_expr is None and 'avg_expr' in df.columns:
            avg_expr = df['avg_expr']
        if 'gene_symbol' in df.columns:
            found = df['gene_symbol'].dropna()
            symbols = found if symbols is None else symbols.combine_first(found)
        part = df[['log_fc', 'adj_p_value']].add_prefix(f"{label}_")
        combined = part if combined is None else combined.join(part, how='outer')

    if avg_expr is not None:
        combined.insert(0, 'avg_expr', avg_expr.reindex(combined.index))
    if mapper is not None:
        mapped = mapper.map_ids(combined.index, id_namespace, SYMBOL)
        mapped = mapped.drop_duplicates(id_namespace).set_index(id_namespace)[SYMBOL]
        symbols = mapped if symbols is None else symbols.combine_first(mapped)
    if symbols is not None:
        combined.insert(0, 'gene_symbol', symbols.reindex(combined.index))
        n_missing = int(combined['gene_symbol'].isna().sum())
        if n_missing:
            logger.debug(f"{n_missing} genes have no symbol")

    padj_cols = [f"{label}_adj_p_value" for label in tables]
    keep = (combined[padj_cols] < fdr).any(axis=1)
    combined = combined.loc[keep]
    logger.info(f"{int(keep.sum())} genes significant (FDR < {fdr}) in at least one of "
                f"{list(tables)}")
    return combined.round(decimals)


def run_differential_expression(service: DEService,
                                expression: pd.DataFrame,
                                groups: pd.Series) -> pd.DataFrame:
    """
    Call the external DE service on a two-group partition and validate its
    output.
    """
    groups = groups.reindex(expression.columns)
    if groups.isna().any():
        missing = list(groups.index[groups.isna()])
        raise ValueError(f"No group label for samples: {missing[:5]}")
    labels = groups.unique()
    if len(labels) != 2:
        raise ValueError(f"Differential expression needs exactly two groups, got {list(labels)}")

    logger.info(f"Differential expression: {dict(groups.value_counts())}")
    return validate_de_table(service(expression, groups))
