#!/usr/bin/env python3
"""
Canonical constants for DasMeta Framework
=========================================
Single source of truth for thresholds, identifier namespaces and the column
layouts of the tables exchanged with external collaborators. All other
modules should import from here instead of maintaining their own copies.
"""

from typing import Dict, Tuple

# ---------------------------------------------------------------------------
# IDENTIFIER NAMESPACES
# ---------------------------------------------------------------------------

ENSEMBL = 'ensembl'
ENTREZ = 'entrez'
SYMBOL = 'symbol'

NAMESPACES: Tuple[str, ...] = (ENSEMBL, ENTREZ, SYMBOL)

# Column names of a biomaRt-style mapping export, per namespace
MAPPING_COLUMNS: Dict[str, str] = {
    ENSEMBL: 'ensembl_gene_id',
    ENTREZ:  'entrezgene_id',
    SYMBOL:  'hgnc_symbol',
}

# ---------------------------------------------------------------------------
# PIPELINE THRESHOLDS (defaults for PipelineConfig)
# ---------------------------------------------------------------------------

# A pathway needs strictly more than this many resolved genes for a metagene
MIN_GENESET_SIZE = 4

# |rho| must exceed this for a pathway/drug association
DEFAULT_CORRELATION_THRESHOLD = 0.4

# Adjusted p-value cutoffs for differential expression and enrichment
DE_FDR_CUTOFF = 0.05
PATHWAY_FDR_CUTOFF = 0.05

# First singular values at or below this are treated as degenerate
SINGULAR_VALUE_TOL = 1e-10

# Decimal places kept in combined DE tables
REPORT_DECIMALS = 4

# ---------------------------------------------------------------------------
# DRUG RESPONSE (GDSC fitted dose-response layout)
# ---------------------------------------------------------------------------

GDSC_DRUG_COL = 'DRUG_NAME'
GDSC_CELL_LINE_COL = 'CELL_LINE_NAME'
RESPONSE_METRICS: Tuple[str, ...] = ('AUC', 'LN_IC50')
DEFAULT_RESPONSE_METRIC = 'AUC'

# ---------------------------------------------------------------------------
# DIFFERENTIAL EXPRESSION (limma topTable -> canonical column names)
# ---------------------------------------------------------------------------

DE_COLUMN_ALIASES: Dict[str, str] = {
    'ID':        'gene_id',
    'gene':      'gene_id',
    'Ensembl_ID': 'gene_id',
    'logFC':     'log_fc',
    'AveExpr':   'avg_expr',
    'Avg_Exp':   'avg_expr',
    't':         'statistic',
    'P.Value':   'p_value',
    'adj.P.Val': 'adj_p_value',
    'Gene_Symbol': 'gene_symbol',
    'hgnc_symbol': 'gene_symbol',
    'symbol':    'gene_symbol',
}

DE_REQUIRED_COLUMNS: Tuple[str, ...] = ('gene_id', 'log_fc', 'p_value', 'adj_p_value')

# ---------------------------------------------------------------------------
# ENRICHMENT RESULT LAYOUTS
# ---------------------------------------------------------------------------

# goseq joins in-category DE genes with this separator
GOSEQ_GENE_SEPARATOR = '::'

# Result layouts understood by dasmeta.enrichment
ENRICHMENT_METHODS: Tuple[str, ...] = ('fgsea', 'goseq')

# fgsea leading edges: data.table::fwrite joins list columns with '|',
# hand-written exports use ',' or ';'
LEADING_EDGE_PATTERN = r'[|,;]'
