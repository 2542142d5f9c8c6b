#!/usr/bin/env python3
"""
Drug Response Matrix
====================
Reshapes a long (drug, cell line, response) table, e.g. GDSC fitted
dose-response AUC or LN_IC50, into a dense drug x cell-line matrix.

Unobserved pairs hold 0. That value is a sentinel, not a measured zero
response; the `observed` mask on the result records which cells are real.
When a (drug, cell line) pair occurs more than once, the first value in
input order is kept and a warning names the pair. Records with a missing
response still place their drug and cell line on the axes and count as
matches; when the first record of a pair has no value the pair stays
unobserved.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from core.data_structures import DrugResponseMatrix, DuplicateObservation
from dasmeta.constants import (
    DEFAULT_RESPONSE_METRIC,
    GDSC_CELL_LINE_COL,
    GDSC_DRUG_COL,
)
from dasmeta.utils import normalize_cell_line_name

logger = logging.getLogger(__name__)


def build_drug_response_matrix(table: pd.DataFrame,
                               drug_col: str = GDSC_DRUG_COL,
                               cell_line_col: str = GDSC_CELL_LINE_COL,
                               value_col: str = DEFAULT_RESPONSE_METRIC,
                               normalize_cell_lines: bool = True) -> DrugResponseMatrix:
    """
    Build the drug x cell-line matrix in a single indexing pass.

    Args:
        table: Long-format records
        drug_col: Column holding drug names
        cell_line_col: Column holding cell-line names
        value_col: Response metric column
        normalize_cell_lines: Apply the canonical cell-line normalisation

    Returns:
        DrugResponseMatrix with rows/columns in order of first appearance
    """
    for col in (drug_col, cell_line_col, value_col):
        if col not in table.columns:
            raise ValueError(f"Drug response table has no column '{col}'")

    records = table[[drug_col, cell_line_col, value_col]]

    drugs: Dict[str, int] = {}
    cell_lines: Dict[str, int] = {}
    first_value: Dict[Tuple[str, str], float] = {}
    match_counts: Dict[Tuple[str, str], int] = {}

    # every record registers its drug / cell line and counts as a match;
    # a missing value only leaves the pair unobserved
    for drug, cell_line, value in records.itertuples(index=False, name=None):
        drug = str(drug)
        cell_line = normalize_cell_line_name(cell_line) if normalize_cell_lines else str(cell_line)
        drugs.setdefault(drug, len(drugs))
        cell_lines.setdefault(cell_line, len(cell_lines))
        key = (drug, cell_line)
        if key in first_value:
            match_counts[key] += 1
        else:
            first_value[key] = float(value) if pd.notna(value) else np.nan
            match_counts[key] = 1

    values = np.zeros((len(drugs), len(cell_lines)))
    observed = np.zeros((len(drugs), len(cell_lines)), dtype=bool)
    n_missing = 0
    for (drug, cell_line), value in first_value.items():
        if np.isnan(value):
            n_missing += 1
            continue
        values[drugs[drug], cell_lines[cell_line]] = value
        observed[drugs[drug], cell_lines[cell_line]] = True
    if n_missing:
        logger.info(f"{n_missing} drug/cell-line pairs have no {value_col} value in their "
                    f"first record and stay unobserved")

    duplicates: List[DuplicateObservation] = []
    for key, n in match_counts.items():
        if n > 1:
            drug, cell_line = key
            kept = first_value[key]
            kept_text = "no value (pair left unobserved)" if np.isnan(kept) else f"value {kept:.4g}"
            logger.warning(f"{n} matches for drug '{drug}' in cell line '{cell_line}'; "
                           f"keeping first {kept_text}")
            duplicates.append(DuplicateObservation(drug, cell_line, n, kept))

    drug_index = list(drugs)
    cell_index = list(cell_lines)
    matrix = DrugResponseMatrix(
        values=pd.DataFrame(values, index=drug_index, columns=cell_index),
        observed=pd.DataFrame(observed, index=drug_index, columns=cell_index),
        duplicates=duplicates,
        metric=value_col,
    )
    logger.info(f"Drug response matrix: {len(drug_index)} drugs x {len(cell_index)} cell lines, "
                f"{matrix.coverage:.1%} observed, {len(duplicates)} duplicate pairs")
    return matrix


def load_drug_response_table(path, sheet_name=0) -> pd.DataFrame:
    """
    Thin loader for GDSC dose-response exports (.csv or .xlsx).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Drug response file not found: {path}")
    logger.info(f"Loading drug response data from {path.name}")
    if path.suffix.lower() in ('.xlsx', '.xls'):
        return pd.read_excel(path, sheet_name=sheet_name)
    return pd.read_csv(path)
