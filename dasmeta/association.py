#!/usr/bin/env python3
"""
Metagene / Drug Response Association
====================================
Spearman correlation of every projected pathway metagene against every drug
response profile over the cell lines the two matrices share, and
threshold-based association views on top of it.

Pathways without a usable metagene (too few genes, failed decomposition,
constant scores) are excluded from the correlation results, not zeroed.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from core.data_structures import (
    AssociationIndex,
    CorrelationMatrix,
    DrugResponseMatrix,
    MetageneMatrix,
)
from core.statistics import apply_fdr_correction, correlation_pvalues, spearman_matrix

logger = logging.getLogger(__name__)


class EmptyIntersectionError(ValueError):
    """Metagene and drug response matrices share no cell lines"""


def align_cell_lines(metagene_columns: Sequence[str], drug_columns: Sequence[str]) -> List[str]:
    """
    Cell lines present in both matrices, in metagene column order.

    Raises:
        EmptyIntersectionError: when nothing is shared
    """
    drug_set = set(drug_columns)
    shared = [c for c in metagene_columns if c in drug_set]
    if not shared:
        raise EmptyIntersectionError(
            f"No cell lines shared between metagene matrix ({len(metagene_columns)} samples) "
            f"and drug response matrix ({len(drug_columns)} cell lines)")
    return shared


def _observed_only_rho(scores: np.ndarray, responses: np.ndarray,
                       observed: np.ndarray):
    """Per-drug Spearman restricted to that drug's observed cell lines"""
    rho = np.full((scores.shape[0], responses.shape[0]), np.nan)
    n = observed.sum(axis=1)
    for j in range(responses.shape[0]):
        mask = observed[j]
        if mask.sum() < 3:
            continue
        rho[:, j] = spearman_matrix(scores[:, mask], responses[j:j + 1, mask])[:, 0]
    return rho, np.broadcast_to(n, rho.shape)


def correlate_metagenes_with_drugs(metagenes: MetageneMatrix,
                                   drugs: DrugResponseMatrix,
                                   use_observed_only: bool = False) -> CorrelationMatrix:
    """
    Pathway x drug Spearman correlation matrix.

    Args:
        metagenes: Full-cohort metagene matrix
        drugs: Drug response matrix
        use_observed_only: Correlate each drug over its observed cell lines
                           only instead of the sentinel-filled matrix

    Returns:
        CorrelationMatrix; ineligible pathways and pathways whose
        correlations are all undefined are listed in `dropped_pathways`
    """
    shared = align_cell_lines(list(metagenes.scores.columns), list(drugs.values.columns))
    logger.info(f"Correlating over {len(shared)} shared cell lines")

    eligible_mask = metagenes.eligible.reindex(metagenes.scores.index).fillna(False).astype(bool)
    dropped = [p for p, ok in eligible_mask.items() if not ok]
    scores = metagenes.scores.loc[eligible_mask.values, shared]
    responses = drugs.values.loc[:, shared]

    if use_observed_only:
        observed = drugs.observed.loc[:, shared].to_numpy(dtype=bool)
        rho, n = _observed_only_rho(scores.to_numpy(), responses.to_numpy(), observed)
    else:
        rho = spearman_matrix(scores.to_numpy(), responses.to_numpy())
        n = len(shared)

    rho = pd.DataFrame(rho, index=scores.index, columns=responses.index)
    pvals = pd.DataFrame(correlation_pvalues(rho.to_numpy(), n),
                         index=rho.index, columns=rho.columns)

    undefined = rho.isna().all(axis=1)
    if undefined.any():
        constant = list(rho.index[undefined])
        logger.info(f"Dropping {len(constant)} pathways with constant metagene scores")
        dropped.extend(constant)
        rho = rho.loc[~undefined]
        pvals = pvals.loc[~undefined]

    adjusted, _ = apply_fdr_correction(pvals.to_numpy().ravel())
    fdr = pd.DataFrame(np.asarray(adjusted).reshape(pvals.shape),
                       index=pvals.index, columns=pvals.columns)

    if dropped:
        logger.info(f"{len(dropped)} pathways without sufficient gene-set coverage "
                    f"excluded from correlation results")
    return CorrelationMatrix(rho=rho, p_values=pvals, fdr=fdr,
                             n_cell_lines=len(shared), dropped_pathways=dropped)


def _ordered_view(hits: pd.DataFrame) -> 'OrderedDict[str, List[str]]':
    """Row label -> hit column labels, ordered by descending hit count (stable)"""
    view: Dict[str, List[str]] = {}
    for label, row in hits.iterrows():
        partners = [c for c, hit in row.items() if hit]
        if partners:
            view[label] = partners
    return OrderedDict(sorted(view.items(), key=lambda kv: -len(kv[1])))


def build_association_index(correlations: CorrelationMatrix, threshold: float) -> AssociationIndex:
    """
    Pathway -> drugs and drug -> pathways with |rho| > threshold.

    Args:
        correlations: Output of correlate_metagenes_with_drugs
        threshold: tau in (0, 1]

    Returns:
        AssociationIndex, recomputed from scratch on every call
    """
    if not 0 < threshold <= 1:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")

    hits = correlations.rho.abs().gt(threshold)
    index = AssociationIndex(
        threshold=threshold,
        by_pathway=_ordered_view(hits),
        by_drug=_ordered_view(hits.T),
        rho=correlations.rho,
    )
    logger.info(f"|rho| > {threshold}: {len(index.pairs())} associations, "
                f"{len(index.by_pathway)} pathways, {len(index.by_drug)} drugs")
    return index
