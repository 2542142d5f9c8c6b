#!/usr/bin/env python3
"""
Pathway Metagene Projection
===========================
Fits a rank-1 expression signature ("metagene") per pathway on the
reference cohort and projects it onto the full cohort without refitting.

For a pathway with gene set G:

    Z_ref  = rowwise z-score of reference[G, :]          (genes x ref samples)
    Z_ref  = U S V^T                                     (economy SVD)
    metagene_ref  = V^T[0]
    T      = S^-1 U^T                                    (transformation operator)
    Z_full = rowwise z-score of full[G, :]               (own mean / sd)
    metagene_full = (T Z_full)[0]

Applying T to Z_ref gives back V^T, so the reference metagene is exactly
the projection of the reference cohort onto its own basis.

Pathways are independent, so the fit/projection step is a map over
eligible pathways (optionally on a process pool) followed by an assembly
step into zero-initialised pathway x sample matrices.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from core.data_structures import MetageneMatrix, MetageneResult, ResolvedPathway
from core.statistics import standardize_rows
from dasmeta.constants import SINGULAR_VALUE_TOL

logger = logging.getLogger(__name__)


class MetageneError(Exception):
    """Metagene could not be computed for a pathway"""


class DegenerateDecompositionError(MetageneError):
    """Gene-set submatrix has no usable leading singular value"""


@dataclass
class MetageneBasis:
    """
    SVD of a standardised reference gene-set matrix.

    Attributes:
        genes: Row order the basis was fitted on
        u: Gene-space basis (genes x k)
        s: Singular values (k,)
        vt: Sample-space basis (k x reference samples)
    """
    genes: Tuple[str, ...]
    u: np.ndarray
    s: np.ndarray
    vt: np.ndarray

    @property
    def reference_metagene(self) -> np.ndarray:
        return self.vt[0]

    @property
    def explained_variance(self) -> float:
        """Fraction of standardised variance captured by the first component"""
        total = float((self.s ** 2).sum())
        return float(self.s[0] ** 2 / total) if total > 0 else 0.0


def fit_metagene_basis(reference: np.ndarray,
                       genes: Sequence[str] = (),
                       orient_sign: bool = True,
                       tol: float = SINGULAR_VALUE_TOL) -> MetageneBasis:
    """
    Standardise each gene across reference samples and decompose.

    Components whose singular value is negligible relative to the first are
    discarded so that S^-1 stays finite; the leading component is never
    affected.

    Args:
        reference: genes x reference-samples expression
        genes: Gene labels for the rows
        orient_sign: Flip the first component so its gene loadings sum to
                     >= 0 (high metagene = high pathway expression)
        tol: Minimum acceptable first singular value

    Raises:
        DegenerateDecompositionError: non-finite input or vanishing first
            singular value
    """
    reference = np.asarray(reference, dtype=float)
    if reference.ndim != 2 or reference.shape[1] < 2:
        raise DegenerateDecompositionError(
            f"need a genes x samples matrix with >= 2 samples, got shape {reference.shape}")
    if not np.all(np.isfinite(reference)):
        raise DegenerateDecompositionError("reference expression contains non-finite values")

    z = standardize_rows(reference)
    try:
        u, s, vt = np.linalg.svd(z, full_matrices=False)
    except np.linalg.LinAlgError as e:
        raise DegenerateDecompositionError(f"SVD did not converge: {e}") from e

    if s.size == 0 or not np.isfinite(s[0]) or s[0] <= tol:
        raise DegenerateDecompositionError(
            f"first singular value {s[0] if s.size else 0.0:.3g} is degenerate")

    keep = s > s[0] * np.finfo(float).eps * max(z.shape)
    u, s, vt = u[:, keep], s[keep], vt[keep]

    if orient_sign and u[:, 0].sum() < 0:
        u = u.copy()
        vt = vt.copy()
        u[:, 0] *= -1
        vt[0] *= -1

    return MetageneBasis(genes=tuple(genes), u=u, s=s, vt=vt)


def transformation_operator(basis: MetageneBasis) -> np.ndarray:
    """S^-1 U^T: maps a standardised gene-set vector into the latent coordinates"""
    return np.diag(1.0 / basis.s) @ basis.u.T


def project_onto_basis(basis: MetageneBasis, expression: np.ndarray) -> np.ndarray:
    """
    Project a cohort onto a fitted basis.

    The cohort is z-scored on its own samples before projection.

    Args:
        basis: Basis fitted on the reference cohort
        expression: genes x samples, rows in `basis.genes` order

    Returns:
        First latent coordinate for every sample
    """
    expression = np.asarray(expression, dtype=float)
    if expression.shape[0] != basis.u.shape[0]:
        raise ValueError(f"expected {basis.u.shape[0]} genes, got {expression.shape[0]}")
    if not np.all(np.isfinite(expression)):
        raise DegenerateDecompositionError("projection cohort contains non-finite values")
    z = standardize_rows(expression)
    return (transformation_operator(basis) @ z)[0]


def compute_pathway_metagene(pathway_id: str,
                             reference: np.ndarray,
                             full: np.ndarray,
                             orient_sign: bool = True,
                             tol: float = SINGULAR_VALUE_TOL) -> MetageneResult:
    """
    Fit and project one pathway. Per-pathway failures come back as a result
    with `error` set instead of raising, so a batch never aborts on one
    pathway.
    """
    try:
        basis = fit_metagene_basis(reference, orient_sign=orient_sign, tol=tol)
        projected = project_onto_basis(basis, full)
    except MetageneError as e:
        return MetageneResult(pathway_id=pathway_id, error=str(e))

    return MetageneResult(
        pathway_id=pathway_id,
        reference_scores=basis.reference_metagene.tolist(),
        projected_scores=projected.tolist(),
        singular_value=float(basis.s[0]),
        explained_variance=basis.explained_variance,
    )


def _run_task(task) -> MetageneResult:
    return compute_pathway_metagene(*task)


def build_metagene_matrices(reference_expr: pd.DataFrame,
                            full_expr: pd.DataFrame,
                            pathways: Sequence[ResolvedPathway],
                            n_workers: int = 1,
                            orient_sign: bool = True,
                            tol: float = SINGULAR_VALUE_TOL,
                            show_progress: bool = False) -> Tuple[MetageneMatrix, MetageneMatrix]:
    """
    Metagene matrices for the reference and full cohorts.

    Every resolved pathway gets a row; rows of ineligible pathways
    (<= min_size genes) and of failed decompositions stay zero and are
    flagged False in the eligibility bitmap.

    Args:
        reference_expr: genes x reference samples (normalised, log scale)
        full_expr: genes x full-cohort samples
        pathways: Resolver output, in the desired row order
        n_workers: > 1 runs the per-pathway map on a process pool
        orient_sign: See fit_metagene_basis
        tol: Degenerate singular value tolerance
        show_progress: tqdm progress bar for the sequential path

    Returns:
        (reference MetageneMatrix, full-cohort MetageneMatrix)
    """
    ids = [p.pathway_id for p in pathways]
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValueError(f"Duplicate pathway identifiers: {dupes}")

    ref_scores = pd.DataFrame(0.0, index=ids, columns=reference_expr.columns)
    full_scores = pd.DataFrame(0.0, index=ids, columns=full_expr.columns)
    eligible = pd.Series(False, index=ids, dtype=bool)
    failures = {}

    shared = reference_expr.index.intersection(full_expr.index)
    tasks = []
    for pathway in pathways:
        if not pathway.eligible:
            logger.debug(f"{pathway.pathway_id}: {len(pathway)} genes, skipped")
            continue
        genes = [g for g in pathway.genes if g in shared]
        if len(genes) <= pathway.min_size:
            failures[pathway.pathway_id] = (
                f"only {len(genes)} genes present in both cohorts")
            continue
        tasks.append((
            pathway.pathway_id,
            reference_expr.loc[genes].to_numpy(dtype=float),
            full_expr.loc[genes].to_numpy(dtype=float),
            orient_sign,
            tol,
        ))

    logger.info(f"Computing metagenes for {len(tasks)} eligible pathways "
                f"({len(reference_expr.columns)} reference, {len(full_expr.columns)} full samples)")

    if n_workers > 1 and len(tasks) > 1:
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            results: List[MetageneResult] = list(executor.map(_run_task, tasks))
    else:
        results = [_run_task(t) for t in tqdm(tasks, desc="Metagenes", disable=not show_progress)]

    for result in results:
        if not result.ok:
            failures[result.pathway_id] = result.error
            continue
        ref_scores.loc[result.pathway_id] = result.reference_scores
        full_scores.loc[result.pathway_id] = result.projected_scores
        eligible[result.pathway_id] = True

    for pathway_id, reason in failures.items():
        logger.warning(f"Metagene failed for {pathway_id}: {reason}")

    reference = MetageneMatrix(scores=ref_scores, eligible=eligible.copy(),
                               cohort='reference', failures=dict(failures))
    full = MetageneMatrix(scores=full_scores, eligible=eligible.copy(),
                          cohort='full', failures=dict(failures))
    return reference, full
