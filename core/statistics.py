"""
Statistical Methods for DasMeta Framework
=========================================
Row standardisation, rank correlation between labelled matrices and FDR
correction.
"""

import numpy as np
from typing import List, Tuple
from scipy import stats
from statsmodels.stats.multitest import multipletests


def apply_fdr_correction(p_values: List[float],
                         method: str = 'fdr_bh',
                         alpha: float = 0.05) -> Tuple[List[float], List[bool]]:
    """
    Apply False Discovery Rate (FDR) correction for multiple hypothesis testing.

    NaN p-values are passed through as NaN and excluded from the number of
    tests.

    Args:
        p_values: List of raw p-values from statistical tests
        method: Correction method ('fdr_bh' for Benjamini-Hochberg,
                'bonferroni', 'holm', 'fdr_by')
        alpha: Significance level (default 0.05)

    Returns:
        Tuple of (adjusted_pvalues, reject_null_hypothesis)

    Example:
        >>> adj_p, significant = apply_fdr_correction([0.001, 0.01, 0.04, 0.5])
    """
    p = np.asarray(p_values, dtype=float)
    if p.size == 0:
        return [], []

    adjusted = np.full(p.shape, np.nan)
    reject = np.zeros(p.shape, dtype=bool)
    finite = np.isfinite(p)
    if finite.any():
        rej, corrected, _, _ = multipletests(p[finite], alpha=alpha, method=method)
        adjusted[finite] = corrected
        reject[finite] = rej
    return list(adjusted), list(reject)


def standardize_rows(values: np.ndarray, ddof: int = 1) -> np.ndarray:
    """
    Z-score each row (gene) across its columns (samples).

    Rows with zero variance are centred but not scaled, so they come out
    as all zeros instead of NaN.

    Args:
        values: 2-D array, genes x samples
        ddof: Delta degrees of freedom for the standard deviation (1 matches R's scale())

    Returns:
        Array of the same shape
    """
    values = np.asarray(values, dtype=float)
    centred = values - values.mean(axis=1, keepdims=True)
    if values.shape[1] <= ddof:
        return np.zeros_like(centred)
    sd = values.std(axis=1, ddof=ddof, keepdims=True)
    sd[sd == 0] = 1.0
    return centred / sd


def rank_rows(values: np.ndarray) -> np.ndarray:
    """Average-tie ranks along each row"""
    return stats.rankdata(np.asarray(values, dtype=float), axis=1)


def spearman_matrix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Spearman correlation between every row of `a` and every row of `b`.

    Both inputs must share the same columns in the same order. Constant
    rows yield NaN, matching scipy.stats.spearmanr.

    Returns:
        Array of shape (a.shape[0], b.shape[0])
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape[1] != b.shape[1]:
        raise ValueError(f"Column mismatch: {a.shape[1]} vs {b.shape[1]}")

    ra = rank_rows(a)
    rb = rank_rows(b)
    ra -= ra.mean(axis=1, keepdims=True)
    rb -= rb.mean(axis=1, keepdims=True)
    norm_a = np.sqrt((ra ** 2).sum(axis=1))
    norm_b = np.sqrt((rb ** 2).sum(axis=1))

    with np.errstate(divide='ignore', invalid='ignore'):
        rho = (ra @ rb.T) / np.outer(norm_a, norm_b)
    rho[~np.isfinite(rho)] = np.nan
    return np.clip(rho, -1.0, 1.0)


def correlation_pvalues(rho: np.ndarray, n) -> np.ndarray:
    """
    Two-sided p-values for correlation coefficients via the t approximation
    used by scipy.stats.spearmanr.

    Args:
        rho: Array of correlation coefficients (NaN allowed)
        n: Number of observations, scalar or array broadcastable to `rho`

    Returns:
        Array of p-values, NaN where rho is NaN or n < 3
    """
    rho = np.asarray(rho, dtype=float)
    n = np.broadcast_to(np.asarray(n, dtype=float), rho.shape)
    dof = n - 2
    with np.errstate(divide='ignore', invalid='ignore'):
        t = rho * np.sqrt(dof / ((1.0 + rho) * (1.0 - rho)))
        p = 2 * stats.t.sf(np.abs(t), dof)
    p = np.where(np.abs(rho) >= 1.0, 0.0, p)
    p = np.where(np.isnan(rho) | (dof < 1), np.nan, p)
    return p
