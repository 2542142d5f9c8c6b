"""
Unit Tests for the Association Engine
=====================================
Correlation of projected metagenes with drug response and the threshold
views derived from it.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from core.data_structures import CorrelationMatrix, DrugResponseMatrix, MetageneMatrix
from dasmeta.association import (
    EmptyIntersectionError,
    align_cell_lines,
    build_association_index,
    correlate_metagenes_with_drugs,
)


@pytest.fixture
def metagenes():
    """Three pathways over 30 cell lines; P_SMALL is the ineligible zero sentinel"""
    np.random.seed(11)
    lines = [f"L{i}" for i in range(30)]
    scores = pd.DataFrame(np.random.normal(size=(3, 30)), index=['P1', 'P_SMALL', 'P2'], columns=lines)
    scores.loc['P_SMALL'] = 0.0
    eligible = pd.Series([True, False, True], index=scores.index)
    return MetageneMatrix(scores=scores, eligible=eligible)


@pytest.fixture
def drugs(metagenes):
    """Drug matrix over a shuffled superset of cell lines"""
    np.random.seed(12)
    lines = list(metagenes.scores.columns[5:]) + ['X1', 'X2']
    lines = list(np.random.permutation(lines))
    p1 = metagenes.scores.loc['P1']
    values = pd.DataFrame(np.random.normal(size=(3, len(lines))), index=['DrugA', 'DrugB', 'DrugC'],
                          columns=lines)
    # DrugA tracks P1 closely
    values.loc['DrugA'] = [p1.get(c, 0.0) + np.random.normal(scale=0.1) for c in lines]
    observed = pd.DataFrame(True, index=values.index, columns=values.columns)
    return DrugResponseMatrix(values=values, observed=observed)


def _corr(rho: pd.DataFrame) -> CorrelationMatrix:
    return CorrelationMatrix(rho=rho, p_values=rho * 0, fdr=rho * 0, n_cell_lines=10)


class TestAlignCellLines:

    def test_intersection_in_metagene_order(self):
        assert align_cell_lines(['a', 'b', 'c', 'd'], ['d', 'x', 'b']) == ['b', 'd']

    def test_empty_intersection_is_fatal(self):
        with pytest.raises(EmptyIntersectionError):
            align_cell_lines(['a', 'b'], ['c'])

    def test_empty_intersection_is_value_error(self):
        with pytest.raises(ValueError):
            align_cell_lines([], ['c'])


class TestCorrelateMetagenesWithDrugs:

    def test_matches_scipy_on_aligned_vectors(self, metagenes, drugs):
        corr = correlate_metagenes_with_drugs(metagenes, drugs)
        shared = [c for c in metagenes.scores.columns if c in drugs.values.columns]
        expected, p = stats.spearmanr(metagenes.scores.loc['P2', shared],
                                      drugs.values.loc['DrugB', shared])
        assert corr.rho.loc['P2', 'DrugB'] == pytest.approx(expected)
        assert corr.p_values.loc['P2', 'DrugB'] == pytest.approx(p, rel=1e-6)
        assert corr.n_cell_lines == 25

    def test_strong_association_detected(self, metagenes, drugs):
        corr = correlate_metagenes_with_drugs(metagenes, drugs)
        assert corr.rho.loc['P1', 'DrugA'] > 0.9
        assert corr.fdr.loc['P1', 'DrugA'] < 0.05

    def test_ineligible_pathway_absent(self, metagenes, drugs):
        corr = correlate_metagenes_with_drugs(metagenes, drugs)
        assert 'P_SMALL' not in corr.rho.index
        assert 'P_SMALL' in corr.dropped_pathways
        assert corr.pathways == ['P1', 'P2']

    def test_constant_eligible_row_dropped(self, metagenes, drugs):
        scores = metagenes.scores.copy()
        scores.loc['P2'] = 3.0
        flat = MetageneMatrix(scores=scores, eligible=metagenes.eligible)
        corr = correlate_metagenes_with_drugs(flat, drugs)
        assert corr.pathways == ['P1']
        assert 'P2' in corr.dropped_pathways

    def test_no_shared_cell_lines(self, metagenes):
        values = pd.DataFrame([[1.0, 2.0]], index=['DrugA'], columns=['Z1', 'Z2'])
        other = DrugResponseMatrix(values=values, observed=values.notna())
        with pytest.raises(EmptyIntersectionError):
            correlate_metagenes_with_drugs(metagenes, other)

    def test_observed_only(self, metagenes, drugs):
        values = drugs.values.copy()
        observed = drugs.observed.copy()
        hidden = list(values.columns[:8])
        values.loc['DrugB', hidden] = 0.0
        observed.loc['DrugB', hidden] = False
        sparse = DrugResponseMatrix(values=values, observed=observed)

        corr = correlate_metagenes_with_drugs(metagenes, sparse, use_observed_only=True)
        shared = [c for c in metagenes.scores.columns
                  if c in values.columns and c not in hidden]
        expected, _ = stats.spearmanr(metagenes.scores.loc['P1', shared],
                                      values.loc['DrugB', shared])
        assert corr.rho.loc['P1', 'DrugB'] == pytest.approx(expected)

    def test_sentinel_zeros_used_by_default(self, metagenes, drugs):
        values = drugs.values.copy()
        observed = drugs.observed.copy()
        hidden = list(values.columns[:8])
        values.loc['DrugB', hidden] = 0.0
        observed.loc['DrugB', hidden] = False
        sparse = DrugResponseMatrix(values=values, observed=observed)

        corr = correlate_metagenes_with_drugs(metagenes, sparse)
        shared = [c for c in metagenes.scores.columns if c in values.columns]
        expected, _ = stats.spearmanr(metagenes.scores.loc['P1', shared],
                                      values.loc['DrugB', shared])
        assert corr.rho.loc['P1', 'DrugB'] == pytest.approx(expected)

    def test_long_table(self, metagenes, drugs):
        long = correlate_metagenes_with_drugs(metagenes, drugs).to_long()
        assert list(long.columns) == ['pathway', 'drug', 'rho', 'p_value', 'fdr']
        assert len(long) == 2 * 3


class TestAssociationIndex:

    def test_example_scenario(self):
        """rho = 0.62: present at tau 0.4, absent at tau 0.7"""
        rho = pd.DataFrame([[0.62]], index=['P'], columns=['D'])
        low = build_association_index(_corr(rho), 0.4)
        assert low.by_drug['D'] == ['P']
        assert low.by_pathway['P'] == ['D']
        assert ('P', 'D') in low

        high = build_association_index(_corr(rho), 0.7)
        assert 'D' not in high.by_drug
        assert 'P' not in high.by_pathway

    def test_negative_correlations_count(self):
        rho = pd.DataFrame([[-0.8, 0.1]], index=['P'], columns=['D1', 'D2'])
        index = build_association_index(_corr(rho), 0.5)
        assert index.by_pathway['P'] == ['D1']

    def test_strict_threshold(self):
        rho = pd.DataFrame([[0.5]], index=['P'], columns=['D'])
        assert build_association_index(_corr(rho), 0.5).pairs() == []

    def test_ordering_by_count_then_original(self):
        rho = pd.DataFrame(
            [[0.9, 0.1, 0.1],
             [0.9, 0.9, 0.9],
             [0.1, 0.9, 0.1],
             [0.9, 0.9, 0.1]],
            index=['P1', 'P2', 'P3', 'P4'], columns=['D1', 'D2', 'D3'])
        index = build_association_index(_corr(rho), 0.5)
        assert list(index.by_pathway) == ['P2', 'P4', 'P1', 'P3']
        assert index.by_pathway['P4'] == ['D1', 'D2']
        assert list(index.by_drug) == ['D1', 'D2', 'D3']
        assert index.by_drug['D3'] == ['P2']

    def test_threshold_monotonicity(self):
        np.random.seed(4)
        rho = pd.DataFrame(np.random.uniform(-1, 1, (8, 6)),
                           index=[f"P{i}" for i in range(8)], columns=[f"D{j}" for j in range(6)])
        corr = _corr(rho)
        for t1, t2 in [(0.1, 0.3), (0.3, 0.6), (0.6, 0.9)]:
            loose = set(build_association_index(corr, t1).pairs())
            strict = set(build_association_index(corr, t2).pairs())
            assert strict <= loose

    def test_nan_never_associated(self):
        rho = pd.DataFrame([[np.nan, 0.9]], index=['P'], columns=['D1', 'D2'])
        assert build_association_index(_corr(rho), 0.5).pairs() == [('P', 'D2')]

    @pytest.mark.parametrize('threshold', [0, -0.2, 1.5])
    def test_invalid_threshold(self, threshold):
        rho = pd.DataFrame([[0.9]], index=['P'], columns=['D'])
        with pytest.raises(ValueError):
            build_association_index(_corr(rho), threshold)

    def test_to_frame(self):
        rho = pd.DataFrame([[0.9, -0.7]], index=['P'], columns=['D1', 'D2'])
        frame = build_association_index(_corr(rho), 0.5).to_frame()
        assert list(frame['drug']) == ['D1', 'D2']
        assert list(frame['rho']) == [0.9, -0.7]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
