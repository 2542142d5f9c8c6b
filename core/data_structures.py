"""
Core Data Structures for DasMeta Framework
==========================================
Dataclasses representing pathways, metagene matrices, drug-response
matrices, correlation results and association views.
"""

import json
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd


@dataclass(frozen=True)
class PathwayRecord:
    """
    One row of a pathway enrichment result.

    Attributes:
        pathway_id: Database identifier (e.g. Reactome stable ID)
        name: Human-readable pathway name
        genes: Leading-edge / in-category genes, in the order reported
        namespace: Identifier namespace of `genes` ('ensembl', 'entrez', 'symbol')
        p_value: Raw enrichment p-value
        adj_p_value: Multiple-testing corrected p-value
        statistic: Enrichment statistic (NES for fgsea); sign gives direction
        source: Method that produced the record ('fgsea', 'goseq', ...)
        n_total: Size of the pathway in the database
    """
    pathway_id: str
    name: str
    genes: Tuple[str, ...]
    namespace: str = 'entrez'
    p_value: float = float('nan')
    adj_p_value: float = float('nan')
    statistic: float = float('nan')
    source: str = 'unknown'
    n_total: Optional[int] = None

    @property
    def direction(self) -> int:
        """+1 for up, -1 for down, 0 when the method carries no direction"""
        if math.isnan(self.statistic) or self.statistic == 0:
            return 0
        return 1 if self.statistic > 0 else -1


@dataclass(frozen=True)
class ResolvedPathway:
    """
    Pathway gene set translated into the expression matrix namespace.

    Attributes:
        pathway_id: Identifier carried over from the PathwayRecord
        name: Display name
        genes: Translated genes present in the expression matrix
        n_input: Number of genes in the source record
        n_unmapped: Source genes with no identifier mapping
        n_absent: Mapped genes missing from the expression matrix
        min_size: Gene sets must be strictly larger than this to be eligible
    """
    pathway_id: str
    name: str
    genes: Tuple[str, ...]
    n_input: int = 0
    n_unmapped: int = 0
    n_absent: int = 0
    min_size: int = 4

    def __len__(self):
        return len(self.genes)

    @property
    def eligible(self) -> bool:
        return len(self.genes) > self.min_size


@dataclass
class MetageneResult:
    """Outcome of the metagene fit/projection for a single pathway"""
    pathway_id: str
    reference_scores: Optional[List[float]] = None
    projected_scores: Optional[List[float]] = None
    singular_value: float = 0.0
    explained_variance: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MetageneMatrix:
    """
    Pathway x sample metagene scores for one cohort.

    Rows for ineligible or failed pathways stay at the zero sentinel;
    `eligible` is the explicit bitmap telling them apart from genuine
    near-zero signatures.
    """
    scores: pd.DataFrame
    eligible: pd.Series
    cohort: str = 'full'
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.scores.shape

    @property
    def eligible_pathways(self) -> List[str]:
        return [p for p, ok in self.eligible.items() if ok]

    def eligible_scores(self) -> pd.DataFrame:
        """Scores restricted to pathways with a computed metagene"""
        return self.scores.loc[self.eligible.values]


@dataclass(frozen=True)
class DuplicateObservation:
    """A (drug, cell line) pair seen more than once in the long table"""
    drug: str
    cell_line: str
    n_matches: int
    kept_value: float


@dataclass
class DrugResponseMatrix:
    """
    Drug x cell-line response matrix.

    `values` uses 0 for unobserved pairs (sentinel, not a measured zero);
    `observed` flags which cells carry a real measurement.
    """
    values: pd.DataFrame
    observed: pd.DataFrame
    duplicates: List[DuplicateObservation] = field(default_factory=list)
    metric: str = 'AUC'

    @property
    def drugs(self) -> List[str]:
        return list(self.values.index)

    @property
    def cell_lines(self) -> List[str]:
        return list(self.values.columns)

    @property
    def coverage(self) -> float:
        """Fraction of drug/cell-line cells with an observation"""
        if self.observed.size == 0:
            return 0.0
        return float(self.observed.values.mean())


@dataclass
class CorrelationMatrix:
    """
    Spearman correlation of pathway metagenes against drug responses.

    Attributes:
        rho: Pathways x drugs correlation coefficients
        p_values: Two-sided p-values for each coefficient
        fdr: Benjamini-Hochberg adjusted p-values over the whole matrix
        n_cell_lines: Number of shared cell lines used
        dropped_pathways: Pathways excluded for lacking a usable metagene
    """
    rho: pd.DataFrame
    p_values: pd.DataFrame
    fdr: pd.DataFrame
    n_cell_lines: int
    dropped_pathways: List[str] = field(default_factory=list)

    @property
    def pathways(self) -> List[str]:
        return list(self.rho.index)

    @property
    def drugs(self) -> List[str]:
        return list(self.rho.columns)

    def to_long(self) -> pd.DataFrame:
        """Long (pathway, drug, rho, p_value, fdr) table"""
        long = self.rho.stack().rename('rho').to_frame()
        long['p_value'] = self.p_values.stack()
        long['fdr'] = self.fdr.stack()
        long.index.names = ['pathway', 'drug']
        return long.reset_index()


@dataclass
class AssociationIndex:
    """
    Threshold-derived views over a CorrelationMatrix.

    Both views are ordered by descending number of partners, ties kept in
    the original matrix order.
    """
    threshold: float
    by_pathway: 'OrderedDict[str, List[str]]'
    by_drug: 'OrderedDict[str, List[str]]'
    rho: Optional[pd.DataFrame] = None

    def __contains__(self, pair: Tuple[str, str]) -> bool:
        pathway, drug = pair
        return drug in self.by_pathway.get(pathway, [])

    def pairs(self) -> List[Tuple[str, str]]:
        return [(p, d) for p, drugs in self.by_pathway.items() for d in drugs]

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for pathway, drug in self.pairs():
            value = self.rho.at[pathway, drug] if self.rho is not None else float('nan')
            rows.append({'pathway': pathway, 'drug': drug, 'rho': value})
        return pd.DataFrame(rows, columns=['pathway', 'drug', 'rho'])

    def counts(self, view: str = 'pathway') -> pd.Series:
        source = self.by_pathway if view == 'pathway' else self.by_drug
        return pd.Series({k: len(v) for k, v in source.items()}, dtype=int)


@dataclass
class RunSummary:
    """Non-fatal issues collected over one pipeline run"""
    n_pathways: int = 0
    n_eligible: int = 0
    unmapped_ids: int = 0
    absent_ids: int = 0
    undersized_pathways: List[str] = field(default_factory=list)
    failed_pathways: Dict[str, str] = field(default_factory=dict)
    duplicate_observations: List[DuplicateObservation] = field(default_factory=list)
    dropped_pathways: List[str] = field(default_factory=list)
    n_shared_cell_lines: int = 0
    n_associations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_pathways': self.n_pathways,
            'n_eligible': self.n_eligible,
            'unmapped_ids': self.unmapped_ids,
            'absent_ids': self.absent_ids,
            'undersized_pathways': list(self.undersized_pathways),
            'failed_pathways': dict(self.failed_pathways),
            'duplicate_observations': [
                {'drug': d.drug, 'cell_line': d.cell_line,
                 'n_matches': d.n_matches, 'kept_value': d.kept_value}
                for d in self.duplicate_observations
            ],
            'dropped_pathways': list(self.dropped_pathways),
            'n_shared_cell_lines': self.n_shared_cell_lines,
            'n_associations': self.n_associations,
        }

    def report(self) -> str:
        lines = [
            f"Pathways resolved: {self.n_pathways} ({self.n_eligible} eligible)",
            f"Unmapped identifiers: {self.unmapped_ids}, absent from expression: {self.absent_ids}",
            f"Undersized pathways: {len(self.undersized_pathways)}",
            f"Failed decompositions: {len(self.failed_pathways)}",
            f"Duplicate drug/cell-line observations: {len(self.duplicate_observations)}",
            f"Pathways dropped before correlation: {len(self.dropped_pathways)}",
            f"Shared cell lines: {self.n_shared_cell_lines}",
            f"Associations above threshold: {self.n_associations}",
        ]
        return "\n".join(lines)

    def write_json(self, path: Path):
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
