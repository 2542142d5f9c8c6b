"""
DasMeta Framework Core Modules
==============================
Shared components for the pathway metagene / drug-response framework.

This package contains:
- data_structures: Core data classes (PathwayRecord, ResolvedPathway,
  MetageneMatrix, DrugResponseMatrix, CorrelationMatrix, AssociationIndex, ...)
- statistics: Row standardisation, rank correlation and FDR correction
"""

from .data_structures import (
    PathwayRecord,
    ResolvedPathway,
    MetageneResult,
    MetageneMatrix,
    DuplicateObservation,
    DrugResponseMatrix,
    CorrelationMatrix,
    AssociationIndex,
    RunSummary,
)

from .statistics import (
    apply_fdr_correction,
    standardize_rows,
    rank_rows,
    spearman_matrix,
    correlation_pvalues,
)

__all__ = [
    # Data structures
    'PathwayRecord',
    'ResolvedPathway',
    'MetageneResult',
    'MetageneMatrix',
    'DuplicateObservation',
    'DrugResponseMatrix',
    'CorrelationMatrix',
    'AssociationIndex',
    'RunSummary',
    # Statistics
    'apply_fdr_correction',
    'standardize_rows',
    'rank_rows',
    'spearman_matrix',
    'correlation_pvalues',
]

__version__ = '1.0.0'
