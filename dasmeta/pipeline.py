#!/usr/bin/env python3
"""
DasMeta Pipeline
================
Runs the stages in order, each a pure function of the previous stage's
output:

    pathway records --(IdentifierMapper)--> resolved gene sets
    resolved gene sets + reference / full expression --> metagene matrices
    long drug response table --> drug x cell-line matrix
    full-cohort metagenes + drug matrix --> correlation matrix --> association views

Per-item problems (unmapped IDs, undersized pathways, failed decompositions,
duplicate drug observations) are collected into a RunSummary. Anything that
makes a stage impossible is raised as PipelineError naming the stage.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from core.data_structures import (
    AssociationIndex,
    CorrelationMatrix,
    DrugResponseMatrix,
    MetageneMatrix,
    PathwayRecord,
    ResolvedPathway,
    RunSummary,
)
from dasmeta.association import build_association_index, correlate_metagenes_with_drugs
from dasmeta.constants import (
    DE_FDR_CUTOFF,
    DEFAULT_CORRELATION_THRESHOLD,
    DEFAULT_RESPONSE_METRIC,
    ENRICHMENT_METHODS,
    ENSEMBL,
    GDSC_CELL_LINE_COL,
    GDSC_DRUG_COL,
    MIN_GENESET_SIZE,
    NAMESPACES,
    PATHWAY_FDR_CUTOFF,
    RESPONSE_METRICS,
    SINGULAR_VALUE_TOL,
)
from dasmeta.differential_expression import (
    DEService,
    ranked_statistic,
    run_differential_expression,
    significant_genes,
)
from dasmeta.drug_response import build_drug_response_matrix
from dasmeta.enrichment import EnrichmentService, run_enrichment
from dasmeta.id_mapping import IdentifierMapper
from dasmeta.metagene import build_metagene_matrices
from dasmeta.pathway_resolver import resolve_pathways
from dasmeta.utils import with_canonical_columns

logger = logging.getLogger(__name__)


class PipelineError(RuntimeError):
    """Fatal failure of one pipeline stage"""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


@dataclass
class PipelineConfig:
    """
    Tunable parameters of one run. Defaults come from dasmeta.constants.
    """
    min_geneset_size: int = MIN_GENESET_SIZE
    correlation_threshold: float = DEFAULT_CORRELATION_THRESHOLD
    de_fdr: float = DE_FDR_CUTOFF
    pathway_fdr: float = PATHWAY_FDR_CUTOFF
    expression_namespace: str = ENSEMBL
    response_metric: str = DEFAULT_RESPONSE_METRIC
    drug_col: str = GDSC_DRUG_COL
    cell_line_col: str = GDSC_CELL_LINE_COL
    enrichment_method: str = 'fgsea'
    orient_sign: bool = True
    singular_value_tol: float = SINGULAR_VALUE_TOL
    use_observed_only: bool = False
    n_workers: int = 1
    show_progress: bool = False

    def validate(self) -> 'PipelineConfig':
        if self.min_geneset_size < 0:
            raise ValueError(f"min_geneset_size must be >= 0, got {self.min_geneset_size}")
        if not 0 < self.correlation_threshold <= 1:
            raise ValueError(f"correlation_threshold must be in (0, 1], got {self.correlation_threshold}")
        for name in ('de_fdr', 'pathway_fdr'):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if self.expression_namespace not in NAMESPACES:
            raise ValueError(f"Unknown expression namespace '{self.expression_namespace}'")
        if self.enrichment_method not in ENRICHMENT_METHODS:
            raise ValueError(f"Unknown enrichment method '{self.enrichment_method}'. "
                             f"Available: {list(ENRICHMENT_METHODS)}")
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.response_metric not in RESPONSE_METRICS:
            logger.info(f"Non-standard response metric '{self.response_metric}'")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> 'PipelineConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**dict(params)).validate()

    @classmethod
    def from_json(cls, path) -> 'PipelineConfig':
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            return cls.from_dict(json.load(f))


@dataclass
class PipelineResult:
    """Everything one run produces"""
    config: PipelineConfig
    pathways: List[ResolvedPathway]
    reference_metagenes: MetageneMatrix
    full_metagenes: MetageneMatrix
    drug_response: DrugResponseMatrix
    correlations: CorrelationMatrix
    associations: AssociationIndex
    summary: RunSummary = field(default_factory=RunSummary)

    def reassociate(self, threshold: float) -> AssociationIndex:
        """Association views at another threshold, from the stored correlations"""
        return build_association_index(self.correlations, threshold)

    def write(self, output_dir) -> Path:
        """Serialise the produced tables (CSV) and the run summary / config (JSON)"""
        output_dir = Path(output_dir)
        output_dir.mkdir(exist_ok=True, parents=True)

        self.full_metagenes.scores.to_csv(output_dir / "metagenes_full.csv")
        self.reference_metagenes.scores.to_csv(output_dir / "metagenes_reference.csv")
        self.full_metagenes.eligible.rename('eligible').to_csv(output_dir / "metagene_eligibility.csv")
        self.correlations.rho.to_csv(output_dir / "correlations.csv")
        self.correlations.to_long().to_csv(output_dir / "correlations_long.csv", index=False)
        self.associations.to_frame().to_csv(output_dir / "associations.csv", index=False)

        by_drug = pd.DataFrame(
            [{'drug': d, 'n_pathways': len(p), 'pathways': '; '.join(p)}
             for d, p in self.associations.by_drug.items()],
            columns=['drug', 'n_pathways', 'pathways'])
        by_drug.to_csv(output_dir / "associations_by_drug.csv", index=False)
        by_pathway = pd.DataFrame(
            [{'pathway': p, 'n_drugs': len(d), 'drugs': '; '.join(d)}
             for p, d in self.associations.by_pathway.items()],
            columns=['pathway', 'n_drugs', 'drugs'])
        by_pathway.to_csv(output_dir / "associations_by_pathway.csv", index=False)

        self.summary.write_json(output_dir / "summary.json")
        with open(output_dir / "config.json", 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)
        logger.info(f"Results written to {output_dir}")
        return output_dir


def run_pipeline(reference_expr: pd.DataFrame,
                 full_expr: pd.DataFrame,
                 pathways: Sequence[PathwayRecord],
                 mapper: IdentifierMapper,
                 drug_table: pd.DataFrame,
                 config: Optional[PipelineConfig] = None) -> PipelineResult:
    """
    Resolve pathways, build metagenes, correlate with drug response.

    Args:
        reference_expr: Normalised expression, genes x reference-cohort samples
        full_expr: Normalised expression, genes x full-cohort samples
        pathways: Enriched pathways, most significant first
        mapper: Identifier mapper
        drug_table: Long drug response table
        config: Run parameters

    Raises:
        PipelineError: a stage cannot run (bad input, no shared cell lines, ...)
    """
    config = (config or PipelineConfig()).validate()
    summary = RunSummary()

    reference_expr = with_canonical_columns(reference_expr, config.expression_namespace)
    full_expr = with_canonical_columns(full_expr, config.expression_namespace)
    missing_samples = [s for s in reference_expr.columns if s not in full_expr.columns]
    if missing_samples:
        logger.warning(f"{len(missing_samples)} reference samples are not in the full cohort")

    # Pathway gene sets
    genes = reference_expr.index.intersection(full_expr.index)
    if len(genes) == 0:
        raise PipelineError('resolve', "reference and full cohorts share no genes")
    try:
        resolved = resolve_pathways(pathways, mapper,
                                    target_namespace=config.expression_namespace,
                                    expression_genes=genes,
                                    min_size=config.min_geneset_size)
    except ValueError as e:
        raise PipelineError('resolve', str(e)) from e

    summary.n_pathways = len(resolved)
    summary.unmapped_ids = sum(rp.n_unmapped for rp in resolved)
    summary.absent_ids = sum(rp.n_absent for rp in resolved)
    summary.undersized_pathways = [rp.pathway_id for rp in resolved if not rp.eligible]

    # Metagenes
    try:
        ref_metagenes, full_metagenes = build_metagene_matrices(
            reference_expr, full_expr, resolved,
            n_workers=config.n_workers,
            orient_sign=config.orient_sign,
            tol=config.singular_value_tol,
            show_progress=config.show_progress,
        )
    except ValueError as e:
        raise PipelineError('metagene', str(e)) from e
    summary.failed_pathways = dict(full_metagenes.failures)
    summary.n_eligible = len(full_metagenes.eligible_pathways)

    # Drug response
    try:
        drugs = build_drug_response_matrix(drug_table,
                                           drug_col=config.drug_col,
                                           cell_line_col=config.cell_line_col,
                                           value_col=config.response_metric)
    except ValueError as e:
        raise PipelineError('drug_response', str(e)) from e
    summary.duplicate_observations = list(drugs.duplicates)

    # Correlation and association
    try:
        correlations = correlate_metagenes_with_drugs(full_metagenes, drugs,
                                                      use_observed_only=config.use_observed_only)
    except ValueError as e:
        raise PipelineError('association', str(e)) from e
    summary.dropped_pathways = list(correlations.dropped_pathways)
    summary.n_shared_cell_lines = correlations.n_cell_lines

    associations = build_association_index(correlations, config.correlation_threshold)
    summary.n_associations = len(associations.pairs())

    for line in summary.report().splitlines():
        logger.info(line)

    return PipelineResult(
        config=config,
        pathways=resolved,
        reference_metagenes=ref_metagenes,
        full_metagenes=full_metagenes,
        drug_response=drugs,
        correlations=correlations,
        associations=associations,
        summary=summary,
    )


def run_with_services(reference_expr: pd.DataFrame,
                      full_expr: pd.DataFrame,
                      groups: pd.Series,
                      de_service: DEService,
                      enrichment_service: EnrichmentService,
                      mapper: IdentifierMapper,
                      drug_table: pd.DataFrame,
                      config: Optional[PipelineConfig] = None,
                      parent_of: Optional[Mapping[str, str]] = None,
                      enrichment_namespace: str = 'entrez') -> PipelineResult:
    """
    Full run starting from the two-group partition of the reference cohort:
    DE service -> ranked statistic -> enrichment service -> run_pipeline.
    """
    config = (config or PipelineConfig()).validate()
    try:
        de_table = run_differential_expression(de_service, reference_expr, groups)
    except ValueError as e:
        raise PipelineError('differential_expression', str(e)) from e

    ranking = ranked_statistic(de_table)
    if config.enrichment_method == 'goseq':
        # over-representation runs on the DE genes only
        ranking = ranking[ranking.index.isin(significant_genes(de_table, config.de_fdr))]
        logger.info(f"{len(ranking)} DE genes (adjusted p < {config.de_fdr}) passed to goseq")
    if enrichment_namespace != config.expression_namespace:
        mapped = mapper.map_ids(ranking.index, config.expression_namespace, enrichment_namespace)
        first = mapped.drop_duplicates(enrichment_namespace)
        ranking = pd.Series(ranking.reindex(first[config.expression_namespace]).to_numpy(),
                            index=first[enrichment_namespace].to_numpy(), name='statistic')

    try:
        records = run_enrichment(enrichment_service, ranking,
                                 method=config.enrichment_method,
                                 namespace=enrichment_namespace,
                                 alpha=config.pathway_fdr,
                                 parent_of=parent_of)
    except ValueError as e:
        raise PipelineError('enrichment', str(e)) from e
    if not records:
        raise PipelineError('enrichment', f"no pathways with adjusted p < {config.pathway_fdr}")

    return run_pipeline(reference_expr, full_expr, records, mapper, drug_table, config)
