"""
DasMeta Framework: Dasatinib pathway Metagene associations
===========================================================
Links pathway metagene scores, fitted on a reference cell-line cohort and
projected onto a larger cohort, to drug-response profiles by rank
correlation.
"""

from dasmeta.utils import normalize_cell_line_name, strip_ensembl_version

__all__ = [
    "normalize_cell_line_name",
    "strip_ensembl_version",
]

# Submodules
# - dasmeta.id_mapping: IdentifierMapper
# - dasmeta.pathway_resolver: resolve_pathways
# - dasmeta.metagene: build_metagene_matrices, fit_metagene_basis, project_onto_basis
# - dasmeta.drug_response: build_drug_response_matrix
# - dasmeta.association: correlate_metagenes_with_drugs, build_association_index
# - dasmeta.differential_expression / dasmeta.enrichment: external service contracts
# - dasmeta.pipeline: PipelineConfig, run_pipeline, run_with_services
