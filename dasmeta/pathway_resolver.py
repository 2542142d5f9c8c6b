#!/usr/bin/env python3
"""
Pathway Gene-Set Resolution
===========================
Translates enriched pathway gene lists into the expression matrix's
identifier namespace and marks which pathways have enough genes for a
metagene.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from core.data_structures import PathwayRecord, ResolvedPathway
from dasmeta.constants import ENSEMBL, MIN_GENESET_SIZE
from dasmeta.id_mapping import IdentifierMapper

logger = logging.getLogger(__name__)


def resolve_pathway(record: PathwayRecord,
                    mapper: IdentifierMapper,
                    target_namespace: str = ENSEMBL,
                    expression_genes: Optional[set] = None,
                    min_size: int = MIN_GENESET_SIZE) -> ResolvedPathway:
    """
    Resolve a single pathway.

    Gene order follows the record's gene list (then mapping-table order for
    one-to-many hits), so the result is reproducible for a fixed mapper.
    """
    if record.namespace == target_namespace:
        mapped = list(dict.fromkeys(mapper.normalize(record.genes, target_namespace)))
        n_unmapped = 0
    else:
        mapped = mapper.translate(record.genes, record.namespace, target_namespace)
        n_unmapped = len(mapper.unmapped(record.genes, record.namespace, target_namespace))

    if expression_genes is not None:
        present = [g for g in mapped if g in expression_genes]
        n_absent = len(mapped) - len(present)
    else:
        present = mapped
        n_absent = 0

    return ResolvedPathway(
        pathway_id=record.pathway_id,
        name=record.name,
        genes=tuple(present),
        n_input=len(record.genes),
        n_unmapped=n_unmapped,
        n_absent=n_absent,
        min_size=min_size,
    )


def resolve_pathways(records: Sequence[PathwayRecord],
                     mapper: IdentifierMapper,
                     target_namespace: str = ENSEMBL,
                     expression_genes: Optional[Iterable[str]] = None,
                     min_size: int = MIN_GENESET_SIZE) -> List[ResolvedPathway]:
    """
    Resolve every pathway, keeping input order (assumed sorted by significance).

    Args:
        records: Enrichment results
        mapper: Identifier mapper
        target_namespace: Namespace of the expression matrix rows
        expression_genes: Genes present in the expression matrix; mapped
                          genes outside this set are excluded
        min_size: Pathways need strictly more resolved genes than this

    Returns:
        One ResolvedPathway per record, undersized ones included with
        eligible == False
    """
    if min_size < 0:
        raise ValueError(f"min_size must be non-negative, got {min_size}")

    genes = set(expression_genes) if expression_genes is not None else None
    resolved = []
    for record in records:
        rp = resolve_pathway(record, mapper, target_namespace, genes, min_size)
        logger.debug(f"{rp.pathway_id}: {rp.n_input} genes -> {len(rp)} resolved "
                     f"({rp.n_unmapped} unmapped, {rp.n_absent} absent)")
        resolved.append(rp)

    n_eligible = sum(rp.eligible for rp in resolved)
    logger.info(f"Resolved {len(resolved)} pathways: {n_eligible} with more than "
                f"{min_size} genes")
    return resolved
