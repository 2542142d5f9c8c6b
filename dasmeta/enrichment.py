#!/usr/bin/env python3
"""
Pathway Enrichment Results
==========================
Contract for the external enrichment services (fgsea on a ranked gene list,
goseq over-representation on DE genes) and the filtering the pipeline does
on their output:

- conversion of fgsea / goseq result tables into PathwayRecords
- significance filtering on adjusted p-values
- collapse of pathways redundant with an enriched parent pathway
- comparison of pathway sets found by different methods
"""

import logging
import math
import re
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from core.data_structures import PathwayRecord
from dasmeta.constants import (
    ENTREZ,
    GOSEQ_GENE_SEPARATOR,
    LEADING_EDGE_PATTERN,
    PATHWAY_FDR_CUTOFF,
)

logger = logging.getLogger(__name__)

EnrichmentService = Callable[[pd.Series], pd.DataFrame]


def _split_genes(value, pattern: str) -> tuple:
    if isinstance(value, (list, tuple)):
        return tuple(str(g).strip() for g in value if str(g).strip())
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ()
    return tuple(g.strip() for g in re.split(pattern, str(value)) if g.strip())


def _sort_records(records: List[PathwayRecord]) -> List[PathwayRecord]:
    def key(r):
        padj = float('inf') if math.isnan(r.adj_p_value) else r.adj_p_value
        p = float('inf') if math.isnan(r.p_value) else r.p_value
        return (padj, p)
    return sorted(records, key=key)


def records_from_fgsea(table: pd.DataFrame,
                       namespace: str = ENTREZ,
                       names: Optional[Mapping[str, str]] = None,
                       separator: Optional[str] = None) -> List[PathwayRecord]:
    """
    fgsea result -> PathwayRecords sorted by adjusted p-value.

    Expects columns pathway, pval, padj, NES, size, leadingEdge. The leading
    edge may be a list per row or a delimited string. Without an explicit
    `separator` the string is split on any of '|' (data.table::fwrite),
    ',' or ';'.
    """
    required = ['pathway', 'pval', 'padj', 'NES', 'leadingEdge']
    missing = [c for c in required if c not in table.columns]
    if missing:
        raise ValueError(f"fgsea table missing columns: {missing}")

    names = names or {}
    pattern = re.escape(separator) if separator else LEADING_EDGE_PATTERN
    records = []
    for row in table.to_dict('records'):
        pathway_id = str(row['pathway'])
        records.append(PathwayRecord(
            pathway_id=pathway_id,
            name=names.get(pathway_id, pathway_id),
            genes=_split_genes(row['leadingEdge'], pattern),
            namespace=namespace,
            p_value=float(row['pval']),
            adj_p_value=float(row['padj']),
            statistic=float(row['NES']),
            source='fgsea',
            n_total=int(row['size']) if 'size' in row and pd.notna(row['size']) else None,
        ))
    return _sort_records(records)


def records_from_goseq(table: pd.DataFrame,
                       namespace: str = ENTREZ,
                       separator: str = GOSEQ_GENE_SEPARATOR) -> List[PathwayRecord]:
    """
    goseq result -> PathwayRecords sorted by adjusted p-value.

    Accepts the raw goseq columns (category, over_represented_pvalue) and
    the annotated export (Pathway, adjP, numInCat, DEgenesInCat with genes
    joined by '::'). goseq is not directional, so statistic is NaN.
    """
    id_col = 'category' if 'category' in table.columns else 'Pathway'
    p_col = 'over_represented_pvalue' if 'over_represented_pvalue' in table.columns else 'pval'
    for col in (id_col, 'DEgenesInCat'):
        if col not in table.columns:
            raise ValueError(f"goseq table missing column '{col}'")

    records = []
    for row in table.to_dict('records'):
        pathway_id = str(row[id_col])
        p = float(row[p_col]) if p_col in row else float('nan')
        padj = float(row['adjP']) if 'adjP' in row else p
        records.append(PathwayRecord(
            pathway_id=pathway_id,
            name=str(row.get('Pathway', pathway_id)),
            genes=_split_genes(row['DEgenesInCat'], re.escape(separator)),
            namespace=namespace,
            p_value=p,
            adj_p_value=padj,
            source='goseq',
            n_total=int(row['numInCat']) if pd.notna(row.get('numInCat')) else None,
        ))
    return _sort_records(records)


def filter_significant(records: Sequence[PathwayRecord],
                       alpha: float = PATHWAY_FDR_CUTOFF) -> List[PathwayRecord]:
    """Records with adjusted p-value strictly below alpha, order preserved"""
    kept = [r for r in records if r.adj_p_value < alpha]
    logger.info(f"{len(kept)}/{len(records)} pathways with adjusted p < {alpha}")
    return kept


def collapse_to_parents(records: Sequence[PathwayRecord],
                        parent_of: Mapping[str, str]) -> List[PathwayRecord]:
    """
    Drop pathways whose signal is carried by a more general parent.

    A pathway is removed when any ancestor (following `parent_of` upwards)
    is also in `records` with the same direction. Non-directional records
    (direction 0) collapse onto any present ancestor.

    Args:
        records: Enriched pathways
        parent_of: child pathway ID -> parent pathway ID (Reactome hierarchy)
    """
    present = {r.pathway_id: r for r in records}
    kept = []
    for record in records:
        seen = {record.pathway_id}
        node = parent_of.get(record.pathway_id)
        redundant_with = None
        while node is not None and node not in seen:
            seen.add(node)
            parent = present.get(node)
            if parent is not None and (record.direction == 0 or parent.direction == record.direction):
                redundant_with = node
                break
            node = parent_of.get(node)
        if redundant_with is None:
            kept.append(record)
        else:
            logger.debug(f"{record.pathway_id} collapsed into parent {redundant_with}")
    logger.info(f"Collapsed {len(records) - len(kept)} pathways into enriched parents")
    return kept


def compare_methods(pathway_sets: Mapping[str, Iterable[str]]) -> pd.DataFrame:
    """
    Membership table of pathways found by each enrichment method.

    Returns:
        Boolean DataFrame, pathways (first-seen order) x methods, with an
        extra `n_methods` column
    """
    ordered: Dict[str, None] = {}
    sets = {}
    for method, pathways in pathway_sets.items():
        pathways = list(dict.fromkeys(pathways))
        sets[method] = set(pathways)
        ordered.update(dict.fromkeys(pathways))

    table = pd.DataFrame(
        {method: [p in members for p in ordered] for method, members in sets.items()},
        index=pd.Index(list(ordered), name='pathway'),
        dtype=bool,
    )
    table['n_methods'] = table.sum(axis=1).astype(int)
    return table


def shared_pathways(pathway_sets: Mapping[str, Iterable[str]]) -> List[str]:
    """Pathways found by every method, in the order of the first method"""
    table = compare_methods(pathway_sets)
    return list(table.index[table['n_methods'] == len(pathway_sets)])


def pathway_summary_table(records: Sequence[PathwayRecord]) -> pd.DataFrame:
    """
    Tidy pathway table: counts, adjusted p-value and alphabetically sorted,
    comma-joined member genes.
    """
    rows = [{
        'pathway': r.pathway_id,
        'name': r.name,
        'n_genes': len(r.genes),
        'n_total': r.n_total,
        'adj_p_value': r.adj_p_value,
        'genes': ', '.join(sorted(r.genes)),
    } for r in records]
    return pd.DataFrame(rows, columns=['pathway', 'name', 'n_genes', 'n_total',
                                       'adj_p_value', 'genes'])


def run_enrichment(service: EnrichmentService,
                   ranking: pd.Series,
                   method: str = 'fgsea',
                   namespace: str = ENTREZ,
                   alpha: float = PATHWAY_FDR_CUTOFF,
                   parent_of: Optional[Mapping[str, str]] = None) -> List[PathwayRecord]:
    """
    Call the external enrichment service and turn its table into significant,
    optionally parent-collapsed PathwayRecords.
    """
    table = service(ranking)
    if method == 'fgsea':
        records = records_from_fgsea(table, namespace=namespace)
    elif method == 'goseq':
        records = records_from_goseq(table, namespace=namespace)
    else:
        raise ValueError(f"Unknown enrichment method: {method}")

    records = filter_significant(records, alpha)
    if parent_of:
        records = collapse_to_parents(records, parent_of)
    return records
