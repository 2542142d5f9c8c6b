#!/usr/bin/env python3
"""
Run the DasMeta pathway metagene / drug response pipeline.

Inputs are pre-computed by the external collaborators: normalised expression
matrices (genes x samples CSV), an enrichment result table (fgsea or goseq),
a biomaRt identifier mapping export and a long GDSC dose-response table.

Saves tables and summary.json to --output-dir (default results/).

Example:
  python run_pipeline.py --reference-expr data/ref_vst.csv --full-expr data/ccle_vst.csv \
      --pathways Data_fgsea_tt2/fgsea_Das_Pathways.csv --id-map data/biomart.csv \
      --drug-response data/GDSC2_fitted_dose_response.csv --metric AUC --threshold 0.4
"""
import sys
import time
import logging
import argparse
from pathlib import Path

import pandas as pd


def load_expression(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Expression matrix not found: {path}")
    return pd.read_csv(path, index_col=0)


def load_parent_map(path: Path) -> dict:
    df = pd.read_csv(path, dtype=str)
    return dict(zip(df.iloc[:, 0], df.iloc[:, 1]))


def main(argv=None):
    parser = argparse.ArgumentParser(description='Correlate pathway metagenes with drug response')
    parser.add_argument('--reference-expr', required=True, type=Path,
                        help='Reference cohort expression (genes x samples CSV)')
    parser.add_argument('--full-expr', required=True, type=Path,
                        help='Full cohort expression (genes x samples CSV)')
    parser.add_argument('--pathways', required=True, type=Path,
                        help='Enrichment result table')
    parser.add_argument('--pathway-format', default='fgsea', choices=['fgsea', 'goseq'])
    parser.add_argument('--pathway-namespace', default='entrez',
                        choices=['ensembl', 'entrez', 'symbol'])
    parser.add_argument('--leading-edge-sep', default=None,
                        help="Gene separator in the pathway table's gene column "
                             "(default: any of '|', ',' or ';' for fgsea, '::' for goseq)")
    parser.add_argument('--parents', type=Path, default=None,
                        help='CSV of child,parent pathway IDs for collapsing redundant pathways')
    parser.add_argument('--id-map', required=True, type=Path,
                        help='biomaRt export with ensembl_gene_id, entrezgene_id, hgnc_symbol')
    parser.add_argument('--drug-response', required=True, type=Path,
                        help='Long drug response table (GDSC fitted dose response)')
    parser.add_argument('--config', type=Path, default=None, help='JSON PipelineConfig')
    parser.add_argument('--metric', default=None, help='Response column, e.g. AUC or LN_IC50')
    parser.add_argument('--threshold', type=float, default=None, help='|rho| association threshold')
    parser.add_argument('--workers', type=int, default=None, help='Processes for the metagene step')
    parser.add_argument('--observed-only', action='store_true',
                        help='Correlate each drug over observed cell lines only')
    parser.add_argument('--output-dir', type=Path, default=Path('results'))
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s:%(name)s:%(message)s')

    from dasmeta.enrichment import (
        collapse_to_parents,
        filter_significant,
        records_from_fgsea,
        records_from_goseq,
    )
    from dasmeta.constants import GOSEQ_GENE_SEPARATOR
    from dasmeta.drug_response import load_drug_response_table
    from dasmeta.id_mapping import IdentifierMapper
    from dasmeta.pipeline import PipelineConfig, PipelineError, run_pipeline

    config = PipelineConfig.from_json(args.config) if args.config else PipelineConfig()
    if args.metric:
        config.response_metric = args.metric
    if args.threshold is not None:
        config.correlation_threshold = args.threshold
    if args.workers is not None:
        config.n_workers = args.workers
    if args.observed_only:
        config.use_observed_only = True
    config.show_progress = True
    config.validate()

    t0 = time.time()
    print("Loading inputs...", flush=True)
    reference = load_expression(args.reference_expr)
    full = load_expression(args.full_expr)
    mapper = IdentifierMapper.from_csv(args.id_map)
    drug_table = load_drug_response_table(args.drug_response)

    table = pd.read_csv(args.pathways)
    if args.pathway_format == 'fgsea':
        records = records_from_fgsea(table, namespace=args.pathway_namespace,
                                     separator=args.leading_edge_sep)
    else:
        records = records_from_goseq(table, namespace=args.pathway_namespace,
                                     separator=args.leading_edge_sep or GOSEQ_GENE_SEPARATOR)
    records = filter_significant(records, config.pathway_fdr)
    if args.parents:
        records = collapse_to_parents(records, load_parent_map(args.parents))
    print(f"  {len(reference.columns)} reference / {len(full.columns)} full samples, "
          f"{len(records)} pathways [{time.time() - t0:.1f}s]", flush=True)

    try:
        result = run_pipeline(reference, full, records, mapper, drug_table, config)
    except PipelineError as e:
        print(f"ERROR: {e}", flush=True)
        return 1

    result.write(args.output_dir)
    print(f"\n{'=' * 70}")
    print(result.summary.report())
    print(f"Saved results to {args.output_dir}")
    print(f"{'=' * 70}")
    print(f"\nTotal time: {time.time() - t0:.1f}s")
    return 0


if __name__ == '__main__':
    sys.exit(main())
