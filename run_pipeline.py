#!/usr/bin/env python3
"""
Training notebook pipelines as scripts

This script runs one of:
1. Consensus clustering validation of bulk medulloblastoma samples
2. Single-cell clustering and marker gene export
3. Preranked GSEA of one cluster's markers
4. Mitochondrial gene list export from a fixed Ensembl release

uv run python run_pipeline.py cell-clustering --plots-dir plots
"""

import argparse
import warnings

import matplotlib
import scanpy as sc

from notebook_utils.config import GSEA_PARAMS, PATHS, get_config_summary
from notebook_utils.pipelines import (
    run_cell_clustering,
    run_cluster_validation,
    run_gene_set_enrichment,
    run_mitochondrial_export,
)

# Configure scanpy
sc.settings.verbosity = 1
sc.settings.set_figure_params(dpi=80, facecolor="white")

# Suppress warnings
warnings.filterwarnings("ignore")


def build_parser():
    parser = argparse.ArgumentParser(description="Run a training notebook pipeline")
    parser.add_argument(
        "--plots-dir",
        default=str(PATHS["plots_dir"]),
        help="Directory to write plots to (default: 'plots')",
    )
    subparsers = parser.add_subparsers(dest="pipeline", required=True)

    validation = subparsers.add_parser(
        "cluster-validation", help="Consensus clustering of bulk samples"
    )
    validation.add_argument("--metadata", default=str(PATHS["metadata"]))
    validation.add_argument("--expression", default=str(PATHS["bulk_expression"]))
    validation.add_argument("--out-dir", default=str(PATHS["cluster_validation_dir"]))
    validation.add_argument("--k", type=int, default=None, help="Cluster count to report")

    clustering = subparsers.add_parser(
        "cell-clustering", help="k-means and graph clustering with marker export"
    )
    clustering.add_argument("--input", default=str(PATHS["single_cell"]))
    clustering.add_argument("--markers-dir", default=str(PATHS["markers_dir"]))
    clustering.add_argument("--output", default=str(PATHS["clustered_single_cell"]))

    gsea = subparsers.add_parser("gsea", help="Preranked GSEA for one cluster")
    gsea.add_argument("--cluster", type=int, default=GSEA_PARAMS["cluster"])
    gsea.add_argument("--markers-dir", default=str(PATHS["markers_dir"]))
    gsea.add_argument("--out-dir", default=str(PATHS["gsea_dir"]))
    gsea.add_argument("--gmt", default=GSEA_PARAMS["gmt_path"], help="Local GMT gene set file")

    mito = subparsers.add_parser("mito-genes", help="Export mitochondrial genes")
    mito.add_argument("--gtf", default=None, help="Local Ensembl GTF instead of downloading")
    mito.add_argument("--output", default=str(PATHS["mito_genes"]))

    return parser


def main(argv=None):
    """Dispatch to the requested pipeline"""
    args = build_parser().parse_args(argv)

    # Set matplotlib backend to non-interactive for save-only mode
    matplotlib.use("Agg")
    print("Running in save-only mode - plots will not be displayed")
    print("\n" + get_config_summary() + "\n")

    if args.pipeline == "cluster-validation":
        return run_cluster_validation(
            metadata_path=args.metadata,
            expression_path=args.expression,
            out_dir=args.out_dir,
            chosen_k=args.k,
            plots_dir=args.plots_dir,
        )
    if args.pipeline == "cell-clustering":
        return run_cell_clustering(
            adata_path=args.input,
            markers_dir=args.markers_dir,
            output_path=args.output,
            plots_dir=args.plots_dir,
        )
    if args.pipeline == "gsea":
        return run_gene_set_enrichment(
            cluster=args.cluster,
            markers_dir=args.markers_dir,
            out_dir=args.out_dir,
            gmt_path=args.gmt,
            plots_dir=args.plots_dir,
        )
    return run_mitochondrial_export(gtf_path=args.gtf, output_path=args.output)


if __name__ == "__main__":
    main()
