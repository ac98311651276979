#!/usr/bin/env python3
"""
Parameters for the training notebook pipelines

This file centralizes the paths, seeds and thresholds used by every pipeline.
Modify these values to point the notebooks at other data or settings.
"""

from pathlib import Path

# Input and output locations, relative to the repository root
PATHS = {
    "metadata": Path("data/open-pbta/pbta-histologies.tsv"),
    "bulk_expression": Path("data/open-pbta/processed/pbta-vst-medulloblastoma.tsv.gz"),
    "cluster_validation_dir": Path("results/cluster_validation"),
    "single_cell": Path("data/hodgkins/normalized/normalized_hodgkins.h5ad"),
    "markers_dir": Path("analysis/hodgkins/markers"),
    "clustered_single_cell": Path("analysis/hodgkins/clustered_hodgkins.h5ad"),
    "gsea_dir": Path("analysis/hodgkins/gsea"),
    "reference_dir": Path("data/reference"),
    "mito_genes": Path("data/reference/hs_mitochondrial_genes.tsv"),
    "plots_dir": Path("plots"),
}

# Bulk sample selection
SAMPLE_FILTERS = {
    "id_col": "Kids_First_Biospecimen_ID",
    "histology_col": "short_histology",
    "histology": "Medulloblastoma",
    "subtype_col": "molecular_subtype",
    "experimental_strategy": "RNA-Seq",
}

# Consensus clustering
CONSENSUS_PARAMS = {
    "variance_quantile": 0.9,  # Keep genes at or above this variance quantile
    "min_k": 2,
    "max_k": 10,
    "reps": 100,  # Resampling iterations per k
    "p_item": 0.8,  # Fraction of samples drawn per iteration
    "p_feature": 1.0,  # Fraction of genes drawn per iteration
    "cluster_alg": "hc",  # "hc" (hierarchical) or "km" (k-means)
    "distance": "pearson",  # "pearson" or "euclidean"
    "seed": 2343,
    "chosen_k": 4,  # Picked from the CDF / delta area plots
}

# Bulk embeddings
EMBEDDING_PARAMS = {
    "n_comps": 10,
    "n_neighbors": 15,
    "seed": 2343,
}

# Single-cell clustering
CELL_CLUSTERING_PARAMS = {
    "use_rep": "X_pca",
    "n_clusters": 10,  # k-means centers
    "n_neighbors": 20,  # kNN graph size for Leiden
    "resolution": 0.8,
    "seed": 2020,
    "kmeans_key": "kmeans_cluster",
    "graph_key": "graph_cluster",
}

# Marker gene ranking
MARKER_PARAMS = {
    "groupby": "kmeans_cluster",
    "method": "wilcoxon",
    "use_raw": False,
    "symbol_col": "gene_symbol",
    "n_top": 10,
}

# Gene set enrichment
GSEA_PARAMS = {
    "cluster": 1,
    "gene_col": "gene_symbol",
    "effect_col": "log_fc",
    "library": "MSigDB_Hallmark_2020",
    "organism": "Human",
    "gmt_path": None,  # Local GMT file overrides the Enrichr library
    "min_size": 25,
    "max_size": 500,
    "permutation_num": 1000,
    "seed": 2020,
    "threads": 1,
    "fdr_threshold": 0.05,
    "n_plot": 2,
}

# Mitochondrial gene export
MITO_PARAMS = {
    "species": "homo_sapiens",
    "assembly": "GRCh38",
    "release": 97,
    "seqname": "MT",
}


def get_config_summary():
    """Return a formatted summary of current pipeline settings"""
    summary = [
        "=== Pipeline Settings ===",
        "\nConsensus clustering:",
        f"  - k range: {CONSENSUS_PARAMS['min_k']} - {CONSENSUS_PARAMS['max_k']}",
        f"  - Resampling: {CONSENSUS_PARAMS['reps']} reps, "
        f"{CONSENSUS_PARAMS['p_item']*100:.0f}% of samples",
        f"  - Algorithm: {CONSENSUS_PARAMS['cluster_alg']} ({CONSENSUS_PARAMS['distance']})",
        f"  - Variance quantile: {CONSENSUS_PARAMS['variance_quantile']}",
        "\nCell clustering:",
        f"  - k-means centers: {CELL_CLUSTERING_PARAMS['n_clusters']}",
        f"  - Leiden: k={CELL_CLUSTERING_PARAMS['n_neighbors']}, "
        f"resolution={CELL_CLUSTERING_PARAMS['resolution']}",
        "\nGSEA:",
        f"  - Library: {GSEA_PARAMS['gmt_path'] or GSEA_PARAMS['library']}",
        f"  - Gene set size: {GSEA_PARAMS['min_size']} - {GSEA_PARAMS['max_size']}",
        "\nMitochondrial genes:",
        f"  - Ensembl {MITO_PARAMS['release']} ({MITO_PARAMS['assembly']}), "
        f"chromosome {MITO_PARAMS['seqname']}",
    ]

    return "\n".join(summary)


# Validation function
def validate_config():
    """Validate that pipeline parameters make sense"""
    errors = []

    if not 0 < CONSENSUS_PARAMS["p_item"] <= 1:
        errors.append("p_item must be in (0, 1]")

    if not 0 < CONSENSUS_PARAMS["p_feature"] <= 1:
        errors.append("p_feature must be in (0, 1]")

    if CONSENSUS_PARAMS["min_k"] < 2:
        errors.append("min_k must be at least 2")

    if CONSENSUS_PARAMS["min_k"] >= CONSENSUS_PARAMS["max_k"]:
        errors.append("min_k must be less than max_k")

    if not CONSENSUS_PARAMS["min_k"] <= CONSENSUS_PARAMS["chosen_k"] <= CONSENSUS_PARAMS["max_k"]:
        errors.append("chosen_k must be within [min_k, max_k]")

    if not 0 <= CONSENSUS_PARAMS["variance_quantile"] < 1:
        errors.append("variance_quantile must be in [0, 1)")

    if CONSENSUS_PARAMS["cluster_alg"] not in ("hc", "km"):
        errors.append("cluster_alg must be 'hc' or 'km'")

    if CONSENSUS_PARAMS["distance"] not in ("pearson", "euclidean"):
        errors.append("distance must be 'pearson' or 'euclidean'")

    if not 1 <= CELL_CLUSTERING_PARAMS["n_clusters"] <= 99:
        errors.append("n_clusters must be between 1 and 99")

    if GSEA_PARAMS["min_size"] > GSEA_PARAMS["max_size"]:
        errors.append("GSEA min_size must not exceed max_size")

    if not 0 < GSEA_PARAMS["fdr_threshold"] <= 1:
        errors.append("fdr_threshold must be in (0, 1]")

    if errors:
        raise ValueError("Config validation failed:\n" + "\n".join(errors))

    return True


# Run validation on import
validate_config()
