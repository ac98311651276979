#!/usr/bin/env python3
"""
End-to-end pipelines
Each function runs one training notebook as a straight-line script
"""

from pathlib import Path

from notebook_utils.annotation import (
    download_annotation,
    ensembl_gtf_url,
    filter_by_chromosome,
    read_gene_records,
    tidy_gene_table,
    write_gene_table,
)
from notebook_utils.clustering import (
    cluster_sizes,
    compare_clusterings,
    graph_clusters,
    kmeans_clusters,
    plot_clusters,
)
from notebook_utils.config import (
    CELL_CLUSTERING_PARAMS,
    CONSENSUS_PARAMS,
    EMBEDDING_PARAMS,
    GSEA_PARAMS,
    MARKER_PARAMS,
    MITO_PARAMS,
    PATHS,
    SAMPLE_FILTERS,
)
from notebook_utils.consensus import (
    cluster_quality,
    consensus_cluster,
    delta_area,
    plot_consensus_cdf,
    plot_consensus_heatmap,
    plot_delta_area,
    write_consensus_outputs,
)
from notebook_utils.data_loader import (
    load_expression_matrix,
    load_sample_metadata,
    load_single_cell,
    select_high_variance_genes,
    subset_samples,
)
from notebook_utils.embedding import (
    expression_to_anndata,
    plot_embedding,
    run_pca,
    run_umap,
)
from notebook_utils.enrichment import (
    build_ranking,
    load_gene_sets,
    load_marker_table,
    plot_gsea_term,
    plot_top_pathways,
    run_gsea,
    significant_pathways,
    tidy_gsea_results,
    write_gsea_results,
)
from notebook_utils.markers import (
    find_markers,
    marker_filename,
    plot_top_markers,
    top_markers,
    write_marker_tables,
)


def run_cluster_validation(
    metadata_path=None,
    expression_path=None,
    out_dir=None,
    chosen_k=None,
    plots_dir=None,
):
    """Consensus clustering of bulk samples compared with known subtypes

    Arguments left as None are read from PATHS and CONSENSUS_PARAMS at call time.

    Returns:
        Tuple of (consensus results by k, subtype cross-tabulation)
    """
    print("Starting cluster validation pipeline...")
    metadata_path = metadata_path or PATHS["metadata"]
    expression_path = expression_path or PATHS["bulk_expression"]
    out_dir = out_dir or PATHS["cluster_validation_dir"]
    if chosen_k is None:
        chosen_k = CONSENSUS_PARAMS["chosen_k"]

    metadata = load_sample_metadata(
        metadata_path,
        id_col=SAMPLE_FILTERS["id_col"],
        histology_col=SAMPLE_FILTERS["histology_col"],
        histology=SAMPLE_FILTERS["histology"],
        experimental_strategy=SAMPLE_FILTERS["experimental_strategy"],
    )
    expression = load_expression_matrix(expression_path)
    expression = subset_samples(expression, metadata.index)
    high_var = select_high_variance_genes(expression, CONSENSUS_PARAMS["variance_quantile"])

    results = consensus_cluster(
        high_var,
        min_k=CONSENSUS_PARAMS["min_k"],
        max_k=CONSENSUS_PARAMS["max_k"],
        reps=CONSENSUS_PARAMS["reps"],
        p_item=CONSENSUS_PARAMS["p_item"],
        p_feature=CONSENSUS_PARAMS["p_feature"],
        cluster_alg=CONSENSUS_PARAMS["cluster_alg"],
        distance=CONSENSUS_PARAMS["distance"],
        seed=CONSENSUS_PARAMS["seed"],
    )

    plot_consensus_cdf(results, save_dir=plots_dir)
    plot_delta_area(results, save_dir=plots_dir)

    diagnostics = delta_area(results).merge(
        cluster_quality(high_var, results, CONSENSUS_PARAMS["distance"]), on="k"
    )
    print(diagnostics.to_string(index=False))

    if chosen_k not in results:
        raise ValueError(f"chosen_k={chosen_k} was not evaluated (k={min(results)}..{max(results)})")
    chosen = results[chosen_k]
    subtypes = metadata[SAMPLE_FILTERS["subtype_col"]]
    plot_consensus_heatmap(chosen, annotations=subtypes, save_dir=plots_dir)

    crosstab = write_consensus_outputs(diagnostics, chosen, subtypes, out_dir)
    print(crosstab)

    adata = expression_to_anndata(high_var, metadata)
    adata.obs["consensus_cluster"] = chosen.labels.reindex(adata.obs_names).astype(str).to_numpy()
    run_pca(adata, n_comps=EMBEDDING_PARAMS["n_comps"], seed=EMBEDDING_PARAMS["seed"])
    run_umap(adata, n_neighbors=EMBEDDING_PARAMS["n_neighbors"], seed=EMBEDDING_PARAMS["seed"])
    for basis in ("pca", "umap"):
        for color in (SAMPLE_FILTERS["subtype_col"], "consensus_cluster"):
            plot_embedding(adata, basis=basis, color=color, save_dir=plots_dir)

    print("Cluster validation complete!")
    return results, crosstab


def run_cell_clustering(
    adata_path=None,
    markers_dir=None,
    output_path=None,
    plots_dir=None,
):
    """k-means and graph clustering of cells followed by marker export

    Paths left as None are read from PATHS at call time.

    Returns:
        Tuple of (AnnData with labels, list of marker table paths)
    """
    print("Starting cell clustering pipeline...")
    params = CELL_CLUSTERING_PARAMS
    adata_path = adata_path or PATHS["single_cell"]
    markers_dir = markers_dir or PATHS["markers_dir"]
    output_path = output_path or PATHS["clustered_single_cell"]

    adata = load_single_cell(adata_path, use_rep=params["use_rep"])

    adata = kmeans_clusters(
        adata,
        n_clusters=params["n_clusters"],
        use_rep=params["use_rep"],
        seed=params["seed"],
        key_added=params["kmeans_key"],
    )
    adata = graph_clusters(
        adata,
        n_neighbors=params["n_neighbors"],
        resolution=params["resolution"],
        use_rep=params["use_rep"],
        seed=params["seed"],
        key_added=params["graph_key"],
    )

    for key in (params["kmeans_key"], params["graph_key"]):
        print(f"\n{key} sizes:")
        print(cluster_sizes(adata, key).to_string())
    compare_clusterings(adata, params["kmeans_key"], params["graph_key"])

    basis = "umap" if "X_umap" in adata.obsm else "pca"
    plot_clusters(adata, keys=(params["kmeans_key"], params["graph_key"]), basis=basis, save_dir=plots_dir)

    tables = find_markers(
        adata,
        groupby=MARKER_PARAMS["groupby"],
        method=MARKER_PARAMS["method"],
        use_raw=MARKER_PARAMS["use_raw"],
        symbol_col=MARKER_PARAMS["symbol_col"],
    )
    paths = write_marker_tables(tables, markers_dir)
    top = top_markers(tables, n=MARKER_PARAMS["n_top"])
    top.to_csv(Path(markers_dir) / "top_markers_by_cluster.tsv", sep="\t", index=False)
    plot_top_markers(adata, groupby=MARKER_PARAMS["groupby"], symbol_col=MARKER_PARAMS["symbol_col"], save_dir=plots_dir)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    adata.write(output_path)
    print(f"Saved clustered data to {output_path}")

    print("Cell clustering complete!")
    return adata, paths


def run_gene_set_enrichment(
    cluster=None,
    markers_dir=None,
    out_dir=None,
    gmt_path=None,
    plots_dir=None,
):
    """Preranked GSEA of one cluster's markers

    Arguments left as None are read from PATHS and GSEA_PARAMS at call time.

    Returns:
        Tidy GSEA results DataFrame
    """
    print("Starting gene set enrichment pipeline...")
    params = GSEA_PARAMS
    cluster = params["cluster"] if cluster is None else cluster
    markers_dir = markers_dir or PATHS["markers_dir"]
    out_dir = out_dir or PATHS["gsea_dir"]
    gmt_path = gmt_path or params["gmt_path"]

    marker_path = Path(markers_dir) / marker_filename(cluster)
    markers = load_marker_table(marker_path)
    ranking = build_ranking(markers, gene_col=params["gene_col"], effect_col=params["effect_col"])

    gene_sets = load_gene_sets(params["library"], params["organism"], gmt_path=gmt_path)
    prerank_res = run_gsea(
        ranking,
        gene_sets,
        min_size=params["min_size"],
        max_size=params["max_size"],
        permutation_num=params["permutation_num"],
        seed=params["seed"],
        threads=params["threads"],
    )

    results = tidy_gsea_results(prerank_res.res2d)
    write_gsea_results(results, Path(out_dir) / marker_filename(cluster, suffix="_gsea_results.tsv"))

    top = significant_pathways(results, params["fdr_threshold"]).head(params["n_plot"])
    for term in top["pathway"]:
        plot_gsea_term(prerank_res, term, save_dir=plots_dir)
    plot_top_pathways(
        results,
        fdr_threshold=params["fdr_threshold"],
        title=f"Cluster {cluster} GSEA",
        save_dir=plots_dir,
    )

    print("Gene set enrichment complete!")
    return results


def run_mitochondrial_export(
    release=None,
    species=None,
    assembly=None,
    seqname=None,
    reference_dir=None,
    output_path=None,
    gtf_path=None,
):
    """Export the genes of one chromosome from a fixed Ensembl release

    Arguments left as None are read from PATHS and MITO_PARAMS at call time.

    Args:
        gtf_path: Local GTF to use instead of downloading (optional)

    Returns:
        Path of the written table
    """
    print("Starting mitochondrial gene export...")
    release = release or MITO_PARAMS["release"]
    species = species or MITO_PARAMS["species"]
    assembly = assembly or MITO_PARAMS["assembly"]
    seqname = seqname or MITO_PARAMS["seqname"]
    reference_dir = reference_dir or PATHS["reference_dir"]
    output_path = output_path or PATHS["mito_genes"]

    if gtf_path is None:
        url = ensembl_gtf_url(release=release, species=species, assembly=assembly)
        gtf_path = download_annotation(url, Path(reference_dir) / Path(url).name)

    genes = read_gene_records(gtf_path)
    mito_genes = tidy_gene_table(filter_by_chromosome(genes, seqname))
    path = write_gene_table(mito_genes, output_path)

    print("Mitochondrial gene export complete!")
    return path
