#!/usr/bin/env python3
"""
Marker gene utilities for single-cell RNA-seq analysis
Handles per-cluster marker ranking and export of one table per cluster
"""

from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import scanpy as sc

from notebook_utils.plotting import save_or_show

MARKER_COLUMNS = ["gene_id", "gene_symbol", "score", "log_fc", "p_value", "fdr"]


def marker_filename(cluster, prefix="cluster", suffix="_markers.tsv"):
    """Zero-padded file name for a cluster's marker table

    Two digits keep lexical and numeric order identical for clusters 1-99,
    e.g. cluster02_markers.tsv sorts before cluster10_markers.tsv.

    Args:
        cluster: Cluster number (1-99)
        prefix: File name prefix
        suffix: File name suffix including extension

    Returns:
        File name string
    """
    cluster = int(cluster)
    if not 1 <= cluster <= 99:
        raise ValueError(f"Cluster number must be between 1 and 99, got {cluster}")
    return f"{prefix}{cluster:02d}{suffix}"


def marker_table(adata, group, symbol_col="gene_symbol", key="rank_genes_groups"):
    """Tidy marker statistics for one cluster

    Args:
        adata: AnnData object after `sc.tl.rank_genes_groups`
        group: Cluster label
        symbol_col: Column of `adata.var` holding gene symbols (optional)
        key: Key of the ranking results in `adata.uns`

    Returns:
        DataFrame sorted by p-value, then by decreasing score
    """
    ranked = sc.get.rank_genes_groups_df(adata, group=str(group), key=key)
    table = ranked.rename(
        columns={
            "names": "gene_id",
            "scores": "score",
            "logfoldchanges": "log_fc",
            "pvals": "p_value",
            "pvals_adj": "fdr",
        }
    )

    if symbol_col in adata.var.columns:
        # Genes without a symbol fall back to their id
        symbols = table["gene_id"].map(adata.var[symbol_col].astype(object))
        table["gene_symbol"] = symbols.where(symbols.notna(), table["gene_id"]).astype(str)
    else:
        table["gene_symbol"] = table["gene_id"]

    table = table[MARKER_COLUMNS].sort_values(
        ["p_value", "score"], ascending=[True, False]
    )
    return table.reset_index(drop=True)


def find_markers(adata, groupby="kmeans_cluster", method="wilcoxon", use_raw=False, symbol_col="gene_symbol"):
    """Rank marker genes for every cluster

    Args:
        adata: AnnData object with cluster labels in `adata.obs[groupby]`
        groupby: Cluster label column
        method: Test used by `sc.tl.rank_genes_groups`
        use_raw: Whether to test `adata.raw` instead of `adata.X`
        symbol_col: Column of `adata.var` holding gene symbols

    Returns:
        Dictionary mapping cluster number to marker table
    """
    if groupby not in adata.obs.columns:
        raise ValueError(f"Missing cluster column '{groupby}' in adata.obs")

    print(f"Computing marker genes for {groupby} ({method})...")
    sc.tl.rank_genes_groups(adata, groupby=groupby, method=method, use_raw=use_raw)

    groups = adata.obs[groupby].astype("category").cat.categories
    tables = {int(group): marker_table(adata, group, symbol_col=symbol_col) for group in groups}
    print(f"  Ranked markers for {len(tables)} clusters")

    return tables


def write_marker_tables(tables, out_dir, prefix="cluster"):
    """Write one TSV per cluster with zero-padded file names

    Args:
        tables: Dictionary mapping cluster number to marker table
        out_dir: Output directory
        prefix: File name prefix

    Returns:
        List of written paths, in cluster order
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for cluster in sorted(tables):
        path = out_dir / marker_filename(cluster, prefix=prefix)
        tables[cluster].to_csv(path, sep="\t", index=False)
        paths.append(path)

    print(f"  Saved {len(paths)} marker tables to {out_dir}")
    return paths


def top_markers(tables, n=10):
    """Long table of the top `n` markers per cluster"""
    frames = []
    for cluster in sorted(tables):
        top = tables[cluster].head(n).copy()
        top.insert(0, "cluster", cluster)
        frames.append(top)

    if not frames:
        return pd.DataFrame(columns=["cluster"] + MARKER_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def plot_top_markers(adata, groupby="kmeans_cluster", n_genes=5, symbol_col="gene_symbol", save_dir=None):
    """Dot plot of the top marker genes per cluster

    Args:
        adata: AnnData object after `find_markers`
        groupby: Cluster label column
        n_genes: Markers shown per cluster
        symbol_col: Column of `adata.var` used for gene labels
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print("Plotting top marker genes...")

    gene_symbols = symbol_col if symbol_col in adata.var.columns else None
    sc.pl.rank_genes_groups_dotplot(
        adata,
        groupby=groupby,
        n_genes=n_genes,
        gene_symbols=gene_symbols,
        show=False,
    )
    fig = plt.gcf()

    save_or_show(fig, save_dir, f"top_markers_{groupby}.png")
