#!/usr/bin/env python3
"""
Clustering utilities for single-cell RNA-seq analysis
Handles k-means and graph-based clustering on a precomputed embedding
"""

import matplotlib.pyplot as plt
import pandas as pd
import scanpy as sc
from sklearn.cluster import KMeans
from sklearn.metrics import adjusted_rand_score

from notebook_utils.plotting import save_or_show


def relabel_one_based(labels):
    """Renumber cluster labels 1..n in order of first appearance

    Cluster labels are arbitrary, so only the grouping is preserved.

    Args:
        labels: Series (or array-like) of cluster labels

    Returns:
        Series of integer labels starting at 1
    """
    labels = pd.Series(labels)
    mapping = {old: new for new, old in enumerate(pd.unique(labels), start=1)}
    return labels.map(mapping).astype(int)


def _store_labels(adata, labels, key_added):
    """Store integer labels on `adata.obs` as a categorical in numeric order"""
    labels = pd.Series(labels, index=adata.obs_names)
    categories = [str(c) for c in sorted(labels.unique())]
    adata.obs[key_added] = pd.Categorical(labels.astype(str), categories=categories)


def kmeans_clusters(adata, n_clusters=10, use_rep="X_pca", seed=2020, key_added="kmeans_cluster"):
    """Cluster cells with k-means on a low-dimensional embedding

    Args:
        adata: AnnData object with the embedding in `adata.obsm[use_rep]`
        n_clusters: Number of k-means centers
        use_rep: Embedding key in `adata.obsm`
        seed: Random seed
        key_added: Column name for the labels in `adata.obs`

    Returns:
        AnnData object with cluster labels added
    """
    if use_rep not in adata.obsm:
        raise ValueError(f"Missing embedding '{use_rep}' in adata.obsm")

    print(f"Running k-means clustering (k={n_clusters}) on {use_rep}...")
    kmeans = KMeans(n_clusters=n_clusters, n_init=10, random_state=seed)
    labels = kmeans.fit_predict(adata.obsm[use_rep])

    _store_labels(adata, relabel_one_based(labels).to_numpy(), key_added)
    print(f"  Found {adata.obs[key_added].nunique()} clusters")

    return adata


def graph_clusters(
    adata,
    n_neighbors=20,
    resolution=0.8,
    use_rep="X_pca",
    seed=2020,
    key_added="graph_cluster",
):
    """Cluster cells by Leiden community detection on a kNN graph

    Args:
        adata: AnnData object with the embedding in `adata.obsm[use_rep]`
        n_neighbors: Number of nearest neighbors in the graph
        resolution: Leiden resolution
        use_rep: Embedding key in `adata.obsm`
        seed: Random seed
        key_added: Column name for the labels in `adata.obs`

    Returns:
        AnnData object with cluster labels added
    """
    if use_rep not in adata.obsm:
        raise ValueError(f"Missing embedding '{use_rep}' in adata.obsm")

    print("Computing neighborhood graph...")
    sc.pp.neighbors(adata, n_neighbors=n_neighbors, use_rep=use_rep, random_state=seed)

    print(f"Clustering (Leiden, resolution={resolution})...")
    sc.tl.leiden(
        adata,
        resolution=resolution,
        random_state=seed,
        key_added=key_added,
        flavor="igraph",
        n_iterations=2,
        directed=False,
    )

    _store_labels(adata, relabel_one_based(adata.obs[key_added].astype(str)).to_numpy(), key_added)
    print(f"  Found {adata.obs[key_added].nunique()} clusters")

    return adata


def cluster_sizes(adata, key):
    """Number of cells in each cluster, in cluster order"""
    return adata.obs[key].value_counts(sort=False)


def compare_clusterings(adata, key_a="kmeans_cluster", key_b="graph_cluster"):
    """Cross-tabulate two clusterings of the same cells

    Args:
        adata: AnnData object with both label columns
        key_a: First label column
        key_b: Second label column

    Returns:
        Tuple of (contingency table, adjusted Rand index)
    """
    missing = [key for key in (key_a, key_b) if key not in adata.obs.columns]
    if missing:
        raise ValueError(f"Missing cluster columns: {missing}")

    table = pd.crosstab(adata.obs[key_a], adata.obs[key_b])
    ari = adjusted_rand_score(adata.obs[key_a], adata.obs[key_b])
    print(f"Adjusted Rand index ({key_a} vs {key_b}): {ari:.3f}")

    return table, ari


def plot_clusters(adata, keys=("kmeans_cluster", "graph_cluster"), basis="umap", save_dir=None):
    """Plot cluster labels on an embedding

    Args:
        adata: AnnData object with clusters and `X_{basis}` coordinates
        keys: Label columns to color by, one panel each
        basis: Embedding to plot ("umap" or "pca")
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print("Plotting clusters...")

    keys = list(keys)
    fig, axes = plt.subplots(1, len(keys), figsize=(6 * len(keys), 5))
    if len(keys) == 1:
        axes = [axes]

    for ax, key in zip(axes, keys):
        sc.pl.embedding(
            adata,
            basis=basis,
            color=key,
            legend_loc="on data",
            title=key,
            ax=ax,
            show=False,
        )

    plt.tight_layout()
    save_or_show(fig, save_dir, f"{basis}_clusters.png")
