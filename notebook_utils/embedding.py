#!/usr/bin/env python3
"""
Embedding utilities for bulk expression data
Handles PCA and UMAP for qualitative comparison with cluster labels
"""

import anndata
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px
import scanpy as sc

from notebook_utils.plotting import save_or_show


def expression_to_anndata(matrix, metadata=None):
    """Wrap a genes x samples matrix as a samples x genes AnnData object

    Args:
        matrix: Genes x samples DataFrame
        metadata: Sample metadata indexed by sample id (optional)

    Returns:
        AnnData object with sample annotations on `.obs`
    """
    obs = pd.DataFrame(index=matrix.columns.astype(str))
    if metadata is not None:
        obs = obs.join(metadata, how="left")

    adata = anndata.AnnData(
        X=matrix.T.to_numpy(dtype=np.float32),
        obs=obs,
        var=pd.DataFrame(index=matrix.index.astype(str)),
    )
    return adata


def run_pca(adata, n_comps=10, seed=0):
    """Run PCA on the samples

    Args:
        adata: AnnData object (samples x genes)
        n_comps: Number of principal components
        seed: Random seed

    Returns:
        AnnData object with `X_pca`
    """
    print("Running PCA...")
    n_comps = min(n_comps, adata.n_obs - 1, adata.n_vars - 1)
    sc.tl.pca(adata, n_comps=n_comps, random_state=seed)

    variance = adata.uns["pca"]["variance_ratio"]
    print(f"  PC1: {variance[0]:.1%}, PC2: {variance[1]:.1%} of variance")

    return adata


def run_umap(adata, n_neighbors=15, n_components=2, use_rep="X_pca", seed=0):
    """Run UMAP on a neighbor graph built from the PCA embedding

    Args:
        adata: AnnData object with `X_pca`
        n_neighbors: Neighbors used for the graph
        n_components: UMAP dimensions (3 for the interactive plot)
        use_rep: Embedding used to build the graph
        seed: Random seed

    Returns:
        AnnData object with `X_umap` (or `X_umap_3d` when n_components=3)
    """
    print(f"Running UMAP ({n_components}D)...")
    n_neighbors = min(n_neighbors, adata.n_obs - 1)
    sc.pp.neighbors(adata, n_neighbors=n_neighbors, use_rep=use_rep, random_state=seed)

    if n_components == 2:
        sc.tl.umap(adata, random_state=seed)
    else:
        # Keep the 2D layout under X_umap and store higher dimensions separately
        existing = adata.obsm.get("X_umap")
        sc.tl.umap(adata, n_components=n_components, random_state=seed)
        adata.obsm[f"X_umap_{n_components}d"] = adata.obsm["X_umap"]
        if existing is not None:
            adata.obsm["X_umap"] = existing
        else:
            del adata.obsm["X_umap"]

    return adata


def embedding_frame(adata, basis="umap", color=None, n_dims=2):
    """Coordinates of an embedding as a DataFrame, with an optional color column"""
    key = f"X_{basis}"
    if key not in adata.obsm:
        raise ValueError(f"Missing embedding '{key}' in adata.obsm")

    coords = np.asarray(adata.obsm[key])[:, :n_dims]
    label = basis.split("_")[0].upper()
    frame = pd.DataFrame(
        coords,
        index=adata.obs_names,
        columns=[f"{label}{i + 1}" for i in range(n_dims)],
    )
    if color is not None:
        frame[color] = adata.obs[color].astype(str).to_numpy()

    return frame


def plot_embedding(adata, basis="umap", color="molecular_subtype", save_dir=None):
    """Static 2D scatter of an embedding

    Args:
        adata: AnnData object with `X_{basis}`
        basis: "pca" or "umap"
        color: Column of `adata.obs` to color by
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print(f"Plotting {basis.upper()} colored by {color}...")

    fig, ax = plt.subplots(figsize=(7, 5))
    sc.pl.embedding(adata, basis=basis, color=color, title=f"{basis.upper()}: {color}", ax=ax, show=False)
    plt.tight_layout()

    save_or_show(fig, save_dir, f"{basis}_{color}.png")


def plot_umap_3d(adata, color="molecular_subtype", basis="umap_3d"):
    """Interactive 3D UMAP scatter

    Args:
        adata: AnnData object with `X_umap_3d`
        color: Column of `adata.obs` to color by

    Returns:
        Plotly figure
    """
    frame = embedding_frame(adata, basis=basis, color=color, n_dims=3)
    fig = px.scatter_3d(
        frame,
        x="UMAP1",
        y="UMAP2",
        z="UMAP3",
        color=color,
        hover_name=frame.index,
        title=f"UMAP (3D): {color}",
    )
    fig.update_traces(marker={"size": 4})
    return fig
