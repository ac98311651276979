#!/usr/bin/env python3
"""
Consensus clustering utilities for bulk expression data
Handles resampled clustering, consensus matrices and cluster-count diagnostics

The clustering itself is delegated to scikit-learn (k-means) and scipy
(average-linkage hierarchical clustering); this module only resamples the
data and counts how often pairs of samples land in the same cluster.
"""

from dataclasses import dataclass
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import pdist, squareform
from sklearn.cluster import KMeans
from sklearn.metrics import silhouette_score

from notebook_utils.clustering import relabel_one_based
from notebook_utils.plotting import save_or_show

CLUSTER_ALGORITHMS = ("hc", "km")
DISTANCES = ("pearson", "euclidean")


@dataclass
class ConsensusResult:
    """Consensus clustering output for a single cluster count"""

    k: int
    consensus: pd.DataFrame
    labels: pd.Series


def distance_matrix(values, distance="pearson"):
    """Pairwise distances between the rows of `values`

    Args:
        values: 2D array, items x features
        distance: "pearson" (1 - correlation) or "euclidean"

    Returns:
        Square, symmetric distance array with a zero diagonal
    """
    if distance == "pearson":
        # Constant rows have no defined correlation; treat them as uncorrelated
        corr = np.nan_to_num(np.corrcoef(values), nan=0.0)
        dist = 1 - corr
    elif distance == "euclidean":
        dist = squareform(pdist(values, metric="euclidean"))
    else:
        raise ValueError(f"Unknown distance '{distance}', choose from {DISTANCES}")

    dist = np.clip(dist, 0, None)
    np.fill_diagonal(dist, 0)
    return dist


def _hierarchical_tree(dist):
    return linkage(squareform(dist, checks=False), method="average")


def consensus_cluster(
    data,
    min_k=2,
    max_k=10,
    reps=100,
    p_item=0.8,
    p_feature=1.0,
    cluster_alg="hc",
    distance="pearson",
    seed=None,
):
    """Run consensus clustering for every k in min_k..max_k

    Args:
        data: DataFrame with features as rows and items (samples) as columns
        min_k: Smallest cluster count to evaluate
        max_k: Largest cluster count to evaluate
        reps: Number of resampling iterations
        p_item: Fraction of items drawn in each iteration
        p_feature: Fraction of features drawn in each iteration
        cluster_alg: "hc" for average-linkage hierarchical, "km" for k-means
        distance: "pearson" or "euclidean" (hierarchical clustering only)
        seed: Random seed for resampling and k-means

    Returns:
        Dictionary mapping k to ConsensusResult
    """
    if min_k < 2:
        raise ValueError(f"min_k must be at least 2, got {min_k}")
    if max_k < min_k:
        raise ValueError(f"max_k must be at least min_k, got {min_k}..{max_k}")
    if cluster_alg not in CLUSTER_ALGORITHMS:
        raise ValueError(
            f"Unknown cluster_alg '{cluster_alg}', choose from {CLUSTER_ALGORITHMS}"
        )
    if distance not in DISTANCES:
        raise ValueError(f"Unknown distance '{distance}', choose from {DISTANCES}")
    if not 0 < p_item <= 1 or not 0 < p_feature <= 1:
        raise ValueError("p_item and p_feature must be in (0, 1]")

    items = data.columns
    values = data.to_numpy(dtype=float).T  # items x features
    n_items, n_features = values.shape
    n_sub_items = int(np.ceil(p_item * n_items))
    n_sub_features = int(np.ceil(p_feature * n_features))

    if n_sub_items <= max_k:
        raise ValueError(
            f"Each resample draws {n_sub_items} items, too few for max_k={max_k}"
        )

    print(
        f"Consensus clustering {n_items} items on {n_features} features "
        f"(k={min_k}..{max_k}, {reps} reps, {cluster_alg}/{distance})..."
    )

    rng = np.random.default_rng(seed)
    ks = range(min_k, max_k + 1)
    sampled_together = np.zeros((n_items, n_items))
    clustered_together = {k: np.zeros((n_items, n_items)) for k in ks}

    for rep in range(reps):
        item_idx = np.sort(rng.choice(n_items, size=n_sub_items, replace=False))
        feature_idx = np.sort(rng.choice(n_features, size=n_sub_features, replace=False))
        subset = values[np.ix_(item_idx, feature_idx)]
        block = np.ix_(item_idx, item_idx)
        sampled_together[block] += 1

        if cluster_alg == "hc":
            tree = _hierarchical_tree(distance_matrix(subset, distance))

        for k in ks:
            if cluster_alg == "hc":
                labels = fcluster(tree, t=k, criterion="maxclust")
            else:
                labels = KMeans(
                    n_clusters=k, n_init=10, random_state=int(rng.integers(2**31 - 1))
                ).fit_predict(subset)
            clustered_together[k][block] += labels[:, None] == labels[None, :]

        if (rep + 1) % max(1, reps // 5) == 0:
            print(f"  {rep + 1}/{reps} resamples")

    results = {}
    for k in ks:
        consensus = np.divide(
            clustered_together[k],
            sampled_together,
            out=np.zeros_like(sampled_together),
            where=sampled_together > 0,
        )
        np.fill_diagonal(consensus, 1.0)

        final = fcluster(_hierarchical_tree(1 - consensus), t=k, criterion="maxclust")
        labels = relabel_one_based(pd.Series(final, index=items, name=f"k{k}"))

        results[k] = ConsensusResult(
            k=k,
            consensus=pd.DataFrame(consensus, index=items, columns=items),
            labels=labels,
        )

    return results


def consensus_cdf(consensus, bins=100):
    """Empirical CDF of the pairwise consensus values

    Args:
        consensus: Square consensus DataFrame
        bins: Number of intervals on [0, 1]

    Returns:
        DataFrame with `consensus_index` and `cdf` columns
    """
    matrix = np.asarray(consensus)
    upper = matrix[np.triu_indices_from(matrix, k=1)]
    grid = np.linspace(0, 1, bins + 1)
    cdf = np.searchsorted(np.sort(upper), grid, side="right") / max(len(upper), 1)
    return pd.DataFrame({"consensus_index": grid, "cdf": cdf})


def _cdf_area(cdf_df):
    x = cdf_df["consensus_index"].to_numpy()
    y = cdf_df["cdf"].to_numpy()
    return float(np.sum(np.diff(x) * (y[1:] + y[:-1]) / 2))


def delta_area(results, bins=100):
    """Relative change in area under the consensus CDF as k increases

    Args:
        results: Dictionary of ConsensusResult keyed by k

    Returns:
        DataFrame with `k`, `area` and `delta_area` columns
    """
    rows = []
    previous = None
    for k in sorted(results):
        area = _cdf_area(consensus_cdf(results[k].consensus, bins=bins))
        if previous is None or previous == 0:
            delta = area
        else:
            delta = (area - previous) / previous
        rows.append({"k": k, "area": area, "delta_area": delta})
        previous = area

    return pd.DataFrame(rows)


def cluster_quality(data, results, distance="pearson"):
    """Silhouette width and cluster sizes for each k

    Args:
        data: Features x items DataFrame used for clustering
        results: Dictionary of ConsensusResult keyed by k
        distance: Distance used to compute silhouettes

    Returns:
        DataFrame with one row per k
    """
    dist = distance_matrix(data.to_numpy(dtype=float).T, distance)

    rows = []
    for k in sorted(results):
        labels = results[k].labels.reindex(data.columns)
        n_clusters = labels.nunique()
        sil = np.nan
        if 1 < n_clusters < len(labels):
            sil = float(silhouette_score(dist, labels, metric="precomputed"))
        rows.append(
            {
                "k": k,
                "n_clusters": int(n_clusters),
                "silhouette": sil,
                "min_cluster_size": int(labels.value_counts().min()),
            }
        )

    return pd.DataFrame(rows)


def cross_tabulate(labels, annotations, missing_label="Unknown"):
    """Cross-tabulate cluster labels against a known annotation

    Args:
        labels: Series of cluster labels indexed by sample id
        annotations: Series of known labels (e.g. molecular subtype) indexed by sample id
        missing_label: Fill value for samples without an annotation

    Returns:
        Contingency table with clusters as rows
    """
    known = annotations.reindex(labels.index).fillna(missing_label)
    return pd.crosstab(
        labels.rename("cluster"), known.rename(annotations.name or "annotation")
    )


def write_consensus_outputs(diagnostics, chosen, annotations, out_dir, annotation_name="subtype"):
    """Write the per-k diagnostics and the results for the chosen k

    Files written to `out_dir`:
    - consensus_diagnostics.tsv
    - consensus_clusters_k{k}.tsv (one row per sample)
    - consensus_k{k}_vs_{annotation_name}.tsv

    Args:
        diagnostics: Per-k diagnostics table
        chosen: ConsensusResult for the chosen k
        annotations: Series of known labels indexed by sample id
        out_dir: Output directory
        annotation_name: Used in the cross-tabulation file name

    Returns:
        Cross-tabulation of the chosen clusters against the annotation
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    diagnostics.to_csv(out_dir / "consensus_diagnostics.tsv", sep="\t", index=False)

    assignments = chosen.labels.rename("cluster").to_frame()
    assignments.index.name = "sample_id"
    assignments.to_csv(out_dir / f"consensus_clusters_k{chosen.k}.tsv", sep="\t")

    crosstab = cross_tabulate(chosen.labels, annotations)
    crosstab.to_csv(out_dir / f"consensus_k{chosen.k}_vs_{annotation_name}.tsv", sep="\t")

    print(f"  Saved consensus results for k={chosen.k} to {out_dir}")
    return crosstab


def plot_consensus_cdf(results, save_dir=None):
    """Plot consensus CDF curves for all evaluated k

    Args:
        results: Dictionary of ConsensusResult keyed by k
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print("Plotting consensus CDF...")

    fig, ax = plt.subplots(figsize=(7, 5))
    palette = sns.color_palette("viridis", len(results))
    for color, k in zip(palette, sorted(results)):
        cdf_df = consensus_cdf(results[k].consensus)
        ax.step(cdf_df["consensus_index"], cdf_df["cdf"], where="post", color=color, label=f"k={k}")

    ax.set_xlabel("Consensus index")
    ax.set_ylabel("CDF")
    ax.set_title("Consensus CDF")
    ax.legend(loc="lower right", fontsize="small")
    fig.tight_layout()

    save_or_show(fig, save_dir, "consensus_cdf.png")


def plot_delta_area(results, save_dir=None):
    """Plot relative change in CDF area against k"""
    print("Plotting delta area...")

    delta_df = delta_area(results)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(delta_df["k"], delta_df["delta_area"], "-o", color="#1f77b4")
    ax.set_xlabel("k")
    ax.set_ylabel("Relative change in area under CDF")
    ax.set_xticks(delta_df["k"])
    fig.tight_layout()

    save_or_show(fig, save_dir, "consensus_delta_area.png")


def plot_consensus_heatmap(result, annotations=None, save_dir=None):
    """Clustered heatmap of a consensus matrix

    Args:
        result: ConsensusResult for the chosen k
        annotations: Series of known labels to draw as row colors (optional)
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print(f"Plotting consensus heatmap for k={result.k}...")

    tree = _hierarchical_tree(1 - result.consensus.to_numpy())

    row_colors = None
    if annotations is not None:
        known = annotations.reindex(result.consensus.index).fillna("Unknown").astype(str)
        lut = dict(zip(sorted(known.unique()), sns.color_palette("Set2", known.nunique())))
        row_colors = known.map(lut)

    grid = sns.clustermap(
        result.consensus,
        row_linkage=tree,
        col_linkage=tree,
        row_colors=row_colors,
        cmap="Blues",
        vmin=0,
        vmax=1,
        xticklabels=False,
        yticklabels=False,
        figsize=(8, 8),
    )
    grid.figure.suptitle(f"Consensus matrix, k={result.k}", y=1.02)

    save_or_show(grid.figure, save_dir, f"consensus_heatmap_k{result.k}.png")

