import pandas as pd
import pytest

from notebook_utils.clustering import (
    cluster_sizes,
    compare_clusterings,
    graph_clusters,
    kmeans_clusters,
    plot_clusters,
    relabel_one_based,
)


def test_relabel_one_based_uses_first_appearance():
    relabeled = relabel_one_based([5, 5, 2, 7, 2])
    assert relabeled.tolist() == [1, 1, 2, 3, 2]


def test_relabel_one_based_keeps_index():
    labels = pd.Series(["x", "y", "x"], index=["a", "b", "c"])
    relabeled = relabel_one_based(labels)
    assert list(relabeled.index) == ["a", "b", "c"]
    assert relabeled.tolist() == [1, 2, 1]


def test_kmeans_clusters_finds_blobs(blob_adata):
    adata = kmeans_clusters(blob_adata, n_clusters=3, seed=0)

    labels = adata.obs["kmeans_cluster"]
    assert list(labels.cat.categories) == ["1", "2", "3"]
    table = pd.crosstab(labels, adata.obs["blob"])
    assert ((table > 0).sum(axis=1) == 1).all()


def test_kmeans_clusters_requires_embedding(blob_adata):
    del blob_adata.obsm["X_pca"]
    with pytest.raises(ValueError, match="X_pca"):
        kmeans_clusters(blob_adata, n_clusters=3)


def test_graph_clusters_do_not_mix_blobs(blob_adata):
    adata = graph_clusters(blob_adata, n_neighbors=10, resolution=0.5, seed=0)

    labels = adata.obs["graph_cluster"]
    assert "1" in labels.cat.categories
    assert (adata.obs.groupby(labels, observed=True)["blob"].nunique() == 1).all()


def test_cluster_sizes_and_comparison(blob_adata):
    adata = kmeans_clusters(blob_adata, n_clusters=3, seed=0)
    adata.obs["kmeans_copy"] = adata.obs["kmeans_cluster"].copy()

    sizes = cluster_sizes(adata, "kmeans_cluster")
    assert sizes.sum() == adata.n_obs
    assert list(sizes.index) == ["1", "2", "3"]

    table, ari = compare_clusterings(adata, "kmeans_cluster", "kmeans_copy")
    assert ari == pytest.approx(1.0)
    assert table.values.trace() == adata.n_obs


def test_compare_clusterings_missing_column(blob_adata):
    with pytest.raises(ValueError, match="graph_cluster"):
        compare_clusterings(blob_adata, "blob", "graph_cluster")


def test_plot_clusters_saves_figure(tmp_path, blob_adata):
    adata = kmeans_clusters(blob_adata, n_clusters=3, seed=0)
    plot_clusters(adata, keys=("kmeans_cluster",), basis="pca", save_dir=tmp_path)
    assert (tmp_path / "pca_clusters.png").exists()
