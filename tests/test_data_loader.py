import anndata
import numpy as np
import pandas as pd
import pytest

from notebook_utils.data_loader import (
    load_expression_matrix,
    load_sample_metadata,
    load_single_cell,
    read_tsv,
    select_high_variance_genes,
    subset_samples,
)


def test_read_tsv_handles_gzip(tmp_path):
    df = pd.DataFrame({"gene_id": ["g1", "g2"], "S1": [1.0, 2.0]})
    path = tmp_path / "expr.tsv.gz"
    df.to_csv(path, sep="\t", index=False)

    loaded = read_tsv(path)
    pd.testing.assert_frame_equal(loaded, df)


def test_read_tsv_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_tsv(tmp_path / "missing.tsv")


def test_load_sample_metadata_filters_histology(tmp_path):
    df = pd.DataFrame(
        {
            "Kids_First_Biospecimen_ID": ["BS1", "BS2", "BS3"],
            "short_histology": ["Medulloblastoma", "Ependymoma", "Medulloblastoma"],
            "molecular_subtype": ["MB, SHH", None, "MB, Group4"],
        }
    )
    path = tmp_path / "histologies.tsv"
    df.to_csv(path, sep="\t", index=False)

    metadata = load_sample_metadata(path, histology="Medulloblastoma")
    assert list(metadata.index) == ["BS1", "BS3"]
    assert metadata.loc["BS3", "molecular_subtype"] == "MB, Group4"


def test_load_sample_metadata_requires_id_column(tmp_path):
    path = tmp_path / "histologies.tsv"
    pd.DataFrame({"sample": ["BS1"]}).to_csv(path, sep="\t", index=False)

    with pytest.raises(ValueError, match="Kids_First_Biospecimen_ID"):
        load_sample_metadata(path)


def test_load_expression_matrix_indexes_genes(tmp_path):
    path = tmp_path / "expr.tsv"
    pd.DataFrame({"gene_id": ["g1", "g2"], "BS1": [1, 2], "BS2": [3, 4]}).to_csv(
        path, sep="\t", index=False
    )

    matrix = load_expression_matrix(path)
    assert list(matrix.index) == ["g1", "g2"]
    assert list(matrix.columns) == ["BS1", "BS2"]


def test_subset_samples_keeps_requested_order():
    matrix = pd.DataFrame(np.arange(8).reshape(2, 4), columns=["S1", "S2", "S3", "S4"])

    subset = subset_samples(matrix, ["S3", "S1", "S9", "S3"])
    assert list(subset.columns) == ["S3", "S1"]
    assert subset["S3"].tolist() == matrix["S3"].tolist()


def test_subset_samples_drops_no_existing_sample():
    rng = np.random.default_rng(3)
    columns = [f"S{i}" for i in range(20)]
    matrix = pd.DataFrame(rng.normal(size=(5, 20)), columns=columns)
    requested = list(rng.permutation(columns)) + ["absent1", "absent2"]

    subset = subset_samples(matrix, requested)
    assert list(subset.columns) == requested[:20]


def test_select_high_variance_genes():
    matrix = pd.DataFrame(
        [i * np.arange(5, dtype=float) for i in range(10)],
        index=[f"g{i}" for i in range(10)],
    )

    assert list(select_high_variance_genes(matrix, 0.9).index) == ["g9"]
    assert len(select_high_variance_genes(matrix, 0.0)) == 10

    with pytest.raises(ValueError):
        select_high_variance_genes(matrix, 1.0)


def test_load_single_cell_requires_embedding(tmp_path, blob_adata):
    path = tmp_path / "cells.h5ad"
    blob_adata.write_h5ad(path)
    loaded = load_single_cell(path)
    assert loaded.n_obs == blob_adata.n_obs

    bare = anndata.AnnData(X=blob_adata.X.copy())
    bare_path = tmp_path / "bare.h5ad"
    bare.write_h5ad(bare_path)
    with pytest.raises(ValueError, match="X_pca"):
        load_single_cell(bare_path)
