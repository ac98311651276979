import matplotlib

matplotlib.use("Agg")

import anndata  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402


@pytest.fixture
def grouped_expression():
    """Features x samples matrix with three well separated sample groups"""
    rng = np.random.default_rng(0)
    patterns = rng.normal(size=(3, 50))
    columns = {}
    truth = {}
    for group in range(3):
        for i in range(10):
            sample = f"S{group}_{i}"
            columns[sample] = patterns[group] + rng.normal(scale=0.1, size=50)
            truth[sample] = f"group{group}"
    matrix = pd.DataFrame(columns, index=[f"g{i}" for i in range(50)])
    return matrix, pd.Series(truth, name="truth")


@pytest.fixture
def blob_adata():
    """60 cells in three PCA blobs, with three marker genes per blob"""
    rng = np.random.default_rng(1)
    n_per, n_genes = 20, 12
    centers = np.array([[0, 0, 0], [20, 0, 0], [0, 20, 0]], dtype=float)

    pca = np.vstack([center + rng.normal(scale=0.5, size=(n_per, 3)) for center in centers])
    X = rng.normal(loc=1.0, scale=0.1, size=(3 * n_per, n_genes)).clip(min=0)
    for blob in range(3):
        X[blob * n_per:(blob + 1) * n_per, blob * 3:(blob + 1) * 3] += 3.0

    obs = pd.DataFrame(
        {"blob": np.repeat(["a", "b", "c"], n_per)},
        index=[f"cell{i}" for i in range(3 * n_per)],
    )
    var = pd.DataFrame(
        {"gene_symbol": [f"SYM{i}" for i in range(n_genes)]},
        index=[f"ENSG{i:04d}" for i in range(n_genes)],
    )
    adata = anndata.AnnData(X=X.astype(np.float32), obs=obs, var=var)
    adata.obsm["X_pca"] = pca
    return adata


@pytest.fixture
def gtf_file(tmp_path):
    """Small gzipped Ensembl-style GTF"""
    import gzip

    rows = [
        "#!genome-build GRCh38.p12",
        "#!genome-version GRCh38",
        'MT\tinsdc\tgene\t577\t647\t.\t+\t.\tgene_id "ENSG00000210049"; gene_version "1"; gene_name "MT-TF"; gene_source "insdc"; gene_biotype "Mt_tRNA";',
        'MT\tinsdc\ttranscript\t577\t647\t.\t+\t.\tgene_id "ENSG00000210049"; transcript_id "ENST00000387314";',
        '1\thavana\tgene\t11869\t14409\t.\t+\t.\tgene_id "ENSG00000223972"; gene_version "5"; gene_name "DDX11L1"; gene_source "havana"; gene_biotype "transcribed_unprocessed_pseudogene";',
        'MT\tinsdc\tgene\t3307\t4262\t.\t+\t.\tgene_id "ENSG00000198888"; gene_version "2"; gene_name "MT-ND1"; gene_source "insdc"; gene_biotype "protein_coding";',
        'MT\tinsdc\tgene\t648\t1601\t.\t+\t.\tgene_id "ENSG00000211459"; gene_version "2"; gene_name "MT-RNR1"; gene_source "insdc"; gene_biotype "Mt_rRNA";',
    ]
    path = tmp_path / "Homo_sapiens.GRCh38.97.gtf.gz"
    with gzip.open(path, "wt") as handle:
        handle.write("\n".join(rows) + "\n")
    return path
