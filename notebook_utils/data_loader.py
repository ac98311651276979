#!/usr/bin/env python3
"""
Data loading utilities for the training pipelines
Handles TSV tables, bulk expression matrices and single-cell h5ad files
"""

from pathlib import Path

import pandas as pd
import scanpy as sc


def read_tsv(path, index_col=None):
    """Read a tab-separated table (gzip-compressed or not)

    Args:
        path: Path to the .tsv or .tsv.gz file
        index_col: Column to use as the row index (optional)

    Returns:
        DataFrame with the table contents
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{path} not found")

    # pandas infers gzip from the .gz extension
    return pd.read_csv(path, sep="\t", index_col=index_col)


def load_sample_metadata(
    path,
    id_col="Kids_First_Biospecimen_ID",
    histology_col="short_histology",
    histology=None,
    experimental_strategy=None,
):
    """Load sample metadata indexed by sample identifier

    Args:
        path: Path to the metadata TSV
        id_col: Column holding the sample identifier
        histology_col: Column holding the histology label
        histology: Keep only samples with this histology (optional)
        experimental_strategy: Keep only samples from this assay (optional)

    Returns:
        Metadata DataFrame indexed by sample id
    """
    print(f"Loading sample metadata from {path}...")
    metadata = read_tsv(path)

    required = [id_col] + ([histology_col] if histology is not None else [])
    missing = [col for col in required if col not in metadata.columns]
    if missing:
        raise ValueError(f"Missing required metadata columns: {missing}")

    if histology is not None:
        metadata = metadata[metadata[histology_col] == histology]

    if experimental_strategy is not None and "experimental_strategy" in metadata.columns:
        metadata = metadata[metadata["experimental_strategy"] == experimental_strategy]

    metadata = metadata.set_index(id_col)
    print(f"  {metadata.shape[0]} samples")

    return metadata


def load_expression_matrix(path, gene_col="gene_id"):
    """Load a genes x samples expression matrix

    Args:
        path: Path to the expression TSV (first column or `gene_col` holds gene ids)
        gene_col: Name of the gene identifier column

    Returns:
        DataFrame with genes as rows and samples as columns
    """
    print(f"Loading expression matrix from {path}...")
    matrix = read_tsv(path)

    if gene_col in matrix.columns:
        matrix = matrix.set_index(gene_col)
    else:
        matrix = matrix.set_index(matrix.columns[0])

    print(f"  {matrix.shape[0]} genes x {matrix.shape[1]} samples")

    return matrix


def subset_samples(matrix, sample_ids):
    """Select sample columns in the order they were requested

    Requested identifiers that are not in the matrix are reported and skipped;
    a repeated identifier is kept once, at its first position.

    Args:
        matrix: Genes x samples DataFrame
        sample_ids: Iterable of sample identifiers

    Returns:
        DataFrame restricted to the requested samples
    """
    requested = list(dict.fromkeys(sample_ids))
    present = set(matrix.columns)
    keep = [sample for sample in requested if sample in present]

    n_missing = len(requested) - len(keep)
    if n_missing:
        print(f"  {n_missing} requested samples not found in expression matrix")

    return matrix.loc[:, keep]


def select_high_variance_genes(matrix, quantile=0.9):
    """Keep genes whose variance across samples is in the top quantile

    Args:
        matrix: Genes x samples DataFrame
        quantile: Variance quantile cutoff; genes at or above it are kept

    Returns:
        DataFrame of high-variance genes
    """
    if not 0 <= quantile < 1:
        raise ValueError(f"quantile must be in [0, 1), got {quantile}")

    gene_variance = matrix.var(axis=1)
    cutoff = gene_variance.quantile(quantile)
    high_var = matrix.loc[gene_variance >= cutoff]

    print(f"Kept {high_var.shape[0]} high-variance genes (variance >= {cutoff:.3g})")

    return high_var


def load_single_cell(path, use_rep="X_pca"):
    """Load a normalized single-cell AnnData object

    Args:
        path: Path to the .h5ad file
        use_rep: Embedding that must be present in `adata.obsm`

    Returns:
        AnnData object
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{path} not found")

    print(f"Loading single-cell data from {path}...")
    adata = sc.read_h5ad(path)

    if use_rep not in adata.obsm:
        raise ValueError(
            f"Missing embedding '{use_rep}' in adata.obsm "
            f"(available: {list(adata.obsm.keys())})"
        )

    print(f"  Loaded: {adata.n_obs:,} cells x {adata.n_vars:,} genes")

    return adata
