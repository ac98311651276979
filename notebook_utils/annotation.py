#!/usr/bin/env python3
"""
Gene annotation utilities
Handles Ensembl GTF retrieval, gene record parsing and chromosome filtering
"""

import re
from pathlib import Path

import pandas as pd
import requests

ENSEMBL_FTP = "https://ftp.ensembl.org/pub"

GTF_COLUMNS = [
    "seqname",
    "source",
    "feature",
    "start",
    "end",
    "score",
    "strand",
    "frame",
    "attributes",
]

# Leading columns of the exported gene table; any other attributes follow
GENE_COLUMNS = [
    "seqname",
    "start",
    "end",
    "width",
    "strand",
    "gene_id",
    "gene_version",
    "gene_name",
    "gene_source",
    "gene_biotype",
]

ATTRIBUTE_PATTERN = re.compile(r'(\S+) "([^"]*)"')


def ensembl_gtf_url(release=97, species="homo_sapiens", assembly="GRCh38"):
    """URL of the Ensembl GTF for a fixed release

    Args:
        release: Ensembl release number
        species: Species name in Ensembl's lowercase form
        assembly: Genome build

    Returns:
        URL string
    """
    prefix = species.capitalize()
    return f"{ENSEMBL_FTP}/release-{release}/gtf/{species}/{prefix}.{assembly}.{release}.gtf.gz"


def download_annotation(url, dest, chunk_size=1 << 20, timeout=60):
    """Download an annotation file unless it is already present

    Args:
        url: Remote file URL
        dest: Local destination path
        chunk_size: Bytes per streamed chunk
        timeout: Request timeout in seconds

    Returns:
        Path to the local file
    """
    dest = Path(dest)
    if dest.exists():
        print(f"Using existing annotation file {dest}")
        return dest

    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")

    print(f"Downloading {url}...")
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(partial, "wb") as handle:
            for chunk in response.iter_content(chunk_size=chunk_size):
                handle.write(chunk)

    partial.rename(dest)
    print(f"  Saved: {dest}")
    return dest


def parse_attributes(attributes):
    """Parse a GTF attribute string into a dictionary"""
    return dict(ATTRIBUTE_PATTERN.findall(attributes))


def read_gene_records(gtf_path, chunksize=200_000):
    """Read the `gene` records of a GTF file (plain or gzip)

    Args:
        gtf_path: Path to the GTF file
        chunksize: Lines read at a time

    Returns:
        DataFrame with one row per gene and one column per attribute
    """
    gtf_path = Path(gtf_path)
    if not gtf_path.exists():
        raise FileNotFoundError(f"{gtf_path} not found")

    print(f"Reading gene records from {gtf_path}...")
    reader = pd.read_csv(
        gtf_path,
        sep="\t",
        comment="#",
        header=None,
        names=GTF_COLUMNS,
        dtype={"seqname": str, "start": int, "end": int, "attributes": str},
        chunksize=chunksize,
    )
    gene_rows = pd.concat(
        [chunk[chunk["feature"] == "gene"] for chunk in reader], ignore_index=True
    )

    attributes = pd.DataFrame(
        [parse_attributes(attr) for attr in gene_rows["attributes"]],
        index=gene_rows.index,
    )
    genes = pd.concat(
        [gene_rows[["seqname", "start", "end", "strand"]], attributes], axis=1
    )
    genes.insert(3, "width", genes["end"] - genes["start"] + 1)

    print(f"  {len(genes):,} genes")
    return genes


def filter_by_chromosome(genes, seqname="MT"):
    """Keep genes annotated to one sequence, all other fields unchanged

    Args:
        genes: Gene annotation table with a `seqname` column
        seqname: Sequence (chromosome) name to keep

    Returns:
        Filtered copy of the table
    """
    if "seqname" not in genes.columns:
        raise ValueError("Missing required column: seqname")

    return genes[genes["seqname"] == str(seqname)].copy()


def tidy_gene_table(genes):
    """Stable column order and row order for export

    Every column of GENE_COLUMNS is present in the result, empty if the
    annotation did not provide it.
    """
    trailing = sorted(col for col in genes.columns if col not in GENE_COLUMNS)
    tidy = genes.reindex(columns=GENE_COLUMNS + trailing)
    return tidy.sort_values(["start", "gene_id"], kind="mergesort").reset_index(drop=True)


def write_gene_table(genes, path):
    """Write a gene table as TSV

    Args:
        genes: Gene annotation table
        path: Output path

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    genes.to_csv(path, sep="\t", index=False, lineterminator="\n")
    print(f"  Saved: {path} ({len(genes)} genes)")
    return path
