import pandas as pd
import pytest

from notebook_utils import annotation
from notebook_utils.annotation import (
    download_annotation,
    ensembl_gtf_url,
    filter_by_chromosome,
    parse_attributes,
    read_gene_records,
    tidy_gene_table,
    write_gene_table,
)


def test_ensembl_gtf_url():
    assert ensembl_gtf_url(97) == (
        "https://ftp.ensembl.org/pub/release-97/gtf/homo_sapiens/Homo_sapiens.GRCh38.97.gtf.gz"
    )


def test_parse_attributes():
    parsed = parse_attributes('gene_id "ENSG1"; gene_version "2"; gene_name "MT-ND1";')
    assert parsed == {"gene_id": "ENSG1", "gene_version": "2", "gene_name": "MT-ND1"}


def test_read_gene_records_keeps_only_genes(gtf_file):
    genes = read_gene_records(gtf_file)

    assert len(genes) == 4
    assert set(genes["seqname"]) == {"MT", "1"}
    nd1 = genes[genes["gene_name"] == "MT-ND1"].iloc[0]
    assert nd1["width"] == 4262 - 3307 + 1
    assert nd1["gene_biotype"] == "protein_coding"


def test_filter_by_chromosome_leaves_fields_unchanged(gtf_file):
    genes = read_gene_records(gtf_file)

    mito = filter_by_chromosome(genes, "MT")
    assert (mito["seqname"] == "MT").all()
    assert len(mito) == 3
    pd.testing.assert_frame_equal(mito, genes[genes["seqname"] == "MT"])


def test_filter_by_chromosome_requires_seqname():
    with pytest.raises(ValueError, match="seqname"):
        filter_by_chromosome(pd.DataFrame({"chrom": ["MT"]}))


def test_tidy_gene_table_orders_rows_and_columns(gtf_file):
    mito = tidy_gene_table(filter_by_chromosome(read_gene_records(gtf_file), "MT"))

    assert list(mito.columns[:10]) == annotation.GENE_COLUMNS
    assert mito["gene_name"].tolist() == ["MT-TF", "MT-RNR1", "MT-ND1"]


def test_gene_table_export_is_byte_identical(tmp_path, gtf_file):
    first = write_gene_table(
        tidy_gene_table(filter_by_chromosome(read_gene_records(gtf_file), "MT")),
        tmp_path / "first.tsv",
    )
    second = write_gene_table(
        tidy_gene_table(filter_by_chromosome(read_gene_records(gtf_file), "MT")),
        tmp_path / "second.tsv",
    )
    assert first.read_bytes() == second.read_bytes()


def test_download_annotation_skips_existing_file(tmp_path, monkeypatch):
    dest = tmp_path / "annotation.gtf.gz"
    dest.write_bytes(b"cached")

    def fail(*args, **kwargs):
        raise AssertionError("should not download")

    monkeypatch.setattr(annotation.requests, "get", fail)
    assert download_annotation("https://example.org/a.gtf.gz", dest) == dest
    assert dest.read_bytes() == b"cached"


class _FakeResponse:
    def __init__(self, chunks):
        self.chunks = chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size):
        return iter(self.chunks)


def test_download_annotation_streams_to_file(tmp_path, monkeypatch):
    requested = []

    def fake_get(url, stream, timeout):
        requested.append(url)
        return _FakeResponse([b"abc", b"def"])

    monkeypatch.setattr(annotation.requests, "get", fake_get)
    dest = tmp_path / "ref" / "annotation.gtf.gz"

    assert download_annotation("https://example.org/a.gtf.gz", dest) == dest
    assert dest.read_bytes() == b"abcdef"
    assert requested == ["https://example.org/a.gtf.gz"]
    assert not dest.with_name(dest.name + ".part").exists()


def test_export_without_gene_records_writes_header_only(tmp_path):
    gtf = tmp_path / "transcripts_only.gtf"
    gtf.write_text(
        '#!genome-build GRCh38.p12\n'
        'MT\tinsdc\ttranscript\t577\t647\t.\t+\t.\tgene_id "ENSG00000210049"; transcript_id "ENST00000387314";\n'
    )

    genes = read_gene_records(gtf)
    assert genes.empty

    mito = tidy_gene_table(filter_by_chromosome(genes, "MT"))
    assert list(mito.columns) == annotation.GENE_COLUMNS

    path = write_gene_table(mito, tmp_path / "mito.tsv")
    assert path.read_text() == "\t".join(annotation.GENE_COLUMNS) + "\n"
