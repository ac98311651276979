import numpy as np
import pandas as pd
import pytest

from notebook_utils import enrichment
from notebook_utils.enrichment import (
    build_ranking,
    deduplicate_genes,
    load_gene_sets,
    load_marker_table,
    plot_gsea_term,
    plot_top_pathways,
    run_gsea,
    run_overrepresentation,
    significant_markers,
    significant_pathways,
    tidy_gsea_results,
    write_gsea_results,
)


@pytest.fixture
def duplicated_markers():
    return pd.DataFrame(
        {
            "gene_id": ["id1", "id2", "id3", "id4", "id5", "id6", "id7"],
            "gene_symbol": ["A", "A", "B", "C", "C", "C", None],
            "log_fc": [1.0, -3.0, 2.0, 0.5, -0.1, 0.7, 9.0],
            "fdr": [0.01, 0.2, 0.001, 0.04, 0.5, 0.03, 0.01],
        }
    )


def test_deduplicate_keeps_largest_absolute_effect(duplicated_markers):
    deduped = deduplicate_genes(duplicated_markers)

    assert deduped["gene_symbol"].is_unique
    assert deduped["gene_id"].tolist() == ["id2", "id3", "id6"]


def test_deduplicate_matches_groupwise_maximum():
    rng = np.random.default_rng(5)
    df = pd.DataFrame(
        {
            "gene_symbol": rng.choice(list("ABCDEFGH"), size=200),
            "log_fc": rng.normal(size=200),
        }
    )

    deduped = deduplicate_genes(df).set_index("gene_symbol")["log_fc"]
    expected = df.groupby("gene_symbol")["log_fc"].agg(lambda x: x.loc[x.abs().idxmax()])
    pd.testing.assert_series_equal(deduped.sort_index(), expected.sort_index(), check_names=False)


def test_deduplicate_requires_columns(duplicated_markers):
    with pytest.raises(ValueError, match="logFC"):
        deduplicate_genes(duplicated_markers, effect_col="logFC")


def test_build_ranking_sorted_descending(duplicated_markers):
    ranking = build_ranking(duplicated_markers)

    assert ranking.index.tolist() == ["B", "C", "A"]
    assert ranking.tolist() == [2.0, 0.7, -3.0]


def test_load_marker_table_round_trip(tmp_path, duplicated_markers):
    path = tmp_path / "cluster01_markers.tsv"
    duplicated_markers.to_csv(path, sep="\t", index=False)

    loaded = load_marker_table(path)
    assert loaded["gene_id"].tolist() == duplicated_markers["gene_id"].tolist()


def test_load_gene_sets_from_gmt(tmp_path):
    gmt = tmp_path / "sets.gmt"
    gmt.write_text("SET1\tna\tA\tB\tC\nSET2\tdescription\tD\tE\n")

    gene_sets = load_gene_sets(gmt_path=str(gmt))
    assert set(gene_sets) == {"SET1", "SET2"}
    assert set(gene_sets["SET1"]) == {"A", "B", "C"}


def test_load_gene_sets_missing_gmt(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_gene_sets(gmt_path=str(tmp_path / "missing.gmt"))


def test_run_gsea_delegates_to_prerank(monkeypatch):
    calls = {}

    def fake_prerank(**kwargs):
        calls.update(kwargs)
        return "prerank-result"

    monkeypatch.setattr(enrichment.gp, "prerank", fake_prerank)
    ranking = pd.Series([2.0, 1.0, -1.0], index=["A", "B", "C"])

    result = run_gsea(ranking, {"SET1": ["A", "B"]}, min_size=1, max_size=10, permutation_num=10, seed=3)

    assert result == "prerank-result"
    assert calls["rnk"] is ranking
    assert calls["min_size"] == 1
    assert calls["permutation_num"] == 10
    assert calls["seed"] == 3


def test_run_gsea_rejects_empty_ranking():
    with pytest.raises(ValueError):
        run_gsea(pd.Series(dtype=float), {"SET1": ["A"]})


@pytest.fixture
def raw_res2d():
    return pd.DataFrame(
        {
            "Name": ["prerank"] * 3,
            "Term": ["HALLMARK_A", "HALLMARK_B", "HALLMARK_C"],
            "ES": [0.5, -0.7, 0.9],
            "NES": [1.2, -2.1, 1.9],
            "NOM p-val": [0.01, 0.0, 0.2],
            "FDR q-val": [0.02, 0.001, 0.3],
            "FWER p-val": [0.05, 0.0, 0.6],
            "Tag %": ["10/40", "12/50", "3/30"],
            "Gene %": ["5.0%", "8.0%", "2.0%"],
            "Lead_genes": ["A;B", "C;D", "E"],
        },
        dtype=object,
    )


def test_tidy_gsea_results(raw_res2d):
    tidy = tidy_gsea_results(raw_res2d)

    assert "name" not in tidy.columns
    assert {"pathway", "nes", "pval", "fdr", "tag_percent", "gene_percent", "lead_genes"} <= set(tidy.columns)
    assert tidy["pathway"].tolist() == ["HALLMARK_C", "HALLMARK_A", "HALLMARK_B"]
    assert pd.api.types.is_float_dtype(tidy["nes"])


def test_significant_pathways_ordered_by_abs_nes(raw_res2d):
    tidy = tidy_gsea_results(raw_res2d)

    significant = significant_pathways(tidy, fdr_threshold=0.05)
    assert significant["pathway"].tolist() == ["HALLMARK_B", "HALLMARK_A"]


def test_write_and_plot_gsea_results(tmp_path, raw_res2d):
    tidy = tidy_gsea_results(raw_res2d)

    path = write_gsea_results(tidy, tmp_path / "gsea" / "cluster01_gsea_results.tsv")
    assert pd.read_csv(path, sep="\t")["pathway"].tolist() == tidy["pathway"].tolist()

    assert plot_top_pathways(tidy, fdr_threshold=0.05, save_dir=tmp_path) is not None
    assert (tmp_path / "gsea_top_pathways.png").exists()
    assert plot_top_pathways(tidy, fdr_threshold=1e-6, save_dir=tmp_path) is None


def test_significant_markers_unique_upregulated(duplicated_markers):
    genes = significant_markers(duplicated_markers, fdr_threshold=0.05)
    assert genes == ["A", "B", "C"]


def test_run_overrepresentation_on_local_gene_sets():
    gene_sets = {
        "SET_A": [f"A{i}" for i in range(10)],
        "SET_B": [f"B{i}" for i in range(10)],
    }
    background = [f"A{i}" for i in range(10)] + [f"B{i}" for i in range(10)] + [f"X{i}" for i in range(180)]

    results = run_overrepresentation([f"A{i}" for i in range(8)] + ["B0"], gene_sets, background=background)

    assert results.loc[0, "Term"] == "SET_A"
    assert results["Adjusted P-value"].is_monotonic_increasing


def test_run_overrepresentation_rejects_empty_list():
    with pytest.raises(ValueError):
        run_overrepresentation([], {"SET_A": ["A"]})


def test_plot_gsea_term_unknown_pathway():
    class FakePrerank:
        results = {"HALLMARK_A": {}}

    with pytest.raises(ValueError, match="HALLMARK_B"):
        plot_gsea_term(FakePrerank(), "HALLMARK_B")
