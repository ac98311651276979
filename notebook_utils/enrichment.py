#!/usr/bin/env python3
"""
Gene set enrichment utilities for cluster marker tables
Handles ranking, gene set loading, preranked GSEA and over-representation
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import gseapy as gp
import matplotlib.pyplot as plt
import pandas as pd
from gseapy.parser import read_gmt

from notebook_utils.data_loader import read_tsv
from notebook_utils.plotting import save_or_show

NUMERIC_GSEA_COLUMNS = ["es", "nes", "pval", "fdr", "fwer_p_val"]


def load_marker_table(path) -> pd.DataFrame:
    """Load one cluster's marker table written by the clustering pipeline."""
    print(f"Loading marker table from {path}...")
    table = read_tsv(path)
    print(f"  {len(table)} genes")
    return table


def deduplicate_genes(df: pd.DataFrame, gene_col: str = "gene_symbol", effect_col: str = "log_fc") -> pd.DataFrame:
    """Keep, for each gene, only the row with the largest absolute effect size.

    Several gene ids can map to one symbol; the most extreme fold change wins.
    Rows without a gene or an effect size are dropped first. The surviving
    rows keep their original order.
    """
    missing = [col for col in (gene_col, effect_col) if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    clean = df.dropna(subset=[gene_col, effect_col]).reset_index(drop=True)
    n_dupes = clean[gene_col].duplicated().sum()
    if n_dupes:
        print(f"  Removing {n_dupes} duplicated {gene_col} entries")

    keep = clean[effect_col].abs().groupby(clean[gene_col]).idxmax()
    return clean.loc[keep].sort_index()


def build_ranking(df: pd.DataFrame, gene_col: str = "gene_symbol", effect_col: str = "log_fc") -> pd.Series:
    """Return a preranked Series indexed by gene, sorted by decreasing effect size."""
    deduped = deduplicate_genes(df, gene_col=gene_col, effect_col=effect_col)
    ranking = deduped.set_index(gene_col)[effect_col].astype(float)
    return ranking.sort_values(ascending=False, kind="mergesort")


def load_gene_sets(
    library: str = "MSigDB_Hallmark_2020",
    organism: str = "Human",
    gmt_path: Optional[str] = None,
) -> Dict[str, List[str]]:
    """Load a gene set collection from a local GMT file or from Enrichr."""
    if gmt_path is not None:
        print(f"Loading gene sets from {gmt_path}...")
        if not Path(gmt_path).exists():
            raise FileNotFoundError(f"{gmt_path} not found")
        gene_sets = read_gmt(str(gmt_path))
    else:
        print(f"Loading gene sets: {library} ({organism})...")
        gene_sets = gp.get_library(name=library, organism=organism)

    print(f"  {len(gene_sets)} gene sets")
    return gene_sets


def run_gsea(
    ranking: pd.Series,
    gene_sets: Dict[str, List[str]],
    min_size: int = 25,
    max_size: int = 500,
    permutation_num: int = 1000,
    seed: int = 2020,
    threads: int = 1,
):
    """Run gseapy.prerank on a ranked gene list.

    Returns:
        The gseapy Prerank object (`res2d` holds the result table)
    """
    if ranking.empty:
        raise ValueError("Ranking is empty; nothing to test")

    print(f"Running GSEA on {ranking.size} ranked genes ({permutation_num} permutations)...")
    return gp.prerank(
        rnk=ranking,
        gene_sets=gene_sets,
        min_size=min_size,
        max_size=max_size,
        permutation_num=permutation_num,
        outdir=None,
        seed=seed,
        threads=threads,
        no_plot=True,
        verbose=False,
    )


def tidy_gsea_results(res2d: pd.DataFrame) -> pd.DataFrame:
    """Lowercase/slugify GSEApy columns and map vendor-specific names to canonical ones."""
    normalized = res2d.copy()
    normalized.columns = [
        col.strip().lower().replace(" ", "_").replace("-", "_") for col in normalized.columns
    ]

    column_aliases = {
        "term": "pathway",
        "nom_p_val": "pval",
        "fdr_q_val": "fdr",
        "tag_%": "tag_percent",
        "gene_%": "gene_percent",
        "leading_edge": "lead_genes",
    }
    normalized = normalized.rename(columns=column_aliases)
    normalized = normalized.drop(columns=["name"], errors="ignore")

    for col in NUMERIC_GSEA_COLUMNS:
        if col in normalized.columns:
            normalized[col] = pd.to_numeric(normalized[col])

    return normalized.sort_values("nes", ascending=False).reset_index(drop=True)


def write_gsea_results(results: pd.DataFrame, path) -> Path:
    """Write the tidy GSEA table as TSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    results.to_csv(path, sep="\t", index=False)
    print(f"  Saved: {path}")
    return path


def significant_pathways(results: pd.DataFrame, fdr_threshold: float = 0.05) -> pd.DataFrame:
    """Pathways below the FDR threshold, most extreme NES first."""
    significant = results[results["fdr"] < fdr_threshold]
    order = significant["nes"].abs().sort_values(ascending=False).index
    return significant.loc[order]


def plot_gsea_term(prerank_res, term: str, save_dir=None):
    """Running enrichment score plot for one pathway."""
    if term not in prerank_res.results:
        raise ValueError(f"Pathway '{term}' not in GSEA results")

    print(f"Plotting enrichment for {term}...")
    if save_dir:
        save_dir = Path(save_dir)
        save_dir.mkdir(parents=True, exist_ok=True)
        out_path = save_dir / f"gsea_{term.replace(' ', '_').replace('/', '_')}.png"
        gp.gseaplot(
            rank_metric=prerank_res.ranking,
            term=term,
            ofname=str(out_path),
            **prerank_res.results[term],
        )
        print(f"  Saved: {out_path}")
        return out_path

    return gp.gseaplot(rank_metric=prerank_res.ranking, term=term, **prerank_res.results[term])


def plot_top_pathways(
    results: pd.DataFrame,
    max_terms: int = 12,
    fdr_threshold: float = 0.1,
    title: str = "Top GSEA pathways",
    save_dir=None,
) -> Optional[plt.Axes]:
    """Horizontal bar plot of the most enriched pathways."""
    subset = significant_pathways(results, fdr_threshold).head(max_terms)
    if subset.empty:
        print(f"No pathways with FDR < {fdr_threshold} to plot")
        return None

    subset = subset.sort_values("nes")
    fig, ax = plt.subplots(figsize=(10, max(3, 0.4 * len(subset))))
    colors = ["#d62728" if x > 0 else "#1f77b4" for x in subset["nes"]]
    ax.barh(subset["pathway"], subset["nes"], color=colors, alpha=0.8)
    ax.axvline(x=0, color="black", linestyle="--", alpha=0.5)
    ax.set_xlabel("Normalized Enrichment Score (NES)")
    ax.set_title(title)
    fig.tight_layout()

    save_or_show(fig, save_dir, "gsea_top_pathways.png")
    return ax


def significant_markers(
    table: pd.DataFrame,
    gene_col: str = "gene_symbol",
    fdr_threshold: float = 0.05,
    min_log_fc: float = 0.0,
) -> List[str]:
    """Up-regulated markers passing the FDR cutoff, as a unique gene list."""
    passed = table[(table["fdr"] < fdr_threshold) & (table["log_fc"] > min_log_fc)]
    return list(dict.fromkeys(passed[gene_col].dropna()))


def run_overrepresentation(
    genes: List[str],
    gene_sets: Dict[str, List[str]],
    background: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Over-representation test of a gene list with gseapy.enrich."""
    if not genes:
        raise ValueError("Gene list is empty; nothing to test")

    print(f"Running over-representation analysis on {len(genes)} genes...")
    enr = gp.enrich(
        gene_list=list(genes),
        gene_sets=gene_sets,
        background=background,
        outdir=None,
        no_plot=True,
        verbose=False,
    )
    return enr.results.sort_values("Adjusted P-value").reset_index(drop=True)
