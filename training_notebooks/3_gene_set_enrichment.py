# %% [markdown]
# # Notebook 3: Gene Set Enrichment Analysis
#
# **📥 Input:** `analysis/hodgkins/markers/cluster01_markers.tsv`
# **📤 Output:** `analysis/hodgkins/gsea/cluster01_gsea_results.tsv`
#
# GSEA tests whether the genes of a pathway sit near the top (or bottom) of a
# ranked gene list. Here the ranking is the log fold change of one cluster
# against all other cells, so it uses every gene, not only significant markers.
#
# ---

# %% [markdown]
# ## Setup

# %%
from pathlib import Path

import matplotlib.pyplot as plt

from notebook_utils.config import GSEA_PARAMS, PATHS
from notebook_utils.enrichment import (
    build_ranking,
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
from notebook_utils.markers import marker_filename

CLUSTER = GSEA_PARAMS["cluster"]
OUTPUT_DIR = Path(PATHS["gsea_dir"])

# %% [markdown]
# ## Load the marker table

# %%
markers = load_marker_table(Path(PATHS["markers_dir"]) / marker_filename(CLUSTER))
markers.head()

# %% [markdown]
# ## Build the ranked list
#
# Several Ensembl ids can share a gene symbol. GSEA needs one value per gene,
# so we keep the id with the largest absolute fold change.

# %%
ranking = build_ranking(markers, gene_col=GSEA_PARAMS["gene_col"], effect_col=GSEA_PARAMS["effect_col"])
print(f"{ranking.size} ranked genes")
ranking.head()

# %% [markdown]
# ## Gene sets
#
# MSigDB Hallmark gene sets, fetched through Enrichr. Set `GSEA_PARAMS["gmt_path"]`
# to use a local GMT snapshot instead.

# %%
gene_sets = load_gene_sets(GSEA_PARAMS["library"], GSEA_PARAMS["organism"], gmt_path=GSEA_PARAMS["gmt_path"])

# %% [markdown]
# ## Run GSEA

# %%
prerank_res = run_gsea(
    ranking,
    gene_sets,
    min_size=GSEA_PARAMS["min_size"],
    max_size=GSEA_PARAMS["max_size"],
    permutation_num=GSEA_PARAMS["permutation_num"],
    seed=GSEA_PARAMS["seed"],
    threads=GSEA_PARAMS["threads"],
)
results = tidy_gsea_results(prerank_res.res2d)
write_gsea_results(results, OUTPUT_DIR / marker_filename(CLUSTER, suffix="_gsea_results.tsv"))

significant_pathways(results, GSEA_PARAMS["fdr_threshold"]).head(10)

# %% [markdown]
# ## Visualize
#
# The running enrichment score plot shows where the pathway genes fall in the
# ranking; a peak near the left edge means they are up in this cluster.

# %%
top = significant_pathways(results, GSEA_PARAMS["fdr_threshold"]).head(GSEA_PARAMS["n_plot"])
for term in top["pathway"]:
    plot_gsea_term(prerank_res, term)

plot_top_pathways(results, fdr_threshold=GSEA_PARAMS["fdr_threshold"], title=f"Cluster {CLUSTER} GSEA")

# %% [markdown]
# ## Compare: over-representation analysis
#
# ORA only looks at the significant up-regulated markers, against all tested
# genes as background.

# %%
up_genes = significant_markers(markers, gene_col=GSEA_PARAMS["gene_col"])
if up_genes:
    ora = run_overrepresentation(up_genes, gene_sets, background=list(ranking.index))
    display_cols = ["Term", "Overlap", "P-value", "Adjusted P-value"]
    print(ora[display_cols].head(10))
else:
    print("No significant up-regulated markers for ORA")

# %%
plt.close("all")
print("✓ Gene set enrichment complete")
