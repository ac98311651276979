# %% [markdown]
# # Notebook 1: Consensus Clustering Validation
#
# **Bulk RNA-seq - medulloblastoma samples**
#
# **📥 Input:** `data/open-pbta/pbta-histologies.tsv`, `data/open-pbta/processed/pbta-vst-medulloblastoma.tsv.gz`
# **📤 Output:** `results/cluster_validation/`
#
# Consensus clustering repeatedly clusters random subsamples of the data and
# records how often each pair of samples ends up in the same cluster. Stable
# clusters give consensus values near 0 or 1; the CDF and delta area plots
# below help choose the number of clusters.
#
# ---

# %% [markdown]
# ## Setup

# %%
import matplotlib.pyplot as plt
import scanpy as sc

from notebook_utils.config import CONSENSUS_PARAMS, EMBEDDING_PARAMS, PATHS, SAMPLE_FILTERS
from notebook_utils.consensus import (
    cluster_quality,
    consensus_cluster,
    delta_area,
    plot_consensus_cdf,
    plot_consensus_heatmap,
    plot_delta_area,
    write_consensus_outputs,
)
from notebook_utils.data_loader import (
    load_expression_matrix,
    load_sample_metadata,
    select_high_variance_genes,
    subset_samples,
)
from notebook_utils.embedding import (
    expression_to_anndata,
    plot_embedding,
    plot_umap_3d,
    run_pca,
    run_umap,
)

sc.settings.verbosity = 1

OUTPUT_DIR = PATHS["cluster_validation_dir"]
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# %% [markdown]
# ## Load metadata and expression data
#
# We keep only medulloblastoma RNA-seq samples, then subset the expression
# matrix to those samples in metadata order.

# %%
metadata = load_sample_metadata(
    PATHS["metadata"],
    id_col=SAMPLE_FILTERS["id_col"],
    histology_col=SAMPLE_FILTERS["histology_col"],
    histology=SAMPLE_FILTERS["histology"],
    experimental_strategy=SAMPLE_FILTERS["experimental_strategy"],
)
expression = load_expression_matrix(PATHS["bulk_expression"])
expression = subset_samples(expression, metadata.index)

metadata[SAMPLE_FILTERS["subtype_col"]].value_counts()

# %% [markdown]
# ## Select high-variance genes
#
# Low-variance genes add noise without separating samples, so we cluster on
# the top 10% most variable genes.

# %%
high_var = select_high_variance_genes(expression, CONSENSUS_PARAMS["variance_quantile"])

# %% [markdown]
# ## Run consensus clustering
#
# 🎛️ `cluster_alg` can be `"hc"` (hierarchical) or `"km"` (k-means); try both
# and compare the CDF plots.

# %%
results = consensus_cluster(
    high_var,
    min_k=CONSENSUS_PARAMS["min_k"],
    max_k=CONSENSUS_PARAMS["max_k"],
    reps=CONSENSUS_PARAMS["reps"],
    p_item=CONSENSUS_PARAMS["p_item"],
    p_feature=CONSENSUS_PARAMS["p_feature"],
    cluster_alg=CONSENSUS_PARAMS["cluster_alg"],
    distance=CONSENSUS_PARAMS["distance"],
    seed=CONSENSUS_PARAMS["seed"],
)

# %% [markdown]
# ## Choose the number of clusters
#
# A good k has a CDF that is flat in the middle (pairs are almost always or
# almost never together) and is the last k with a large gain in delta area.

# %%
plot_consensus_cdf(results)
plot_delta_area(results)

diagnostics = delta_area(results).merge(
    cluster_quality(high_var, results, CONSENSUS_PARAMS["distance"]), on="k"
)
diagnostics

# %%
CHOSEN_K = CONSENSUS_PARAMS["chosen_k"]
chosen = results[CHOSEN_K]
subtypes = metadata[SAMPLE_FILTERS["subtype_col"]]

plot_consensus_heatmap(chosen, annotations=subtypes)

# %% [markdown]
# ## Compare clusters to molecular subtypes
#
# Cluster numbers are arbitrary; what matters is whether each cluster is
# dominated by one subtype. The diagnostics, per-sample cluster assignments and
# this table are saved to `results/cluster_validation/`.

# %%
crosstab = write_consensus_outputs(diagnostics, chosen, subtypes, OUTPUT_DIR)
crosstab

# %% [markdown]
# ## Unsupervised embeddings
#
# PCA and UMAP are computed on the same high-variance genes; neither uses the
# cluster labels, so they give an independent look at sample structure.

# %%
adata = expression_to_anndata(high_var, metadata)
adata.obs["consensus_cluster"] = chosen.labels.reindex(adata.obs_names).astype(str).to_numpy()

run_pca(adata, n_comps=EMBEDDING_PARAMS["n_comps"], seed=EMBEDDING_PARAMS["seed"])
run_umap(adata, n_neighbors=EMBEDDING_PARAMS["n_neighbors"], seed=EMBEDDING_PARAMS["seed"])

for basis in ("pca", "umap"):
    for color in (SAMPLE_FILTERS["subtype_col"], "consensus_cluster"):
        plot_embedding(adata, basis=basis, color=color)

# %% [markdown]
# ### Interactive 3D UMAP

# %%
run_umap(
    adata,
    n_neighbors=EMBEDDING_PARAMS["n_neighbors"],
    n_components=3,
    seed=EMBEDDING_PARAMS["seed"],
)
plot_umap_3d(adata, color=SAMPLE_FILTERS["subtype_col"])

# %%
plt.close("all")
print("✓ Cluster validation complete")
