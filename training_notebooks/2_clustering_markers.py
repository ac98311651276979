# %% [markdown]
# # Notebook 2: Clustering & Markers
#
# **Single-cell RNA-seq - Hodgkin's lymphoma**
#
# **📥 Input:** `data/hodgkins/normalized/normalized_hodgkins.h5ad`
# **📤 Output:** `analysis/hodgkins/markers/clusterNN_markers.tsv`, `analysis/hodgkins/clustered_hodgkins.h5ad`
# **➡️ Next:** `3_gene_set_enrichment.py`
#
# ---

# %% [markdown]
# ## Load Data
#
# The input is already normalized and has a PCA embedding in `adata.obsm["X_pca"]`.

# %%
import matplotlib.pyplot as plt
import scanpy as sc

from notebook_utils.clustering import (
    cluster_sizes,
    compare_clusterings,
    graph_clusters,
    kmeans_clusters,
    plot_clusters,
)
from notebook_utils.config import CELL_CLUSTERING_PARAMS, MARKER_PARAMS, PATHS
from notebook_utils.data_loader import load_single_cell
from notebook_utils.markers import (
    find_markers,
    plot_top_markers,
    top_markers,
    write_marker_tables,
)

sc.settings.verbosity = 1

adata = load_single_cell(PATHS["single_cell"], use_rep=CELL_CLUSTERING_PARAMS["use_rep"])

# %% [markdown]
# ## Parameter Configuration

# %%
N_CLUSTERS = CELL_CLUSTERING_PARAMS["n_clusters"]
N_NEIGHBORS = CELL_CLUSTERING_PARAMS["n_neighbors"]
RESOLUTION = CELL_CLUSTERING_PARAMS["resolution"]
SEED = CELL_CLUSTERING_PARAMS["seed"]

print("Parameters:")
print(f"  k-means centers: {N_CLUSTERS}")
print(f"  Graph neighbors: {N_NEIGHBORS}")
print(f"  Resolution: {RESOLUTION}")

# %% [markdown]
# ## k-means clustering
#
# k-means needs the number of clusters up front. It finds roughly spherical,
# similarly sized clusters in PCA space.

# %%
adata = kmeans_clusters(adata, n_clusters=N_CLUSTERS, seed=SEED)
cluster_sizes(adata, "kmeans_cluster")

# %% [markdown]
# ## Graph-based clustering
#
# Build a nearest-neighbor graph of cells and find communities with Leiden.
# The number of clusters follows from the graph and the resolution.

# %%
adata = graph_clusters(adata, n_neighbors=N_NEIGHBORS, resolution=RESOLUTION, seed=SEED)
cluster_sizes(adata, "graph_cluster")

# %%
if "X_umap" not in adata.obsm:
    sc.tl.umap(adata, random_state=SEED)
plot_clusters(adata, keys=("kmeans_cluster", "graph_cluster"))

# %% [markdown]
# ### How similar are the two clusterings?

# %%
table, ari = compare_clusterings(adata, "kmeans_cluster", "graph_cluster")
table

# %% [markdown]
# ## Marker Gene Analysis
#
# Rank genes that distinguish each k-means cluster from the rest and write one
# table per cluster. File names are zero padded (`cluster01`, ..., `cluster10`)
# so they sort in cluster order.

# %%
tables = find_markers(
    adata,
    groupby=MARKER_PARAMS["groupby"],
    method=MARKER_PARAMS["method"],
    use_raw=MARKER_PARAMS["use_raw"],
    symbol_col=MARKER_PARAMS["symbol_col"],
)
paths = write_marker_tables(tables, PATHS["markers_dir"])
[path.name for path in paths]

# %%
top_markers(tables, n=MARKER_PARAMS["n_top"]).head(20)

# %%
plot_top_markers(adata, groupby=MARKER_PARAMS["groupby"], symbol_col=MARKER_PARAMS["symbol_col"])

# %% [markdown]
# ## Save

# %%
output_file = PATHS["clustered_single_cell"]
output_file.parent.mkdir(parents=True, exist_ok=True)
adata.write(output_file)
plt.close("all")
print(f"✓ Saved clustered data to {output_file}")
