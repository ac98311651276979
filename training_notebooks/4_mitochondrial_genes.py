# %% [markdown]
# # Notebook 4: Mitochondrial Gene List
#
# **📤 Output:** `data/reference/hs_mitochondrial_genes.tsv`
#
# Single-cell QC uses the fraction of reads from mitochondrial genes. This
# notebook pulls the gene annotation of a fixed Ensembl release, keeps the
# genes on the mitochondrial chromosome and saves them as a table.
#
# Using a fixed release means re-running the notebook writes the same file.
#
# ---

# %%
from notebook_utils.annotation import (
    download_annotation,
    ensembl_gtf_url,
    filter_by_chromosome,
    read_gene_records,
    tidy_gene_table,
    write_gene_table,
)
from notebook_utils.config import MITO_PARAMS, PATHS

# %% [markdown]
# ## Get the Ensembl annotation
#
# The GTF is downloaded once into `data/reference/` and reused afterwards.

# %%
url = ensembl_gtf_url(
    release=MITO_PARAMS["release"],
    species=MITO_PARAMS["species"],
    assembly=MITO_PARAMS["assembly"],
)
gtf_path = download_annotation(url, PATHS["reference_dir"] / url.rsplit("/", 1)[-1])

# %%
genes = read_gene_records(gtf_path)
genes["seqname"].value_counts().head()

# %% [markdown]
# ## Keep mitochondrial genes

# %%
mito_genes = tidy_gene_table(filter_by_chromosome(genes, MITO_PARAMS["seqname"]))
mito_genes[["gene_id", "gene_name", "gene_biotype"]]

# %%
mito_genes["gene_biotype"].value_counts()

# %% [markdown]
# ## Save

# %%
write_gene_table(mito_genes, PATHS["mito_genes"])
