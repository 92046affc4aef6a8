#!/usr/bin/env python
# coding: utf-8

# # 1.feature-correlations
#
# This notebook computes the correlation between every pair of morphology features in a single-cell profile table. Single-cell tables hold hundreds of thousands of cells, so the covariance matrix is computed over row blocks in parallel and the block estimates are merged into one matrix. Cells with missing feature values are excluded pairwise.
#
# The correlation matrix is then used to list the most strongly correlated feature pairs, which are candidates for redundancy filtering.

# In[1]:


import sys
import pathlib

import numpy as np
import polars as pl

sys.path.append("../../")
from cytogallery.correlation import (
    covariance_to_correlation,
    matrix_to_frame,
    profile_covariance_from_params,
)
from utils.data_utils import split_meta_and_features
from utils.io_utils import load_covariance_params, load_profiles, write_matrix


# Setting paths

# In[2]:


# set module and data directory paths
data_dir = pathlib.Path("./data").resolve(strict=True)
sc_profiles_path = (data_dir / "sc_normalized_profiles.parquet").resolve(strict=True)
config_path = pathlib.Path("./configs/covariance.yaml").resolve(strict=True)

# create output paths
results_dir = pathlib.Path("./results/feature-correlations").resolve()
results_dir.mkdir(exist_ok=True, parents=True)


# Loading profiles and parameters

# In[3]:


# load single-cell profiles and covariance parameters
sc_profiles_df = load_profiles(sc_profiles_path, verbose=True)
cov_params = load_covariance_params(config_path)

# split metadata and morphology features
meta_features, morph_features = split_meta_and_features(sc_profiles_df)
print(f"Number of morphology features: {len(morph_features)}")
print(f"Covariance parameters: {cov_params}")


# ## Computing the covariance and correlation matrices

# In[4]:


cov_df = profile_covariance_from_params(
    sc_profiles_df, params=cov_params, features=morph_features, verbose=True
)
corr_values = covariance_to_correlation(
    cov_df.select(morph_features).to_numpy().astype(np.float64)
)
corr_df = matrix_to_frame(corr_values, morph_features)

write_matrix(cov_df, results_dir / "feature_covariance.parquet")
write_matrix(corr_df, results_dir / "feature_correlation.parquet")


# ## Most correlated feature pairs

# In[5]:


# keep the upper triangle only so every pair appears once
upper_i, upper_j = np.triu_indices(len(morph_features), k=1)
feature_pairs_df = (
    pl.DataFrame(
        {
            "feature_1": [morph_features[i] for i in upper_i],
            "feature_2": [morph_features[j] for j in upper_j],
            "correlation": corr_values[upper_i, upper_j],
        }
    )
    .drop_nans("correlation")
    .with_columns(pl.col("correlation").abs().alias("abs_correlation"))
    .sort("abs_correlation", descending=True)
)

feature_pairs_df.write_csv(results_dir / "ranked_feature_pairs.csv")
feature_pairs_df.head(20)
