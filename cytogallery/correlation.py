"""
This module computes covariance and correlation matrices of morphology
features directly from image-based profiles. Feature columns are turned into a
(cells x features) matrix, the covariance is computed over parallel row blocks
(see `parallel.py`), and the result is returned as a labelled polars DataFrame.
"""

import pathlib

import numpy as np
import polars as pl
from beartype import beartype

from utils.data_utils import profiles_to_feature_matrix, split_meta_and_features
from utils.io_utils import load_profiles
from utils.params.covariance import CovarianceParams

from .exceptions import InvalidInputError
from .parallel import parallel_covariance


@beartype
def covariance_to_correlation(covariance: np.ndarray) -> np.ndarray:
    """Normalize a covariance matrix into a correlation matrix.

    Each cell is ``cov[i, j] / sqrt(cov[i, i] * cov[j, j])``. Features with a
    zero or missing variance have NaN correlations, and the diagonal of every
    other feature is exactly 1.

    Parameters
    ----------
    covariance : np.ndarray
        (K, K) symmetric covariance matrix.

    Returns
    -------
    np.ndarray
        (K, K) correlation matrix, clipped to [-1, 1].

    Raises
    ------
    InvalidInputError
        If `covariance` is not a square matrix.
    """
    if covariance.ndim != 2 or covariance.shape[0] != covariance.shape[1]:
        raise InvalidInputError(
            f"Covariance matrix must be square, got shape {covariance.shape}"
        )

    std = np.sqrt(np.diag(covariance))
    scale = np.outer(std, std)
    correlation = np.full(covariance.shape, np.nan, dtype=np.float64)
    np.divide(covariance, scale, out=correlation, where=scale > 0)
    correlation = np.clip(correlation, -1.0, 1.0)

    valid = std > 0
    correlation[np.diag_indices_from(correlation)] = np.where(valid, 1.0, np.nan)
    return correlation


# name of the row-label column of labelled matrices
LABEL_COLUMN = "feature"


def _check_label_column(features: list[str]) -> None:
    if LABEL_COLUMN in features:
        raise InvalidInputError(
            f"'{LABEL_COLUMN}' is reserved for the row labels of the output "
            "matrix and cannot be used as a feature name. Rename the column first."
        )


@beartype
def matrix_to_frame(matrix: np.ndarray, features: list[str]) -> pl.DataFrame:
    """Label a (K, K) feature matrix with its feature names.

    Parameters
    ----------
    matrix : np.ndarray
        (K, K) covariance or correlation matrix.
    features : list[str]
        Feature names, in the order of the matrix rows and columns.

    Returns
    -------
    pl.DataFrame
        DataFrame whose first column, 'feature', holds the row labels and
        whose remaining columns are named after the features.

    Raises
    ------
    InvalidInputError
        If the number of features does not match the matrix shape, or if a
        feature is named 'feature'.
    """
    _check_label_column(features)
    if matrix.shape != (len(features), len(features)):
        raise InvalidInputError(
            f"Expected a ({len(features)}, {len(features)}) matrix, got shape {matrix.shape}"
        )

    return pl.concat(
        [
            pl.DataFrame({LABEL_COLUMN: features}),
            pl.DataFrame(matrix, schema=features, orient="row"),
        ],
        how="horizontal",
    )


@beartype
def profile_covariance(
    profiles: pl.DataFrame | str | pathlib.Path,
    features: list[str] | pl.Series | None = None,
    splits: int = 1,
    cores: int = 1,
    cov_fun: str = "two_pass",
    verbose: bool = False,
) -> pl.DataFrame:
    """Compute the covariance matrix of morphology features from profiles.

    Parameters
    ----------
    profiles : pl.DataFrame | str | pathlib.Path
        Image-based profiles, or a path to a parquet file containing them.
    features : list[str] | pl.Series | None, optional
        Feature columns to include, in output order. If None, the CellProfiler
        features are inferred with pycytominer. Default is None.
    splits : int, default 1
        Number of row blocks, between 1 and the number of rows.
    cores : int, default 1
        Number of parallel jobs. Use -1 for all available cores.
    cov_fun : {"two_pass", "online"}, default "two_pass"
        Per-block covariance routine.
    verbose : bool, default False
        If True, prints progress information.

    Returns
    -------
    pl.DataFrame
        Symmetric covariance matrix. The first column, 'feature', holds the row
        labels and the remaining columns are named after the features.

    Raises
    ------
    InvalidInputError
        If the feature columns are invalid, a feature is named 'feature', or
        the parameters are out of range.
    WorkerFailureError
        If computing any block fails.
    """
    if isinstance(profiles, (str, pathlib.Path)):
        profiles = load_profiles(profiles, verbose=verbose)

    if features is None:
        _, features = split_meta_and_features(profiles)
    elif isinstance(features, pl.Series):
        features = features.to_list()
    _check_label_column(features)

    data = profiles_to_feature_matrix(profiles, features)
    covariance = parallel_covariance(
        data, splits=splits, cores=cores, cov_fun=cov_fun, verbose=verbose
    )
    return matrix_to_frame(covariance, features)


@beartype
def profile_correlation(
    profiles: pl.DataFrame | str | pathlib.Path,
    features: list[str] | pl.Series | None = None,
    splits: int = 1,
    cores: int = 1,
    cov_fun: str = "two_pass",
    verbose: bool = False,
) -> pl.DataFrame:
    """Compute the Pearson correlation matrix of morphology features from
    profiles.

    Takes the same arguments as `profile_covariance` and normalizes its result
    with `covariance_to_correlation`.

    Returns
    -------
    pl.DataFrame
        Correlation matrix labelled like the output of `profile_covariance`.
    """
    covariance = profile_covariance(
        profiles,
        features=features,
        splits=splits,
        cores=cores,
        cov_fun=cov_fun,
        verbose=verbose,
    )
    features = covariance.columns[1:]
    correlation = covariance_to_correlation(
        covariance.select(features).to_numpy().astype(np.float64)
    )
    return matrix_to_frame(correlation, features)


@beartype
def profile_covariance_from_params(
    profiles: pl.DataFrame | str | pathlib.Path,
    params: CovarianceParams,
    features: list[str] | pl.Series | None = None,
    verbose: bool = False,
) -> pl.DataFrame:
    """Run `profile_covariance` with a `CovarianceParams` configuration."""
    return profile_covariance(
        profiles,
        features=features,
        splits=params.splits,
        cores=params.cores,
        cov_fun=params.cov_fun.value,
        verbose=verbose,
    )
