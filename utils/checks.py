import numpy as np
import polars as pl
from beartype import beartype

from cytogallery.exceptions import InvalidInputError


@beartype
def check_for_infs(profiles: pl.DataFrame, columns: list[str]) -> None:
    """
    Check if the specified columns in the DataFrame contain any Inf values.

    Missing values (null or NaN) are allowed, they are excluded pairwise when
    computing covariances.

    Parameters
    ----------
    profiles : pl.DataFrame
        The DataFrame to check.
    columns : list of str
        List of column names to check for Inf values.

    Raises
    ------
    InvalidInputError
        If any Inf values are found in the specified columns.
    """
    if np.isinf(profiles.select(columns).to_numpy().astype(np.float64)).any():
        raise InvalidInputError("Profiles contain Inf values.")


@beartype
def check_feature_matrix(profiles: pl.DataFrame, features: list[str]) -> None:
    """
    Check that the given feature columns can be used as a feature matrix.

    Parameters
    ----------
    profiles : pl.DataFrame
        The DataFrame containing the features.
    features : list of str
        Feature column names, in the order they will appear in the matrix.

    Raises
    ------
    InvalidInputError
        If no features are given, if features are duplicated or missing from
        the DataFrame, if a feature column is not numeric, or if a feature
        contains Inf values.
    """
    if len(features) == 0:
        raise InvalidInputError("At least one feature column is required.")
    if len(set(features)) != len(features):
        raise InvalidInputError("Feature column names must be unique.")

    missing = [feature for feature in features if feature not in profiles.columns]
    if missing:
        raise InvalidInputError(f"Feature columns not found in profiles: {missing}")

    non_numeric = [
        feature for feature in features if not profiles.schema[feature].is_numeric()
    ]
    if non_numeric:
        raise InvalidInputError(f"Feature columns must be numeric: {non_numeric}")

    check_for_infs(profiles, features)
