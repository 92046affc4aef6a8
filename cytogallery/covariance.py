"""
This module provides the per-block covariance routines used to compute feature
covariances over large single-cell morphology tables. Each routine returns a
`BlockStatistic`: the covariance matrix of a block of rows together with the
paired observation counts, the pair-restricted means and the centered
co-moments that are needed to merge blocks later on (see `combine.py`).

Missing values (NaN) are handled with pairwise deletion: a row contributes to
cell (i, j) only when both feature i and feature j are present in that row.
"""

import math
from dataclasses import dataclass

import numpy as np
from beartype import beartype

from .exceptions import InvalidInputError


@dataclass(frozen=True)
class BlockStatistic:
    """Mergeable covariance statistics for one block of observations.

    Parameters
    ----------
    counts : np.ndarray
        (K, K) integer matrix. ``counts[i, j]`` is the number of rows where both
        feature i and feature j are present.
    means : np.ndarray
        (K, K) matrix. ``means[i, j]`` is the mean of feature i over the rows
        where feature i and feature j are both present. NaN when the pair has no
        observations.
    comoment : np.ndarray
        (K, K) matrix of centered cross-product sums over the paired rows.
    covariance : np.ndarray
        (K, K) unbiased covariance estimate, ``comoment / (counts - 1)``. NaN for
        pairs with fewer than two observations.
    """

    counts: np.ndarray
    means: np.ndarray
    comoment: np.ndarray
    covariance: np.ndarray

    @classmethod
    def from_moments(
        cls, counts: np.ndarray, means: np.ndarray, comoment: np.ndarray
    ) -> "BlockStatistic":
        """Build a statistic from counts, means and co-moments, deriving the
        covariance matrix."""
        return cls(
            counts=counts,
            means=means,
            comoment=comoment,
            covariance=_covariance_from_comoment(counts, comoment),
        )

    @property
    def n_features(self) -> int:
        return self.counts.shape[0]

    @property
    def n_obs(self) -> int:
        """Largest per-feature observation count in the block."""
        if self.n_features == 0:
            return 0
        return int(np.diag(self.counts).max())

    @property
    def feature_means(self) -> np.ndarray:
        """Per-feature means, ignoring missing values of that feature only."""
        return np.diag(self.means).copy()


def _covariance_from_comoment(counts: np.ndarray, comoment: np.ndarray) -> np.ndarray:
    """Divide co-moments by (n - 1), leaving NaN where fewer than two paired
    observations are available."""
    covariance = np.full(comoment.shape, np.nan, dtype=np.float64)
    np.divide(comoment, counts - 1, out=covariance, where=counts >= 2)
    return covariance


def _as_float_vector(values: np.ndarray | list[int | float], name: str) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1:
        raise InvalidInputError(
            f"'{name}' must be one-dimensional, got {vector.ndim} dimension(s)."
        )
    return vector


def _online_pair_moments(
    x1: np.ndarray, x2: np.ndarray
) -> tuple[int, float, float, float]:
    """Single-pass (Welford) update of the running means and co-moment of two
    vectors, skipping rows where either value is missing.

    Returns
    -------
    tuple[int, float, float, float]
        Number of paired observations, mean of x1, mean of x2 and the centered
        co-moment. Means are NaN when there are no paired observations.
    """
    n = 0
    mean_x1 = 0.0
    mean_x2 = 0.0
    comoment = 0.0
    for value_x1, value_x2 in zip(x1.tolist(), x2.tolist()):
        if math.isnan(value_x1) or math.isnan(value_x2):
            continue
        n += 1
        delta_x1 = value_x1 - mean_x1
        mean_x1 += delta_x1 / n
        mean_x2 += (value_x2 - mean_x2) / n
        # uses the updated mean of x2 and the pre-update deviation of x1
        comoment += delta_x1 * (value_x2 - mean_x2)

    if n == 0:
        return 0, math.nan, math.nan, 0.0
    return n, mean_x1, mean_x2, comoment


@beartype
def online_covar(
    x1: np.ndarray | list[int | float], x2: np.ndarray | list[int | float]
) -> float:
    """Compute the sample covariance of two vectors in a single pass.

    Running means of both vectors and a running co-moment are updated one
    sample at a time, which avoids the catastrophic cancellation of the naive
    sum-of-products formula. Pairs where either value is NaN are skipped.

    Parameters
    ----------
    x1 : np.ndarray | list[int | float]
        First numeric vector.
    x2 : np.ndarray | list[int | float]
        Second numeric vector, same length as `x1`.

    Returns
    -------
    float
        Unbiased sample covariance of the paired observations.

    Raises
    ------
    InvalidInputError
        If the vectors are not one-dimensional, have different lengths, or if
        fewer than two complete pairs remain after removing missing values.
    """
    x1 = _as_float_vector(x1, "x1")
    x2 = _as_float_vector(x2, "x2")
    if x1.shape[0] != x2.shape[0]:
        raise InvalidInputError(
            f"Vectors must have the same length, got {x1.shape[0]} and {x2.shape[0]}."
        )

    n, _, _, comoment = _online_pair_moments(x1, x2)
    if n < 2:
        raise InvalidInputError(
            f"At least 2 complete pairs are required to compute a covariance, got {n}."
        )
    return comoment / (n - 1)


def _as_float_block(block: np.ndarray) -> np.ndarray:
    # private C-ordered copy, memory-mapped blocks from joblib are read-only
    block = np.array(block, dtype=np.float64, order="C")
    if block.ndim != 2:
        raise InvalidInputError(
            f"Block must be a 2-D (rows x features) array, got {block.ndim} dimension(s)."
        )
    return block


@beartype
def two_pass_multi_covar(block: np.ndarray) -> BlockStatistic:
    """Compute the covariance matrix of a block of rows with a two-pass
    algorithm.

    The first pass computes the mean of every feature, ignoring missing values
    of that feature. The second pass accumulates the cross-products of the
    centered values over the rows where both features are present. When a
    pair's rows do not cover the whole column, the residual offset of the
    pair-restricted mean is removed from the co-moment (corrected two-pass
    algorithm), so each cell equals the covariance of its complete pairs.

    Parameters
    ----------
    block : np.ndarray
        (M, K) array of M observations over K features. NaN marks a missing
        value.

    Returns
    -------
    BlockStatistic
        Covariance matrix, paired counts, pair-restricted means and co-moments
        of the block. Cells with fewer than two paired observations are NaN.

    Raises
    ------
    InvalidInputError
        If `block` is not two-dimensional.

    Notes
    -----
    - Sums are evaluated with `np.einsum` without BLAS dispatch, so the same
      block always produces bit-identical results, whatever the process.
    """
    block = _as_float_block(block)
    present = ~np.isnan(block)
    weights = present.astype(np.float64)

    # first pass: per-feature means
    col_counts = weights.sum(axis=0)
    col_sums = np.where(present, block, 0.0).sum(axis=0)
    col_means = np.full(block.shape[1], np.nan, dtype=np.float64)
    np.divide(col_sums, col_counts, out=col_means, where=col_counts > 0)

    # second pass: centered cross-products over paired rows
    centered = np.where(present, block - col_means, 0.0)
    counts_f = np.einsum("ri,rj->ij", weights, weights)
    centered_sums = np.einsum("ri,rj->ij", centered, weights)
    cross = np.einsum("ri,rj->ij", centered, centered)

    has_pairs = counts_f > 0
    shift = np.zeros_like(cross)
    np.divide(centered_sums, counts_f, out=shift, where=has_pairs)

    comoment = np.where(has_pairs, cross - counts_f * (shift * shift.T), 0.0)
    np.fill_diagonal(comoment, np.maximum(np.diag(comoment), 0.0))
    means = np.where(has_pairs, shift + col_means[:, None], np.nan)

    return BlockStatistic.from_moments(
        counts=counts_f.astype(np.int64), means=means, comoment=comoment
    )


@beartype
def online_multi_covar(block: np.ndarray) -> BlockStatistic:
    """Compute the covariance matrix of a block pair by pair with the online
    update used by `online_covar`.

    This is a slow reference implementation meant for validation and small
    inputs; `two_pass_multi_covar` should be preferred for real profiles.

    Parameters
    ----------
    block : np.ndarray
        (M, K) array of M observations over K features.

    Returns
    -------
    BlockStatistic
        Same statistics as `two_pass_multi_covar`, within floating-point
        tolerance.
    """
    block = _as_float_block(block)
    n_features = block.shape[1]

    counts = np.zeros((n_features, n_features), dtype=np.int64)
    means = np.full((n_features, n_features), np.nan, dtype=np.float64)
    comoment = np.zeros((n_features, n_features), dtype=np.float64)

    for i in range(n_features):
        for j in range(i, n_features):
            n, mean_i, mean_j, pair_comoment = _online_pair_moments(
                block[:, i], block[:, j]
            )
            counts[i, j] = counts[j, i] = n
            means[i, j] = mean_i
            means[j, i] = mean_j
            comoment[i, j] = comoment[j, i] = pair_comoment

    return BlockStatistic.from_moments(counts=counts, means=means, comoment=comoment)
