"""
This module merges covariance statistics computed on separate blocks of rows
into a single covariance matrix, as if it had been computed over all rows at
once. It uses the pairwise update of Chan et al. for pooled variances,
generalized to covariances: off-diagonal cells use the product of the two
features' mean differences instead of a squared difference.

The merge is associative and commutative up to floating-point rounding, so
blocks can be folded in any order.
"""

import numpy as np
from beartype import beartype

from .covariance import BlockStatistic
from .exceptions import InvalidInputError


@beartype
def merge_block_statistics(
    stat_a: BlockStatistic, stat_b: BlockStatistic
) -> BlockStatistic:
    """Merge the statistics of two disjoint blocks of rows.

    For every feature pair (i, j) with ``n_a`` and ``n_b`` paired observations:

    - ``delta_i = mean_b[i, j] - mean_a[i, j]`` (and ``delta_j`` likewise)
    - ``mean = mean_a + delta * n_b / n``
    - ``M2 = M2_a + M2_b + delta_i * delta_j * n_a * n_b / n``

    Cells are merged independently: a pair without observations in one block
    takes the other block's values unchanged, so missing cells never spread to
    other feature pairs.

    Parameters
    ----------
    stat_a : BlockStatistic
        Statistics of the first block.
    stat_b : BlockStatistic
        Statistics of the second block, over the same features.

    Returns
    -------
    BlockStatistic
        Statistics of the union of both blocks.

    Raises
    ------
    InvalidInputError
        If both statistics do not cover the same number of features.
    """
    if stat_a.counts.shape != stat_b.counts.shape:
        raise InvalidInputError(
            "Cannot merge statistics over different feature sets: "
            f"{stat_a.counts.shape} vs {stat_b.counts.shape}"
        )

    n_a = stat_a.counts.astype(np.float64)
    n_b = stat_b.counts.astype(np.float64)
    n_total = n_a + n_b
    only_a = stat_b.counts == 0
    only_b = stat_a.counts == 0
    both = ~(only_a | only_b)

    # cells where either side is empty carry NaN means, they are replaced below
    with np.errstate(invalid="ignore", divide="ignore"):
        delta = stat_b.means - stat_a.means
        weight_b = n_b / n_total
        merged_means = stat_a.means + delta * weight_b
        correction = (delta * delta.T) * (n_a * n_b / n_total)
        merged_comoment = stat_a.comoment + stat_b.comoment + correction

    means = np.where(both, merged_means, np.where(only_b, stat_b.means, stat_a.means))
    comoment = np.where(
        both, merged_comoment, np.where(only_b, stat_b.comoment, stat_a.comoment)
    )

    return BlockStatistic.from_moments(
        counts=stat_a.counts + stat_b.counts, means=means, comoment=comoment
    )


@beartype
def combine_block_statistics(stats: list[BlockStatistic]) -> BlockStatistic:
    """Fold a list of block statistics into one, left to right.

    Parameters
    ----------
    stats : list[BlockStatistic]
        Statistics of disjoint blocks, usually in partition order.

    Returns
    -------
    BlockStatistic
        Statistics equivalent to a single computation over all blocks.

    Raises
    ------
    InvalidInputError
        If `stats` is empty or the blocks do not share the same features.
    """
    if len(stats) == 0:
        raise InvalidInputError("At least one block statistic is required.")

    combined = stats[0]
    for stat in stats[1:]:
        combined = merge_block_statistics(combined, stat)
    return combined


@beartype
def combine_cov_estimates(
    covs: np.ndarray, ns: np.ndarray | list[int], means: np.ndarray
) -> np.ndarray:
    """Combine per-block covariance matrices of complete (NaN-free) blocks.

    Parameters
    ----------
    covs : np.ndarray
        (B, K, K) stack of per-block covariance matrices.
    ns : np.ndarray | list[int]
        Number of rows in each of the B blocks.
    means : np.ndarray
        (B, K) per-block feature means.

    Returns
    -------
    np.ndarray
        (K, K) covariance matrix of all blocks pooled together.

    Raises
    ------
    InvalidInputError
        If the shapes of `covs`, `ns` and `means` are inconsistent, or a block
        size is smaller than 1.

    Notes
    -----
    - A block with a single row has an undefined (NaN) covariance; it only
      contributes its mean to the pooled estimate.
    """
    covs = np.asarray(covs, dtype=np.float64)
    ns = np.asarray(ns, dtype=np.int64)
    means = np.asarray(means, dtype=np.float64)

    if covs.ndim != 3 or covs.shape[1] != covs.shape[2]:
        raise InvalidInputError(
            f"'covs' must have shape (B, K, K), got {covs.shape}"
        )
    n_blocks, n_features = covs.shape[0], covs.shape[1]
    if ns.shape != (n_blocks,):
        raise InvalidInputError(
            f"'ns' must hold one size per block ({n_blocks}), got shape {ns.shape}"
        )
    if means.shape != (n_blocks, n_features):
        raise InvalidInputError(
            f"'means' must have shape ({n_blocks}, {n_features}), got {means.shape}"
        )
    if n_blocks == 0:
        raise InvalidInputError("At least one block is required.")
    if (ns < 1).any():
        raise InvalidInputError("Every block must contain at least one row.")

    stats = []
    for cov, n, mean in zip(covs, ns, means):
        counts = np.full((n_features, n_features), int(n), dtype=np.int64)
        comoment = cov * (n - 1) if n >= 2 else np.zeros_like(cov)
        pair_means = np.repeat(mean[:, None], n_features, axis=1)
        stats.append(
            BlockStatistic.from_moments(
                counts=counts, means=pair_means, comoment=comoment
            )
        )

    return combine_block_statistics(stats).covariance
