"""
Split a feature matrix into row blocks, compute the covariance statistics of
every block in parallel and merge them into a single covariance matrix.

Blocks are independent: each task reads its own slice of the matrix and returns
its own `BlockStatistic`. joblib returns results in submission order, so the
statistics are always indexed by partition and the merged result does not
depend on which worker finished first.
"""

import warnings
from dataclasses import dataclass

import numpy as np
from beartype import beartype
from joblib import Parallel, delayed

from .combine import combine_block_statistics
from .covariance import BlockStatistic, online_multi_covar, two_pass_multi_covar
from .exceptions import InsufficientDataWarning, InvalidInputError, WorkerFailureError


_BLOCK_ROUTINES = {
    "two_pass": two_pass_multi_covar,
    "online": online_multi_covar,
}


@dataclass(frozen=True)
class Partition:
    """Contiguous range of rows ``[start, stop)`` of a feature matrix."""

    index: int
    start: int
    stop: int

    @property
    def rows(self) -> slice:
        return slice(self.start, self.stop)

    @property
    def size(self) -> int:
        return self.stop - self.start


@beartype
def plan_partitions(n_rows: int, splits: int) -> list[Partition]:
    """Split `n_rows` rows into `splits` balanced, contiguous partitions.

    When `n_rows` is not divisible by `splits`, the first ``n_rows % splits``
    partitions receive one extra row.

    Parameters
    ----------
    n_rows : int
        Number of rows (observations) to split.
    splits : int
        Number of partitions to create.

    Returns
    -------
    list[Partition]
        Partitions ordered by index, covering every row exactly once.

    Raises
    ------
    InvalidInputError
        If `splits` is smaller than 1 or larger than `n_rows`.
    """
    if splits < 1:
        raise InvalidInputError(f"'splits' must be at least 1, got {splits}.")
    if splits > n_rows:
        raise InvalidInputError(
            f"'splits' ({splits}) cannot exceed the number of rows ({n_rows})."
        )

    base_size, n_larger = divmod(n_rows, splits)
    partitions = []
    start = 0
    for index in range(splits):
        size = base_size + 1 if index < n_larger else base_size
        partitions.append(Partition(index=index, start=start, stop=start + size))
        start += size

    return partitions


def _check_cov_fun(cov_fun: str) -> None:
    if cov_fun not in _BLOCK_ROUTINES:
        raise InvalidInputError(
            f"Unknown cov_fun '{cov_fun}'. Valid options are: {sorted(_BLOCK_ROUTINES)}"
        )


def _check_cores(cores: int) -> None:
    # -1 follows joblib's n_jobs convention and means all available cores
    if cores < 1 and cores != -1:
        raise InvalidInputError(
            f"'cores' must be a positive integer or -1 (all cores), got {cores}."
        )


def _as_feature_matrix(data: np.ndarray) -> np.ndarray:
    data = np.asarray(data, dtype=np.float64)
    if data.ndim != 2:
        raise InvalidInputError(
            f"Feature matrix must be 2-D (rows x features), got {data.ndim} dimension(s)."
        )
    if data.shape[1] == 0:
        raise InvalidInputError("Feature matrix must contain at least one column.")
    if np.isinf(data).any():
        raise InvalidInputError("Feature matrix contains infinite values.")
    return data


def _compute_block(block: np.ndarray, cov_fun: str) -> BlockStatistic:
    return _BLOCK_ROUTINES[cov_fun](block)


@beartype
def aggregate_block_statistics(
    data: np.ndarray,
    splits: int = 1,
    cores: int = 1,
    cov_fun: str = "two_pass",
) -> list[BlockStatistic]:
    """Compute the covariance statistics of every row block of `data`.

    Parameters
    ----------
    data : np.ndarray
        (N, K) feature matrix. It is only read, never modified.
    splits : int, default 1
        Number of row blocks.
    cores : int, default 1
        Number of parallel jobs. With 1, blocks are computed sequentially in
        the current process. Use -1 for all available cores.
    cov_fun : {"two_pass", "online"}, default "two_pass"
        Per-block covariance routine.

    Returns
    -------
    list[BlockStatistic]
        One statistic per partition, in partition order.

    Raises
    ------
    InvalidInputError
        If `data` is not a valid feature matrix, or if `splits`, `cores` or
        `cov_fun` are invalid.
    WorkerFailureError
        If computing any block fails. Statistics of the other blocks are
        discarded.
    """
    data = _as_feature_matrix(data)
    _check_cov_fun(cov_fun)
    _check_cores(cores)
    partitions = plan_partitions(data.shape[0], splits)

    # large blocks are memory-mapped read-only by joblib before being sent
    # to the loky workers
    tasks = [
        delayed(_compute_block)(data[partition.rows], cov_fun)
        for partition in partitions
    ]

    try:
        results = Parallel(n_jobs=cores, backend="loky")(tasks)
    except Exception as e:
        raise WorkerFailureError(
            f"Covariance computation failed for one of {len(partitions)} block(s): {e}"
        ) from e

    return list(results)


@beartype
def parallel_covariance(
    data: np.ndarray,
    splits: int = 1,
    cores: int = 1,
    cov_fun: str = "two_pass",
    verbose: bool = False,
) -> np.ndarray:
    """Compute the covariance matrix of a feature matrix over parallel row
    blocks.

    The matrix is split into `splits` row blocks, the statistics of each block
    are computed by up to `cores` workers, and the per-block estimates are
    merged into one covariance matrix. The result equals the covariance
    computed over all rows at once, within floating-point tolerance, and is
    bit-identical for any number of cores.

    Parameters
    ----------
    data : np.ndarray
        (N, K) feature matrix, rows are observations and columns are features.
        NaN marks a missing value and is excluded pairwise.
    splits : int, default 1
        Number of row blocks, between 1 and N.
    cores : int, default 1
        Number of parallel jobs. Use -1 for all available cores.
    cov_fun : {"two_pass", "online"}, default "two_pass"
        Per-block covariance routine.
    verbose : bool, default False
        If True, prints the size of the computation.

    Returns
    -------
    np.ndarray
        (K, K) symmetric covariance matrix. Cells of feature pairs with fewer
        than two paired observations are NaN.

    Raises
    ------
    InvalidInputError
        If `data` is not a 2-D matrix with at least one column, contains
        infinite values, or if `splits`, `cores` or `cov_fun` are invalid.
    WorkerFailureError
        If computing any block fails.
    """
    data = _as_feature_matrix(data)

    if verbose:
        print(
            f"Computing covariance of {data.shape[1]} feature(s) over {data.shape[0]} "
            f"row(s) in {splits} block(s) with {cores} job(s)..."
        )

    block_stats = aggregate_block_statistics(
        data, splits=splits, cores=cores, cov_fun=cov_fun
    )
    covariance = combine_block_statistics(block_stats).covariance

    n_missing = int(np.isnan(covariance).sum())
    if n_missing > 0:
        warnings.warn(
            f"{n_missing} covariance cell(s) have fewer than 2 paired observations "
            "and were set to NaN.",
            InsufficientDataWarning,
            stacklevel=2,
        )

    return covariance
