"""
Mergeable, parallel covariance estimation for image-based morphology profiles.
"""

from .combine import (
    combine_block_statistics,
    combine_cov_estimates,
    merge_block_statistics,
)
from .covariance import (
    BlockStatistic,
    online_covar,
    online_multi_covar,
    two_pass_multi_covar,
)
from .exceptions import InsufficientDataWarning, InvalidInputError, WorkerFailureError
from .parallel import (
    Partition,
    aggregate_block_statistics,
    parallel_covariance,
    plan_partitions,
)

__all__ = [
    "BlockStatistic",
    "InsufficientDataWarning",
    "InvalidInputError",
    "Partition",
    "WorkerFailureError",
    "aggregate_block_statistics",
    "combine_block_statistics",
    "combine_cov_estimates",
    "merge_block_statistics",
    "online_covar",
    "online_multi_covar",
    "parallel_covariance",
    "plan_partitions",
    "two_pass_multi_covar",
]
