"""
This module defines the parameters used to configure the parallel covariance
computation. It includes an enum for the per-block covariance routines and a
dataclass to encapsulate the covariance parameters.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..validator import _validate_covariance_params


class CovarianceMethod(Enum):
    """Supported per-block covariance routines."""

    TWO_PASS: str = "two_pass"
    ONLINE: str = "online"


@dataclass
class CovarianceParams:
    """
    Parameters for the parallel covariance computation.

    Parameters
    ----------
    splits : int, default=1
        Number of row blocks the feature matrix is split into.
    cores : int, default=1
        Number of parallel jobs used to compute the blocks. -1 uses all
        available cores.
    cov_fun : CovarianceMethod, default=CovarianceMethod.TWO_PASS
        Covariance routine applied to every block.
    """

    splits: int = 1
    cores: int = 1
    cov_fun: CovarianceMethod = CovarianceMethod.TWO_PASS

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "CovarianceParams":
        """Create parameters from a configuration dictionary, such as the
        output of `utils.io_utils.load_configs`."""
        _validate_covariance_params(config)
        params = dict(config)
        if "cov_fun" in params:
            params["cov_fun"] = CovarianceMethod(params["cov_fun"])
        return cls(**params)
