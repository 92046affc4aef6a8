"""
Utility functions for validating covariance configuration dictionaries.
"""

from typing import Any


def _get_valid_covariance_params() -> set[str]:
    """Get the set of valid parameter names for the covariance configuration.

    Returns
    -------
    set[str]
        Set of valid parameter names that can be used in a covariance config.
    """
    return {"splits", "cores", "cov_fun"}


def _get_valid_cov_funs() -> set[str]:
    """Get the set of valid per-block covariance routines.

    Returns
    -------
    set[str]
        Set of valid routine names ('two_pass', 'online').
    """
    return {"two_pass", "online"}


def _validate_covariance_params(config: dict[str, Any]) -> None:
    """Validate a covariance configuration dictionary.

    This function checks that the provided config only contains known
    parameter names and that every value has the expected type and range.

    Parameters
    ----------
    config : dict[str, Any]
        Dictionary of covariance parameters, e.g.
        ``{"splits": 8, "cores": 4, "cov_fun": "two_pass"}``.

    Raises
    ------
    ValueError
        If config contains invalid parameter names or out-of-range values.
    TypeError
        If config is not a dictionary or a value has the wrong type.
    """
    if not isinstance(config, dict):
        raise TypeError(f"config must be a dictionary, got {type(config).__name__}")

    valid_params = _get_valid_covariance_params()

    for param_name, value in config.items():
        # 1. Check if parameter name is valid
        if param_name not in valid_params:
            raise ValueError(
                f"Invalid parameter name: '{param_name}'. "
                f"Valid parameters are: {sorted(valid_params)}"
            )

        # 2. Validate integer parameters (bool is a subclass of int, reject it)
        if param_name in ["splits", "cores"]:
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(
                    f"'{param_name}' must be an integer, got {type(value).__name__}"
                )
            if param_name == "splits" and value < 1:
                raise ValueError(f"'splits' must be at least 1, got {value}")
            if param_name == "cores" and value < 1 and value != -1:
                raise ValueError(
                    f"'cores' must be a positive integer or -1, got {value}"
                )

        # 3. Validate the covariance routine
        elif param_name == "cov_fun":
            if not isinstance(value, str):
                raise TypeError(
                    f"'cov_fun' must be a string, got {type(value).__name__}"
                )
            if value not in _get_valid_cov_funs():
                raise ValueError(
                    f"Invalid cov_fun '{value}'. "
                    f"Valid options are: {sorted(_get_valid_cov_funs())}"
                )
