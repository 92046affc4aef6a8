import json
import pathlib
import pickle

import polars as pl
import yaml

from .data_utils import split_meta_and_features
from .params.covariance import CovarianceParams


def load_profiles(
    fpath: str | pathlib.Path,
    verbose: bool | None = False,
    features: list[str] | None = None,
) -> pl.DataFrame:
    """Load single-cell profiles from given file path.

    Loads single-cell profiles and returns them into a Polars DataFrame. The supported
    file formats are Parquet (.parquet, .pq, .arrow). If the file does not exist or
    the format is not supported, an error is raised.

    Parameters
    ----------
    fpath : str | pathlib.Path
        Path to the file containing single-cell profiles.
    verbose : bool, optional
        If True, prints information about the loaded profiles. Default is False.
    features : list[str] | None, optional
        If provided, only loads metadata columns and these specific feature columns.
        Default is None (loads all columns).

    Returns
    -------
    pl.DataFrame
        DataFrame containing the loaded single-cell profiles.

    Raises
    ------
    TypeError
        If `fpath` is not a string or pathlib.Path.
    FileNotFoundError
        If the file at `fpath` does not exist.
    ValueError
        If the file format is not supported. Supported formats are: .parquet, .pq, .arrow.
    """

    # type checking
    if not isinstance(fpath, (str, pathlib.Path)):
        raise TypeError(f"Expected str or pathlib.Path, got {type(fpath)}")
    if isinstance(fpath, str):
        fpath = pathlib.Path(fpath)
    if not fpath.is_file():
        raise FileNotFoundError(f"File not found: {fpath}")
    # check for supported file format
    if fpath.suffix.lower() not in [".parquet", ".pq", ".arrow"]:
        raise ValueError(
            f"Unsupported file format: {fpath.suffix}. Supported formats are: .parquet, .pq, .arrow"
        )

    # load profiles
    loaded_profiles = pl.read_parquet(fpath)

    # keep metadata and the requested features only
    if features is not None:
        meta_cols, _ = split_meta_and_features(loaded_profiles)
        loaded_profiles = loaded_profiles.select(
            [col for col in meta_cols if col not in features] + features
        )

    # if verbose is True, print information about the loaded profiles
    if verbose:
        print(f"Loading profiles from {fpath}...")
        print(
            f"Loaded profiles shape: rows: {loaded_profiles.shape[0]}, columns: {loaded_profiles.shape[1]}"
        )
        print(
            f"Estimated loaded dataframe size: {round(loaded_profiles.estimated_size('mb'), 2)} MB"
        )

    return loaded_profiles


def load_configs(fpath: str | pathlib.Path) -> dict:
    """Load a configuration file and return its contents as a dictionary.
    Parameters
    ----------
    fpath : str or pathlib.Path
        Path to the YAML, JSON, or pickle configuration file.
    Returns
    -------
    dict
        Dictionary containing the configuration loaded from the file.
    Raises
    ------
    TypeError
        If `fpath` is not a string or pathlib.Path.
    FileNotFoundError
        If the file at `fpath` does not exist.
    ValueError
        Not a valid config file or unsupported file format.
    """
    # type check
    if not isinstance(fpath, (str, pathlib.Path)):
        raise TypeError(f"Expected str or pathlib.Path, got {type(fpath)}")
    if isinstance(fpath, str):
        fpath = pathlib.Path(fpath)
    if not fpath.is_file():
        raise FileNotFoundError(f"File not found: {fpath}")

    # Load file based on extension
    if fpath.suffix.lower() in [".yaml", ".yml"]:
        yaml_content = fpath.read_text(encoding="utf-8")
        try:
            config = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML file {fpath}: {e}")
    elif fpath.suffix.lower() == ".json":
        json_content = fpath.read_text(encoding="utf-8")
        try:
            config = json.loads(json_content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing JSON file {fpath}: {e}")
    elif fpath.suffix.lower() in [".pkl", ".pickle"]:
        try:
            with open(fpath, "rb") as f:
                config = pickle.load(f)
        except (pickle.PickleError, EOFError) as e:
            raise ValueError(f"Error parsing pickle file {fpath}: {e}")
    else:
        raise ValueError(
            f"Unsupported file format: {fpath.suffix}. Expected .yaml, .yml, .json, .pkl, or .pickle"
        )

    if not isinstance(config, dict):
        raise ValueError(f"Config file {fpath} must contain a mapping at its top level.")
    return config


def load_covariance_params(
    fpath: str | pathlib.Path, section: str | None = "covariance"
) -> CovarianceParams:
    """Load covariance parameters from a configuration file.

    Parameters
    ----------
    fpath : str | pathlib.Path
        Path to a YAML, JSON, or pickle configuration file.
    section : str | None, optional
        Top-level key holding the covariance parameters. If None, the whole file
        is used. Default is "covariance".

    Returns
    -------
    CovarianceParams
        Validated covariance parameters.

    Raises
    ------
    KeyError
        If `section` is not present in the configuration.
    """
    config = load_configs(fpath)
    if section is not None:
        if section not in config:
            raise KeyError(f"Section '{section}' not found in config file {fpath}")
        config = config[section]
    return CovarianceParams.from_dict(config)


def write_matrix(matrix: pl.DataFrame, fpath: str | pathlib.Path) -> pathlib.Path:
    """Write a labelled covariance or correlation matrix to disk.

    Parameters
    ----------
    matrix : pl.DataFrame
        Matrix with a leading 'feature' column of row labels.
    fpath : str | pathlib.Path
        Output path. Parquet (.parquet, .pq) and CSV (.csv) are supported.

    Returns
    -------
    pathlib.Path
        The path where the matrix was written.

    Raises
    ------
    ValueError
        If the file format is not supported.
    FileNotFoundError
        If the output directory does not exist.
    """
    fpath = pathlib.Path(fpath)
    if not fpath.parent.exists():
        raise FileNotFoundError(f"Output directory {fpath.parent} does not exist.")

    if fpath.suffix.lower() in [".parquet", ".pq"]:
        matrix.write_parquet(fpath)
    elif fpath.suffix.lower() == ".csv":
        matrix.write_csv(fpath)
    else:
        raise ValueError(
            f"Unsupported file format: {fpath.suffix}. Supported formats are: .parquet, .pq, .csv"
        )
    return fpath
