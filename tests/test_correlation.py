"""
Tests for cytogallery.correlation module
"""

import numpy as np
import polars as pl
import pytest

from cytogallery.correlation import (
    covariance_to_correlation,
    matrix_to_frame,
    profile_correlation,
    profile_covariance,
    profile_covariance_from_params,
)
from cytogallery.exceptions import InvalidInputError
from utils.params.covariance import CovarianceMethod, CovarianceParams


@pytest.fixture
def morph_features():
    """CellProfiler-style morphology feature names"""
    return [
        "Cells_AreaShape_Area",
        "Nuclei_Intensity_MeanIntensity_DNA",
        "Cytoplasm_Texture_Contrast_RNA",
    ]


@pytest.fixture
def sc_profiles(morph_features):
    """Create single-cell profiles with metadata and morphology features"""
    rng = np.random.default_rng(5)
    n_cells = 30
    area = rng.normal(500.0, 50.0, n_cells)
    return pl.DataFrame(
        {
            "Metadata_Plate": ["Plate1"] * n_cells,
            "Metadata_Well": [f"A{i % 6:02d}" for i in range(n_cells)],
            morph_features[0]: area,
            morph_features[1]: 0.01 * area + rng.normal(0.0, 0.5, n_cells),
            morph_features[2]: rng.normal(2.0, 0.3, n_cells),
        }
    )


class TestCovarianceToCorrelation:
    """Test suite for covariance_to_correlation function"""

    def test_known_matrix(self):
        """Test normalization of a known covariance matrix"""
        covariance = np.array([[4.0, 2.0], [2.0, 9.0]])

        result = covariance_to_correlation(covariance)

        np.testing.assert_allclose(result, [[1.0, 1 / 3], [1 / 3, 1.0]])

    def test_zero_variance_feature_is_missing(self):
        """Test that a constant feature gets NaN correlations"""
        covariance = np.array([[4.0, 0.0], [0.0, 0.0]])

        result = covariance_to_correlation(covariance)

        assert result[0, 0] == 1.0
        assert np.isnan(result[1, 1])
        assert np.isnan(result[0, 1])

    def test_missing_cells_stay_missing(self):
        """Test that NaN covariance cells remain NaN"""
        covariance = np.array([[1.0, np.nan], [np.nan, 1.0]])

        result = covariance_to_correlation(covariance)

        np.testing.assert_array_equal(np.diag(result), [1.0, 1.0])
        assert np.isnan(result[0, 1])

    def test_raises_on_non_square_matrix(self):
        """Test that a non-square matrix raises InvalidInputError"""
        with pytest.raises(InvalidInputError, match="square"):
            covariance_to_correlation(np.ones((2, 3)))


class TestMatrixToFrame:
    """Test suite for matrix_to_frame function"""

    def test_labels_rows_and_columns(self):
        """Test that the label column comes first, followed by the matrix"""
        matrix = np.array([[1.0, 0.5], [0.5, 1.0]])

        result = matrix_to_frame(matrix, ["Cells_A", "Cells_B"])

        assert result.columns == ["feature", "Cells_A", "Cells_B"]
        assert result["feature"].to_list() == ["Cells_A", "Cells_B"]
        np.testing.assert_array_equal(result.select(["Cells_A", "Cells_B"]).to_numpy(), matrix)

    def test_raises_on_shape_mismatch(self):
        """Test that a matrix not matching the features raises InvalidInputError"""
        with pytest.raises(InvalidInputError, match="Expected a \\(3, 3\\) matrix"):
            matrix_to_frame(np.eye(2), ["Cells_A", "Cells_B", "Cells_C"])

    def test_raises_on_reserved_feature_name(self):
        """Test that a feature named 'feature' raises InvalidInputError"""
        with pytest.raises(InvalidInputError, match="reserved"):
            matrix_to_frame(np.eye(2), ["feature", "Cells_B"])


class TestProfileCovariance:
    """Test suite for profile_covariance function"""

    def test_labels_follow_features(self, sc_profiles, morph_features):
        """Test that rows and columns are labelled by feature name"""
        result = profile_covariance(sc_profiles, features=morph_features)

        assert result.columns == ["feature"] + morph_features
        assert result["feature"].to_list() == morph_features

    def test_values_match_numpy(self, sc_profiles, morph_features):
        """Test that the covariance values match np.cov"""
        expected = np.cov(sc_profiles.select(morph_features).to_numpy(), rowvar=False)

        result = profile_covariance(sc_profiles, features=morph_features, splits=4)

        np.testing.assert_allclose(
            result.select(morph_features).to_numpy(), expected, rtol=1e-8
        )

    def test_infers_features_when_not_given(self, sc_profiles, morph_features):
        """Test that CellProfiler features are inferred with pycytominer"""
        result = profile_covariance(sc_profiles)

        assert result["feature"].to_list() == morph_features

    def test_accepts_series_of_features(self, sc_profiles, morph_features):
        """Test that features can be given as a polars Series"""
        result = profile_covariance(sc_profiles, features=pl.Series(morph_features[:2]))

        assert result.columns == ["feature"] + morph_features[:2]

    def test_null_values_are_excluded_pairwise(self, sc_profiles, morph_features):
        """Test that nulls only affect cells of their own feature"""
        with_nulls = sc_profiles.with_columns(
            pl.when(pl.int_range(pl.len()) < 5)
            .then(None)
            .otherwise(pl.col(morph_features[2]))
            .alias(morph_features[2])
        )

        clean = profile_covariance(sc_profiles, features=morph_features)
        result = profile_covariance(with_nulls, features=morph_features, splits=3)

        np.testing.assert_allclose(
            result.select(morph_features[:2]).to_numpy()[:2],
            clean.select(morph_features[:2]).to_numpy()[:2],
            rtol=1e-10,
        )

    def test_loads_profiles_from_path(self, sc_profiles, morph_features, tmp_path):
        """Test that a parquet path is loaded before computing"""
        profiles_path = tmp_path / "sc_profiles.parquet"
        sc_profiles.write_parquet(profiles_path)

        result = profile_covariance(profiles_path, features=morph_features)

        assert result.shape == (3, 4)

    def test_raises_on_missing_feature(self, sc_profiles):
        """Test that an unknown feature raises InvalidInputError"""
        with pytest.raises(InvalidInputError, match="not found"):
            profile_covariance(sc_profiles, features=["Cells_Unknown_Feature"])

    def test_raises_on_non_numeric_feature(self, sc_profiles):
        """Test that a metadata column cannot be used as a feature"""
        with pytest.raises(InvalidInputError, match="numeric"):
            profile_covariance(sc_profiles, features=["Metadata_Well"])

    def test_raises_on_feature_named_like_label_column(self):
        """Test that a feature named 'feature' raises InvalidInputError"""
        profiles = pl.DataFrame({"feature": [1.0, 2.0, 3.0], "x": [1.0, 5.0, 2.0]})

        with pytest.raises(InvalidInputError, match="reserved"):
            profile_covariance(profiles, features=["feature", "x"])

    def test_renamed_label_feature_succeeds(self):
        """Test that renaming the 'feature' column allows the computation"""
        profiles = pl.DataFrame(
            {"feature": [1.0, 2.0, 3.0], "x": [1.0, 5.0, 2.0]}
        ).rename({"feature": "Cells_Feature"})

        result = profile_covariance(profiles, features=["Cells_Feature", "x"])

        assert result.columns == ["feature", "Cells_Feature", "x"]


class TestProfileCorrelation:
    """Test suite for profile_correlation function"""

    def test_perfectly_correlated_features(self):
        """Test that B = 2 * A + constant has a correlation of 1"""
        feature_a = np.arange(1.0, 11.0)
        profiles = pl.DataFrame(
            {
                "Cells_Feature_A": feature_a,
                "Cells_Feature_B": 2 * feature_a + 7,
            }
        )

        result = profile_correlation(profiles, splits=2)

        np.testing.assert_allclose(
            result.select(["Cells_Feature_A", "Cells_Feature_B"]).to_numpy(),
            np.ones((2, 2)),
        )

    def test_matches_numpy_corrcoef(self, sc_profiles, morph_features):
        """Test that correlations match np.corrcoef"""
        expected = np.corrcoef(sc_profiles.select(morph_features).to_numpy(), rowvar=False)

        result = profile_correlation(sc_profiles, features=morph_features, splits=3, cores=2)

        np.testing.assert_allclose(
            result.select(morph_features).to_numpy(), expected, rtol=1e-8
        )


class TestProfileCovarianceFromParams:
    """Test suite for profile_covariance_from_params function"""

    def test_uses_params(self, sc_profiles, morph_features):
        """Test that parameters are forwarded to the computation"""
        params = CovarianceParams(splits=3, cores=1, cov_fun=CovarianceMethod.ONLINE)

        result = profile_covariance_from_params(
            sc_profiles, params=params, features=morph_features
        )
        expected = profile_covariance(sc_profiles, features=morph_features)

        np.testing.assert_allclose(
            result.select(morph_features).to_numpy(),
            expected.select(morph_features).to_numpy(),
            rtol=1e-8,
        )
