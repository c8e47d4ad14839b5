"""
Unit tests for exposure scoring bands, weighting and level classification
"""

import random

import pytest

from envcache.core.errors import ValidationError
from envcache.services import scoring


class TestAirQualityScore:
    @pytest.mark.parametrize(
        "aqi,expected",
        [
            (0, 0),
            (50, 0),
            (51, 2),
            (100, 100),
            (101, 102),
            (120, 140),
            (150, 200),
            (200, 300),
            (250, 400),
            (300, 500),
            (301, 500),
            (450, 500),
        ],
    )
    def test_bands(self, aqi, expected):
        assert scoring.air_quality_score(aqi) == expected

    def test_missing_is_zero(self):
        assert scoring.air_quality_score(None) == 0


class TestPollenScore:
    @pytest.mark.parametrize(
        "index,expected",
        [
            (0, 0),
            (2.4, 0),
            (4.8, 50),  # 49.92 rounds up
            (5, 52),
            (8, 83),
            (9.7, 100),
            (12.0, 130),
            (12.1, 130),
        ],
    )
    def test_bands(self, index, expected):
        assert scoring.pollen_score(index) == expected


class TestUvScore:
    @pytest.mark.parametrize(
        "index,expected",
        [(0, 0), (2, 0), (3, 33), (5, 100), (6, 150), (7, 200), (8, 233), (10, 300), (11, 300)],
    )
    def test_bands(self, index, expected):
        assert scoring.uv_score(index) == expected


class TestOverall:
    def test_mixed_reading(self):
        s = scoring.score(120, 5, None)
        assert s.to_dict() == {
            "air_quality_score": 140,
            "pollen_score": 52,
            "uv_score": 0,
            "overall_score": 72,
        }

    def test_all_missing(self):
        assert scoring.score(None, None, None).overall_score == 0

    def test_half_rounds_up(self):
        # 0.4*0 + 0.3*5 + 0.3*0 = 1.5
        assert scoring.overall_score(0, 5, 0) == 2

    def test_overall_is_not_capped(self):
        assert scoring.score(500, 20, 15).overall_score == 329  # 200 + 39 + 90

    def test_infinite_inputs_saturate(self):
        s = scoring.score(float("inf"), float("inf"), float("inf"))
        assert (s.air_quality_score, s.pollen_score, s.uv_score) == (500, 130, 300)
        assert s.overall_score == 329
        assert scoring.air_quality_level(float("inf")) == "hazardous"

    @pytest.mark.parametrize("value", [float("nan"), float("-inf")])
    def test_nan_and_negative_infinity_rejected(self, value):
        with pytest.raises(ValidationError):
            scoring.air_quality_score(value)
        with pytest.raises(ValidationError):
            scoring.uv_level(value)

    def test_weighted_sum_holds_for_random_inputs(self):
        rng = random.Random(20261018)
        for _ in range(1000):
            aqi = rng.choice([None, rng.randint(0, 500)])
            pollen = rng.choice([None, round(rng.uniform(0, 15), 1)])
            uv = rng.choice([None, round(rng.uniform(0, 12), 1)])
            s = scoring.score(aqi, pollen, uv)

            assert 0 <= s.air_quality_score <= 500
            assert 0 <= s.pollen_score <= 130
            assert 0 <= s.uv_score <= 300
            # round_half_up((4a + 3p + 3u) / 10) in integer arithmetic
            weighted = 4 * s.air_quality_score + 3 * s.pollen_score + 3 * s.uv_score
            assert s.overall_score == (weighted + 5) // 10


class TestLevels:
    @pytest.mark.parametrize(
        "aqi,level",
        [
            (50, "good"),
            (51, "moderate"),
            (150, "unhealthy_sensitive"),
            (151, "unhealthy"),
            (250, "very_unhealthy"),
            (301, "hazardous"),
        ],
    )
    def test_air_quality(self, aqi, level):
        assert scoring.air_quality_level(aqi) == level

    @pytest.mark.parametrize(
        "index,level", [(2.4, "low"), (4.8, "moderate"), (7.2, "high"), (8, "very_high")]
    )
    def test_pollen(self, index, level):
        assert scoring.pollen_level(index) == level

    @pytest.mark.parametrize(
        "index,level", [(2, "low"), (5, "moderate"), (7, "high"), (10, "very_high"), (11, "extreme")]
    )
    def test_uv(self, index, level):
        assert scoring.uv_level(index) == level

    def test_missing_value_has_no_level(self):
        assert scoring.air_quality_level(None) is None
        assert scoring.pollen_level(None) is None
        assert scoring.uv_level(None) is None
