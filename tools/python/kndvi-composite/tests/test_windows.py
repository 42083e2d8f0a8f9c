"""
Tests — Time Windows and Sensor Profiles
=========================================
Unit tests for :mod:`kndvi_composite.windows`.
"""

from __future__ import annotations

from datetime import date

import numpy as np
import pytest

from kndvi_composite.windows import (
    LANDSAT5_TM,
    LANDSAT8_OLI,
    MODIS_MOD13A1,
    Season,
    annual_window,
    enumerate_windows,
    seasonal_window,
    select_sensor,
)
from shared.python.exceptions import InputValidationError, UnknownSeasonError


class TestSeason:
    """Season label parsing."""

    @pytest.mark.parametrize("label", ["Summer", "summer", " SUMMER "])
    def test_parse_case_insensitive(self, label: str) -> None:
        assert Season.parse(label) is Season.SUMMER

    def test_parse_passes_enum_through(self) -> None:
        assert Season.parse(Season.AUTUMN) is Season.AUTUMN

    def test_unknown_season_raises(self) -> None:
        with pytest.raises(UnknownSeasonError, match="Winter") as excinfo:
            Season.parse("Winter")
        assert excinfo.value.valid == ["Summer", "Spring", "Autumn"]

    def test_unknown_season_is_input_validation_error(self) -> None:
        with pytest.raises(InputValidationError):
            Season.parse("Monsoon")


class TestWindows:
    """Window bounds and enumeration."""

    def test_annual_window_bounds(self) -> None:
        window = annual_window(2023)
        assert (window.start, window.end) == (date(2023, 1, 1), date(2023, 12, 31))
        assert window.label == "2023"
        assert window.season_name is None

    @pytest.mark.parametrize(
        ("season", "start", "end"),
        [
            ("Summer", date(2010, 6, 1), date(2010, 8, 31)),
            ("Spring", date(2010, 3, 1), date(2010, 5, 31)),
            ("Autumn", date(2010, 9, 1), date(2010, 11, 30)),
        ],
    )
    def test_seasonal_window_bounds(self, season: str, start: date, end: date) -> None:
        window = seasonal_window(2010, season)
        assert (window.start, window.end) == (start, end)
        assert window.label == f"{season}_2010"

    def test_window_is_half_open(self) -> None:
        window = seasonal_window(2020, "Summer")
        assert window.contains(date(2020, 6, 1))
        assert window.contains(date(2020, 8, 30))
        assert not window.contains(date(2020, 8, 31))
        assert not window.contains(date(2020, 5, 31))

    def test_default_annual_range(self) -> None:
        windows = enumerate_windows()
        assert len(windows) == 24
        assert windows[0].year == 2000
        assert windows[-1].year == 2023
        assert all(w.season is None for w in windows)

    def test_seasonal_enumeration_order(self) -> None:
        windows = enumerate_windows(2022, 2023, ["Summer", "Spring", "Autumn"])
        assert [w.label for w in windows] == [
            "Summer_2022", "Spring_2022", "Autumn_2022",
            "Summer_2023", "Spring_2023", "Autumn_2023",
        ]

    def test_unknown_season_rejected_before_enumeration(self) -> None:
        with pytest.raises(UnknownSeasonError):
            enumerate_windows(2000, 2023, ["Summer", "Winter"])

    def test_empty_year_range_raises(self) -> None:
        with pytest.raises(InputValidationError, match="year range"):
            enumerate_windows(2024, 2023)


class TestSensorSelection:
    """Sensor choice per product/year and reflectance scaling."""

    def test_modis_any_year(self) -> None:
        assert select_sensor("modis", 2001) is MODIS_MOD13A1
        assert select_sensor("MODIS", 2023) is MODIS_MOD13A1

    def test_landsat_switches_in_2013(self) -> None:
        assert select_sensor("landsat", 2012) is LANDSAT5_TM
        assert select_sensor("landsat", 2013) is LANDSAT8_OLI

    def test_unknown_product_raises(self) -> None:
        with pytest.raises(InputValidationError, match="sentinel"):
            select_sensor("sentinel", 2020)

    def test_modis_scaling(self) -> None:
        result = MODIS_MOD13A1.to_reflectance(np.array([[5000, 0]], dtype=np.int16))
        np.testing.assert_allclose(result, [[0.5, 0.0]])

    def test_landsat_collection2_scaling(self) -> None:
        """reflectance = DN * 0.0000275 - 0.2."""
        result = LANDSAT8_OLI.to_reflectance(np.array([[10000, 7273]], dtype=np.uint16))
        np.testing.assert_allclose(result, [[0.075, 7273 * 0.0000275 - 0.2]])
        assert result.dtype == np.float64

    def test_band_names(self) -> None:
        assert (LANDSAT8_OLI.nir_band, LANDSAT8_OLI.red_band) == ("SR_B5", "SR_B4")
        assert (LANDSAT5_TM.nir_band, LANDSAT5_TM.red_band) == ("SR_B4", "SR_B3")
        assert (MODIS_MOD13A1.nir_band, MODIS_MOD13A1.red_band) == ("sur_refl_b02", "sur_refl_b01")
