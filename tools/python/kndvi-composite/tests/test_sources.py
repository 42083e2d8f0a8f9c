"""
Tests — Scene Sources
======================
Scene discovery, band reading/scaling and study-area rasterisation, all
against synthetic GeoTIFFs from ``conftest.make_scene``.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_bounds

from kndvi_composite.sources import (
    SceneCatalog,
    load_geojson_geometries,
    load_observation_set,
    parse_acquisition_date,
    read_observation,
    region_from_geojson,
    region_full_extent,
)
from kndvi_composite.windows import LANDSAT8_OLI, MODIS_MOD13A1, annual_window, seasonal_window
from shared.python.exceptions import BandIndexError, InputValidationError, RasterError

LEFT_HALF = {
    "type": "Polygon",
    "coordinates": [[[0.0, 0.0], [0.5, 0.0], [0.5, 1.0], [0.0, 1.0], [0.0, 0.0]]],
}


class TestAcquisitionDate:
    """Dates embedded in scene file names."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("LC08_20230614", date(2023, 6, 14)),
            ("MOD13A1_2023-06-10", date(2023, 6, 10)),
            ("scene_2001-12-31_v2", date(2001, 12, 31)),
        ],
    )
    def test_parse(self, name: str, expected: date) -> None:
        assert parse_acquisition_date(name) == expected

    def test_invalid_calendar_date_ignored(self) -> None:
        assert parse_acquisition_date("tile_20231345") is None

    def test_no_date(self) -> None:
        assert parse_acquisition_date("study_area") is None


class TestSceneCatalog:
    """Directory scanning and window filtering."""

    def test_scenes_sorted_by_date(self, scene_dir: Path, make_scene) -> None:
        make_scene("b_20230701.tif", 4000, 3000)
        make_scene("a_20230301.tif", 5000, 3000)
        catalog = SceneCatalog(scene_dir)
        assert [s.acquired for s in catalog.scenes] == [date(2023, 3, 1), date(2023, 7, 1)]

    def test_undated_and_non_tiff_files_skipped(self, scene_dir: Path, make_scene) -> None:
        make_scene("20230301.tif", 5000, 3000)
        make_scene("reference.tif", 5000, 3000)
        (scene_dir / "notes_20230301.txt").write_text("not a raster")
        assert len(SceneCatalog(scene_dir)) == 1

    def test_scenes_in_window(self, scene_dir: Path, make_scene) -> None:
        make_scene("s_20230301.tif", 5000, 3000)
        make_scene("s_20230701.tif", 4000, 3000)
        make_scene("s_20230831.tif", 4000, 3000)
        catalog = SceneCatalog(scene_dir)

        summer = catalog.scenes_in(seasonal_window(2023, "Summer"))
        assert [s.acquired for s in summer] == [date(2023, 7, 1)]
        assert len(catalog.scenes_in(annual_window(2023))) == 3
        assert catalog.scenes_in(annual_window(2022)) == []

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError, match="not found"):
            SceneCatalog(tmp_path / "nope")


class TestReadObservation:
    """Band lookup, reflectance scaling and nodata handling."""

    def test_positional_bands_scaled(self, make_scene) -> None:
        path = make_scene("m_20230301.tif", 5000, 3000)
        obs = read_observation(path, MODIS_MOD13A1, date(2023, 3, 1))
        np.testing.assert_allclose(obs.nir, 0.5)
        np.testing.assert_allclose(obs.red, 0.3)
        assert obs.acquired == date(2023, 3, 1)
        assert obs.shape == (4, 4)

    def test_bands_found_by_description(self, make_scene) -> None:
        """Red stored first, NIR second: descriptions win over position."""
        path = make_scene(
            "l_20230301.tif", 10000, 20000,
            descriptions=["SR_B4", "SR_B5"], dtype="uint16",
        )
        obs = read_observation(path, LANDSAT8_OLI)
        np.testing.assert_allclose(obs.nir, 20000 * 0.0000275 - 0.2)
        np.testing.assert_allclose(obs.red, 10000 * 0.0000275 - 0.2)

    def test_nodata_becomes_nan(self, make_scene) -> None:
        nir = np.full((4, 4), 5000, dtype="int16")
        nir[0, 0] = -3000
        path = make_scene("m_20230301.tif", nir, 3000, nodata=-3000)
        obs = read_observation(path, MODIS_MOD13A1)
        assert np.isnan(obs.nir[0, 0])
        assert np.count_nonzero(np.isnan(obs.nir)) == 1

    def test_single_band_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "single_20230301.tif"
        with rasterio.open(
            path, "w", driver="GTiff", dtype="int16", count=1, height=2, width=2,
            crs="EPSG:4326", transform=from_bounds(0, 0, 1, 1, 2, 2),
        ) as dst:
            dst.write(np.ones((2, 2), dtype="int16"), 1)

        with pytest.raises(BandIndexError):
            read_observation(path, MODIS_MOD13A1)

    def test_unreadable_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken_20230301.tif"
        path.write_text("not a tiff")
        with pytest.raises(RasterError):
            read_observation(path, MODIS_MOD13A1)

    def test_load_observation_set(self, scene_dir: Path, make_scene) -> None:
        make_scene("s_20230301.tif", 5000, 3000)
        make_scene("s_20230701.tif", 4000, 3000)
        window = annual_window(2023)
        obs = load_observation_set(SceneCatalog(scene_dir), window, MODIS_MOD13A1)
        assert len(obs) == 2
        assert (obs.start, obs.end) == (window.start, window.end)

    def test_load_empty_window(self, scene_dir: Path, make_scene) -> None:
        make_scene("s_20230301.tif", 5000, 3000)
        obs = load_observation_set(SceneCatalog(scene_dir), annual_window(2010), MODIS_MOD13A1)
        assert len(obs) == 0


class TestRegions:
    """Study-area masks on the scene grid."""

    def test_full_extent(self, make_scene) -> None:
        path = make_scene("s_20230301.tif", 5000, 3000)
        region = region_full_extent(path)
        assert region.shape == (4, 4)
        assert region.pixel_count == 16
        assert region.scale == pytest.approx(0.25)

    def test_geojson_geometry_left_half(self, make_scene) -> None:
        path = make_scene("s_20230301.tif", 5000, 3000)
        region = region_from_geojson(LEFT_HALF, path)
        assert region.pixel_count == 8
        assert region.inside[:, :2].all()
        assert not region.inside[:, 2:].any()

    def test_geojson_file_feature_collection(self, tmp_path: Path, make_scene) -> None:
        path = make_scene("s_20230301.tif", 5000, 3000)
        geojson = tmp_path / "study_area.geojson"
        geojson.write_text(json.dumps({
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "properties": {}, "geometry": LEFT_HALF}],
        }))
        region = region_from_geojson(geojson, path, scale=500)
        assert region.pixel_count == 8
        assert region.scale == 500

    def test_geojson_reprojected_to_scene_crs(self, make_scene) -> None:
        """A WGS84 polygon lands on a UTM scene grid."""
        path = make_scene(
            "s_20230301.tif", 5000, 3000,
            shape=(10, 10), crs="EPSG:32642",
            bounds=(500000.0, 3500000.0, 505000.0, 3505000.0),
        )
        whole_area = {
            "type": "Polygon",
            "coordinates": [[[68.0, 31.0], [70.0, 31.0], [70.0, 32.0], [68.0, 32.0], [68.0, 31.0]]],
        }
        region = region_from_geojson(whole_area, path)
        assert region.pixel_count == 100

    def test_empty_feature_collection_raises(self) -> None:
        with pytest.raises(InputValidationError, match="no geometry"):
            load_geojson_geometries({"type": "FeatureCollection", "features": []})

    def test_wrong_extension_raises(self, tmp_path: Path) -> None:
        bad = tmp_path / "area.shp"
        bad.write_text("{}")
        with pytest.raises(InputValidationError, match="extension"):
            load_geojson_geometries(bad)

    def test_malformed_polygon_raises(self, make_scene) -> None:
        path = make_scene("MOD_2023-03-01.tif", 5000, 3000)
        broken = {"type": "Polygon", "coordinates": [[[0, 0], [1]]]}
        with pytest.raises(InputValidationError, match="Invalid region geometry"):
            region_from_geojson(broken, path)

    def test_non_list_features_raises(self) -> None:
        with pytest.raises(InputValidationError, match="features"):
            load_geojson_geometries({"type": "FeatureCollection", "features": {"a": 1}})
