"""
kNDVI Composite — Scene Sources
================================
Adapters that turn scene GeoTIFFs on disk into the in-memory
:class:`~kndvi_composite.engine.Observation` grids the engine consumes.

Scene files are stacked GeoTIFFs (at least NIR and Red) whose file name
carries the acquisition date as ``YYYY-MM-DD`` or ``YYYYMMDD``, e.g.
``LC08_20230614.tif`` or ``MOD13A1_2023-06-10.tif``.  Every scene used in one
window must share a pixel grid.

Usage::

    from pathlib import Path
    from kndvi_composite.sources import SceneCatalog, load_observation_set

    catalog = SceneCatalog(Path("scenes/"))
    obs = load_observation_set(catalog, window, profile)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import numpy.typing as npt
import rasterio
from rasterio.errors import RasterioError, RasterioIOError
from rasterio.features import geometry_mask
from rasterio.warp import transform_geom

from kndvi_composite.engine import Observation, ObservationSet, Region
from kndvi_composite.windows import SensorProfile, Window
from shared.python.exceptions import InputValidationError, RasterError
from shared.python.validators import Validators

logger = logging.getLogger("kndvi.kndvi_composite.sources")

SCENE_EXTENSIONS = (".tif", ".tiff")
REGION_EXTENSIONS = [".geojson", ".json"]

# GeoJSON coordinates are WGS84 unless stated otherwise
GEOJSON_CRS = "EPSG:4326"

_DATE_PATTERN = re.compile(r"(?<!\d)(\d{4})-?(\d{2})-?(\d{2})(?!\d)")


# ---------------------------------------------------------------------------
# Scene discovery
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scene:
    """One dated scene file."""

    path: Path
    acquired: date


def parse_acquisition_date(name: str) -> date | None:
    """Extract the first valid date embedded in a file name, if any."""
    for match in _DATE_PATTERN.finditer(name):
        year, month, day = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


class SceneCatalog:
    """Dated scene files found in one directory (non-recursive).

    Args:
        directory: Folder holding the scene GeoTIFFs.

    Raises:
        InputValidationError: If *directory* does not exist.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        Validators.assert_directory_exists(self.directory)
        self._scenes: list[Scene] = self._scan()

    def _scan(self) -> list[Scene]:
        scenes: list[Scene] = []
        for path in sorted(self.directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in SCENE_EXTENSIONS:
                continue
            acquired = parse_acquisition_date(path.stem)
            if acquired is None:
                logger.debug("Skipping %s: no acquisition date in file name.", path.name)
                continue
            scenes.append(Scene(path, acquired))
        scenes.sort(key=lambda s: (s.acquired, s.path.name))
        logger.debug("Found %d dated scene(s) in %s", len(scenes), self.directory)
        return scenes

    @property
    def scenes(self) -> list[Scene]:
        return list(self._scenes)

    def scenes_in(self, window: Window) -> list[Scene]:
        """Scenes acquired within ``[window.start, window.end)``."""
        return [s for s in self._scenes if window.contains(s.acquired)]

    def __len__(self) -> int:
        return len(self._scenes)


# ---------------------------------------------------------------------------
# Reading observations
# ---------------------------------------------------------------------------


def _band_index(descriptions: tuple[str | None, ...], name: str, fallback: int, count: int) -> int:
    """1-based index of the band described as *name*, else *fallback*."""
    for i, desc in enumerate(descriptions, start=1):
        if desc and desc.strip().lower() == name.lower():
            return i
    Validators.assert_band_index_valid(fallback, count)
    return fallback


def read_observation(path: Path, profile: SensorProfile, acquired: date | None = None) -> Observation:
    """Read NIR and Red from a scene file and scale them to reflectance.

    Bands are located by their description (e.g. ``SR_B5``); files without
    band descriptions are read as band 1 = NIR, band 2 = Red.  Pixels equal
    to the file's nodata value become NaN.

    Raises:
        RasterError: If the file cannot be opened or read.
        BandIndexError: If the scene has fewer than two bands and no
            matching descriptions.
    """
    path = Path(path)
    try:
        with rasterio.open(path) as src:
            nir_idx = _band_index(src.descriptions, profile.nir_band, 1, src.count)
            red_idx = _band_index(src.descriptions, profile.red_band, 2, src.count)
            nir_raw = src.read(nir_idx, masked=True)
            red_raw = src.read(red_idx, masked=True)
    except RasterioError as exc:
        raise RasterError(f"Could not read scene '{path}': {exc}") from exc

    return Observation(
        nir=_to_reflectance(nir_raw, profile),
        red=_to_reflectance(red_raw, profile),
        acquired=acquired,
    )


def _to_reflectance(band: np.ma.MaskedArray, profile: SensorProfile) -> npt.NDArray[np.float64]:
    scaled = profile.to_reflectance(np.ma.getdata(band))
    scaled[np.ma.getmaskarray(band)] = np.nan
    return scaled


def load_observation_set(
    catalog: SceneCatalog,
    window: Window,
    profile: SensorProfile,
) -> ObservationSet:
    """Read every scene of *window* into an :class:`ObservationSet`.

    An empty set is returned (not raised) when the window has no scenes;
    the engine decides how to treat it.
    """
    scenes = catalog.scenes_in(window)
    logger.debug(
        "%s: %d scene(s) between %s and %s (%s)",
        window.label, len(scenes), window.start, window.end, profile.name,
    )
    return ObservationSet.of(
        (read_observation(s.path, profile, s.acquired) for s in scenes),
        start=window.start,
        end=window.end,
    )


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------


def region_full_extent(reference_scene: Path, scale: float | None = None) -> Region:
    """Region covering the whole grid of *reference_scene*."""
    try:
        with rasterio.open(reference_scene) as src:
            return Region.full(
                (src.height, src.width),
                scale=scale or abs(src.transform.a),
                transform=src.transform,
                crs=src.crs,
            )
    except RasterioIOError as exc:
        raise RasterError(f"Could not open scene '{reference_scene}': {exc}") from exc


def load_geojson_geometries(source: Path | Mapping[str, Any]) -> list[dict[str, Any]]:
    """Collect the geometries of a GeoJSON file or mapping.

    Accepts a bare geometry, a Feature or a FeatureCollection.

    Raises:
        InputValidationError: If the file cannot be parsed or holds no
            geometry.
    """
    if isinstance(source, Mapping):
        data: Any = source
    else:
        path = Path(source)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, REGION_EXTENSIONS)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise InputValidationError(f"Failed to read region file '{path}': {exc}") from exc

    kind = data.get("type") if isinstance(data, Mapping) else None
    if kind == "FeatureCollection":
        features = data.get("features") or []
        if not isinstance(features, list):
            raise InputValidationError("Region GeoJSON 'features' must be a list.")
        geometries = [f.get("geometry") for f in features if isinstance(f, Mapping)]
    elif kind == "Feature":
        geometries = [data.get("geometry")]
    elif kind:
        geometries = [data]
    else:
        geometries = []

    geometries = [g for g in geometries if isinstance(g, Mapping) and g]
    if not geometries:
        raise InputValidationError("Region GeoJSON contains no geometry.")
    return geometries


def region_from_geojson(
    source: Path | Mapping[str, Any],
    reference_scene: Path,
    scale: float | None = None,
    *,
    source_crs: str = GEOJSON_CRS,
) -> Region:
    """Rasterise a GeoJSON study area onto the grid of *reference_scene*.

    Geometries are reprojected from *source_crs* to the scene CRS.  A pixel
    is inside the region when its centre falls inside a geometry.

    Raises:
        InputValidationError: If the GeoJSON is unreadable, empty or holds
            a malformed geometry.
        RasterError: If the reference scene cannot be opened.
    """
    geometries = load_geojson_geometries(source)
    try:
        with rasterio.open(reference_scene) as src:
            shape = (src.height, src.width)
            transform = src.transform
            crs = src.crs
    except RasterioIOError as exc:
        raise RasterError(f"Could not open scene '{reference_scene}': {exc}") from exc

    try:
        if crs is not None:
            geometries = [transform_geom(source_crs, crs, g) for g in geometries]
        inside = geometry_mask(geometries, out_shape=shape, transform=transform, invert=True)
    except (ValueError, TypeError, KeyError, RasterioError) as exc:
        raise InputValidationError(f"Invalid region geometry: {exc}") from exc

    region = Region.from_mask(inside, scale=scale or abs(transform.a), transform=transform, crs=crs)
    if region.pixel_count == 0:
        logger.warning("Region does not cover any pixel of %s", Path(reference_scene).name)
    return region
