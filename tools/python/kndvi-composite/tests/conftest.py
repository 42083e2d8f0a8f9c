"""
Shared fixtures — synthetic scene GeoTIFFs
===========================================
All raster I/O uses small temporary GeoTIFFs written with rasterio, so no
real satellite imagery is required.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import numpy as np
import numpy.typing as npt
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_bounds

SceneWriter = Callable[..., Path]


def write_scene(
    directory: Path,
    name: str,
    nir: npt.ArrayLike,
    red: npt.ArrayLike,
    *,
    shape: tuple[int, int] = (4, 4),
    descriptions: Sequence[str] | None = None,
    nodata: float | None = None,
    dtype: str = "int16",
    crs: str = "EPSG:4326",
    bounds: tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0),
) -> Path:
    """Write a 2-band (NIR, Red) scene GeoTIFF filled with raw digital numbers.

    Args:
        directory: Target directory.
        name: File name including extension (e.g. ``MOD_2023-06-10.tif``).
        nir: Scalar or 2-D array of raw NIR values.
        red: Scalar or 2-D array of raw Red values.
        descriptions: Optional band descriptions in band order.
        nodata: Optional nodata value recorded in the file.
    """
    nir_arr = np.full(shape, nir, dtype=dtype) if np.isscalar(nir) else np.asarray(nir, dtype=dtype)
    red_arr = np.full(shape, red, dtype=dtype) if np.isscalar(red) else np.asarray(red, dtype=dtype)
    height, width = nir_arr.shape
    path = directory / name
    profile = {
        "driver": "GTiff",
        "dtype": dtype,
        "count": 2,
        "height": height,
        "width": width,
        "crs": CRS.from_user_input(crs),
        "transform": from_bounds(*bounds, width, height),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(nir_arr, 1)
        dst.write(red_arr, 2)
        if descriptions:
            for i, desc in enumerate(descriptions, start=1):
                dst.set_band_description(i, desc)
    return path


@pytest.fixture()
def scene_dir(tmp_path: Path) -> Path:
    """Empty directory for scene files."""
    path = tmp_path / "scenes"
    path.mkdir()
    return path


@pytest.fixture()
def make_scene(scene_dir: Path) -> SceneWriter:
    """Factory writing scenes into ``scene_dir``: ``make_scene(name, nir, red, **kw)``."""

    def _make(name: str, nir: npt.ArrayLike, red: npt.ArrayLike, **kwargs: object) -> Path:
        return write_scene(scene_dir, name, nir, red, **kwargs)  # type: ignore[arg-type]

    return _make
