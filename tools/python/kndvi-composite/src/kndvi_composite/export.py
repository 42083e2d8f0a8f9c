"""
kNDVI Composite — GeoTIFF Export
=================================
Writes a finished :class:`~kndvi_composite.engine.CompositeRaster` to a
single-band float32 GeoTIFF and reports the outcome as an
:class:`ExportResult` instead of firing and forgetting.

Output naming:
    annual   ``kNDVI_ST<year>.tif``
    seasonal ``kNDVI_<Season>_<year>.tif``

When the composite's grid CRS differs from the target CRS (``EPSG:4326``
by default) the raster is reprojected with nearest-neighbour resampling
before writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import numpy.typing as npt
import rasterio
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.errors import RasterioError
from rasterio.transform import Affine, array_bounds
from rasterio.warp import calculate_default_transform, reproject

from kndvi_composite.engine import CompositeRaster, Region
from shared.python.exceptions import KndviError, OutputWriteError
from shared.python.validators import Validators

logger = logging.getLogger("kndvi.kndvi_composite.export")

NODATA = -9999.0
DEFAULT_CRS = "EPSG:4326"
DEFAULT_MAX_PIXELS = 1e13

_FLOAT32_BELOW_ONE = np.nextafter(np.float32(1.0), np.float32(0.0))


@dataclass
class ExportSettings:
    """Where and how composites are written.

    Attributes:
        folder: Output directory, created on first write.
        crs: Target coordinate reference system.
        max_pixels: Ceiling on ``width * height`` of a written raster.
        resolution: Target pixel size in target-CRS units.  ``None`` lets
                    the reprojection pick a size close to the source grid.
        annual_prefix: File name prefix for annual composites.
    """

    folder: Path
    crs: str = DEFAULT_CRS
    max_pixels: float = DEFAULT_MAX_PIXELS
    resolution: float | None = None
    annual_prefix: str = "kNDVI_ST"

    def file_name_prefix(self, composite: CompositeRaster) -> str:
        if composite.season:
            return f"kNDVI_{composite.season}_{composite.year}"
        return f"{self.annual_prefix}{composite.year}"


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one export.

    Attributes:
        label: File name prefix of the export.
        succeeded: ``True`` when the GeoTIFF was written.
        output_path: Path of the written (or attempted) file.
        error: Error message on failure, else ``None``.
    """

    label: str
    succeeded: bool
    output_path: Path
    error: str | None = None

    def __str__(self) -> str:
        if self.succeeded:
            return f"{self.label} → {self.output_path}"
        return f"{self.label}: export failed ({self.error})"


def export_composite(
    composite: CompositeRaster,
    region: Region,
    settings: ExportSettings,
) -> ExportResult:
    """Write *composite* as a GeoTIFF and report the outcome.

    Never raises for export problems (invalid CRS, pixel ceiling, write
    or reprojection errors); those are returned as a failed :class:`ExportResult`.
    """
    label = settings.file_name_prefix(composite)
    output_path = Path(settings.folder) / f"{label}.tif"
    try:
        _write(composite, region, settings, output_path)
    except KndviError as exc:
        logger.error("Export of %s failed: %s", label, exc.message)
        return ExportResult(label, False, output_path, exc.message)
    except RasterioError as exc:
        logger.error("Export of %s failed: %s", label, exc)
        return ExportResult(label, False, output_path, str(exc))

    logger.info("Exported %s → %s", composite.name, output_path)
    return ExportResult(label, True, output_path)


def _write(
    composite: CompositeRaster,
    region: Region,
    settings: ExportSettings,
    output_path: Path,
) -> None:
    Validators.assert_crs_valid(settings.crs)
    Validators.assert_raster_shapes_match(
        composite.values.shape, region.shape, "Composite", "Region"
    )

    array, transform, crs = _to_target_grid(composite.values, region, settings)
    height, width = array.shape
    if height * width > settings.max_pixels:
        raise OutputWriteError(
            str(output_path),
            f"{height * width:,} pixels exceeds the limit of {settings.max_pixels:,.0f}",
        )

    Validators.assert_output_dir_writable(output_path.parent)
    profile = {
        "driver": "GTiff",
        "dtype": "float32",
        "count": 1,
        "height": height,
        "width": width,
        "crs": crs,
        "transform": transform,
        "nodata": NODATA,
        "compress": "lzw",
    }
    # float32 rounds values just under 1.0 up to 1.0
    data = np.minimum(array.astype(np.float32), _FLOAT32_BELOW_ONE)
    data = np.where(np.isfinite(data), data, np.float32(NODATA))
    try:
        with rasterio.open(output_path, "w", **profile) as dst:
            dst.write(data, 1)
            dst.set_band_description(1, composite.name)
            dst.update_tags(
                year=str(composite.year),
                season=composite.season or "",
                sigma=repr(composite.sigma),
                observation_count=str(composite.observation_count),
                scale=repr(region.scale),
            )
    except OSError as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc


def _to_target_grid(
    values: npt.NDArray[np.float64],
    region: Region,
    settings: ExportSettings,
) -> tuple[npt.NDArray[np.float64], Affine | None, CRS | None]:
    """Reproject *values* onto the target CRS when the grid CRS differs."""
    if region.crs is None or region.transform is None:
        logger.warning("Composite grid is not georeferenced; writing without CRS.")
        return values, region.transform or Affine.identity(), None

    src_crs = CRS.from_user_input(region.crs)
    dst_crs = CRS.from_user_input(settings.crs)
    if src_crs == dst_crs and settings.resolution is None:
        return values, region.transform, src_crs

    height, width = values.shape
    west, south, east, north = array_bounds(height, width, region.transform)
    kwargs = {"resolution": settings.resolution} if settings.resolution else {}
    dst_transform, dst_width, dst_height = calculate_default_transform(
        src_crs, dst_crs, width, height,
        left=min(west, east), bottom=min(south, north),
        right=max(west, east), top=max(south, north),
        **kwargs,
    )
    destination = np.full((dst_height, dst_width), np.nan, dtype=np.float64)
    reproject(
        source=np.array(values, dtype=np.float64),
        destination=destination,
        src_transform=region.transform,
        src_crs=src_crs,
        src_nodata=np.nan,
        dst_transform=dst_transform,
        dst_crs=dst_crs,
        dst_nodata=np.nan,
        resampling=Resampling.nearest,
    )
    logger.debug(
        "Reprojected %dx%d grid from %s to %s (%dx%d).",
        width, height, src_crs, dst_crs, dst_width, dst_height,
    )
    return destination, dst_transform, dst_crs
