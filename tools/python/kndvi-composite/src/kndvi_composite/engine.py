"""
kNDVI Composite — Kernel-NDVI Engine
=====================================
Pure, synchronous numerical core: bandwidth (sigma) estimation, the kernel
transform and the temporal median composite.  Works on in-memory numpy grids
so any data source can feed it (see :mod:`kndvi_composite.sources`).

Formula::

    kNDVI = tanh( (NIR - Red)^2 / (2 * sigma^2) )

Because the numerator is a square, the output lies in ``[0, 1)`` rather than
the ``(-1, 1)`` range of the signed kernel formulation found in the
literature.  The squared form is kept as-is.

Classes:
    Observation      One capture: NIR + Red reflectance grids and a date.
    ObservationSet   All captures of one window.
    Region           In-region pixel weights for spatial reductions.
    CompositeRaster  Median kNDVI for one window, NaN outside the region.

Functions:
    estimate_sigma   Mean |NIR - Red| over time, then over the region.
    kernel_ndvi      Elementwise kernel transform.
    composite        NaN-aware temporal median clipped to the region.
    compute_window   estimate_sigma → kernel_ndvi per scene → composite.

Usage::

    import numpy as np
    from kndvi_composite.engine import Observation, ObservationSet, Region, compute_window

    obs = ObservationSet.of([Observation(nir, red, date(2023, 6, 4)), ...])
    result = compute_window(obs, Region.full(nir.shape, scale=30), year=2023)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Sequence

import numpy as np
import numpy.typing as npt
from rasterio.transform import Affine

from shared.python.exceptions import (
    DegenerateBandwidthError,
    EmptyCompositeError,
    EmptyObservationSetError,
    InputValidationError,
    UndefinedBandwidthError,
)
from shared.python.validators import Validators

logger = logging.getLogger("kndvi.kndvi_composite.engine")

FloatGrid = npt.NDArray[np.float64]

# Largest float64 below 1.0
_BELOW_ONE = np.nextafter(1.0, 0.0)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Observation:
    """One sensor capture restricted to reflectance units.

    Non-finite values (NaN) mark no-data pixels such as clouds or fill.

    Attributes:
        nir: Near-infrared reflectance, 2-D.
        red: Red reflectance, same shape as ``nir``.
        acquired: Acquisition date.
    """

    nir: FloatGrid
    red: FloatGrid
    acquired: date | None = None

    def __post_init__(self) -> None:
        nir = np.asarray(self.nir, dtype=np.float64)
        red = np.asarray(self.red, dtype=np.float64)
        if nir.ndim != 2:
            raise InputValidationError(
                f"Observation grids must be 2-D, got NIR with {nir.ndim} dimension(s)."
            )
        Validators.assert_raster_shapes_match(nir.shape, red.shape, "NIR", "Red")
        object.__setattr__(self, "nir", nir)
        object.__setattr__(self, "red", red)

    @property
    def shape(self) -> tuple[int, int]:
        return self.nir.shape  # type: ignore[return-value]


@dataclass(frozen=True)
class ObservationSet:
    """All observations of one evaluation window.

    Attributes:
        observations: Captures in acquisition order.
        start: Inclusive window start, if known.
        end: Exclusive window end, if known.
    """

    observations: tuple[Observation, ...]
    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        shapes = {obs.shape for obs in self.observations}
        if len(shapes) > 1:
            raise InputValidationError(
                "Observations in one window have mismatched dimensions: "
                + ", ".join(str(s) for s in sorted(shapes))
            )

    @classmethod
    def of(
        cls,
        observations: Iterable[Observation],
        start: date | None = None,
        end: date | None = None,
    ) -> ObservationSet:
        return cls(tuple(observations), start, end)

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self):  # noqa: ANN204
        return iter(self.observations)

    @property
    def shape(self) -> tuple[int, int] | None:
        return self.observations[0].shape if self.observations else None


@dataclass(frozen=True)
class Region:
    """Study-area pixels on the observation grid.

    ``weights`` holds 1 for pixels fully inside the region, 0 outside, and
    optionally a fraction for partially covered edge pixels.  Pixels with a
    weight of zero never contribute to a spatial mean and are set to no-data
    in a composite.

    Attributes:
        weights: Per-pixel region weights in ``[0, 1]``.
        scale: Linear pixel size in grid CRS units (e.g. 500 for MODIS, 30
               for Landsat).  Recorded as the ``scale`` tag of exported
               GeoTIFFs; it never resamples the grid (use
               ``ExportSettings.resolution`` for that).
        transform: Affine geotransform of the grid, if georeferenced.
        crs: CRS of the grid (anything pyproj/rasterio accepts).
    """

    weights: FloatGrid
    scale: float = 1.0
    transform: Affine | None = None
    crs: Any = None

    def __post_init__(self) -> None:
        weights = np.asarray(self.weights, dtype=np.float64)
        if weights.ndim != 2:
            raise InputValidationError(
                f"Region mask must be 2-D, got {weights.ndim} dimension(s)."
            )
        if np.any(~np.isfinite(weights)) or np.any(weights < 0) or np.any(weights > 1):
            raise InputValidationError("Region weights must lie in [0, 1].")
        Validators.assert_positive(self.scale, "Region scale")
        object.__setattr__(self, "weights", weights)

    @classmethod
    def from_mask(
        cls,
        mask: npt.ArrayLike,
        scale: float = 1.0,
        transform: Affine | None = None,
        crs: Any = None,
    ) -> Region:
        """Build a region from a boolean mask (``True`` = inside)."""
        return cls(np.asarray(mask, dtype=bool).astype(np.float64), scale, transform, crs)

    @classmethod
    def full(
        cls,
        shape: tuple[int, int],
        scale: float = 1.0,
        transform: Affine | None = None,
        crs: Any = None,
    ) -> Region:
        """Region covering every pixel of a grid of *shape*."""
        return cls(np.ones(shape, dtype=np.float64), scale, transform, crs)

    @property
    def shape(self) -> tuple[int, int]:
        return self.weights.shape  # type: ignore[return-value]

    @property
    def inside(self) -> npt.NDArray[np.bool_]:
        return self.weights > 0

    @property
    def pixel_count(self) -> int:
        return int(np.count_nonzero(self.inside))


@dataclass(frozen=True)
class CompositeRaster:
    """Temporal median kNDVI for one window.

    Pixels outside the region are NaN (no-data).  Never mutated after
    creation.

    Attributes:
        values: 2-D kNDVI grid.
        year: Window year.
        season: Season name (``"Summer"``, ``"Spring"``, ``"Autumn"``) or
                ``None`` for an annual window.
        sigma: Bandwidth used for the kernel transform.
        observation_count: Number of rasters that went into the median.
    """

    values: FloatGrid
    year: int
    season: str | None = None
    sigma: float = math.nan
    observation_count: int = 0

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        values.flags.writeable = False
        object.__setattr__(self, "values", values)

    @property
    def name(self) -> str:
        """Band name: ``kNDVI_2023`` or ``kNDVI_Summer_2023``."""
        if self.season:
            return f"kNDVI_{self.season}_{self.year}"
        return f"kNDVI_{self.year}"

    @property
    def valid_pixels(self) -> int:
        return int(np.count_nonzero(np.isfinite(self.values)))

    def __str__(self) -> str:
        valid = self.values[np.isfinite(self.values)]
        if valid.size == 0:
            return f"{self.name}: no valid pixels"
        return (
            f"{self.name}: sigma={self.sigma:.4f} n={self.observation_count} "
            f"min={valid.min():.4f} max={valid.max():.4f} mean={valid.mean():.4f}"
        )


# ---------------------------------------------------------------------------
# Core operations
# ---------------------------------------------------------------------------


def estimate_sigma(
    observations: ObservationSet | Sequence[Observation],
    region: Region | None = None,
) -> float:
    """Estimate the kernel bandwidth for one window.

    Computes ``|NIR - Red|`` per observation, averages it over time per pixel
    (no-data pixels are skipped, not zero-filled), then takes the
    region-weighted spatial mean of that grid.

    Args:
        observations: Captures of the window; must be non-empty.
        region: Study area on the observation grid.  ``None`` means every
                pixel.

    Returns:
        Sigma, a non-negative float.  A value of exactly 0 is returned as
        is; :func:`kernel_ndvi` rejects it.

    Raises:
        EmptyObservationSetError: If *observations* is empty.
        InputValidationError: If the region grid does not match.
        UndefinedBandwidthError: If no in-region pixel has data.
    """
    observations = tuple(observations)
    if not observations:
        raise EmptyObservationSetError()

    stack = np.stack([np.abs(obs.nir - obs.red) for obs in observations])
    valid_count = np.sum(np.isfinite(stack), axis=0)
    summed = np.nansum(stack, axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        temporal_mean = np.where(valid_count > 0, summed / valid_count, np.nan)

    if region is None:
        weights = np.ones(temporal_mean.shape, dtype=np.float64)
    else:
        Validators.assert_raster_shapes_match(
            region.shape, temporal_mean.shape, "Region", "Observations"
        )
        weights = region.weights

    usable = (weights > 0) & np.isfinite(temporal_mean)
    total_weight = float(np.sum(weights[usable]))
    if total_weight == 0.0:
        if region is not None and region.pixel_count == 0:
            raise UndefinedBandwidthError("region mask selects zero pixels")
        raise UndefinedBandwidthError("no valid NIR/Red pixels inside the region")

    sigma = float(np.sum(temporal_mean[usable] * weights[usable]) / total_weight)
    logger.debug(
        "Estimated sigma=%.6f from %d observation(s) over %d pixel(s).",
        sigma,
        len(observations),
        int(np.count_nonzero(usable)),
    )
    return sigma


def kernel_ndvi(
    nir: npt.ArrayLike,
    red: npt.ArrayLike,
    sigma: float,
) -> FloatGrid:
    """Apply the kNDVI kernel elementwise.

    ``tanh((nir - red)**2 / (2 * sigma**2))``, in ``[0, 1)`` for finite
    inputs; NaN inputs stay NaN.  Symmetric in *nir* and *red*.  Saturated
    pixels (very small sigma) are held at the largest float below 1.

    Raises:
        DegenerateBandwidthError: If *sigma* is not a finite value > 0.
        InputValidationError: If *nir* and *red* differ in shape.
    """
    sigma = float(sigma)
    if not math.isfinite(sigma) or sigma <= 0.0:
        raise DegenerateBandwidthError(sigma)

    nir_arr = np.asarray(nir, dtype=np.float64)
    red_arr = np.asarray(red, dtype=np.float64)
    Validators.assert_raster_shapes_match(nir_arr.shape, red_arr.shape, "NIR", "Red")

    # 2 * sigma**2 can still underflow to 0 for subnormal sigmas
    denominator = 2.0 * sigma * sigma
    if denominator == 0.0:
        raise DegenerateBandwidthError(sigma)

    with np.errstate(over="ignore"):
        result = np.tanh(np.square(nir_arr - red_arr) / denominator)
    # tanh rounds to exactly 1.0 once its argument passes ~19; keep [0, 1)
    # (np.minimum propagates NaN)
    return np.minimum(result, _BELOW_ONE)


def composite(
    rasters: Sequence[npt.ArrayLike],
    region: Region | None = None,
    *,
    year: int,
    season: str | None = None,
    sigma: float = math.nan,
    label: str | None = None,
) -> CompositeRaster:
    """Median-composite per-scene kNDVI rasters for one window.

    The median ignores no-data pixels per location; a location with no data
    in any raster stays NaN.  With an even number of values the median is
    the mean of the two middle ones.  The result is independent of the
    order of *rasters*.

    Raises:
        EmptyCompositeError: If *rasters* is empty.
        InputValidationError: If the rasters or region differ in shape.
    """
    arrays = [np.asarray(r, dtype=np.float64) for r in rasters]
    if not arrays:
        raise EmptyCompositeError(label or _window_label(year, season))

    for i, arr in enumerate(arrays[1:], start=2):
        Validators.assert_raster_shapes_match(arrays[0].shape, arr.shape, "Raster 1", f"Raster {i}")

    stack = np.stack(arrays)
    all_missing = np.all(np.isnan(stack), axis=0)
    # nanmedian warns on all-NaN slices; fill those, then restore NaN
    filled = np.where(all_missing[np.newaxis, ...], 0.0, stack)
    median = np.nanmedian(filled, axis=0)
    median[all_missing] = np.nan

    if region is not None:
        Validators.assert_raster_shapes_match(region.shape, median.shape, "Region", "Composite")
        median[~region.inside] = np.nan

    return CompositeRaster(
        values=median,
        year=year,
        season=season,
        sigma=sigma,
        observation_count=len(arrays),
    )


def compute_window(
    observations: ObservationSet,
    region: Region | None = None,
    *,
    year: int,
    season: str | None = None,
    sigma_floor: float | None = None,
) -> CompositeRaster:
    """Run the whole engine for one window.

    Args:
        observations: Captures of the window.
        region: Study area on the observation grid.
        year: Window year, tagged on the result.
        season: Optional season name, tagged on the result.
        sigma_floor: When set, sigma below this value is raised to it
                     instead of failing the window.

    Raises:
        EmptyObservationSetError: If the window has no observations.
        DegenerateBandwidthError: If sigma is 0 and no floor is set.
    """
    label = _window_label(year, season)
    if len(observations) == 0:
        raise EmptyObservationSetError(label)

    sigma = estimate_sigma(observations, region)
    if sigma_floor is not None and sigma < sigma_floor:
        logger.warning(
            "%s: sigma %.6g below floor, using %.6g instead.", label, sigma, sigma_floor
        )
        sigma = float(sigma_floor)

    rasters = [kernel_ndvi(obs.nir, obs.red, sigma) for obs in observations]
    result = composite(rasters, region, year=year, season=season, sigma=sigma, label=label)
    logger.debug("  %s", result)
    return result


def _window_label(year: int, season: str | None) -> str:
    return f"{season} {year}" if season else str(year)
