"""
kNDVI Toolkit — Custom Exception Hierarchy
===========================================
Every tool in this repository raises exceptions from this module so callers
can catch them at the right level of granularity.

Hierarchy::

    KndviError                           ← catch-all base
    ├── InputValidationError             ← bad files, shapes, config values
    │   └── UnknownSeasonError           ← season label not recognised
    ├── CRSError                         ← invalid / unknown CRS string
    ├── RasterError                      ← rasterio / numpy raster issues
    │   └── BandIndexError               ← requested band does not exist
    ├── SpectralIndexError               ← index cannot be calculated
    │   ├── EmptyObservationSetError     ← no scenes in a window
    │   ├── UndefinedBandwidthError      ← sigma mean has no valid pixels
    │   ├── DegenerateBandwidthError     ← sigma <= 0, kernel undefined
    │   └── EmptyCompositeError          ← nothing to take a median of
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import DegenerateBandwidthError

    raise DegenerateBandwidthError(0.0)
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class KndviError(Exception):
    """Base exception for all kNDVI toolkit errors.

    Catch this to handle any tool-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(KndviError):
    """Raised when a tool's inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class UnknownSeasonError(InputValidationError):
    """Raised when a season label is not one of the supported seasons.

    Args:
        label: The raw label that was supplied.
        valid: Names of the seasons that ARE supported.

    Example::

        raise UnknownSeasonError("Winter", ["Summer", "Spring", "Autumn"])
    """

    def __init__(self, label: str, valid: list[str]) -> None:
        super().__init__(
            f"Unknown season: '{label}'. Valid seasons: {', '.join(valid)}"
        )
        self.label: str = label
        self.valid: list[str] = valid


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(KndviError):
    """Raised when an export or region CRS cannot be parsed.

    Args:
        crs_string: The rejected value, e.g. ``"EPSG:99999"``.
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Unrecognised CRS '{crs_string}'; expected an EPSG code such as "
            "'EPSG:4326' or a WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(KndviError):
    """Raised when a scene GeoTIFF cannot be opened or read."""


class BandIndexError(RasterError):
    """Raised when the NIR or Red band position is outside a scene's bands.

    Args:
        band_index: 1-based band number looked up.
        total_bands: Band count of the scene.
    """

    def __init__(self, band_index: int, total_bands: int) -> None:
        super().__init__(
            f"Band {band_index} requested but the scene has only "
            f"{total_bands} band(s)."
        )
        self.band_index: int = band_index
        self.total_bands: int = total_bands


# ---------------------------------------------------------------------------
# Spectral index
# ---------------------------------------------------------------------------


class SpectralIndexError(KndviError):
    """Raised when a spectral index cannot be calculated.

    Args:
        index_name: The name of the index that failed (e.g. ``"kNDVI"``).
        reason: Short explanation of why calculation failed.

    Example::

        raise SpectralIndexError("kNDVI", "NIR band not found in scene")
    """

    def __init__(self, index_name: str, reason: str) -> None:
        super().__init__(f"Cannot calculate {index_name}: {reason}")
        self.index_name: str = index_name
        self.reason: str = reason


class EmptyObservationSetError(SpectralIndexError):
    """Raised when a window contains no observations to estimate sigma from."""

    def __init__(self, window: str = "window") -> None:
        super().__init__("kNDVI", f"no observations available for {window}")
        self.window: str = window


class UndefinedBandwidthError(SpectralIndexError):
    """Raised when the spatial mean behind sigma has no valid pixels.

    Typical causes: a region mask that selects zero pixels, or a region
    in which every observation is no-data.
    """

    def __init__(self, reason: str) -> None:
        super().__init__("kNDVI", f"bandwidth is undefined: {reason}")


class DegenerateBandwidthError(SpectralIndexError):
    """Raised when the kernel bandwidth is not strictly positive.

    The kernel divides by ``2 * sigma**2``; a sigma of zero (no NIR/Red
    contrast anywhere, e.g. all water or no data) makes it undefined.

    Args:
        sigma: The offending bandwidth value.
    """

    def __init__(self, sigma: float) -> None:
        super().__init__(
            "kNDVI",
            f"sigma must be a finite value > 0, got {sigma!r} "
            "(division by zero in tanh((nir - red)^2 / (2 * sigma^2)))",
        )
        self.sigma: float = sigma


class EmptyCompositeError(SpectralIndexError):
    """Raised when a temporal composite is requested from zero rasters."""

    def __init__(self, window: str = "window") -> None:
        super().__init__("kNDVI composite", f"no kNDVI rasters for {window}")
        self.window: str = window


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(KndviError):
    """Raised when a composite GeoTIFF or the output folder cannot be written.

    Args:
        output_path: Path that failed, as a string.
        reason: Why, e.g. the OS error or the pixel ceiling.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(f"Cannot write '{output_path}': {reason}")
        self.output_path: str = output_path
        self.reason: str = reason
