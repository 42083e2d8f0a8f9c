"""
kNDVI Toolkit — Shared Input Validators
========================================
Static precondition checks run from ``validate_inputs`` and from the
engine before any pixel arithmetic.

Every check raises a :mod:`shared.python.exceptions` error instead of
returning a boolean::

    class KndviCompositor(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_directory_exists(self.config.scene_dir)
            Validators.assert_year_range(cfg.first_year, cfg.last_year)
"""

from __future__ import annotations

import math
import numbers
from pathlib import Path
from typing import Sequence

# pyproj is imported inside assert_crs_valid only.

from shared.python.exceptions import (
    BandIndexError,
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Namespace of static checks; never instantiated."""

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* is an existing regular file (e.g. a region GeoJSON).

        Raises:
            InputValidationError: If *path* is missing or is a directory.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(f"Input file not found: '{path}'.")
        if path.is_dir():
            raise InputValidationError(f"'{path}' is a directory, expected a file.")

    @staticmethod
    def assert_directory_exists(path: Path) -> None:
        """Assert that *path* is an existing directory (e.g. a scene folder).

        Raises:
            InputValidationError: If *path* is missing or is a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(f"Input directory not found: '{path}'.")
        if not path.is_dir():
            raise InputValidationError(f"'{path}' is a file, expected a directory.")

    @staticmethod
    def assert_output_dir_writable(output_dir: Path) -> None:
        """Create *output_dir* and its parents if needed.

        Raises:
            OutputWriteError: If the directory cannot be created.
        """
        try:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_dir), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that the suffix of *path* is one of *extensions*.

        Args:
            path: File path to check.
            extensions: Dotted suffixes, e.g. ``[".geojson", ".json"]``.

        Raises:
            InputValidationError: If the suffix is not listed.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}', "
                f"expected one of: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # Coordinate reference systems
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* parses with pyproj (EPSG code, PROJ or WKT).

        Raises:
            CRSError: If pyproj rejects *crs_string*.
        """
        from pyproj import CRS  # noqa: PLC0415
        from pyproj.exceptions import CRSError as ProjCRSError  # noqa: PLC0415

        try:
            CRS.from_user_input(crs_string)
        except ProjCRSError as exc:
            raise CRSError(crs_string) from exc

    # ------------------------------------------------------------------
    # Numbers
    # ------------------------------------------------------------------

    @staticmethod
    def assert_year_range(first_year: int, last_year: int) -> None:
        """Raise :class:`InputValidationError` unless ``first_year <= last_year``."""
        if first_year > last_year:
            raise InputValidationError(
                f"Invalid year range: first year {first_year} is after "
                f"last year {last_year}."
            )

    @staticmethod
    def assert_positive(value: float, label: str) -> None:
        """Raise :class:`InputValidationError` unless *value* is finite and > 0."""
        is_real = isinstance(value, numbers.Real) and not isinstance(value, bool)
        if not is_real or not math.isfinite(value) or value <= 0:
            raise InputValidationError(
                f"{label} must be a finite value greater than zero, got {value!r}."
            )

    # ------------------------------------------------------------------
    # Rasters
    # ------------------------------------------------------------------

    @staticmethod
    def assert_band_index_valid(band_index: int, total_bands: int) -> None:
        """Raise :class:`BandIndexError` unless ``1 <= band_index <= total_bands``."""
        if not 1 <= band_index <= total_bands:
            raise BandIndexError(band_index, total_bands)

    @staticmethod
    def assert_raster_shapes_match(
        shape_a: tuple[int, ...],
        shape_b: tuple[int, ...],
        label_a: str = "NIR",
        label_b: str = "Red",
    ) -> None:
        """Assert that two grids have identical shapes before pixel-wise math.

        Example::

            Validators.assert_raster_shapes_match(
                composite.values.shape, region.shape, "Composite", "Region"
            )

        Raises:
            InputValidationError: If the shapes differ.
        """
        if tuple(shape_a) != tuple(shape_b):
            raise InputValidationError(
                f"Raster shape mismatch: {label_a} is {tuple(shape_a)} but "
                f"{label_b} is {tuple(shape_b)}."
            )
