"""
kNDVI Composite — Pipeline Orchestrator
========================================
Runs the kNDVI engine over every evaluation window and exports one
composite per window.  Inherits from :class:`~shared.python.base_tool.GeoTool`
and implements the Template Method pattern.

Windows are independent units of work: a window without scenes is skipped,
a window that fails (degenerate sigma, unreadable scene, export failure) is
recorded as failed, and neither stops the remaining windows.  With
``max_workers > 1`` windows are processed on a thread pool.

Usage::

    from pathlib import Path
    from kndvi_composite.pipeline import KndviCompositor, KndviConfig

    tool = KndviCompositor(KndviConfig(
        scene_dir=Path("scenes/landsat"),
        output_dir=Path("output/kNDVI_Seasonal"),
        product="landsat",
        seasons=["Summer", "Spring", "Autumn"],
    ))
    tool.run()
    for result in tool.results:
        print(result)
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Literal

from rasterio.errors import RasterioError

from kndvi_composite.engine import Region, compute_window
from kndvi_composite.export import (
    DEFAULT_CRS,
    DEFAULT_MAX_PIXELS,
    ExportResult,
    ExportSettings,
    export_composite,
)
from kndvi_composite.sources import (
    SceneCatalog,
    load_observation_set,
    region_from_geojson,
    region_full_extent,
)
from kndvi_composite.windows import (
    DEFAULT_FIRST_YEAR,
    DEFAULT_LAST_YEAR,
    Window,
    enumerate_windows,
    select_sensor,
)
from shared.python.base_tool import GeoTool
from shared.python.exceptions import InputValidationError, KndviError
from shared.python.validators import Validators

logger = logging.getLogger("kndvi.kndvi_composite.pipeline")

WindowStatus = Literal["exported", "skipped", "failed"]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class KndviConfig:
    """Configuration for :class:`KndviCompositor`.

    Attributes:
        scene_dir: Directory of dated scene GeoTIFFs.
        output_dir: Directory for composite GeoTIFFs.
        product: ``"modis"`` or ``"landsat"``; picks the sensor per year.
        first_year: First year evaluated (inclusive).
        last_year: Last year evaluated (inclusive).
        seasons: Season names to evaluate per year; empty means one
                 annual window per year.
        region_geojson: Study-area GeoJSON.  ``None`` uses every pixel.
        crs: Target CRS for exported rasters.
        max_pixels: Export pixel ceiling.
        sigma_floor: Replace a smaller sigma with this value instead of
                     failing the window.  ``None`` rejects sigma == 0.
        max_workers: Windows processed concurrently.
    """

    scene_dir: Path
    output_dir: Path
    product: str = "modis"
    first_year: int = DEFAULT_FIRST_YEAR
    last_year: int = DEFAULT_LAST_YEAR
    seasons: list[str] = field(default_factory=list)
    region_geojson: Path | None = None
    crs: str = DEFAULT_CRS
    max_pixels: float = DEFAULT_MAX_PIXELS
    sigma_floor: float | None = None
    max_workers: int = 1


def load_config(config_path: Path) -> KndviConfig:
    """Parse a JSON configuration file into a :class:`KndviConfig`.

    Relative paths in the file are resolved against the file's directory.

    Raises:
        InputValidationError: If the file cannot be read or parsed, a
            required key is missing, or a value has the wrong type.
    """
    config_path = Path(config_path)
    try:
        raw: dict[str, Any] = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise InputValidationError(
            f"Failed to read config file '{config_path}': {exc}"
        ) from exc

    if not isinstance(raw, dict):
        raise InputValidationError(
            f"Config file '{config_path}' must hold a JSON object."
        )

    missing = [k for k in ("scene_dir", "output_dir") if k not in raw]
    if missing:
        raise InputValidationError(
            f"Config file '{config_path}' is missing: {', '.join(missing)}"
        )

    base = config_path.parent

    def _path(value: str | None) -> Path | None:
        if value is None:
            return None
        path = Path(value)
        return path if path.is_absolute() else base / path

    def _number(key: str, default: Any, kind: type) -> Any:
        value = raw.get(key)
        if value is None:
            return default
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool):
            value = str(value)
        try:
            return kind(value)
        except (TypeError, ValueError) as exc:
            raise InputValidationError(
                f"Config file '{config_path}': '{key}' must be "
                f"{'an integer' if kind is int else 'a number'}, got {value!r}."
            ) from exc

    seasons = raw.get("seasons", [])
    if isinstance(seasons, str):
        seasons = [seasons]
    if not isinstance(seasons, list):
        raise InputValidationError(
            f"Config file '{config_path}': 'seasons' must be a list of names."
        )

    try:
        return KndviConfig(
            scene_dir=_path(raw["scene_dir"]),  # type: ignore[arg-type]
            output_dir=_path(raw["output_dir"]),  # type: ignore[arg-type]
            product=str(raw.get("product", "modis")),
            first_year=_number("first_year", DEFAULT_FIRST_YEAR, int),
            last_year=_number("last_year", DEFAULT_LAST_YEAR, int),
            seasons=[str(s) for s in seasons],
            region_geojson=_path(raw.get("region_geojson")),
            crs=str(raw.get("crs", DEFAULT_CRS)),
            max_pixels=_number("max_pixels", DEFAULT_MAX_PIXELS, float),
            sigma_floor=_number("sigma_floor", None, float),
            max_workers=_number("max_workers", 1, int),
        )
    except TypeError as exc:
        # non-string path values
        raise InputValidationError(f"Config file '{config_path}': {exc}") from exc


# ---------------------------------------------------------------------------
# Per-window result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WindowResult:
    """Outcome of one window.

    Attributes:
        label: Window label (``"2023"`` or ``"Summer_2023"``).
        status: ``"exported"``, ``"skipped"`` (no scenes) or ``"failed"``.
        sigma: Bandwidth used, when the engine got that far.
        observation_count: Scenes that went into the composite.
        export: Export outcome, when an export was attempted.
        error: Failure or skip reason.
    """

    label: str
    status: WindowStatus
    sigma: float | None = None
    observation_count: int = 0
    export: ExportResult | None = None
    error: str | None = None

    def __str__(self) -> str:
        if self.status == "exported" and self.export is not None:
            return (
                f"{self.label}: sigma={self.sigma:.4f} n={self.observation_count} "
                f"→ {self.export.output_path.name}"
            )
        return f"{self.label}: {self.status} ({self.error})"


# ---------------------------------------------------------------------------
# Main tool class
# ---------------------------------------------------------------------------


class KndviCompositor(GeoTool):
    """Compute and export kNDVI median composites for every window.

    Args:
        config: A :class:`KndviConfig`.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(self, config: KndviConfig, *, verbose: bool = False) -> None:
        super().__init__(config.scene_dir, config.output_dir, verbose=verbose)
        self.config = config
        self._windows: list[Window] = []
        self._results: list[WindowResult] = []

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check the configuration before any computation.

        Raises:
            InputValidationError: Missing scene directory or region file,
                empty year range, unknown product, bad worker count or
                sigma floor.
            UnknownSeasonError: If a season label is not supported.
            CRSError: If the target CRS cannot be parsed.
            OutputWriteError: If the output directory cannot be created.
        """
        cfg = self.config
        Validators.assert_directory_exists(cfg.scene_dir)
        Validators.assert_year_range(cfg.first_year, cfg.last_year)
        self._windows = enumerate_windows(cfg.first_year, cfg.last_year, cfg.seasons)
        select_sensor(cfg.product, cfg.first_year)
        Validators.assert_crs_valid(cfg.crs)
        Validators.assert_positive(cfg.max_pixels, "max_pixels")
        if cfg.sigma_floor is not None:
            Validators.assert_positive(cfg.sigma_floor, "sigma_floor")
        if cfg.max_workers < 1:
            raise InputValidationError(f"max_workers must be at least 1, got {cfg.max_workers}.")
        if cfg.region_geojson is not None:
            Validators.assert_file_exists(cfg.region_geojson)
        Validators.assert_output_dir_writable(cfg.output_dir)

        logger.debug(
            "Inputs validated: %d window(s), product=%s.", len(self._windows), cfg.product
        )

    def process(self) -> None:
        """Run every window and collect a :class:`WindowResult` for each."""
        catalog = SceneCatalog(self.config.scene_dir)
        logger.info(
            "Processing %d window(s) from %d scene(s).", len(self._windows), len(catalog)
        )
        region = self._build_region(catalog) if len(catalog) else None
        run_window = partial(self._run_window, catalog, region)

        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                results = list(pool.map(run_window, self._windows))
        else:
            results = [run_window(w) for w in self._windows]

        self._results = results
        for result in results:
            logger.debug("  %s", result)

    # ------------------------------------------------------------------
    # Per-window work
    # ------------------------------------------------------------------

    def _run_window(
        self,
        catalog: SceneCatalog,
        region: Region | None,
        window: Window,
    ) -> WindowResult:
        """Process one window; errors are recorded, never propagated."""
        if region is None or not catalog.scenes_in(window):
            logger.warning("%s: no scenes in window, skipping.", window.label)
            return WindowResult(window.label, "skipped", error="no observations in window")

        try:
            profile = select_sensor(self.config.product, window.year)
            observations = load_observation_set(catalog, window, profile)
            if observations.shape != region.shape:
                raise InputValidationError(
                    f"Scene grid {observations.shape} does not match the "
                    f"study-area grid {region.shape}."
                )
            result = compute_window(
                observations,
                region,
                year=window.year,
                season=window.season_name,
                sigma_floor=self.config.sigma_floor,
            )
        except KndviError as exc:
            logger.error("%s: %s", window.label, exc.message)
            return WindowResult(window.label, "failed", error=exc.message)
        except RasterioError as exc:
            logger.error("%s: %s", window.label, exc)
            return WindowResult(window.label, "failed", error=str(exc))

        export = export_composite(result, region, self._export_settings())
        status: WindowStatus = "exported" if export.succeeded else "failed"
        return WindowResult(
            window.label,
            status,
            sigma=result.sigma,
            observation_count=result.observation_count,
            export=export,
            error=export.error,
        )

    def _build_region(self, catalog: SceneCatalog) -> Region:
        """Study area on the grid of the first scene."""
        reference = catalog.scenes[0].path
        if self.config.region_geojson is not None:
            region = region_from_geojson(self.config.region_geojson, reference)
        else:
            region = region_full_extent(reference)
        logger.debug("Region covers %d pixel(s).", region.pixel_count)
        return region

    def _export_settings(self) -> ExportSettings:
        return ExportSettings(
            folder=self.config.output_dir,
            crs=self.config.crs,
            max_pixels=self.config.max_pixels,
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def results(self) -> list[WindowResult]:
        """List of :class:`WindowResult` from the last run, or ``[]``."""
        return self._results

    def summary(self) -> dict[str, int]:
        counts = Counter(r.status for r in self._results)
        return {status: counts.get(status, 0) for status in ("exported", "skipped", "failed")}

    def outcome(self) -> str:
        counts = self.summary()
        return f"{counts['exported']} exported, {counts['skipped']} skipped, {counts['failed']} failed"

    @property
    def has_failures(self) -> bool:
        return any(r.status == "failed" for r in self._results)
