"""
kNDVI Composite — Time Windows and Sensor Profiles
===================================================
Enumerates the evaluation windows (full years or three-month seasons) and
picks the sensor whose scenes feed each window.

Windows are half-open ``[start, end)``: a scene acquired on ``end`` is
excluded, so the annual window 2023 covers 1 Jan – 30 Dec and the summer
window covers 1 Jun – 30 Aug.

Sensor profiles describe how raw digital numbers map to surface
reflectance (``raw * scale + offset``) and which band descriptions hold NIR
and Red in a stacked scene file.

Usage::

    from kndvi_composite.windows import Season, enumerate_windows, select_sensor

    for window in enumerate_windows(2000, 2023, seasons=[Season.SUMMER]):
        profile = select_sensor("landsat", window.year)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

import numpy as np
import numpy.typing as npt

from shared.python.exceptions import InputValidationError, UnknownSeasonError
from shared.python.validators import Validators

DEFAULT_FIRST_YEAR = 2000
DEFAULT_LAST_YEAR = 2023


# ---------------------------------------------------------------------------
# Seasons
# ---------------------------------------------------------------------------


class Season(str, enum.Enum):
    """Three-month seasons evaluated per year, in processing order."""

    SUMMER = "Summer"
    SPRING = "Spring"
    AUTUMN = "Autumn"

    @classmethod
    def parse(cls, label: str | Season) -> Season:
        """Resolve a case-insensitive season name.

        Raises:
            UnknownSeasonError: If *label* is not a supported season.
        """
        if isinstance(label, Season):
            return label
        for season in cls:
            if str(label).strip().lower() == season.value.lower():
                return season
        raise UnknownSeasonError(str(label), [s.value for s in cls])

    def bounds(self, year: int) -> tuple[date, date]:
        """``(start, end)`` dates of this season in *year*."""
        return _SEASON_BOUNDS[self](year)


_SEASON_BOUNDS = {
    Season.SUMMER: lambda y: (date(y, 6, 1), date(y, 8, 31)),
    Season.SPRING: lambda y: (date(y, 3, 1), date(y, 5, 31)),
    Season.AUTUMN: lambda y: (date(y, 9, 1), date(y, 11, 30)),
}


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Window:
    """One evaluation window.

    Attributes:
        year: Calendar year.
        season: Season, or ``None`` for a full-year window.
        start: First date included.
        end: First date excluded.
    """

    year: int
    season: Season | None
    start: date
    end: date

    @property
    def label(self) -> str:
        """``"2023"`` or ``"Summer_2023"``."""
        if self.season is None:
            return str(self.year)
        return f"{self.season.value}_{self.year}"

    @property
    def season_name(self) -> str | None:
        return self.season.value if self.season else None

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


def annual_window(year: int) -> Window:
    """Full-year window for *year*."""
    return Window(year, None, date(year, 1, 1), date(year, 12, 31))


def seasonal_window(year: int, season: Season | str) -> Window:
    """Seasonal window for *year*.

    Raises:
        UnknownSeasonError: If *season* is not a supported season label.
    """
    resolved = Season.parse(season)
    start, end = resolved.bounds(year)
    return Window(year, resolved, start, end)


def enumerate_windows(
    first_year: int = DEFAULT_FIRST_YEAR,
    last_year: int = DEFAULT_LAST_YEAR,
    seasons: Iterable[Season | str] | None = None,
) -> list[Window]:
    """List every window between *first_year* and *last_year* inclusive.

    With no *seasons* one annual window per year is produced; otherwise one
    window per (year, season), seasons in the order given.  All season
    labels are validated before any window is built.

    Raises:
        InputValidationError: If the year range is empty.
        UnknownSeasonError: If any season label is unknown.
    """
    Validators.assert_year_range(first_year, last_year)
    resolved = [Season.parse(s) for s in seasons] if seasons else []

    windows: list[Window] = []
    for year in range(first_year, last_year + 1):
        if not resolved:
            windows.append(annual_window(year))
            continue
        windows.extend(seasonal_window(year, season) for season in resolved)
    return windows


# ---------------------------------------------------------------------------
# Sensor profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SensorProfile:
    """How to read NIR/Red reflectance from one sensor's scenes.

    Attributes:
        name: Short sensor/product name.
        nir_band: Band description of the NIR band in a stacked scene.
        red_band: Band description of the Red band.
        scale: Multiplicative factor from digital number to reflectance.
        offset: Additive offset applied after scaling.
        resolution: Native pixel size in metres.
    """

    name: str
    nir_band: str
    red_band: str
    scale: float
    offset: float
    resolution: float

    def to_reflectance(self, raw: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Convert raw digital numbers to reflectance."""
        return np.asarray(raw, dtype=np.float64) * self.scale + self.offset


MODIS_MOD13A1 = SensorProfile(
    name="MODIS MOD13A1",
    nir_band="sur_refl_b02",
    red_band="sur_refl_b01",
    scale=1e-4,
    offset=0.0,
    resolution=500.0,
)

# Landsat Collection 2 Level-2 surface reflectance scaling
LANDSAT5_TM = SensorProfile(
    name="Landsat 5 TM",
    nir_band="SR_B4",
    red_band="SR_B3",
    scale=0.0000275,
    offset=-0.2,
    resolution=30.0,
)

LANDSAT8_OLI = SensorProfile(
    name="Landsat 8 OLI",
    nir_band="SR_B5",
    red_band="SR_B4",
    scale=0.0000275,
    offset=-0.2,
    resolution=30.0,
)

LANDSAT8_FIRST_YEAR = 2013

PRODUCTS: Sequence[str] = ("modis", "landsat")


def select_sensor(product: str, year: int) -> SensorProfile:
    """Pick the sensor profile serving *product* in *year*.

    ``"modis"`` always maps to MOD13A1.  ``"landsat"`` maps to Landsat 8 OLI
    from 2013 on and to Landsat 5 TM before.

    Raises:
        InputValidationError: If *product* is not recognised.
    """
    key = product.strip().lower()
    if key == "modis":
        return MODIS_MOD13A1
    if key == "landsat":
        return LANDSAT8_OLI if year >= LANDSAT8_FIRST_YEAR else LANDSAT5_TM
    raise InputValidationError(
        f"Unknown product '{product}'. Valid products: {', '.join(PRODUCTS)}"
    )
