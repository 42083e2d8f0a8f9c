"""
kNDVI Composite — CLI Entry Point
==================================
Exposes :class:`~kndvi_composite.pipeline.KndviCompositor` as the
``geo-kndvi`` command.

Usage::

    # Annual MODIS composites, 2000-2023
    geo-kndvi --scenes scenes/modis --product modis \\
              --region study_area.geojson --output-dir output/kNDVI_ST

    # Seasonal Landsat composites
    geo-kndvi --scenes scenes/landsat --product landsat \\
              --season Summer --season Spring --season Autumn \\
              --output-dir output/kNDVI_Seasonal

Run ``geo-kndvi --help`` for the full option list.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from kndvi_composite.pipeline import KndviCompositor, KndviConfig, load_config
from kndvi_composite.windows import PRODUCTS, Season
from shared.python.exceptions import KndviError

logger = logging.getLogger("kndvi.kndvi_composite.cli")


@click.command("geo-kndvi")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON config file. Options given on the command line override it.",
)
@click.option(
    "--scenes",
    "scene_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory of dated scene GeoTIFFs (e.g. LC08_20230614.tif).",
)
@click.option(
    "--output-dir",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for composite GeoTIFFs.  [default: output]",
)
@click.option(
    "--product",
    type=click.Choice(list(PRODUCTS), case_sensitive=False),
    default=None,
    help="Sensor family; Landsat switches from TM to OLI in 2013.  [default: modis]",
)
@click.option("--first-year", type=int, default=None, help="First year (inclusive).  [default: 2000]")
@click.option("--last-year", type=int, default=None, help="Last year (inclusive).  [default: 2023]")
@click.option(
    "--season",
    "seasons",
    multiple=True,
    help=f"Season to evaluate, repeatable ({', '.join(s.value for s in Season)}). "
         "Omit for annual composites.",
)
@click.option(
    "--region",
    "region_geojson",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Study-area GeoJSON (WGS84).  Omit to use every pixel.",
)
@click.option("--crs", default=None, help="Target CRS of exported rasters.  [default: EPSG:4326]")
@click.option("--max-pixels", type=float, default=None, help="Export pixel ceiling.  [default: 1e13]")
@click.option(
    "--sigma-floor",
    type=float,
    default=None,
    help="Use this sigma instead of failing windows whose sigma is smaller (e.g. 0).",
)
@click.option("--workers", "max_workers", type=int, default=None, help="Windows processed in parallel.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable DEBUG-level logging.")
def cli(
    config_path: Path | None,
    scene_dir: Path | None,
    output_dir: Path | None,
    product: str | None,
    first_year: int | None,
    last_year: int | None,
    seasons: tuple[str, ...],
    region_geojson: Path | None,
    crs: str | None,
    max_pixels: float | None,
    sigma_floor: float | None,
    max_workers: int | None,
    verbose: bool,
) -> None:
    """Compute kNDVI median composites per year or season and export GeoTIFFs.

    kNDVI = tanh((NIR - Red)^2 / (2 * sigma^2)), with sigma estimated per
    window as the mean |NIR - Red| over the study area.
    """
    overrides: dict[str, Any] = {
        "scene_dir": scene_dir,
        "output_dir": output_dir,
        "product": product.lower() if product else None,
        "first_year": first_year,
        "last_year": last_year,
        "seasons": list(seasons) or None,
        "region_geojson": region_geojson,
        "crs": crs,
        "max_pixels": max_pixels,
        "sigma_floor": sigma_floor,
        "max_workers": max_workers,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    try:
        if config_path is not None:
            config = replace(load_config(config_path), **overrides)
        elif "scene_dir" in overrides:
            overrides.setdefault("output_dir", Path("output"))
            config = KndviConfig(**overrides)
        else:
            click.echo("Error: provide --scenes or --config. See --help.", err=True)
            sys.exit(1)

        tool = KndviCompositor(config, verbose=verbose)
        tool.run()
    except KndviError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    click.echo(f"\n{tool.outcome()} → {config.output_dir}")
    for result in tool.results:
        click.echo(f"  {result}")

    if tool.has_failures:
        sys.exit(1)


if __name__ == "__main__":
    cli()
