"""
kNDVI Composite
================
Kernel NDVI (kNDVI) median composites per year or season from NIR/Red
satellite scenes.
"""

from kndvi_composite.engine import (
    CompositeRaster,
    Observation,
    ObservationSet,
    Region,
    composite,
    compute_window,
    estimate_sigma,
    kernel_ndvi,
)
from kndvi_composite.export import ExportResult, ExportSettings, export_composite
from kndvi_composite.pipeline import KndviCompositor, KndviConfig, WindowResult, load_config
from kndvi_composite.windows import (
    Season,
    SensorProfile,
    Window,
    annual_window,
    enumerate_windows,
    seasonal_window,
    select_sensor,
)

__all__ = [
    "Observation",
    "ObservationSet",
    "Region",
    "CompositeRaster",
    "estimate_sigma",
    "kernel_ndvi",
    "composite",
    "compute_window",
    "Season",
    "Window",
    "SensorProfile",
    "annual_window",
    "seasonal_window",
    "enumerate_windows",
    "select_sensor",
    "ExportSettings",
    "ExportResult",
    "export_composite",
    "KndviCompositor",
    "KndviConfig",
    "WindowResult",
    "load_config",
]
