"""
kNDVI Toolkit — Shared Python Package
======================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so individual tools can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import DegenerateBandwidthError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    BandIndexError,
    CRSError,
    DegenerateBandwidthError,
    EmptyCompositeError,
    EmptyObservationSetError,
    InputValidationError,
    KndviError,
    OutputWriteError,
    RasterError,
    SpectralIndexError,
    UndefinedBandwidthError,
    UnknownSeasonError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "KndviError",
    "InputValidationError",
    "UnknownSeasonError",
    "CRSError",
    "RasterError",
    "BandIndexError",
    "SpectralIndexError",
    "EmptyObservationSetError",
    "UndefinedBandwidthError",
    "DegenerateBandwidthError",
    "EmptyCompositeError",
    "OutputWriteError",
]
