"""
kNDVI Toolkit — Shared Base Tool
=================================
Abstract base class for the toolkit's batch tools.

Design Pattern:
    Template Method: ``run()`` always validates, then processes, then logs
    a one-line report.  Subclasses supply ``validate_inputs`` and
    ``process`` and may extend the report through ``outcome()``.

Usage::

    from shared.python.base_tool import GeoTool

    class KndviCompositor(GeoTool):
        def validate_inputs(self) -> None:
            ...
        def process(self) -> None:
            ...
        def outcome(self) -> str:
            return "3 exported, 0 skipped, 0 failed"
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

# ---------------------------------------------------------------------------
# Toolkit root logger.  Modules log through children of it, e.g.
#   logging.getLogger("kndvi.kndvi_composite.engine").
# ---------------------------------------------------------------------------
logger = logging.getLogger("kndvi")

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s — %(message)s"


class GeoTool(ABC):
    """Base class for tools that read a folder of rasters and write results.

    Attributes:
        input_path: Scene folder or input file.
        output_path: Output directory or file.
        verbose: Log at DEBUG level instead of INFO.
        elapsed: Wall-clock seconds of the last :meth:`run`, ``None``
                 before the first run completes.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.elapsed: float | None = None

        self._configure_logging()

    # ------------------------------------------------------------------
    # Subclass interface
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Check every precondition; no computation happens before this passes.

        Raises:
            KndviError: A subclass describing the failed precondition.
        """

    @abstractmethod
    def process(self) -> None:
        """Do the work.  Only called after :meth:`validate_inputs` succeeds."""

    def outcome(self) -> str:
        """Short result summary appended to the completion log line."""
        return ""

    # ------------------------------------------------------------------
    # Template method
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Validate, process and report.

        Raises:
            Whatever ``validate_inputs`` or ``process`` raise, unchanged.
        """
        logger.info("Starting %s on %s", self.__class__.__name__, self.input_path)
        start = time.perf_counter()

        self.validate_inputs()
        self.process()

        self.elapsed = time.perf_counter() - start
        self._report_success()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _report_success(self) -> None:
        summary = self.outcome()
        logger.info(
            "%s finished in %.2fs%s → %s",
            self.__class__.__name__,
            self.elapsed,
            f" ({summary})" if summary else "",
            self.output_path,
        )

    def _configure_logging(self) -> None:
        """Attach one console handler to the ``kndvi`` logger and set its level."""
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.input_path!r} → {self.output_path!r})"
