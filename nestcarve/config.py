"""
Session configuration.
"""

import os
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigError

DEFAULT_OUTPUT_DIR = "extractions"
DEFAULT_MAX_DEPTH = 8
DEFAULT_MAX_EXTRACTIONS = 10000
# Full search reports overlapping hits, so recursion can fan out much faster
FULL_SEARCH_MAX_EXTRACTIONS = 1000


@dataclass
class Configuration:
    """Read-only settings for one scan/extract session."""

    target_path: str
    output_path: str = DEFAULT_OUTPUT_DIR
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    full_search: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH  # Levels of nested files to rescan; 0 disables recursion
    max_extractions: Optional[int] = None  # Extraction attempts allowed per input file
    scan_workers: int = 1
    extract_workers: int = 1
    show_progress: bool = False
    cancel_event: Optional[threading.Event] = None

    @property
    def extraction_budget(self) -> int:
        if self.max_extractions is not None:
            return self.max_extractions
        return FULL_SEARCH_MAX_EXTRACTIONS if self.full_search else DEFAULT_MAX_EXTRACTIONS

    def validate(self) -> None:
        """Raise ConfigError if the configuration can't produce a usable session."""
        if not self.target_path:
            raise ConfigError("No target file given")
        if not os.path.exists(self.target_path):
            raise ConfigError(f"Input file does not exist: {self.target_path}")
        if not os.path.isfile(self.target_path):
            raise ConfigError(f"Input path is not a regular file: {self.target_path}")

        if not self.output_path:
            raise ConfigError("Output directory must not be empty")
        if os.path.exists(self.output_path) and not os.path.isdir(self.output_path):
            raise ConfigError(f"Output path exists and is not a directory: {self.output_path}")

        if self.max_depth < 0:
            raise ConfigError(f"Maximum depth must be >= 0, got {self.max_depth}")
        if self.max_extractions is not None and self.max_extractions < 1:
            raise ConfigError(f"Maximum extractions must be >= 1, got {self.max_extractions}")
        if self.scan_workers < 1 or self.extract_workers < 1:
            raise ConfigError("Worker counts must be >= 1")
