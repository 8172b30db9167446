"""
Session façade: configure once, then scan buffers and extract matches.

Example:

    carver = configure("firmware.bin", "extractions")
    data = carver.read_target()
    results = carver.scan(data)
    extraction = carver.extract(data, carver.base_target_file, results)
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import DEFAULT_OUTPUT_DIR, Configuration
from .errors import ConfigError
from .extraction import ExtractionOrchestrator
from .file_signatures import SignatureRegistry, build_default_registry
from .report import ExtractionResult, ReportGenerator
from .resolver import AnalysisResult, AnalysisResults, MatchResolver
from .scanner import PatternScanner
from .utils import format_size

logger = logging.getLogger(__name__)


class Carver:
    """One configured scan/extract session."""

    def __init__(self, config: Configuration, registry: Optional[SignatureRegistry] = None) -> None:
        """
        Initialize the session. Use configure() to get a validated one.

        Args:
            config: Session settings
            registry: Signature rules (default: the built-in registry)
        """
        self.config = config
        self.registry = registry if registry is not None else build_default_registry()

        self.scanner = PatternScanner(
            self.registry.filtered(config.include, config.exclude),
            full_search=config.full_search,
            workers=config.scan_workers,
            cancel_event=config.cancel_event,
            show_progress=config.show_progress,
        )
        self.resolver = MatchResolver(self.registry, config.include, config.exclude)
        self.orchestrator = ExtractionOrchestrator(
            self.registry,
            self.scan,
            config.output_path,
            max_depth=config.max_depth,
            max_extractions=config.extraction_budget,
            workers=config.extract_workers,
            cancel_event=config.cancel_event,
            show_progress=config.show_progress,
        )

    @classmethod
    def configure(
        cls,
        target_path: str,
        output_path: Optional[str] = None,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
        full_search: bool = False,
        registry: Optional[SignatureRegistry] = None,
        **options,
    ) -> "Carver":
        """
        Validate the settings and build a session.

        Extra keyword options are passed to Configuration (max_depth,
        max_extractions, scan_workers, extract_workers, show_progress,
        cancel_event).

        Raises:
            ConfigError: target missing, output path unusable or bad limits
        """
        try:
            config = Configuration(
                target_path=str(target_path) if target_path else "",
                output_path=str(output_path) if output_path else DEFAULT_OUTPUT_DIR,
                include=list(include or []),
                exclude=list(exclude or []),
                full_search=full_search,
                **options,
            )
        except TypeError as e:
            raise ConfigError(f"Invalid option: {e}") from None
        config.validate()
        return cls(config, registry)

    @property
    def base_target_file(self) -> str:
        return self.config.target_path

    def read_target(self) -> bytes:
        """Read the configured target file into memory."""
        with open(self.config.target_path, "rb") as f:
            return f.read()

    def scan(self, data: bytes) -> AnalysisResults:
        """Scan a buffer and return the filtered, ordered matches."""
        return self.resolver.resolve(self.scanner.scan(data))

    def extract(self, data: bytes, source_path: str, results: Iterable[AnalysisResult]) -> Dict[str, ExtractionResult]:
        """Extract every match in results (recursively) and return the results by key."""
        logger.info(f"Extracting from: {source_path}")
        logger.info(f"Output directory: {self.config.output_path}")
        return self.orchestrator.extract(data, source_path, results)

    def save_report(self, data_size: int, results: AnalysisResults, extraction: Dict[str, ExtractionResult], version: str = "") -> Path:
        """Write extraction_report.txt/.json into the output directory."""
        report_gen = ReportGenerator(Path(self.config.output_path), version=version)
        report_gen.set_target_info(self.config.target_path, data_size)
        report_gen.add_scan_results(results)
        report_gen.add_extraction_results(extraction)
        return report_gen.save_report()


def configure(
    target_path: str,
    output_path: Optional[str] = None,
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
    full_search: bool = False,
    **options,
) -> Carver:
    """Module-level shortcut for Carver.configure()."""
    return Carver.configure(target_path, output_path, include, exclude, full_search, **options)


def scan_file(file_path: str, registry: Optional[SignatureRegistry] = None) -> List[Dict[str, str]]:
    """
    Scan a file and return the matches as plain string dictionaries.

    Each dictionary has description, id, name, confidence, offset and size.
    """
    carver = Carver.configure(file_path, registry=registry)
    data = carver.read_target()
    logger.debug(f"Scanning {file_path} ({format_size(len(data))})")
    return carver.scan(data).to_dicts()


def extract_file(
    file_path: str,
    output_path: Optional[str] = None,
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
    full_search: bool = False,
) -> List[Dict[str, str]]:
    """
    Scan a file, extract everything found and return the extraction results
    as plain string dictionaries (key, size, success, extractor,
    output_directory).
    """
    carver = Carver.configure(file_path, output_path, include, exclude, full_search)
    data = carver.read_target()
    results = carver.scan(data)
    extraction = carver.extract(data, carver.base_target_file, results)
    return [result.to_dict() for result in extraction.values()]
