"""
Extraction results, their aggregation across a recursive run, and the
human-readable / JSON report written at the end.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import AggregatorKeyCollision
from .resolver import AnalysisResults

logger = logging.getLogger(__name__)


def result_key(source_path: str, offset: int, signature_id: str) -> str:
    """Stable key for one extraction: path-qualified so nested files never collide."""
    return f"{source_path}:0x{offset:X}:{signature_id}"


@dataclass
class ExtractionResult:
    """Outcome of extracting one match."""

    key: str
    size: Optional[int]
    success: bool
    extractor: str
    output_directory: str
    signature_id: str = ""
    offset: int = 0
    source_path: str = ""
    depth: int = 0
    written_files: List[str] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "key": self.key,
            "size": "Unknown" if self.size is None else str(self.size),
            "success": "true" if self.success else "false",
            "extractor": self.extractor,
            "output_directory": self.output_directory,
        }


class ResultAggregator:
    """Collects every ExtractionResult of a run, keyed by result key."""

    def __init__(self) -> None:
        self._results: Dict[str, ExtractionResult] = {}

    def add(self, result: ExtractionResult) -> None:
        if result.key in self._results:
            raise AggregatorKeyCollision(result.key)
        self._results[result.key] = result

    def extend(self, results: Iterable[ExtractionResult]) -> None:
        for result in results:
            self.add(result)

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, key: object) -> bool:
        return key in self._results

    def results(self) -> Dict[str, ExtractionResult]:
        return dict(self._results)

    @property
    def succeeded(self) -> List[ExtractionResult]:
        return [r for r in self._results.values() if r.success]

    @property
    def failed(self) -> List[ExtractionResult]:
        return [r for r in self._results.values() if not r.success]

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Per-signature counts of attempts, successes, failures and bytes."""
        by_signature: Dict[str, Dict[str, int]] = {}
        for result in self._results.values():
            stats = by_signature.setdefault(result.signature_id, {"count": 0, "succeeded": 0, "failed": 0, "bytes": 0})
            stats["count"] += 1
            if result.success:
                stats["succeeded"] += 1
                stats["bytes"] += result.size or 0
            else:
                stats["failed"] += 1
        return by_signature


@dataclass
class SignatureStats:
    """Statistics for a single signature."""

    matches: int = 0
    extracted: int = 0
    failed: int = 0
    total_bytes: int = 0


@dataclass
class ExtractionReport:
    """Complete extraction report."""

    # Metadata
    target_file: str = ""
    target_size: int = 0
    extraction_time: str = ""
    version: str = ""

    # Scan results
    total_matches: int = 0
    by_signature: Dict[str, SignatureStats] = field(default_factory=dict)

    # Extraction results
    total_extractions: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_bytes_extracted: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)


class ReportGenerator:
    """Generate extraction reports."""

    def __init__(self, output_dir: Path, version: str = "") -> None:
        self.output_dir = Path(output_dir)
        self.report = ExtractionReport(version=version)

    def set_target_info(self, target_path: str, target_size: int) -> None:
        """Set basic target file information."""
        self.report.target_file = Path(target_path).name
        self.report.target_size = target_size
        self.report.extraction_time = datetime.now().isoformat()

    def _stats(self, signature_id: str) -> SignatureStats:
        if signature_id not in self.report.by_signature:
            self.report.by_signature[signature_id] = SignatureStats()
        return self.report.by_signature[signature_id]

    def add_scan_results(self, results: AnalysisResults) -> None:
        """Count the top-level matches per signature."""
        for result in results:
            self._stats(result.id).matches += 1
            self.report.total_matches += 1

    def add_extraction_results(self, results: Dict[str, ExtractionResult]) -> None:
        """Add extraction outcomes (top-level and nested) per signature."""
        for result in results.values():
            stats = self._stats(result.signature_id)
            self.report.total_extractions += 1
            if result.success:
                stats.extracted += 1
                stats.total_bytes += result.size or 0
                self.report.total_succeeded += 1
                self.report.total_bytes_extracted += result.size or 0
            else:
                stats.failed += 1
                self.report.total_failed += 1
                self.report.failures.append({"key": result.key, "extractor": result.extractor, "error": result.error})

    def generate_text_report(self) -> str:
        """Generate a human-readable text report."""
        lines: List[str] = []

        # Header
        lines.append("=" * 70)
        lines.append("SIGNATURE SCAN AND EXTRACTION REPORT")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"Target File:  {self.report.target_file}")
        lines.append(f"Target Size:  {self._format_size(self.report.target_size)}")
        lines.append(f"Extracted:    {self.report.extraction_time}")
        lines.append("")

        lines.append("-" * 70)
        lines.append("SIGNATURES")
        lines.append("-" * 70)
        lines.append(f"Top-level Matches:  {self.report.total_matches:,}")
        lines.append(f"Extractions:        {self.report.total_extractions:,} ({self.report.total_succeeded:,} ok, {self.report.total_failed:,} failed)")
        lines.append(f"Extracted Size:     {self._format_size(self.report.total_bytes_extracted)}")
        lines.append("")

        if self.report.by_signature:
            lines.append(f"{'Signature':<20} {'Matches':>9} {'Extracted':>10} {'Failed':>8} {'Size':>15}")
            lines.append("-" * 66)
            for signature_id, stats in sorted(self.report.by_signature.items(), key=lambda x: -x[1].total_bytes):
                name = signature_id if len(signature_id) <= 19 else signature_id[:16] + "..."
                lines.append(f"{name:<20} {stats.matches:>9,} {stats.extracted:>10,} {stats.failed:>8,} {self._format_size(stats.total_bytes):>15}")
            lines.append("")

        if self.report.failures:
            lines.append("-" * 70)
            lines.append("FAILURES")
            lines.append("-" * 70)
            for failure in self.report.failures:
                reason = failure["error"] or "no extractor"
                lines.append(f"  {failure['key']} [{failure['extractor']}]: {reason}")
            lines.append("")

        lines.append("=" * 70)
        return "\n".join(lines)

    def save_report(self) -> Path:
        """Save the report to the output directory."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

        text_path = self.output_dir / "extraction_report.txt"
        with open(text_path, "w", encoding="utf-8") as f:
            f.write(self.generate_text_report())

        json_path = self.output_dir / "extraction_report.json"
        report_dict = {
            "target_file": self.report.target_file,
            "target_size": self.report.target_size,
            "extraction_time": self.report.extraction_time,
            "version": self.report.version,
            "total_matches": self.report.total_matches,
            "total_extractions": self.report.total_extractions,
            "total_succeeded": self.report.total_succeeded,
            "total_failed": self.report.total_failed,
            "total_bytes_extracted": self.report.total_bytes_extracted,
            "by_signature": {
                k: {"matches": v.matches, "extracted": v.extracted, "failed": v.failed, "total_bytes": v.total_bytes}
                for k, v in self.report.by_signature.items()
            },
            "failures": self.report.failures,
        }

        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(report_dict, f, indent=2)

        logger.debug(f"Saved report to {text_path}")
        return text_path

    @staticmethod
    def _format_size(size: float) -> str:
        """Format size in human-readable form."""
        for unit in ["B", "KB", "MB", "GB"]:
            if abs(size) < 1024:
                return f"{size:.2f} {unit}" if unit != "B" else f"{size} {unit}"
            size /= 1024
        return f"{size:.2f} TB"
