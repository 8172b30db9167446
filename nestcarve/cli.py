"""
nestcarve command line

Finds files embedded inside other files and, optionally, extracts them.

Usage:
  # List the signatures found in a firmware image
  python main.py firmware.bin

  # Extract everything, recursing into extracted files
  python main.py firmware.bin --extract
  nestcarve firmware.bin --extract
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .carver import Carver
from .config import DEFAULT_MAX_DEPTH, DEFAULT_OUTPUT_DIR
from .errors import ConfigError
from .file_signatures import SignatureRegistry, build_default_registry, get_signature_info
from .resolver import AnalysisResults
from .utils import format_size


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def format_scan_results(results: AnalysisResults) -> str:
    """Render scan results as a table."""
    lines = [f"{'DECIMAL':<12} {'HEXADECIMAL':<14} {'CONFIDENCE':<11} DESCRIPTION", "-" * 78]
    for result in results:
        lines.append(f"{result.offset:<12} {'0x%X' % result.offset:<14} {result.confidence_display:<11} {result.description}")
    lines.append("")
    lines.append(f"Analyzed {len(results)} signature match(es)")
    return "\n".join(lines)


def format_signature_list(registry: SignatureRegistry) -> str:
    """Render the known signatures as a table."""
    lines = [f"{'ID':<16} {'PATTERN':<28} {'EXTRACTOR':<10} DESCRIPTION", "-" * 78]
    for rule in registry:
        info = get_signature_info(registry, rule.id)
        lines.append(f"{info['id']:<16} {info['pattern']:<28} {info['extractor']:<10} {info['description']}")
    return "\n".join(lines)


def process_target(carver: Carver, extract: bool, logger: logging.Logger) -> int:
    """Scan the configured target and optionally extract what was found."""
    data = carver.read_target()
    logger.info(f"Target: {carver.base_target_file} ({format_size(len(data))})")

    results = carver.scan(data)
    print(format_scan_results(results))

    if not extract:
        return 0

    extraction = carver.extract(data, carver.base_target_file, results)
    report_path = carver.save_report(len(data), results, extraction, version=__version__)
    succeeded = sum(1 for r in extraction.values() if r.success)
    logger.info(f"Extracted {succeeded} of {len(extraction)} match(es)")
    logger.info(f"Report saved to: {report_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Identify and extract files embedded inside other files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan only
  python main.py firmware.bin

  # Extract into ./out, only gzip and PNG data
  python main.py firmware.bin -e -o out --include gzip png

  # Exhaustive search, no recursion
  python main.py dump.bin -e -a -d 0

Output Structure:
  <output>/
    ├── extraction_report.txt               # Human-readable summary
    ├── extraction_report.json              # Machine-readable report
    └── <file>.extracted/<OFFSET>_<id>/     # One directory per match
          └── <file>.extracted/...          # Nested extractions
""",
    )

    parser.add_argument("path", nargs="?", help="File to analyze")
    parser.add_argument("-e", "--extract", action="store_true", help="Extract files from the identified signatures")
    parser.add_argument(
        "-o",
        "--output",
        default=DEFAULT_OUTPUT_DIR,
        help=f"Extraction output directory (default: ./{DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument("-y", "--include", nargs="+", default=[], help="Only use these signatures (ids or names)")
    parser.add_argument("-x", "--exclude", nargs="+", default=[], help="Never use these signatures (ids or names)")
    parser.add_argument("-a", "--search-all", action="store_true", help="Search every offset, including inside already identified data")
    parser.add_argument(
        "-d",
        "--depth",
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f"Levels of extracted files to rescan (default: {DEFAULT_MAX_DEPTH}, 0 disables recursion)",
    )
    parser.add_argument("--max-extractions", type=int, default=None, help="Maximum extraction attempts per input file")
    parser.add_argument("-j", "--workers", type=int, default=1, help="Worker threads for scanning and extraction (default: 1)")
    parser.add_argument("--progress", action="store_true", help="Show progress bars")
    parser.add_argument("--list", action="store_true", help="List supported signatures and exit")
    parser.add_argument("--log-file", help="Also write log output to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"nestcarve v{__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)
    logger = logging.getLogger(__name__)

    if args.list:
        print(format_signature_list(build_default_registry()))
        return 0

    if not args.path:
        parser.error("a target file is required")

    try:
        carver = Carver.configure(
            args.path,
            args.output,
            include=args.include,
            exclude=args.exclude,
            full_search=args.search_all,
            max_depth=args.depth,
            max_extractions=args.max_extractions,
            scan_workers=args.workers,
            extract_workers=args.workers,
            show_progress=args.progress,
        )
    except ConfigError as e:
        logger.error(str(e))
        return 1

    try:
        return process_target(carver, args.extract, logger)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except OSError as e:
        logger.error(f"Error processing {args.path}: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1
