"""
nestcarve: find files embedded inside other files

Scans firmware images, disk images and memory dumps for known file-format
signatures at any offset and, optionally, extracts what it finds,
recursing into every extracted file.

Features:
- Wildcard byte patterns with per-format structural validation
- Include/exclude signature filters
- Recursive, collision-safe extraction with depth and attempt limits
"""

__version__ = "1.0.0"

from .carver import Carver, configure, extract_file, scan_file
from .config import Configuration
from .errors import AggregatorKeyCollision, ConfigError, InternalConsistencyError, NestCarveError
from .extractors import CarveExtractor, Extractor, FunctionExtractor, GzipExtractor, ZlibExtractor
from .file_signatures import BytePattern, SignatureRegistry, SignatureRule, build_default_registry, get_signature_info
from .models import Confidence, ExtractionOutcome, ScanMatch, ValidationOutcome
from .report import ExtractionResult, ReportGenerator, ResultAggregator
from .resolver import AnalysisResult, AnalysisResults, MatchResolver
from .scanner import PatternScanner

__all__ = [
    # Session
    "Carver",
    "Configuration",
    "configure",
    "scan_file",
    "extract_file",
    # Signatures
    "BytePattern",
    "SignatureRule",
    "SignatureRegistry",
    "build_default_registry",
    "get_signature_info",
    "Confidence",
    "ValidationOutcome",
    # Scanning
    "PatternScanner",
    "ScanMatch",
    "MatchResolver",
    "AnalysisResult",
    "AnalysisResults",
    # Extraction
    "Extractor",
    "FunctionExtractor",
    "CarveExtractor",
    "ZlibExtractor",
    "GzipExtractor",
    "ExtractionOutcome",
    "ExtractionResult",
    "ResultAggregator",
    "ReportGenerator",
    # Errors
    "NestCarveError",
    "ConfigError",
    "InternalConsistencyError",
    "AggregatorKeyCollision",
]
