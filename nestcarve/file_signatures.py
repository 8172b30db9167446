"""
Signature rules and the registry the scanner reads them from.

A rule pairs a byte pattern with an optional structural validator and an
optional extractor. The built-in registry covers a handful of common formats;
callers can build their own registry from any list of rules.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .extractors import CarveExtractor, Extractor, GzipExtractor, ZlibExtractor
from .models import Confidence, ValidationOutcome
from .parsers import DDSParser, GzipParser, PNGParser, RIFFParser, ZlibStreamParser

# Validator contract: (buffer, offset) -> outcome, or None to reject the hit
Validator = Callable[[bytes, int], Optional[ValidationOutcome]]

# Common magic bytes
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
DDS_MAGIC = b"DDS "
RIFF_MAGIC = b"RIFF"
GZIP_MAGIC = "1f 8b 08"  # ID1 ID2 + deflate method

# Zlib compression headers (CMF + FLG)
# CMF 0x78 = deflate compression with 32K window
ZLIB_DEFAULT = b"\x78\x9c"  # Default compression
ZLIB_BEST = b"\x78\xda"  # Best compression

_HEX_TOKEN = re.compile(r"\?\?|[0-9a-fA-F]{2}")


class BytePattern:
    """
    A byte sequence where some positions may be wildcards.

    The longest run of fixed bytes is used as the search anchor; the scanner
    jumps between anchor occurrences with bytes.find and only then checks the
    rest of the pattern.
    """

    def __init__(self, values: Sequence[Optional[int]]) -> None:
        values = tuple(values)
        if not values:
            raise ValueError("Byte pattern is empty")
        for value in values:
            if value is not None and not 0 <= value <= 0xFF:
                raise ValueError(f"Byte value out of range: {value!r}")
        if all(value is None for value in values):
            raise ValueError("Byte pattern needs at least one fixed byte")

        self.values: Tuple[Optional[int], ...] = values
        self.anchor, self.anchor_offset = self._find_anchor(values)
        anchor_end = self.anchor_offset + len(self.anchor)
        # Fixed bytes outside the anchor, checked after the anchor matched
        self._checks: Tuple[Tuple[int, int], ...] = tuple(
            (index, value) for index, value in enumerate(values) if value is not None and not self.anchor_offset <= index < anchor_end
        )

    @staticmethod
    def _find_anchor(values: Tuple[Optional[int], ...]) -> Tuple[bytes, int]:
        best_start, best_len = 0, 0
        run_start = None
        for index, value in enumerate(values + (None,)):
            if value is not None:
                if run_start is None:
                    run_start = index
                continue
            if run_start is not None:
                if index - run_start > best_len:
                    best_start, best_len = run_start, index - run_start
                run_start = None
        return bytes(values[best_start : best_start + best_len]), best_start  # type: ignore[arg-type]

    @classmethod
    def from_hex(cls, text: str) -> "BytePattern":
        """Parse a pattern like "1f 8b 08 ?? ??" (whitespace optional)."""
        compact = "".join(text.split())
        tokens = _HEX_TOKEN.findall(compact)
        if "".join(tokens) != compact:
            raise ValueError(f"Invalid hex pattern: {text!r}")
        return cls([None if token == "??" else int(token, 16) for token in tokens])

    @classmethod
    def coerce(cls, pattern: Union["BytePattern", bytes, str]) -> "BytePattern":
        if isinstance(pattern, BytePattern):
            return pattern
        if isinstance(pattern, (bytes, bytearray)):
            return cls(list(pattern))
        if isinstance(pattern, str):
            return cls.from_hex(pattern)
        raise TypeError(f"Cannot build a byte pattern from {type(pattern).__name__}")

    @property
    def length(self) -> int:
        return len(self.values)

    @property
    def is_literal(self) -> bool:
        return len(self.anchor) == len(self.values)

    def matches_at(self, data: bytes, position: int) -> bool:
        """Check the whole pattern against data starting at position."""
        if position < 0 or position + len(self.values) > len(data):
            return False
        anchor_start = position + self.anchor_offset
        if data[anchor_start : anchor_start + len(self.anchor)] != self.anchor:
            return False
        for index, value in self._checks:
            if data[position + index] != value:
                return False
        return True

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, BytePattern) and other.values == self.values

    def __hash__(self) -> int:
        return hash(self.values)

    def __repr__(self) -> str:
        return "BytePattern(%r)" % " ".join("??" if v is None else f"{v:02x}" for v in self.values)


@dataclass(frozen=True)
class SignatureRule:
    """One known file-format signature."""

    id: str
    name: str
    pattern: BytePattern
    description: str = ""
    confidence: Confidence = Confidence.MEDIUM
    validator: Optional[Validator] = field(default=None, compare=False)
    extractor: Optional[Extractor] = field(default=None, compare=False)
    # Distance from the start of the structure to the pattern (e.g. a magic
    # string that sits at byte 257 of a header)
    magic_offset: int = 0

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Signature id must not be empty")
        if self.magic_offset < 0:
            raise ValueError(f"Signature {self.id}: magic_offset must be >= 0")
        object.__setattr__(self, "pattern", BytePattern.coerce(self.pattern))
        if not self.description:
            object.__setattr__(self, "description", self.name)

    def matches_name(self, term: str) -> bool:
        """Case-insensitive comparison against the rule id and name."""
        term = term.strip().lower()
        return term in (self.id.lower(), self.name.lower())


class SignatureRegistry:
    """Ordered, read-only collection of signature rules."""

    def __init__(self, rules: Iterable[SignatureRule] = ()) -> None:
        self._rules: List[SignatureRule] = []
        self._by_id: Dict[str, SignatureRule] = {}
        for rule in rules:
            if rule.id in self._by_id:
                raise ValueError(f"Duplicate signature id: {rule.id}")
            self._by_id[rule.id] = rule
            self._rules.append(rule)

    def __iter__(self) -> Iterator[SignatureRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, signature_id: object) -> bool:
        return signature_id in self._by_id

    def get(self, signature_id: str) -> Optional[SignatureRule]:
        return self._by_id.get(signature_id)

    def ids(self) -> List[str]:
        return [rule.id for rule in self._rules]

    def lookup(self, term: str) -> List[SignatureRule]:
        """All rules whose id or name matches term."""
        return [rule for rule in self._rules if rule.matches_name(term)]

    def filtered(self, include: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None) -> "SignatureRegistry":
        """
        Return a new registry restricted by include/exclude terms.

        Declaration order is preserved. Exclude wins when a rule is named in both.
        """
        include_terms = [t for t in (include or []) if t.strip()]
        exclude_terms = [t for t in (exclude or []) if t.strip()]
        selected = []
        for rule in self._rules:
            if include_terms and not any(rule.matches_name(t) for t in include_terms):
                continue
            if any(rule.matches_name(t) for t in exclude_terms):
                continue
            selected.append(rule)
        return SignatureRegistry(selected)


def default_signatures() -> List[SignatureRule]:
    """The built-in rule set."""
    return [
        SignatureRule(
            id="png",
            name="PNG",
            description="PNG image",
            pattern=PNG_MAGIC,
            confidence=Confidence.MEDIUM,
            validator=PNGParser.validate,
            extractor=CarveExtractor(PNGParser.validate, ".png"),
        ),
        SignatureRule(
            id="gzip",
            name="gzip",
            description="gzip compressed data",
            pattern=GZIP_MAGIC,
            confidence=Confidence.MEDIUM,
            validator=GzipParser.validate,
            extractor=GzipExtractor(),
        ),
        SignatureRule(
            id="zlib_default",
            name="zlib",
            description="Zlib compressed stream (default)",
            pattern=ZLIB_DEFAULT,
            confidence=Confidence.LOW,
            validator=ZlibStreamParser.validate,
            extractor=ZlibExtractor(),
        ),
        SignatureRule(
            id="zlib_best",
            name="zlib-best",
            description="Zlib compressed stream (best)",
            pattern=ZLIB_BEST,
            confidence=Confidence.LOW,
            validator=ZlibStreamParser.validate,
            extractor=ZlibExtractor(),
        ),
        SignatureRule(
            id="dds",
            name="DDS",
            description="DirectDraw Surface texture",
            pattern=DDS_MAGIC,
            confidence=Confidence.LOW,
            validator=DDSParser.validate,
            extractor=CarveExtractor(DDSParser.validate, ".dds"),
        ),
        SignatureRule(
            id="riff",
            name="RIFF",
            description="RIFF container",
            pattern=RIFF_MAGIC,
            confidence=Confidence.LOW,
            validator=RIFFParser.validate,
            extractor=CarveExtractor(RIFFParser.validate, ".riff"),
        ),
    ]


def build_default_registry() -> SignatureRegistry:
    """Build a fresh registry holding the built-in rules."""
    return SignatureRegistry(default_signatures())


def get_signature_info(registry: SignatureRegistry, signature_id: str) -> Dict[str, str]:
    """Get display information for a specific signature."""
    rule = registry.get(signature_id)
    if rule is None:
        return {}
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "pattern": " ".join("??" if v is None else f"{v:02x}" for v in rule.pattern.values),
        "confidence": str(rule.confidence),
        "extractor": rule.extractor.name if rule.extractor else "none",
    }
