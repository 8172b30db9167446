"""
Match resolver: turns raw scanner hits into the final, ordered result set.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .file_signatures import SignatureRegistry
from .models import Confidence, ScanMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """A finalized signature match."""

    id: str
    name: str
    description: str
    confidence: Confidence
    offset: int
    size: int = 0  # 0 when the validator could not bound the data

    @property
    def confidence_display(self) -> str:
        return str(self.confidence)

    def to_dict(self) -> Dict[str, str]:
        return {
            "description": self.description,
            "id": self.id,
            "name": self.name,
            "confidence": self.confidence_display,
            "offset": str(self.offset),
            "size": str(self.size),
        }


class AnalysisResults(tuple):
    """Immutable, offset-ordered sequence of AnalysisResult entries."""

    def __new__(cls, results: Iterable[AnalysisResult] = ()) -> "AnalysisResults":
        return super().__new__(cls, tuple(results))

    def at_offset(self, offset: int) -> List[AnalysisResult]:
        return [result for result in self if result.offset == offset]

    def with_id(self, signature_id: str) -> List[AnalysisResult]:
        return [result for result in self if result.id == signature_id]

    def to_dicts(self) -> List[Dict[str, str]]:
        return [result.to_dict() for result in self]


class MatchResolver:
    """Filter, order and finalize scanner hits."""

    def __init__(self, registry: SignatureRegistry, include: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None) -> None:
        self.registry = registry
        self.include = [t.strip().lower() for t in (include or []) if t.strip()]
        self.exclude = [t.strip().lower() for t in (exclude or []) if t.strip()]

        for term in self.include + self.exclude:
            if not registry.lookup(term):
                logger.warning(f"Signature filter '{term}' does not match any known signature")

    def _names_for(self, match: ScanMatch) -> List[str]:
        rule = self.registry.get(match.signature_id)
        if rule is None:
            return [match.signature_id.lower()]
        return [rule.id.lower(), rule.name.lower()]

    def is_selected(self, match: ScanMatch) -> bool:
        """Apply the include/exclude lists. Exclude always wins."""
        names = self._names_for(match)
        if self.include and not any(name in self.include for name in names):
            return False
        if any(name in self.exclude for name in names):
            return False
        return True

    def resolve(self, matches: Iterable[ScanMatch]) -> AnalysisResults:
        """
        Build the final result set.

        Ordering is offset ascending, then higher confidence first, then
        registry declaration order. Different signatures at the same offset
        are all kept; only exact (offset, signature) repeats collapse.
        """
        selected = sorted((m for m in matches if self.is_selected(m)), key=ScanMatch.sort_key)

        seen = set()
        results: List[AnalysisResult] = []
        for match in selected:
            identity = (match.offset, match.signature_id)
            if identity in seen:
                continue
            seen.add(identity)

            rule = self.registry.get(match.signature_id)
            results.append(
                AnalysisResult(
                    id=match.signature_id,
                    name=rule.name if rule else match.signature_id,
                    description=match.description or (rule.description if rule else ""),
                    confidence=match.confidence,
                    offset=match.offset,
                    size=match.size or 0,
                )
            )

        return AnalysisResults(results)
