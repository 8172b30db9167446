"""
Types shared between the scanner, the validators and the extractors.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional


class Confidence(IntEnum):
    """How likely a signature hit is a true positive. Higher is better."""

    LOW = 0
    MEDIUM = 128
    HIGH = 250

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> "Confidence":
        """Look up a tier by its display name ("low", "medium", "high")."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown confidence tier: {value!r}") from None


@dataclass(frozen=True)
class ValidationOutcome:
    """What a structural validator learned about a hit it accepted."""

    confidence: Optional[Confidence] = None  # None = use the rule default
    size: Optional[int] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ScanMatch:
    """A raw, validated signature hit."""

    signature_id: str
    offset: int
    confidence: Confidence
    size: Optional[int] = None
    description: str = ""
    order: int = 0  # Registry declaration index, used as the final tie-break

    def sort_key(self):
        return (self.offset, -int(self.confidence), self.order)


@dataclass
class ExtractionOutcome:
    """What an extractor reports back to the orchestrator."""

    success: bool
    size: Optional[int] = None  # Bytes consumed from the source buffer
    written_paths: List[str] = field(default_factory=list)
    error: str = ""
