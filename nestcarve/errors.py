"""
Exception types raised by the scanning and extraction engine.

Per-match problems (rejected hits, missing or failing extractors, filesystem
errors while extracting) are recorded in the results and never raised.
"""


class NestCarveError(Exception):
    """Base class for all engine errors."""


class ConfigError(NestCarveError):
    """Invalid session configuration (missing target, bad output path)."""


class InternalConsistencyError(NestCarveError):
    """A defect in the engine itself. Aborts the run."""


class AggregatorKeyCollision(InternalConsistencyError):
    """Two extraction results were derived with the same key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate extraction result key: {key}")
        self.key = key
