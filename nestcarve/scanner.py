"""
Pattern scanner: finds every signature hit in a buffer and validates it.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

from tqdm import tqdm

from .file_signatures import SignatureRegistry, SignatureRule
from .models import ScanMatch, ValidationOutcome

logger = logging.getLogger(__name__)


class PatternScanner:
    """Signature scanner over an in-memory buffer."""

    def __init__(
        self,
        registry: SignatureRegistry,
        full_search: bool = False,
        workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        show_progress: bool = False,
    ) -> None:
        """
        Initialize the scanner.

        Args:
            registry: Signature rules to look for
            full_search: Examine every offset where a pattern occurs, including
                offsets inside structures that were already validated
            workers: Number of threads; each rule is searched independently
            cancel_event: When set, scanning stops and the hits found so far are returned
            show_progress: Display a tqdm progress bar over the rules
        """
        self.registry = registry
        self.full_search = full_search
        self.workers = max(1, workers)
        self.cancel_event = cancel_event
        self.show_progress = show_progress

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def scan(self, data: bytes) -> List[ScanMatch]:
        """
        Find all validated signature hits in data.

        The returned list is sorted by offset, then by descending confidence,
        then by registry order, whatever the number of workers.
        """
        if not data:
            return []
        if not isinstance(data, bytes):
            # Scan an immutable snapshot so callers can't change it underneath us
            data = bytes(data)

        rules = list(enumerate(self.registry))
        matches: List[ScanMatch] = []

        with tqdm(total=len(rules), unit="sig", desc="Scanning", leave=False, disable=not self.show_progress) as pbar:
            if self.workers > 1 and len(rules) > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    futures = [pool.submit(self._scan_rule, data, rule, order) for order, rule in rules]
                    for future in as_completed(futures):
                        matches.extend(future.result())
                        pbar.update(1)
            else:
                for order, rule in rules:
                    if self.cancelled:
                        break
                    matches.extend(self._scan_rule(data, rule, order))
                    pbar.update(1)

        if self.cancelled:
            logger.warning(f"Scan cancelled, returning {len(matches)} match(es) found so far")

        matches.sort(key=ScanMatch.sort_key)
        return matches

    def _scan_rule(self, data: bytes, rule: SignatureRule, order: int) -> List[ScanMatch]:
        """Search for a specific signature across the whole buffer."""
        pattern = rule.pattern
        anchor = pattern.anchor
        matches: List[ScanMatch] = []

        # Position of the anchor for the first possible hit
        search_pos = pattern.anchor_offset + rule.magic_offset

        while not self.cancelled:
            anchor_pos = data.find(anchor, search_pos)
            if anchor_pos == -1:
                break

            hit = anchor_pos - pattern.anchor_offset
            search_pos = anchor_pos + 1

            if not pattern.matches_at(data, hit):
                continue

            offset = hit - rule.magic_offset
            match = self._validate(data, rule, order, offset)
            if match is None:
                continue
            matches.append(match)

            if not self.full_search:
                # Resume after the structure we just confirmed
                span = max(match.size or 0, pattern.length)
                search_pos = max(search_pos, offset + span + rule.magic_offset + pattern.anchor_offset)

        return matches

    def _validate(self, data: bytes, rule: SignatureRule, order: int, offset: int) -> Optional[ScanMatch]:
        """Run the rule's validator on a raw hit. None means the hit was rejected."""
        if rule.validator is None:
            return ScanMatch(signature_id=rule.id, offset=offset, confidence=rule.confidence, description=rule.description, order=order)

        try:
            outcome = rule.validator(data, offset)
        except Exception as e:
            logger.warning(f"Validator for {rule.id} failed at offset {offset:08X}: {e}")
            return None

        if not isinstance(outcome, ValidationOutcome):
            return None

        size = outcome.size if outcome.size is not None and outcome.size >= 0 else None
        return ScanMatch(
            signature_id=rule.id,
            offset=offset,
            confidence=outcome.confidence if outcome.confidence is not None else rule.confidence,
            size=size,
            description=outcome.description or rule.description,
            order=order,
        )
