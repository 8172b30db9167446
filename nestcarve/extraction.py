"""
Extraction orchestrator: runs extractors over resolved matches and rescans
whatever they write, level by level, until nothing new turns up.
"""

import logging
import os
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from tqdm import tqdm

from .file_signatures import SignatureRegistry
from .models import ExtractionOutcome
from .report import ExtractionResult, ResultAggregator, result_key
from .resolver import AnalysisResult, AnalysisResults
from .utils import extraction_directory, format_size, is_within_directory, sha256_digest

logger = logging.getLogger(__name__)

# (path of an extracted file, depth it will be scanned at)
Task = Tuple[str, int]


class _RunState:
    """Attempt budget shared by every unit of one input."""

    def __init__(self, max_extractions: int, input_digest: str) -> None:
        self.max_extractions = max_extractions
        self.input_digest = input_digest
        self.attempts = 0
        self.limit_hit = False
        self._lock = threading.Lock()

    def take_attempt(self) -> bool:
        with self._lock:
            if self.attempts >= self.max_extractions:
                first = not self.limit_hit
                self.limit_hit = True
                if first:
                    logger.warning(f"Extraction limit of {self.max_extractions} reached, remaining matches are recorded as not extracted")
                return False
            self.attempts += 1
            return True


class ExtractionOrchestrator:
    """Drives extractors and the recursive rescan of their output."""

    def __init__(
        self,
        registry: SignatureRegistry,
        analyze: Callable[[bytes], AnalysisResults],
        output_root: str,
        max_depth: int = 8,
        max_extractions: int = 10000,
        workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        show_progress: bool = False,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Rules used to look up each match's extractor
            analyze: Scan + resolve function applied to every extracted file
            output_root: Directory the extraction tree is created under
            max_depth: Levels of nested files to rescan (0 = no recursion)
            max_extractions: Extraction attempts allowed per input
            workers: Threads used for independent top-level matches
            cancel_event: When set, no further extractions are started
            show_progress: Display a tqdm progress bar over top-level matches
        """
        self.registry = registry
        self.analyze = analyze
        self.output_root = output_root
        self.max_depth = max_depth
        self.max_extractions = max_extractions
        self.workers = max(1, workers)
        self.cancel_event = cancel_event
        self.show_progress = show_progress

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def extract(self, data: bytes, source_path: str, results: Iterable[AnalysisResult]) -> Dict[str, ExtractionResult]:
        """
        Extract every match in results, then recurse into the extracted files.

        Each top-level match and everything nested below it is one unit. Units
        may run in parallel; they share only the attempt budget, and their
        results are merged in match order.

        Returns:
            Mapping of result key to ExtractionResult for the whole run
        """
        if not isinstance(data, bytes):
            data = bytes(data)

        state = _RunState(self.max_extractions, sha256_digest(data))

        units = list(results)
        batches: List[List[ExtractionResult]] = []

        with tqdm(total=len(units), unit="match", desc="Extracting", leave=False, disable=not self.show_progress) as pbar:
            if self.workers > 1 and len(units) > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    futures = [pool.submit(self._run_unit, data, source_path, match, state) for match in units]
                    for future in futures:
                        batches.append(future.result())
                        pbar.update(1)
            else:
                for match in units:
                    if self.cancelled:
                        break
                    batches.append(self._run_unit(data, source_path, match, state))
                    pbar.update(1)

        if self.cancelled:
            logger.warning("Extraction cancelled, returning results gathered so far")

        aggregator = ResultAggregator()
        for batch in batches:
            aggregator.extend(batch)

        self._print_statistics(aggregator)
        return aggregator.results()

    def _run_unit(self, data: bytes, source_path: str, match: AnalysisResult, state: _RunState) -> List[ExtractionResult]:
        """Extract one top-level match, then work through the queue of files it produced."""
        if self.cancelled:
            return []

        result, written = self._extract_match(data, source_path, match, self.output_root, 0, state)
        results = [result]
        # Content already scanned in this unit, starting with the input itself
        seen: Set[str] = {state.input_digest}

        queue: Deque[Task] = deque()
        if self.max_depth >= 1:
            queue.extend((path, 1) for path in written)

        while queue and not self.cancelled:
            path, depth = queue.popleft()
            results.extend(self._rescan(path, depth, state, seen, queue))

        return results

    def _rescan(self, path: str, depth: int, state: _RunState, seen: Set[str], queue: Deque[Task]) -> List[ExtractionResult]:
        """Scan an extracted file and extract whatever it contains."""
        try:
            with open(path, "rb") as f:
                file_data = f.read()
        except OSError as e:
            logger.warning(f"Could not read extracted file {path}: {e}")
            return []

        if not file_data:
            return []
        digest = sha256_digest(file_data)
        if digest in seen:
            logger.debug(f"Skipping {path}: identical content was already scanned")
            return []
        seen.add(digest)

        matches = self.analyze(file_data)
        if not matches:
            return []
        logger.debug(f"Depth {depth}: {len(matches)} signature(s) in {path}")

        base_dir = os.path.dirname(path)
        results: List[ExtractionResult] = []
        for match in matches:
            if self.cancelled:
                break
            result, written = self._extract_match(file_data, path, match, base_dir, depth, state)
            results.append(result)
            if depth < self.max_depth:
                queue.extend((child, depth + 1) for child in written)

        return results

    def _extract_match(
        self, data: bytes, source_path: str, match: AnalysisResult, base_dir: str, depth: int, state: _RunState
    ) -> Tuple[ExtractionResult, List[str]]:
        """
        Run the extractor for a single match.

        Returns:
            The result plus the files worth rescanning. Matches past the
            extraction budget are recorded as failed without running anything.
        """
        key = result_key(source_path, match.offset, match.id)
        rule = self.registry.get(match.id)

        if rule is None or rule.extractor is None:
            logger.debug(f"No extractor for {match.id} at offset {match.offset:08X}")
            result = ExtractionResult(
                key=key,
                size=None,
                success=False,
                extractor="none",
                output_directory="",
                signature_id=match.id,
                offset=match.offset,
                source_path=source_path,
                depth=depth,
                error="no extractor registered",
            )
            return result, []

        extractor = rule.extractor
        if not state.take_attempt():
            result = ExtractionResult(
                key=key,
                size=None,
                success=False,
                extractor=extractor.name,
                output_directory="",
                signature_id=match.id,
                offset=match.offset,
                source_path=source_path,
                depth=depth,
                error="extraction limit reached",
            )
            return result, []

        output_dir = extraction_directory(base_dir, source_path, match.offset, match.id)
        result = ExtractionResult(
            key=key,
            size=None,
            success=False,
            extractor=extractor.name,
            output_directory=output_dir,
            signature_id=match.id,
            offset=match.offset,
            source_path=source_path,
            depth=depth,
        )

        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            result.error = f"could not create output directory: {e}"
            logger.warning(f"Failed to extract {match.id} at offset {match.offset:08X}: {result.error}")
            return result, []

        try:
            outcome = extractor.extract(data, match.offset, output_dir)
        except Exception as e:
            outcome = ExtractionOutcome(success=False, error=str(e) or type(e).__name__)
        if not isinstance(outcome, ExtractionOutcome):
            outcome = ExtractionOutcome(success=False, error="extractor returned no outcome")

        if not outcome.success:
            result.error = outcome.error or "extraction failed"
            logger.warning(f"Failed to extract {match.id} at offset {match.offset:08X} with {extractor.name}: {result.error}")
            self._remove_if_empty(output_dir)
            return result, []

        written = self._collect_written(outcome, output_dir)
        escaped = [p for p in written if not is_within_directory(p, output_dir)]
        if escaped:
            result.error = f"extractor wrote outside its output directory: {', '.join(escaped)}"
            logger.warning(f"Failed to extract {match.id} at offset {match.offset:08X}: {result.error}")
            return result, []

        files = [p for p in written if os.path.isfile(p) and not os.path.islink(p)]
        result.success = True
        result.written_files = files
        result.size = outcome.size if outcome.size is not None else (sum(os.path.getsize(p) for p in files) if files else None)

        size_text = format_size(result.size) if result.size is not None else "unknown size"
        logger.debug(f"Extracted {match.id} at offset {match.offset:08X} ({size_text}) -> {output_dir}")
        return result, files

    @staticmethod
    def _collect_written(outcome: ExtractionOutcome, output_dir: str) -> List[str]:
        """Files the extractor reports, or everything under output_dir if it reported none."""
        paths = [os.path.join(output_dir, p) for p in outcome.written_paths]
        if not paths:
            for root, dirs, files in os.walk(output_dir):
                dirs.sort()
                paths.extend(os.path.join(root, name) for name in sorted(files))
        return list(dict.fromkeys(paths))

    @staticmethod
    def _remove_if_empty(directory: str) -> None:
        try:
            if not os.listdir(directory):
                os.rmdir(directory)
        except OSError as e:
            logger.debug(f"Could not remove {directory}: {e}")

    def _print_statistics(self, aggregator: ResultAggregator) -> None:
        """Log extraction statistics."""
        summary = aggregator.summary()
        if not summary:
            return
        logger.info("=== Extraction Statistics ===")
        for signature_id, stats in sorted(summary.items()):
            logger.info(f"  {signature_id:20s}: {stats['succeeded']:5d} extracted, {stats['failed']:5d} failed")
        logger.info(f"  {'Total':20s}: {len(aggregator.succeeded):5d} extracted, {len(aggregator.failed):5d} failed")
