"""
Parallel extraction: fan the oracle out over document units with a bounded
thread pool, then merge in document order and drop cross-unit duplicates.

A failed unit only costs its own items. The run raises only when the oracle
itself is unusable.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

from menufacts.config import settings
from menufacts.errors import OracleUnavailableError
from menufacts.states.state import DocumentUnit, ExtractedItem, PipelineProgress
from menufacts.tools.extraction_tools import (
    ExtractionHint,
    ExtractionOracle,
    UnitExtraction,
    extract_unit,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PipelineProgress], None]


@dataclass
class ExtractionRun:
    items: list[ExtractedItem] = field(default_factory=list)
    failed_units: list[int] = field(default_factory=list)


class _DiscoveryAccumulator:
    """Categories and item count found by completed units. Snapshots are immutable."""

    def __init__(self):
        self._lock = threading.Lock()
        self._categories: list[str] = []
        self._items = 0

    def snapshot(self) -> ExtractionHint:
        with self._lock:
            return ExtractionHint(categories=tuple(self._categories), items_so_far=self._items)

    def record(self, result: UnitExtraction) -> None:
        with self._lock:
            self._items += len(result.items)
            for item in result.items:
                if item.category and item.category not in self._categories:
                    self._categories.append(item.category)


def _notify(on_progress: ProgressCallback | None, progress: PipelineProgress) -> None:
    """Progress reporting must never change the outcome of a run."""
    if on_progress is None:
        return
    try:
        on_progress(progress)
    except Exception as e:
        logger.warning("Progress callback failed (%s): %s", progress.status, e)


def normalize_name(name: str | None) -> str | None:
    """Blank names normalize to None so they never collapse into one another."""
    key = name.strip().lower() if name else ""
    return key or None


def merge_unit_results(results: list[UnitExtraction]) -> ExtractionRun:
    """
    Merge per-unit results in unit order. The first item with a given
    normalized name wins; unnamed items are kept for the validator to flag.
    """
    run = ExtractionRun()
    seen: set[str] = set()
    for result in sorted(results, key=lambda r: r.unit_number):
        if result.failed:
            run.failed_units.append(result.unit_number)
            continue
        for item in result.items:
            key = normalize_name(item.name)
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            run.items.append(item)
    return run


def run_parallel_extraction(
    units: list[DocumentUnit],
    restaurant_name: str,
    oracle: ExtractionOracle,
    on_progress: ProgressCallback | None = None,
    max_workers: int | None = None,
) -> ExtractionRun:
    """
    Extract every unit with at most max_workers oracle calls in flight.

    Each unit gets a snapshot of the categories discovered so far, taken when its
    call starts; units finishing later never change what an in-flight call saw.
    on_progress is only ever called from this thread.
    """
    max_workers = max(1, max_workers or settings.extraction_concurrency)
    total = len(units)
    accumulator = _DiscoveryAccumulator()

    def _work(unit: DocumentUnit) -> UnitExtraction:
        result = extract_unit(oracle, unit, restaurant_name, accumulator.snapshot(), total_units=total)
        if not result.failed:
            accumulator.record(result)
        return result

    _notify(on_progress, PipelineProgress(total_units=total, status="processing"))

    results: list[UnitExtraction] = []
    completed = 0
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_work, unit): unit for unit in units}

        for future in as_completed(futures):
            unit = futures[future]
            try:
                result = future.result()
            except OracleUnavailableError:
                for pending in futures:
                    pending.cancel()
                raise
            except Exception as e:
                logger.error("Unit %d crashed during extraction: %s", unit.number, e)
                result = UnitExtraction(unit_number=unit.number, error=str(e) or type(e).__name__)

            results.append(result)
            completed += 1
            _notify(on_progress, PipelineProgress(
                total_units=total,
                completed_units=completed,
                current_unit=unit.number,
                status="processing",
            ))

    _notify(on_progress, PipelineProgress(total_units=total, completed_units=total, status="merging"))

    run = merge_unit_results(results)
    if run.failed_units:
        logger.warning("Failed to extract units: %s", ", ".join(str(n) for n in run.failed_units))
    logger.info(
        "Parallel extraction complete: %d units, %d items after dedupe, %d failed units",
        total, len(run.items), len(run.failed_units),
    )
    return run
