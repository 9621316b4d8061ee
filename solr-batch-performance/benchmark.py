"""
Batch-size sweep harness for Solr ingestion strategies
"""

import sys
import math
import time
import uuid
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

import numpy as np
import pandas as pd

from config import (
    MIN_BATCH_SIZE, MAX_BATCH_SIZE, INCLUDE_MAX_BATCH_SIZE, TOTAL_NUM_DOCS,
    EXCLUDE_SYNTHESIS_TIME, RESULTS_DIR
)
from errors import (
    BenchmarkError, DegenerateTimingError, IngestionFailure, ResetFailure
)
from strategies import Document, IngestionStrategy, StrategySpec

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class SweepConfig:
    """
    Everything one sweep needs. Built once and never mutated.

    The batch-size range starts at `min_batch_size` and stops before
    `max_batch_size` unless `include_max_batch_size` is set.
    """

    strategies: Tuple[StrategySpec, ...]
    reset_hook: Callable[[], None]
    total_docs: int = TOTAL_NUM_DOCS
    min_batch_size: int = MIN_BATCH_SIZE
    max_batch_size: int = MAX_BATCH_SIZE
    include_max_batch_size: bool = INCLUDE_MAX_BATCH_SIZE
    exclude_synthesis_time: bool = EXCLUDE_SYNTHESIS_TIME

    def __post_init__(self):
        object.__setattr__(self, "strategies", tuple(self.strategies))

        if self.total_docs <= 0:
            raise ValueError(f"total_docs must be positive, got {self.total_docs}")
        if self.min_batch_size < 1:
            raise ValueError(f"min_batch_size must be at least 1, got {self.min_batch_size}")
        if not self.strategies:
            raise ValueError("At least one strategy is required")
        if len(self.batch_sizes) == 0:
            raise ValueError(
                f"Empty batch-size range: min={self.min_batch_size}, "
                f"max={self.max_batch_size}, include_max={self.include_max_batch_size}"
            )

        names = [spec.name for spec in self.strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"Strategy names must be unique, got {names}")

    @property
    def batch_sizes(self) -> range:
        stop = self.max_batch_size + 1 if self.include_max_batch_size else self.max_batch_size
        return range(self.min_batch_size, stop)

    @property
    def strategy_names(self) -> List[str]:
        return [spec.name for spec in self.strategies]


@dataclass
class Trial:
    """One measured run of a batch size against a strategy."""

    batch_size: int
    strategy: str
    docs_per_second: Optional[float] = None
    elapsed_seconds: Optional[float] = None
    synthesis_seconds: float = 0.0


@dataclass
class ReportRow:
    batch_size: int
    throughputs: Tuple[float, ...]


@dataclass
class Report:
    """Throughput table: one row per batch size, one column per strategy."""

    strategy_names: List[str]
    total_docs: int
    rows: List[ReportRow] = field(default_factory=list)
    cancelled: bool = False

    def add_row(self, batch_size: int, throughputs: Sequence[float]) -> ReportRow:
        if len(throughputs) != len(self.strategy_names):
            raise ValueError(
                f"Expected {len(self.strategy_names)} throughputs, got {len(throughputs)}"
            )
        row = ReportRow(batch_size, tuple(throughputs))
        self.rows.append(row)
        return row

    def csv_header(self) -> str:
        return ",".join(["BatchSize", *self.strategy_names])

    @staticmethod
    def csv_line(row: ReportRow) -> str:
        return ",".join([str(row.batch_size), *(f"{value:.2f}" for value in row.throughputs)])

    def to_dataframe(self) -> pd.DataFrame:
        data = [[row.batch_size, *row.throughputs] for row in self.rows]
        return pd.DataFrame(data, columns=["BatchSize", *self.strategy_names])


def create_batch(batch_size: int, total_docs: int, submitted: int) -> List[Document]:
    """
    Create the next batch of synthetic documents.

    The last batch is cut short so that no more than `total_docs` documents
    are produced overall. Ids continue from `submitted` (1-based).
    """
    count = min(batch_size, total_docs - submitted)
    return [
        {"id": str(submitted + offset), "text": str(uuid.uuid4())}
        for offset in range(1, count + 1)
    ]


def run_single_trial(
    strategy: IngestionStrategy,
    batch_size: int,
    total_docs: int,
    name: Optional[str] = None,
    exclude_synthesis_time: bool = False,
    clock: Clock = time.perf_counter
) -> Trial:
    """
    Index `total_docs` documents in batches of `batch_size` and time it.

    The stopwatch runs from just before the first batch is built until the
    final flush returns, so document synthesis is part of the measurement
    unless `exclude_synthesis_time` is set.

    Args:
        strategy: Open ingestion strategy
        batch_size: Documents per submit call
        total_docs: Documents to index in this trial
        name: Strategy label used in errors (defaults to strategy.name)
        exclude_synthesis_time: Subtract time spent building documents
        clock: Monotonic clock in seconds

    Returns:
        Completed Trial

    Raises:
        IngestionFailure: if submit or flush fails
        DegenerateTimingError: if no measurable time elapsed
    """
    name = name or getattr(strategy, "name", type(strategy).__name__)
    trial = Trial(batch_size=batch_size, strategy=name)
    submitted = 0

    start = clock()
    while submitted < total_docs:
        if exclude_synthesis_time:
            synth_start = clock()
            batch = create_batch(batch_size, total_docs, submitted)
            trial.synthesis_seconds += clock() - synth_start
        else:
            batch = create_batch(batch_size, total_docs, submitted)

        _call_strategy(strategy.submit, "submit", batch_size, name, batch)
        submitted += len(batch)

    _call_strategy(strategy.flush, "flush", batch_size, name)
    end = clock()

    elapsed = end - start
    if exclude_synthesis_time:
        elapsed -= trial.synthesis_seconds

    if elapsed <= 0:
        raise DegenerateTimingError(
            f"Elapsed time {elapsed!r}s is too small to compute a rate for {total_docs} docs",
            batch_size=batch_size,
            strategy=name,
            phase="timing"
        )

    docs_per_second = total_docs / elapsed
    if not math.isfinite(docs_per_second):
        raise DegenerateTimingError(
            f"Non-finite throughput {docs_per_second!r} over {elapsed!r}s",
            batch_size=batch_size,
            strategy=name,
            phase="timing"
        )

    trial.elapsed_seconds = elapsed
    trial.docs_per_second = docs_per_second
    return trial


def _call_strategy(operation, phase: str, batch_size: int, name: str, *args) -> None:
    try:
        operation(*args)
    except IngestionFailure as e:
        raise e.with_context(batch_size=batch_size, strategy=name, phase=phase)
    except Exception as e:
        raise IngestionFailure(
            f"{phase} raised {type(e).__name__}: {e}",
            batch_size=batch_size,
            strategy=name,
            phase=phase
        ) from e


def _emit(output: TextIO, line: str) -> None:
    output.write(line + "\n")
    output.flush()


def run_sweep(
    config: SweepConfig,
    output: Optional[TextIO] = None,
    cancel_event: Optional[threading.Event] = None,
    clock: Clock = time.perf_counter
) -> Report:
    """
    Run every strategy at every batch size and collect throughput.

    The collection is reset before each trial and each strategy instance
    lives only for its own trial. A CSV line is written to `output` as soon
    as a batch size has been measured for all strategies.

    Args:
        config: Sweep configuration
        output: Text stream for CSV lines (defaults to stdout)
        cancel_event: When set, the sweep stops before the next trial
        clock: Monotonic clock in seconds

    Returns:
        Report with one row per completed batch size

    Raises:
        ResetFailure: if the reset hook fails
        IngestionFailure: if a strategy fails
        DegenerateTimingError: if a trial produced no measurable time
    """
    output = output if output is not None else sys.stdout
    report = Report(strategy_names=config.strategy_names, total_docs=config.total_docs)
    batch_sizes = config.batch_sizes

    logger.info(
        f"Sweep started: batch sizes {batch_sizes.start}..{batch_sizes.stop - 1}, "
        f"{len(config.strategies)} strategies, {config.total_docs} docs per trial"
    )
    _emit(output, report.csv_header())

    for batch_size in batch_sizes:
        throughputs = []

        for spec in config.strategies:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    f"Sweep cancelled before batch size {batch_size} ({spec.name}); "
                    f"{len(report.rows)} rows completed"
                )
                report.cancelled = True
                return report

            _reset(config.reset_hook, batch_size, spec.name)

            try:
                strategy = spec.factory()
            except Exception as e:
                raise IngestionFailure(
                    f"Could not create strategy: {e}",
                    batch_size=batch_size,
                    strategy=spec.name,
                    phase="connect"
                ) from e

            try:
                with strategy:
                    trial = run_single_trial(
                        strategy,
                        batch_size,
                        config.total_docs,
                        name=spec.name,
                        exclude_synthesis_time=config.exclude_synthesis_time,
                        clock=clock
                    )
            except BenchmarkError as e:
                raise e.with_context(batch_size=batch_size, strategy=spec.name)

            logger.info(
                f"Batch size {batch_size} [{spec.name}]: "
                f"{trial.docs_per_second:.2f} docs/sec ({trial.elapsed_seconds:.2f}s)"
            )
            throughputs.append(trial.docs_per_second)

        row = report.add_row(batch_size, throughputs)
        _emit(output, report.csv_line(row))

    logger.info(f"Sweep finished: {len(report.rows)} rows")
    return report


def _reset(reset_hook: Callable[[], None], batch_size: int, name: str) -> None:
    try:
        reset_hook()
    except ResetFailure as e:
        raise e.with_context(batch_size=batch_size, strategy=name, phase="reset")
    except Exception as e:
        raise ResetFailure(
            f"Collection reset failed: {e}",
            batch_size=batch_size,
            strategy=name,
            phase="reset"
        ) from e


def save_report_csv(report: Report, results_dir: str = RESULTS_DIR) -> str:
    """Save the throughput table to CSV."""
    Path(results_dir).mkdir(parents=True, exist_ok=True)

    filename = f"batch_sweep_{report.total_docs}_docs.csv"
    filepath = Path(results_dir) / filename
    report.to_dataframe().to_csv(filepath, index=False)

    logger.info(f"Results saved to {filepath}")
    return str(filepath)


def summarize_report(report: Report) -> Dict[str, Dict]:
    """
    Calculate mean/std/min/max throughput per strategy.

    Returns:
        Dict keyed by strategy name, with the batch size that achieved the
        peak throughput under best_batch_size
    """
    if not report.rows:
        return {}

    batch_sizes = np.array([row.batch_size for row in report.rows])
    values = np.array([row.throughputs for row in report.rows], dtype=float)

    summary = {}
    for column, name in enumerate(report.strategy_names):
        series = values[:, column]
        best = int(np.argmax(series))
        summary[name] = {
            "mean_docs_per_sec": float(np.mean(series)),
            "std_docs_per_sec": float(np.std(series)),
            "min_docs_per_sec": float(np.min(series)),
            "max_docs_per_sec": float(np.max(series)),
            "best_batch_size": int(batch_sizes[best]),
        }
    return summary


def print_summary_table(summary: Dict[str, Dict]) -> None:
    """Print a formatted summary table to console."""
    logger.info("")
    logger.info("=" * 80)
    logger.info("BATCH SWEEP SUMMARY (docs/sec)")
    logger.info("=" * 80)

    header = (
        f"{'Strategy':>18} | {'Mean':>10} | {'Std':>10} | "
        f"{'Min':>10} | {'Max':>10} | {'Best batch':>10}"
    )
    logger.info(header)
    logger.info("-" * 80)

    for name, s in summary.items():
        row = (
            f"{name:>18} | "
            f"{s['mean_docs_per_sec']:>10.2f} | "
            f"{s['std_docs_per_sec']:>10.2f} | "
            f"{s['min_docs_per_sec']:>10.2f} | "
            f"{s['max_docs_per_sec']:>10.2f} | "
            f"{s['best_batch_size']:>10}"
        )
        logger.info(row)

    logger.info("=" * 80)
