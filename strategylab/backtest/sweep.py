"""Parameter sweep: runs the single-run engine once per parameter set.

Combinations are the cartesian product of the parameter ranges in a fixed
order, truncated at `max_combinations`. Runs fan out over a thread pool;
the bar sequence is shared read-only and every run owns its own state, so
results are identical to serial execution. Successful runs are ranked by
one result metric.
"""

from __future__ import annotations

import contextvars
import itertools
import math
import time
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from strategylab.backtest.config import BacktestConfig, BacktestInputError
from strategylab.backtest.runner import BacktestResult, run_backtest
from strategylab.config import VALID_RANK_METRICS
from strategylab.engine.signals import PARAM_ALIASES
from strategylab.market.types import Bar
from strategylab.script.inputs import Parameter, extract_inputs
from strategylab.script.suggest import smart_optimize_range

log = structlog.get_logger()

# Metrics where smaller is better
_ASCENDING_METRICS = frozenset({"maxDrawdown"})
_DECIMALS = 10


@dataclass(frozen=True)
class ParamRange:
    """Inclusive range of values to try for one parameter."""

    name: str
    min_value: float
    max_value: float
    step: float

    def values(self) -> list[float]:
        """All values from min to max in `step` increments (min alone if step <= 0)."""
        if self.step <= 0 or self.max_value <= self.min_value:
            return [self.min_value]
        count = math.floor((self.max_value - self.min_value) / self.step + 1e-9) + 1
        integral = float(self.min_value).is_integer() and float(self.step).is_integer()
        out: list[float] = []
        for k in range(count):
            v = round(self.min_value + k * self.step, _DECIMALS)
            out.append(int(v) if integral else v)
        return out


@dataclass(frozen=True)
class SweepEntry:
    """One ranked run."""

    rank: int
    params: dict[str, float]
    score: float
    result: BacktestResult


@dataclass(frozen=True)
class SweepResult:
    """Ranked outcome of a sweep."""

    rank_by: str
    total_combinations: int
    attempted: int
    failed: int
    truncated: bool
    top: list[SweepEntry] = field(default_factory=list)


def ranges_from_inputs(
    parameters: Sequence[Parameter],
    smart: bool = False,
) -> list[ParamRange]:
    """Sweep ranges from declared inputs (bounds, or name heuristics if smart)."""
    ranges: list[ParamRange] = []
    for p in parameters:
        if smart:
            r = smart_optimize_range(p)
            ranges.append(ParamRange(p.name, r.min_value, r.max_value, r.step))
        else:
            ranges.append(ParamRange(p.name, p.min_value, p.max_value, p.step))
    return ranges


def combination_count(ranges: Sequence[ParamRange]) -> int:
    return math.prod(len(r.values()) for r in ranges)


def iter_combinations(
    ranges: Sequence[ParamRange],
    max_combinations: int,
) -> Iterator[dict[str, float]]:
    """Yield at most `max_combinations` parameter sets, last range varying fastest."""
    names = [r.name for r in ranges]
    product = itertools.product(*(r.values() for r in ranges))
    for combo in itertools.islice(product, max_combinations):
        yield dict(zip(names, combo))


def run_sweep(
    bars: Sequence[Bar],
    source: str,
    ranges: Sequence[ParamRange],
    config: BacktestConfig,
    *,
    max_combinations: int = 1000,
    max_workers: int = 4,
    rank_by: str = "sharpeRatio",
    top_n: int = 10,
) -> SweepResult:
    """Run every combination (up to the cap) and rank the results.

    Raises BacktestInputError for an unknown rank metric or for a range
    naming a parameter the script neither declares nor the engine reads.
    A run rejected as bad input counts as failed; a BacktestInvariantError
    from any run is re-raised.
    """
    if rank_by not in VALID_RANK_METRICS:
        raise BacktestInputError(f"Unknown rank metric: {rank_by!r}")
    _check_range_names(source, ranges)

    total = combination_count(ranges)
    combos = list(iter_combinations(ranges, max_combinations))
    truncated = total > len(combos)
    log.info(
        "sweep_started",
        total_combinations=total,
        attempted=len(combos),
        truncated=truncated,
        workers=max_workers,
    )
    t0 = time.monotonic()

    def _run_one(params: dict[str, float]) -> BacktestResult | None:
        try:
            return run_backtest(bars, source, params, config)
        except BacktestInputError as e:
            log.warning("sweep_run_failed", params=params, error=str(e))
            return None

    # Each task runs in a copy of the caller's context so run_id reaches worker logs
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(contextvars.copy_context().run, _run_one, params)
            for params in combos
        ]
        outcomes = [f.result() for f in futures]

    scored: list[tuple[float, dict[str, float], BacktestResult]] = []
    failed = 0
    for params, result in zip(combos, outcomes):
        if result is None:
            failed += 1
            continue
        scored.append((float(result.to_dict()[rank_by]), params, result))

    # Stable sort keeps combination order among equal scores
    scored.sort(key=lambda s: s[0], reverse=rank_by not in _ASCENDING_METRICS)
    top = [
        SweepEntry(rank=i + 1, params=params, score=score, result=result)
        for i, (score, params, result) in enumerate(scored[:top_n])
    ]

    log.info(
        "sweep_complete",
        attempted=len(combos),
        failed=failed,
        elapsed_sec=round(time.monotonic() - t0, 2),
        best_score=top[0].score if top else None,
    )
    return SweepResult(
        rank_by=rank_by,
        total_combinations=total,
        attempted=len(combos),
        failed=failed,
        truncated=truncated,
        top=top,
    )


def _check_range_names(source: str, ranges: Sequence[ParamRange]) -> None:
    known = {p.name for p in extract_inputs(source)}
    for aliases, _default in PARAM_ALIASES.values():
        known.update(aliases)
    unknown = sorted(r.name for r in ranges if r.name not in known)
    if unknown:
        raise BacktestInputError(
            f"Unknown sweep parameter(s): {', '.join(unknown)}"
        )

