"""Signal detection: strategy family classification + per-bar signals.

This is a heuristic classifier, not a script interpreter. The strategy text
is matched against indicator keywords and mapped to one of five fixed
signal shapes (StrategyFamily). Each shape is a standalone generator
`(closes, params, cache, start) -> SignalSet`. Arbitrary strategy logic in
the text is never executed.

Parameters are resolved through ordered alias chains (PARAM_ALIASES): the
first name present in the parameter set wins, else the literal default.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from strategylab.engine.indicators import IndicatorCache, ema, macd, rsi, sma
from strategylab.market.types import Bar

log = structlog.get_logger()

MIN_WARMUP_BARS = 50
FALLBACK_FAST = 20
FALLBACK_SLOW = 50

_MACD_RE = re.compile(r"ta\.macd|macd\(")
_RSI_RE = re.compile(r"ta\.rsi|rsi\(")
_SMA_RE = re.compile(r"ta\.sma|sma\(")
_EMA_RE = re.compile(r"ta\.ema|ema\(")
_SHORT_SELLING_RE = re.compile(r"""strategy\.entry.*["']short["']|strategy\.short""")

# concept -> (aliases in lookup order, literal default)
PARAM_ALIASES: dict[str, tuple[tuple[str, ...], float]] = {
    "fast_length": (("fastLength", "fast", "fastPeriod"), 12),
    "slow_length": (("slowLength", "slow", "slowPeriod"), 26),
    "signal_length": (("signalLength", "signal"), 9),
    "rsi_length": (("rsiLength", "rsiPeriod", "length"), 14),
    "rsi_overbought": (("rsiOverbought", "overbought"), 70),
    "rsi_oversold": (("rsiOversold", "oversold"), 30),
    "ma_length": (("maLength", "length", "period"), 20),
    "stop_loss_pct": (("stopLossPct", "stopLoss"), 0),
}


class StrategyFamily(str, Enum):
    """The closed set of signal shapes the detector can infer."""

    MACD = "macd"
    RSI = "rsi"
    EMA_CROSS = "ema_cross"
    SMA_CROSS = "sma_cross"
    FALLBACK = "fallback"


@dataclass
class SignalSet:
    """Four parallel per-bar signal sequences."""

    long_entry: list[bool] = field(default_factory=list)
    long_exit: list[bool] = field(default_factory=list)
    short_entry: list[bool] = field(default_factory=list)
    short_exit: list[bool] = field(default_factory=list)
    family: StrategyFamily = StrategyFamily.FALLBACK

    @classmethod
    def flat(cls, length: int) -> SignalSet:
        """All-false signals for `length` bars."""
        return cls(
            long_entry=[False] * length,
            long_exit=[False] * length,
            short_entry=[False] * length,
            short_exit=[False] * length,
        )

    def __len__(self) -> int:
        return len(self.long_entry)


@dataclass(frozen=True)
class SignalParams:
    """Parameters after alias resolution. Lengths are integers >= 1."""

    fast_length: int
    slow_length: int
    signal_length: int
    rsi_length: int
    rsi_overbought: float
    rsi_oversold: float
    ma_length: int
    stop_loss_pct: float

    @property
    def warmup(self) -> int:
        """First bar index at which signals may fire."""
        return max(self.slow_length, MIN_WARMUP_BARS)


def resolve_alias(params: Mapping[str, float], concept: str) -> float:
    """First alias of `concept` present in `params`, else its default."""
    aliases, default = PARAM_ALIASES[concept]
    for alias in aliases:
        value = params.get(alias)
        if value is not None:
            return float(value)
    return float(default)


def resolve_params(params: Mapping[str, float]) -> SignalParams:
    def _length(concept: str) -> int:
        return max(1, int(resolve_alias(params, concept)))

    return SignalParams(
        fast_length=_length("fast_length"),
        slow_length=_length("slow_length"),
        signal_length=_length("signal_length"),
        rsi_length=_length("rsi_length"),
        rsi_overbought=resolve_alias(params, "rsi_overbought"),
        rsi_oversold=resolve_alias(params, "rsi_oversold"),
        ma_length=_length("ma_length"),
        stop_loss_pct=resolve_alias(params, "stop_loss_pct"),
    )


def uses_short_selling(source: str) -> bool:
    """True when the script enters short positions."""
    return bool(_SHORT_SELLING_RE.search(source))


@dataclass(frozen=True)
class _Keywords:
    macd: bool
    rsi: bool
    sma: bool
    ema: bool


_FAMILY_MATCHERS: dict[StrategyFamily, Callable[[_Keywords, SignalParams], bool]] = {
    StrategyFamily.MACD: lambda k, p: k.macd and not k.rsi,
    StrategyFamily.RSI: lambda k, p: k.rsi and not k.macd,
    StrategyFamily.EMA_CROSS: lambda k, p: k.ema and (
        k.sma or p.fast_length != p.slow_length
    ),
    StrategyFamily.SMA_CROSS: lambda k, p: k.sma,
    StrategyFamily.FALLBACK: lambda k, p: True,
}

FAMILY_PRIORITY: tuple[StrategyFamily, ...] = (
    StrategyFamily.MACD,
    StrategyFamily.RSI,
    StrategyFamily.EMA_CROSS,
    StrategyFamily.SMA_CROSS,
    StrategyFamily.FALLBACK,
)


def classify(
    source: str,
    params: SignalParams,
    priority: Sequence[StrategyFamily] = FAMILY_PRIORITY,
) -> StrategyFamily:
    """Pick the signal shape. The first family in `priority` that matches wins.

    Text carrying both RSI and MACD keywords matches neither of those two
    families and drops through to the moving-average checks.
    """
    keywords = _Keywords(
        macd=bool(_MACD_RE.search(source)),
        rsi=bool(_RSI_RE.search(source)),
        sma=bool(_SMA_RE.search(source)),
        ema=bool(_EMA_RE.search(source)),
    )
    for family in priority:
        if _FAMILY_MATCHERS[family](keywords, params):
            return family
    return StrategyFamily.FALLBACK


# --- Generators, one per family ---

_Generator = Callable[[Sequence[float], SignalParams, IndicatorCache, int], SignalSet]


def _macd_signals(
    closes: Sequence[float],
    p: SignalParams,
    cache: IndicatorCache,
    start: int,
) -> SignalSet:
    signals = SignalSet.flat(len(closes))
    for i in range(start, len(closes)):
        prev = macd(closes, p.fast_length, p.slow_length, p.signal_length, i - 1, cache)
        cur = macd(closes, p.fast_length, p.slow_length, p.signal_length, i, cache)
        signals.long_entry[i] = prev.histogram < 0 and cur.histogram > 0
        signals.short_entry[i] = prev.histogram > 0 and cur.histogram < 0
        signals.long_exit[i] = cur.histogram < 0
        signals.short_exit[i] = cur.histogram > 0
    return signals


def _rsi_signals(
    closes: Sequence[float],
    p: SignalParams,
    cache: IndicatorCache,
    start: int,
) -> SignalSet:
    signals = SignalSet.flat(len(closes))
    ob, os_ = p.rsi_overbought, p.rsi_oversold
    for i in range(start, len(closes)):
        prev = rsi(closes, p.rsi_length, i - 1, cache)
        cur = rsi(closes, p.rsi_length, i, cache)
        signals.long_entry[i] = prev < os_ and cur >= os_
        signals.long_exit[i] = cur > ob
        signals.short_entry[i] = prev > ob and cur <= ob
        signals.short_exit[i] = cur < os_
    return signals


def _crossover(
    length: int,
    fast: Callable[[int], float],
    slow: Callable[[int], float],
    start: int,
) -> SignalSet:
    signals = SignalSet.flat(length)
    for i in range(start, length):
        f, s = fast(i), slow(i)
        pf, ps = fast(i - 1), slow(i - 1)
        signals.long_entry[i] = pf < ps and f > s
        signals.short_entry[i] = pf > ps and f < s
        signals.long_exit[i] = f < s
        signals.short_exit[i] = f > s
    return signals


def _ema_cross_signals(
    closes: Sequence[float],
    p: SignalParams,
    cache: IndicatorCache,
    start: int,
) -> SignalSet:
    return _crossover(
        len(closes),
        lambda i: ema(closes, p.fast_length, i, cache),
        lambda i: ema(closes, p.slow_length, i, cache),
        start,
    )


def _sma_cross_signals(
    closes: Sequence[float],
    p: SignalParams,
    cache: IndicatorCache,
    start: int,
) -> SignalSet:
    return _crossover(
        len(closes),
        lambda i: sma(closes, p.fast_length, i, cache),
        lambda i: sma(closes, p.slow_length, i, cache),
        start,
    )


def _fallback_signals(
    closes: Sequence[float],
    p: SignalParams,
    cache: IndicatorCache,
    start: int,
) -> SignalSet:
    return _crossover(
        len(closes),
        lambda i: sma(closes, FALLBACK_FAST, i, cache),
        lambda i: sma(closes, FALLBACK_SLOW, i, cache),
        start,
    )


_GENERATORS: dict[StrategyFamily, _Generator] = {
    StrategyFamily.MACD: _macd_signals,
    StrategyFamily.RSI: _rsi_signals,
    StrategyFamily.EMA_CROSS: _ema_cross_signals,
    StrategyFamily.SMA_CROSS: _sma_cross_signals,
    StrategyFamily.FALLBACK: _fallback_signals,
}


def detect_signals(
    bars: Sequence[Bar],
    source: str,
    params: Mapping[str, float],
    cache: IndicatorCache,
) -> SignalSet:
    """Compute long/short entry/exit signals for every bar.

    Signals are only evaluated from `max(slow_length, 50)` onward. A series
    shorter than that gets all-false signals.
    """
    resolved = resolve_params(params)
    family = classify(source, resolved)
    start = resolved.warmup

    if len(bars) <= start:
        log.debug(
            "signals_warmup_not_reached",
            family=family.value,
            bar_count=len(bars),
            warmup=start,
        )
        signals = SignalSet.flat(len(bars))
        signals.family = family
        return signals

    closes = [b.close for b in bars]
    signals = _GENERATORS[family](closes, resolved, cache, start)
    signals.family = family
    log.debug(
        "signals_detected",
        family=family.value,
        long_entries=sum(signals.long_entry),
        short_entries=sum(signals.short_entry),
    )
    return signals
