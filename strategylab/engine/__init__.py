"""Engine layer: indicator calculation and signal detection."""

from strategylab.engine.indicators import IndicatorCache, MACDValue
from strategylab.engine.signals import SignalSet, StrategyFamily, detect_signals

__all__ = [
    "IndicatorCache",
    "MACDValue",
    "SignalSet",
    "StrategyFamily",
    "detect_signals",
]
