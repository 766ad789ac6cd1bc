"""Strategy script input extraction.

Finds declarative parameter statements in Pine-style strategy text:

    fastLength = input.int(12, title="Fast Length", minval=2, maxval=50)
    stopLossPct = input.float(2.0, "Stop Loss %", step=0.5)
    period = input(20)

Extraction never raises. Text without recognizable declarations yields
an empty list, and a declaration whose default is not a number is skipped.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum

DEFAULT_STRATEGY_NAME = "Custom Strategy"

# Argument list up to the closing paren, skipping parens inside quoted strings.
_ARGS = r"""((?:"[^"]*"|'[^']*'|[^)"'])*)\)"""
_NUMBER = r"(-?\d+(?:\.\d*)?|-?\.\d+)"

_INT_RE = re.compile(r"(\w+)\s*=\s*input\.int\(\s*" + _NUMBER + _ARGS)
_FLOAT_RE = re.compile(r"(\w+)\s*=\s*input\.float\(\s*" + _NUMBER + _ARGS)
_LEGACY_RE = re.compile(r"(\w+)\s*=\s*input\(\s*" + _NUMBER + _ARGS)

_TITLE_KW_RE = re.compile(r"""\btitle\s*=\s*["']([^"']*)["']""")
_TITLE_POS_RE = re.compile(r"""^\s*,\s*["']([^"']*)["']""")
_MINVAL_RE = re.compile(r"\bminval\s*=\s*" + _NUMBER)
_MAXVAL_RE = re.compile(r"\bmaxval\s*=\s*" + _NUMBER)
_STEP_RE = re.compile(r"\bstep\s*=\s*" + _NUMBER)

_STRATEGY_NAME_RE = re.compile(r"""strategy\s*\(\s*["']([^"']+)["']""")
_LONG_ENTRY_RE = re.compile(r"strategy\.entry.*long|strategy\.long")
_SHORT_ENTRY_RE = re.compile(r"strategy\.entry.*short|strategy\.short")

_INDICATOR_PATTERNS: dict[str, re.Pattern[str]] = {
    "SMA": re.compile(r"ta\.sma|sma\("),
    "EMA": re.compile(r"ta\.ema|ema\("),
    "RSI": re.compile(r"ta\.rsi|rsi\("),
    "MACD": re.compile(r"ta\.macd|macd\("),
    "Bollinger Bands": re.compile(r"ta\.bb|bb\(|bollinger"),
    "ATR": re.compile(r"ta\.atr|atr\("),
}


class ParamKind(str, Enum):
    """Numeric kind of a tunable input."""

    INT = "int"
    FLOAT = "float"


@dataclass(frozen=True)
class Parameter:
    """A tunable numeric strategy input with inclusive bounds."""

    name: str
    kind: ParamKind
    default: float
    min_value: float
    max_value: float
    step: float
    title: str

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "type": self.kind.value,
            "defaultValue": self.default,
            "minValue": self.min_value,
            "maxValue": self.max_value,
            "step": self.step,
            "title": self.title,
        }


@dataclass(frozen=True)
class ParsedStrategy:
    """Surface-level summary of a strategy script."""

    name: str
    inputs: list[Parameter]
    has_long_entry: bool
    has_short_entry: bool
    indicators: list[str]
    description: str


def extract_inputs(source: str) -> list[Parameter]:
    """Extract tunable inputs in declaration order.

    All `input.int` declarations come first, then `input.float`, then
    legacy `input(...)`. A name that was already captured is ignored.
    """
    if not source:
        return []

    params: list[Parameter] = []
    seen: set[str] = set()

    for pattern, kind in (
        (_INT_RE, ParamKind.INT),
        (_FLOAT_RE, ParamKind.FLOAT),
        (_LEGACY_RE, None),
    ):
        for match in pattern.finditer(source):
            name = match.group(1)
            if name in seen:
                continue
            param = _build_parameter(
                name, match.group(2), match.group(3), kind,
            )
            if param is None:
                continue
            seen.add(name)
            params.append(param)

    return params


def default_params(parameters: list[Parameter]) -> dict[str, float]:
    """Map each parameter name to its default value."""
    return {p.name: p.default for p in parameters}


def parse_strategy(source: str) -> ParsedStrategy:
    """Summarize a strategy script: name, inputs, direction and indicators."""
    name_match = _STRATEGY_NAME_RE.search(source)
    name = name_match.group(1) if name_match else DEFAULT_STRATEGY_NAME
    inputs = extract_inputs(source)

    has_long = bool(_LONG_ENTRY_RE.search(source))
    has_short = bool(_SHORT_ENTRY_RE.search(source))
    indicators = [
        label for label, pattern in _INDICATOR_PATTERNS.items()
        if pattern.search(source)
    ]

    if has_long and has_short:
        direction = "Long/short"
    elif has_short:
        direction = "Short-only"
    else:
        direction = "Long-only"
    description = f"{direction} strategy"
    if indicators:
        description += f" using {', '.join(indicators)}"
    description += f"; {len(inputs)} tunable parameter(s) detected"

    return ParsedStrategy(
        name=name,
        inputs=inputs,
        has_long_entry=has_long,
        has_short_entry=has_short,
        indicators=indicators,
        description=description,
    )


def _build_parameter(
    name: str,
    default_literal: str,
    tail: str,
    kind: ParamKind | None,
) -> Parameter | None:
    try:
        default = float(default_literal)
    except ValueError:
        return None
    if not math.isfinite(default):
        return None

    legacy = kind is None
    if kind is None:
        # Legacy input(): kind follows the literal
        kind = ParamKind.INT if default.is_integer() else ParamKind.FLOAT

    title_match = _TITLE_KW_RE.search(tail) or _TITLE_POS_RE.search(tail)
    title = title_match.group(1) if title_match else name

    explicit_min = _number(_MINVAL_RE, tail)
    explicit_max = _number(_MAXVAL_RE, tail)
    # Legacy input() never carried a step
    explicit_step = None if legacy else _number(_STEP_RE, tail)

    if kind is ParamKind.INT:
        derived_min: float = max(1, math.floor(default * 0.2))
        derived_max: float = math.ceil(default * 3)
        derived_step: float = max(1, math.floor(default * 0.1))
        default = _as_int(default)
    else:
        derived_min = max(0.01, default * 0.2)
        derived_max = default * 3
        derived_step = default * 0.1

    return Parameter(
        name=name,
        kind=kind,
        default=default,
        min_value=_coerce(explicit_min, kind) if explicit_min is not None else derived_min,
        max_value=_coerce(explicit_max, kind) if explicit_max is not None else derived_max,
        step=_coerce(explicit_step, kind) if explicit_step is not None else derived_step,
        title=title,
    )


def _number(pattern: re.Pattern[str], text: str) -> float | None:
    match = pattern.search(text)
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _as_int(value: float) -> float:
    return int(value) if value.is_integer() else value


def _coerce(value: float, kind: ParamKind) -> float:
    return _as_int(value) if kind is ParamKind.INT else value
