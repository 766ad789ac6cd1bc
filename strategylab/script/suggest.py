"""Parameter range suggestions for optimization sweeps.

Two sources:
- Name-based heuristics (smart_optimize_range, heuristic_suggestions).
  Always available, deterministic.
- An OpenAI-compatible chat completion endpoint, used only when an API key
  is configured. Any failure there falls back to the heuristics.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from strategylab.config import AIConfig
from strategylab.script.inputs import Parameter

log = structlog.get_logger()

_PERIOD_RE = re.compile(r"length|period|lookback|window|bars")
_THRESHOLD_RE = re.compile(r"pct|percent|threshold|level")
_MULTIPLIER_RE = re.compile(r"mult|factor|ratio|atr")

_SYSTEM_PROMPT = (
    "You are a quantitative trading expert specializing in TradingView "
    "PineScript strategy optimization. Analyze the given strategy and suggest "
    "optimal parameter ranges for backtesting on {symbol} ({timeframe} "
    "timeframe). Respond in JSON format with an array of parameter suggestions."
)
_USER_PROMPT = (
    "Analyze this PineScript strategy and suggest optimal parameter ranges:"
    "\n\n{code}\n\n"
    'Provide suggestions as JSON: {{ "suggestions": [{{ "name": "paramName", '
    '"min": number, "max": number, "step": number, "reason": "explanation" }}] }}'
)


@dataclass(frozen=True)
class OptimizeRange:
    """Inclusive range to sweep for one parameter."""

    min_value: float
    max_value: float
    step: float


@dataclass(frozen=True)
class Suggestion:
    """A suggested sweep range with a short rationale."""

    name: str
    min_value: float
    max_value: float
    step: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "min": self.min_value,
            "max": self.max_value,
            "step": self.step,
            "reason": self.reason,
        }


class SuggestionError(Exception):
    """The remote suggestion service failed or returned garbage."""


def smart_optimize_range(param: Parameter) -> OptimizeRange:
    """Sweep range from the parameter's name, falling back to its bounds."""
    n = param.name.lower()
    d = float(param.default)

    if _PERIOD_RE.search(n):
        return OptimizeRange(
            max(2, math.floor(d * 0.3)), math.ceil(d * 2.5), max(1, math.floor(d * 0.1)),
        )
    if _THRESHOLD_RE.search(n):
        return OptimizeRange(
            max(1, math.floor(d * 0.3)), math.ceil(d * 2), max(1, math.floor(d * 0.1)),
        )
    if _MULTIPLIER_RE.search(n):
        return OptimizeRange(max(0.5, d * 0.3), d * 3, 0.1)
    if "fast" in n:
        return OptimizeRange(max(2, math.floor(d * 0.4)), math.ceil(d * 2), 1)
    if "slow" in n:
        return OptimizeRange(max(5, math.floor(d * 0.4)), math.ceil(d * 2), 2)
    return OptimizeRange(param.min_value, param.max_value, param.step)


def heuristic_suggestions(source: str) -> list[Suggestion]:
    """Keyword-driven suggestions used when no model is available."""
    suggestions: list[Suggestion] = []
    if "rsiLength" in source or "RSI" in source:
        suggestions += [
            Suggestion("rsiLength", 8, 21, 1, "RSI periods of 8-21 work best on volatile markets"),
            Suggestion("rsiOverbought", 65, 80, 5, "Test overbought thresholds between 65 and 80"),
            Suggestion("rsiOversold", 20, 35, 5, "Test oversold thresholds between 20 and 35"),
        ]
    if "emaPeriod" in source or "ema" in source:
        suggestions.append(
            Suggestion("emaPeriod", 100, 300, 50, "Trend-filter EMAs usually use 100-300 periods"),
        )
    if "stopLoss" in source or "stop" in source:
        suggestions.append(
            Suggestion("stopLossPct", 1.0, 5.0, 0.5, "Keep stops between 1% and 5% to avoid premature exits"),
        )
    if "takeProfit" in source or "limit" in source:
        suggestions.append(
            Suggestion("takeProfitPct", 2.0, 10.0, 1.0, "Take profit should be at least twice the stop"),
        )
    return suggestions


class ParameterSuggester:
    """Suggests sweep ranges, via a chat model when configured.

    Accepts an optional httpx.Client so tests can inject a MockTransport.
    """

    def __init__(
        self,
        config: AIConfig,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._config.api_key)

    def suggest(
        self,
        source: str,
        symbol: str = "",
        timeframe: str = "",
    ) -> list[Suggestion]:
        """Return suggestions. Never raises; falls back to heuristics."""
        if not self.enabled:
            return heuristic_suggestions(source)
        try:
            return self._remote_suggestions(source, symbol, timeframe)
        except SuggestionError as e:
            log.warning("suggestion_fallback", reason=str(e))
            return heuristic_suggestions(source)

    def _remote_suggestions(
        self,
        source: str,
        symbol: str,
        timeframe: str,
    ) -> list[Suggestion]:
        payload = {
            "model": self._config.model,
            "messages": [
                {
                    "role": "system",
                    "content": _SYSTEM_PROMPT.format(symbol=symbol, timeframe=timeframe),
                },
                {"role": "user", "content": _USER_PROMPT.format(code=source)},
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": 1000,
        }
        url = self._config.base_url.rstrip("/") + "/chat/completions"
        headers = {"Authorization": f"Bearer {self._config.api_key}"}

        client = self._client or httpx.Client(timeout=self._config.timeout_seconds)
        try:
            resp = client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SuggestionError(f"Suggestion request failed: {e}") from e
        finally:
            if self._client is None:
                client.close()

        return _parse_completion(body)


def _parse_completion(body: Any) -> list[Suggestion]:
    try:
        content = body["choices"][0]["message"]["content"] or "{}"
        data = json.loads(content)
        raw = data.get("suggestions", [])
        return [
            Suggestion(
                name=str(item["name"]),
                min_value=float(item["min"]),
                max_value=float(item["max"]),
                step=float(item["step"]),
                reason=str(item.get("reason", "")),
            )
            for item in raw
        ]
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise SuggestionError(f"Malformed suggestion response: {e}") from e
