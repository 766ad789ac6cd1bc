"""Strategy script analysis: declared inputs and parameter suggestions."""

from strategylab.script.inputs import (
    Parameter,
    ParamKind,
    ParsedStrategy,
    extract_inputs,
    parse_strategy,
)

__all__ = [
    "ParamKind",
    "Parameter",
    "ParsedStrategy",
    "extract_inputs",
    "parse_strategy",
]
