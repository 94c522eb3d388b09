"""Deterministic merging of extracted profile data.

Profile data is a recursive value: a scalar, a list of values, or a mapping of
string keys to values. Precedence when combining an earlier value ``a`` with a
later value ``b``:

- if either side is a list, the result is ``a`` followed by ``b`` (a non-list
  side is treated as a one-element list, ``None`` as empty)
- if both sides are mappings, keys are shallow-merged and ``b`` wins on
  conflicting keys
- otherwise ``b`` wins

Inputs are never mutated.
"""

from typing import Any, Iterable, Union

Value = Union[None, bool, int, float, str, list["Value"], dict[str, "Value"]]


def _as_list(value: Value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def merge_values(a: Value, b: Value) -> Value:
    """Combine an earlier value with a later one."""
    if isinstance(a, list) or isinstance(b, list):
        return _as_list(a) + _as_list(b)
    if isinstance(a, dict) and isinstance(b, dict):
        return {**a, **b}
    if isinstance(b, dict):
        return dict(b)
    return b


def merge_insights(insights: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Fold per-conversation insight objects into one, in processing order."""
    merged: dict[str, Any] = {}
    for insight in insights:
        for key, value in insight.items():
            if key in merged:
                merged[key] = merge_values(merged[key], value)
            elif isinstance(value, (list, dict)):
                merged[key] = merge_values(None, value)
            else:
                merged[key] = value
    return merged
