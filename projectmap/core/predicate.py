"""
Feature predicate compilation and evaluation.

Predicates are expressed in the vector-map renderer's expression syntax: nested
lists whose first element is an operator, for example

    ["all",
     ["==", ["get", "state"], "LAGOS"],
     ["in", ["get", "year"], ["literal", ["2022"]]]]

`None` is the "match all" predicate; the renderer clears the layer filter when
given `None`.

## Empty selections

An empty year, status or type selection means "no restriction on this dimension",
not "match nothing". With nothing selected every feature passes.

## Determinism

Set values are emitted sorted, so equal selections produce structurally equal
predicates and the renderer can tell a no-op from a real change by comparing them.
"""

import logging
from collections.abc import Iterable
from typing import Any, Optional

import numpy as np
import pandas as pd

from projectmap.core.schema import SchemaColumns as C
from projectmap.core.selection_state import SelectionState

logger = logging.getLogger(__name__)

Predicate = Optional[list[Any]]


class UnsupportedExpressionError(ValueError):
    """Raised when evaluating an expression operator we do not implement."""


def _membership(column: str, values: Iterable[str]) -> list[Any]:
    return ["in", ["get", str(column)], ["literal", sorted(values)]]


def compile_predicate(
    years: Iterable[str],
    statuses: Iterable[str],
    types: Iterable[str],
    active_region: Optional[str] = None,
) -> Predicate:
    """
    Build the layer filter for the given selections.

    Conjuncts are emitted in a fixed order: region, year, status, type. A dimension
    contributes only when its selection is non-empty.

    Returns:
        None when nothing is selected, the bare conjunct when exactly one dimension is
        active, otherwise an "all" expression over the conjuncts.
    """
    conditions: list[list[Any]] = []
    if active_region:
        conditions.append(["==", ["get", str(C.REGION)], active_region])
    years = set(years)
    if years:
        conditions.append(_membership(C.YEAR, years))
    statuses = set(statuses)
    if statuses:
        conditions.append(_membership(C.STATUS, statuses))
    types = set(types)
    if types:
        conditions.append(_membership(C.TYPE, types))

    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return ["all", *conditions]


def compile_selection(selection: SelectionState) -> Predicate:
    return compile_predicate(
        selection.years,
        selection.statuses,
        selection.types,
        selection.active_region,
    )


def describe_predicate(predicate: Predicate) -> str:
    """Render a predicate for log lines, e.g. "state == LAGOS AND year in [2022]"."""
    if predicate is None:
        return "<match all>"
    op = predicate[0]
    if op == "all":
        return " AND ".join(describe_predicate(p) for p in predicate[1:])
    if op == "==" and isinstance(predicate[1], list) and predicate[1][0] == "get":
        return f"{predicate[1][1]} == {predicate[2]}"
    if op == "in" and isinstance(predicate[1], list) and predicate[1][0] == "get":
        values = predicate[2][1] if isinstance(predicate[2], list) else predicate[2]
        return f"{predicate[1][1]} in [{', '.join(map(str, values))}]"
    return str(predicate)


def _evaluate(expression: Any, df: pd.DataFrame) -> Any:
    """Evaluate an expression to either a scalar or a Series aligned with df."""
    if not isinstance(expression, list):
        return expression
    if not expression:
        raise UnsupportedExpressionError("Empty expression")

    op, *args = expression
    if op == "literal":
        return args[0]
    if op == "get":
        column = args[0]
        if column not in df.columns:
            return pd.Series([None] * len(df), index=df.index, dtype=object)
        return df[column]
    if op == "all":
        result = pd.Series(True, index=df.index)
        for arg in args:
            result &= _as_mask(_evaluate(arg, df), df)
        return result
    if op == "any":
        result = pd.Series(False, index=df.index)
        for arg in args:
            result |= _as_mask(_evaluate(arg, df), df)
        return result
    if op == "!":
        return ~_as_mask(_evaluate(args[0], df), df)
    if op == "to-string":
        value = _evaluate(args[0], df)
        if isinstance(value, pd.Series):
            return value.map(lambda v: "" if v is None or pd.isna(v) else str(v))
        return "" if value is None else str(value)
    if op == "case":
        # ["case", cond1, out1, cond2, out2, ..., fallback]
        *branches, fallback = args
        result = _broadcast(_evaluate(fallback, df), df).copy()
        decided = pd.Series(False, index=df.index)
        for condition, output in zip(branches[0::2], branches[1::2]):
            hit = _as_mask(_evaluate(condition, df), df) & ~decided
            result[hit] = _broadcast(_evaluate(output, df), df)[hit]
            decided |= hit
        return result
    if op == "match":
        # ["match", input, label1, out1, label2, out2, ..., fallback]
        value, *branches, fallback = args
        inputs = _broadcast(_evaluate(value, df), df)
        result = _broadcast(_evaluate(fallback, df), df).copy()
        for label, output in zip(branches[0::2], branches[1::2]):
            result[inputs == label] = output
        return result
    if op in ("downcase", "upcase"):
        value = _evaluate(args[0], df)
        if isinstance(value, pd.Series):
            return value.map(
                lambda v: (v.lower() if op == "downcase" else v.upper())
                if isinstance(v, str)
                else v
            )
        return value.lower() if op == "downcase" else value.upper()
    if op in ("==", "!="):
        left = _evaluate(args[0], df)
        right = _evaluate(args[1], df)
        equal = _as_mask(_broadcast(left, df) == _broadcast(right, df), df)
        return equal if op == "==" else ~equal
    if op == "in":
        needle = _evaluate(args[0], df)
        haystack = _evaluate(args[1], df)
        if isinstance(haystack, (list, tuple)):
            return _as_mask(_broadcast(needle, df).isin(list(haystack)), df)
        # Substring test: ["in", "mini grid", ["downcase", ["get", "type"]]]
        needles = _broadcast(needle, df)
        haystacks = _broadcast(haystack, df)
        return pd.Series(
            [
                isinstance(h, str) and isinstance(n, str) and n in h
                for n, h in zip(needles, haystacks)
            ],
            index=df.index,
        )
    raise UnsupportedExpressionError(f"Unsupported expression operator: {op!r}")


def _broadcast(value: Any, df: pd.DataFrame) -> pd.Series:
    if isinstance(value, pd.Series):
        return value
    return pd.Series([value] * len(df), index=df.index, dtype=object)


def _as_mask(value: Any, df: pd.DataFrame) -> pd.Series:
    if isinstance(value, pd.Series):
        return value.fillna(False).astype(bool)
    return pd.Series(bool(value), index=df.index)


def evaluate_predicate(predicate: Predicate, df: pd.DataFrame) -> pd.Series:
    """
    Evaluate a predicate against a feature DataFrame.

    Returns:
        Boolean Series aligned with df; all True for the match-all predicate.
    """
    if predicate is None:
        return pd.Series(np.ones(len(df), dtype=bool), index=df.index)
    return _as_mask(_evaluate(predicate, df), df)


def evaluate_expression(expression: Any, df: pd.DataFrame) -> pd.Series:
    """Evaluate a value expression (e.g. a paint colour rule) for every row of df."""
    return _broadcast(_evaluate(expression, df), df)
