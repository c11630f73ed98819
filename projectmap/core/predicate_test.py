"""Tests for predicate compilation and evaluation."""

import pandas as pd
import pytest

from projectmap.core.predicate import (
    UnsupportedExpressionError,
    compile_predicate,
    compile_selection,
    describe_predicate,
    evaluate_expression,
    evaluate_predicate,
)
from projectmap.core.selection_state import SelectionState
from projectmap.core.test_fixtures import projects_df

assert projects_df, "Don't remove this import!"


def test_empty_selection_matches_all(projects_df: pd.DataFrame) -> None:
    predicate = compile_predicate(set(), set(), set(), None)

    assert predicate is None
    assert evaluate_predicate(predicate, projects_df).all()


def test_single_dimension_is_not_wrapped() -> None:
    assert compile_predicate({"2022"}, set(), set()) == [
        "in",
        ["get", "year"],
        ["literal", ["2022"]],
    ]
    assert compile_predicate(set(), set(), set(), "LAGOS") == [
        "==",
        ["get", "state"],
        "LAGOS",
    ]


def test_conjunct_count_matches_active_dimensions() -> None:
    predicate = compile_predicate({"2022"}, {"ONGOING"}, {"GRID"}, "KANO")

    assert predicate[0] == "all"
    assert len(predicate) - 1 == 4
    assert [c[1][1] for c in predicate[1:]] == ["state", "year", "status", "type"]

    predicate = compile_predicate(set(), {"ONGOING", "COMPLETED"}, {"GRID"})
    assert predicate[0] == "all"
    assert len(predicate) - 1 == 2


def test_compilation_is_deterministic() -> None:
    first = compile_predicate({"2022", "2020", "2021"}, {"ONGOING"}, set(), None)
    second = compile_predicate(["2021", "2022", "2020"], ["ONGOING"], [], None)

    assert first == second
    assert first[1] == ["in", ["get", "year"], ["literal", ["2020", "2021", "2022"]]]


def test_distinct_inputs_give_distinct_predicates() -> None:
    predicates = [
        compile_predicate(set(), set(), set()),
        compile_predicate({"2022"}, set(), set()),
        compile_predicate(set(), {"2022"}, set()),
        compile_predicate(set(), set(), {"GRID"}),
        compile_predicate(set(), set(), set(), "LAGOS"),
        compile_predicate({"2022"}, set(), set(), "LAGOS"),
    ]
    assert len({repr(p) for p in predicates}) == len(predicates)


def test_composite_type_tokens_are_opaque(projects_df: pd.DataFrame) -> None:
    predicate = compile_predicate(set(), set(), {"GRID"})
    matched = projects_df[evaluate_predicate(predicate, projects_df)]

    # "GRID/SOLAR STREET LIGHT" is its own token and does not match "GRID".
    assert list(matched["id"]) == ["3"]


def test_evaluate_end_to_end_predicates(projects_df: pd.DataFrame) -> None:
    year_status = compile_predicate({"2022"}, {"ONGOING"}, set())
    assert sorted(projects_df[evaluate_predicate(year_status, projects_df)]["id"]) == [
        "1",
        "10",
        "4",
        "8",
    ]

    with_region = compile_predicate({"2022"}, {"ONGOING"}, set(), "LAGOS")
    assert sorted(projects_df[evaluate_predicate(with_region, projects_df)]["id"]) == [
        "1",
        "10",
    ]


def test_compile_selection() -> None:
    selection = SelectionState().toggle_year("2022").with_region("LAGOS")
    assert compile_selection(selection) == compile_predicate({"2022"}, set(), set(), "LAGOS")


def test_describe_predicate() -> None:
    assert describe_predicate(None) == "<match all>"
    assert (
        describe_predicate(compile_predicate({"2022"}, {"ONGOING"}, set(), "LAGOS"))
        == "state == LAGOS AND year in [2022] AND status in [ONGOING]"
    )


def test_evaluate_substring_and_case_expressions() -> None:
    df = pd.DataFrame({"type": ["SOLAR MINI GRID", "GRID", None]})
    contains = ["in", "mini grid", ["downcase", ["to-string", ["get", "type"]]]]
    assert list(evaluate_predicate(contains, df)) == [True, False, False]

    expression = ["case", contains, "mini", ["in", "grid", ["downcase", ["to-string", ["get", "type"]]]], "grid", "other"]
    assert list(evaluate_expression(expression, df)) == ["mini", "grid", "other"]


def test_evaluate_match_expression() -> None:
    df = pd.DataFrame({"status": ["ONGOING", "COMPLETED", "UNKNOWN"]})
    expression = ["match", ["get", "status"], "ONGOING", "orange", "COMPLETED", "green", "grey"]
    assert list(evaluate_expression(expression, df)) == ["orange", "green", "grey"]


def test_missing_property_matches_nothing() -> None:
    df = pd.DataFrame({"other": [1, 2]})
    assert not evaluate_predicate(["==", ["get", "state"], "LAGOS"], df).any()


def test_unsupported_operator_raises() -> None:
    df = pd.DataFrame({"year": ["2022"]})
    with pytest.raises(UnsupportedExpressionError):
        evaluate_predicate(["within", ["get", "year"]], df)
