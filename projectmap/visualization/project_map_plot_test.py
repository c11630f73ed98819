"""Tests for the plotly map figure."""

import plotly.graph_objects as go

from projectmap.core.backend_frontend_shared_schema import ViewMode
from projectmap.core.session_state import SessionState
from projectmap.core.test_fixtures import (
    aggregate_store,
    loaded_session,
    projects_df,
    region_features,
)
from projectmap.visualization.project_map_plot import (
    _calculate_zoom_from_bbox,
    create_points_plot,
    create_project_map_plot,
)

assert aggregate_store, "Don't remove this import!"
assert loaded_session, "Don't remove this import!"
assert projects_df, "Don't remove this import!"
assert region_features, "Don't remove this import!"


def test_performance_plot_colours_by_status(loaded_session: SessionState) -> None:
    fig = create_project_map_plot(loaded_session, title="Projects")

    assert isinstance(fig, go.Figure)
    assert {trace.type for trace in fig.data} == {"scattermap"}
    assert {trace.name for trace in fig.data} == {"ONGOING", "COMPLETED", "YET TO MOBILIZE"}
    assert sum(len(trace.lat) for trace in fig.data) == 10


def test_technology_plot_colours_by_class(loaded_session: SessionState) -> None:
    loaded_session.toggle_year("2022")
    loaded_session.select_view(ViewMode.TECHNOLOGY)

    fig = create_project_map_plot(loaded_session)
    assert {trace.name for trace in fig.data} == {
        "Street light",
        "Mini grid",
        "Home system",
        "Other",
    }
    assert sum(len(trace.lat) for trace in fig.data) == 6


def test_coverage_plot_is_a_choropleth(loaded_session: SessionState) -> None:
    loaded_session.select_view(ViewMode.COVERAGE)

    fig = create_project_map_plot(loaded_session)
    assert [trace.type for trace in fig.data] == ["choroplethmap"]
    assert list(fig.data[0].z) == [4, 3, 2, 0]


def test_empty_selection_gives_empty_map(loaded_session: SessionState) -> None:
    fig = create_points_plot(
        loaded_session.all_rows.iloc[0:0], ViewMode.PERFORMANCE, loaded_session
    )
    assert fig.layout.annotations[0].text == "No data to display"


def test_empty_session_coverage_plot() -> None:
    session = SessionState()
    session.store.commit(session.selection.with_view_mode(ViewMode.COVERAGE))

    fig = create_project_map_plot(session)
    assert fig.layout.annotations[0].text == "No data to display"


def test_zoom_from_bbox() -> None:
    wide = _calculate_zoom_from_bbox(2.7, 4.3, 14.7, 13.9)
    narrow = _calculate_zoom_from_bbox(3.0, 6.0, 3.1, 6.1)

    assert 0 < wide < narrow <= 20
