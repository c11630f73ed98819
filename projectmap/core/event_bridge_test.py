"""Tests for the stable event bridge.

Handlers are registered once at load time; these tests change the selection
afterwards and then fire renderer events, checking that the handlers act on the
latest selection rather than on the one present at registration.
"""

import pytest

from projectmap.core.config import DashboardConfig
from projectmap.core.event_bridge import StableEventBridge, hover_filter, point_id
from projectmap.core.map_renderer import InProcessMapRenderer
from projectmap.core.predicate import compile_predicate
from projectmap.core.selection_state import SelectionStore
from projectmap.core.session_state import SessionState
from projectmap.core.test_fixtures import (
    EMPTY_POINT,
    LAGOS_POINT,
    aggregate_store,
    loaded_session,
    projects_df,
    region_features,
)

assert aggregate_store, "Don't remove this import!"
assert loaded_session, "Don't remove this import!"
assert projects_df, "Don't remove this import!"
assert region_features, "Don't remove this import!"

LAYERS = DashboardConfig().layers


def test_bind_registers_handlers_once(loaded_session: SessionState) -> None:
    renderer = loaded_session.renderer
    assert renderer.handler_count("click") == 3
    assert renderer.handler_count("mousemove") == 1
    assert renderer.handler_count("mouseleave") == 1

    with pytest.raises(RuntimeError):
        loaded_session.bridge.bind()
    assert renderer.handler_count() == 5


def test_region_click_sees_selection_made_after_registration(
    loaded_session: SessionState,
) -> None:
    renderer = loaded_session.renderer
    handlers_before = renderer.handler_count()

    loaded_session.toggle_year("2022")
    loaded_session.toggle_status("ONGOING")
    loaded_session.toggle_type("SOLAR STREET LIGHT")
    renderer.click(*LAGOS_POINT)

    expected = compile_predicate({"2022"}, {"ONGOING"}, {"SOLAR STREET LIGHT"}, "LAGOS")
    assert renderer.get_filter(LAYERS.project_points) == expected
    assert loaded_session.selection.active_region == "LAGOS"
    assert renderer.handler_count() == handlers_before
    assert loaded_session.visible_count == 1


def test_region_click_fits_camera_to_region(loaded_session: SessionState) -> None:
    renderer = loaded_session.renderer
    renderer.click(*LAGOS_POINT)

    assert ("fit_bounds", ((3.0, 6.0, 4.0, 7.0), 40)) in renderer.calls
    assert renderer.camera.center == (3.5, 6.5)


def test_empty_click_clears_region_only(loaded_session: SessionState) -> None:
    renderer = loaded_session.renderer
    loaded_session.toggle_year("2022")
    renderer.click(*LAGOS_POINT)
    assert loaded_session.selection.active_region == "LAGOS"

    renderer.click(*EMPTY_POINT)

    assert loaded_session.selection.active_region is None
    assert loaded_session.selection.years == {"2022"}
    assert renderer.get_filter(LAYERS.project_points) == compile_predicate(
        {"2022"}, set(), set()
    )


def test_empty_click_without_region_keeps_selection(loaded_session: SessionState) -> None:
    loaded_session.toggle_status("COMPLETED")
    loaded_session.renderer.click(*EMPTY_POINT)

    assert loaded_session.selection.statuses == {"COMPLETED"}
    assert loaded_session.selection.active_region is None


def test_point_click_records_clicked_project(loaded_session: SessionState) -> None:
    # Project 1 sits inside Lagos, so the region handler fires as well.
    loaded_session.renderer.click(3.2, 6.2)

    assert point_id(loaded_session.bridge.last_clicked_point) == "1"
    assert loaded_session.selection.active_region == "LAGOS"
    details = loaded_session.last_clicked_point_details()
    assert details is not None
    assert details.title == "Project 1"


def test_hover_filter_follows_pointer(loaded_session: SessionState) -> None:
    renderer = loaded_session.renderer
    assert renderer.get_filter(LAYERS.region_fill_hover) == hover_filter("")

    renderer.mouse_move(*LAGOS_POINT)
    assert renderer.get_filter(LAYERS.region_fill_hover) == hover_filter("Lagos")

    renderer.mouse_move(*EMPTY_POINT)
    assert renderer.get_filter(LAYERS.region_fill_hover) == hover_filter("")


def test_dispatch_before_ready_is_a_noop() -> None:
    store = SelectionStore()
    renderer = InProcessMapRenderer()
    changes = []
    bridge = StableEventBridge(
        store=store,
        renderer=renderer,
        region_features=[],
        config=DashboardConfig(),
        is_ready=lambda: False,
        on_change=changes.append,
    )

    assert bridge.dispatch("year_toggled", lambda s: s.toggle_year("2022")) is None
    assert bridge.select_region("Lagos") is None
    assert store.version == 0
    assert not renderer.calls
    assert changes == []


def test_commit_is_visible_to_handlers() -> None:
    store = SelectionStore()
    bridge = StableEventBridge(
        store=store,
        renderer=InProcessMapRenderer(),
        region_features=[],
        config=DashboardConfig(),
        is_ready=lambda: True,
        on_change=lambda reason: None,
    )
    bridge.commit(bridge.get_current_selection().toggle_year("2020"))

    assert store.get_current_selection().years == {"2020"}


def test_point_id() -> None:
    assert point_id({"properties": {"id": 12}}) == "12"
    assert point_id({"id": "a", "properties": {}}) == "a"
    assert point_id({"properties": None}) is None
