"""Session state management for the single-session project map dashboard."""

import asyncio
import json
import logging
import time
from collections.abc import AsyncGenerator
from typing import Any, Optional

import pandas as pd

from projectmap.core.backend_frontend_shared_schema import (
    DashboardStateResponse,
    HeartbeatEvent,
    PointDetails,
    RegionPanel,
    StateChangeEvent,
    ViewMode,
)
from projectmap.core.config import DashboardConfig
from projectmap.core.event_bridge import StableEventBridge, hover_filter, point_id
from projectmap.core.map_renderer import InProcessMapRenderer
from projectmap.core.predicate import compile_selection, evaluate_predicate
from projectmap.core.region_aggregates import (
    RegionAggregateStore,
    build_region_panel,
    enrich_region_features,
)
from projectmap.core.schema import SchemaColumns as C
from projectmap.core.selection_state import SelectionState, SelectionStore
from projectmap.core.view_mode import apply_view_style, status_color, view_style_for
from projectmap.core.visible_count import VisibleCountEstimator

logger = logging.getLogger(__name__)


class SessionState:
    """
    Holds everything one dashboard session needs.

    There is exactly one instance of this class per web server instance. It owns the
    renderer, the stable event bridge (and through it the selection store), the
    region aggregate store and the visible-count estimator.

    Until load() has completed, every operation that would change the selection or
    the renderer is a no-op that returns the current state.
    """

    def __init__(self, config: Optional[DashboardConfig] = None) -> None:
        self.config = config or DashboardConfig()
        self.all_rows = pd.DataFrame()
        self.region_features: list[dict[str, Any]] = []
        self.aggregates = RegionAggregateStore()
        self.store = SelectionStore()
        self.renderer = InProcessMapRenderer(
            center=self.config.home_center,
            zoom=self.config.home_zoom,
            apply_delay_seconds=self.config.renderer_apply_delay_seconds,
            point_hit_tolerance=self.config.point_hit_tolerance,
        )
        self.bridge = StableEventBridge(
            store=self.store,
            renderer=self.renderer,
            region_features=self.region_features,
            config=self.config,
            is_ready=lambda: self.is_ready,
            on_change=self._on_selection_applied,
        )
        self.count_estimator = VisibleCountEstimator(
            sample_fn=self.sample_visible_count,
            publish_fn=self._publish_visible_count,
            delay_seconds=self.config.count_delay_seconds,
        )
        self.is_ready = False
        self.visible_count: Optional[int] = None

        # SSE event broadcasting
        self.state_version = 0
        self.sse_clients: set[asyncio.Queue] = set()

    def load(
        self,
        features: pd.DataFrame,
        region_features: list[dict[str, Any]],
        aggregates: RegionAggregateStore,
    ) -> None:
        """Load the project points, region boundaries and aggregate table, then go live."""
        if self.is_ready:
            raise RuntimeError("Session data is already loaded")

        layers = self.config.layers
        enriched = enrich_region_features(region_features, aggregates)

        # Layers are replaced by id, so a retry after a failure here starts clean.
        self.renderer.add_polygon_layer(layers.region_choropleth, enriched)
        self.renderer.add_polygon_layer(layers.region_fill, region_features)
        self.renderer.add_polygon_layer(
            layers.region_fill_hover,
            region_features,
            predicate=hover_filter(""),
        )
        self.renderer.add_point_layer(layers.project_points, features)
        apply_view_style(self.renderer, view_style_for(self.selection.view_mode), self.config)
        self.renderer.set_filter(layers.project_points, compile_selection(self.selection))

        self.all_rows = features
        self.aggregates = aggregates
        # The bridge holds this same list, so replace its contents in place.
        self.region_features[:] = region_features
        self.bridge.bind()
        self.is_ready = True

        logger.info(
            f"Loaded {len(features)} projects, {len(region_features)} regions and {len(aggregates)} aggregate records into session state"
        )
        self.count_estimator.schedule(self.config.initial_count_delay_seconds)
        self.broadcast_state_change("data_loaded")

    @property
    def selection(self) -> SelectionState:
        return self.store.get_current_selection()

    @property
    def region_panel(self) -> Optional[RegionPanel]:
        # Derived from the selection, so a view switch (which clears the region) clears it too.
        selection = self.selection
        if selection.active_region is None:
            return None
        return build_region_panel(
            selection.active_region,
            self.aggregates.lookup(selection.active_region),
            selection.view_mode,
        )

    # UI surface operations

    def toggle_year(self, year: str) -> DashboardStateResponse:
        self.bridge.dispatch("year_toggled", lambda s: s.toggle_year(year))
        return self.create_state_response()

    def toggle_status(self, status: str) -> DashboardStateResponse:
        self.bridge.dispatch("status_toggled", lambda s: s.toggle_status(status))
        return self.create_state_response()

    def toggle_type(self, type_: str) -> DashboardStateResponse:
        self.bridge.dispatch("type_toggled", lambda s: s.toggle_type(type_))
        return self.create_state_response()

    def clear_all(self) -> DashboardStateResponse:
        if self.bridge.dispatch("filters_cleared", lambda s: s.cleared()) is not None:
            self.renderer.fly_to(self.config.home_center, self.config.home_zoom)
        return self.create_state_response()

    def clear_region(self) -> DashboardStateResponse:
        if self.bridge.clear_region() is not None:
            self.renderer.fly_to(self.config.home_center, self.config.home_zoom)
        return self.create_state_response()

    def select_view(self, view_mode: ViewMode) -> DashboardStateResponse:
        view_mode = ViewMode(view_mode)
        new_selection = self.bridge.dispatch(
            "view_selected", lambda s: s.with_view_mode(view_mode)
        )
        if new_selection is not None:
            apply_view_style(self.renderer, view_style_for(view_mode), self.config)
            # Visibility changed, so the rendered count changed too.
            self.count_estimator.schedule()
        return self.create_state_response()

    def click_region(self, region_name: str) -> DashboardStateResponse:
        self.bridge.select_region(region_name)
        return self.create_state_response()

    def click_empty(self) -> DashboardStateResponse:
        self.bridge.clear_region()
        return self.create_state_response()

    def click_point(self, project_id: str) -> Optional[PointDetails]:
        """Details for the project popup; None when not ready or the id is unknown."""
        if not self.is_ready:
            return None
        matching_rows = self.all_rows[self.all_rows[C.ID] == str(project_id)]
        if len(matching_rows) == 0:
            logger.info(f"No project with {project_id=}")
            return None
        row = matching_rows.iloc[0]
        self.bridge.last_clicked_point = {"id": row[C.ID]}
        return point_details(row)

    def last_clicked_point_details(self) -> Optional[PointDetails]:
        if self.bridge.last_clicked_point is None:
            return None
        return self.click_point(point_id(self.bridge.last_clicked_point))

    # Derived state

    def sample_visible_count(self) -> int:
        return len(
            self.renderer.query_rendered_features(layers=[self.config.layers.project_points])
        )

    def _publish_visible_count(self, count: int) -> None:
        self.visible_count = count
        self.broadcast_state_change("count_updated")

    def _on_selection_applied(self, reason: str) -> None:
        if reason != "point_clicked":
            self.count_estimator.schedule()
        self.broadcast_state_change(reason)

    def get_filtered_data(self) -> pd.DataFrame:
        """Projects passing the current selection, regardless of layer visibility."""
        if self.all_rows.empty:
            return self.all_rows.copy()
        mask = evaluate_predicate(compile_selection(self.selection), self.all_rows)
        return self.all_rows[mask].copy()

    def create_state_response(self) -> DashboardStateResponse:
        """Create a strongly typed dashboard state response."""
        selection = self.selection
        return DashboardStateResponse(
            is_ready=self.is_ready,
            total_count=len(self.all_rows),
            visible_count=self.visible_count,
            active_filter_count=selection.active_filter_count,
            selection=selection.to_response(),
            predicate=compile_selection(selection),
            view_style=view_style_for(selection.view_mode).to_response(self.config),
            region_panel=self.region_panel,
            version=self.state_version,
        )

    def get_summary(self) -> dict:
        """Get a summary of the current session state."""
        return {
            "is_ready": self.is_ready,
            "all_rows_count": len(self.all_rows),
            "visible_count": self.visible_count,
            "region_count": len(self.region_features),
            "aggregate_count": len(self.aggregates),
            "selection_version": self.store.version,
        }

    def _state_change_event(self, event_type: str) -> StateChangeEvent:
        return StateChangeEvent(
            type=event_type,
            timestamp=time.time(),
            version=self.state_version,
            state=self.create_state_response(),
        )

    def broadcast_state_change(self, event_type: str) -> None:
        """Broadcast a state change event to all SSE clients."""
        self.state_version += 1
        event_data = self._state_change_event(event_type).model_dump(mode="json")

        # Queue the event for all connected SSE clients
        for client_queue in self.sse_clients:
            try:
                client_queue.put_nowait(event_data)
            except asyncio.QueueFull:
                logger.warning("SSE client queue full, dropping event")

    async def state_change_stream(self) -> AsyncGenerator[str, None]:
        """Generate Server-Sent Events stream for state changes."""
        client_queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        self.sse_clients.add(client_queue)

        try:
            initial_event = self._state_change_event("connection_established")
            yield f"data: {initial_event.model_dump_json()}\n\n"

            while True:
                try:
                    event_data = await asyncio.wait_for(client_queue.get(), timeout=2.0)
                    yield f"data: {json.dumps(event_data)}\n\n"
                except asyncio.TimeoutError:
                    # Send periodic heartbeat to keep connection alive
                    heartbeat = HeartbeatEvent(
                        type="heartbeat", timestamp=time.time(), version=self.state_version
                    )
                    yield f"data: {heartbeat.model_dump_json()}\n\n"
        except asyncio.CancelledError:
            logger.info("SSE client disconnected")
        finally:
            self.sse_clients.discard(client_queue)


def point_details(row: pd.Series) -> PointDetails:
    def text(column: str) -> Optional[str]:
        value = row.get(column)
        return None if value is None or pd.isna(value) else str(value)

    return PointDetails(
        id=str(row[C.ID]),
        title=text(C.TITLE),
        status=text(C.STATUS),
        status_color=status_color(text(C.STATUS)),
        type=text(C.TYPE),
        region=text(C.REGION),
        location=text(C.LOCATION),
        contractor=text(C.CONTRACTOR),
        year=text(C.YEAR),
        lot=text(C.LOT),
        coordinates=(float(row[C.LONGITUDE]), float(row[C.LATITUDE])),
    )
