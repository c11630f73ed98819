"""
Stable event bridge between the map renderer and the selection state.

Renderer event handlers are registered once, when the map loads, long before the
user has selected anything. A handler that closed over the selection values present
at registration would keep filtering with those values forever. Every handler here
instead holds the SelectionStore and reads get_current_selection() when it fires,
so it always acts on the latest committed selection, including changes made by
earlier events in the same session.
"""

import logging
from collections.abc import Callable
from typing import Any, Optional

from projectmap.core.config import DashboardConfig
from projectmap.core.geometry import feature_bbox, find_region_feature
from projectmap.core.map_renderer import MapEvent, MapRenderer
from projectmap.core.predicate import Predicate, compile_selection, describe_predicate
from projectmap.core.region_aggregates import normalize_region_name
from projectmap.core.schema import REGION_NAME_PROPERTY, SchemaColumns as C
from projectmap.core.selection_state import SelectionState, SelectionStore

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str], None]


def hover_filter(region_name: str) -> list[Any]:
    return ["==", ["get", REGION_NAME_PROPERTY], region_name]


class StableEventBridge:
    """
    Owns the SelectionStore and translates selection changes into renderer calls.

    Args:
        store: The session's selection cell
        renderer: Map renderer to register handlers on and push filters to
        region_features: Boundary features, used to fit the camera to a region
        config: Layer ids and camera settings
        is_ready: Returns False until the initial data load has completed
        on_change: Called with a short reason string after every applied change
    """

    def __init__(
        self,
        store: SelectionStore,
        renderer: MapRenderer,
        region_features: list[dict[str, Any]],
        config: DashboardConfig,
        is_ready: Callable[[], bool],
        on_change: ChangeCallback,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.region_features = region_features
        self.config = config
        self._is_ready = is_ready
        self._on_change = on_change
        self._bound = False
        self.last_clicked_point: Optional[dict[str, Any]] = None

    def get_current_selection(self) -> SelectionState:
        return self.store.get_current_selection()

    def commit(self, new_selection: SelectionState) -> bool:
        return self.store.commit(new_selection)

    def bind(self) -> None:
        """Register the renderer handlers. Must be called exactly once per renderer."""
        if self._bound:
            raise RuntimeError("Event handlers are already registered on this renderer")
        layers = self.config.layers
        self.renderer.on("click", self.handle_region_click, layers.region_fill)
        self.renderer.on("click", self.handle_point_click, layers.project_points)
        self.renderer.on("click", self.handle_map_click)
        self.renderer.on("mousemove", self.handle_region_hover, layers.region_fill)
        self.renderer.on("mouseleave", self.handle_region_leave, layers.region_fill)
        self._bound = True
        logger.info("Registered map event handlers")

    # Selection changes

    def apply_current_predicate(self) -> Predicate:
        predicate = compile_selection(self.get_current_selection())
        self.renderer.set_filter(self.config.layers.project_points, predicate)
        logger.info(f"Applied filter: {describe_predicate(predicate)}")
        return predicate

    def dispatch(
        self,
        reason: str,
        change: Callable[[SelectionState], SelectionState],
    ) -> Optional[SelectionState]:
        """
        Commit change(current selection), push the new predicate and notify.

        Returns:
            The new selection, or None when the dashboard is not ready yet
        """
        if not self._is_ready():
            logger.info(f"Ignoring {reason=}, initial data load has not completed")
            return None
        new_selection = self.store.update(change)
        self.apply_current_predicate()
        self._on_change(reason)
        return new_selection

    def select_region(
        self, region_name: str, feature: Optional[dict[str, Any]] = None
    ) -> Optional[SelectionState]:
        """Make region_name the active region and fit the camera to its boundary."""
        region = normalize_region_name(region_name)
        if feature is None:
            feature = find_region_feature(self.region_features, region)
        new_selection = self.dispatch(
            "region_selected", lambda current: current.with_region(region)
        )
        if new_selection is not None and feature is not None:
            self.renderer.fit_bounds(
                feature_bbox(feature), self.config.fit_bounds_padding
            )
        return new_selection

    def clear_region(self) -> Optional[SelectionState]:
        return self.dispatch("region_cleared", lambda current: current.with_region(None))

    # Renderer handlers

    def handle_region_click(self, event: MapEvent) -> None:
        if not event.features:
            return
        feature = event.features[0]
        name = (feature.get("properties") or {}).get(REGION_NAME_PROPERTY)
        if not name:
            logger.warning("Clicked region feature has no name property")
            return
        self.select_region(name, feature)

    def handle_point_click(self, event: MapEvent) -> None:
        if not event.features or not self._is_ready():
            return
        self.last_clicked_point = event.features[0]
        logger.info(f"Clicked project {self.last_clicked_point.get('id')}")
        self._on_change("point_clicked")

    def handle_map_click(self, event: MapEvent) -> None:
        """Clear the region filter when the click hit neither a region nor a project."""
        if event.lng_lat is None:
            return
        layers = self.config.layers
        hits = self.renderer.query_rendered_features(
            event.lng_lat, [layers.region_fill, layers.project_points]
        )
        if hits:
            return
        self.clear_region()

    def handle_region_hover(self, event: MapEvent) -> None:
        if not event.features:
            return
        name = (event.features[0].get("properties") or {}).get(REGION_NAME_PROPERTY, "")
        self.renderer.set_filter(self.config.layers.region_fill_hover, hover_filter(name))

    def handle_region_leave(self, event: MapEvent) -> None:
        self.renderer.set_filter(self.config.layers.region_fill_hover, hover_filter(""))


def point_id(feature: dict[str, Any]) -> Optional[str]:
    properties = feature.get("properties") or {}
    value = properties.get(C.ID, feature.get("id"))
    return None if value is None else str(value)
