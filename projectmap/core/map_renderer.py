"""
The vector-map renderer interface and an in-process implementation.

The dashboard only talks to the renderer through MapRenderer. The browser map
library implements the same calls on the client; InProcessMapRenderer implements
them over pandas and shapely so the server can answer count queries, and so the
synchronization logic can be exercised without a browser.

Like the browser renderer, InProcessMapRenderer applies a new filter
asynchronously: when an event loop is running the filter takes effect after
apply_delay_seconds, and queries made before that still see the previous frame.
"""

import asyncio
import collections
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import numpy as np
import pandas as pd

from projectmap.core.geometry import BBox, bbox_center, feature_contains
from projectmap.core.predicate import Predicate, evaluate_predicate
from projectmap.core.schema import SchemaColumns as C, dataframe_to_feature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapEvent:
    """A pointer event delivered to a subscribed handler."""

    type: str
    lng_lat: Optional[tuple[float, float]] = None
    # Features of the subscribed layer under the pointer; empty for map-wide handlers.
    features: list[dict[str, Any]] = field(default_factory=list)


MapEventHandler = Callable[[MapEvent], None]


class MapRenderer(Protocol):
    def set_filter(self, layer_id: str, predicate: Predicate) -> None: ...

    def set_paint_property(self, layer_id: str, name: str, value: Any) -> None: ...

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None: ...

    def query_rendered_features(
        self,
        point: Optional[tuple[float, float]] = None,
        layers: Optional[list[str]] = None,
    ) -> list[dict[str, Any]]: ...

    def fit_bounds(self, bbox: BBox, padding: int) -> None: ...

    def fly_to(self, center: tuple[float, float], zoom: float) -> None: ...

    def on(
        self, event_type: str, handler: MapEventHandler, layer_id: Optional[str] = None
    ) -> None: ...


@dataclass
class _Layer:
    id: str
    kind: str
    # Point layers hold a DataFrame, polygon layers a list of GeoJSON features.
    points: Optional[pd.DataFrame] = None
    polygons: Optional[list[dict[str, Any]]] = None
    polygon_properties: Optional[pd.DataFrame] = None
    filter: Predicate = None
    filter_generation: int = 0
    paint: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)

    @property
    def visible(self) -> bool:
        return self.layout.get("visibility", "visible") != "none"


@dataclass
class CameraState:
    center: tuple[float, float]
    zoom: float
    bounds: Optional[BBox] = None


class InProcessMapRenderer:
    """MapRenderer over in-memory feature data."""

    def __init__(
        self,
        center: tuple[float, float] = (0.0, 0.0),
        zoom: float = 1.0,
        apply_delay_seconds: float = 0.0,
        point_hit_tolerance: float = 0.01,
        call_log_size: int = 200,
    ) -> None:
        self.apply_delay_seconds = apply_delay_seconds
        self.point_hit_tolerance = point_hit_tolerance
        self.camera = CameraState(center=center, zoom=zoom)
        self._layers: dict[str, _Layer] = {}
        self._handlers: list[tuple[str, Optional[str], MapEventHandler]] = []
        self._hovered_layers: set[str] = set()
        # The most recent calls made through the MapRenderer interface, oldest first.
        self.calls: collections.deque[tuple[str, tuple[Any, ...]]] = collections.deque(
            maxlen=call_log_size
        )

    # Layer setup

    def add_point_layer(self, layer_id: str, df: pd.DataFrame) -> None:
        self._layers[layer_id] = _Layer(id=layer_id, kind="circle", points=df)
        logger.info(f"Added point layer {layer_id=} with {len(df)} features")

    def add_polygon_layer(
        self,
        layer_id: str,
        features: list[dict[str, Any]],
        predicate: Predicate = None,
        visible: bool = True,
    ) -> None:
        properties = pd.DataFrame([f.get("properties") or {} for f in features])
        self._layers[layer_id] = _Layer(
            id=layer_id,
            kind="fill",
            polygons=features,
            polygon_properties=properties,
            filter=predicate,
            layout={"visibility": "visible" if visible else "none"},
        )
        logger.info(f"Added polygon layer {layer_id=} with {len(features)} features")

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def _layer(self, layer_id: str) -> _Layer:
        if layer_id not in self._layers:
            raise KeyError(f"Unknown layer: {layer_id}")
        return self._layers[layer_id]

    # MapRenderer interface

    def set_filter(self, layer_id: str, predicate: Predicate) -> None:
        self.calls.append(("set_filter", (layer_id, predicate)))
        layer = self._layer(layer_id)
        layer.filter_generation += 1
        generation = layer.filter_generation
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None or self.apply_delay_seconds <= 0:
            layer.filter = predicate
            return
        loop.call_later(
            self.apply_delay_seconds, self._apply_filter, layer, predicate, generation
        )

    def _apply_filter(self, layer: _Layer, predicate: Predicate, generation: int) -> None:
        # A later set_filter on the same layer supersedes this one.
        if generation == layer.filter_generation:
            layer.filter = predicate

    def get_filter(self, layer_id: str) -> Predicate:
        """The filter currently applied to the rendered frame."""
        return self._layer(layer_id).filter

    def set_paint_property(self, layer_id: str, name: str, value: Any) -> None:
        self.calls.append(("set_paint_property", (layer_id, name, value)))
        self._layer(layer_id).paint[name] = value

    def get_paint_property(self, layer_id: str, name: str) -> Any:
        return self._layer(layer_id).paint.get(name)

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None:
        self.calls.append(("set_layout_property", (layer_id, name, value)))
        self._layer(layer_id).layout[name] = value

    def get_layout_property(self, layer_id: str, name: str) -> Any:
        return self._layer(layer_id).layout.get(name)

    def query_rendered_features(
        self,
        point: Optional[tuple[float, float]] = None,
        layers: Optional[list[str]] = None,
    ) -> list[dict[str, Any]]:
        layer_ids = layers if layers is not None else list(self._layers)
        features: list[dict[str, Any]] = []
        for layer_id in layer_ids:
            layer = self._layers.get(layer_id)
            if layer is None or not layer.visible:
                continue
            if layer.kind == "circle":
                features.extend(self._query_points(layer, point))
            else:
                features.extend(self._query_polygons(layer, point))
        return features

    def _query_points(
        self, layer: _Layer, point: Optional[tuple[float, float]]
    ) -> list[dict[str, Any]]:
        df = layer.points
        if df is None or df.empty:
            return []
        df = df[evaluate_predicate(layer.filter, df)]
        if point is not None:
            lon, lat = point
            distance = np.hypot(df[C.LONGITUDE] - lon, df[C.LATITUDE] - lat)
            df = df[distance <= self.point_hit_tolerance]
        return [dataframe_to_feature(row) for _, row in df.iterrows()]

    def _query_polygons(
        self, layer: _Layer, point: Optional[tuple[float, float]]
    ) -> list[dict[str, Any]]:
        if not layer.polygons:
            return []
        mask = evaluate_predicate(layer.filter, layer.polygon_properties)
        hits = []
        for feature, rendered in zip(layer.polygons, mask):
            if not rendered:
                continue
            if point is not None and not feature_contains(feature, *point):
                continue
            hits.append(feature)
        return hits

    def fit_bounds(self, bbox: BBox, padding: int) -> None:
        self.calls.append(("fit_bounds", (bbox, padding)))
        self.camera = CameraState(center=bbox_center(bbox), zoom=self.camera.zoom, bounds=bbox)

    def fly_to(self, center: tuple[float, float], zoom: float) -> None:
        self.calls.append(("fly_to", (center, zoom)))
        self.camera = CameraState(center=center, zoom=zoom)

    def on(
        self, event_type: str, handler: MapEventHandler, layer_id: Optional[str] = None
    ) -> None:
        self._handlers.append((event_type, layer_id, handler))

    def handler_count(self, event_type: Optional[str] = None) -> int:
        return sum(1 for t, _, _ in self._handlers if event_type in (None, t))

    # Pointer input

    def click(self, lon: float, lat: float) -> None:
        """Deliver a click at (lon, lat) to subscribed handlers, in subscription order."""
        self._dispatch("click", (lon, lat))

    def mouse_move(self, lon: float, lat: float) -> None:
        """Deliver mousemove to layers under the pointer and mouseleave to layers it left."""
        point = (lon, lat)
        under_pointer = set()
        for event_type, layer_id, _ in self._handlers:
            if event_type == "mousemove" and layer_id is not None:
                if self.query_rendered_features(point, [layer_id]):
                    under_pointer.add(layer_id)
        left = self._hovered_layers - under_pointer
        self._hovered_layers = under_pointer
        self._dispatch("mousemove", point)
        for event_type, layer_id, handler in list(self._handlers):
            if event_type == "mouseleave" and layer_id in left:
                handler(MapEvent(type="mouseleave", lng_lat=point))

    def _dispatch(self, event_type: str, point: tuple[float, float]) -> None:
        for subscribed_type, layer_id, handler in list(self._handlers):
            if subscribed_type != event_type:
                continue
            if layer_id is None:
                handler(MapEvent(type=event_type, lng_lat=point))
                continue
            hits = self.query_rendered_features(point, [layer_id])
            if hits:
                handler(MapEvent(type=event_type, lng_lat=point, features=hits))
