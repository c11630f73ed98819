"""
View mode styling rules.

Each view mode maps deterministically to a ViewStyle:

| mode        | choropleth | points  | point colour        |
|-------------|------------|---------|---------------------|
| coverage    | visible    | hidden  | -                   |
| performance | hidden     | visible | by status           |
| technology  | hidden     | visible | by technology class |

The technology classification checks substrings of the project type token in a
fixed order. Composite tokens such as "SOLAR MINI GRID/SOLAR STREET LIGHT" contain
several of the substrings, so the order decides the class.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional

from projectmap.core.backend_frontend_shared_schema import (
    ViewMode,
    ViewStyleResponse,
    Visibility,
)
from projectmap.core.config import DashboardConfig
from projectmap.core.map_renderer import MapRenderer
from projectmap.core.schema import RegionColumns, SchemaColumns as C

logger = logging.getLogger(__name__)

FALLBACK_COLOR = "#95a5a6"

STATUS_COLORS = {
    "COMPLETED": "#2ecc71",
    "ONGOING": "#f39c12",
    "YET TO MOBILIZE": "#E63946",
}


class TechnologyClass(StrEnum):
    STREET_LIGHT = "Street light"
    MINI_GRID = "Mini grid"
    HOME_SYSTEM = "Home system"
    GRID = "Grid"
    OTHER = "Other"


TECHNOLOGY_COLORS = {
    TechnologyClass.STREET_LIGHT: "#f1c40f",
    TechnologyClass.MINI_GRID: "#8e44ad",
    TechnologyClass.HOME_SYSTEM: "#16a085",
    TechnologyClass.GRID: "#2c3e50",
    TechnologyClass.OTHER: FALLBACK_COLOR,
}

# Choropleth bands over the region project total, linearly interpolated.
COVERAGE_BANDS = (
    (0, "#f7fbff"),
    (40, "#c6dbef"),
    (80, "#6baed6"),
    (120, "#2171b5"),
    (160, "#08306b"),
)


def classify_technology(type_token: Optional[str]) -> TechnologyClass:
    """Classify a project type token; the checks run in precedence order."""
    if not type_token:
        return TechnologyClass.OTHER
    token = type_token.lower()
    if "street light" in token and "mini grid" not in token:
        return TechnologyClass.STREET_LIGHT
    if "mini grid" in token:
        return TechnologyClass.MINI_GRID
    if "home" in token:
        return TechnologyClass.HOME_SYSTEM
    if "grid" in token:
        return TechnologyClass.GRID
    return TechnologyClass.OTHER


def status_color(status: Optional[str]) -> str:
    return STATUS_COLORS.get(status or "", FALLBACK_COLOR)


def technology_color(type_token: Optional[str]) -> str:
    return TECHNOLOGY_COLORS[classify_technology(type_token)]


def status_color_expression() -> list[Any]:
    expression: list[Any] = ["match", ["get", str(C.STATUS)]]
    for status, color in STATUS_COLORS.items():
        expression.extend([status, color])
    expression.append(FALLBACK_COLOR)
    return expression


def technology_color_expression() -> list[Any]:
    """Renderer-side twin of classify_technology, with the same precedence."""
    token = ["downcase", ["to-string", ["get", str(C.TYPE)]]]
    return [
        "case",
        ["all", ["in", "street light", token], ["!", ["in", "mini grid", token]]],
        TECHNOLOGY_COLORS[TechnologyClass.STREET_LIGHT],
        ["in", "mini grid", token],
        TECHNOLOGY_COLORS[TechnologyClass.MINI_GRID],
        ["in", "home", token],
        TECHNOLOGY_COLORS[TechnologyClass.HOME_SYSTEM],
        ["in", "grid", token],
        TECHNOLOGY_COLORS[TechnologyClass.GRID],
        TECHNOLOGY_COLORS[TechnologyClass.OTHER],
    ]


def coverage_fill_expression() -> list[Any]:
    expression: list[Any] = ["interpolate", ["linear"], ["get", str(RegionColumns.TOTAL)]]
    for stop, color in COVERAGE_BANDS:
        expression.extend([stop, color])
    return expression


@dataclass(frozen=True)
class ViewStyle:
    view_mode: ViewMode
    choropleth_visible: bool
    points_visible: bool
    point_color: Optional[list[Any]]
    choropleth_fill: Optional[list[Any]]

    def layer_visibility(self, config: DashboardConfig) -> dict[str, Visibility]:
        layers = config.layers
        return {
            layers.region_choropleth: (
                Visibility.VISIBLE if self.choropleth_visible else Visibility.NONE
            ),
            layers.project_points: (
                Visibility.VISIBLE if self.points_visible else Visibility.NONE
            ),
        }

    def to_response(self, config: DashboardConfig) -> ViewStyleResponse:
        return ViewStyleResponse(
            view_mode=self.view_mode,
            layer_visibility=self.layer_visibility(config),
            point_color=self.point_color,
            choropleth_fill=self.choropleth_fill,
        )


def view_style_for(view_mode: ViewMode) -> ViewStyle:
    if view_mode == ViewMode.COVERAGE:
        return ViewStyle(
            view_mode=view_mode,
            choropleth_visible=True,
            points_visible=False,
            point_color=None,
            choropleth_fill=coverage_fill_expression(),
        )
    if view_mode == ViewMode.PERFORMANCE:
        return ViewStyle(
            view_mode=view_mode,
            choropleth_visible=False,
            points_visible=True,
            point_color=status_color_expression(),
            choropleth_fill=None,
        )
    if view_mode == ViewMode.TECHNOLOGY:
        return ViewStyle(
            view_mode=view_mode,
            choropleth_visible=False,
            points_visible=True,
            point_color=technology_color_expression(),
            choropleth_fill=None,
        )
    raise ValueError(f"Invalid view mode: {view_mode}")


def apply_view_style(
    renderer: MapRenderer, style: ViewStyle, config: DashboardConfig
) -> None:
    """Issue the layout and paint calls that put the renderer into the given view."""
    layers = config.layers
    for layer_id, visibility in style.layer_visibility(config).items():
        renderer.set_layout_property(layer_id, "visibility", str(visibility))
    if style.choropleth_fill is not None:
        renderer.set_paint_property(
            layers.region_choropleth, "fill-color", style.choropleth_fill
        )
    if style.point_color is not None:
        renderer.set_paint_property(
            layers.project_points, "circle-color", style.point_color
        )
    logger.info(f"Applied view style {style.view_mode=}")
