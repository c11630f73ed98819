"""Shared schema definitions for backend-frontend communication."""

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ViewMode(StrEnum):
    """Thematic encodings of the project dataset."""

    COVERAGE = "coverage"
    PERFORMANCE = "performance"
    TECHNOLOGY = "technology"


class Visibility(StrEnum):
    VISIBLE = "visible"
    NONE = "none"


# API Request Models
class LoadDataRequest(BaseModel):
    """Request model for loading data."""

    projects_path: str
    regions_path: str
    aggregates_path: Optional[str] = None


class ToggleRequest(BaseModel):
    """Request model for toggling one value of a categorical filter."""

    value: str = Field(..., description="Year, status or project type to toggle")


class SelectViewRequest(BaseModel):
    view_mode: ViewMode


class RegionClickRequest(BaseModel):
    region_name: str = Field(..., description="Region name as it appears on the map")


# API Response Models
class SelectionResponse(BaseModel):
    """The current selection, with sets rendered as sorted lists."""

    years: list[str]
    statuses: list[str]
    types: list[str]
    active_region: Optional[str]
    view_mode: ViewMode


class ViewStyleResponse(BaseModel):
    view_mode: ViewMode
    layer_visibility: dict[str, Visibility]
    point_color: Optional[list[Any]]
    choropleth_fill: Optional[list[Any]]


class ShareEntry(BaseModel):
    label: str
    count: int
    percentage: float


class RegionPanel(BaseModel):
    """Side panel content for the active region."""

    region: str
    display_name: str
    view_mode: ViewMode
    # False when the aggregate table has no record for the region.
    has_data: bool
    total: Optional[int] = None
    completed: Optional[int] = None
    ongoing: Optional[int] = None
    yet_to_mobilize: Optional[int] = None
    pct_completed: Optional[float] = None
    breakdown: list[ShareEntry] = Field(default_factory=list)


class PointDetails(BaseModel):
    """Everything the point popup shows for a clicked project."""

    id: str
    title: Optional[str]
    status: Optional[str]
    status_color: str
    type: Optional[str]
    region: Optional[str]
    location: Optional[str]
    contractor: Optional[str]
    year: Optional[str]
    lot: Optional[str]
    coordinates: tuple[float, float]


class DashboardStateResponse(BaseModel):
    """Response model for the dashboard session state."""

    is_ready: bool
    total_count: int
    # None until the first count sample has been published.
    visible_count: Optional[int]
    active_filter_count: int
    selection: SelectionResponse
    predicate: Optional[list[Any]]
    view_style: ViewStyleResponse
    region_panel: Optional[RegionPanel]
    version: int


class LoadDataResponse(BaseModel):
    success: bool
    message: str
    state: DashboardStateResponse


class ProjectionPlotResponse(BaseModel):
    plotly_plot: dict[str, Any]
    view_mode: ViewMode
    feature_count: int


# Server-Sent Events Models
class SSEEvent(BaseModel):
    """Base model for Server-Sent Events."""

    type: str
    timestamp: float
    version: int


class StateChangeEvent(SSEEvent):
    state: DashboardStateResponse


class HeartbeatEvent(SSEEvent):
    pass
