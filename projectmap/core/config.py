"""Dashboard configuration shared by the session, the event bridge and the CLI."""

from dataclasses import dataclass


@dataclass(frozen=True)
class LayerIds:
    """Renderer layer ids the dashboard draws into."""

    region_fill: str = "state-fill"
    region_fill_hover: str = "state-fill-hover"
    region_border: str = "state-border"
    region_choropleth: str = "state-choropleth"
    project_points: str = "project-points"


@dataclass(frozen=True)
class DashboardConfig:
    layers: LayerIds = LayerIds()
    # (longitude, latitude) the map returns to on clear-all.
    home_center: tuple[float, float] = (8.6753, 9.0820)
    home_zoom: float = 5.5
    fit_bounds_padding: int = 40
    # The renderer re-filters asynchronously; sampling earlier undercounts.
    count_delay_seconds: float = 0.3
    initial_count_delay_seconds: float = 0.5
    # How long the in-process renderer takes to apply a new filter.
    renderer_apply_delay_seconds: float = 0.05
    # Hit radius for point features in degrees.
    point_hit_tolerance: float = 0.01
