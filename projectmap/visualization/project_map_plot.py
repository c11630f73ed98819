"""Project Map Plot Module.

Plotly tile map of the dashboard in its current view mode: a choropleth of region
totals in coverage mode, the filtered project points otherwise.
"""

import math
from typing import Any, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from projectmap.core.backend_frontend_shared_schema import ViewMode
from projectmap.core.region_aggregates import display_region_name, enrich_region_features
from projectmap.core.schema import REGION_NAME_PROPERTY, RegionColumns as R, SchemaColumns as C
from projectmap.core.session_state import SessionState
from projectmap.core.view_mode import (
    COVERAGE_BANDS,
    STATUS_COLORS,
    TECHNOLOGY_COLORS,
    classify_technology,
)

MAP_STYLE = "carto-positron"
TECHNOLOGY_COLUMN = "Technology"


def _calculate_zoom_from_bbox(
    min_lon: float,
    min_lat: float,
    max_lon: float,
    max_lat: float,
    plot_size_pixels: int = 600,
) -> float:
    """Zoom level at which the box fits a square plot of plot_size_pixels.

    At zoom z one 512px tile spans 360 / 2^z degrees of longitude; latitude spans
    are scaled by cos(latitude) to compare them against longitude.
    """
    center_lat = (min_lat + max_lat) / 2
    lon_span = max(max_lon - min_lon, 1e-6)
    lat_span = max(max_lat - min_lat, 1e-6) / max(math.cos(math.radians(center_lat)), 1e-6)
    span = max(lon_span, lat_span)
    zoom = math.log2(360 * plot_size_pixels / (512 * span))
    return max(0.0, min(20.0, zoom))


def _map_view(
    df: pd.DataFrame, default_center: tuple[float, float], default_zoom: float
) -> tuple[float, float, float]:
    """(center_lat, center_lon, zoom) fitting the points, or the default view."""
    if df.empty:
        return default_center[1], default_center[0], default_zoom
    if len(df) == 1:
        return float(df[C.LATITUDE].iloc[0]), float(df[C.LONGITUDE].iloc[0]), 12.0
    min_lon, max_lon = df[C.LONGITUDE].min(), df[C.LONGITUDE].max()
    min_lat, max_lat = df[C.LATITUDE].min(), df[C.LATITUDE].max()
    zoom = _calculate_zoom_from_bbox(min_lon, min_lat, max_lon, max_lat)
    return (min_lat + max_lat) / 2, (min_lon + max_lon) / 2, zoom


def _empty_map(title: Optional[str], center: tuple[float, float], zoom: float) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Scattermap(lat=[], lon=[], mode="markers"))
    fig.update_layout(
        title=title,
        map=dict(
            style=MAP_STYLE,
            center=dict(lat=center[1], lon=center[0]),
            zoom=zoom,
        ),
        annotations=[
            dict(
                text="No data to display",
                x=0.5,
                y=0.95,
                xref="paper",
                yref="paper",
                showarrow=False,
                font=dict(size=16),
            )
        ],
    )
    return fig


def create_coverage_plot(
    region_features: list[dict[str, Any]],
    session_state: SessionState,
    title: Optional[str] = None,
) -> go.Figure:
    """Choropleth of the per-region project totals, in the coverage colour bands."""
    config = session_state.config
    if not region_features:
        return _empty_map(title, config.home_center, config.home_zoom)

    enriched = enrich_region_features(region_features, session_state.aggregates)
    df = pd.DataFrame(
        [
            {
                REGION_NAME_PROPERTY: f["properties"][REGION_NAME_PROPERTY],
                "Region": display_region_name(f["properties"][REGION_NAME_PROPERTY]),
                R.TOTAL: f["properties"][R.TOTAL],
            }
            for f in enriched
        ]
    )
    top = COVERAGE_BANDS[-1][0]
    color_scale = [(stop / top, color) for stop, color in COVERAGE_BANDS]

    fig = px.choropleth_map(
        df,
        geojson={"type": "FeatureCollection", "features": enriched},
        locations=REGION_NAME_PROPERTY,
        featureidkey=f"properties.{REGION_NAME_PROPERTY}",
        color=R.TOTAL,
        color_continuous_scale=color_scale,
        range_color=(0, top),
        hover_name="Region",
        map_style=MAP_STYLE,
        center=dict(lat=config.home_center[1], lon=config.home_center[0]),
        zoom=config.home_zoom,
        opacity=0.7,
        title=title,
    )
    fig.update_layout(coloraxis_colorbar=dict(title="Projects"))
    return fig


def create_points_plot(
    df: pd.DataFrame,
    view_mode: ViewMode,
    session_state: SessionState,
    title: Optional[str] = None,
) -> go.Figure:
    """Scatter map of the filtered projects, coloured by status or technology."""
    config = session_state.config
    df = df.dropna(subset=[C.LATITUDE, C.LONGITUDE]).copy()
    if df.empty:
        return _empty_map(title, config.home_center, config.home_zoom)

    if view_mode == ViewMode.TECHNOLOGY:
        df[TECHNOLOGY_COLUMN] = df[C.TYPE].map(lambda t: str(classify_technology(t)))
        color_column = TECHNOLOGY_COLUMN
        color_map = {str(k): v for k, v in TECHNOLOGY_COLORS.items()}
    else:
        df[C.STATUS] = df[C.STATUS].fillna("UNKNOWN")
        color_column = str(C.STATUS)
        color_map = dict(STATUS_COLORS)

    fig = px.scatter_map(
        df,
        lat=C.LATITUDE,
        lon=C.LONGITUDE,
        color=color_column,
        color_discrete_map=color_map,
        hover_name=C.TITLE,
        hover_data={
            C.ID: True,
            C.TYPE: True,
            C.STATUS: True,
            C.YEAR: True,
            C.REGION: True,
            C.LATITUDE: False,
            C.LONGITUDE: False,
        },
        custom_data=[C.ID],
        map_style=MAP_STYLE,
        title=title,
    )
    fig.update_traces(marker=dict(size=8, opacity=0.9))

    center_lat, center_lon, zoom = _map_view(df, config.home_center, config.home_zoom)
    fig.update_layout(
        hovermode="closest",
        showlegend=True,
        map=dict(center=dict(lat=center_lat, lon=center_lon), zoom=zoom),
    )
    return fig


def create_project_map_plot(
    session_state: SessionState, title: Optional[str] = None
) -> go.Figure:
    """Create the map figure for the session's current view mode and selection."""
    view_mode = session_state.selection.view_mode
    if view_mode == ViewMode.COVERAGE:
        return create_coverage_plot(session_state.region_features, session_state, title)
    return create_points_plot(
        session_state.get_filtered_data(), view_mode, session_state, title
    )
