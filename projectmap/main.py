"""Main CLI application for the project map dashboard."""

import json
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from projectmap.core.backend_frontend_shared_schema import (
    DashboardStateResponse,
    LoadDataRequest,
    LoadDataResponse,
    PointDetails,
    ProjectionPlotResponse,
    RegionClickRequest,
    RegionPanel,
    SelectViewRequest,
    ToggleRequest,
)
from projectmap.core.config import DashboardConfig
from projectmap.core.region_aggregates import (
    RegionAggregateStore,
    build_region_panel,
    load_region_aggregates,
)
from projectmap.core.schema import load_geojson, load_project_features
from projectmap.core.session_state import SessionState
from projectmap.visualization.project_map_plot import create_project_map_plot


@dataclass
class App:
    """Application state container to avoid global variables."""

    session_state: SessionState


# Create a single app instance for dependency injection
_app_instance = App(session_state=SessionState())

# Configure logging for better error visibility with IDE-clickable file paths
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(pathname)s:%(lineno)d %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def get_session_state() -> SessionState:
    """Dependency function to get the session state instance."""
    return _app_instance.session_state


app = FastAPI(
    title="Project Map",
    description="Interactive map dashboard of geolocated infrastructure projects",
)


# Exception handlers for better error logging
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler that logs full stack traces."""
    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {str(exc)}",
            "type": type(exc).__name__,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for HTTP exceptions with logging."""
    logger.error(
        f"HTTP exception in {request.method} {request.url.path}: {exc.status_code} - {exc.detail}"
    )

    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handler for request validation errors with logging."""
    logger.error(f"Validation error in {request.method} {request.url.path}: {exc.errors()}")

    return JSONResponse(status_code=422, content={"detail": exc.errors()})


# Mount static files
static_path = Path(__file__).parent / "static"
if static_path.exists():
    app.mount("/static", StaticFiles(directory=str(static_path)), name="static")


def load_session_data(
    session_state: SessionState,
    projects_path: Path,
    regions_path: Path,
    aggregates_path: Optional[Path] = None,
) -> None:
    """Read the three inputs and hand them to the session in one step."""
    features = load_project_features(projects_path)
    region_features = load_geojson(regions_path)["features"]
    if aggregates_path is not None:
        aggregates = load_region_aggregates(aggregates_path)
    else:
        logger.warning("No aggregate table given, every region panel will show no data")
        aggregates = RegionAggregateStore()
    session_state.load(features, region_features, aggregates)


@app.get("/", response_class=HTMLResponse)
async def root() -> str:
    """Serve the main application page."""
    static_file = static_path / "index.html"
    if not static_file.exists():
        raise HTTPException(status_code=404, detail="No frontend bundled")
    return static_file.read_text()


@app.post("/api/data/load")
async def load_data_endpoint(
    request: LoadDataRequest, session_state: SessionState = Depends(get_session_state)
) -> LoadDataResponse:
    """Load projects, region boundaries and aggregates into the session state."""
    if session_state.is_ready:
        raise HTTPException(status_code=409, detail="Data is already loaded")
    paths = [Path(request.projects_path), Path(request.regions_path)]
    if request.aggregates_path:
        paths.append(Path(request.aggregates_path))
    for path in paths:
        if not path.exists():
            raise HTTPException(status_code=404, detail=f"File not found: {path}")

    try:
        load_session_data(session_state, *paths)
        return LoadDataResponse(
            success=True,
            message=f"Successfully loaded {len(session_state.all_rows)} projects",
            state=session_state.create_state_response(),
        )
    except Exception as e:
        logger.error(f"Error loading data from {paths}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading data: {str(e)}")


@app.get("/api/session")
async def get_session_status(
    wait_for_count: bool = False,
    session_state: SessionState = Depends(get_session_state),
) -> DashboardStateResponse:
    """Get the current dashboard state, optionally after pending count samples settle."""
    if wait_for_count:
        await session_state.count_estimator.wait_idle()
    return session_state.create_state_response()


def _toggle(session_state: SessionState, dimension: str, value: str) -> DashboardStateResponse:
    toggles = {
        "year": session_state.toggle_year,
        "status": session_state.toggle_status,
        "type": session_state.toggle_type,
    }
    try:
        return toggles[dimension](value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/filters/year")
async def toggle_year(
    request: ToggleRequest, session_state: SessionState = Depends(get_session_state)
) -> DashboardStateResponse:
    return _toggle(session_state, "year", request.value)


@app.post("/api/filters/status")
async def toggle_status(
    request: ToggleRequest, session_state: SessionState = Depends(get_session_state)
) -> DashboardStateResponse:
    return _toggle(session_state, "status", request.value)


@app.post("/api/filters/type")
async def toggle_type(
    request: ToggleRequest, session_state: SessionState = Depends(get_session_state)
) -> DashboardStateResponse:
    return _toggle(session_state, "type", request.value)


@app.post("/api/filters/clear")
async def clear_all_filters(
    session_state: SessionState = Depends(get_session_state),
) -> DashboardStateResponse:
    """Clear every filter, including the region, and return to the home view."""
    return session_state.clear_all()


@app.post("/api/filters/region/clear")
async def clear_region_filter(
    session_state: SessionState = Depends(get_session_state),
) -> DashboardStateResponse:
    return session_state.clear_region()


@app.post("/api/view")
async def select_view(
    request: SelectViewRequest, session_state: SessionState = Depends(get_session_state)
) -> DashboardStateResponse:
    return session_state.select_view(request.view_mode)


@app.post("/api/map/click/region")
async def click_region(
    request: RegionClickRequest, session_state: SessionState = Depends(get_session_state)
) -> DashboardStateResponse:
    return session_state.click_region(request.region_name)


@app.post("/api/map/click/empty")
async def click_empty(
    session_state: SessionState = Depends(get_session_state),
) -> DashboardStateResponse:
    return session_state.click_empty()


@app.get("/api/projects/{project_id}")
async def get_project(
    project_id: str, session_state: SessionState = Depends(get_session_state)
) -> PointDetails:
    """Details for the project popup."""
    if not session_state.is_ready:
        raise HTTPException(status_code=404, detail="No data loaded")
    details = session_state.click_point(project_id)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return details


@app.get("/api/regions/{region_name}")
async def get_region(
    region_name: str, session_state: SessionState = Depends(get_session_state)
) -> RegionPanel:
    """Aggregate panel for a region under the current view; has_data is false on a miss."""
    record = session_state.aggregates.lookup(region_name)
    return build_region_panel(region_name, record, session_state.selection.view_mode)


@app.get("/api/plots/map")
async def get_map_plot(
    session_state: SessionState = Depends(get_session_state),
) -> ProjectionPlotResponse:
    """Get the plotly map figure for the current view mode."""
    if not session_state.is_ready:
        raise HTTPException(status_code=404, detail="No data loaded")

    try:
        fig = create_project_map_plot(session_state)
        fig_json = fig.to_json()
        if fig_json is None:
            raise ValueError("Failed to serialize map plot to JSON")
        return ProjectionPlotResponse(
            plotly_plot=json.loads(fig_json),
            view_mode=session_state.selection.view_mode,
            feature_count=len(session_state.get_filtered_data()),
        )
    except Exception as e:
        logger.error(f"Error generating map plot: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating map plot: {str(e)}")


@app.get("/api/events/state-changes")
async def state_change_stream(
    session_state: SessionState = Depends(get_session_state),
) -> Any:
    """Server-Sent Events stream for dashboard state notifications."""
    return StreamingResponse(
        session_state.state_change_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Cache-Control",
        },
    )


# https://github.com/fastapi/typer/issues/341
typer.main.get_command_name = lambda name: name

cli = typer.Typer(
    help="Project Map - Interactive map dashboard of geolocated infrastructure projects",
    pretty_exceptions_show_locals=False,
    pretty_exceptions_enable=False,
)


@cli.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    """Project Map - Interactive map dashboard of geolocated infrastructure projects."""
    pass


@cli.command("serve")
def serve(
    port: int = typer.Option(8000, help="Port to serve on"),
    host: str = typer.Option("localhost", help="Host to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
    preload_projects: Optional[Path] = typer.Option(
        None,
        help="Path to the project point GeoJSON to preload",
        exists=True,
        dir_okay=False,
        file_okay=True,
    ),
    preload_regions: Optional[Path] = typer.Option(
        None,
        help="Path to the region boundary GeoJSON to preload",
        exists=True,
        dir_okay=False,
        file_okay=True,
    ),
    preload_aggregates: Optional[Path] = typer.Option(
        None,
        help="Path to the region aggregate table (JSON or CSV) to preload",
        exists=True,
        dir_okay=False,
        file_okay=True,
    ),
    count_delay_seconds: float = typer.Option(
        DashboardConfig.count_delay_seconds,
        help="Delay before re-sampling the visible project count after a change",
    ),
) -> None:
    """Start the Project Map web application."""
    _app_instance.session_state = SessionState(
        DashboardConfig(count_delay_seconds=count_delay_seconds)
    )

    if preload_projects and preload_regions:
        typer.echo(f"Loading data from {preload_projects} and {preload_regions}...")
        load_session_data(
            _app_instance.session_state,
            preload_projects,
            preload_regions,
            preload_aggregates,
        )
        typer.echo(
            f"Successfully loaded {len(_app_instance.session_state.all_rows)} projects"
        )
    elif preload_projects or preload_regions:
        typer.echo(
            "Error: --preload-projects and --preload-regions must be given together.",
            err=True,
        )
        raise typer.Exit(1)
    else:
        logger.info("Starting server without preloaded data")

    def signal_handler(signum: int, frame: Any) -> None:
        """Handle shutdown signals gracefully."""
        typer.echo(f"Shutting down Project Map {signal.Signals(signum).name=}, {frame=}...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    typer.echo(f"Starting Project Map on http://{host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        timeout_graceful_shutdown=2,
        timeout_keep_alive=1,
    )


def main() -> None:
    """Entry point for the CLI application."""
    cli()


if __name__ == "__main__":
    main()
