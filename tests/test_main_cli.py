"""Tests for the main CLI application."""

from pathlib import Path

from typer.testing import CliRunner

from projectmap.core.session_state import SessionState
from projectmap.main import cli, load_session_data

runner = CliRunner()


def test_cli_help_command() -> None:
    """Test that the CLI help command works."""
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "serve" in result.output


def test_serve_help_lists_preload_options() -> None:
    result = runner.invoke(cli, ["serve", "--help"])

    assert result.exit_code == 0
    assert "--preload-projects" in result.output
    assert "--count-delay-seconds" in result.output


def test_serve_requires_both_preload_paths(dataset_paths: tuple[Path, Path, Path]) -> None:
    projects_path, _, _ = dataset_paths
    result = runner.invoke(cli, ["serve", "--preload-projects", str(projects_path)])

    assert result.exit_code == 1
    assert "must be given together" in result.output


def test_load_session_data_without_aggregates(
    dataset_paths: tuple[Path, Path, Path],
) -> None:
    projects_path, regions_path, _ = dataset_paths
    session_state = SessionState()

    load_session_data(session_state, projects_path, regions_path)

    assert session_state.is_ready
    assert len(session_state.all_rows) == 10
    assert len(session_state.aggregates) == 0
    panel = session_state.click_region("Lagos").region_panel
    assert panel is not None
    assert panel.has_data is False
