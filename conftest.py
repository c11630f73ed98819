"""Global pytest configuration and fixtures."""

from pathlib import Path

import pytest

from projectmap.core.test_fixtures import write_dataset


@pytest.fixture
def dataset_paths(tmp_path: Path) -> tuple[Path, Path, Path]:
    """Return the projects, regions and aggregates files of the synthetic dataset."""
    return write_dataset(tmp_path)
