"""
Resource path utilities for files bundled inside the Planner package.

Bundled files are the default configuration and the sample catalog
snapshot under ``Planner/data/``.
"""
from __future__ import annotations

from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent


def get_resource_path(relative_path: str) -> Path:
    """
    Get absolute path to a bundled resource.

    Parameters
    ----------
    relative_path : str
        Path relative to the Planner package (e.g., "data/sample_catalog.yaml")

    Returns
    -------
    Path
        Absolute path to the resource

    Examples
    --------
    >>> config_path = get_resource_path("DefaultPlannerConfig.yaml")
    >>> catalog_path = get_resource_path("data/sample_catalog.yaml")
    """
    return PACKAGE_DIR / relative_path
