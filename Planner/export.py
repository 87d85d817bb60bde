"""Tabular export of material requirements using pandas."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .models import MaterialRequirement

REQUIREMENT_COLUMNS: List[str] = [
    "key",
    "kind",
    "entity_id",
    "name",
    "tier",
    "step",
    "profession",
    "base_required",
    "have",
    "remaining",
    "is_complete",
    "covered_by",
    "needed_for",
]


def _covered_by(requirement: MaterialRequirement) -> str:
    return "; ".join(
        f"{c.parent_key} ({c.coverage:g})" for c in requirement.parent_contributions
    )


def _needed_for(requirement: MaterialRequirement) -> str:
    return "; ".join(
        f"{c.root_name} x{c.quantity}" for c in requirement.root_contributions
    )


def requirements_to_frame(requirements: Iterable[MaterialRequirement]) -> pd.DataFrame:
    """
    One row per requirement, in the order given.

    Parameters
    ----------
    requirements : iterable of MaterialRequirement
        Assembled requirement records.

    Returns
    -------
    pd.DataFrame
        Columns listed in ``REQUIREMENT_COLUMNS``. Provenance is flattened
        into the ``covered_by`` and ``needed_for`` text columns.
    """
    rows = [
        {
            "key": r.key,
            "kind": r.kind.value,
            "entity_id": r.entity_id,
            "name": r.name,
            "tier": r.tier,
            "step": r.step,
            "profession": r.profession,
            "base_required": r.base_required,
            "have": r.have,
            "remaining": r.remaining,
            "is_complete": r.is_complete,
            "covered_by": _covered_by(r),
            "needed_for": _needed_for(r),
        }
        for r in requirements
    ]
    return pd.DataFrame(rows, columns=REQUIREMENT_COLUMNS)


def remaining_by_profession(requirements: Iterable[MaterialRequirement]) -> pd.DataFrame:
    """Outstanding quantity and material count per profession, largest first."""
    frame = requirements_to_frame(requirements)
    if frame.empty:
        return pd.DataFrame(columns=["profession", "materials", "remaining"])
    outstanding = frame[frame["remaining"] > 0]
    summary = (
        outstanding.groupby("profession")
        .agg(materials=("key", "count"), remaining=("remaining", "sum"))
        .reset_index()
        .sort_values(["remaining", "profession"], ascending=[False, True])
        .reset_index(drop=True)
    )
    return summary


def export_requirements_csv(requirements: Iterable[MaterialRequirement], path: Path) -> Path:
    """Write requirements to CSV and return the path written."""
    requirements_to_frame(requirements).to_csv(path, index=False)
    return path
