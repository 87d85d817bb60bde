"""Final requirement records and their display groupings."""
from __future__ import annotations

import math
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import InvariantViolation
from .models import (
    FlatMaterial,
    ListProgressSummary,
    MaterialRequirement,
    RequirementGroup,
    RootContribution,
)
from .propagation import PropagationResult

GATHERING_LABEL = "Gathering"


def requirement_sort_key(requirement: MaterialRequirement):
    return (requirement.step, requirement.tier)


def assemble_requirements(
    flat_materials: Sequence[FlatMaterial],
    propagation: PropagationResult,
    root_contributions: Optional[Mapping[str, List[RootContribution]]] = None,
) -> List[MaterialRequirement]:
    """
    Combine optimized flat rows with propagation results.

    ``base_required`` is the optimized flat quantity. Batch optimization can
    make it smaller than what the un-optimized propagation assumed, so the
    propagated remaining is capped at it. Entities absent from the
    propagation were entirely covered by an ancestor and have nothing
    remaining.

    Returns
    -------
    list of MaterialRequirement
        Sorted by step, then tier.
    """
    contributions = propagation.contributions_by_child()
    root_contributions = root_contributions or {}

    requirements: List[MaterialRequirement] = []
    for row in flat_materials:
        base = row.quantity
        if base < 0:
            raise InvariantViolation(f"Negative base requirement for {row.key}")
        remaining = min(propagation.remaining_for(row.key), base)
        if remaining < 0:
            raise InvariantViolation(f"Negative remaining for {row.key}")
        requirements.append(
            MaterialRequirement(
                kind=row.kind,
                entity_id=row.entity_id,
                name=row.name,
                quantity=row.quantity,
                tier=row.tier,
                step=row.step,
                profession=row.profession,
                base_required=base,
                remaining=remaining,
                have=base - remaining,
                is_complete=remaining == 0,
                parent_contributions=contributions.get(row.key, []),
                root_contributions=list(root_contributions.get(row.key, [])),
            )
        )

    requirements.sort(key=requirement_sort_key)
    return requirements


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def step_label(step: int) -> str:
    return GATHERING_LABEL if step == 1 else f"Step {step}"


def tier_label(tier: int) -> str:
    return "Untiered" if tier == -1 else f"Tier {tier}"


def _group(
    requirements: Iterable[MaterialRequirement],
    key_fn: Callable[[MaterialRequirement], object],
    label_fn: Callable[[object], str],
    prefix: str,
) -> List[RequirementGroup]:
    buckets: Dict[object, List[MaterialRequirement]] = OrderedDict()
    for requirement in requirements:
        buckets.setdefault(key_fn(requirement), []).append(requirement)
    return [
        RequirementGroup(key=f"{prefix}-{value}", label=label_fn(value), materials=members)
        for value, members in sorted(buckets.items(), key=lambda kv: kv[0])
    ]


def group_by_tier(requirements: Iterable[MaterialRequirement]) -> List[RequirementGroup]:
    """Groups in ascending tier order."""
    return _group(requirements, lambda r: r.tier, tier_label, "tier")


def group_by_step(requirements: Iterable[MaterialRequirement]) -> List[RequirementGroup]:
    """Groups in ascending step order; step 1 is labelled ``Gathering``."""
    return _group(requirements, lambda r: r.step, step_label, "step")


def group_by_profession(requirements: Iterable[MaterialRequirement]) -> List[RequirementGroup]:
    """Groups in alphabetical profession order."""
    return _group(requirements, lambda r: r.profession, str, "profession")


def group_by_step_and_profession(
    requirements: Iterable[MaterialRequirement],
) -> List[RequirementGroup]:
    """Step groups, each holding profession subgroups."""
    groups = group_by_step(requirements)
    for group in groups:
        group.subgroups = group_by_profession(group.materials)
        for sub in group.subgroups:
            sub.key = f"{group.key}-{sub.key}"
    return groups


VIEW_GROUPERS = {
    "tier": group_by_tier,
    "step": group_by_step,
    "profession": group_by_profession,
    "combined": group_by_step_and_profession,
}


def group_requirements(
    requirements: Iterable[MaterialRequirement], view: str
) -> List[RequirementGroup]:
    try:
        grouper = VIEW_GROUPERS[view]
    except KeyError:
        raise ValueError(
            f"Unknown view '{view}', expected one of {sorted(VIEW_GROUPERS)}"
        ) from None
    return grouper(requirements)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

def calculate_list_progress(requirements: Sequence[MaterialRequirement]) -> ListProgressSummary:
    """Completed/total materials; an empty list counts as 100% done."""
    total = len(requirements)
    if total == 0:
        return ListProgressSummary(completed=0, total=0, percentage=100)
    completed = sum(1 for r in requirements if r.is_complete)
    # Round half up
    percentage = int(math.floor(completed / total * 100 + 0.5))
    return ListProgressSummary(completed=completed, total=total, percentage=percentage)
