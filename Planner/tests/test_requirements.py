"""Tests for requirement assembly, grouping and list progress."""
from __future__ import annotations

import pytest

from Planner.bom import flatten_material_tree, merge_flat_materials, optimize_batch_quantities
from Planner.classifier import Classifier
from Planner.errors import InvariantViolation
from Planner.models import EntityKind, FlatMaterial, MaterialRequirement, NeedTotals
from Planner.propagation import PropagationResult, compute_remaining_needs
from Planner.requirements import (
    assemble_requirements,
    calculate_list_progress,
    group_by_profession,
    group_by_step,
    group_by_step_and_profession,
    group_by_tier,
    group_requirements,
    step_label,
    tier_label,
)
from Planner.tree import calculate_material_tree


def _requirement(entity_id, step=1, tier=1, profession="Mining", base=5, remaining=0):
    return MaterialRequirement(
        kind=EntityKind.ITEM,
        entity_id=entity_id,
        name=f"M{entity_id}",
        quantity=base,
        tier=tier,
        step=step,
        profession=profession,
        base_required=base,
        remaining=remaining,
        have=base - remaining,
        is_complete=remaining == 0,
    )


# ---------------------------------------------------------------------------
# Tests: Assembly
# ---------------------------------------------------------------------------

class TestAssembly:
    """Combining optimized rows with propagation."""

    def test_partial_coverage_scenario(self, coverage_catalog):
        tree = calculate_material_tree(EntityKind.ITEM, 1, 10, coverage_catalog)
        classifier = Classifier(coverage_catalog)
        flat = merge_flat_materials([flatten_material_tree(tree, classifier)])
        optimize_batch_quantities(flat, [(1, 10)], classifier)
        propagation = compute_remaining_needs([tree], have_items={1: 4})

        requirements = {r.key: r for r in assemble_requirements(flat, propagation)}
        y = requirements["item-2"]
        assert (y.base_required, y.remaining, y.have) == (20, 12, 8)
        assert not y.is_complete
        assert y.parent_contributions[0].parent_kind is EntityKind.ITEM
        assert y.parent_contributions[0].parent_id == 1

    def test_remaining_capped_at_base(self):
        row = FlatMaterial(kind=EntityKind.ITEM, entity_id=1, name="A", quantity=3,
                           tier=1, step=1, profession="Mining")
        propagation = PropagationResult(needs={"item-1": NeedTotals(base_required=5, remaining=5)})
        (requirement,) = assemble_requirements([row], propagation)
        assert requirement.base_required == 3
        assert requirement.remaining == 3
        assert requirement.have == 0

    def test_absent_from_propagation_is_complete(self):
        row = FlatMaterial(kind=EntityKind.ITEM, entity_id=7, name="A", quantity=4,
                           tier=1, step=1, profession="Mining")
        (requirement,) = assemble_requirements([row], PropagationResult())
        assert requirement.is_complete
        assert requirement.have == 4

    def test_negative_base_raises(self):
        row = FlatMaterial(kind=EntityKind.ITEM, entity_id=1, name="A", quantity=-1,
                           tier=1, step=1, profession="Mining")
        with pytest.raises(InvariantViolation):
            assemble_requirements([row], PropagationResult())

    def test_conservation_on_sample_catalog(self, sample_catalog):
        trees = [
            calculate_material_tree(EntityKind.BUILDING, 302, 1, sample_catalog),
            calculate_material_tree(EntityKind.ITEM, 8, 3, sample_catalog),
        ]
        classifier = Classifier(sample_catalog)
        flat = merge_flat_materials(flatten_material_tree(t, classifier) for t in trees)
        optimize_batch_quantities(flat, [(8, 3)], classifier)
        propagation = compute_remaining_needs(
            trees, have_items={3: 7, 6: 2, 2: 1}, have_cargo={1: 1}, checked_off={"item-5"}
        )
        for requirement in assemble_requirements(flat, propagation):
            assert 0 <= requirement.remaining <= requirement.base_required
            assert requirement.have + requirement.remaining == requirement.base_required

    def test_sorted_by_step_then_tier(self):
        rows = [
            FlatMaterial(EntityKind.ITEM, 1, "a", 1, tier=3, step=2, profession="x"),
            FlatMaterial(EntityKind.ITEM, 2, "b", 1, tier=1, step=2, profession="x"),
            FlatMaterial(EntityKind.ITEM, 3, "c", 1, tier=5, step=1, profession="x"),
        ]
        result = assemble_requirements(rows, PropagationResult())
        assert [r.entity_id for r in result] == [3, 2, 1]


# ---------------------------------------------------------------------------
# Tests: Grouping
# ---------------------------------------------------------------------------

class TestGrouping:
    """Display views."""

    @pytest.fixture
    def requirements(self):
        return [
            _requirement(1, step=1, tier=1, profession="Mining", base=4, remaining=0),
            _requirement(2, step=2, tier=-1, profession="Carpentry", base=3, remaining=1),
            _requirement(3, step=1, tier=2, profession="Forestry", base=6, remaining=6),
            _requirement(4, step=2, tier=1, profession="Mining", base=2, remaining=0),
        ]

    def test_labels(self):
        assert step_label(1) == "Gathering"
        assert step_label(4) == "Step 4"
        assert tier_label(-1) == "Untiered"
        assert tier_label(3) == "Tier 3"

    def test_by_step(self, requirements):
        groups = group_by_step(requirements)
        assert [g.label for g in groups] == ["Gathering", "Step 2"]
        assert groups[0].total_required == 10
        assert groups[0].total_available == 4
        assert not groups[0].is_complete

    def test_by_tier_ascending(self, requirements):
        assert [g.label for g in group_by_tier(requirements)] == ["Untiered", "Tier 1", "Tier 2"]

    def test_by_profession_alphabetical(self, requirements):
        groups = group_by_profession(requirements)
        assert [g.label for g in groups] == ["Carpentry", "Forestry", "Mining"]
        assert groups[2].is_complete

    def test_combined(self, requirements):
        groups = group_by_step_and_profession(requirements)
        assert [s.label for s in groups[1].subgroups] == ["Carpentry", "Mining"]
        assert groups[1].subgroups[0].key == "step-2-profession-Carpentry"

    def test_unknown_view(self, requirements):
        with pytest.raises(ValueError):
            group_requirements(requirements, "alphabet")


# ---------------------------------------------------------------------------
# Tests: Progress
# ---------------------------------------------------------------------------

class TestProgress:

    def test_empty_is_done(self):
        progress = calculate_list_progress([])
        assert (progress.completed, progress.total, progress.percentage) == (0, 0, 100)

    def test_rounds_half_up(self):
        requirements = [_requirement(i, remaining=0 if i < 1 else 1) for i in range(8)]
        # 1 of 8 = 12.5%
        assert calculate_list_progress(requirements).percentage == 13

    def test_two_thirds(self):
        requirements = [_requirement(1), _requirement(2), _requirement(3, remaining=2)]
        progress = calculate_list_progress(requirements)
        assert (progress.completed, progress.total, progress.percentage) == (2, 3, 67)
