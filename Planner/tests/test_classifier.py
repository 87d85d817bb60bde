"""Tests for step and profession classification."""
from __future__ import annotations

import pytest

from Planner.catalog import InMemoryCatalog
from Planner.classifier import (
    CONSTRUCTION,
    GATHERING,
    ClassificationCache,
    Classifier,
    calculate_building_step,
    calculate_cargo_natural_step,
    calculate_item_natural_step,
    calculate_item_profession,
    entity_step,
    explain_recipe_filtering,
)
from Planner.models import EntityKind, Ingredient, Item, Recipe


# ---------------------------------------------------------------------------
# Tests: Steps
# ---------------------------------------------------------------------------

class TestSteps:
    """Natural step is the depth of an entity in the recipe graph."""

    def test_simple_chain(self, chain_catalog):
        assert calculate_item_natural_step(1, chain_catalog) == 1
        assert calculate_item_natural_step(2, chain_catalog) == 2
        assert calculate_item_natural_step(3, chain_catalog) == 3

    def test_unknown_item_is_step_one(self, chain_catalog):
        assert calculate_item_natural_step(404, chain_catalog) == 1

    def test_cycle_terminates(self, cycle_catalog):
        step = calculate_item_natural_step(1, cycle_catalog)
        assert step >= 1

    def test_revisited_item_returns_one(self, cycle_catalog):
        assert calculate_item_natural_step(1, cycle_catalog, visited=frozenset({1})) == 1

    def test_cycle_steps_independent_of_query_order(self, cycle_catalog):
        """A shared cache gives each cycle member the same step as a fresh one."""
        fresh = {
            item_id: calculate_item_natural_step(item_id, cycle_catalog, cache=ClassificationCache())
            for item_id in (1, 2)
        }
        cache = ClassificationCache()
        first_a = [calculate_item_natural_step(i, cycle_catalog, cache=cache) for i in (1, 2)]
        cache = ClassificationCache()
        first_b = [calculate_item_natural_step(i, cycle_catalog, cache=cache) for i in (2, 1)]

        assert first_a == [fresh[1], fresh[2]]
        assert first_b == [fresh[2], fresh[1]]
        assert cache.item_steps == {}

    def test_monotonic_over_valid_recipes(self, sample_catalog):
        """Every valid recipe's output sits above each of its item ingredients."""
        cache = ClassificationCache()
        for item in sample_catalog.items:
            report = explain_recipe_filtering(item.id, sample_catalog, cache)
            if report.selected_recipe is None:
                continue
            output_step = calculate_item_natural_step(item.id, sample_catalog, cache=cache)
            for ingredient in report.selected_recipe.ingredients:
                assert output_step > calculate_item_natural_step(
                    ingredient.entity_id, sample_catalog, cache=cache
                )

    def test_sample_catalog_steps(self, sample_catalog):
        assert calculate_item_natural_step(3, sample_catalog) == 3  # Plank
        assert calculate_item_natural_step(5, sample_catalog) == 2  # Brick
        assert calculate_cargo_natural_step(1, sample_catalog) == 4  # Timber Bundle
        assert calculate_cargo_natural_step(2, sample_catalog) == 1  # Stone Slab

    def test_building_upgrade_chain(self, building_catalog):
        assert calculate_building_step(301, building_catalog) == 2
        assert calculate_building_step(302, building_catalog) == 3

    def test_sample_building_steps(self, sample_catalog):
        assert calculate_building_step(301, sample_catalog) == 5
        assert calculate_building_step(302, sample_catalog) == 6

    def test_unknown_kind_raises(self, chain_catalog):
        with pytest.raises(TypeError):
            entity_step("widget", 1, chain_catalog)


# ---------------------------------------------------------------------------
# Tests: Professions
# ---------------------------------------------------------------------------

class TestProfessions:
    """Profession resolution order."""

    @pytest.mark.parametrize(
        "item_id,expected",
        [
            (1, "Forestry"),    # extraction recipe skill
            (2, "Forestry"),    # recipe level requirement
            (3, "Carpentry"),
            (4, "Mining"),
            (5, "Masonry"),
            (7, "Smelting"),    # crafting station
            (9, "Tinkering"),   # item-list mapping
        ],
    )
    def test_sample_item_professions(self, sample_catalog, item_id, expected):
        assert calculate_item_profession(item_id, sample_catalog) == expected

    def test_tag_then_crafting_fallback(self):
        catalog = InMemoryCatalog(
            items=[Item(id=1, name="Raw", tier=1), Item(id=2, name="Tagged", tier=1, tag="Cooking"),
                   Item(id=3, name="Plain", tier=1)],
            recipes=[
                Recipe(id=1, name="t", output_id=2, ingredients=(Ingredient(1, 1),)),
                Recipe(id=2, name="p", output_id=3, ingredients=(Ingredient(1, 1),)),
            ],
        )
        assert calculate_item_profession(2, catalog) == "Cooking"
        assert calculate_item_profession(3, catalog) == "Crafting"
        assert calculate_item_profession(1, catalog) == GATHERING

    def test_cargo_mapping_beats_recipe(self):
        catalog = InMemoryCatalog(
            items=[Item(id=1, name="Raw", tier=1), Item(id=2, name="Fish", tier=1)],
            recipes=[Recipe(id=1, name="f", output_id=2, ingredients=(Ingredient(1, 1),))],
            item_cargo_skills={2: "Fishing"},
            item_list_skills={2: "Hunting"},
        )
        assert calculate_item_profession(2, catalog) == "Fishing"

    def test_cargo_and_building_professions(self, sample_catalog):
        classifier = Classifier(sample_catalog)
        assert classifier.profession(EntityKind.CARGO, 1) == "Carpentry"
        assert classifier.profession(EntityKind.CARGO, 99) == GATHERING
        assert classifier.profession(EntityKind.BUILDING, 301) == CONSTRUCTION


# ---------------------------------------------------------------------------
# Tests: Cache and diagnostics
# ---------------------------------------------------------------------------

class TestClassificationCache:
    """Memo tables are bound to one catalog version."""

    def test_results_are_memoized(self, chain_catalog):
        cache = ClassificationCache()
        calculate_item_natural_step(3, chain_catalog, cache=cache)
        assert cache.item_steps[3] == 3
        assert cache.catalog_version == chain_catalog.version

    def test_version_change_clears(self, chain_catalog, cycle_catalog):
        cache = ClassificationCache()
        calculate_item_natural_step(3, chain_catalog, cache=cache)
        calculate_item_natural_step(1, cycle_catalog, cache=cache)
        assert cache.catalog_version == cycle_catalog.version
        assert 3 not in cache.item_steps

    def test_explain_lists_rejections(self, sample_catalog):
        report = explain_recipe_filtering(3, sample_catalog)
        assert [r.id for r in report.all_recipes] == [102, 103]
        assert [r.id for r in report.valid_recipes] == [102]
        assert report.filter_reasons[0][0] == 103
        assert report.filter_reasons[0][1].startswith("Downgrade recipe")
        assert report.selected_recipe.id == 102
        assert report.calculated_step == 3
