"""End-to-end tests for the crafting planner pipeline."""
from __future__ import annotations

import pytest

from Planner.cache import MemoryCacheBackend, TreeCache
from Planner.catalog import InMemoryCatalog
from Planner.config import PlannerConfig
from Planner.crafting_list import CraftingList, ListProgress
from Planner.inventory import HaveState
from Planner.models import EntityKind, Ingredient, Item, Recipe, iter_nodes
from Planner.planner import CraftingPlanner, create_planner
from Planner.planner_logging import LogLevel, create_string_logger


@pytest.fixture
def planner(sample_catalog, quiet_logger) -> CraftingPlanner:
    return CraftingPlanner(sample_catalog, logger=quiet_logger)


@pytest.fixture
def plank_list() -> CraftingList:
    crafting_list = CraftingList(id="planks", name="Planks")
    crafting_list.add_item(3, 10)
    return crafting_list


# ---------------------------------------------------------------------------
# Tests: Requirements
# ---------------------------------------------------------------------------

class TestCalculateRequirements:
    """Full pipeline from list to grouped requirements."""

    def test_no_inventory(self, planner, plank_list):
        result = planner.calculate_requirements(plank_list)
        assert [(r.name, r.base_required, r.remaining) for r in result.requirements] == [
            ("Rough Log", 10, 10),
            ("Stripped Wood", 5, 5),
        ]
        assert result.progress.percentage == 0
        assert result.roots[0].remaining == 10
        assert result.warnings == []

    def test_intermediate_on_hand_covers_raw(self, planner, plank_list):
        result = planner.calculate_requirements(plank_list, HaveState(items={2: 5}))
        assert all(r.is_complete for r in result.requirements)
        assert result.progress.percentage == 100
        log = result.requirement("item-1")
        assert log.parent_contributions[0].parent_key == "item-2"
        assert log.have == 10

    def test_checked_off_from_progress(self, planner, plank_list):
        progress = ListProgress(list_id="planks")
        progress.toggle_checked_off(EntityKind.ITEM, 1)
        result = planner.calculate_requirements(plank_list, progress=progress)
        assert result.requirement("item-1").is_complete
        assert not result.requirement("item-2").is_complete
        assert result.progress.percentage == 50

    def test_manual_have_from_progress(self, planner, plank_list):
        progress = ListProgress(list_id="planks")
        progress.set_manual_have(EntityKind.ITEM, 3, 4)
        result = planner.calculate_requirements(plank_list, progress=progress)
        # 6 planks left = 3 crafts
        assert result.requirement("item-2").remaining == 3
        assert result.roots[0].remaining == 6

    def test_root_contributions(self, planner):
        crafting_list = CraftingList(id="mixed", name="Mixed")
        crafting_list.add_item(3, 4)
        crafting_list.add_building(301, 1)
        result = planner.calculate_requirements(crafting_list)
        wood = result.requirement("item-2")
        assert [(c.entry_index, c.root_key) for c in wood.root_contributions] == [
            (0, "item-3"),
            (1, "building-301"),
        ]

    def test_building_list(self, planner):
        crafting_list = CraftingList(id="bench", name="Bench")
        crafting_list.add_building(302, 1)
        result = planner.calculate_requirements(crafting_list, view="combined")
        keys = {r.key for r in result.requirements}
        assert {"building-301", "cargo-1", "item-7", "item-6", "item-3"} <= keys
        assert result.requirement("item-3").base_required == 15
        assert result.requirement("building-301").profession == "Construction"
        assert result.grouped()[0].subgroups

    def test_zero_quantity_entries_skipped(self, planner):
        crafting_list = CraftingList(id="z", name="Zero")
        entry = crafting_list.add_item(3, 1)
        entry.quantity = 0
        result = planner.calculate_requirements(crafting_list)
        assert result.requirements == []
        assert result.progress.percentage == 100

    def test_unknown_entry_becomes_warning(self, planner):
        crafting_list = CraftingList(id="u", name="Unknown")
        crafting_list.add_item(4040, 2)
        result = planner.calculate_requirements(crafting_list)
        assert result.roots == []
        assert result.warnings == ["Unknown root entity item-4040"]

    def test_hide_completed(self, planner, plank_list):
        progress = ListProgress(list_id="planks", checked_off={"item-1"})
        result = planner.calculate_requirements(plank_list, progress=progress)
        assert [r.key for r in result.visible(hide_completed=True)] == ["item-2"]

    def test_batch_optimization_applied(self, quiet_logger):
        catalog = InMemoryCatalog(
            items=[Item(id=1, name="A", tier=1), Item(id=2, name="Ore", tier=1),
                   Item(id=3, name="P", tier=2), Item(id=4, name="Q", tier=2)],
            recipes=[
                Recipe(id=1, name="a", output_id=1, output_quantity=10,
                       ingredients=(Ingredient(2, 1),)),
                Recipe(id=2, name="p", output_id=3, ingredients=(Ingredient(1, 2),)),
                Recipe(id=3, name="q", output_id=4, ingredients=(Ingredient(1, 2),)),
            ],
        )
        crafting_list = CraftingList(id="pq", name="PQ")
        crafting_list.add_item(3, 1)
        crafting_list.add_item(4, 1)
        result = CraftingPlanner(catalog, logger=quiet_logger).calculate_requirements(crafting_list)
        assert result.requirement("item-2").base_required == 1
        assert result.requirement("item-1").base_required == 4


class TestNonCheapestRecipes:
    """Preferred and explicit recipes survive batching end to end."""

    @staticmethod
    def _assert_every_node_required(planner, crafting_list, progress, result):
        built = planner.build_trees(crafting_list, progress.recipe_preferences)
        for tree in built.trees:
            for node in list(iter_nodes(tree))[1:]:
                requirement = result.requirement(node.key)
                assert requirement is not None, node.key
                assert requirement.base_required > 0, node.key

    def test_preferred_recipe(self, alternate_recipe_catalog, quiet_logger):
        planner = CraftingPlanner(alternate_recipe_catalog, logger=quiet_logger)
        crafting_list = CraftingList(id="w", name="W")
        crafting_list.add_item(5, 1)
        progress = ListProgress(list_id="w")
        progress.set_recipe_preference(EntityKind.ITEM, 4, 13)

        result = planner.calculate_requirements(crafting_list, progress=progress)
        assert {r.key: r.base_required for r in result.requirements} == {
            "item-1": 1, "item-2": 1, "item-3": 1, "item-4": 1,
        }
        self._assert_every_node_required(planner, crafting_list, progress, result)

    def test_explicit_root_recipe(self, alternate_recipe_catalog, quiet_logger):
        planner = CraftingPlanner(alternate_recipe_catalog, logger=quiet_logger)
        crafting_list = CraftingList(id="pw", name="PW")
        crafting_list.add_item(4, 1, recipe_id=14)
        crafting_list.add_item(5, 1)
        progress = ListProgress(list_id="pw")

        result = planner.calculate_requirements(crafting_list, progress=progress)
        assert result.requirement("item-7").base_required == 1
        assert result.requirement("item-6").base_required == 1
        self._assert_every_node_required(planner, crafting_list, progress, result)


# ---------------------------------------------------------------------------
# Tests: Caching
# ---------------------------------------------------------------------------

class TestTreeCaching:
    """Per-list tree cache keyed by content hash and catalog version."""

    def test_second_build_is_cached(self, planner, plank_list):
        first = planner.build_trees(plank_list)
        assert planner.build_trees(plank_list) is first

    def test_quantity_change_rebuilds(self, planner, plank_list):
        first = planner.build_trees(plank_list)
        plank_list.entries[0].quantity = 12
        second = planner.build_trees(plank_list)
        assert second is not first
        assert second.trees[0].quantity == 12

    def test_preference_change_rebuilds(self, planner, plank_list):
        first = planner.build_trees(plank_list)
        second = planner.build_trees(plank_list, {"item-2": 101})
        assert second is not first

    def test_reload_catalog_clears(self, planner, plank_list, sample_catalog):
        first = planner.build_trees(plank_list)
        planner.reload_catalog(sample_catalog)
        assert planner.build_trees(plank_list) is not first

    def test_cache_hit_logged(self, sample_catalog, plank_list):
        logger, buffer = create_string_logger(LogLevel.DEBUG)
        planner = CraftingPlanner(sample_catalog, logger=logger,
                                  tree_cache=TreeCache(MemoryCacheBackend()))
        planner.build_trees(plank_list)
        planner.build_trees(plank_list)
        text = buffer.getvalue()
        assert "Tree cache miss" in text
        assert "Tree cache hit" in text


# ---------------------------------------------------------------------------
# Tests: Factory
# ---------------------------------------------------------------------------

class TestCreatePlanner:

    def test_default_config_loads_sample(self, quiet_logger):
        planner = create_planner(PlannerConfig(), logger=quiet_logger)
        assert planner.catalog.get_item(3).name == "Plank"

    def test_sqlite_backend(self, tmp_path, quiet_logger, plank_list):
        config = PlannerConfig(cache_backend="sqlite", data_dir=tmp_path)
        planner = create_planner(config, logger=quiet_logger)
        built = planner.build_trees(plank_list)
        assert (tmp_path / "tree_cache.db").exists()
        cached = planner.build_trees(plank_list)
        assert cached.trees == built.trees

    def test_explain_item(self, planner):
        report = planner.explain_item(3)
        assert report.selected_recipe.id == 102
