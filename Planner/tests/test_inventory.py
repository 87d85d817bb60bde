"""Tests for inventory aggregation and have-state construction."""
from __future__ import annotations

import pytest

from Planner.crafting_list import CraftingList, ListProgress
from Planner.inventory import (
    InventoryAggregator,
    InventorySource,
    build_have_state,
    load_checked_off,
    load_inventory,
)
from Planner.models import EntityKind


@pytest.fixture
def aggregator() -> InventoryAggregator:
    aggregator = InventoryAggregator([
        InventorySource(id="bag", name="Backpack"),
        InventorySource(id="bank", name="Bank"),
        InventorySource(id="stash", name="Old stash", enabled=False),
    ])
    aggregator.set_quantity("bag", EntityKind.ITEM, 3, 4)
    aggregator.set_quantity("bank", EntityKind.ITEM, 3, 6)
    aggregator.set_quantity("stash", EntityKind.ITEM, 3, 100)
    aggregator.set_quantity("bank", EntityKind.CARGO, 1, 2)
    return aggregator


class TestAggregation:

    def test_enabled_sources_by_default(self, aggregator):
        assert aggregator.get_aggregated_quantity(EntityKind.ITEM) == {3: 10}
        assert aggregator.get_aggregated_quantity(EntityKind.CARGO, []) == {1: 2}

    def test_explicit_sources(self, aggregator):
        assert aggregator.get_aggregated_quantity(EntityKind.ITEM, ["stash", "bag"]) == {3: 104}
        assert aggregator.get_aggregated_quantity(EntityKind.ITEM, ["nowhere"]) == {}

    def test_buildings_rejected(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.set_quantity("bag", EntityKind.BUILDING, 301, 1)
        with pytest.raises(KeyError):
            aggregator.set_quantity("attic", EntityKind.ITEM, 1, 1)


class TestHaveState:

    def test_list_sources_and_manual_override(self, aggregator):
        crafting_list = CraftingList(id="l", name="L", enabled_source_ids=["bag"])
        progress = ListProgress(list_id="l", manual_have={7: 2}, checked_off={"item-1"})
        state = build_have_state(aggregator, crafting_list, progress)
        assert state.items == {3: 4, 7: 2}
        assert state.cargo == {}
        assert state.checked_off == {"item-1"}

    def test_manual_value_replaces_aggregate(self, aggregator):
        progress = ListProgress(list_id="l", manual_have={3: 1})
        state = build_have_state(aggregator, CraftingList(id="l", name="L"), progress)
        assert state.items[3] == 1

    def test_empty(self):
        state = build_have_state()
        assert (state.items, state.cargo, state.checked_off) == ({}, {}, set())


class TestInventoryFiles:

    def test_single_source_file(self, tmp_path):
        path = tmp_path / "have.yaml"
        path.write_text("items:\n  2: 5\ncargo:\n  1: 1\nchecked_off: [item-1]\n",
                        encoding="utf-8")
        aggregator = load_inventory(path)
        assert aggregator.get_aggregated_quantity(EntityKind.ITEM) == {2: 5}
        assert aggregator.get_aggregated_quantity(EntityKind.CARGO) == {1: 1}
        assert load_checked_off(path) == {"item-1"}

    def test_multi_source_file(self, tmp_path):
        path = tmp_path / "have.yaml"
        path.write_text(
            "sources:\n"
            "  - {id: bag, items: {3: 2}}\n"
            "  - {id: vault, enabled: false, items: {3: 50}}\n",
            encoding="utf-8",
        )
        aggregator = load_inventory(path)
        assert [s.id for s in aggregator.sources] == ["bag", "vault"]
        assert aggregator.get_aggregated_quantity(EntityKind.ITEM) == {3: 2}
