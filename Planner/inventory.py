"""On-hand inventory aggregation and the have-state fed to propagation.

Inventory file layout (YAML)::

    sources:
      - id: bank
        name: Town bank
        enabled: true
        items: {101: 40}
        cargo: {7: 3}
    # or, for a single anonymous source:
    items: {101: 40}
    cargo: {7: 3}
    checked_off: [item-104]
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import yaml

from .crafting_list import CraftingList, ListProgress
from .models import EntityKind

DEFAULT_SOURCE_ID = "default"


@dataclass
class InventorySource:
    """A container (player inventory, bank, claim storage...) counted toward 'have'."""
    id: str
    name: str
    enabled: bool = True


class InventoryAggregator:
    """Per-source stacks summed over a chosen set of sources."""

    def __init__(self, sources: Iterable[InventorySource] = ()):
        self._sources: Dict[str, InventorySource] = {}
        self._stacks: Dict[str, Dict[EntityKind, Dict[int, int]]] = {}
        for source in sources:
            self.add_source(source)

    def add_source(self, source: InventorySource) -> None:
        self._sources[source.id] = source
        self._stacks.setdefault(source.id, {EntityKind.ITEM: {}, EntityKind.CARGO: {}})

    def set_quantity(self, source_id: str, kind: EntityKind, entity_id: int, quantity: int) -> None:
        if kind is EntityKind.BUILDING:
            raise ValueError("Buildings are not held in inventory")
        if source_id not in self._sources:
            raise KeyError(f"Unknown inventory source: {source_id}")
        self._stacks[source_id][kind][entity_id] = max(0, int(quantity))

    @property
    def sources(self) -> List[InventorySource]:
        return list(self._sources.values())

    def enabled_source_ids(self) -> List[str]:
        return [s.id for s in self._sources.values() if s.enabled]

    def get_aggregated_quantity(
        self, kind: EntityKind, source_ids: Optional[Iterable[str]] = None
    ) -> Dict[int, int]:
        """
        Sum quantities of ``kind`` over ``source_ids``.

        An empty or missing id set means every enabled source. Unknown ids
        are ignored.
        """
        wanted = list(source_ids or [])
        if not wanted:
            wanted = self.enabled_source_ids()

        totals: Dict[int, int] = defaultdict(int)
        for source_id in wanted:
            stacks = self._stacks.get(source_id)
            if stacks is None:
                continue
            for entity_id, quantity in stacks.get(kind, {}).items():
                totals[entity_id] += quantity
        return dict(totals)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "InventoryAggregator":
        aggregator = cls()
        sources = raw.get("sources")
        if sources is None:
            sources = [{"id": DEFAULT_SOURCE_ID, "name": "Inventory",
                        "items": raw.get("items"), "cargo": raw.get("cargo")}]
        for block in sources:
            source = InventorySource(
                id=str(block["id"]),
                name=str(block.get("name", block["id"])),
                enabled=bool(block.get("enabled", True)),
            )
            aggregator.add_source(source)
            for kind, section in ((EntityKind.ITEM, "items"), (EntityKind.CARGO, "cargo")):
                for entity_id, quantity in (block.get(section) or {}).items():
                    aggregator.set_quantity(source.id, kind, int(entity_id), int(quantity))
        return aggregator


@dataclass
class HaveState:
    """What the user has: per-kind on-hand maps plus checked-off entity keys."""
    items: Dict[int, int] = field(default_factory=dict)
    cargo: Dict[int, int] = field(default_factory=dict)
    checked_off: Set[str] = field(default_factory=set)


def build_have_state(
    aggregator: Optional[InventoryAggregator] = None,
    crafting_list: Optional[CraftingList] = None,
    progress: Optional[ListProgress] = None,
) -> HaveState:
    """
    Combine aggregated inventory with a list's progress state.

    Manual overrides from ``progress`` replace the aggregated quantity of
    the same entity.
    """
    source_ids = crafting_list.enabled_source_ids if crafting_list is not None else None
    state = HaveState()
    if aggregator is not None:
        state.items = aggregator.get_aggregated_quantity(EntityKind.ITEM, source_ids)
        state.cargo = aggregator.get_aggregated_quantity(EntityKind.CARGO, source_ids)
    if progress is not None:
        state.items.update(progress.manual_have)
        state.cargo.update(progress.manual_have_cargo)
        state.checked_off = set(progress.checked_off)
    return state


def load_inventory(path: Path) -> InventoryAggregator:
    """Load an inventory YAML file into an aggregator."""
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Top-level inventory in {path} must be a mapping")
    return InventoryAggregator.from_dict(raw)


def load_checked_off(path: Path) -> Set[str]:
    """Checked-off keys stored alongside an inventory file, if any."""
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    return {str(key) for key in raw.get("checked_off") or []}
