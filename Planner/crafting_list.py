"""Crafting list definitions and per-list progress state."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .models import EntityKind, make_key


def _new_entry_id() -> str:
    return uuid.uuid4().hex[:12]


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class ItemEntry:
    """Request for an item, optionally pinned to a recipe."""
    item_id: int
    quantity: int
    recipe_id: Optional[int] = None
    entry_id: str = field(default_factory=_new_entry_id)

    kind = EntityKind.ITEM

    @property
    def entity_id(self) -> int:
        return self.item_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "entry_id": self.entry_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "recipe_id": self.recipe_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemEntry":
        return cls(
            item_id=int(data["item_id"]),
            quantity=int(data.get("quantity", 1)),
            recipe_id=data.get("recipe_id"),
            entry_id=data.get("entry_id") or _new_entry_id(),
        )


@dataclass
class CargoEntry:
    cargo_id: int
    quantity: int
    entry_id: str = field(default_factory=_new_entry_id)

    kind = EntityKind.CARGO

    @property
    def entity_id(self) -> int:
        return self.cargo_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "entry_id": self.entry_id,
            "cargo_id": self.cargo_id,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CargoEntry":
        return cls(
            cargo_id=int(data["cargo_id"]),
            quantity=int(data.get("quantity", 1)),
            entry_id=data.get("entry_id") or _new_entry_id(),
        )


@dataclass
class BuildingEntry:
    """Request for a building, addressed by its construction recipe id."""
    construction_recipe_id: int
    quantity: int
    entry_id: str = field(default_factory=_new_entry_id)

    kind = EntityKind.BUILDING

    @property
    def entity_id(self) -> int:
        return self.construction_recipe_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "entry_id": self.entry_id,
            "construction_recipe_id": self.construction_recipe_id,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildingEntry":
        return cls(
            construction_recipe_id=int(data["construction_recipe_id"]),
            quantity=int(data.get("quantity", 1)),
            entry_id=data.get("entry_id") or _new_entry_id(),
        )


ListEntry = Union[ItemEntry, CargoEntry, BuildingEntry]

_ENTRY_TYPES = {
    EntityKind.ITEM.value: ItemEntry,
    EntityKind.CARGO.value: CargoEntry,
    EntityKind.BUILDING.value: BuildingEntry,
}


def entry_from_dict(data: Dict[str, Any]) -> ListEntry:
    entry_type = data.get("type", EntityKind.ITEM.value)
    try:
        cls = _ENTRY_TYPES[entry_type]
    except KeyError:
        raise ValueError(f"Unknown list entry type: {entry_type!r}") from None
    return cls.from_dict(data)


@dataclass
class CraftingList:
    """
    An ordered set of root requests plus the inventory sources to count.

    ``enabled_source_ids`` empty means every enabled inventory source.
    """
    id: str
    name: str
    entries: List[ListEntry] = field(default_factory=list)
    enabled_source_ids: List[str] = field(default_factory=list)
    description: str = ""
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def _touch(self) -> None:
        self.updated_at = _now()

    def add_item(self, item_id: int, quantity: int, recipe_id: Optional[int] = None) -> ItemEntry:
        """Add an item, merging into an existing entry with the same recipe."""
        for entry in self.entries:
            if (isinstance(entry, ItemEntry) and entry.item_id == item_id
                    and entry.recipe_id == recipe_id):
                entry.quantity += quantity
                self._touch()
                return entry
        entry = ItemEntry(item_id=item_id, quantity=quantity, recipe_id=recipe_id)
        self.entries.append(entry)
        self._touch()
        return entry

    def add_cargo(self, cargo_id: int, quantity: int) -> CargoEntry:
        for entry in self.entries:
            if isinstance(entry, CargoEntry) and entry.cargo_id == cargo_id:
                entry.quantity += quantity
                self._touch()
                return entry
        entry = CargoEntry(cargo_id=cargo_id, quantity=quantity)
        self.entries.append(entry)
        self._touch()
        return entry

    def add_building(self, construction_recipe_id: int, quantity: int) -> BuildingEntry:
        for entry in self.entries:
            if (isinstance(entry, BuildingEntry)
                    and entry.construction_recipe_id == construction_recipe_id):
                entry.quantity += quantity
                self._touch()
                return entry
        entry = BuildingEntry(construction_recipe_id=construction_recipe_id, quantity=quantity)
        self.entries.append(entry)
        self._touch()
        return entry

    def remove_entry(self, entry_id: str) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.entry_id != entry_id]
        if len(self.entries) == before:
            return False
        self._touch()
        return True

    def set_quantity(self, entry_id: str, quantity: int) -> bool:
        """Set an entry's quantity; zero or less removes the entry."""
        if quantity <= 0:
            return self.remove_entry(entry_id)
        for entry in self.entries:
            if entry.entry_id == entry_id:
                entry.quantity = quantity
                self._touch()
                return True
        return False

    def root_item_entries(self) -> List[Tuple[int, int]]:
        return [(e.item_id, e.quantity) for e in self.entries
                if isinstance(e, ItemEntry) and e.quantity > 0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "enabled_source_ids": list(self.enabled_source_ids),
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CraftingList":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            description=data.get("description", ""),
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now(),
            enabled_source_ids=[str(s) for s in data.get("enabled_source_ids") or []],
            entries=[entry_from_dict(e) for e in data.get("entries") or []],
        )


VIEW_MODES = ("step", "profession", "tier", "combined")


@dataclass
class ListProgress:
    """User progress for one list: manual counts, check-offs and recipe choices."""
    list_id: str
    manual_have: Dict[int, int] = field(default_factory=dict)
    manual_have_cargo: Dict[int, int] = field(default_factory=dict)
    checked_off: Set[str] = field(default_factory=set)
    recipe_preferences: Dict[str, int] = field(default_factory=dict)
    hide_completed: bool = False
    view_mode: str = "step"
    collapsed_sections: List[str] = field(default_factory=list)

    def set_manual_have(self, kind: EntityKind, entity_id: int,
                        quantity: Optional[int]) -> None:
        """Override on-hand quantity; None clears the override."""
        if kind is EntityKind.ITEM:
            target = self.manual_have
        elif kind is EntityKind.CARGO:
            target = self.manual_have_cargo
        else:
            raise ValueError("Buildings cannot have a manual on-hand quantity")
        if quantity is None:
            target.pop(entity_id, None)
        else:
            target[entity_id] = max(0, int(quantity))

    def toggle_checked_off(self, kind: EntityKind, entity_id: int) -> bool:
        """Flip the checked-off flag; returns the new state."""
        key = make_key(kind, entity_id)
        if key in self.checked_off:
            self.checked_off.discard(key)
            return False
        self.checked_off.add(key)
        return True

    def set_recipe_preference(self, kind: EntityKind, entity_id: int,
                              recipe_id: Optional[int]) -> None:
        key = make_key(kind, entity_id)
        if recipe_id is None:
            self.recipe_preferences.pop(key, None)
        else:
            self.recipe_preferences[key] = recipe_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "list_id": self.list_id,
            "manual_have": dict(self.manual_have),
            "manual_have_cargo": dict(self.manual_have_cargo),
            "checked_off": sorted(self.checked_off),
            "recipe_preferences": dict(self.recipe_preferences),
            "hide_completed": self.hide_completed,
            "view_mode": self.view_mode,
            "collapsed_sections": list(self.collapsed_sections),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListProgress":
        view_mode = data.get("view_mode", "step")
        if view_mode not in VIEW_MODES:
            view_mode = "step"
        return cls(
            list_id=str(data["list_id"]),
            manual_have={int(k): int(v) for k, v in (data.get("manual_have") or {}).items()},
            manual_have_cargo={
                int(k): int(v) for k, v in (data.get("manual_have_cargo") or {}).items()
            },
            checked_off=set(data.get("checked_off") or []),
            recipe_preferences={
                str(k): int(v) for k, v in (data.get("recipe_preferences") or {}).items()
            },
            hide_completed=bool(data.get("hide_completed", False)),
            view_mode=view_mode,
            collapsed_sections=list(data.get("collapsed_sections") or []),
        )
