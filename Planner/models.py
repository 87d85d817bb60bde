"""Core data model for the crafting planner.

Catalog rows (items, cargo, recipes, construction recipes) are immutable
dataclasses. Material trees are a closed sum type of three frozen node classes
so every traversal can match them exhaustively:

    MaterialNode = ItemNode | CargoNode | BuildingNode

Flat rows and requirement records are plain mutable dataclasses because the
batch optimizer rewrites their quantities in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator, List, Optional, Tuple, Union


class EntityKind(str, Enum):
    """The three namespaces an entity id can live in."""
    ITEM = "item"
    CARGO = "cargo"
    BUILDING = "building"


def make_key(kind: EntityKind, entity_id: int) -> str:
    """Build the ``"<kind>-<id>"`` key used by flat rows and have-state."""
    return f"{kind.value}-{entity_id}"


def parse_key(key: str) -> Tuple[EntityKind, int]:
    """Inverse of :func:`make_key`."""
    kind, _, raw_id = key.partition("-")
    return EntityKind(kind), int(raw_id)


# ---------------------------------------------------------------------------
# Catalog rows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ingredient:
    """An ingredient stack: entity id (item or cargo) and quantity per craft."""
    entity_id: int
    quantity: int


@dataclass(frozen=True)
class LevelRequirement:
    skill_name: str
    level: int = 0
    skill_id: int = 0


@dataclass(frozen=True)
class Item:
    id: int
    name: str
    tier: int  # -1 = untiered, ignored by the downgrade check
    tag: str = ""
    cost: Optional[float] = None


@dataclass(frozen=True)
class Cargo:
    id: int
    name: str
    tier: int
    tag: str = ""


@dataclass(frozen=True)
class Recipe:
    """A crafting recipe producing ``output_quantity`` of one item or cargo."""
    id: int
    name: str
    output_id: int
    output_quantity: int = 1
    ingredients: Tuple[Ingredient, ...] = ()
    cargo_ingredients: Tuple[Ingredient, ...] = ()
    cost: Optional[float] = None
    level_requirements: Tuple[LevelRequirement, ...] = ()
    crafting_station_name: Optional[str] = None
    output_kind: EntityKind = EntityKind.ITEM

    @property
    def has_ingredients(self) -> bool:
        return bool(self.ingredients) or bool(self.cargo_ingredients)


@dataclass(frozen=True)
class ExtractionRecipe:
    """A gathering recipe (mining, logging...) that yields an item."""
    id: int
    name: str
    item_id: int
    level_requirements: Tuple[LevelRequirement, ...] = ()


@dataclass(frozen=True)
class BuildingDescription:
    id: int
    name: str
    tier: int = 1


@dataclass(frozen=True)
class ConstructionRecipe:
    """Recipe that constructs a building, optionally upgrading another one."""
    id: int
    name: str
    building_description_id: int
    consumed_items: Tuple[Ingredient, ...] = ()
    consumed_cargo: Tuple[Ingredient, ...] = ()
    consumed_building: int = 0  # building description id upgraded from (0 = none)
    level_requirements: Tuple[LevelRequirement, ...] = ()


Entity = Union[Item, Cargo, ConstructionRecipe]


# ---------------------------------------------------------------------------
# Material tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ItemNode:
    kind: ClassVar[EntityKind] = EntityKind.ITEM
    item: Item
    quantity: int
    recipe: Optional[Recipe] = None
    children: Tuple["MaterialNode", ...] = ()

    @property
    def entity_id(self) -> int:
        return self.item.id

    @property
    def name(self) -> str:
        return self.item.name

    @property
    def tier(self) -> int:
        return self.item.tier

    @property
    def output_quantity(self) -> int:
        return self.recipe.output_quantity if self.recipe else 1

    @property
    def key(self) -> str:
        return make_key(self.kind, self.item.id)


@dataclass(frozen=True)
class CargoNode:
    kind: ClassVar[EntityKind] = EntityKind.CARGO
    cargo: Cargo
    quantity: int
    recipe: Optional[Recipe] = None
    children: Tuple["MaterialNode", ...] = ()

    @property
    def entity_id(self) -> int:
        return self.cargo.id

    @property
    def name(self) -> str:
        return self.cargo.name

    @property
    def tier(self) -> int:
        return self.cargo.tier

    @property
    def output_quantity(self) -> int:
        return self.recipe.output_quantity if self.recipe else 1

    @property
    def key(self) -> str:
        return make_key(self.kind, self.cargo.id)


@dataclass(frozen=True)
class BuildingNode:
    """A building to construct; keyed by its construction recipe id."""
    kind: ClassVar[EntityKind] = EntityKind.BUILDING
    construction_recipe: ConstructionRecipe
    quantity: int
    building: Optional[BuildingDescription] = None
    children: Tuple["MaterialNode", ...] = ()

    @property
    def entity_id(self) -> int:
        return self.construction_recipe.id

    @property
    def name(self) -> str:
        if self.building is not None:
            return self.building.name
        return self.construction_recipe.name

    @property
    def tier(self) -> int:
        return self.building.tier if self.building is not None else 1

    @property
    def output_quantity(self) -> int:
        # Buildings are never batched: one construction per unit.
        return 1

    @property
    def key(self) -> str:
        return make_key(self.kind, self.construction_recipe.id)


MaterialNode = Union[ItemNode, CargoNode, BuildingNode]


def iter_nodes(node: MaterialNode) -> Iterator[MaterialNode]:
    """Yield ``node`` and all of its descendants in pre-order."""
    stack: List[MaterialNode] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


# ---------------------------------------------------------------------------
# Flat rows and requirements
# ---------------------------------------------------------------------------

@dataclass
class FlatMaterial:
    """Per-entity aggregate of a tree (or several merged trees)."""
    kind: EntityKind
    entity_id: int
    name: str
    quantity: int
    tier: int
    step: int
    profession: str

    @property
    def key(self) -> str:
        return make_key(self.kind, self.entity_id)


@dataclass
class ParentContribution:
    """How much of a material an ancestor's inventory already covered."""
    parent_key: str
    parent_quantity_used: int
    coverage: float

    @property
    def parent_kind(self) -> EntityKind:
        return parse_key(self.parent_key)[0]

    @property
    def parent_id(self) -> int:
        return parse_key(self.parent_key)[1]


@dataclass
class RootContribution:
    """Share of a material attributable to one list entry."""
    entry_index: int
    root_key: str
    root_name: str
    quantity: int


@dataclass
class MaterialRequirement(FlatMaterial):
    base_required: int = 0
    remaining: int = 0
    have: int = 0
    is_complete: bool = False
    parent_contributions: List[ParentContribution] = field(default_factory=list)
    root_contributions: List[RootContribution] = field(default_factory=list)


@dataclass
class RequirementGroup:
    """A display group of requirements (by tier, step or profession)."""
    key: str
    label: str
    materials: List[MaterialRequirement] = field(default_factory=list)
    subgroups: List["RequirementGroup"] = field(default_factory=list)

    @property
    def total_required(self) -> int:
        return sum(m.base_required for m in self.materials)

    @property
    def total_available(self) -> int:
        return sum(m.have for m in self.materials)

    @property
    def is_complete(self) -> bool:
        return all(m.is_complete for m in self.materials)


@dataclass
class ListProgressSummary:
    completed: int
    total: int
    percentage: int


@dataclass
class NeedTotals:
    """Running need for one entity key during propagation."""
    base_required: int = 0
    remaining: int = 0
