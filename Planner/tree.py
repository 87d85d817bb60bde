"""Recursive expansion of a requested entity into a material tree.

Each node picks one recipe (explicit id, then preference map, then cheapest
valid), computes ``craft_count = ceil(quantity / output_quantity)`` and
recurses into item ingredients then cargo ingredients in declaration order.
Buildings expand their consumed stacks plus, for upgrades, the prerequisite
building. Expansion stops at entities without a valid recipe and at
``max_depth``, which bounds cyclic recipe graphs.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .catalog import Catalog
from .errors import InvariantViolation
from .models import (
    BuildingNode,
    CargoNode,
    EntityKind,
    Ingredient,
    ItemNode,
    MaterialNode,
    Recipe,
    make_key,
)
from .recipes import filter_valid_recipes, select_recipe

DEFAULT_MAX_DEPTH = 50

RecipePreferences = Mapping[str, int]


@dataclass
class DroppedEntity:
    """An id that could not be resolved while expanding a tree."""
    key: str
    parent_key: Optional[str]

    def describe(self) -> str:
        if self.parent_key is None:
            return f"Unknown root entity {self.key}"
        return f"Unknown ingredient {self.key} required by {self.parent_key}"


@dataclass
class TreeDiagnostics:
    """Warnings collected while building trees; the trees are still returned."""
    dropped: List[DroppedEntity] = field(default_factory=list)
    depth_limited: List[str] = field(default_factory=list)

    def record_missing(self, kind: EntityKind, entity_id: int,
                       parent_key: Optional[str] = None) -> None:
        self.dropped.append(DroppedEntity(make_key(kind, entity_id), parent_key))

    @property
    def warnings(self) -> List[str]:
        messages = [d.describe() for d in self.dropped]
        messages.extend(f"Expansion stopped at max depth for {key}" for key in self.depth_limited)
        return messages

    def __bool__(self) -> bool:
        return bool(self.dropped or self.depth_limited)


class TreeBuilder:
    """
    Builds material trees against one catalog.

    Parameters
    ----------
    catalog : Catalog
        Entity and recipe lookup.
    max_depth : int
        Depth at which nodes become leaves even if a recipe exists.
    """

    def __init__(self, catalog: Catalog, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self.catalog = catalog
        self.max_depth = max_depth

    def calculate_material_tree(
        self,
        kind: EntityKind,
        entity_id: int,
        quantity: int,
        explicit_recipe_id: Optional[int] = None,
        preferences: Optional[RecipePreferences] = None,
        depth: int = 0,
        diagnostics: Optional[TreeDiagnostics] = None,
        parent_key: Optional[str] = None,
    ) -> Optional[MaterialNode]:
        """
        Expand ``quantity`` of an entity into a tree.

        Parameters
        ----------
        kind : EntityKind
            Namespace of ``entity_id``. Buildings are addressed by their
            construction recipe id.
        entity_id : int
            Entity to expand.
        quantity : int
            Units required at this position.
        explicit_recipe_id : int, optional
            Recipe forced for this node only; not passed to children.
        preferences : mapping, optional
            ``"<kind>-<id>" -> recipe id`` overrides applied at every depth.
        depth : int
            Current depth (0 for roots).
        diagnostics : TreeDiagnostics, optional
            Receives a warning for every unresolved id that gets dropped.

        Returns
        -------
        MaterialNode or None
            None when ``entity_id`` does not resolve.
        """
        if quantity < 0:
            raise InvariantViolation(
                f"Negative quantity {quantity} for {make_key(kind, entity_id)}"
            )
        preferences = preferences or {}

        if kind is EntityKind.ITEM:
            return self._build_item(entity_id, quantity, explicit_recipe_id,
                                    preferences, depth, diagnostics, parent_key)
        if kind is EntityKind.CARGO:
            return self._build_cargo(entity_id, quantity, explicit_recipe_id,
                                     preferences, depth, diagnostics, parent_key)
        if kind is EntityKind.BUILDING:
            return self._build_building(entity_id, quantity, preferences,
                                        depth, diagnostics, parent_key)
        raise TypeError(f"Unknown entity kind: {kind!r}")

    def _choose_recipe(
        self,
        kind: EntityKind,
        entity_id: int,
        output,
        explicit_recipe_id: Optional[int],
        preferences: RecipePreferences,
        depth: int,
        diagnostics: Optional[TreeDiagnostics],
    ) -> Optional[Recipe]:
        candidates = self.catalog.get_recipes_for_output(kind, entity_id)
        valid = filter_valid_recipes(candidates, output, self.catalog)
        if not valid:
            return None
        if depth >= self.max_depth:
            if diagnostics is not None:
                diagnostics.depth_limited.append(make_key(kind, entity_id))
            return None
        return select_recipe(
            valid,
            explicit_recipe_id=explicit_recipe_id,
            preferred_recipe_id=preferences.get(make_key(kind, entity_id)),
        )

    def _build_item(self, item_id, quantity, explicit_recipe_id, preferences,
                    depth, diagnostics, parent_key) -> Optional[ItemNode]:
        item = self.catalog.get_item(item_id)
        if item is None:
            if diagnostics is not None:
                diagnostics.record_missing(EntityKind.ITEM, item_id, parent_key)
            return None

        recipe = self._choose_recipe(EntityKind.ITEM, item_id, item, explicit_recipe_id,
                                     preferences, depth, diagnostics)
        if recipe is None:
            return ItemNode(item=item, quantity=quantity)

        craft_count = math.ceil(quantity / recipe.output_quantity)
        children = self._expand_stacks(
            recipe.ingredients, recipe.cargo_ingredients, craft_count,
            preferences, depth, diagnostics, make_key(EntityKind.ITEM, item_id),
        )
        return ItemNode(item=item, quantity=quantity, recipe=recipe, children=children)

    def _build_cargo(self, cargo_id, quantity, explicit_recipe_id, preferences,
                     depth, diagnostics, parent_key) -> Optional[CargoNode]:
        cargo = self.catalog.get_cargo(cargo_id)
        if cargo is None:
            if diagnostics is not None:
                diagnostics.record_missing(EntityKind.CARGO, cargo_id, parent_key)
            return None

        recipe = self._choose_recipe(EntityKind.CARGO, cargo_id, cargo, explicit_recipe_id,
                                     preferences, depth, diagnostics)
        if recipe is None:
            return CargoNode(cargo=cargo, quantity=quantity)

        craft_count = math.ceil(quantity / recipe.output_quantity)
        children = self._expand_stacks(
            recipe.ingredients, recipe.cargo_ingredients, craft_count,
            preferences, depth, diagnostics, make_key(EntityKind.CARGO, cargo_id),
        )
        return CargoNode(cargo=cargo, quantity=quantity, recipe=recipe, children=children)

    def _build_building(self, construction_recipe_id, quantity, preferences,
                        depth, diagnostics, parent_key) -> Optional[BuildingNode]:
        construction = self.catalog.get_construction_recipe(construction_recipe_id)
        if construction is None:
            if diagnostics is not None:
                diagnostics.record_missing(EntityKind.BUILDING, construction_recipe_id, parent_key)
            return None

        building = self.catalog.get_building_by_desc_id(construction.building_description_id)
        if depth >= self.max_depth:
            if diagnostics is not None:
                diagnostics.depth_limited.append(make_key(EntityKind.BUILDING, construction.id))
            return BuildingNode(construction_recipe=construction, quantity=quantity,
                                building=building)

        own_key = make_key(EntityKind.BUILDING, construction.id)
        # Buildings are not batchable: every unit consumes a full set of stacks
        children = list(self._expand_stacks(
            construction.consumed_items, construction.consumed_cargo, quantity,
            preferences, depth, diagnostics, own_key,
        ))

        if construction.consumed_building:
            prerequisite = self.catalog.find_construction_recipe_by_building_id(
                construction.consumed_building
            )
            if prerequisite is None:
                if diagnostics is not None:
                    diagnostics.record_missing(
                        EntityKind.BUILDING, construction.consumed_building, own_key
                    )
            else:
                node = self._build_building(prerequisite.id, quantity, preferences,
                                            depth + 1, diagnostics, own_key)
                if node is not None:
                    children.append(node)

        return BuildingNode(construction_recipe=construction, quantity=quantity,
                            building=building, children=tuple(children))

    def _expand_stacks(
        self,
        item_stacks: Tuple[Ingredient, ...],
        cargo_stacks: Tuple[Ingredient, ...],
        multiplier: int,
        preferences: RecipePreferences,
        depth: int,
        diagnostics: Optional[TreeDiagnostics],
        parent_key: str,
    ) -> Tuple[MaterialNode, ...]:
        children: List[MaterialNode] = []
        for kind, stacks in ((EntityKind.ITEM, item_stacks), (EntityKind.CARGO, cargo_stacks)):
            for stack in stacks:
                child = self.calculate_material_tree(
                    kind,
                    stack.entity_id,
                    stack.quantity * multiplier,
                    preferences=preferences,
                    depth=depth + 1,
                    diagnostics=diagnostics,
                    parent_key=parent_key,
                )
                if child is not None:
                    children.append(child)
        return tuple(children)


def calculate_material_tree(
    kind: EntityKind,
    entity_id: int,
    quantity: int,
    catalog: Catalog,
    explicit_recipe_id: Optional[int] = None,
    preferences: Optional[Dict[str, int]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    diagnostics: Optional[TreeDiagnostics] = None,
) -> Optional[MaterialNode]:
    """Convenience wrapper building a single tree with a throwaway builder."""
    builder = TreeBuilder(catalog, max_depth=max_depth)
    return builder.calculate_material_tree(
        kind, entity_id, quantity,
        explicit_recipe_id=explicit_recipe_id,
        preferences=preferences,
        diagnostics=diagnostics,
    )
