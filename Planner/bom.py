"""Bill of materials for material trees: flattening and batch optimization.

This module provides functionality to:
1. Flatten a material tree into one row per distinct entity
2. Merge the flat rows of several root trees
3. Recompute item quantities top-down so shared intermediates are crafted
   in whole batches once, instead of once per tree branch
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .catalog import Catalog
from .classifier import Classifier
from .errors import InvariantViolation
from .models import (
    BuildingNode,
    CargoNode,
    EntityKind,
    FlatMaterial,
    ItemNode,
    MaterialNode,
    Recipe,
    iter_nodes,
)
from .recipes import filter_valid_recipes, get_cheapest_recipe, select_recipe

# (item_id, recipe_id); recipe_id is None for items crafted without a recipe
BatchKey = Tuple[int, Optional[int]]
RootItemEntry = Tuple[int, int, Optional[int]]


def flatten_material_tree(tree: MaterialNode, classifier: Classifier) -> List[FlatMaterial]:
    """
    Aggregate a tree into per-entity rows.

    The root is excluded: it is the requested end product. Rows come out in
    first-seen pre-order; repeated entities sum their quantities and keep
    the smallest step seen.
    """
    rows: Dict[str, FlatMaterial] = {}
    nodes = iter_nodes(tree)
    next(nodes)  # skip root

    for node in nodes:
        step = classifier.step(node.kind, node.entity_id)
        existing = rows.get(node.key)
        if existing is not None:
            existing.quantity += node.quantity
            existing.step = min(existing.step, step)
            continue
        rows[node.key] = FlatMaterial(
            kind=node.kind,
            entity_id=node.entity_id,
            name=node.name,
            quantity=node.quantity,
            tier=node.tier,
            step=step,
            profession=classifier.profession(node.kind, node.entity_id),
        )
    return list(rows.values())


def merge_flat_materials(flat_lists: Iterable[Sequence[FlatMaterial]]) -> List[FlatMaterial]:
    """Merge rows from several trees; inputs are not modified."""
    merged: Dict[str, FlatMaterial] = {}
    for rows in flat_lists:
        for row in rows:
            existing = merged.get(row.key)
            if existing is None:
                merged[row.key] = FlatMaterial(
                    kind=row.kind,
                    entity_id=row.entity_id,
                    name=row.name,
                    quantity=row.quantity,
                    tier=row.tier,
                    step=row.step,
                    profession=row.profession,
                )
            else:
                existing.quantity += row.quantity
                existing.step = min(existing.step, row.step)
    return list(merged.values())


def collect_external_item_demand(trees: Iterable[MaterialNode]) -> Dict[int, int]:
    """
    Item demand that does not come from another item's recipe.

    Covers items directly under cargo or building nodes. Batch optimization
    only pushes demand along item recipes, so without this seed those items
    would be rewritten to zero. Root items are not included; they are passed
    to :func:`optimize_batch_quantities` as root entries.
    """
    demand: Dict[int, int] = defaultdict(int)
    for tree in trees:
        for node in iter_nodes(tree):
            if isinstance(node, ItemNode):
                continue
            if not isinstance(node, (CargoNode, BuildingNode)):
                raise TypeError(f"Unexpected node type: {type(node).__name__}")
            for child in node.children:
                if isinstance(child, ItemNode):
                    demand[child.entity_id] += child.quantity
    return dict(demand)


def collect_item_recipes(trees: Iterable[MaterialNode]) -> Dict[int, Recipe]:
    """
    Recipe each item is expanded with below the roots.

    Recipe choice is uniform below the roots (preference, then cheapest);
    an explicit recipe only ever applies to a root node. Items that appear
    only as roots map to the root's recipe.
    """
    trees = list(trees)
    recipes: Dict[int, Recipe] = {}
    for tree in trees:
        nodes = iter_nodes(tree)
        next(nodes)  # skip root
        for node in nodes:
            if isinstance(node, ItemNode) and node.recipe is not None:
                recipes.setdefault(node.entity_id, node.recipe)
    for tree in trees:
        if isinstance(tree, ItemNode) and tree.recipe is not None:
            recipes.setdefault(tree.entity_id, tree.recipe)
    return recipes


def collect_root_item_entries(trees: Iterable[MaterialNode]) -> List[RootItemEntry]:
    """``(item_id, quantity, recipe_id)`` for every item root, with the recipe it was built with."""
    return [
        (tree.entity_id, tree.quantity, tree.recipe.id if tree.recipe is not None else None)
        for tree in trees
        if isinstance(tree, ItemNode)
    ]


def optimize_batch_quantities(
    flat_materials: List[FlatMaterial],
    root_item_entries: Iterable[Sequence],
    classifier: Classifier,
    recipes_in_use: Optional[Mapping[int, Recipe]] = None,
    external_demand: Optional[Mapping[int, int]] = None,
) -> Dict[int, int]:
    """
    Recompute item quantities top-down across all trees (in place).

    Demand is tracked per ``(item_id, recipe_id)`` share, so an item built
    with an explicit recipe at one root and with its usual recipe elsewhere
    is batched once per recipe. Shares are processed in topological order
    of the recipes actually routed through, so every share is complete
    before it is pushed to its ingredients.

    Parameters
    ----------
    flat_materials : list of FlatMaterial
        Merged flat rows. Item rows get their quantity overwritten; cargo and
        building rows are left untouched.
    root_item_entries : iterable of (item_id, quantity[, recipe_id])
        Item list entries seeding the demand. A recipe id routes that entry
        through the given recipe; otherwise the item's usual recipe is used.
    classifier : Classifier
        Supplies the catalog.
    recipes_in_use : mapping, optional
        ``item_id -> Recipe`` used by the trees below their roots
        (see :func:`collect_item_recipes`). Items missing from it, or every
        item when it is omitted, use their cheapest valid recipe.
    external_demand : mapping, optional
        Extra item demand not produced by item recipes
        (see :func:`collect_external_item_demand`).

    Returns
    -------
    dict
        Final aggregated demand per item id.
    """
    router = _BatchRouter(classifier.catalog, recipes_in_use)
    shares: Dict[BatchKey, int] = defaultdict(int)
    for entry in root_item_entries:
        item_id, quantity = entry[0], entry[1]
        recipe_id = entry[2] if len(entry) > 2 else None
        shares[router.root_key(item_id, recipe_id)] += quantity
    for item_id, quantity in (external_demand or {}).items():
        shares[router.key(item_id)] += quantity

    for key in router.topological_order(list(shares)):
        quantity = shares.get(key, 0)
        recipe = router.recipe(key)
        if quantity <= 0 or recipe is None:
            continue
        crafts = math.ceil(quantity / recipe.output_quantity)
        for ingredient in recipe.ingredients:
            shares[router.key(ingredient.entity_id)] += crafts * ingredient.quantity

    demand: Dict[int, int] = defaultdict(int)
    for (item_id, _), quantity in shares.items():
        demand[item_id] += quantity

    for row in flat_materials:
        if row.kind is EntityKind.ITEM:
            row.quantity = demand.get(row.entity_id, 0)
            if row.quantity < 0:
                raise InvariantViolation(f"Negative batch demand for {row.key}")
    return dict(demand)


class _BatchRouter:
    """Resolves which recipe each batch share is crafted with."""

    def __init__(self, catalog: Catalog, recipes_in_use: Optional[Mapping[int, Recipe]]):
        self.catalog = catalog
        self.recipes_in_use = recipes_in_use or {}
        self._recipes: Dict[BatchKey, Optional[Recipe]] = {}
        self._usual: Dict[int, BatchKey] = {}

    def _valid_recipes(self, item_id: int) -> List[Recipe]:
        item = self.catalog.get_item(item_id)
        if item is None:
            return []
        candidates = self.catalog.get_recipes_for_output(EntityKind.ITEM, item_id)
        return filter_valid_recipes(candidates, item, self.catalog)

    def _register(self, item_id: int, recipe: Optional[Recipe]) -> BatchKey:
        key = (item_id, recipe.id if recipe is not None else None)
        self._recipes.setdefault(key, recipe)
        return key

    def key(self, item_id: int) -> BatchKey:
        """Share of ``item_id`` crafted with its usual recipe."""
        key = self._usual.get(item_id)
        if key is None:
            recipe = self.recipes_in_use.get(item_id)
            if recipe is None:
                recipe = get_cheapest_recipe(self._valid_recipes(item_id))
            key = self._usual[item_id] = self._register(item_id, recipe)
        return key

    def root_key(self, item_id: int, recipe_id: Optional[int]) -> BatchKey:
        if recipe_id is None:
            return self.key(item_id)
        recipe = select_recipe(self._valid_recipes(item_id), explicit_recipe_id=recipe_id)
        return self._register(item_id, recipe)

    def recipe(self, key: BatchKey) -> Optional[Recipe]:
        return self._recipes[key]

    def topological_order(self, start: List[BatchKey]) -> List[BatchKey]:
        """Shares ordered so that each comes before every share it feeds."""
        finished: List[BatchKey] = []
        seen: Set[BatchKey] = set()

        def visit(key: BatchKey) -> None:
            seen.add(key)
            recipe = self._recipes[key]
            if recipe is not None:
                for ingredient in recipe.ingredients:
                    child = self.key(ingredient.entity_id)
                    if child not in seen:
                        visit(child)
            finished.append(key)

        for key in start:
            if key not in seen:
                visit(key)
        # Back edges of recipe cycles are ignored; each share is pushed once
        return finished[::-1]
