"""Step and profession classification of catalog entities.

Step is the topological depth of an entity in the recipe graph (1 = raw or
gathered); profession is the skill associated with producing it. Both are
properties of the entity and the catalog, never of a particular tree, so
they are memoized in an injected :class:`ClassificationCache` that is bound
to one catalog version and cleared when the version changes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from .catalog import Catalog
from .models import EntityKind, ExtractionRecipe, Item, Recipe
from .recipes import filter_valid_recipes, get_cheapest_recipe, recipe_rejection_reason

GATHERING = "Gathering"
CRAFTING = "Crafting"
CONSTRUCTION = "Construction"
UNKNOWN = "Unknown"


@dataclass
class ClassificationCache:
    """Per-catalog-version memo tables for steps and professions."""
    item_steps: Dict[int, int] = field(default_factory=dict)
    cargo_steps: Dict[int, int] = field(default_factory=dict)
    building_steps: Dict[int, int] = field(default_factory=dict)
    item_professions: Dict[int, str] = field(default_factory=dict)
    catalog_version: Optional[str] = None

    def bind(self, catalog: Catalog) -> None:
        """Attach to ``catalog``, dropping every entry from another version."""
        if self.catalog_version != catalog.version:
            self.clear()
            self.catalog_version = catalog.version

    def clear(self) -> None:
        self.item_steps.clear()
        self.cargo_steps.clear()
        self.building_steps.clear()
        self.item_professions.clear()
        self.catalog_version = None


def _cheapest_valid(catalog: Catalog, kind: EntityKind, entity_id: int, output) -> Optional[Recipe]:
    candidates = catalog.get_recipes_for_output(kind, entity_id)
    return get_cheapest_recipe(filter_valid_recipes(candidates, output, catalog))


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def calculate_item_natural_step(
    item_id: int,
    catalog: Catalog,
    visited: FrozenSet[int] = frozenset(),
    cache: Optional[ClassificationCache] = None,
) -> int:
    """
    Natural step of an item.

    Parameters
    ----------
    item_id : int
        Item to classify.
    catalog : Catalog
        Catalog lookup.
    visited : frozenset of int
        Items already on the current call chain. Revisiting one returns 1,
        which terminates cyclic recipe graphs.
    cache : ClassificationCache, optional
        Memo table for the catalog version. Steps whose recipe chain runs
        into the cycle guard are not stored, so a cached value never depends
        on which member of a cycle was classified first.

    Returns
    -------
    int
        1 for items with no valid recipe, otherwise 1 + the deepest
        item-ingredient step (cargo ingredients count as step 1).
    """
    return _item_step(item_id, catalog, visited, cache)[0]


def _item_step(
    item_id: int,
    catalog: Catalog,
    visited: FrozenSet[int],
    cache: Optional[ClassificationCache],
) -> Tuple[int, bool]:
    """Step of an item and whether the cycle guard fired beneath it."""
    if cache is not None:
        cache.bind(catalog)
        cached = cache.item_steps.get(item_id)
        if cached is not None:
            return cached, False

    if item_id in visited:
        return 1, True

    item = catalog.get_item(item_id)
    if item is None:
        return 1, False

    recipe = _cheapest_valid(catalog, EntityKind.ITEM, item_id, item)
    guarded = False
    if recipe is None:
        step = 1
    else:
        chain = visited | {item_id}
        deepest = 1 if recipe.cargo_ingredients else 0
        for ingredient in recipe.ingredients:
            ingredient_step, ingredient_guarded = _item_step(
                ingredient.entity_id, catalog, chain, cache
            )
            deepest = max(deepest, ingredient_step)
            guarded = guarded or ingredient_guarded
        step = 1 + deepest

    if cache is not None and not guarded:
        cache.item_steps[item_id] = step
    return step, guarded


def calculate_cargo_natural_step(
    cargo_id: int,
    catalog: Catalog,
    visited: FrozenSet[int] = frozenset(),
    cache: Optional[ClassificationCache] = None,
) -> int:
    """Natural step of a cargo; item ingredients recurse into item steps."""
    return _cargo_step(cargo_id, catalog, visited, cache)[0]


def _cargo_step(
    cargo_id: int,
    catalog: Catalog,
    visited: FrozenSet[int],
    cache: Optional[ClassificationCache],
) -> Tuple[int, bool]:
    if cache is not None:
        cache.bind(catalog)
        cached = cache.cargo_steps.get(cargo_id)
        if cached is not None:
            return cached, False

    if cargo_id in visited:
        return 1, True

    cargo = catalog.get_cargo(cargo_id)
    if cargo is None:
        return 1, False

    recipe = _cheapest_valid(catalog, EntityKind.CARGO, cargo_id, cargo)
    guarded = False
    if recipe is None:
        step = 1
    else:
        chain = visited | {cargo_id}
        deepest = 0
        for ingredient in recipe.ingredients:
            deepest = max(
                deepest,
                calculate_item_natural_step(ingredient.entity_id, catalog, cache=cache),
            )
        for ingredient in recipe.cargo_ingredients:
            ingredient_step, ingredient_guarded = _cargo_step(
                ingredient.entity_id, catalog, chain, cache
            )
            deepest = max(deepest, ingredient_step)
            guarded = guarded or ingredient_guarded
        step = 1 + deepest

    if cache is not None and not guarded:
        cache.cargo_steps[cargo_id] = step
    return step, guarded


def calculate_building_step(
    construction_recipe_id: int,
    catalog: Catalog,
    visited: FrozenSet[int] = frozenset(),
    cache: Optional[ClassificationCache] = None,
) -> int:
    """Step of a building: one above its deepest consumed material or prerequisite."""
    return _building_step(construction_recipe_id, catalog, visited, cache)[0]


def _building_step(
    construction_recipe_id: int,
    catalog: Catalog,
    visited: FrozenSet[int],
    cache: Optional[ClassificationCache],
) -> Tuple[int, bool]:
    if cache is not None:
        cache.bind(catalog)
        cached = cache.building_steps.get(construction_recipe_id)
        if cached is not None:
            return cached, False

    if construction_recipe_id in visited:
        return 1, True

    recipe = catalog.get_construction_recipe(construction_recipe_id)
    if recipe is None:
        return 1, False

    chain = visited | {construction_recipe_id}
    deepest = 0
    guarded = False
    for stack in recipe.consumed_items:
        deepest = max(deepest, calculate_item_natural_step(stack.entity_id, catalog, cache=cache))
    for stack in recipe.consumed_cargo:
        deepest = max(deepest, calculate_cargo_natural_step(stack.entity_id, catalog, cache=cache))
    if recipe.consumed_building:
        prerequisite = catalog.find_construction_recipe_by_building_id(recipe.consumed_building)
        if prerequisite is not None:
            prerequisite_step, guarded = _building_step(prerequisite.id, catalog, chain, cache)
            deepest = max(deepest, prerequisite_step)
    step = 1 + deepest if deepest else 1

    if cache is not None and not guarded:
        cache.building_steps[construction_recipe_id] = step
    return step, guarded


# ---------------------------------------------------------------------------
# Professions
# ---------------------------------------------------------------------------

def calculate_item_profession(
    item_id: int,
    catalog: Catalog,
    extraction_recipes: Optional[List[ExtractionRecipe]] = None,
    cache: Optional[ClassificationCache] = None,
) -> str:
    """
    Profession (source skill) of an item.

    Resolution order: cargo-gathering mapping, item-list mapping, the
    cheapest valid recipe's first skill requirement, its crafting station,
    the item tag, ``"Crafting"``. Items without any valid recipe use the
    first extraction recipe's skill and finally ``"Gathering"``.
    """
    if cache is not None:
        cache.bind(catalog)
        cached = cache.item_professions.get(item_id)
        if cached is not None:
            return cached

    item = catalog.get_item(item_id)
    if item is None:
        return UNKNOWN

    profession = _resolve_item_profession(item, catalog, extraction_recipes)
    if cache is not None:
        cache.item_professions[item_id] = profession
    return profession


def _resolve_item_profession(
    item: Item,
    catalog: Catalog,
    extraction_recipes: Optional[List[ExtractionRecipe]],
) -> str:
    skill = catalog.item_cargo_skill(item.id)
    if skill:
        return skill
    skill = catalog.item_list_skill(item.id)
    if skill:
        return skill

    recipe = _cheapest_valid(catalog, EntityKind.ITEM, item.id, item)
    if recipe is not None:
        if recipe.level_requirements:
            return recipe.level_requirements[0].skill_name
        if recipe.crafting_station_name:
            return recipe.crafting_station_name
        if item.tag:
            return item.tag
        return CRAFTING

    if extraction_recipes is None:
        extraction_recipes = catalog.get_extraction_recipes(item.id)
    if extraction_recipes and extraction_recipes[0].level_requirements:
        return extraction_recipes[0].level_requirements[0].skill_name
    return GATHERING


def calculate_cargo_profession(cargo_id: int, catalog: Catalog) -> str:
    return catalog.cargo_skill(cargo_id) or GATHERING


def calculate_building_profession(construction_recipe_id: int, catalog: Catalog) -> str:
    return CONSTRUCTION


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def entity_step(
    kind: EntityKind,
    entity_id: int,
    catalog: Catalog,
    cache: Optional[ClassificationCache] = None,
) -> int:
    if kind is EntityKind.ITEM:
        return calculate_item_natural_step(entity_id, catalog, cache=cache)
    if kind is EntityKind.CARGO:
        return calculate_cargo_natural_step(entity_id, catalog, cache=cache)
    if kind is EntityKind.BUILDING:
        return calculate_building_step(entity_id, catalog, cache=cache)
    raise TypeError(f"Unknown entity kind: {kind!r}")


def entity_profession(
    kind: EntityKind,
    entity_id: int,
    catalog: Catalog,
    cache: Optional[ClassificationCache] = None,
) -> str:
    if kind is EntityKind.ITEM:
        return calculate_item_profession(entity_id, catalog, cache=cache)
    if kind is EntityKind.CARGO:
        return calculate_cargo_profession(entity_id, catalog)
    if kind is EntityKind.BUILDING:
        return calculate_building_profession(entity_id, catalog)
    raise TypeError(f"Unknown entity kind: {kind!r}")


class Classifier:
    """Catalog plus cache, so callers do not thread both through every call."""

    def __init__(self, catalog: Catalog, cache: Optional[ClassificationCache] = None):
        self.catalog = catalog
        self.cache = cache if cache is not None else ClassificationCache()

    def step(self, kind: EntityKind, entity_id: int) -> int:
        return entity_step(kind, entity_id, self.catalog, self.cache)

    def profession(self, kind: EntityKind, entity_id: int) -> str:
        return entity_profession(kind, entity_id, self.catalog, self.cache)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

@dataclass
class RecipeFilterReport:
    """Why each candidate recipe for an item was kept or rejected."""
    item: Optional[Item]
    all_recipes: List[Recipe]
    valid_recipes: List[Recipe]
    filter_reasons: List[Tuple[int, str]]
    selected_recipe: Optional[Recipe]
    calculated_step: int
    calculated_profession: str


def explain_recipe_filtering(
    item_id: int,
    catalog: Catalog,
    cache: Optional[ClassificationCache] = None,
) -> RecipeFilterReport:
    """Trace recipe filtering and classification for one item."""
    item = catalog.get_item(item_id)
    all_recipes = catalog.get_recipes_for_output(EntityKind.ITEM, item_id)
    valid: List[Recipe] = []
    reasons: List[Tuple[int, str]] = []
    for recipe in all_recipes:
        reason = recipe_rejection_reason(recipe, item, catalog)
        if reason is None:
            valid.append(recipe)
        else:
            reasons.append((recipe.id, reason))

    return RecipeFilterReport(
        item=item,
        all_recipes=all_recipes,
        valid_recipes=valid,
        filter_reasons=reasons,
        selected_recipe=get_cheapest_recipe(valid),
        calculated_step=calculate_item_natural_step(item_id, catalog, cache=cache),
        calculated_profession=calculate_item_profession(item_id, catalog, cache=cache),
    )
