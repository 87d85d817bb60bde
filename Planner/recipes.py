"""Recipe validation and deterministic recipe selection."""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Union

from .catalog import Catalog
from .models import Cargo, Item, Recipe

UNTIERED = -1

OutputEntity = Union[Item, Cargo]


def cost_sort_key(recipe: Recipe) -> float:
    """Recipe cost for ordering; a missing or NaN cost sorts last."""
    cost = recipe.cost
    if cost is None or math.isnan(cost):
        return math.inf
    return float(cost)


def recipe_rejection_reason(
    recipe: Recipe,
    output: Optional[OutputEntity],
    catalog: Catalog,
) -> Optional[str]:
    """
    Explain why ``recipe`` is structurally invalid, or return None if valid.

    A recipe is rejected when it has no ingredients at all, references an
    item ingredient the catalog does not know, or is a downgrade: an item
    ingredient (tier != -1) with a tier above the output's tier. Untiered
    outputs skip the downgrade check and cargo ingredients are never
    tier-checked.
    """
    if not recipe.has_ingredients:
        return "No ingredients (item or cargo)"

    for ingredient in recipe.ingredients:
        if catalog.get_item(ingredient.entity_id) is None:
            return f"Invalid ingredient: {ingredient.entity_id}"

    if output is not None and output.tier != UNTIERED:
        for ingredient in recipe.ingredients:
            ing_item = catalog.get_item(ingredient.entity_id)
            if ing_item.tier == UNTIERED:
                continue
            if ing_item.tier > output.tier:
                return (
                    f"Downgrade recipe: ingredient {ing_item.name} "
                    f"(tier {ing_item.tier}) > output (tier {output.tier})"
                )
    return None


def filter_valid_recipes(
    candidates: Iterable[Recipe],
    output: Optional[OutputEntity],
    catalog: Catalog,
) -> List[Recipe]:
    """Keep only structurally valid candidates, preserving input order."""
    return [
        recipe for recipe in candidates
        if recipe_rejection_reason(recipe, output, catalog) is None
    ]


def get_cheapest_recipe(recipes: Sequence[Recipe]) -> Optional[Recipe]:
    """Cheapest recipe by cost; ties keep the first in input order."""
    if not recipes:
        return None
    # sorted() is stable, so equal costs keep declaration order
    return sorted(recipes, key=cost_sort_key)[0]


def select_recipe(
    valid_recipes: Sequence[Recipe],
    explicit_recipe_id: Optional[int] = None,
    preferred_recipe_id: Optional[int] = None,
) -> Optional[Recipe]:
    """
    Pick the recipe to expand with.

    Priority is the explicit id for this call, then the preference-map id,
    then the cheapest valid recipe. An explicit or preferred id that is not
    among ``valid_recipes`` falls through to the next rule.
    """
    for wanted in (explicit_recipe_id, preferred_recipe_id):
        if wanted is None:
            continue
        for recipe in valid_recipes:
            if recipe.id == wanted:
                return recipe
    return get_cheapest_recipe(valid_recipes)
