"""Read-only game catalog: items, cargo, buildings and the recipes producing them.

The engine only talks to the :class:`Catalog` protocol. :class:`InMemoryCatalog`
is the bundled implementation; it is built from a normalized snapshot file
(YAML or JSON) that is validated with pydantic before any index is created.

Snapshot layout::

    items:                 [{id, name, tier, tag, cost}]
    cargo:                 [{id, name, tier, tag}]
    recipes:               [{id, name, output_id, output_quantity, ingredients,
                             cargo_ingredients, cost, level_requirements,
                             crafting_station_name}]
    cargo_recipes:         [same shape as recipes, output_id is a cargo id]
    extraction_recipes:    [{id, name, item_id, level_requirements}]
    buildings:             [{id, name, tier}]
    construction_recipes:  [{id, name, building_description_id, consumed_items,
                             consumed_cargo, consumed_building, level_requirements}]
    item_cargo_skills:     {item_id: skill}
    item_list_skills:      {item_id: skill}
    cargo_skills:          {cargo_id: skill}
"""
from __future__ import annotations

import hashlib
import json
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import CatalogError
from .models import (
    BuildingDescription,
    Cargo,
    ConstructionRecipe,
    Entity,
    EntityKind,
    ExtractionRecipe,
    Ingredient,
    Item,
    LevelRequirement,
    Recipe,
)


class Catalog(Protocol):
    """Lookup interface the engine consumes. All calls are synchronous."""

    @property
    def version(self) -> str: ...

    def get_entity(self, kind: EntityKind, entity_id: int) -> Optional[Entity]: ...

    def get_item(self, item_id: int) -> Optional[Item]: ...

    def get_cargo(self, cargo_id: int) -> Optional[Cargo]: ...

    def get_recipes_for_output(self, kind: EntityKind, entity_id: int) -> List[Recipe]: ...

    def get_construction_recipe(self, recipe_id: int) -> Optional[ConstructionRecipe]: ...

    def get_building_by_desc_id(self, desc_id: int) -> Optional[BuildingDescription]: ...

    def find_construction_recipe_by_building_id(
        self, desc_id: int
    ) -> Optional[ConstructionRecipe]: ...

    def get_extraction_recipes(self, item_id: int) -> List[ExtractionRecipe]: ...

    def item_cargo_skill(self, item_id: int) -> Optional[str]: ...

    def item_list_skill(self, item_id: int) -> Optional[str]: ...

    def cargo_skill(self, cargo_id: int) -> Optional[str]: ...


# ---------------------------------------------------------------------------
# Snapshot schema
# ---------------------------------------------------------------------------

class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class IngredientModel(_StrictModel):
    id: int
    quantity: int = Field(gt=0)


class LevelRequirementModel(_StrictModel):
    skill_name: str = Field(min_length=1)
    level: int = Field(default=0, ge=0)
    skill_id: int = 0


class ItemModel(_StrictModel):
    id: int
    name: str
    tier: int = Field(ge=-1)
    tag: str = ""
    cost: Optional[float] = None


class CargoModel(_StrictModel):
    id: int
    name: str
    tier: int = Field(ge=-1)
    tag: str = ""


class RecipeModel(_StrictModel):
    id: int
    name: str = ""
    output_id: int
    output_quantity: int = Field(default=1, ge=1)
    ingredients: List[IngredientModel] = Field(default_factory=list)
    cargo_ingredients: List[IngredientModel] = Field(default_factory=list)
    cost: Optional[float] = None
    level_requirements: List[LevelRequirementModel] = Field(default_factory=list)
    crafting_station_name: Optional[str] = None


class ExtractionRecipeModel(_StrictModel):
    id: int
    name: str = ""
    item_id: int
    level_requirements: List[LevelRequirementModel] = Field(default_factory=list)


class BuildingModel(_StrictModel):
    id: int
    name: str
    tier: int = 1


class ConstructionRecipeModel(_StrictModel):
    id: int
    name: str = ""
    building_description_id: int
    consumed_items: List[IngredientModel] = Field(default_factory=list)
    consumed_cargo: List[IngredientModel] = Field(default_factory=list)
    consumed_building: int = Field(default=0, ge=0)
    level_requirements: List[LevelRequirementModel] = Field(default_factory=list)


class CatalogSnapshot(_StrictModel):
    """Validated, normalized catalog snapshot."""
    items: List[ItemModel] = Field(default_factory=list)
    cargo: List[CargoModel] = Field(default_factory=list)
    recipes: List[RecipeModel] = Field(default_factory=list)
    cargo_recipes: List[RecipeModel] = Field(default_factory=list)
    extraction_recipes: List[ExtractionRecipeModel] = Field(default_factory=list)
    buildings: List[BuildingModel] = Field(default_factory=list)
    construction_recipes: List[ConstructionRecipeModel] = Field(default_factory=list)
    item_cargo_skills: Dict[int, str] = Field(default_factory=dict)
    item_list_skills: Dict[int, str] = Field(default_factory=dict)
    cargo_skills: Dict[int, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> CatalogSnapshot:
        for section in (
            "items",
            "cargo",
            "recipes",
            "cargo_recipes",
            "buildings",
            "construction_recipes",
        ):
            seen = set()
            for row in getattr(self, section):
                if row.id in seen:
                    raise ValueError(f"duplicate id {row.id} in '{section}'")
                seen.add(row.id)
        return self

    def content_hash(self) -> str:
        """SHA-256 of the canonical JSON form, used as catalog version."""
        canonical = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _ingredients(rows: Iterable[IngredientModel]) -> tuple:
    return tuple(Ingredient(entity_id=r.id, quantity=r.quantity) for r in rows)


def _levels(rows: Iterable[LevelRequirementModel]) -> tuple:
    return tuple(
        LevelRequirement(skill_name=r.skill_name, level=r.level, skill_id=r.skill_id)
        for r in rows
    )


def _recipe(row: RecipeModel, output_kind: EntityKind) -> Recipe:
    return Recipe(
        id=row.id,
        name=row.name,
        output_id=row.output_id,
        output_quantity=row.output_quantity,
        ingredients=_ingredients(row.ingredients),
        cargo_ingredients=_ingredients(row.cargo_ingredients),
        cost=row.cost,
        level_requirements=_levels(row.level_requirements),
        crafting_station_name=row.crafting_station_name,
        output_kind=output_kind,
    )


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryCatalog:
    """
    Pre-indexed, immutable catalog.

    Parameters
    ----------
    items, cargo : sequence
        Entity rows.
    recipes : sequence of Recipe
        Crafting recipes. ``output_kind`` decides whether a recipe is indexed
        under an item or a cargo output.
    extraction_recipes, buildings, construction_recipes : sequence
        Gathering recipes, building descriptions and construction recipes.
    item_cargo_skills, item_list_skills, cargo_skills : dict
        Explicit profession mappings.
    version : str, optional
        Catalog version used to key derived caches. A random one is
        generated when omitted, so two separately built catalogs never
        share cached results.
    """

    def __init__(
        self,
        items: Sequence[Item] = (),
        cargo: Sequence[Cargo] = (),
        recipes: Sequence[Recipe] = (),
        extraction_recipes: Sequence[ExtractionRecipe] = (),
        buildings: Sequence[BuildingDescription] = (),
        construction_recipes: Sequence[ConstructionRecipe] = (),
        item_cargo_skills: Optional[Dict[int, str]] = None,
        item_list_skills: Optional[Dict[int, str]] = None,
        cargo_skills: Optional[Dict[int, str]] = None,
        version: Optional[str] = None,
    ):
        self._version = version or uuid.uuid4().hex
        self._items: Dict[int, Item] = {i.id: i for i in items}
        self._cargo: Dict[int, Cargo] = {c.id: c for c in cargo}
        self._buildings: Dict[int, BuildingDescription] = {b.id: b for b in buildings}
        self._construction: Dict[int, ConstructionRecipe] = {
            r.id: r for r in construction_recipes
        }

        self._item_recipes: Dict[int, List[Recipe]] = defaultdict(list)
        self._cargo_recipes: Dict[int, List[Recipe]] = defaultdict(list)
        for recipe in recipes:
            if recipe.output_kind is EntityKind.CARGO:
                self._cargo_recipes[recipe.output_id].append(recipe)
            else:
                self._item_recipes[recipe.output_id].append(recipe)

        self._extraction: Dict[int, List[ExtractionRecipe]] = defaultdict(list)
        for extraction in extraction_recipes:
            self._extraction[extraction.item_id].append(extraction)

        # First construction recipe per building wins, in declaration order
        self._construction_by_building: Dict[int, ConstructionRecipe] = {}
        for construction in construction_recipes:
            self._construction_by_building.setdefault(
                construction.building_description_id, construction
            )

        self._item_cargo_skills = dict(item_cargo_skills or {})
        self._item_list_skills = dict(item_list_skills or {})
        self._cargo_skills = dict(cargo_skills or {})

    @classmethod
    def from_snapshot(cls, snapshot: CatalogSnapshot) -> InMemoryCatalog:
        """Build a catalog from a validated snapshot."""
        return cls(
            items=[Item(id=r.id, name=r.name, tier=r.tier, tag=r.tag, cost=r.cost)
                   for r in snapshot.items],
            cargo=[Cargo(id=r.id, name=r.name, tier=r.tier, tag=r.tag)
                   for r in snapshot.cargo],
            recipes=[_recipe(r, EntityKind.ITEM) for r in snapshot.recipes]
                    + [_recipe(r, EntityKind.CARGO) for r in snapshot.cargo_recipes],
            extraction_recipes=[
                ExtractionRecipe(
                    id=r.id,
                    name=r.name,
                    item_id=r.item_id,
                    level_requirements=_levels(r.level_requirements),
                )
                for r in snapshot.extraction_recipes
            ],
            buildings=[BuildingDescription(id=r.id, name=r.name, tier=r.tier)
                       for r in snapshot.buildings],
            construction_recipes=[
                ConstructionRecipe(
                    id=r.id,
                    name=r.name,
                    building_description_id=r.building_description_id,
                    consumed_items=_ingredients(r.consumed_items),
                    consumed_cargo=_ingredients(r.consumed_cargo),
                    consumed_building=r.consumed_building,
                    level_requirements=_levels(r.level_requirements),
                )
                for r in snapshot.construction_recipes
            ],
            item_cargo_skills=snapshot.item_cargo_skills,
            item_list_skills=snapshot.item_list_skills,
            cargo_skills=snapshot.cargo_skills,
            version=snapshot.content_hash(),
        )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> InMemoryCatalog:
        """Validate a raw mapping and build a catalog from it."""
        try:
            snapshot = CatalogSnapshot.model_validate(raw)
        except ValidationError as exc:
            raise CatalogError(f"Invalid catalog snapshot: {exc}") from exc
        return cls.from_snapshot(snapshot)

    @property
    def version(self) -> str:
        return self._version

    def get_entity(self, kind: EntityKind, entity_id: int) -> Optional[Entity]:
        if kind is EntityKind.ITEM:
            return self._items.get(entity_id)
        if kind is EntityKind.CARGO:
            return self._cargo.get(entity_id)
        if kind is EntityKind.BUILDING:
            return self._construction.get(entity_id)
        raise TypeError(f"Unknown entity kind: {kind!r}")

    def get_item(self, item_id: int) -> Optional[Item]:
        return self._items.get(item_id)

    def get_cargo(self, cargo_id: int) -> Optional[Cargo]:
        return self._cargo.get(cargo_id)

    def get_recipes_for_output(self, kind: EntityKind, entity_id: int) -> List[Recipe]:
        if kind is EntityKind.ITEM:
            return list(self._item_recipes.get(entity_id, ()))
        if kind is EntityKind.CARGO:
            return list(self._cargo_recipes.get(entity_id, ()))
        # Buildings are produced by construction recipes, not crafting recipes
        return []

    def get_construction_recipe(self, recipe_id: int) -> Optional[ConstructionRecipe]:
        return self._construction.get(recipe_id)

    def get_building_by_desc_id(self, desc_id: int) -> Optional[BuildingDescription]:
        return self._buildings.get(desc_id)

    def find_construction_recipe_by_building_id(
        self, desc_id: int
    ) -> Optional[ConstructionRecipe]:
        return self._construction_by_building.get(desc_id)

    def get_extraction_recipes(self, item_id: int) -> List[ExtractionRecipe]:
        return list(self._extraction.get(item_id, ()))

    def item_cargo_skill(self, item_id: int) -> Optional[str]:
        return self._item_cargo_skills.get(item_id)

    def item_list_skill(self, item_id: int) -> Optional[str]:
        return self._item_list_skills.get(item_id)

    def cargo_skill(self, cargo_id: int) -> Optional[str]:
        return self._cargo_skills.get(cargo_id)

    @property
    def items(self) -> List[Item]:
        return list(self._items.values())

    def __repr__(self) -> str:
        return (
            f"InMemoryCatalog(items={len(self._items)}, cargo={len(self._cargo)}, "
            f"construction_recipes={len(self._construction)}, version={self._version[:8]})"
        )


def load_catalog(path: Path) -> InMemoryCatalog:
    """
    Load a catalog snapshot from a YAML or JSON file.

    Raises
    ------
    CatalogError
        If the file is missing, unparsable or fails schema validation.
    """
    if not path.exists():
        raise CatalogError(f"Catalog snapshot not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CatalogError(f"Unable to parse catalog {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise CatalogError(f"Top-level catalog in {path} must be a mapping")
    return InMemoryCatalog.from_dict(raw)
