"""Shared synthetic catalogs for the planner tests."""
from __future__ import annotations

import pytest

from Planner.catalog import InMemoryCatalog, load_catalog
from Planner.config import DEFAULT_CATALOG_PATH
from Planner.models import (
    BuildingDescription,
    Cargo,
    ConstructionRecipe,
    ExtractionRecipe,
    Ingredient,
    Item,
    LevelRequirement,
    Recipe,
)
from Planner.planner_logging import LogLevel, PlannerLogger


def stacks(*pairs):
    return tuple(Ingredient(entity_id=i, quantity=q) for i, q in pairs)


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

@pytest.fixture
def chain_catalog() -> InMemoryCatalog:
    """RawLog -> StrippedWood -> Plank, one unit each."""
    return InMemoryCatalog(
        items=[
            Item(id=1, name="RawLog", tier=1),
            Item(id=2, name="StrippedWood", tier=1),
            Item(id=3, name="Plank", tier=1),
        ],
        recipes=[
            Recipe(id=10, name="Strip", output_id=2, ingredients=stacks((1, 1)), cost=1.0),
            Recipe(id=11, name="Saw", output_id=3, ingredients=stacks((2, 1)), cost=1.0),
        ],
        extraction_recipes=[
            ExtractionRecipe(id=50, name="Chop", item_id=1,
                             level_requirements=(LevelRequirement("Forestry"),)),
        ],
    )


@pytest.fixture
def cycle_catalog() -> InMemoryCatalog:
    """A requires B and B requires A."""
    return InMemoryCatalog(
        items=[Item(id=1, name="A", tier=1), Item(id=2, name="B", tier=1)],
        recipes=[
            Recipe(id=20, name="Make A", output_id=1, ingredients=stacks((2, 1))),
            Recipe(id=21, name="Make B", output_id=2, ingredients=stacks((1, 1))),
        ],
    )


@pytest.fixture
def coverage_catalog() -> InMemoryCatalog:
    """X needs 2 Y per craft, Y needs 1 Z, Z is raw."""
    return InMemoryCatalog(
        items=[
            Item(id=1, name="X", tier=2),
            Item(id=2, name="Y", tier=1),
            Item(id=3, name="Z", tier=1),
        ],
        recipes=[
            Recipe(id=30, name="Make X", output_id=1, ingredients=stacks((2, 2))),
            Recipe(id=31, name="Make Y", output_id=2, ingredients=stacks((3, 1))),
        ],
    )


@pytest.fixture
def batch_catalog() -> InMemoryCatalog:
    """P and Q each need 2 A; one craft of A yields 10 from 1 Ore."""
    return InMemoryCatalog(
        items=[
            Item(id=1, name="A", tier=1),
            Item(id=2, name="Ore", tier=1),
            Item(id=3, name="P", tier=2),
            Item(id=4, name="Q", tier=2),
        ],
        recipes=[
            Recipe(id=40, name="Make A", output_id=1, output_quantity=10,
                   ingredients=stacks((2, 1))),
            Recipe(id=41, name="Make P", output_id=3, ingredients=stacks((1, 2))),
            Recipe(id=42, name="Make Q", output_id=4, ingredients=stacks((1, 2))),
        ],
    )


@pytest.fixture
def alternate_recipe_catalog() -> InMemoryCatalog:
    """
    P has three recipes: cheap from Ore (12), a long Raw -> Mid -> Deep
    chain (13), and from Sand (14). W needs one P.
    """
    return InMemoryCatalog(
        items=[
            Item(id=1, name="Raw", tier=1),
            Item(id=2, name="Mid", tier=1),
            Item(id=3, name="Deep", tier=1),
            Item(id=4, name="P", tier=1),
            Item(id=5, name="W", tier=1),
            Item(id=6, name="Ore", tier=1),
            Item(id=7, name="Sand", tier=1),
        ],
        recipes=[
            Recipe(id=10, name="Make Mid", output_id=2, ingredients=stacks((1, 1)), cost=1.0),
            Recipe(id=11, name="Make Deep", output_id=3, ingredients=stacks((2, 1)), cost=1.0),
            Recipe(id=12, name="P from Ore", output_id=4, ingredients=stacks((6, 1)), cost=1.0),
            Recipe(id=13, name="P from Deep", output_id=4, ingredients=stacks((3, 1)), cost=5.0),
            Recipe(id=14, name="P from Sand", output_id=4, ingredients=stacks((7, 1)), cost=9.0),
            Recipe(id=15, name="Make W", output_id=5, ingredients=stacks((4, 1)), cost=1.0),
        ],
    )


@pytest.fixture
def building_catalog() -> InMemoryCatalog:
    """Workbench (5 Plank) upgraded to Improved Workbench (3 Plank + 1 Brace cargo)."""
    return InMemoryCatalog(
        items=[Item(id=1, name="Plank", tier=1)],
        cargo=[Cargo(id=1, name="Brace", tier=1)],
        buildings=[
            BuildingDescription(id=1, name="Workbench", tier=1),
            BuildingDescription(id=2, name="Improved Workbench", tier=2),
        ],
        construction_recipes=[
            ConstructionRecipe(id=301, name="Build Workbench", building_description_id=1,
                               consumed_items=stacks((1, 5))),
            ConstructionRecipe(id=302, name="Upgrade Workbench", building_description_id=2,
                               consumed_items=stacks((1, 3)),
                               consumed_cargo=stacks((1, 1)),
                               consumed_building=1),
        ],
    )


@pytest.fixture(scope="module")
def sample_catalog() -> InMemoryCatalog:
    """The bundled demonstration catalog."""
    return load_catalog(DEFAULT_CATALOG_PATH)


@pytest.fixture
def quiet_logger() -> PlannerLogger:
    return PlannerLogger(level=LogLevel.SILENT)
