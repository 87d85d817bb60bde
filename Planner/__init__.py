"""Planner package: crafting recipe trees and inventory-aware material requirements."""
from .catalog import Catalog, CatalogSnapshot, InMemoryCatalog, load_catalog
from .classifier import ClassificationCache, Classifier, explain_recipe_filtering
from .config import PlannerConfig, load_config, save_config
from .crafting_list import BuildingEntry, CargoEntry, CraftingList, ItemEntry, ListProgress
from .errors import CatalogError, ConfigError, InvariantViolation, PlannerError
from .inventory import HaveState, InventoryAggregator, InventorySource, build_have_state
from .list_store import ListStore
from .models import (
    BuildingNode,
    CargoNode,
    EntityKind,
    ItemNode,
    MaterialRequirement,
    make_key,
)
from .planner import CraftingPlanner, PlanResult, create_planner
from .planner_logging import LogLevel, PlannerLogger, create_logger, create_string_logger
from .propagation import compute_remaining_needs
from .requirements import calculate_list_progress, group_requirements
from .tree import TreeBuilder, TreeDiagnostics, calculate_material_tree

__all__ = [
    "Catalog",
    "CatalogSnapshot",
    "InMemoryCatalog",
    "load_catalog",
    "ClassificationCache",
    "Classifier",
    "explain_recipe_filtering",
    "PlannerConfig",
    "load_config",
    "save_config",
    "BuildingEntry",
    "CargoEntry",
    "CraftingList",
    "ItemEntry",
    "ListProgress",
    "CatalogError",
    "ConfigError",
    "InvariantViolation",
    "PlannerError",
    "HaveState",
    "InventoryAggregator",
    "InventorySource",
    "build_have_state",
    "ListStore",
    "BuildingNode",
    "CargoNode",
    "EntityKind",
    "ItemNode",
    "MaterialRequirement",
    "make_key",
    "CraftingPlanner",
    "PlanResult",
    "create_planner",
    "LogLevel",
    "PlannerLogger",
    "create_logger",
    "create_string_logger",
    "compute_remaining_needs",
    "calculate_list_progress",
    "group_requirements",
    "TreeBuilder",
    "TreeDiagnostics",
    "calculate_material_tree",
]
