"""Crafting planner: the full requirement pipeline for one crafting list.

Pipeline (per call):
    list entries -> material trees (cached per list)
                 -> per-root flatten -> merge -> batch optimization
                 -> inventory propagation
                 -> requirement records, groups and progress

Caches are owned by the planner instance and injected into the tree builder
and classifier. ``reload_catalog`` swaps the catalog and clears every derived
cache before the next read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .bom import (
    collect_external_item_demand,
    collect_item_recipes,
    collect_root_item_entries,
    flatten_material_tree,
    merge_flat_materials,
    optimize_batch_quantities,
)
from .cache import TreeCache, compute_list_hash, create_cache_backend
from .catalog import Catalog, load_catalog
from .classifier import (
    ClassificationCache,
    Classifier,
    RecipeFilterReport,
    explain_recipe_filtering,
)
from .config import PlannerConfig
from .crafting_list import CraftingList, ListEntry, ListProgress
from .inventory import HaveState, build_have_state
from .list_store import get_user_data_dir
from .models import (
    EntityKind,
    FlatMaterial,
    ListProgressSummary,
    MaterialNode,
    MaterialRequirement,
    RequirementGroup,
    RootContribution,
    iter_nodes,
)
from .planner_logging import PlannerLogger, create_logger
from .propagation import PropagationResult, compute_remaining_needs
from .requirements import assemble_requirements, calculate_list_progress, group_requirements
from .tree import TreeBuilder, TreeDiagnostics


@dataclass
class RootTree:
    """A list entry and the tree it expanded to."""
    entry_index: int
    entry: ListEntry
    tree: MaterialNode


@dataclass
class BuiltTrees:
    """Cached payload for one list: its root trees and expansion warnings."""
    roots: List[RootTree] = field(default_factory=list)
    diagnostics: TreeDiagnostics = field(default_factory=TreeDiagnostics)

    @property
    def trees(self) -> List[MaterialNode]:
        return [root.tree for root in self.roots]


@dataclass
class RootStatus:
    """Inventory status of a requested end product."""
    entry_index: int
    key: str
    name: str
    quantity: int
    remaining: int

    @property
    def is_complete(self) -> bool:
        return self.remaining == 0


@dataclass
class PlanResult:
    requirements: List[MaterialRequirement]
    roots: List[RootStatus]
    progress: ListProgressSummary
    propagation: PropagationResult
    warnings: List[str] = field(default_factory=list)
    view: str = "step"

    def visible(self, hide_completed: bool = False) -> List[MaterialRequirement]:
        if not hide_completed:
            return list(self.requirements)
        return [r for r in self.requirements if not r.is_complete]

    def grouped(self, view: Optional[str] = None,
                hide_completed: bool = False) -> List[RequirementGroup]:
        return group_requirements(self.visible(hide_completed), view or self.view)

    def requirement(self, key: str) -> Optional[MaterialRequirement]:
        for requirement in self.requirements:
            if requirement.key == key:
                return requirement
        return None


def tree_depth(node: MaterialNode) -> int:
    if not node.children:
        return 1
    return 1 + max(tree_depth(child) for child in node.children)


class CraftingPlanner:
    """
    Computes material requirements for crafting lists against one catalog.

    Parameters
    ----------
    catalog : Catalog
        Catalog lookup.
    config : PlannerConfig, optional
        Engine settings (max depth, log level, default view).
    logger : PlannerLogger, optional
        Structured logger. Defaults to one built from ``config``.
    tree_cache : TreeCache, optional
        Per-list tree cache. Defaults to an in-memory cache.
    classification_cache : ClassificationCache, optional
        Step/profession memo tables.
    """

    def __init__(
        self,
        catalog: Catalog,
        config: Optional[PlannerConfig] = None,
        logger: Optional[PlannerLogger] = None,
        tree_cache: Optional[TreeCache] = None,
        classification_cache: Optional[ClassificationCache] = None,
    ):
        self.config = config or PlannerConfig()
        self.logger = logger or create_logger(self.config.log_level,
                                              log_file=self.config.log_file)
        self._catalog = catalog
        self._tree_cache = tree_cache or TreeCache()
        self._classification = classification_cache or ClassificationCache()
        self._builder = TreeBuilder(catalog, max_depth=self.config.max_depth)
        self.logger.log_catalog_loaded(repr(catalog), catalog.version)

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def classifier(self) -> Classifier:
        return Classifier(self._catalog, self._classification)

    @property
    def tree_cache(self) -> TreeCache:
        return self._tree_cache

    # ---------------------------------------------------------------------
    # Cache lifecycle
    # ---------------------------------------------------------------------

    def clear_caches(self, reason: str = "manual refresh") -> None:
        """Clear tree and classification caches; next reads repopulate lazily."""
        self._tree_cache.clear_all()
        self._classification.clear()
        self.logger.log_caches_cleared(reason)

    def reload_catalog(self, catalog: Catalog) -> None:
        """Replace the catalog wholesale and invalidate everything derived from it."""
        self._catalog = catalog
        self._builder = TreeBuilder(catalog, max_depth=self.config.max_depth)
        self.clear_caches("catalog reloaded")
        self.logger.log_catalog_loaded(repr(catalog), catalog.version)

    # ---------------------------------------------------------------------
    # Pipeline
    # ---------------------------------------------------------------------

    def build_trees(
        self,
        crafting_list: CraftingList,
        preferences: Optional[Mapping[str, int]] = None,
    ) -> BuiltTrees:
        """Material trees for every list entry, cached per list id."""
        preferences = dict(preferences or {})
        content_hash = compute_list_hash(crafting_list.entries, preferences)
        cached = self._tree_cache.get_if_valid(
            crafting_list.id, content_hash, self._catalog.version
        )
        self.logger.log_tree_cache(crafting_list.id, cached is not None, content_hash)
        if cached is not None:
            return cached

        built = BuiltTrees()
        for index, entry in enumerate(crafting_list.entries):
            if entry.quantity <= 0:
                continue
            tree = self._builder.calculate_material_tree(
                entry.kind,
                entry.entity_id,
                entry.quantity,
                explicit_recipe_id=getattr(entry, "recipe_id", None),
                preferences=preferences,
                diagnostics=built.diagnostics,
            )
            if tree is None:
                continue
            built.roots.append(RootTree(entry_index=index, entry=entry, tree=tree))
            self.logger.log_tree_built(
                tree.key, tree.quantity, sum(1 for _ in iter_nodes(tree)), tree_depth(tree)
            )

        self.logger.log_tree_warnings(built.diagnostics.warnings)
        self._tree_cache.store(crafting_list.id, content_hash, self._catalog.version, built)
        return built

    def flatten(self, built: BuiltTrees) -> List[FlatMaterial]:
        """Merged flat rows of all roots, before batch optimization."""
        classifier = self.classifier
        return merge_flat_materials(
            flatten_material_tree(root.tree, classifier) for root in built.roots
        )

    def _root_contributions(self, built: BuiltTrees) -> Dict[str, List[RootContribution]]:
        classifier = self.classifier
        contributions: Dict[str, List[RootContribution]] = {}
        for root in built.roots:
            for row in flatten_material_tree(root.tree, classifier):
                contributions.setdefault(row.key, []).append(
                    RootContribution(
                        entry_index=root.entry_index,
                        root_key=root.tree.key,
                        root_name=root.tree.name,
                        quantity=row.quantity,
                    )
                )
        return contributions

    def calculate_requirements(
        self,
        crafting_list: CraftingList,
        have: Optional[HaveState] = None,
        progress: Optional[ListProgress] = None,
        view: Optional[str] = None,
    ) -> PlanResult:
        """
        Full requirement computation for a list.

        Parameters
        ----------
        crafting_list : CraftingList
            Root requests.
        have : HaveState, optional
            On-hand inventory and checked-off keys. When omitted it is derived
            from ``progress`` alone (manual counts and check-offs).
        progress : ListProgress, optional
            Supplies recipe preferences and, without ``have``, the have-state.
        view : str, optional
            Default grouping of the result; falls back to the progress view
            mode and then to the configured default.
        """
        preferences = progress.recipe_preferences if progress is not None else {}
        if have is None:
            have = build_have_state(None, crafting_list, progress)

        built = self.build_trees(crafting_list, preferences)
        trees = built.trees
        classifier = self.classifier

        flat = self.flatten(built)
        before = {row.key: row.quantity for row in flat if row.kind is EntityKind.ITEM}
        optimize_batch_quantities(
            flat,
            collect_root_item_entries(trees),
            classifier,
            recipes_in_use=collect_item_recipes(trees),
            external_demand=collect_external_item_demand(trees),
        )
        self.logger.log_batch_optimization(
            before, {row.key: row.quantity for row in flat if row.kind is EntityKind.ITEM}
        )
        flat = [row for row in flat if row.quantity > 0]

        propagation = compute_remaining_needs(trees, have.items, have.cargo, have.checked_off)
        self.logger.log_propagation(propagation)

        requirements = assemble_requirements(flat, propagation, self._root_contributions(built))
        roots = [
            RootStatus(
                entry_index=root.entry_index,
                key=root.tree.key,
                name=root.tree.name,
                quantity=root.tree.quantity,
                remaining=remaining,
            )
            for root, remaining in zip(built.roots, propagation.root_remaining)
        ]
        summary = calculate_list_progress(requirements)
        self.logger.log_requirements(requirements)
        self.logger.log_progress(summary)

        if view is None:
            view = progress.view_mode if progress is not None else self.config.default_view
        return PlanResult(
            requirements=requirements,
            roots=roots,
            progress=summary,
            propagation=propagation,
            warnings=built.diagnostics.warnings,
            view=view,
        )

    def calculate_list_progress(
        self,
        crafting_list: CraftingList,
        have: Optional[HaveState] = None,
        progress: Optional[ListProgress] = None,
    ) -> ListProgressSummary:
        return self.calculate_requirements(crafting_list, have, progress).progress

    def explain_item(self, item_id: int) -> RecipeFilterReport:
        """Recipe filtering trace for one item (debugging aid)."""
        return explain_recipe_filtering(item_id, self._catalog, self._classification)


def create_planner(
    config: Optional[PlannerConfig] = None,
    logger: Optional[PlannerLogger] = None,
    catalog_path: Optional[Path] = None,
) -> CraftingPlanner:
    """Build a planner from configuration, loading the configured catalog."""
    config = config or PlannerConfig()
    catalog = load_catalog(catalog_path or config.catalog_path)

    backend_path = None
    if config.cache_backend == "sqlite":
        backend_path = config.resolved_cache_path(config.data_dir or get_user_data_dir())
    tree_cache = TreeCache(backend=create_cache_backend(config.cache_backend, backend_path))
    return CraftingPlanner(catalog, config=config, logger=logger, tree_cache=tree_cache)
