#!/usr/bin/env python
"""CLI entry point for the crafting requirement planner."""
from __future__ import annotations

import argparse
import cProfile
import pstats
import sys
from io import StringIO
from pathlib import Path
from typing import List, Optional

import yaml

from .config import VIEWS, load_config
from .crafting_list import CraftingList, ListProgress
from .errors import PlannerError
from .export import export_requirements_csv
from .inventory import build_have_state, load_checked_off, load_inventory
from .list_store import ListStore
from .models import MaterialNode
from .planner import PlanResult, create_planner
from .planner_logging import create_logger
from .requirements import group_requirements


def format_tree(node: MaterialNode, indent: int = 0) -> str:
    """Indented text rendering of a material tree."""
    recipe = getattr(node, "recipe", None)
    suffix = f"  [recipe {recipe.id}, makes {recipe.output_quantity}]" if recipe else ""
    lines = [f"{'  ' * indent}{node.quantity}x {node.name} ({node.key}){suffix}"]
    for child in node.children:
        lines.append(format_tree(child, indent + 1))
    return "\n".join(lines)


def format_requirements(result: PlanResult, view: str, hide_completed: bool = False) -> str:
    """Format grouped requirements for display."""
    groups = group_requirements(result.visible(hide_completed), view)
    if not groups:
        return "Nothing to craft."

    lines: List[str] = []
    for group in groups:
        status = "done" if group.is_complete else f"{group.total_available}/{group.total_required}"
        lines.append(f"\n--- {group.label} ({status}) ---")
        sections = group.subgroups or [group]
        for section in sections:
            if group.subgroups:
                lines.append(f"  {section.label}:")
            for req in section.materials:
                mark = "x" if req.is_complete else " "
                lines.append(
                    f"  [{mark}] {req.name}: {req.have}/{req.base_required}"
                    f" (need {req.remaining}, T{req.tier}, {req.profession})"
                )
    return "\n".join(lines)


def _parse_item_arg(raw: str) -> tuple:
    item_id, _, quantity = raw.partition(":")
    return int(item_id), int(quantity or 1)


def _load_list(args, store: Optional[ListStore]) -> Optional[CraftingList]:
    if args.list is not None:
        with args.list.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        return CraftingList.from_dict(raw)
    if args.list_id is not None and store is not None:
        return store.load_list(args.list_id)
    if args.item:
        crafting_list = CraftingList(id="cli", name="Command line")
        for raw in args.item:
            item_id, quantity = _parse_item_arg(raw)
            crafting_list.add_item(item_id, quantity)
        return crafting_list
    return None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compute the raw and intermediate materials needed for a crafting list."
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to planner config YAML (default: Planner/DefaultPlannerConfig.yaml)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Catalog snapshot (YAML or JSON); overrides the configured one",
    )
    parser.add_argument("--list", type=Path, default=None, help="Crafting list YAML file")
    parser.add_argument("--list-id", default=None, help="Saved list id in the data directory")
    parser.add_argument(
        "--item",
        action="append",
        default=[],
        metavar="ID[:QTY]",
        help="Ad-hoc item request; may be repeated",
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Saved lists directory")
    parser.add_argument(
        "--have",
        type=Path,
        default=None,
        help="Inventory YAML (sources or items/cargo maps, optional checked_off)",
    )
    parser.add_argument("--view", choices=VIEWS, default=None, help="Grouping of the output")
    parser.add_argument("--hide-completed", action="store_true", help="Omit satisfied materials")
    parser.add_argument("--tree", action="store_true", help="Print the material trees")
    parser.add_argument(
        "--explain",
        type=int,
        default=None,
        metavar="ITEM_ID",
        help="Show recipe filtering and classification for one item and exit",
    )
    parser.add_argument("--csv", type=Path, default=None, help="Write requirements to CSV")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("-v", "--verbose", action="store_true", help="Same as --log-level DETAILED")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Run with cProfile and display performance statistics",
    )
    parser.add_argument(
        "--profile-sort",
        type=str,
        default="cumulative",
        choices=["cumulative", "time", "calls", "name"],
        help="Sort order for profile output (default: cumulative)",
    )
    parser.add_argument(
        "--profile-lines",
        type=int,
        default=30,
        help="Number of profile lines to display (default: 30)",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.data_dir is not None:
            config.data_dir = args.data_dir
        log_level = "DETAILED" if args.verbose else (args.log_level or config.log_level)
        logger = create_logger(log_level, log_file=config.log_file)
        planner = create_planner(config, logger=logger, catalog_path=args.catalog)
    except PlannerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    if args.explain is not None:
        report = planner.explain_item(args.explain)
        if report.item is None:
            print(f"Unknown item {args.explain}")
            return 1
        print(f"{report.item.name} (tier {report.item.tier})")
        print(f"  Step: {report.calculated_step}")
        print(f"  Profession: {report.calculated_profession}")
        print(f"  Recipes: {len(report.all_recipes)} total, {len(report.valid_recipes)} valid")
        for recipe_id, reason in report.filter_reasons:
            print(f"    rejected {recipe_id}: {reason}")
        if report.selected_recipe is not None:
            print(f"  Selected: recipe {report.selected_recipe.id}")
        return 0

    store = ListStore(config.data_dir, logger=logger) if args.list_id else None
    crafting_list = _load_list(args, store)
    if crafting_list is None:
        parser.error("one of --list, --list-id or --item is required")

    progress = store.load_progress(crafting_list.id) if store else ListProgress(crafting_list.id)
    aggregator = load_inventory(args.have) if args.have else None
    have = build_have_state(aggregator, crafting_list, progress)
    if args.have:
        have.checked_off |= load_checked_off(args.have)

    # Run planner (with optional profiling)
    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        result = planner.calculate_requirements(crafting_list, have, progress, view=args.view)
        profiler.disable()

        print("\n" + "=" * 60)
        print("PROFILING RESULTS")
        print("=" * 60)

        stream = StringIO()
        stats = pstats.Stats(profiler, stream=stream)
        stats.strip_dirs()
        stats.sort_stats(args.profile_sort)
        stats.print_stats(args.profile_lines)
        print(stream.getvalue())

        print(f"\nTotal function calls: {stats.total_calls}")
        print(f"Total time: {stats.total_tt:.3f} seconds")
        print("=" * 60 + "\n")
    else:
        result = planner.calculate_requirements(crafting_list, have, progress, view=args.view)

    if args.tree:
        for root in planner.build_trees(crafting_list, progress.recipe_preferences).roots:
            print(format_tree(root.tree))
            print()

    print(f"List: {crafting_list.name}")
    for root in result.roots:
        state = "ready" if root.is_complete else f"{root.remaining} to craft"
        print(f"  {root.quantity}x {root.name}: {state}")
    if result.warnings:
        print()
        print("Warnings:")
        for message in result.warnings:
            print(f"  {message}")

    print(format_requirements(result, result.view, args.hide_completed or progress.hide_completed))
    print()
    print(f"Progress: {result.progress.completed}/{result.progress.total} "
          f"({result.progress.percentage}%)")

    if args.csv is not None:
        export_requirements_csv(result.requirements, args.csv)
        print(f"Wrote {args.csv}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
