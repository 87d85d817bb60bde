"""Inventory propagation through material trees.

Walks every root tree depth-first while consuming an on-hand inventory.
Inventory used at a node reduces the crafts needed there, which shrinks the
quantities pushed to its children. Each reduction is recorded as a coverage
edge ``(covered child, covering parent, parent quantity used, amount)``.
Remaining need and provenance are both derived from this single pass.

Consumption is tracked with a running per-entity counter shared across all
trees of one call, so a later root sees what earlier roots already used.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import InvariantViolation
from .models import (
    BuildingNode,
    CargoNode,
    EntityKind,
    ItemNode,
    MaterialNode,
    NeedTotals,
    ParentContribution,
)


@dataclass(frozen=True)
class CoverageEdge:
    """``parent_key`` used ``parent_quantity_used`` units, covering ``coverage`` of ``child_key``."""
    child_key: str
    parent_key: str
    parent_quantity_used: int
    coverage: float
    visit: int  # which visit of the parent produced this edge


@dataclass
class PropagationResult:
    needs: Dict[str, NeedTotals] = field(default_factory=dict)
    edges: List[CoverageEdge] = field(default_factory=list)
    root_remaining: List[int] = field(default_factory=list)

    def remaining_for(self, key: str) -> int:
        totals = self.needs.get(key)
        return totals.remaining if totals is not None else 0

    def contributions_by_child(self) -> Dict[str, List[ParentContribution]]:
        """
        Aggregate coverage edges per covered child and covering parent.

        Coverage amounts are summed. The parent quantity used is summed over
        distinct parent visits, since one visit emits an edge per descendant.
        """
        coverage: Dict[str, Dict[str, float]] = {}
        used: Dict[str, Dict[str, Dict[int, int]]] = {}
        for edge in self.edges:
            by_parent = coverage.setdefault(edge.child_key, {})
            by_parent[edge.parent_key] = by_parent.get(edge.parent_key, 0.0) + edge.coverage
            visits = used.setdefault(edge.child_key, {}).setdefault(edge.parent_key, {})
            visits[edge.visit] = edge.parent_quantity_used

        result: Dict[str, List[ParentContribution]] = {}
        for child_key, by_parent in coverage.items():
            result[child_key] = [
                ParentContribution(
                    parent_key=parent_key,
                    parent_quantity_used=sum(used[child_key][parent_key].values()),
                    coverage=amount,
                )
                for parent_key, amount in by_parent.items()
            ]
        return result


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def scale_child_quantity(node: MaterialNode, child: MaterialNode, needed: int) -> int:
    """
    Quantity of ``child`` when only ``needed`` units of ``node`` are produced.

    ``child.quantity`` was computed for ``node.quantity``; the result is
    ``ceil(child.quantity * crafts(needed) / crafts(node.quantity))``.
    """
    if needed == node.quantity:
        return child.quantity
    output = node.output_quantity
    original_crafts = _ceil_div(node.quantity, output)
    if original_crafts == 0:
        return 0
    crafts = _ceil_div(needed, output)
    return _ceil_div(child.quantity * crafts, original_crafts)


class InventoryPropagator:
    """
    One propagation run over a set of root trees.

    Parameters
    ----------
    have_items, have_cargo : mapping
        On-hand quantity per item id and per cargo id.
    checked_off : set of str
        Entity keys treated as fully available. They consume no inventory.
        Checked-off buildings count as built; buildings never draw from
        the have maps.
    """

    def __init__(
        self,
        have_items: Optional[Mapping[int, int]] = None,
        have_cargo: Optional[Mapping[int, int]] = None,
        checked_off: Optional[AbstractSet[str]] = None,
    ):
        self._have: Dict[EntityKind, Mapping[int, int]] = {
            EntityKind.ITEM: have_items or {},
            EntityKind.CARGO: have_cargo or {},
        }
        self._checked_off = checked_off or frozenset()
        self._used: Dict[str, int] = defaultdict(int)
        self._result = PropagationResult()
        self._visit_counter = 0

    def run(self, trees: Iterable[MaterialNode]) -> PropagationResult:
        for tree in trees:
            self._result.root_remaining.append(self._visit(tree, tree.quantity))
        self._check_invariants()
        return self._result

    def _consume(self, node: MaterialNode, needed: int) -> int:
        if node.key in self._checked_off:
            return needed
        if isinstance(node, BuildingNode):
            return 0
        if not isinstance(node, (ItemNode, CargoNode)):
            raise TypeError(f"Unexpected node type: {type(node).__name__}")

        have = self._have[node.kind].get(node.entity_id, 0)
        available = max(0, have - self._used[node.key])
        used = min(available, needed)
        self._used[node.key] += used
        return used

    def _visit(self, node: MaterialNode, needed: int) -> int:
        if needed < 0:
            raise InvariantViolation(f"Negative need {needed} for {node.key}")

        self._visit_counter += 1
        visit = self._visit_counter

        used = self._consume(node, needed)
        still_needed = needed - used

        totals = self._result.needs.setdefault(node.key, NeedTotals())
        totals.base_required += needed
        totals.remaining += still_needed

        if not node.children:
            return still_needed

        if still_needed == 0:
            # Fully covered: the whole subtree is subsumed, no further recursion
            if used > 0:
                for descendant, amount in self._scaled_descendants(node, needed):
                    self._record(descendant, node, used, amount, visit)
            return still_needed

        for child in node.children:
            full = scale_child_quantity(node, child, needed)
            reduced = scale_child_quantity(node, child, still_needed)
            covered = full - reduced
            if used > 0 and covered > 0:
                self._record(child, node, used, covered, visit)
                ratio = covered / full
                for descendant, amount in self._scaled_descendants(child, full):
                    self._record(descendant, node, used, amount * ratio, visit)
            self._visit(child, reduced)
        return still_needed

    def _scaled_descendants(
        self, node: MaterialNode, needed: int
    ) -> Iterator[Tuple[MaterialNode, int]]:
        for child in node.children:
            amount = scale_child_quantity(node, child, needed)
            yield child, amount
            yield from self._scaled_descendants(child, amount)

    def _record(self, child: MaterialNode, parent: MaterialNode,
                parent_used: int, coverage: float, visit: int) -> None:
        if coverage <= 0:
            return
        self._result.edges.append(
            CoverageEdge(
                child_key=child.key,
                parent_key=parent.key,
                parent_quantity_used=parent_used,
                coverage=coverage,
                visit=visit,
            )
        )

    def _check_invariants(self) -> None:
        for key, totals in self._result.needs.items():
            if totals.remaining < 0 or totals.remaining > totals.base_required:
                raise InvariantViolation(
                    f"Remaining {totals.remaining} outside [0, {totals.base_required}] for {key}"
                )


def compute_remaining_needs(
    trees: Iterable[MaterialNode],
    have_items: Optional[Mapping[int, int]] = None,
    have_cargo: Optional[Mapping[int, int]] = None,
    checked_off: Optional[AbstractSet[str]] = None,
) -> PropagationResult:
    """Propagate inventory through ``trees``; see :class:`InventoryPropagator`."""
    return InventoryPropagator(have_items, have_cargo, checked_off).run(trees)
