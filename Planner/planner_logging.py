"""
Structured logging for the crafting planner.

Provides insight into engine behavior at multiple verbosity levels:
    - MINIMAL: Only final results, warnings and errors
    - SUMMARY: Catalog/list overview and key counts
    - DETAILED: Requirement tables, batch corrections
    - DEBUG: Cache decisions, per-tree statistics, coverage edges
    - TRACE: Everything including every coverage edge

Usage:
    from Planner.planner_logging import PlannerLogger, LogLevel

    logger = PlannerLogger(level=LogLevel.DETAILED)
    planner = CraftingPlanner(catalog, logger=logger)
    planner.calculate_requirements(crafting_list)
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple, Union


class LogLevel(IntEnum):
    """Verbosity levels for planner logging."""
    SILENT = 0      # No output at all
    MINIMAL = 10    # Results, warnings and errors
    SUMMARY = 20    # Overview and key counts
    DETAILED = 30   # Requirement tables
    DEBUG = 40      # Cache decisions and internal state
    TRACE = 50      # Every coverage edge


@dataclass
class LogEntry:
    """A single log entry with metadata."""
    timestamp: datetime
    level: LogLevel
    category: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def format(self, include_timestamp: bool = True, include_level: bool = True) -> str:
        """Format the log entry as a string."""
        parts = []
        if include_timestamp:
            parts.append(f"[{self.timestamp.strftime('%H:%M:%S.%f')[:-3]}]")
        if include_level:
            parts.append(f"[{self.level.name:8}]")
        parts.append(f"[{self.category}]")
        parts.append(self.message)
        return " ".join(parts)


@dataclass
class PlannerLogger:
    """
    Structured logger for the crafting planner.

    Attributes
    ----------
    level : LogLevel
        Minimum level to log (entries above this verbosity are ignored)
    output : TextIO | None
        Output stream (defaults to sys.stdout)
    log_to_file : Path | None
        Optional path to also write logs to a file
    entries : list[LogEntry]
        All logged entries (for programmatic access)
    """
    level: LogLevel = LogLevel.SUMMARY
    output: Optional[TextIO] = None
    log_to_file: Optional[Path] = None
    include_timestamp: bool = True
    include_level: bool = True
    entries: List[LogEntry] = field(default_factory=list)
    _file_handle: Optional[TextIO] = field(default=None, repr=False)

    def __post_init__(self):
        if self.output is None:
            self.output = sys.stdout
        if self.log_to_file:
            self._file_handle = open(self.log_to_file, "w", encoding="utf-8")

    def close(self):
        """Close the file handle if opened."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _log(self, level: LogLevel, category: str, message: str,
             data: Optional[Dict[str, Any]] = None) -> None:
        """Internal method to record and output a log entry."""
        if level > self.level:
            return

        entry = LogEntry(
            timestamp=datetime.now(),
            level=level,
            category=category,
            message=message,
            data=data,
        )
        self.entries.append(entry)

        formatted = entry.format(self.include_timestamp, self.include_level)
        if self.output:
            self.output.write(formatted + "\n")
            self.output.flush()
        if self._file_handle:
            self._file_handle.write(formatted + "\n")
            self._file_handle.flush()

    def _log_table(self, level: LogLevel, category: str,
                   headers: List[str], rows: List[List[Any]],
                   title: Optional[str] = None) -> None:
        """Log a formatted table."""
        if level > self.level:
            return

        all_rows = [headers] + rows
        widths = [max(len(str(row[i])) for row in all_rows) for i in range(len(headers))]

        lines = []
        if title:
            lines.append(title)
            lines.append("=" * len(title))

        header_line = " | ".join(str(h).ljust(w) for h, w in zip(headers, widths))
        lines.append(header_line)
        lines.append("-" * len(header_line))

        for row in rows:
            lines.append(" | ".join(str(v).ljust(w) for v, w in zip(row, widths)))

        for line in lines:
            self._log(level, category, line)

    def warning(self, category: str, message: str) -> None:
        self._log(LogLevel.MINIMAL, category, f"WARNING: {message}")

    # -------------------------------------------------------------------------
    # Catalog and cache logging
    # -------------------------------------------------------------------------

    def log_catalog_loaded(self, description: str, version: str) -> None:
        self._log(LogLevel.SUMMARY, "CATALOG",
                  f"Loaded {description} (version {version[:12]})")

    def log_caches_cleared(self, reason: str) -> None:
        self._log(LogLevel.SUMMARY, "CACHE", f"Cleared derived caches: {reason}")

    def log_tree_cache(self, list_id: str, hit: bool, content_hash: str) -> None:
        """Log a per-list tree cache decision."""
        outcome = "hit" if hit else "miss"
        self._log(LogLevel.DEBUG, "CACHE",
                  f"Tree cache {outcome} for list '{list_id}' (hash {content_hash[:12]})")

    # -------------------------------------------------------------------------
    # Tree logging
    # -------------------------------------------------------------------------

    def log_tree_built(self, root_key: str, quantity: int,
                       node_count: int, depth: int) -> None:
        self._log(LogLevel.DEBUG, "TREE",
                  f"Built tree for {quantity}x {root_key}: "
                  f"{node_count} nodes, depth {depth}")

    def log_tree_warnings(self, warnings: Sequence[str]) -> None:
        """Log dropped ids and depth cut-offs collected while expanding."""
        if not warnings:
            return
        self.warning("TREE", f"{len(warnings)} issue(s) while expanding recipe trees")
        for message in warnings:
            self._log(LogLevel.SUMMARY, "TREE", f"  {message}")

    # -------------------------------------------------------------------------
    # Engine stage logging
    # -------------------------------------------------------------------------

    def log_batch_optimization(self, before: Dict[str, int], after: Dict[str, int]) -> None:
        """Log quantities changed by batch optimization."""
        changed = [(key, before[key], after.get(key, 0))
                   for key in before if before[key] != after.get(key, 0)]
        self._log(LogLevel.SUMMARY, "BATCH",
                  f"Batch optimization adjusted {len(changed)} of {len(before)} items")

        if changed and self.level >= LogLevel.DETAILED:
            rows = [[key, old, new, new - old] for key, old, new in changed]
            self._log_table(LogLevel.DETAILED, "BATCH",
                            ["Material", "Per-branch", "Optimized", "Delta"],
                            rows, title="Batch Corrections")

    def log_propagation(self, result: Any) -> None:
        """Log inventory propagation results."""
        needs = getattr(result, "needs", {})
        edges = getattr(result, "edges", [])
        satisfied = sum(1 for totals in needs.values() if totals.remaining == 0)
        self._log(LogLevel.SUMMARY, "PROPAGATE",
                  f"Propagated inventory over {len(needs)} entities: "
                  f"{satisfied} satisfied, {len(edges)} coverage edges")

        if self.level >= LogLevel.TRACE:
            for edge in edges:
                self._log(LogLevel.TRACE, "PROPAGATE",
                          f"  {edge.parent_key} used {edge.parent_quantity_used} "
                          f"-> covers {edge.coverage:.2f} of {edge.child_key}")

    def log_requirements(self, requirements: Sequence[Any], top_n: int = 40) -> None:
        """Log the final requirement table."""
        remaining = sum(1 for r in requirements if not r.is_complete)
        self._log(LogLevel.MINIMAL, "REQUIREMENTS",
                  f"{len(requirements)} materials, {remaining} still needed")

        if self.level < LogLevel.DETAILED or not requirements:
            return

        rows = [
            [r.name, r.key, r.step, r.tier, r.profession,
             r.base_required, r.have, r.remaining]
            for r in requirements[:top_n]
        ]
        if len(requirements) > top_n:
            rows.append(["...", f"({len(requirements) - top_n} more)", "", "", "", "", "", ""])
        self._log_table(LogLevel.DETAILED, "REQUIREMENTS",
                        ["Material", "Key", "Step", "Tier", "Profession",
                         "Required", "Have", "Remaining"],
                        rows, title="Material Requirements")

    def log_progress(self, progress: Any) -> None:
        self._log(LogLevel.SUMMARY, "PROGRESS",
                  f"Progress: {progress.completed}/{progress.total} "
                  f"({progress.percentage}%)")

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    def get_all_entries(self) -> List[LogEntry]:
        """Return all logged entries."""
        return self.entries.copy()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        """Return entries at or below a specific level."""
        return [e for e in self.entries if e.level <= level]

    def get_entries_by_category(self, category: str) -> List[LogEntry]:
        """Return entries matching a category."""
        return [e for e in self.entries if e.category == category]

    def to_string(self, level: Optional[LogLevel] = None) -> str:
        """Format all entries to a string."""
        entries = self.entries if level is None else self.get_entries_by_level(level)
        return "\n".join(e.format(self.include_timestamp, self.include_level)
                         for e in entries)

    def clear(self) -> None:
        """Clear all logged entries."""
        self.entries.clear()


def parse_log_level(level: Union[LogLevel, str, int]) -> LogLevel:
    if isinstance(level, LogLevel):
        return level
    if isinstance(level, str):
        return LogLevel[level.upper()]
    return LogLevel(level)


def create_logger(
    level: Union[LogLevel, str, int] = LogLevel.SUMMARY,
    output: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
) -> PlannerLogger:
    """
    Factory function to create a PlannerLogger.

    Parameters
    ----------
    level : LogLevel | str | int
        Verbosity level. Can be LogLevel enum, string name, or integer.
    output : TextIO | None
        Output stream. Defaults to sys.stdout.
    log_file : Path | None
        Optional path to write logs to file.
    """
    return PlannerLogger(
        level=parse_log_level(level),
        output=output,
        log_to_file=log_file,
    )


def create_string_logger(level: LogLevel = LogLevel.DETAILED) -> Tuple[PlannerLogger, StringIO]:
    """
    Create a logger that writes to a string buffer.

    Useful for testing or capturing logs programmatically.
    """
    buffer = StringIO()
    logger = PlannerLogger(level=level, output=buffer)
    return logger, buffer
