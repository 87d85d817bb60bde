"""
Crafting list persistence using YAML files.

Lists and their progress state are saved to the user data directory, one
file per list, so they can be recalled between sessions.
"""
from __future__ import annotations

import os
import platform
import re
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from .crafting_list import CraftingList, ListProgress
from .planner_logging import LogLevel, PlannerLogger


def get_user_data_dir() -> Path:
    """
    Get the appropriate user data directory for the platform.

    Returns:
        Path to user data directory (created if needed)
    """
    app_name = "CraftPlanner"

    if platform.system() == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif platform.system() == "Darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    data_dir = base / app_name
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def _safe_name(list_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", list_id)


class ListStore:
    """
    Saves and loads crafting lists and their progress from YAML files.

    Layout under ``data_dir``::

        lists/<list_id>.yaml
        progress/<list_id>.yaml
    """

    def __init__(self, data_dir: Optional[Path] = None,
                 logger: Optional[PlannerLogger] = None):
        """
        Parameters
        ----------
        data_dir : Path, optional
            Custom root directory. Defaults to the per-user data directory.
        logger : PlannerLogger, optional
            Receives warnings about unreadable files.
        """
        self._data_dir = data_dir or get_user_data_dir()
        self._lists_dir = self._data_dir / "lists"
        self._progress_dir = self._data_dir / "progress"
        self._lists_dir.mkdir(parents=True, exist_ok=True)
        self._progress_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logger or PlannerLogger(level=LogLevel.MINIMAL, output=sys.stderr)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _list_path(self, list_id: str) -> Path:
        return self._lists_dir / f"{_safe_name(list_id)}.yaml"

    def _progress_path(self, list_id: str) -> Path:
        return self._progress_dir / f"{_safe_name(list_id)}.yaml"

    @staticmethod
    def _dump(path: Path, data) -> None:
        temp_path = path.with_suffix(".tmp")
        with temp_path.open("w", encoding="utf-8") as fh:
            yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
        temp_path.replace(path)

    def _read(self, path: Path, what: str) -> Optional[dict]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            self._logger.warning("STORE", f"Error loading {what} {path.stem}: {exc}")
            return None
        if not isinstance(data, dict):
            self._logger.warning("STORE", f"Error loading {what} {path.stem}: not a mapping")
            return None
        return data

    # ---------------------------------------------------------------------
    # Lists
    # ---------------------------------------------------------------------

    def save_list(self, crafting_list: CraftingList) -> Path:
        path = self._list_path(crafting_list.id)
        self._dump(path, crafting_list.to_dict())
        return path

    def load_list(self, list_id: str) -> Optional[CraftingList]:
        """
        Load a list by id.

        Returns
        -------
        CraftingList or None
            None if the list does not exist or its file is unreadable.
        """
        data = self._read(self._list_path(list_id), "list")
        if data is None:
            return None
        try:
            return CraftingList.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            self._logger.warning("STORE", f"Error loading list {list_id}: {exc}")
            return None

    def list_lists(self) -> List[CraftingList]:
        """All saved lists, most recently updated first."""
        lists = []
        for path in self._lists_dir.glob("*.yaml"):
            crafting_list = self.load_list(path.stem)
            if crafting_list is not None:
                lists.append(crafting_list)
        lists.sort(key=lambda l: l.updated_at, reverse=True)
        return lists

    def delete_list(self, list_id: str) -> bool:
        """Delete a list and its progress. Returns False if the list was not found."""
        path = self._list_path(list_id)
        progress_path = self._progress_path(list_id)
        if progress_path.exists():
            progress_path.unlink()
        if path.exists():
            path.unlink()
            return True
        return False

    # ---------------------------------------------------------------------
    # Progress
    # ---------------------------------------------------------------------

    def save_progress(self, progress: ListProgress) -> Path:
        path = self._progress_path(progress.list_id)
        self._dump(path, progress.to_dict())
        return path

    def load_progress(self, list_id: str) -> ListProgress:
        """Saved progress for a list, or a fresh empty one."""
        data = self._read(self._progress_path(list_id), "progress")
        if data is None:
            return ListProgress(list_id=list_id)
        try:
            return ListProgress.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            self._logger.warning("STORE", f"Error loading progress {list_id}: {exc}")
            return ListProgress(list_id=list_id)
