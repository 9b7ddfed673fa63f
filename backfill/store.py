"""Versioned policy store: managed-set membership and write-once emission."""

from __future__ import annotations

import logging
import os
import typing as typ
from pathlib import Path

import pygit2

from .errors import StoreError
from .render import render_entry

if typ.TYPE_CHECKING:
    from .models import AccessPolicyEntry

ENTRY_SUFFIX = ".yaml"

_logger = logging.getLogger(__name__)


class PolicyStore:
    """Policy files laid out as ``<root>/<org>/<name>.yaml``.

    A repository is managed when its file is tracked by the git repository
    containing ``root`` or already exists on disk. Managed files are never
    rewritten.
    """

    def __init__(self, root: Path, org: str) -> None:
        """Bind the store to a directory and organization."""
        self.root = Path(root)
        self.org = org
        self._repository = _discover_repository(self.root)

    def path_for(self, name: str) -> Path:
        """Return the artifact path for repository ``name``."""
        return self.root / self.org / f"{name}{ENTRY_SUFFIX}"

    def is_managed(self, name: str) -> bool:
        """Return True when an artifact for ``name`` already exists."""
        path = self.path_for(name)
        return self._is_tracked(path) or path.exists()

    def write(self, entry: AccessPolicyEntry) -> Path:
        """Write a new artifact for ``entry``; refuse to replace an existing one."""
        path = self.path_for(entry.name)
        contents = render_entry(entry)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("x", encoding="utf-8")
        except FileExistsError as exc:
            message = f"{path} already exists; refusing to overwrite."
            raise StoreError(message) from exc
        except OSError as exc:
            message = f"Unable to write {path}: {exc}"
            raise StoreError(message) from exc
        try:
            with handle:
                handle.write(contents)
        except OSError as exc:
            # A truncated file would be mistaken for a managed entry.
            path.unlink(missing_ok=True)
            message = f"Unable to write {path}: {exc}"
            raise StoreError(message) from exc
        return path

    def _is_tracked(self, path: Path) -> bool:
        repository = self._repository
        if repository is None or repository.workdir is None:
            return False
        workdir = Path(repository.workdir).resolve()
        try:
            relative = path.resolve().relative_to(workdir)
        except ValueError:
            return False
        return relative.as_posix() in repository.index


def _discover_repository(root: Path) -> pygit2.Repository | None:
    start = root
    while not start.exists() and start != start.parent:
        start = start.parent
    try:
        discovered = pygit2.discover_repository(os.fspath(start))
    except (KeyError, pygit2.GitError):
        return None
    if discovered is None:
        _logger.debug("%s is not inside a git repository", root)
        return None
    return pygit2.Repository(discovered)
