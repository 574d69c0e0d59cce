"""Hierarchical virtual file system.

Nodes live in a flat arena keyed by id; structure is expressed through
``parent_id`` and ordered ``children`` id tuples. Nodes are immutable, every
mutation swaps in a replaced ``FileNode``, so references handed out to
callers never change underneath them.
"""

import logging
import uuid
from dataclasses import replace
from typing import Iterator

from .core import FileNode, infer_language
from .errors import InvalidState, NameConflict, NotFound

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def split_path(path: str) -> list[str]:
    """Split a slash-joined path into its non-empty name segments."""
    return [part for part in path.strip().split("/") if part]


class FileTree:
    """Forest of file and directory nodes."""

    def __init__(self) -> None:
        self._nodes: dict[str, FileNode] = {}
        self._roots: list[str] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # ── Queries ──────────────────────────────────────────────────

    @property
    def roots(self) -> list[FileNode]:
        return [self._nodes[node_id] for node_id in self._roots]

    def find(self, node_id: str) -> FileNode | None:
        return self._nodes.get(node_id)

    def get(self, node_id: str) -> FileNode:
        """Like ``find`` but raises ``NotFound`` for unknown ids."""
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFound(f"No file with id {node_id!r}")
        return node

    def children_of(self, node_id: str | None) -> list[FileNode]:
        ids = self._roots if node_id is None else self.get(node_id).children
        return [self._nodes[child_id] for child_id in ids]

    def is_leaf(self, node_id: str) -> bool:
        node = self._nodes.get(node_id)
        return node is not None and not node.is_directory

    def find_child(self, parent_id: str | None, name: str) -> FileNode | None:
        for child in self.children_of(parent_id):
            if child.name == name:
                return child
        return None

    def find_by_path(self, path: str) -> FileNode | None:
        """Resolve a slash-joined name sequence starting at the root level."""
        parts = split_path(path)
        if not parts:
            return None
        parent_id = None
        node = None
        for part in parts:
            if parent_id is not None and not self._nodes[parent_id].is_directory:
                return None
            node = self.find_child(parent_id, part)
            if node is None:
                return None
            parent_id = node.id
        return node

    def path_of(self, node_id: str) -> str:
        names = []
        node: FileNode | None = self.get(node_id)
        while node is not None:
            names.append(node.name)
            node = self._nodes.get(node.parent_id) if node.parent_id else None
        return "/".join(reversed(names))

    def walk(self) -> Iterator[FileNode]:
        """Yield every node in pre-order, siblings in display order."""
        stack = list(reversed(self._roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def filter_by_name(self, query: str) -> list[FileNode]:
        """Return nodes whose name contains ``query``, case-insensitively."""
        needle = query.lower()
        return [node for node in self.walk() if needle in node.name.lower()]

    def leaf_ids(self) -> set[str]:
        return {node_id for node_id, node in self._nodes.items() if not node.is_directory}

    # ── Mutations ────────────────────────────────────────────────

    def create(
        self,
        parent_id: str | None,
        name: str,
        is_directory: bool = False,
        content: str = "",
    ) -> FileNode:
        """Create a node under ``parent_id`` (``None`` for the root level)."""
        name = self._validate_name(name)
        if parent_id is not None:
            parent = self._nodes.get(parent_id)
            if parent is None or not parent.is_directory:
                raise NotFound(f"No directory with id {parent_id!r}")
        self._check_conflict(parent_id, name)

        node = FileNode(
            id=_new_id(),
            name=name,
            is_directory=is_directory,
            parent_id=parent_id,
            content=None if is_directory else content,
            language=None if is_directory else infer_language(name),
            is_modified=bool(content) and not is_directory,
        )
        self._nodes[node.id] = node
        if parent_id is None:
            self._roots.append(node.id)
        else:
            parent = self._nodes[parent_id]
            self._nodes[parent_id] = replace(parent, children=parent.children + (node.id,))

        logger.debug("Created %s %s", "directory" if is_directory else "file", self.path_of(node.id))
        return node

    def create_path(self, path: str, content: str = "") -> FileNode:
        """Create a file at ``path``, making missing parent directories."""
        parts = split_path(path)
        if not parts:
            raise InvalidState("Path must contain at least one name")

        parent_id = None
        for part in parts[:-1]:
            existing = self.find_child(parent_id, part)
            if existing is None:
                existing = self.create(parent_id, part, is_directory=True)
            elif not existing.is_directory:
                raise NameConflict(f"{self.path_of(existing.id)} is a file, not a directory")
            parent_id = existing.id
        return self.create(parent_id, parts[-1], content=content)

    def delete(self, node_id: str) -> list[str]:
        """Remove a node and all its descendants.

        Returns the removed ids in pre-order.
        """
        node = self.get(node_id)
        path = self.path_of(node_id)

        removed = []
        stack = [node_id]
        while stack:
            current = self._nodes[stack.pop()]
            removed.append(current.id)
            stack.extend(reversed(current.children))

        if node.parent_id is None:
            self._roots.remove(node_id)
        else:
            parent = self._nodes[node.parent_id]
            children = tuple(c for c in parent.children if c != node_id)
            self._nodes[parent.id] = replace(parent, children=children)
        for removed_id in removed:
            del self._nodes[removed_id]

        logger.debug("Deleted %s (%d nodes)", path, len(removed))
        return removed

    def rename(self, node_id: str, new_name: str) -> FileNode:
        node = self.get(node_id)
        new_name = self._validate_name(new_name)
        if new_name == node.name:
            return node
        self._check_conflict(node.parent_id, new_name)

        updated = replace(node, name=new_name)
        if not node.is_directory:
            updated = replace(updated, language=infer_language(new_name))
        self._nodes[node_id] = updated
        logger.debug("Renamed %s to %s", node.name, new_name)
        return updated

    def write(self, node_id: str, content: str) -> FileNode:
        """Replace a file's content and mark it modified."""
        node = self.get(node_id)
        if node.is_directory:
            raise InvalidState(f"{node.name} is a directory")
        updated = replace(node, content=content, is_modified=True)
        self._nodes[node_id] = updated
        return updated

    def save(self, node_id: str) -> FileNode:
        node = self.get(node_id)
        if node.is_directory:
            raise InvalidState(f"{node.name} is a directory")
        if node.is_modified:
            node = replace(node, is_modified=False)
            self._nodes[node_id] = node
        return node

    def save_all(self) -> list[str]:
        """Clear every dirty flag; return the ids that were dirty."""
        saved = [node.id for node in self.walk() if node.is_modified]
        for node_id in saved:
            self._nodes[node_id] = replace(self._nodes[node_id], is_modified=False)
        return saved

    # ── Views ────────────────────────────────────────────────────

    def to_list(self) -> list[dict]:
        """Return the forest as nested JSON-serializable dicts."""
        return [self._node_to_dict(node_id) for node_id in self._roots]

    def _node_to_dict(self, node_id: str) -> dict:
        node = self._nodes[node_id]
        data = {
            "id": node.id,
            "name": node.name,
            "path": self.path_of(node.id),
            "is_directory": node.is_directory,
            "is_modified": node.is_modified,
        }
        if node.is_directory:
            data["children"] = [self._node_to_dict(child) for child in node.children]
        else:
            data["language"] = node.language
            data["content"] = node.content
        return data

    # ── Private helpers ──────────────────────────────────────────

    def _validate_name(self, name: str) -> str:
        name = name.strip()
        if not name:
            raise InvalidState("File name must not be empty")
        if "/" in name:
            raise InvalidState(f"File name {name!r} must not contain '/'")
        return name

    def _check_conflict(self, parent_id: str | None, name: str) -> None:
        if self.find_child(parent_id, name) is not None:
            where = self.path_of(parent_id) if parent_id else "the project root"
            raise NameConflict(f"{name!r} already exists in {where}")
