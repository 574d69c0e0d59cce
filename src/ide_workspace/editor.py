"""Editor tabs: which files are open and which one is active."""

import logging
from typing import Iterable

from .errors import InvalidState, NotFound
from .file_tree import FileTree

logger = logging.getLogger(__name__)


class EditorSession:
    """Ordered set of open file ids plus at most one active id."""

    def __init__(self, tree: FileTree):
        self._tree = tree
        self._open: list[str] = []
        self._active: str | None = None

    @property
    def open_file_ids(self) -> tuple[str, ...]:
        return tuple(self._open)

    @property
    def active_file_id(self) -> str | None:
        return self._active

    def is_open(self, file_id: str) -> bool:
        return file_id in self._open

    def open(self, file_id: str) -> None:
        if not self._tree.is_leaf(file_id):
            raise NotFound(f"No file with id {file_id!r}")
        if file_id not in self._open:
            self._open.append(file_id)
        self._active = file_id

    def close(self, file_id: str) -> None:
        """Close a tab. Closing a file that is not open does nothing."""
        if file_id not in self._open:
            return
        index = self._open.index(file_id)
        self._open.remove(file_id)
        if self._active != file_id:
            return
        if not self._open:
            self._active = None
        elif index > 0:
            self._active = self._open[index - 1]
        else:
            self._active = self._open[0]

    def set_active(self, file_id: str) -> None:
        if file_id not in self._open:
            raise InvalidState(f"File {file_id!r} is not open")
        self._active = file_id

    def forget(self, file_ids: Iterable[str]) -> list[str]:
        """Close every listed id that is open; return the ones closed."""
        closed = [file_id for file_id in file_ids if file_id in self._open]
        for file_id in closed:
            self.close(file_id)
        if closed:
            logger.debug("Closed %d tab(s) for removed files", len(closed))
        return closed
