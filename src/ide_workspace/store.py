"""The workspace store: single owner of files, tabs, deployment and chat.

Renderers read snapshots and call the operations below; nothing outside
this module mutates the sub-components. Cross-entity rules live here:

- deleting files closes their tabs,
- the suggested deploy platform follows the open files,
- message metadata never exposes ids of files that no longer exist.
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Callable

from .backends import get_assistant_backend, get_deploy_backend
from .clock import AsyncioClock, Clock
from .config import get_default_project_name, get_tick_delta, get_tick_interval_ms
from .conversation import AssistantConversation
from .core import (
    ActionKind,
    ConversationMessage,
    DeploymentState,
    FileAction,
    FileNode,
    MessageType,
    Platform,
    Project,
    WorkspaceSnapshot,
)
from .deployment import DeploymentPipeline, DeploymentRunner
from .editor import EditorSession
from .errors import NotFound
from .file_tree import FileTree
from .provider import AssistantBackend, DeployBackend

logger = logging.getLogger(__name__)

FILE_REF_KEYS = ("file_id", "created_file_id")

Observer = Callable[[str, "WorkspaceStore"], None]


class WorkspaceStore:
    """Façade over one workspace session."""

    def __init__(
        self,
        assistant: AssistantBackend | None = None,
        deployer: DeployBackend | None = None,
        clock: Clock | None = None,
        tick_interval_ms: int | None = None,
        tick_delta: int | None = None,
    ):
        self._clock = clock or AsyncioClock()
        self._tree = FileTree()
        self._editor = EditorSession(self._tree)
        self._pipeline = DeploymentPipeline(self._clock)
        self._runner = DeploymentRunner(
            self._pipeline,
            deployer or get_deploy_backend(clock=self._clock),
            self._clock,
            tick_interval_ms=get_tick_interval_ms() if tick_interval_ms is None else tick_interval_ms,
            tick_delta=get_tick_delta() if tick_delta is None else tick_delta,
            on_change=lambda: self._notify("deployment"),
        )
        self._conversation = AssistantConversation(
            self._tree,
            self._editor,
            assistant or get_assistant_backend(clock=self._clock),
            self._clock,
            on_change=self._on_conversation_change,
        )
        self._project: Project | None = None
        self._observers: list[Observer] = []

    # ── Read accessors ───────────────────────────────────────────

    @property
    def current_project(self) -> Project | None:
        return self._project

    @property
    def files(self) -> list[dict]:
        return self._tree.to_list()

    @property
    def open_file_ids(self) -> tuple[str, ...]:
        return self._editor.open_file_ids

    @property
    def active_file_id(self) -> str | None:
        return self._editor.active_file_id

    @property
    def active_file(self) -> FileNode | None:
        active = self._editor.active_file_id
        return self._tree.find(active) if active else None

    @property
    def deployment(self) -> DeploymentState:
        return self._pipeline.state

    @property
    def deploy_steps(self) -> tuple[str, ...]:
        return self._pipeline.steps

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._resolve_refs(m) for m in self._conversation.messages)

    @property
    def is_assistant_typing(self) -> bool:
        return self._conversation.is_assistant_typing

    def find(self, node_id: str) -> FileNode | None:
        return self._tree.find(node_id)

    def find_by_path(self, path: str) -> FileNode | None:
        return self._tree.find_by_path(path)

    def path_of(self, node_id: str) -> str:
        return self._tree.path_of(node_id)

    def children_of(self, node_id: str | None = None) -> list[FileNode]:
        return self._tree.children_of(node_id)

    def filter_files(self, query: str) -> list[FileNode]:
        return self._tree.filter_by_name(query)

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            project=self._project,
            files=self._tree.to_list(),
            open_file_ids=self._editor.open_file_ids,
            active_file_id=self._editor.active_file_id,
            deployment=self._pipeline.state,
            messages=self.messages,
            is_assistant_typing=self._conversation.is_assistant_typing,
        )

    def invariant_violations(self) -> list[str]:
        """Describe every broken cross-entity invariant (empty when healthy)."""
        problems = []
        leaves = self._tree.leaf_ids()
        for file_id in self._editor.open_file_ids:
            if file_id not in leaves:
                problems.append(f"open file {file_id} is not a file in the tree")
        if len(set(self._editor.open_file_ids)) != len(self._editor.open_file_ids):
            problems.append("open files contain duplicates")
        active = self._editor.active_file_id
        if active is not None and active not in self._editor.open_file_ids:
            problems.append(f"active file {active} is not open")
        for parent in [None] + [n.id for n in self._tree.walk() if n.is_directory]:
            names = [child.name for child in self._tree.children_of(parent)]
            if len(names) != len(set(names)):
                problems.append(f"duplicate names under {parent or 'root'}")
        return problems

    # ── Observers ────────────────────────────────────────────────

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer(event, store)``; returns an unsubscribe function."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # ── Project & files ──────────────────────────────────────────

    def set_project(self, name: str | None = None) -> Project:
        self._project = Project(id=uuid.uuid4().hex, name=name or get_default_project_name())
        logger.info("Loaded project %s", self._project.name)
        self._notify("project")
        return self._project

    def create_file(self, name: str, parent_id: str | None = None, content: str = "") -> FileNode:
        node = self._tree.create(parent_id, name, content=content)
        self._notify("files")
        return node

    def create_directory(self, name: str, parent_id: str | None = None) -> FileNode:
        node = self._tree.create(parent_id, name, is_directory=True)
        self._notify("files")
        return node

    def create_path(self, path: str, content: str = "") -> FileNode:
        node = self._tree.create_path(path, content=content)
        self._notify("files")
        return node

    def load_files(self, files: dict[str, str]) -> list[FileNode]:
        """Create every ``path -> content`` entry, making directories as needed."""
        created = [self._tree.create_path(path, content=content) for path, content in files.items()]
        self._tree.save_all()
        self._notify("files")
        return created

    def delete(self, node_id: str) -> list[str]:
        removed = self._tree.delete(node_id)
        if self._editor.forget(removed):
            self._suggest_platform()
            self._notify("editor")
        self._notify("files")
        return removed

    def rename(self, node_id: str, new_name: str) -> FileNode:
        node = self._tree.rename(node_id, new_name)
        if self._editor.is_open(node_id):
            self._suggest_platform()
        self._notify("files")
        return node

    def write(self, file_id: str, content: str) -> FileNode:
        node = self._tree.write(file_id, content)
        if self._editor.is_open(file_id):
            self._suggest_platform()
        self._notify("files")
        return node

    def save(self, file_id: str) -> FileNode:
        node = self._tree.save(file_id)
        self._notify("files")
        return node

    def save_all(self) -> list[str]:
        saved = self._tree.save_all()
        if saved:
            self._notify("files")
        return saved

    # ── Editor ───────────────────────────────────────────────────

    def open_file(self, file_id: str) -> None:
        self._editor.open(file_id)
        self._suggest_platform()
        self._notify("editor")

    def close_file(self, file_id: str) -> None:
        if not self._editor.is_open(file_id):
            return
        self._editor.close(file_id)
        self._suggest_platform()
        self._notify("editor")

    def set_active(self, file_id: str) -> None:
        self._editor.set_active(file_id)
        self._notify("editor")

    # ── Deployment ───────────────────────────────────────────────

    def select_platform(self, platform: Platform | str) -> DeploymentState:
        state = self._pipeline.select_platform(Platform(platform))
        self._notify("deployment")
        return state

    def start_deploy(self, platform: Platform | str | None = None) -> asyncio.Task:
        """Start a timer-driven deployment; returns the settling task."""
        files = [self._tree.path_of(node.id) for node in self._tree.walk() if not node.is_directory]
        task = self._runner.start(
            Platform(platform) if platform is not None else None,
            self._project,
            files,
        )
        self._notify("deployment")
        return task

    def tick_deploy(self, delta: int) -> DeploymentState:
        state = self._pipeline.tick(delta)
        self._notify("deployment")
        return state

    def fail_deploy(self, reason: str) -> DeploymentState:
        state = self._pipeline.fail(reason)
        self._notify("deployment")
        return state

    async def wait_for_deploy(self) -> DeploymentState:
        return await self._runner.wait()

    # ── Assistant ────────────────────────────────────────────────

    def send(
        self,
        content: str,
        type: MessageType | str = MessageType.TEXT,
        metadata: dict | None = None,
    ) -> asyncio.Task:
        for key in FILE_REF_KEYS:
            ref = (metadata or {}).get(key)
            if ref is not None and ref not in self._tree:
                raise NotFound(f"No file with id {ref!r}")
        return self._conversation.send(content, type, metadata)

    def request_file_action(
        self,
        file_id: str,
        action: FileAction | ActionKind | str,
        option: str | None = None,
    ) -> asyncio.Task:
        if not isinstance(action, FileAction):
            action = FileAction(kind=ActionKind(action), option=option)
        return self._conversation.request_file_action(file_id, action)

    async def wait_for_assistant(self) -> None:
        await self._conversation.wait()

    # ── Private helpers ──────────────────────────────────────────

    def _suggest_platform(self) -> None:
        files = [(self._tree.path_of(i), self._tree.get(i)) for i in self._editor.open_file_ids]
        before = self._pipeline.state.platform
        self._pipeline.suggest_platform(files)
        if self._pipeline.state.platform is not before:
            self._notify("deployment")

    def _on_conversation_change(self, event: str) -> None:
        if event == "files":
            self._suggest_platform()
            self._notify("editor")
        self._notify(event)

    def _resolve_refs(self, message: ConversationMessage) -> ConversationMessage:
        metadata = dict(message.metadata)
        for key in FILE_REF_KEYS:
            if metadata.get(key) is not None and metadata[key] not in self._tree:
                metadata[key] = None
        return replace(message, metadata=metadata)

    def _notify(self, event: str) -> None:
        for observer in list(self._observers):
            try:
                observer(event, self)
            except Exception:
                logger.exception("Workspace observer failed on %s event", event)
