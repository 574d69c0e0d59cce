"""Core data models for ide-workspace."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional


class Platform(str, Enum):
    """Deployment targets a workspace can be shipped to."""

    VERCEL = "vercel"  # static / UI framework sites
    NETLIFY = "netlify"  # plain static sites
    RAILWAY = "railway"  # container-based servers


PLATFORM_DOMAINS = {
    Platform.VERCEL: "vercel.app",
    Platform.NETLIFY: "netlify.app",
    Platform.RAILWAY: "up.railway.app",
}


class DeployStatus(str, Enum):
    IDLE = "idle"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    TEXT = "text"
    CODE = "code"
    SUGGESTION = "suggestion"
    EXPLANATION = "explanation"


class ActionKind(str, Enum):
    """File-scoped requests the assistant understands."""

    EXPLAIN = "explain"
    GENERATE_TESTS = "generate-tests"
    REFACTOR = "refactor"
    GENERATE_DOCS = "generate-docs"
    CONVERT = "convert"

    @property
    def creates_file(self) -> bool:
        return self in (ActionKind.GENERATE_TESTS, ActionKind.CONVERT)


@dataclass(frozen=True)
class FileNode:
    """A file or directory in the virtual project."""

    id: str
    name: str
    is_directory: bool
    parent_id: Optional[str] = None  # None for root-level nodes
    children: tuple[str, ...] = ()  # child ids, display order
    content: Optional[str] = None
    language: Optional[str] = None
    is_modified: bool = False

    @property
    def is_leaf(self) -> bool:
        return not self.is_directory


@dataclass(frozen=True)
class Project:
    """Identity of the project loaded into the workspace."""

    id: str
    name: str


@dataclass(frozen=True)
class DeployLogEntry:
    """A single console line emitted during a deployment run."""

    level: str  # "info" | "success" | "error"
    message: str
    progress: int
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DeploymentState:
    """Snapshot of the deployment state machine."""

    status: DeployStatus = DeployStatus.IDLE
    platform: Platform = Platform.VERCEL
    platform_explicit: bool = False
    progress: int = 0
    current_step_index: int = 0
    deployed_url: Optional[str] = None
    error: Optional[str] = None
    log: tuple[DeployLogEntry, ...] = ()


@dataclass(frozen=True)
class ConversationMessage:
    """A single message in the assistant conversation."""

    id: str
    role: MessageRole
    content: str
    type: MessageType = MessageType.TEXT
    timestamp: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)  # file_id, action, created_file_id, error


@dataclass(frozen=True)
class FileAction:
    """An assistant action against a file.

    ``option`` carries the refactor kind for REFACTOR and the target
    language for CONVERT; it is unused otherwise.
    """

    kind: ActionKind
    option: Optional[str] = None


@dataclass(frozen=True)
class AssistantReply:
    """What an assistant backend returns for one prompt."""

    content: str
    type: MessageType = MessageType.TEXT


@dataclass(frozen=True)
class DeployResult:
    """Terminal outcome reported by a deploy backend."""

    success: bool
    message: str = ""


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """Read-only view of the whole workspace handed to renderers."""

    project: Optional[Project]
    files: list[dict]
    open_file_ids: tuple[str, ...]
    active_file_id: Optional[str]
    deployment: DeploymentState
    messages: tuple[ConversationMessage, ...]
    is_assistant_typing: bool


# ── Language inference ──────────────────────────────────────────

LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".md": "markdown",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".sh": "shell",
    ".sql": "sql",
}

LANGUAGE_BY_NAME = {
    "Dockerfile": "dockerfile",
    "Makefile": "makefile",
}


def infer_language(name: str) -> str:
    """Guess an editor language tag from a file name."""
    if name in LANGUAGE_BY_NAME:
        return LANGUAGE_BY_NAME[name]
    suffix = PurePosixPath(name).suffix.lower()
    return LANGUAGE_BY_EXTENSION.get(suffix, "plaintext")
