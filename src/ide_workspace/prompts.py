"""Prompt tables and composition for file-scoped assistant actions."""

from pathlib import PurePosixPath

from .core import ActionKind, FileAction, FileNode
from .errors import InvalidState

QUICK_ACTIONS = {
    "explain": "Explain this code to me",
    "debug": "Help me debug this code",
    "optimize": "How can I optimize this code?",
    "generate": "Generate code for",
}

REFACTOR_KINDS = {
    "optimize": QUICK_ACTIONS["optimize"],
    "debug": QUICK_ACTIONS["debug"],
    "simplify": "Simplify this code without changing its behavior",
    "error-handling": "Add error handling to this code",
}

# target language -> file extension of converted files
CONVERT_TARGETS = {
    "python": ".py",
    "typescript": ".ts",
    "javascript": ".js",
    "go": ".go",
    "rust": ".rs",
    "java": ".java",
    "ruby": ".rb",
}

TEMPLATES = [
    "Create a REST API endpoint",
    "Build a React component",
    "Write unit tests",
    "Add error handling",
    "Create a database schema",
    "Generate documentation",
]


def validate_action(action: FileAction) -> None:
    """Reject actions whose option is missing or unknown."""
    if action.kind is ActionKind.REFACTOR and action.option not in REFACTOR_KINDS:
        raise InvalidState(
            f"Unknown refactor kind {action.option!r}; expected one of {', '.join(REFACTOR_KINDS)}"
        )
    if action.kind is ActionKind.CONVERT and action.option not in CONVERT_TARGETS:
        raise InvalidState(
            f"Cannot convert to {action.option!r}; expected one of {', '.join(CONVERT_TARGETS)}"
        )


def _instruction(action: FileAction, node: FileNode) -> str:
    if action.kind is ActionKind.EXPLAIN:
        return QUICK_ACTIONS["explain"]
    if action.kind is ActionKind.REFACTOR:
        return REFACTOR_KINDS[action.option]
    if action.kind is ActionKind.GENERATE_TESTS:
        return f"Write unit tests for {node.name}"
    if action.kind is ActionKind.GENERATE_DOCS:
        return f"Generate documentation for {node.name}"
    return f"Convert {node.name} from {node.language} to {action.option}"


def compose_prompt(action: FileAction, node: FileNode) -> str:
    """Build the prompt sent for ``action``, embedding the file's source."""
    return f"{_instruction(action, node)}:\n```{node.language}\n{node.content or ''}\n```"


def generated_file_name(source_name: str, action: FileAction) -> str:
    """Name of the artifact a generation action produces for ``source_name``."""
    path = PurePosixPath(source_name)
    if action.kind is ActionKind.GENERATE_TESTS:
        if path.suffix == ".py":
            return f"test_{path.stem}.py"
        return f"{path.stem}.test{path.suffix}"
    if action.kind is ActionKind.CONVERT:
        return f"{path.stem}{CONVERT_TARGETS[action.option]}"
    raise InvalidState(f"{action.kind.value} does not produce a file")


def disambiguate(name: str, taken: set[str]) -> str:
    """Return ``name``, or ``name`` with ``-1``, ``-2``... before its extension."""
    if name not in taken:
        return name
    path = PurePosixPath(name)
    counter = 1
    while True:
        candidate = f"{path.stem}-{counter}{path.suffix}"
        if candidate not in taken:
            return candidate
        counter += 1
