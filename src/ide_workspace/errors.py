"""Exceptions raised by the workspace core."""


class WorkspaceError(Exception):
    """Base class for every workspace failure."""

    code = "workspace_error"


class NotFound(WorkspaceError):
    """A referenced file id or path does not exist."""

    code = "not_found"


class NameConflict(WorkspaceError):
    """A sibling with the same name already exists."""

    code = "name_conflict"


class InvalidState(WorkspaceError):
    """The operation is not legal in the current state."""

    code = "invalid_state"


class AssistantUnavailable(WorkspaceError):
    """The assistant backend failed to answer.

    Never raised to callers of the store; turned into a system message.
    """

    code = "assistant_unavailable"
