"""Assistant conversation: an append-only log with one turn in flight.

A turn starts synchronously (user message appended and the typing flag
raised together) and settles asynchronously with exactly one reply. File
generating actions write their artifact through the regular FileTree and
EditorSession contracts when the reply arrives.
"""

import asyncio
import logging
import re
import uuid
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from .clock import Clock
from .core import (
    AssistantReply,
    ConversationMessage,
    FileAction,
    FileNode,
    MessageRole,
    MessageType,
)
from .editor import EditorSession
from .errors import AssistantUnavailable, InvalidState, NotFound, WorkspaceError
from .file_tree import FileTree
from .prompts import compose_prompt, disambiguate, generated_file_name, validate_action
from .provider import AssistantBackend

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```[\w+#.-]*\n(.*?)```", re.DOTALL)


def extract_code(content: str) -> str:
    """Return the first fenced code block in ``content``, or all of it."""
    match = _CODE_BLOCK_RE.search(content)
    if match is None:
        return content
    return match.group(1)


def _coerce_reply(result: object) -> AssistantReply:
    """Normalize a backend result; anything unusable is an AssistantUnavailable."""
    if isinstance(result, Mapping):
        result = AssistantReply(
            content=result.get("content"),
            type=result.get("type") or MessageType.TEXT,
        )
    if not isinstance(result, AssistantReply) or not isinstance(result.content, str):
        raise AssistantUnavailable(f"Malformed reply from assistant backend: {result!r}")
    try:
        reply_type = MessageType(result.type)
    except ValueError:
        raise AssistantUnavailable(f"Unknown reply type {result.type!r}") from None
    return replace(result, type=reply_type)


class AssistantConversation:
    """Ordered message log plus the single in-flight turn."""

    def __init__(
        self,
        tree: FileTree,
        editor: EditorSession,
        backend: AssistantBackend,
        clock: Clock | None = None,
        on_change: Callable[[str], None] | None = None,
    ):
        self._tree = tree
        self._editor = editor
        self._backend = backend
        self._clock = clock
        self._on_change = on_change or (lambda event: None)
        self._messages: list[ConversationMessage] = []
        self._typing = False
        self._task: asyncio.Task | None = None

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    @property
    def is_assistant_typing(self) -> bool:
        return self._typing

    def send(
        self,
        content: str,
        type: MessageType | str = MessageType.TEXT,
        metadata: dict | None = None,
    ) -> asyncio.Task:
        """Post a user message and start the assistant's reply."""
        if not content or not content.strip():
            raise InvalidState("Message must not be empty")
        metadata = dict(metadata or {})
        context = {"metadata": metadata}
        return self._begin_turn(content, MessageType(type), metadata, content, context, None)

    def request_file_action(self, file_id: str, action: FileAction) -> asyncio.Task:
        """Ask the assistant to act on a file (explain, refactor, convert...)."""
        node = self._tree.find(file_id)
        if node is None or node.is_directory:
            raise NotFound(f"No file with id {file_id!r}")
        validate_action(action)

        metadata = {"file_id": file_id, "action": action.kind.value}
        if action.option:
            metadata["option"] = action.option
        context = {
            "file_id": file_id,
            "file_name": node.name,
            "path": self._tree.path_of(file_id),
            "language": node.language,
            "content": node.content or "",
            "action": action.kind.value,
            "option": action.option,
        }
        prompt = compose_prompt(action, node)
        return self._begin_turn(prompt, MessageType.TEXT, metadata, prompt, context, action)

    async def wait(self) -> None:
        """Wait for the in-flight turn, if any, to settle."""
        if self._task is not None:
            await self._task

    # ── Private helpers ──────────────────────────────────────────

    def _begin_turn(
        self,
        content: str,
        type: MessageType,
        metadata: dict,
        prompt: str,
        context: dict,
        action: FileAction | None,
    ) -> asyncio.Task:
        if self._typing:
            raise InvalidState("The assistant is still answering the previous message")
        loop = asyncio.get_running_loop()

        self._append(MessageRole.USER, content, type, metadata)
        self._typing = True
        self._on_change("conversation")

        logger.info("Assistant turn started%s", f" ({action.kind.value})" if action else "")
        task = loop.create_task(self._run_turn(prompt, context, action))
        task.add_done_callback(lambda t: self._on_turn_done(t, context))
        self._task = task
        return task

    async def _run_turn(self, prompt: str, context: dict, action: FileAction | None) -> None:
        try:
            reply = _coerce_reply(await self._backend.ask(prompt, context))
        except asyncio.CancelledError:
            self._finish(MessageRole.SYSTEM, "The assistant request was cancelled.", {"error": "cancelled"})
            raise
        except Exception as e:
            self._fail_turn(e, context)
            return

        if action is not None and action.kind.creates_file:
            self._finish_generation(reply, context, action)
        else:
            metadata = self._subject(context)
            self._finish(MessageRole.ASSISTANT, reply.content, metadata, reply.type)

    def _on_turn_done(self, task: asyncio.Task, context: dict) -> None:
        # Settles turns whose coroutine never got to append a reply: cancelled
        # before their first step, or failed outside the guarded backend call.
        if task is not self._task or not self._typing:
            return
        if task.cancelled():
            self._finish(MessageRole.SYSTEM, "The assistant request was cancelled.", {"error": "cancelled"})
        else:
            self._fail_turn(task.exception(), context)

    def _fail_turn(self, exc: BaseException | None, context: dict) -> None:
        error = AssistantUnavailable(str(exc) or type(exc).__name__)
        logger.warning("Assistant backend %s failed: %s", self._backend.name, error)
        self._finish(
            MessageRole.SYSTEM,
            f"The assistant is unavailable right now: {error}",
            {"error": error.code, **self._subject(context)},
        )

    def _finish_generation(self, reply: AssistantReply, context: dict, action: FileAction) -> None:
        source = self._tree.find(context["file_id"])
        if source is None:
            logger.warning("Target of %s vanished before completion", action.kind.value)
            self._finish(
                MessageRole.SYSTEM,
                f"{context['file_name']} no longer exists, nothing was generated.",
                {"error": NotFound.code, "file_id": None, "action": action.kind.value},
            )
            return

        try:
            created = self._create_artifact(source, reply, action)
        except WorkspaceError as e:
            logger.warning("Could not store generated file for %s: %s", source.name, e)
            self._finish(
                MessageRole.SYSTEM,
                f"Could not create the generated file: {e}",
                {"error": e.code, **self._subject(context)},
            )
            return

        metadata = {**self._subject(context), "created_file_id": created.id}
        self._finish(MessageRole.ASSISTANT, reply.content, metadata, reply.type, files_changed=True)

    def _create_artifact(self, source: FileNode, reply: AssistantReply, action: FileAction) -> FileNode:
        taken = {child.name for child in self._tree.children_of(source.parent_id)}
        name = disambiguate(generated_file_name(source.name, action), taken)
        created = self._tree.create(source.parent_id, name, content=extract_code(reply.content))
        self._editor.open(created.id)
        logger.info("Assistant created %s", self._tree.path_of(created.id))
        return created

    def _subject(self, context: dict) -> dict:
        if "file_id" not in context:
            return {}
        subject = {"file_id": context["file_id"], "action": context["action"]}
        if context.get("option"):
            subject["option"] = context["option"]
        return subject

    def _finish(
        self,
        role: MessageRole,
        content: str,
        metadata: dict,
        type: MessageType = MessageType.TEXT,
        files_changed: bool = False,
    ) -> None:
        self._append(role, content, type, metadata)
        self._typing = False
        if files_changed:
            self._on_change("files")
        self._on_change("conversation")

    def _append(self, role: MessageRole, content: str, type: MessageType, metadata: dict) -> ConversationMessage:
        message = ConversationMessage(
            id=uuid.uuid4().hex,
            role=role,
            content=content,
            type=type,
            timestamp=self._clock.now() if self._clock else datetime.now(timezone.utc),
            metadata=metadata,
        )
        self._messages.append(message)
        return message
