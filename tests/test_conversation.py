"""Tests for the assistant conversation and its file-producing actions."""

import asyncio

import pytest

from ide_workspace.conversation import extract_code
from ide_workspace.core import (
    ActionKind,
    AssistantReply,
    FileAction,
    MessageRole,
    MessageType,
)
from ide_workspace.errors import InvalidState, NotFound
from ide_workspace.export import message_to_dict
from ide_workspace.prompts import compose_prompt, disambiguate, generated_file_name
from ide_workspace.store import WorkspaceStore


class TestSend:
    @pytest.mark.asyncio
    async def test_user_message_is_appended_immediately(self, store):
        turn = store.send("How do I deploy?")
        assert [m.role for m in store.messages] == [MessageRole.USER]
        assert store.messages[0].content == "How do I deploy?"
        assert store.is_assistant_typing is True

        await turn
        assert [m.role for m in store.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert "Deploy panel" in store.messages[1].content
        assert store.is_assistant_typing is False

    @pytest.mark.asyncio
    async def test_back_to_back_sends(self, gated_store, gated_assistant):
        first = gated_store.send("first")
        with pytest.raises(InvalidState):
            gated_store.send("second")
        assert len(gated_store.messages) == 1

        gated_assistant.release.set()
        await first
        second = gated_store.send("second")
        await second

        contents = [(m.role, m.content) for m in gated_store.messages]
        assert [c[0] for c in contents] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]
        assert contents[0][1] == "first"
        assert contents[2][1] == "second"

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, store):
        with pytest.raises(InvalidState):
            store.send("   ")
        assert store.messages == ()
        assert store.is_assistant_typing is False

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, store):
        with pytest.raises(ValueError):
            store.send("hi", type="poem")
        assert store.messages == ()

    @pytest.mark.asyncio
    async def test_reply_type_is_kept(self, store):
        await store.send("please help me debug this")
        assert store.messages[-1].type is MessageType.SUGGESTION

    @pytest.mark.asyncio
    async def test_timestamps_come_from_clock(self, store, clock):
        await store.send("hello")
        assert all(m.timestamp == clock.now() for m in store.messages)

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_system_message(self, clock, make_assistant):
        backend = make_assistant(error=ConnectionError("upstream timed out"))
        backend.release.set()
        store = WorkspaceStore(assistant=backend, clock=clock)

        await store.send("hello")
        last = store.messages[-1]
        assert last.role is MessageRole.SYSTEM
        assert last.metadata["error"] == "assistant_unavailable"
        assert "upstream timed out" in last.content
        assert store.is_assistant_typing is False

        # the gate reopens after a failure
        await store.send("again")
        assert len(store.messages) == 4

    @pytest.mark.asyncio
    async def test_cancelled_turn_clears_typing(self, gated_store):
        turn = gated_store.send("hello")
        await asyncio.sleep(0)
        turn.cancel()
        with pytest.raises(asyncio.CancelledError):
            await turn
        assert gated_store.is_assistant_typing is False
        assert gated_store.messages[-1].role is MessageRole.SYSTEM
        assert gated_store.messages[-1].metadata == {"error": "cancelled"}

    @pytest.mark.asyncio
    async def test_turn_cancelled_before_it_starts(self, gated_store, gated_assistant):
        turn = gated_store.send("hello")
        turn.cancel()
        with pytest.raises(asyncio.CancelledError):
            await turn

        assert gated_store.is_assistant_typing is False
        assert gated_store.messages[-1].role is MessageRole.SYSTEM
        assert gated_store.messages[-1].metadata == {"error": "cancelled"}
        assert gated_assistant.calls == []

        gated_assistant.release.set()
        await gated_store.send("again")
        assert [m.role for m in gated_store.messages][-2:] == [MessageRole.USER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_observer_chaining_a_send_keeps_the_gate(self, gated_store, gated_assistant):
        follow_ups = []

        def chain(event, store):
            if event == "conversation" and not store.is_assistant_typing and not follow_ups:
                gated_assistant.release.clear()
                follow_ups.append(store.send("follow-up"))

        gated_store.subscribe(chain)
        gated_assistant.release.set()
        await gated_store.send("first")

        assert len(follow_ups) == 1
        assert gated_store.is_assistant_typing is True
        with pytest.raises(InvalidState):
            gated_store.send("third")

        gated_assistant.release.set()
        await follow_ups[0]
        assert gated_store.is_assistant_typing is False
        assert [m.content for m in gated_store.messages if m.role is MessageRole.USER] == ["first", "follow-up"]
        assert len(gated_store.messages) == 4

    @pytest.mark.asyncio
    async def test_mapping_reply_is_accepted(self, clock, make_assistant):
        backend = make_assistant(reply={"type": "code", "content": "```py\nx = 1\n```"})
        backend.release.set()
        store = WorkspaceStore(assistant=backend, clock=clock)

        await store.send("show me")
        last = store.messages[-1]
        assert last.role is MessageRole.ASSISTANT
        assert last.type is MessageType.CODE
        assert message_to_dict(last)["type"] == "code"

    @pytest.mark.asyncio
    async def test_string_reply_type_is_normalized(self, clock, make_assistant):
        backend = make_assistant(reply=AssistantReply(content="hi", type="suggestion"))
        backend.release.set()
        store = WorkspaceStore(assistant=backend, clock=clock)

        await store.send("hello")
        assert store.messages[-1].type is MessageType.SUGGESTION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [42, {"type": "text"}, AssistantReply(content="hi", type="poem")])
    async def test_malformed_reply_becomes_system_message(self, clock, make_assistant, reply):
        backend = make_assistant(reply=reply)
        backend.release.set()
        store = WorkspaceStore(assistant=backend, clock=clock)

        await store.send("hello")
        assert [m.role for m in store.messages] == [MessageRole.USER, MessageRole.SYSTEM]
        assert store.messages[-1].metadata["error"] == "assistant_unavailable"
        assert store.is_assistant_typing is False


class TestFileActions:
    @pytest.mark.asyncio
    async def test_generate_tests_creates_and_opens_file(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        await project_store.request_file_action(app.id, ActionKind.GENERATE_TESTS)

        created = project_store.find_by_path("src/app.test.ts")
        assert created is not None
        assert created.parent_id == app.parent_id
        assert created.id in project_store.open_file_ids
        assert project_store.active_file_id == created.id
        assert "describe('app'" in created.content
        assert "```" not in created.content
        assert created.is_modified is True

        reply = project_store.messages[-1]
        assert reply.role is MessageRole.ASSISTANT
        assert reply.type is MessageType.CODE
        assert reply.metadata == {
            "file_id": app.id,
            "action": "generate-tests",
            "created_file_id": created.id,
        }
        assert project_store.invariant_violations() == []

    @pytest.mark.asyncio
    async def test_generated_name_conflict_gets_counter(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        src = project_store.find_by_path("src")
        project_store.create_file("app.test.ts", parent_id=src.id)

        await project_store.request_file_action(app.id, "generate-tests")
        assert project_store.find_by_path("src/app.test-1.ts") is not None

        await project_store.request_file_action(app.id, "generate-tests")
        assert project_store.find_by_path("src/app.test-2.ts") is not None

    @pytest.mark.asyncio
    async def test_python_tests_use_test_prefix(self, store):
        node = store.create_path("pkg/utils.py", content="def slug(s):\n    return s\n")
        await store.request_file_action(node.id, "generate-tests")
        created = store.find_by_path("pkg/test_utils.py")
        assert created.language == "python"
        assert "def test_slug" in created.content

    @pytest.mark.asyncio
    async def test_convert_creates_target_file(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        await project_store.request_file_action(app.id, "convert", "python")

        created = project_store.find_by_path("src/app.py")
        assert created.language == "python"
        assert created.content.startswith("# Converted from app.ts (typescript)")
        assert "def add():" in created.content
        assert project_store.messages[-1].metadata["option"] == "python"

    @pytest.mark.asyncio
    async def test_explain_does_not_touch_files(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        before = project_store.files
        await project_store.request_file_action(app.id, ActionKind.EXPLAIN)

        assert project_store.files == before
        reply = project_store.messages[-1]
        assert reply.type is MessageType.EXPLANATION
        assert "`add`" in reply.content
        assert reply.metadata == {"file_id": app.id, "action": "explain"}

    @pytest.mark.asyncio
    async def test_refactor_and_docs(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        await project_store.request_file_action(app.id, FileAction(ActionKind.REFACTOR, "optimize"))
        assert project_store.messages[-1].type is MessageType.SUGGESTION

        await project_store.request_file_action(app.id, ActionKind.GENERATE_DOCS)
        assert "# app.ts" in project_store.messages[-1].content

    @pytest.mark.asyncio
    async def test_prompt_embeds_file(self, gated_store, gated_assistant):
        node = gated_store.create_path("src/app.ts", content="export const x = 1;")
        turn = gated_store.request_file_action(node.id, "explain")

        gated_assistant.release.set()
        await turn

        prompt, context = gated_assistant.calls[0]
        assert prompt == "Explain this code to me:\n```typescript\nexport const x = 1;\n```"
        assert context["language"] == "typescript"
        assert context["path"] == "src/app.ts"
        assert gated_store.messages[0].content == prompt

    @pytest.mark.asyncio
    async def test_unknown_file(self, store):
        with pytest.raises(NotFound):
            store.request_file_action("missing", "explain")
        assert store.messages == ()

    @pytest.mark.asyncio
    async def test_directory_is_not_a_target(self, project_store):
        src = project_store.find_by_path("src")
        with pytest.raises(NotFound):
            project_store.request_file_action(src.id, "explain")

    @pytest.mark.asyncio
    async def test_bad_options_rejected(self, project_store):
        app = project_store.find_by_path("src/app.ts")
        with pytest.raises(InvalidState):
            project_store.request_file_action(app.id, "refactor", "rewrite-in-cobol")
        with pytest.raises(InvalidState):
            project_store.request_file_action(app.id, "convert", "cobol")
        with pytest.raises(InvalidState):
            project_store.request_file_action(app.id, "convert")
        assert project_store.messages == ()
        assert project_store.is_assistant_typing is False

    @pytest.mark.asyncio
    async def test_action_blocked_while_typing(self, gated_store, gated_assistant):
        node = gated_store.create_path("app.ts")
        turn = gated_store.send("hi")
        with pytest.raises(InvalidState):
            gated_store.request_file_action(node.id, "explain")
        gated_assistant.release.set()
        await turn

    @pytest.mark.asyncio
    async def test_target_deleted_mid_flight(self, gated_store, gated_assistant):
        node = gated_store.create_path("src/app.ts", content="export const x = 1;")
        gated_store.open_file(node.id)
        turn = gated_store.request_file_action(node.id, "generate-tests")

        gated_store.delete(node.id)
        gated_assistant.release.set()
        await turn

        last = gated_store.messages[-1]
        assert last.role is MessageRole.SYSTEM
        assert last.metadata["error"] == "not_found"
        assert gated_store.find_by_path("src/app.test.ts") is None
        assert gated_store.open_file_ids == ()
        assert gated_store.is_assistant_typing is False
        # the user message still exists but no longer points at the file
        assert gated_store.messages[0].metadata["file_id"] is None


class TestHelpers:
    def test_extract_code(self):
        assert extract_code("Here:\n```python\nprint(1)\n```\nDone") == "print(1)\n"
        assert extract_code("no fences") == "no fences"

    def test_generated_file_name(self):
        tests = FileAction(ActionKind.GENERATE_TESTS)
        assert generated_file_name("app.ts", tests) == "app.test.ts"
        assert generated_file_name("Button.tsx", tests) == "Button.test.tsx"
        assert generated_file_name("utils.py", tests) == "test_utils.py"
        assert generated_file_name("app.ts", FileAction(ActionKind.CONVERT, "go")) == "app.go"
        with pytest.raises(InvalidState):
            generated_file_name("app.ts", FileAction(ActionKind.EXPLAIN))

    def test_disambiguate(self):
        assert disambiguate("app.test.ts", set()) == "app.test.ts"
        assert disambiguate("app.test.ts", {"app.test.ts"}) == "app.test-1.ts"
        assert disambiguate("Makefile", {"Makefile", "Makefile-1"}) == "Makefile-2"

    def test_compose_prompt(self, tree):
        node = tree.create(None, "main.go", content="package main")
        prompt = compose_prompt(FileAction(ActionKind.CONVERT, "rust"), node)
        assert prompt == "Convert main.go from go to rust:\n```go\npackage main\n```"

    @pytest.mark.asyncio
    async def test_reply_content_is_opaque(self, clock, make_assistant):
        backend = make_assistant(reply=AssistantReply(content="plain answer"))
        backend.release.set()
        store = WorkspaceStore(assistant=backend, clock=clock)
        node = store.create_path("app.ts", content="x")

        await store.request_file_action(node.id, "generate-tests")
        assert store.find_by_path("app.test.ts").content == "plain answer"
