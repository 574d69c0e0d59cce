"""Shared test fixtures for ide-workspace."""

import asyncio

import pytest

from ide_workspace.backends.simulated import SimulatedAssistant, SimulatedDeployer
from ide_workspace.clock import ManualClock
from ide_workspace.core import AssistantReply, DeployResult, MessageType
from ide_workspace.editor import EditorSession
from ide_workspace.file_tree import FileTree
from ide_workspace.provider import AssistantBackend, DeployBackend
from ide_workspace.store import WorkspaceStore


class GatedAssistant(AssistantBackend):
    """Assistant that only answers once ``release`` is set."""

    name = "gated"

    def __init__(self, reply: AssistantReply | None = None, error: Exception | None = None):
        self.release = asyncio.Event()
        self.reply = reply or AssistantReply(content="ok")
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def ask(self, prompt: str, context: dict) -> AssistantReply:
        self.calls.append((prompt, context))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.reply


class GatedDeployer(DeployBackend):
    """Deploy backend that settles once ``release`` is set."""

    name = "gated"

    def __init__(self, result: DeployResult | None = None, error: Exception | None = None):
        self.release = asyncio.Event()
        self.result = result or DeployResult(success=True)
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def deploy(self, platform, project: dict) -> DeployResult:
        self.calls.append((platform, project))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def tree():
    return FileTree()


@pytest.fixture
def editor(tree):
    return EditorSession(tree)


@pytest.fixture
def store(clock):
    """A store whose simulated backends answer immediately."""
    return WorkspaceStore(
        assistant=SimulatedAssistant(clock=clock, latency_ms=0),
        deployer=SimulatedDeployer(clock=clock, duration_ms=0),
        clock=clock,
        tick_interval_ms=250,
        tick_delta=4,
    )


@pytest.fixture
def gated_assistant():
    return GatedAssistant(reply=AssistantReply(content="```ts\nexpect(1).toBe(1);\n```", type=MessageType.CODE))


@pytest.fixture
def gated_store(clock, gated_assistant):
    """A store whose assistant waits for the test to release it."""
    return WorkspaceStore(
        assistant=gated_assistant,
        deployer=SimulatedDeployer(clock=clock, duration_ms=0),
        clock=clock,
    )


@pytest.fixture
def project_store(store):
    """A store with a small TypeScript project loaded."""
    store.set_project("Demo App")
    store.load_files({
        "index.html": "<!doctype html>\n<div id=\"root\"></div>\n",
        "src/app.ts": "export function add(a: number, b: number) {\n  return a + b;\n}\n",
        "src/utils/format.ts": "export const format = (s: string) => s.trim();\n",
        "README.md": "# Demo\n",
    })
    return store


@pytest.fixture
def make_deployer():
    """Factory for deploy backends gated on an event."""
    return GatedDeployer


@pytest.fixture
def make_assistant():
    """Factory for assistants gated on an event."""
    return GatedAssistant
