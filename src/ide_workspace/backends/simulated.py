"""Simulated assistant and deploy backends.

Both answer locally after a configurable delay measured on the workspace
clock. The assistant produces canned but file-aware replies: it inspects the
source it was given for defined symbols and shapes tests, docs and
conversions around them.
"""

import logging
import re
from pathlib import PurePosixPath

from ..clock import AsyncioClock, Clock
from ..config import get_assistant_latency_ms, get_deploy_duration_ms
from ..core import AssistantReply, DeployResult, MessageType, Platform
from ..provider import AssistantBackend, DeployBackend

logger = logging.getLogger(__name__)

_SYMBOL_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?"
    r"(?:def|class|function|const|let|func|fn|interface|type)\s+([A-Za-z_]\w*)",
    re.MULTILINE,
)

_COMMENT_PREFIX = {
    "python": "#",
    "ruby": "#",
    "shell": "#",
    "yaml": "#",
}


def defined_symbols(content: str) -> list[str]:
    """Return top-level-looking names defined in a source file, in order."""
    seen = []
    for name in _SYMBOL_RE.findall(content):
        if name not in seen:
            seen.append(name)
    return seen


def _comment(language: str | None, text: str) -> str:
    return f"{_COMMENT_PREFIX.get(language or '', '//')} {text}"


def _fence(language: str | None, body: str) -> str:
    return f"```{language or ''}\n{body}\n```"


class SimulatedAssistant(AssistantBackend):
    """Offline assistant with deterministic replies."""

    name = "simulated"

    def __init__(self, clock: Clock | None = None, latency_ms: int | None = None):
        self._clock = clock or AsyncioClock()
        self._latency_ms = get_assistant_latency_ms() if latency_ms is None else latency_ms

    async def ask(self, prompt: str, context: dict) -> AssistantReply:
        await self._clock.sleep(self._latency_ms)

        action = context.get("action")
        if action is None:
            return self._chat(prompt)

        content = context.get("content", "")
        handler = {
            "explain": self._explain,
            "generate-tests": self._tests,
            "refactor": self._refactor,
            "generate-docs": self._docs,
            "convert": self._convert,
        }.get(action)
        if handler is None:
            return self._chat(prompt)
        return handler(context, content, defined_symbols(content))

    # ── Canned replies ───────────────────────────────────────────

    def _chat(self, prompt: str) -> AssistantReply:
        text = prompt.lower()
        if "debug" in text or "error" in text or "bug" in text:
            return AssistantReply(
                type=MessageType.SUGGESTION,
                content=(
                    "Let's narrow it down. Check the console output for the first error, "
                    "confirm the inputs reaching the failing function, and add a guard "
                    "around anything that can be undefined."
                ),
            )
        if "test" in text:
            return AssistantReply(
                type=MessageType.CODE,
                content=_fence(
                    "typescript",
                    "describe('feature', () => {\n  it('works', () => {\n    expect(true).toBe(true);\n  });\n});",
                ),
            )
        if "deploy" in text:
            return AssistantReply(
                content="Open the Deploy panel and press Deploy. I pick a platform from your open files "
                "unless you choose one yourself.",
            )
        if "explain" in text:
            return AssistantReply(
                type=MessageType.EXPLANATION,
                content="Select a file and use Explain Code so I can walk through it line by line.",
            )
        return AssistantReply(
            content="I can help with coding, debugging, explanations, tests and conversions. "
            "Open a file and pick a quick action, or describe what you need.",
        )

    def _explain(self, context: dict, content: str, symbols: list[str]) -> AssistantReply:
        lines = len(content.splitlines())
        summary = f"`{context['file_name']}` is a {lines}-line {context.get('language')} file."
        if symbols:
            summary += " It defines " + ", ".join(f"`{s}`" for s in symbols) + "."
        else:
            summary += " It does not define any named functions or classes."
        return AssistantReply(type=MessageType.EXPLANATION, content=summary)

    def _tests(self, context: dict, content: str, symbols: list[str]) -> AssistantReply:
        language = context.get("language")
        stem = PurePosixPath(context["file_name"]).stem
        targets = symbols or [stem]
        if language == "python":
            body = "\n\n".join(
                f"def test_{name.lower()}():\n    assert {name} is not None" for name in targets
            )
            body = f"from {stem} import *\n\n\n{body}\n"
        else:
            cases = "\n".join(
                f"  it('defines {name}', () => {{\n    expect({name}).toBeDefined();\n  }});"
                for name in targets
            )
            names = ", ".join(symbols) if symbols else "*"
            source = f"import {{ {names} }} from './{stem}';" if symbols else f"import * as {stem} from './{stem}';"
            body = f"{source}\n\ndescribe('{stem}', () => {{\n{cases}\n}});\n"
        return AssistantReply(
            type=MessageType.CODE,
            content=f"Here are tests for `{context['file_name']}`:\n\n{_fence(language, body)}",
        )

    def _refactor(self, context: dict, content: str, symbols: list[str]) -> AssistantReply:
        tips = {
            "optimize": "Cache repeated lookups, avoid work inside loops, and return early.",
            "debug": "Log the inputs of each function and check values that may be missing.",
            "simplify": "Split long functions, name intermediate values, and drop dead branches.",
            "error-handling": "Validate inputs at the boundary and handle failures where you can recover.",
        }
        focus = f" Start with `{symbols[0]}`." if symbols else ""
        return AssistantReply(
            type=MessageType.SUGGESTION,
            content=f"{tips.get(context.get('option'), tips['simplify'])}{focus}",
        )

    def _docs(self, context: dict, content: str, symbols: list[str]) -> AssistantReply:
        lines = [f"# {context['file_name']}", "", f"Language: {context.get('language')}", ""]
        if symbols:
            lines.append("## API")
            lines.append("")
            lines.extend(f"- `{name}`" for name in symbols)
        return AssistantReply(type=MessageType.CODE, content=_fence("markdown", "\n".join(lines)))

    def _convert(self, context: dict, content: str, symbols: list[str]) -> AssistantReply:
        target = context.get("option")
        header = _comment(target, f"Converted from {context['file_name']} ({context.get('language')})")
        stubs = {
            "python": "def {name}():\n    raise NotImplementedError",
            "ruby": "def {name}\n  raise NotImplementedError\nend",
            "go": "func {name}() {{\n\tpanic(\"not implemented\")\n}}",
            "rust": "fn {name}() {{\n    unimplemented!()\n}}",
            "java": "static void {name}() {{\n    throw new UnsupportedOperationException();\n}}",
        }
        template = stubs.get(target, "export function {name}() {{\n  throw new Error('not implemented');\n}}")
        body = "\n\n".join(template.format(name=name) for name in symbols)
        code = f"{header}\n\n{body}\n" if body else f"{header}\n"
        return AssistantReply(type=MessageType.CODE, content=_fence(target, code))


class SimulatedDeployer(DeployBackend):
    """Deploy backend that succeeds (or fails on demand) after a delay."""

    name = "simulated"

    def __init__(
        self,
        clock: Clock | None = None,
        duration_ms: int | None = None,
        failure: str | None = None,
    ):
        self._clock = clock or AsyncioClock()
        self._duration_ms = get_deploy_duration_ms() if duration_ms is None else duration_ms
        self._failure = failure

    async def deploy(self, platform: Platform, project: dict) -> DeployResult:
        logger.debug("Simulating deploy of %d file(s) to %s", len(project.get("files", [])), platform.value)
        await self._clock.sleep(self._duration_ms)
        if self._failure:
            return DeployResult(success=False, message=self._failure)
        return DeployResult(success=True, message=f"Deployed to {platform.value}")
