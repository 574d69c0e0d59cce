"""Deployment lifecycle: state machine, platform detection and timer driver.

The pipeline itself is a plain synchronous state machine advanced by
``tick()``; ``DeploymentRunner`` is the adapter that feeds it ticks from a
``Clock`` and settles it from a ``DeployBackend``.

States::

    idle -> deploying -> deployed | error
    deployed | error -> deploying   (redeploy)
"""

import asyncio
import logging
import re
from dataclasses import replace
from pathlib import PurePosixPath
from typing import Callable, Iterable

from .clock import Clock, TimerHandle
from .core import (
    PLATFORM_DOMAINS,
    DeployLogEntry,
    DeploymentState,
    DeployResult,
    DeployStatus,
    FileNode,
    Platform,
    Project,
)
from .errors import InvalidState
from .provider import DeployBackend

logger = logging.getLogger(__name__)

DEPLOY_STEPS = (
    "Starting deployment",
    "Building application for production",
    "Uploading files to CDN",
    "Updating DNS records",
)

SERVER_FRAMEWORKS = {"express", "fastify", "koa", "@nestjs/core", "flask", "fastapi", "django"}
SERVER_ENTRY_POINTS = {"server.js", "server.ts", "server.py", "manage.py", "Dockerfile"}
UI_FRAMEWORKS = {"react", "react-dom", "vue", "svelte", "@angular/core", "next", "solid-js"}
UI_EXTENSIONS = {".jsx", ".tsx", ".vue", ".svelte"}

_JS_IMPORT_RE = re.compile(
    r"""(?:\bimport\s+(?:[\w*{}\s,]+\s+from\s+)?|\brequire\(\s*)['"]([^'"]+)['"]"""
)
_PY_IMPORT_RE = re.compile(r"^\s*(?:from\s+([\w.]+)\s+import\b|import\s+([\w.]+))", re.MULTILINE)


# ── Platform detection ───────────────────────────────────────────


def imported_modules(content: str) -> set[str]:
    """Return the top-level package names imported by a JS/TS or Python source."""
    modules = set()
    for match in _JS_IMPORT_RE.finditer(content):
        spec = match.group(1)
        if spec.startswith("."):
            continue
        parts = spec.split("/")
        modules.add("/".join(parts[:2]) if spec.startswith("@") else parts[0])
    for match in _PY_IMPORT_RE.finditer(content):
        modules.add((match.group(1) or match.group(2)).split(".")[0])
    return modules


def detect_platform(files: Iterable[tuple[str, FileNode]]) -> Platform:
    """Suggest a platform from ``(path, node)`` pairs of open files.

    Priority: a server framework or server entry point wins, then a UI
    framework or component extension, then a root ``index.html``; Vercel
    otherwise.
    """
    files = [(path, node) for path, node in files if not node.is_directory]
    imports = {path: imported_modules(node.content or "") for path, node in files}

    if any(
        node.name in SERVER_ENTRY_POINTS or imports[path] & SERVER_FRAMEWORKS
        for path, node in files
    ):
        return Platform.RAILWAY
    if any(
        PurePosixPath(node.name).suffix.lower() in UI_EXTENSIONS or imports[path] & UI_FRAMEWORKS
        for path, node in files
    ):
        return Platform.VERCEL
    if any(path == "index.html" for path, _ in files):
        return Platform.NETLIFY
    return Platform.VERCEL


def slugify(name: str | None) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "workspace"


def deployed_url(project_name: str | None, platform: Platform) -> str:
    return f"https://{slugify(project_name)}.{PLATFORM_DOMAINS[platform]}"


# ── State machine ────────────────────────────────────────────────


class DeploymentPipeline:
    """Finite-state machine for one workspace's deployments."""

    def __init__(self, clock: Clock | None = None, steps: tuple[str, ...] = DEPLOY_STEPS):
        if not steps:
            raise ValueError("A pipeline needs at least one step")
        self._clock = clock
        self._steps = steps
        self._state = DeploymentState()
        self._project_name: str | None = None

    @property
    def state(self) -> DeploymentState:
        return self._state

    @property
    def steps(self) -> tuple[str, ...]:
        return self._steps

    @property
    def current_step(self) -> str:
        return self._steps[self._state.current_step_index]

    def select_platform(self, platform: Platform) -> DeploymentState:
        """Record an explicit platform choice; detection stops overriding it."""
        if self._state.status is DeployStatus.DEPLOYING:
            raise InvalidState("Cannot change platform while deploying")
        self._state = replace(self._state, platform=Platform(platform), platform_explicit=True)
        return self._state

    def suggest_platform(self, files: Iterable[tuple[str, FileNode]]) -> Platform:
        """Apply the detected platform unless the user already picked one."""
        suggestion = detect_platform(files)
        if self._state.platform_explicit or self._state.status is DeployStatus.DEPLOYING:
            return suggestion
        if suggestion is not self._state.platform:
            logger.debug("Suggested platform changed to %s", suggestion.value)
            self._state = replace(self._state, platform=suggestion)
        return suggestion

    def start(self, platform: Platform | None = None, project_name: str | None = None) -> DeploymentState:
        if self._state.status is DeployStatus.DEPLOYING:
            raise InvalidState("A deployment is already in progress")
        if platform is not None:
            self.select_platform(platform)
        self._project_name = project_name

        platform = self._state.platform
        self._state = replace(
            self._state,
            status=DeployStatus.DEPLOYING,
            progress=0,
            current_step_index=0,
            deployed_url=None,
            error=None,
            log=(),
        )
        self._log("info", f"{self._steps[0]} to {platform.value}...")
        logger.info("Deployment of %s to %s started", slugify(project_name), platform.value)
        return self._state

    def tick(self, delta: int) -> DeploymentState:
        if self._state.status is not DeployStatus.DEPLOYING:
            raise InvalidState(f"Cannot tick while {self._state.status.value}")
        if delta < 0:
            raise InvalidState("Progress can only move forward")

        previous_step = self._state.current_step_index
        progress = min(100, self._state.progress + delta)
        step = min(len(self._steps) - 1, progress * len(self._steps) // 100)
        self._state = replace(self._state, progress=progress, current_step_index=step)
        for entered in range(previous_step + 1, step + 1):
            self._log("info", f"{self._steps[entered]}...")

        if progress >= 100:
            url = deployed_url(self._project_name, self._state.platform)
            self._state = replace(self._state, status=DeployStatus.DEPLOYED, deployed_url=url)
            self._log("success", f"Deployment successful! Live at {url}")
            logger.info("Deployment finished: %s", url)
        return self._state

    def complete(self) -> DeploymentState:
        """Jump to 100% and finish the run."""
        return self.tick(100 - self._state.progress)

    def fail(self, reason: str) -> DeploymentState:
        if self._state.status is not DeployStatus.DEPLOYING:
            raise InvalidState(f"Cannot fail while {self._state.status.value}")
        self._state = replace(self._state, status=DeployStatus.ERROR, error=reason)
        self._log("error", f"Deployment failed: {reason}")
        logger.warning("Deployment failed at %d%%: %s", self._state.progress, reason)
        return self._state

    def _log(self, level: str, message: str) -> None:
        entry = DeployLogEntry(
            level=level,
            message=message,
            progress=self._state.progress,
            timestamp=self._clock.now() if self._clock else None,
        )
        self._state = replace(self._state, log=self._state.log + (entry,))


# ── Timer driver ─────────────────────────────────────────────────


class DeploymentRunner:
    """Drives a pipeline with clock ticks until the backend settles.

    Ticks never push progress past ``hold_at`` on their own; only a
    successful backend result takes the run to 100%.
    """

    def __init__(
        self,
        pipeline: DeploymentPipeline,
        backend: DeployBackend,
        clock: Clock,
        tick_interval_ms: int = 250,
        tick_delta: int = 4,
        hold_at: int = 95,
        on_change: Callable[[], None] | None = None,
    ):
        self._pipeline = pipeline
        self._backend = backend
        self._clock = clock
        self._interval = tick_interval_ms
        self._delta = tick_delta
        self._hold_at = hold_at
        self._on_change = on_change or (lambda: None)
        self._timer: TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._run = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        platform: Platform | None = None,
        project: Project | None = None,
        files: Iterable[str] = (),
    ) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        state = self._pipeline.start(platform, project.name if project else None)
        self._run += 1
        run = self._run

        descriptor = {"name": project.name if project else None, "files": list(files)}
        self._cancel_tick()
        self._schedule_tick(run)
        task = loop.create_task(self._drive(run, state.platform, descriptor))
        task.add_done_callback(lambda t: self._on_drive_done(run, t))
        self._task = task
        return task

    async def wait(self) -> DeploymentState:
        """Wait for the current run, if any, to settle."""
        if self._task is not None:
            await self._task
        return self._pipeline.state

    # ── Private helpers ──────────────────────────────────────────

    def _is_current(self, run: int) -> bool:
        return run == self._run and self._pipeline.state.status is DeployStatus.DEPLOYING

    def _schedule_tick(self, run: int) -> None:
        self._timer = self._clock.call_later(self._interval, lambda: self._on_tick(run))

    def _cancel_tick(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self, run: int) -> None:
        if not self._is_current(run):
            return
        delta = min(self._delta, max(0, self._hold_at - self._pipeline.state.progress))
        if delta > 0:
            self._pipeline.tick(delta)
            self._on_change()
        if self._is_current(run):
            self._schedule_tick(run)

    def _on_drive_done(self, run: int, task: asyncio.Task) -> None:
        # Also covers tasks cancelled before their first step, where _drive never ran.
        if not task.cancelled() or run != self._run:
            return
        self._cancel_tick()
        if self._pipeline.state.status is DeployStatus.DEPLOYING:
            self._pipeline.fail("Deployment cancelled")
            self._on_change()

    async def _drive(self, run: int, platform: Platform, project: dict) -> None:
        try:
            result = await self._backend.deploy(platform, project)
        except Exception as e:
            logger.warning("Deploy backend %s raised: %s", self._backend.name, e)
            result = DeployResult(success=False, message=str(e) or type(e).__name__)

        if run == self._run:
            self._cancel_tick()
        if not self._is_current(run):
            logger.debug("Ignoring settlement of stale deployment run %d", run)
            return

        if result.success:
            self._pipeline.complete()
        else:
            self._pipeline.fail(result.message or "Deployment failed")
        self._on_change()
