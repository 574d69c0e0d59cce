"""CLI entry point for ide-workspace."""

import asyncio
import logging

import click
import uvicorn

from .config import get_log_level
from .export import conversation_to_markdown
from .store import WorkspaceStore

DEMO_FILES = {
    "index.html": "<!doctype html>\n<div id=\"root\"></div>\n<script src=\"/src/main.tsx\"></script>\n",
    "src/main.tsx": "import React from 'react';\nimport { App } from './App';\n",
    "src/App.tsx": "export function App() {\n  return <h1>Hello</h1>;\n}\n",
    "src/utils.ts": "export function add(a: number, b: number) {\n  return a + b;\n}\n",
}


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to IDE_WORKSPACE_LOG_LEVEL).")
def main(log_level: str | None):
    """Browser-hosted mini-IDE workspace: files, editor, deploys and an assistant."""
    logging.basicConfig(
        level=(log_level or get_log_level()).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the web API."""
    click.echo(f"Starting ide-workspace on http://{host}:{port}")
    uvicorn.run("ide_workspace.server:app", host=host, port=port, reload=False)


@main.command()
@click.option("--project", default="demo-app", help="Project name to deploy under.")
def demo(project: str):
    """Run a scripted session: open files, generate tests, deploy."""
    asyncio.run(_run_demo(project))


async def _run_demo(project: str) -> None:
    store = WorkspaceStore(tick_interval_ms=50, tick_delta=10)
    store.set_project(project)
    store.load_files(DEMO_FILES)

    for path in ("src/App.tsx", "src/utils.ts"):
        store.open_file(store.find_by_path(path).id)
    click.echo(f"Suggested platform: {store.deployment.platform.value}")

    store.request_file_action(store.find_by_path("src/utils.ts").id, "generate-tests")
    await store.wait_for_assistant()
    for node in store.filter_files("test"):
        click.echo(f"Generated {store.path_of(node.id)}")

    store.start_deploy()
    state = await store.wait_for_deploy()
    for entry in state.log:
        click.echo(f"[{entry.level}] {entry.message}")

    click.echo("")
    click.echo(conversation_to_markdown(project, store.messages))
