"""FastAPI web server for ide-workspace.

Thin request/response glue over a single WorkspaceStore; every route maps
onto one store operation.
"""

import logging

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .core import FileNode, Platform
from .errors import InvalidState, NameConflict, NotFound, WorkspaceError
from .export import (
    conversation_to_json,
    conversation_to_markdown,
    deployment_to_dict,
    message_to_dict,
    snapshot_to_dict,
)
from .prompts import QUICK_ACTIONS, TEMPLATES
from .store import WorkspaceStore

logger = logging.getLogger(__name__)

app = FastAPI(title="ide-workspace", version="0.1.0")

# Store cache (created on first request)
_store: WorkspaceStore | None = None

_STATUS_BY_ERROR = {
    NotFound: 404,
    NameConflict: 409,
    InvalidState: 409,
}


def _get_store() -> WorkspaceStore:
    """Lazily create and cache the workspace store."""
    global _store
    if _store is None:
        _store = WorkspaceStore()
        _store.set_project()
        logger.info("Created workspace store for project %s", _store.current_project.name)
    return _store


def _node_to_dict(store: WorkspaceStore, node: FileNode) -> dict:
    return {
        "id": node.id,
        "name": node.name,
        "path": store.path_of(node.id),
        "is_directory": node.is_directory,
        "parent_id": node.parent_id,
        "language": node.language,
        "content": node.content,
        "is_modified": node.is_modified,
    }


def _editor_to_dict(store: WorkspaceStore) -> dict:
    return {
        "open_file_ids": list(store.open_file_ids),
        "active_file_id": store.active_file_id,
    }


@app.exception_handler(WorkspaceError)
async def workspace_error_handler(request: Request, exc: WorkspaceError):
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    logger.debug("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code})


# ── Request bodies ───────────────────────────────────────────────


class CreateFileRequest(BaseModel):
    name: str | None = None
    parent_id: str | None = None
    path: str | None = None
    is_directory: bool = False
    content: str = ""


class RenameRequest(BaseModel):
    name: str


class ContentRequest(BaseModel):
    content: str


class DeployRequest(BaseModel):
    platform: Platform | None = None


class PlatformRequest(BaseModel):
    platform: Platform


class MessageRequest(BaseModel):
    content: str
    type: str = "text"
    metadata: dict | None = None


class ActionRequest(BaseModel):
    file_id: str
    action: str
    option: str | None = None


class ExecuteRequest(BaseModel):
    language: str = "javascript"
    code: str = ""


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/ping")
async def ping():
    return {"message": "Hello from the ide-workspace server!"}


@app.get("/api/demo")
async def demo():
    return {"message": "Hello from the demo endpoint"}


@app.post("/api/execute")
async def execute(body: ExecuteRequest):
    """Pretend to run code; always returns canned output."""
    lines = len(body.code.splitlines())
    return {
        "stdout": f"Executed {lines} line(s) of {body.language}\n",
        "stderr": "",
        "exit_code": 0,
    }


@app.get("/api/workspace")
async def get_workspace():
    """Return the full workspace snapshot."""
    store = _get_store()
    return snapshot_to_dict(store.snapshot(), store.deploy_steps)


@app.get("/api/files")
async def get_files(search: str | None = Query(None, description="Filter by file name")):
    """Return the file tree, or a flat list of matches when searching."""
    store = _get_store()
    if search is None:
        return {"files": store.files}
    return {"results": [_node_to_dict(store, node) for node in store.filter_files(search)]}


@app.post("/api/files", status_code=201)
async def create_file(body: CreateFileRequest):
    store = _get_store()
    if body.path:
        node = store.create_path(body.path, content=body.content)
    elif body.is_directory:
        node = store.create_directory(body.name or "", parent_id=body.parent_id)
    else:
        node = store.create_file(body.name or "", parent_id=body.parent_id, content=body.content)
    return _node_to_dict(store, node)


@app.put("/api/files/{file_id}/content")
async def write_file(file_id: str, body: ContentRequest):
    store = _get_store()
    return _node_to_dict(store, store.write(file_id, body.content))


@app.post("/api/files/{file_id}/save")
async def save_file(file_id: str):
    store = _get_store()
    return _node_to_dict(store, store.save(file_id))


@app.patch("/api/files/{file_id}")
async def rename_file(file_id: str, body: RenameRequest):
    store = _get_store()
    return _node_to_dict(store, store.rename(file_id, body.name))


@app.delete("/api/files/{file_id}")
async def delete_file(file_id: str):
    store = _get_store()
    return {"removed": store.delete(file_id), **_editor_to_dict(store)}


@app.post("/api/editor/{file_id}/open")
async def open_file(file_id: str):
    store = _get_store()
    store.open_file(file_id)
    return _editor_to_dict(store)


@app.post("/api/editor/{file_id}/close")
async def close_file(file_id: str):
    store = _get_store()
    store.close_file(file_id)
    return _editor_to_dict(store)


@app.post("/api/editor/{file_id}/activate")
async def activate_file(file_id: str):
    store = _get_store()
    store.set_active(file_id)
    return _editor_to_dict(store)


@app.get("/api/deploy")
async def get_deployment():
    store = _get_store()
    return deployment_to_dict(store.deployment, store.deploy_steps)


@app.put("/api/deploy/platform")
async def select_platform(body: PlatformRequest):
    store = _get_store()
    return deployment_to_dict(store.select_platform(body.platform), store.deploy_steps)


@app.post("/api/deploy", status_code=202)
async def start_deploy(body: DeployRequest | None = None):
    store = _get_store()
    store.start_deploy(body.platform if body else None)
    return deployment_to_dict(store.deployment, store.deploy_steps)


@app.get("/api/assistant/messages")
async def get_messages():
    store = _get_store()
    return {
        "messages": [message_to_dict(m) for m in store.messages],
        "is_assistant_typing": store.is_assistant_typing,
    }


@app.post("/api/assistant/messages", status_code=202)
async def send_message(body: MessageRequest):
    store = _get_store()
    try:
        store.send(body.content, body.type, body.metadata)
    except ValueError:
        raise InvalidState(f"Unknown message type: {body.type}") from None
    return {
        "message": message_to_dict(store.messages[-1]),
        "is_assistant_typing": store.is_assistant_typing,
    }


@app.post("/api/assistant/actions", status_code=202)
async def request_action(body: ActionRequest):
    store = _get_store()
    try:
        store.request_file_action(body.file_id, body.action, body.option)
    except ValueError:
        raise InvalidState(f"Unknown action: {body.action}") from None
    return {
        "message": message_to_dict(store.messages[-1]),
        "is_assistant_typing": store.is_assistant_typing,
    }


@app.get("/api/assistant/templates")
async def get_templates():
    return {"quick_actions": QUICK_ACTIONS, "templates": TEMPLATES}


@app.get("/api/export")
async def export_conversation(format: str = Query("md", description="Export format: md or json")):
    """Export the conversation as Markdown or JSON."""
    store = _get_store()
    title = store.current_project.name if store.current_project else "workspace"
    safe_title = "".join(c if c.isalnum() or c in "-_ " else "" for c in title)[:50]

    if format == "json":
        return Response(
            content=conversation_to_json(title, store.messages),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
        )
    return Response(
        content=conversation_to_markdown(title, store.messages),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
    )
