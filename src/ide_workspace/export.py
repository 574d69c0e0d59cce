"""Export workspace snapshots and conversations to JSON and Markdown."""

import json

from .core import ConversationMessage, DeploymentState, WorkspaceSnapshot


def message_to_dict(msg: ConversationMessage) -> dict:
    """Convert a ConversationMessage to a JSON-serializable dict."""
    return {
        "id": msg.id,
        "role": msg.role.value,
        "type": msg.type.value,
        "content": msg.content,
        "timestamp": msg.timestamp.isoformat() if msg.timestamp else None,
        "metadata": msg.metadata,
    }


def deployment_to_dict(state: DeploymentState, steps: tuple[str, ...] | None = None) -> dict:
    """Convert a DeploymentState to a JSON-serializable dict."""
    data = {
        "status": state.status.value,
        "platform": state.platform.value,
        "platform_explicit": state.platform_explicit,
        "progress": state.progress,
        "current_step_index": state.current_step_index,
        "deployed_url": state.deployed_url,
        "error": state.error,
        "log": [
            {
                "level": entry.level,
                "message": entry.message,
                "progress": entry.progress,
                "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
            }
            for entry in state.log
        ],
    }
    if steps is not None:
        data["steps"] = list(steps)
        data["current_step"] = steps[state.current_step_index]
    return data


def snapshot_to_dict(snapshot: WorkspaceSnapshot, steps: tuple[str, ...] | None = None) -> dict:
    """Convert a whole WorkspaceSnapshot to a JSON-serializable dict."""
    project = snapshot.project
    return {
        "project": {"id": project.id, "name": project.name} if project else None,
        "files": snapshot.files,
        "open_file_ids": list(snapshot.open_file_ids),
        "active_file_id": snapshot.active_file_id,
        "deployment": deployment_to_dict(snapshot.deployment, steps),
        "messages": [message_to_dict(m) for m in snapshot.messages],
        "is_assistant_typing": snapshot.is_assistant_typing,
    }


def conversation_to_markdown(title: str, messages: tuple[ConversationMessage, ...] | list) -> str:
    """Export a conversation as clean Markdown."""
    lines = [f"# {title}", "", f"**Messages:** {len(messages)}", "", "---", ""]

    for msg in messages:
        role_label = msg.role.value.capitalize()
        ts = ""
        if msg.timestamp:
            ts = f" ({msg.timestamp.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {role_label}{ts}")
        lines.append("")
        lines.append(msg.content)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def conversation_to_json(title: str, messages: tuple[ConversationMessage, ...] | list) -> str:
    """Export a conversation as structured JSON."""
    data = {
        "title": title,
        "message_count": len(messages),
        "messages": [message_to_dict(m) for m in messages],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
