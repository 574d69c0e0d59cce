"""Environment-driven settings for the workspace runtime."""

import os


def _get_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def get_tick_interval_ms() -> int:
    """Return the delay between two deployment progress ticks."""
    return _get_int("IDE_WORKSPACE_TICK_INTERVAL_MS", 250)


def get_tick_delta() -> int:
    """Return how many percentage points one deployment tick advances."""
    return _get_int("IDE_WORKSPACE_TICK_DELTA", 4)


def get_assistant_latency_ms() -> int:
    """Return the simulated thinking time of the built-in assistant."""
    return _get_int("IDE_WORKSPACE_ASSISTANT_LATENCY_MS", 1200)


def get_deploy_duration_ms() -> int:
    """Return how long the simulated deploy backend takes to settle."""
    return _get_int("IDE_WORKSPACE_DEPLOY_DURATION_MS", 7000)


def get_default_project_name() -> str:
    """Return the project name used when none is loaded."""
    return os.environ.get("IDE_WORKSPACE_PROJECT", "workspace")


def get_log_level() -> str:
    return os.environ.get("IDE_WORKSPACE_LOG_LEVEL", "INFO").upper()


def get_assistant_backend_name() -> str:
    return os.environ.get("IDE_WORKSPACE_ASSISTANT", "simulated")


def get_deploy_backend_name() -> str:
    return os.environ.get("IDE_WORKSPACE_DEPLOYER", "simulated")
