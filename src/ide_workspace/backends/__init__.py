"""Registry of assistant and deploy backends."""

from ..clock import Clock
from ..config import get_assistant_backend_name, get_deploy_backend_name
from ..provider import AssistantBackend, DeployBackend
from .simulated import SimulatedAssistant, SimulatedDeployer

ASSISTANT_BACKENDS: dict[str, type[AssistantBackend]] = {
    SimulatedAssistant.name: SimulatedAssistant,
}

DEPLOY_BACKENDS: dict[str, type[DeployBackend]] = {
    SimulatedDeployer.name: SimulatedDeployer,
}


def get_assistant_backend(name: str | None = None, clock: Clock | None = None) -> AssistantBackend:
    """Instantiate the assistant backend named ``name`` (or the configured one)."""
    name = name or get_assistant_backend_name()
    try:
        backend_class = ASSISTANT_BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown assistant backend: {name}") from None
    return backend_class(clock=clock)


def get_deploy_backend(name: str | None = None, clock: Clock | None = None) -> DeployBackend:
    """Instantiate the deploy backend named ``name`` (or the configured one)."""
    name = name or get_deploy_backend_name()
    try:
        backend_class = DEPLOY_BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown deploy backend: {name}") from None
    return backend_class(clock=clock)
