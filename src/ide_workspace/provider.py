"""Abstract base classes for the workspace's external collaborators."""

from abc import ABC, abstractmethod

from .core import AssistantReply, DeployResult, Platform


class AssistantBackend(ABC):
    """Base class for assistant backends.

    The workspace treats latency and content as opaque; it only requires
    that every ``ask`` eventually settles, either with a reply or by raising.
    """

    name: str  # "simulated", ...

    @abstractmethod
    async def ask(self, prompt: str, context: dict) -> AssistantReply:
        """Answer one prompt. ``context`` carries file id, action and language."""
        ...


class DeployBackend(ABC):
    """Base class for deployment providers."""

    name: str

    @abstractmethod
    async def deploy(self, platform: Platform, project: dict) -> DeployResult:
        """Ship ``project`` (name and file paths) to ``platform``."""
        ...
