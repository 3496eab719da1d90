"""Process-wide collaborators injected into routes (overridable in tests)."""

from __future__ import annotations

from app.jobs.orchestrator import BasePlanJobOrchestrator
from app.notifications.service import NotificationService
from app.services.llm.completion import CompletionClient, PydanticAICompletionClient

_orchestrator: BasePlanJobOrchestrator | None = None


def get_completion_client() -> CompletionClient:
    return PydanticAICompletionClient()


def get_orchestrator() -> BasePlanJobOrchestrator:
    """The single orchestrator owning this process's in-flight generations."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BasePlanJobOrchestrator(get_completion_client(), NotificationService())
    return _orchestrator
