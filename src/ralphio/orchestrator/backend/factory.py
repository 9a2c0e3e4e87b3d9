"""Adapter construction and model listing per agent type."""

from __future__ import annotations

import logging
from pathlib import Path

from ralphio.orchestrator.backend.base import DEFAULT_AGENT, AgentAdapter, AgentType
from ralphio.orchestrator.backend.cli_backend import CliAgentAdapter
from ralphio.orchestrator.backend.models import ModelCatalog

logger = logging.getLogger(__name__)


def resolve_agent(value: AgentType | str) -> AgentType:
    """Map a user-supplied agent name to AgentType, falling back to the default."""

    if isinstance(value, AgentType):
        return value
    normalized = value.strip().lower()
    try:
        return AgentType(normalized)
    except ValueError:
        logger.warning(
            "Unknown agent %r, falling back to %s",
            value,
            DEFAULT_AGENT.value,
        )
        return DEFAULT_AGENT


class AdapterFactory:
    """Builds adapters for one project directory and owns the model cache."""

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        catalog: ModelCatalog | None = None,
    ) -> None:
        self.cwd = cwd
        self.catalog = catalog or ModelCatalog()

    def __call__(self, agent: AgentType | str, model: str = "") -> AgentAdapter:
        return CliAgentAdapter(resolve_agent(agent), model, cwd=self.cwd)

    def fetch_models(self, agent: AgentType | str) -> list[str]:
        return self.catalog.fetch_models(resolve_agent(agent))

    def clear_model_cache(self) -> None:
        self.catalog.clear()


def new_adapter(
    agent: AgentType | str,
    model: str = "",
    *,
    cwd: Path | None = None,
) -> AgentAdapter:
    """Return the adapter for ``agent``; unknown names fall back to claude."""

    return CliAgentAdapter(resolve_agent(agent), model, cwd=cwd)
