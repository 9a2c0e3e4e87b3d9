"""Agent adapter implementations."""

from ralphio.orchestrator.backend.base import (
    AGENT_COMMANDS,
    AGENTS_SUPPORTING_MODEL,
    VALID_AGENTS,
    AgentAdapter,
    AgentRunCancelled,
    AgentRunError,
    AgentType,
    CommandConfig,
)
from ralphio.orchestrator.backend.cli_backend import CliAgentAdapter
from ralphio.orchestrator.backend.factory import AdapterFactory, new_adapter, resolve_agent
from ralphio.orchestrator.backend.models import ModelCatalog, ModelListingError
from ralphio.orchestrator.backend.stream import parse_stream_line

__all__ = [
    "AGENTS_SUPPORTING_MODEL",
    "AGENT_COMMANDS",
    "VALID_AGENTS",
    "AdapterFactory",
    "AgentAdapter",
    "AgentRunCancelled",
    "AgentRunError",
    "AgentType",
    "CliAgentAdapter",
    "CommandConfig",
    "ModelCatalog",
    "ModelListingError",
    "new_adapter",
    "parse_stream_line",
    "resolve_agent",
]
