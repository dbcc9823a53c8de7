"""
Sub-agent Orchestration — spawning and supervising worker processes.

Each agent is a separate OS process (the ``claude`` CLI in print mode by
default) running one task to completion. The Orchestrator bounds how many run
at once, captures everything they write, and turns that output into
structured results on demand. State lives in memory only.
"""

from __future__ import annotations

from foreman.orchestration.errors import (
    AgentCapacityError,
    AgentNotFoundError,
    AgentSpawnError,
    AgentStateError,
    AgentTimeoutError,
    ForemanError,
)
from foreman.orchestration.models import (
    AgentConfig,
    AgentRecord,
    AgentResult,
    AgentStatus,
    OutputFormat,
)
from foreman.orchestration.orchestrator import Orchestrator

__all__ = [
    "AgentCapacityError",
    "AgentConfig",
    "AgentNotFoundError",
    "AgentRecord",
    "AgentResult",
    "AgentSpawnError",
    "AgentStateError",
    "AgentStatus",
    "AgentTimeoutError",
    "ForemanError",
    "Orchestrator",
    "OutputFormat",
]
