"""
Orchestration Data Models — The Language of Delegation.

These models define the contract between the supervisor and the worker
processes it launches. AgentConfig describes *what* to run. AgentRecord is the
supervisor's bookkeeping while it runs. AgentResult describes *what happened*,
derived on demand from a record and never stored.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutputFormat(str, Enum):
    """Output format the worker is asked to emit."""

    TEXT = "text"
    JSON = "json"
    STREAM_JSON = "stream-json"

    @property
    def is_structured(self) -> bool:
        return self is not OutputFormat.TEXT


class AgentStatus(str, Enum):
    """Lifecycle state of an agent.

    ``TERMINATED`` covers both a clean exit (code 0) and an explicit
    terminate request.
    """

    RUNNING = "running"
    TERMINATED = "terminated"
    ERROR = "error"


class AgentConfig(BaseModel):
    """Launch parameters for a single agent. Immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    task: str
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    allowed_tools: list[str] = Field(default_factory=list)
    disallowed_tools: list[str] = Field(default_factory=list)
    max_turns: Optional[int] = Field(None, gt=0)
    output_format: OutputFormat = OutputFormat.JSON
    working_directory: Optional[str] = None
    env: dict[str, str] = Field(default_factory=dict)
    # Extra auxiliary servers merged into the per-agent side-channel file.
    mcp_servers: Optional[dict[str, Any]] = None
    model: Optional[str] = None

    @field_validator("task")
    @classmethod
    def _task_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Invalid task: must be a non-empty string")
        return value


@dataclass
class AgentRecord:
    """Bookkeeping for one spawned agent, owned by the AgentRegistry.

    ``output`` is append-only: entries are raw chunks in receipt order and are
    never rewritten. ``ended_at`` is set exactly when ``status`` leaves RUNNING.
    """

    agent_id: str
    config: AgentConfig
    status: AgentStatus = AgentStatus.RUNNING
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None
    output: list[str] = field(default_factory=list)
    session_id: Optional[str] = None
    process: Optional[asyncio.subprocess.Process] = None
    exit_code: Optional[int] = None
    exit_signal: Optional[int] = None
    spawn_error: Optional[str] = None
    side_channel_path: Optional[Path] = None
    # Set by terminate() before signalling, so the exit watcher records the
    # signalled exit as TERMINATED rather than ERROR.
    stop_requested: bool = False
    exited: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_running(self) -> bool:
        return self.status is AgentStatus.RUNNING

    def finish(self, status: AgentStatus) -> bool:
        """Move out of RUNNING. Returns False if the record already left it."""
        if status is AgentStatus.RUNNING:
            raise ValueError("finish() requires a terminal status")
        if not self.is_running:
            return False
        self.status = status
        self.ended_at = time.time()
        return True


class AgentResult(BaseModel):
    """Outcome of an agent, computed from its record by the result extractor."""

    agent_id: str
    session_id: Optional[str] = None
    output: str = ""
    exit_code: Optional[int] = None
    # Numbers are passed through as the worker reported them (int stays int).
    cost: Optional[Union[int, float]] = None
    duration: Optional[Union[int, float]] = None
    error: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Camel-cased dict used on the tool surface."""
        return {
            "agentId": self.agent_id,
            "sessionId": self.session_id,
            "output": self.output,
            "exitCode": self.exit_code,
            "cost": self.cost,
            "duration": self.duration,
            "error": self.error,
        }


class AgentSummary(BaseModel):
    """One entry of the agent listing."""

    agent_id: str
    status: AgentStatus
    started_at: float
    task: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.agent_id,
            "status": self.status.value,
            "startTime": iso_timestamp(self.started_at),
            "task": self.task,
        }


def iso_timestamp(ts: Optional[float]) -> Optional[str]:
    """Render an epoch timestamp as an ISO-8601 UTC string."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
