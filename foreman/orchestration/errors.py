"""Errors raised by the orchestration core to its callers."""

from __future__ import annotations


class ForemanError(RuntimeError):
    """Base class for caller-facing orchestration failures."""


class AgentCapacityError(ForemanError):
    """Raised when a spawn is attempted while at the concurrency ceiling."""

    def __init__(self, limit: int):
        super().__init__(f"Maximum concurrent agents limit ({limit}) reached")
        self.limit = limit


class AgentNotFoundError(ForemanError):
    """Raised when an identifier does not name a known agent."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class AgentStateError(ForemanError):
    """Raised when an action does not apply to the agent's current status."""

    def __init__(self, agent_id: str, status: str):
        super().__init__(f"Agent {agent_id} is not running (status: {status})")
        self.agent_id = agent_id
        self.status = status


class AgentSpawnError(ForemanError):
    """Raised to a waiting caller when the worker process could not be started."""

    def __init__(self, agent_id: str, reason: str):
        super().__init__(f"Agent {agent_id} failed to start: {reason}")
        self.agent_id = agent_id
        self.reason = reason


class AgentTimeoutError(ForemanError):
    """Raised when wait() gives up. The agent itself keeps running."""

    def __init__(self, agent_id: str, timeout_ms: float):
        super().__init__(f"Agent {agent_id} timed out after {_format_ms(timeout_ms)}ms")
        self.agent_id = agent_id
        self.timeout_ms = timeout_ms


def _format_ms(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
