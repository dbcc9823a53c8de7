"""
Tool surface — the operations a protocol transport exposes to its clients.

ToolRegistry holds the definitions, ToolExecutor runs calls against them, and
register_agent_tools() binds ``spawn_agent`` and ``manage_agent`` to an
Orchestrator.
"""

from foreman.tools.agents import AgentTools, register_agent_tools
from foreman.tools.executor import ToolExecutionResult, ToolExecutor
from foreman.tools.registry import ToolDefinition, ToolRegistry

__all__ = [
    "AgentTools",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolExecutor",
    "ToolRegistry",
    "register_agent_tools",
]
