"""
Agent tools — ``spawn_agent`` and ``manage_agent`` bound to an Orchestrator.

These are the two operations a protocol transport exposes. Inputs use the
protocol's camelCase keys; handlers validate them with pydantic models and
return pretty-printed JSON text.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from foreman.orchestration.models import AgentConfig, AgentResult, OutputFormat
from foreman.orchestration.orchestrator import Orchestrator
from foreman.tools.registry import ToolDefinition, ToolRegistry

logger = structlog.get_logger(__name__)

MANAGE_ACTIONS = ("status", "terminate", "list", "result", "wait")
_ACTIONS_NEEDING_ID = frozenset({"status", "terminate", "result", "wait"})

SPAWN_AGENT_DESCRIPTION = (
    "Spawn a new Claude Code sub-agent to execute a specific task. The agent runs "
    "as a separate process with its own Claude instance.\n\n"
    "- Agents get the documentation server in their MCP configuration when "
    "mcpServers is given, wired to the same vector database as the supervisor\n"
    "- Supports both fire-and-forget and wait-for-completion modes\n"
    "- Returns structured JSON output with cost and duration when the agent "
    "emits json or stream-json\n\n"
    "Use waitForCompletion=false for long-running tasks and poll with "
    "manage_agent. Spawns beyond the concurrent-agent limit are rejected, "
    "not queued."
)

MANAGE_AGENT_DESCRIPTION = (
    "Manage and monitor sub-agents that were spawned using spawn_agent.\n\n"
    "Actions:\n"
    "- status: Get the current status of a specific agent\n"
    "- terminate: Forcefully terminate a running agent\n"
    "- list: List all agents and their statuses\n"
    "- result: Get the complete output and results from an agent\n"
    "- wait: Wait for an agent to complete and return its results"
)

SPAWN_AGENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "task": {
            "type": "string",
            "description": "The task or prompt for the agent to execute",
        },
        "systemPrompt": {
            "type": "string",
            "description": "Override the default system prompt",
        },
        "appendSystemPrompt": {
            "type": "string",
            "description": "Append instructions to the default system prompt",
        },
        "allowedTools": {
            "type": "array",
            "items": {"type": "string"},
            "description": 'List of allowed tools for the agent (e.g., ["Bash", "Read"])',
        },
        "disallowedTools": {
            "type": "array",
            "items": {"type": "string"},
            "description": "List of disallowed tools for the agent",
        },
        "maxTurns": {
            "type": "integer",
            "description": "Maximum number of conversation turns",
        },
        "outputFormat": {
            "type": "string",
            "enum": [f.value for f in OutputFormat],
            "default": OutputFormat.JSON.value,
            "description": "Output format for the agent response",
        },
        "workingDirectory": {
            "type": "string",
            "description": "Working directory for the agent process",
        },
        "env": {
            "type": "object",
            "additionalProperties": {"type": "string"},
            "description": "Additional environment variables for the agent",
        },
        "mcpServers": {
            "type": "object",
            "additionalProperties": True,
            "description": "Additional MCP servers to load (the documentation server is included)",
        },
        "waitForCompletion": {
            "type": "boolean",
            "default": False,
            "description": "Wait for the agent to complete before returning",
        },
        "timeoutMs": {
            "type": "number",
            "description": "Timeout in milliseconds when waiting for completion",
        },
        "model": {
            "type": "string",
            "description": "Model to use. Defaults to the SUB_AGENT_MODEL env var.",
        },
    },
    "required": ["task"],
}

MANAGE_AGENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": list(MANAGE_ACTIONS),
            "description": "Action to perform on the agent(s)",
        },
        "agentId": {
            "type": "string",
            "description": "Agent ID (required for status, terminate, result, and wait actions)",
        },
        "timeoutMs": {
            "type": "number",
            "description": "Timeout in milliseconds (only for wait action)",
        },
    },
    "required": ["action"],
}


class _ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SpawnAgentInput(_ToolInput):
    task: str
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    allowed_tools: list[str] = Field(default_factory=list)
    disallowed_tools: list[str] = Field(default_factory=list)
    max_turns: Optional[int] = None
    output_format: OutputFormat = OutputFormat.JSON
    working_directory: Optional[str] = None
    env: dict[str, str] = Field(default_factory=dict)
    mcp_servers: Optional[dict[str, Any]] = None
    wait_for_completion: bool = False
    timeout_ms: Optional[float] = None
    model: Optional[str] = None

    def to_agent_config(self) -> AgentConfig:
        return AgentConfig(
            task=self.task,
            system_prompt=self.system_prompt,
            append_system_prompt=self.append_system_prompt,
            allowed_tools=self.allowed_tools,
            disallowed_tools=self.disallowed_tools,
            max_turns=self.max_turns or None,
            output_format=self.output_format,
            working_directory=self.working_directory,
            env=self.env,
            mcp_servers=self.mcp_servers,
            model=self.model,
        )


class ManageAgentInput(_ToolInput):
    action: Literal["status", "terminate", "list", "result", "wait"]
    agent_id: Optional[str] = None
    timeout_ms: Optional[float] = None


def _completed_payload(agent_id: str, result: AgentResult) -> dict[str, Any]:
    payload = result.to_payload()
    return {
        "agentId": agent_id,
        "status": "completed",
        "sessionId": payload["sessionId"],
        "exitCode": payload["exitCode"],
        "output": payload["output"],
        "cost": payload["cost"],
        "duration": payload["duration"],
        "error": payload["error"],
    }


def _to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


class AgentTools:
    """Tool handlers for one Orchestrator."""

    def __init__(self, orchestrator: Orchestrator):
        self._orchestrator = orchestrator

    async def spawn_agent(self, **tool_input: Any) -> str:
        task = tool_input.get("task")
        if not isinstance(task, str) or not task.strip():
            raise ValueError("Invalid task: must be a non-empty string")

        params = SpawnAgentInput.model_validate(tool_input)
        logger.info(
            "tools.spawn_agent",
            task=params.task,
            output_format=params.output_format.value,
            wait=params.wait_for_completion,
            timeout_ms=params.timeout_ms,
            model=params.model,
        )

        agent_id = await self._orchestrator.spawn(params.to_agent_config())

        if params.wait_for_completion:
            result = await self._orchestrator.wait(agent_id, params.timeout_ms)
            return _to_json(_completed_payload(agent_id, result))

        return _to_json({
            "agentId": agent_id,
            "status": "spawned",
            "message": (
                "Agent spawned successfully. Use manage_agent tool to check "
                "status or get results."
            ),
        })

    async def manage_agent(self, **tool_input: Any) -> str:
        action = tool_input.get("action")
        if action not in MANAGE_ACTIONS:
            raise ValueError(
                "Invalid action: must be one of " + ", ".join(MANAGE_ACTIONS)
            )
        params = ManageAgentInput.model_validate(tool_input)
        if params.action in _ACTIONS_NEEDING_ID and not params.agent_id:
            raise ValueError(f"agentId is required for {params.action} action")

        logger.info("tools.manage_agent", action=params.action, agent_id=params.agent_id)
        return _to_json(await self._dispatch(params))

    async def _dispatch(self, params: ManageAgentInput) -> Any:
        orchestrator = self._orchestrator
        agent_id = params.agent_id

        if params.action == "status":
            return orchestrator.status(agent_id)

        if params.action == "terminate":
            await orchestrator.terminate(agent_id)
            return {
                "agentId": agent_id,
                "status": "terminated",
                "message": "Agent terminated successfully",
            }

        if params.action == "list":
            return orchestrator.list_agents()

        if params.action == "result":
            return orchestrator.result(agent_id).to_payload()

        result = await orchestrator.wait(agent_id, params.timeout_ms)
        return _completed_payload(agent_id, result)


def register_agent_tools(registry: ToolRegistry, orchestrator: Orchestrator) -> AgentTools:
    """Register spawn_agent and manage_agent with handlers bound to *orchestrator*."""
    tools = AgentTools(orchestrator)

    registry.register(
        ToolDefinition(
            name="spawn_agent",
            description=SPAWN_AGENT_DESCRIPTION,
            input_schema=SPAWN_AGENT_SCHEMA,
            handler=tools.spawn_agent,
            category="agents",
            timeout=orchestrator.config.tool_timeout,
        )
    )
    registry.register(
        ToolDefinition(
            name="manage_agent",
            description=MANAGE_AGENT_DESCRIPTION,
            input_schema=MANAGE_AGENT_SCHEMA,
            handler=tools.manage_agent,
            category="agents",
            timeout=orchestrator.config.tool_timeout,
        )
    )
    return tools
