"""Tests for the tool surface: registry, executor and the agent tools."""

from __future__ import annotations

import asyncio
import json

import pytest

from foreman.tools.agents import AgentTools, register_agent_tools
from foreman.tools.executor import ToolExecutionResult, ToolExecutor
from foreman.tools.registry import ToolDefinition, ToolRegistry

ECHO_WORKER = """
import sys
sys.stdout.write(sys.argv[2])
"""


def _make_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="echo",
            description="echo test tool",
            input_schema={
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "count": {"type": "integer"},
                    "mode": {"type": "string", "enum": ["a", "b"]},
                },
                "required": ["text"],
            },
            handler=lambda text="", count=1, mode="a": f"echo:{text * count}",
            category="test",
        )
    )
    return registry


def _payload(result: ToolExecutionResult) -> dict:
    content = result.to_content()
    return json.loads(content["content"][0]["text"])


def _agent_executor(orchestrator) -> ToolExecutor:
    registry = ToolRegistry()
    register_agent_tools(registry, orchestrator)
    return ToolExecutor(registry)


# =============================================================================
# Registry
# =============================================================================


class TestToolRegistry:
    def test_collision_rejected_unless_override(self):
        registry = _make_registry()
        duplicate = ToolDefinition(name="echo", description="again", input_schema={})
        with pytest.raises(ValueError, match="already registered"):
            registry.register(duplicate)
        registry.register(duplicate, allow_override=True)
        assert registry.get("echo").description == "again"

    def test_api_format_and_filtering(self):
        registry = _make_registry()
        tools = registry.get_api_tools()
        assert tools[0]["name"] == "echo"
        assert set(tools[0]) == {"name", "description", "inputSchema"}
        assert registry.get_api_tools(categories=["other"]) == []

        registry.set_enabled("echo", False)
        assert registry.get_api_tools() == []

    def test_unregister(self):
        registry = _make_registry()
        assert "echo" in registry
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        assert registry.count == 0


# =============================================================================
# Executor
# =============================================================================


class TestToolExecutor:
    @pytest.mark.asyncio
    async def test_sync_handler_success(self):
        executor = ToolExecutor(_make_registry())
        result = await executor.execute("echo", {"text": "hi", "count": 2})
        assert result.success
        assert result.result == "echo:hihi"
        assert result.to_content() == {"content": [{"type": "text", "text": "echo:hihi"}]}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await ToolExecutor(_make_registry()).execute("nope", {})
        assert not result.success
        assert result.to_content()["isError"] is True
        assert _payload(result) == {"error": "Unknown tool: nope", "status": "failed"}

    @pytest.mark.asyncio
    async def test_disabled_tool(self):
        registry = _make_registry()
        registry.set_enabled("echo", False)
        result = await ToolExecutor(registry).execute("echo", {"text": "x"})
        assert "disabled" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("tool_input", "message"),
        [
            ({}, "Missing required parameter(s): text"),
            ({"text": 5}, "Parameter 'text' expected string, got int"),
            ({"text": "x", "count": True}, "Parameter 'count' expected integer, got boolean"),
            ({"text": "x", "mode": "c"}, "Parameter 'mode' must be one of a, b"),
        ],
    )
    async def test_validation(self, tool_input, message):
        result = await ToolExecutor(_make_registry()).execute("echo", tool_input)
        assert result.error == message

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow() -> str:
            await asyncio.sleep(5)
            return "late"

        registry = ToolRegistry()
        registry.register(
            ToolDefinition(
                name="slow",
                description="slow",
                input_schema={"type": "object", "properties": {}},
                handler=slow,
                timeout=0.05,
            )
        )
        result = await ToolExecutor(registry).execute("slow", {})
        assert result.error == "Tool execution timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_captured(self):
        def broken() -> str:
            raise KeyError("missing")

        registry = ToolRegistry()
        registry.register(
            ToolDefinition(name="broken", description="b", input_schema={}, handler=broken)
        )
        executor = ToolExecutor(registry)
        result = await executor.execute("broken", {})
        assert result.error == "KeyError: 'missing'"
        assert executor.stats["failures"] == 1
        assert executor.stats["total_executions"] == 1


# =============================================================================
# spawn_agent / manage_agent
# =============================================================================


@pytest.mark.asyncio
async def test_tools_are_registered(make_orchestrator):
    registry = ToolRegistry()
    tools = register_agent_tools(registry, make_orchestrator())
    assert isinstance(tools, AgentTools)
    names = [t["name"] for t in registry.get_api_tools(categories=["agents"])]
    assert names == ["spawn_agent", "manage_agent"]


@pytest.mark.asyncio
async def test_spawn_fire_and_forget(make_orchestrator):
    executor = _agent_executor(make_orchestrator())
    result = await executor.execute("spawn_agent", {"task": "5"})

    payload = _payload(result)
    assert payload["status"] == "spawned"
    assert payload["agentId"]
    assert "manage_agent" in payload["message"]


@pytest.mark.asyncio
async def test_spawn_and_wait(make_orchestrator):
    executor = _agent_executor(make_orchestrator(ECHO_WORKER))
    body = '{"session_id": "s1", "cost_usd": 0.42, "duration_ms": 1200}'
    result = await executor.execute(
        "spawn_agent", {"task": body, "waitForCompletion": True, "timeoutMs": 10000}
    )

    payload = _payload(result)
    assert payload["status"] == "completed"
    assert payload["sessionId"] == "s1"
    assert payload["exitCode"] == 0
    assert payload["cost"] == 0.42
    assert payload["duration"] == 1200
    assert payload["error"] is None
    assert payload["output"] == body


@pytest.mark.asyncio
async def test_spawn_rejects_blank_task(make_orchestrator):
    executor = _agent_executor(make_orchestrator())
    result = await executor.execute("spawn_agent", {"task": "   "})
    assert _payload(result) == {
        "error": "Invalid task: must be a non-empty string",
        "status": "failed",
    }

    missing = await executor.execute("spawn_agent", {})
    assert missing.error == "Missing required parameter(s): task"


@pytest.mark.asyncio
async def test_spawn_over_capacity(make_orchestrator):
    executor = _agent_executor(make_orchestrator(MAX_CONCURRENT_AGENTS=1))
    await executor.execute("spawn_agent", {"task": "5"})
    result = await executor.execute("spawn_agent", {"task": "5"})
    assert result.error == "Maximum concurrent agents limit (1) reached"


@pytest.mark.asyncio
async def test_manage_lifecycle(make_orchestrator):
    executor = _agent_executor(make_orchestrator())
    spawned = _payload(await executor.execute("spawn_agent", {"task": "30"}))
    agent_id = spawned["agentId"]

    status = _payload(await executor.execute("manage_agent", {"action": "status", "agentId": agent_id}))
    assert status["status"] == "running"
    assert status["task"] == "30"
    assert set(status) == {
        "agentId", "status", "startTime", "endTime", "task",
        "sessionId", "outputLines", "lastOutput",
    }

    listing = _payload(await executor.execute("manage_agent", {"action": "list"}))
    assert listing["total"] == 1 and listing["running"] == 1
    assert listing["agents"][0]["id"] == agent_id

    waited = await executor.execute(
        "manage_agent", {"action": "wait", "agentId": agent_id, "timeoutMs": 50}
    )
    assert waited.error == f"Agent {agent_id} timed out after 50ms"

    terminated = _payload(
        await executor.execute("manage_agent", {"action": "terminate", "agentId": agent_id})
    )
    assert terminated == {
        "agentId": agent_id,
        "status": "terminated",
        "message": "Agent terminated successfully",
    }

    again = await executor.execute("manage_agent", {"action": "terminate", "agentId": agent_id})
    assert again.error == f"Agent {agent_id} is not running (status: terminated)"

    result = _payload(await executor.execute("manage_agent", {"action": "result", "agentId": agent_id}))
    assert result["agentId"] == agent_id
    assert set(result) == {"agentId", "sessionId", "output", "exitCode", "cost", "duration", "error"}


@pytest.mark.asyncio
async def test_manage_wait_returns_completed(make_orchestrator):
    executor = _agent_executor(make_orchestrator(ECHO_WORKER))
    spawned = _payload(await executor.execute("spawn_agent", {"task": '{"cost_usd": 2}'}))
    payload = _payload(
        await executor.execute("manage_agent", {"action": "wait", "agentId": spawned["agentId"]})
    )
    assert payload["status"] == "completed"
    assert payload["cost"] == 2


@pytest.mark.asyncio
async def test_manage_argument_errors(make_orchestrator):
    orchestrator = make_orchestrator()
    executor = _agent_executor(orchestrator)

    missing = await executor.execute("manage_agent", {"action": "status"})
    assert missing.error == "agentId is required for status action"

    unknown = await executor.execute("manage_agent", {"action": "result", "agentId": "nope"})
    assert unknown.error == "Agent nope not found"

    bad_action = await executor.execute("manage_agent", {"action": "restart"})
    assert bad_action.error == (
        "Parameter 'action' must be one of status, terminate, list, result, wait"
    )

    with pytest.raises(ValueError, match="^Invalid action: must be one of status, terminate"):
        await AgentTools(orchestrator).manage_agent(action="restart")


@pytest.mark.asyncio
async def test_empty_list(make_orchestrator):
    executor = _agent_executor(make_orchestrator())
    payload = _payload(await executor.execute("manage_agent", {"action": "list"}))
    assert payload == {"agents": [], "total": 0, "running": 0, "terminated": 0, "error": 0}


@pytest.mark.asyncio
async def test_tool_timeout_comes_from_config(make_orchestrator):
    registry = ToolRegistry()
    register_agent_tools(registry, make_orchestrator(FOREMAN_TOOL_TIMEOUT=42))
    assert registry.get("spawn_agent").timeout == 42.0
    assert registry.get("manage_agent").timeout == 42.0
