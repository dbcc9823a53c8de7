"""
Tool Executor — the boundary between a protocol request and a handler call.

The executor enforces:
1. LOOKUP: unknown, disabled, or handler-less tools fail cleanly
2. VALIDATION: inputs are checked against the tool's JSON Schema
3. TIMEOUT PROTECTION: no call can run forever
4. ERROR HANDLING: failures come back as results, never as exceptions
5. OBSERVABILITY: every execution is logged

Results render to the protocol's content envelope with ``to_content()``.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
import traceback
from typing import Any, Optional

import structlog

from foreman.orchestration.errors import ForemanError
from foreman.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)


class ToolExecutionResult:
    """
    The result of executing a tool — success or failure.

    ``result`` holds the handler's return value (JSON text for the built-in
    tools); ``error`` holds a message suitable for showing to the caller.
    """
    def __init__(
        self,
        tool_name: str,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
        execution_time: float = 0.0,
    ):
        self.tool_name = tool_name
        self.success = success
        self.result = result
        self.error = error
        self.execution_time = execution_time

    def to_content(self) -> dict[str, Any]:
        """Render as ``{"content": [{"type": "text", "text": ...}], "isError"?}``."""
        if self.success:
            text = self.result if isinstance(self.result, str) else json.dumps(
                self.result, indent=2, default=str
            )
            return {"content": [{"type": "text", "text": text}]}
        text = json.dumps({"error": self.error, "status": "failed"}, indent=2)
        return {"content": [{"type": "text", "text": text}], "isError": True}


# JSON Schema type → Python types (for lightweight validation)
_JSON_TYPE_MAP: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _validate_tool_input(
    schema: dict[str, Any],
    tool_input: dict[str, Any],
) -> Optional[str]:
    """
    Lightweight JSON Schema validation for tool inputs.

    Checks required fields, basic types and enums. Returns an error message
    string on failure, or None if the input is valid.
    """
    required = schema.get("required", [])
    properties = schema.get("properties", {})

    missing = [name for name in required if name not in tool_input]
    if missing:
        return f"Missing required parameter(s): {', '.join(missing)}"

    for name, value in tool_input.items():
        prop_schema = properties.get(name)
        if not prop_schema or not isinstance(prop_schema, dict) or value is None:
            continue
        expected_type = prop_schema.get("type")
        py_types = _JSON_TYPE_MAP.get(expected_type) if expected_type else None
        if py_types is not None:
            # In Python bool is a subclass of int, but JSON booleans are distinct
            if isinstance(value, bool) and expected_type in ("integer", "number"):
                return f"Parameter '{name}' expected {expected_type}, got boolean"
            if not isinstance(value, py_types):
                return f"Parameter '{name}' expected {expected_type}, got {type(value).__name__}"
        allowed = prop_schema.get("enum")
        if allowed and value not in allowed:
            return f"Parameter '{name}' must be one of {', '.join(map(str, allowed))}"

    return None


class ToolExecutor:
    """Executes registered tools with validation, timeouts and logging."""

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: float = 3600.0,
    ):
        self._registry = registry
        self._default_timeout = default_timeout

        # Execution statistics
        self._total_executions = 0
        self._total_successes = 0
        self._total_failures = 0

    def _fail(self, tool_name: str, error: str, elapsed: float = 0.0) -> ToolExecutionResult:
        self._total_failures += 1
        return ToolExecutionResult(
            tool_name=tool_name,
            success=False,
            error=error,
            execution_time=elapsed,
        )

    async def execute(self, tool_name: str, tool_input: dict[str, Any]) -> ToolExecutionResult:
        """Run one tool call and capture its outcome."""
        start_time = time.monotonic()
        self._total_executions += 1

        logger.info(
            "tool_executor.executing",
            tool_name=tool_name,
            input_keys=list(tool_input.keys()),
        )

        tool_def = self._registry.get(tool_name)
        if not tool_def:
            return self._fail(tool_name, f"Unknown tool: {tool_name}")
        if not tool_def.enabled:
            return self._fail(tool_name, f"Tool '{tool_name}' is currently disabled.")

        handler = tool_def.handler
        if not handler:
            return self._fail(tool_name, f"No handler registered for tool: {tool_name}")

        validation_error = _validate_tool_input(tool_def.input_schema, tool_input)
        if validation_error:
            return self._fail(tool_name, validation_error)

        timeout = tool_def.timeout if tool_def.timeout is not None else self._default_timeout
        try:
            if inspect.iscoroutinefunction(handler):
                result = await asyncio.wait_for(handler(**tool_input), timeout=timeout)
            else:
                result = handler(**tool_input)
        except asyncio.TimeoutError:
            logger.warning("tool_executor.timeout", tool_name=tool_name, timeout=timeout)
            return self._fail(
                tool_name,
                f"Tool execution timed out after {timeout}s",
                time.monotonic() - start_time,
            )
        except (ForemanError, ValueError) as e:
            # Expected caller-facing failures: the message is the whole story.
            logger.info("tool_executor.rejected", tool_name=tool_name, error=str(e))
            return self._fail(tool_name, str(e), time.monotonic() - start_time)
        except Exception as e:
            error_detail = f"{type(e).__name__}: {str(e)}"
            logger.error(
                "tool_executor.error",
                tool_name=tool_name,
                error=error_detail,
                traceback=traceback.format_exc(),
            )
            return self._fail(tool_name, error_detail, time.monotonic() - start_time)

        elapsed = time.monotonic() - start_time
        self._total_successes += 1
        logger.info(
            "tool_executor.success",
            tool_name=tool_name,
            elapsed=round(elapsed, 2),
            result_length=len(str(result)),
        )
        return ToolExecutionResult(
            tool_name=tool_name,
            success=True,
            result=result,
            execution_time=elapsed,
        )

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_executions": self._total_executions,
            "successes": self._total_successes,
            "failures": self._total_failures,
            "success_rate": (
                self._total_successes / max(1, self._total_executions)
            ),
        }
