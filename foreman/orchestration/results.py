"""
Result Extractor — turns an agent's accumulated output into an AgentResult.

Nothing here is cached: every call re-reads the record, so a result taken
while the agent is still running simply reflects the output seen so far.
Malformed structured output is never fatal; the affected fields stay unset.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Union

import structlog

from foreman.orchestration.models import AgentRecord, AgentResult, OutputFormat
from foreman.orchestration.output import parse_json_fragment

logger = structlog.get_logger(__name__)

MAX_TURNS_ERROR = "Maximum turns reached"
UNKNOWN_ERROR = "Unknown error"


def _number(value: Any) -> Optional[Union[int, float]]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _read_metrics(document: dict[str, Any]) -> dict[str, Any]:
    cost = _number(document.get("cost_usd"))
    if cost is None:
        cost = _number(document.get("total_cost_usd"))
    session_id = document.get("session_id")
    return {
        "cost": cost,
        "duration": _number(document.get("duration_ms")),
        "session_id": session_id if isinstance(session_id, str) and session_id else None,
    }


def _error_text(value: Any) -> str:
    """Render a worker-reported error as text, whatever JSON shape it came in."""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and isinstance(value.get("message"), str) and value["message"]:
        return value["message"]
    if value:
        return json.dumps(value, default=str)
    return UNKNOWN_ERROR


def _from_json_document(agent_id: str, output: str) -> dict[str, Any]:
    """Fields from a single JSON document spanning the whole output."""
    document = parse_json_fragment(output)
    if not isinstance(document, dict):
        logger.warning("results.json_unparseable", agent_id=agent_id, length=len(output))
        return {}

    fields = _read_metrics(document)
    if document.get("is_error"):
        fields["error"] = _error_text(document.get("error"))
    return fields


def _from_stream(output: str) -> dict[str, Any]:
    """Fields from the last ``type == "result"`` message of a JSON-lines stream."""
    lines = [line for line in output.split("\n") if line.strip()]
    for line in reversed(lines):
        message = parse_json_fragment(line)
        if not isinstance(message, dict) or message.get("type") != "result":
            continue
        fields = _read_metrics(message)
        if message.get("subtype") == "error_max_turns":
            fields["error"] = MAX_TURNS_ERROR
        return fields
    return {}


def extract_result(record: AgentRecord) -> AgentResult:
    """Build the AgentResult for *record* from its current output."""
    output = "".join(tuple(record.output))

    fields: dict[str, Any] = {}
    if output:
        if record.config.output_format is OutputFormat.JSON:
            fields = _from_json_document(record.agent_id, output)
        elif record.config.output_format is OutputFormat.STREAM_JSON:
            fields = _from_stream(output)

    if fields.get("error") is None and record.spawn_error:
        fields["error"] = record.spawn_error

    # A session id scraped while streaming takes precedence over the final document.
    if record.session_id is not None:
        fields["session_id"] = record.session_id

    return AgentResult(
        agent_id=record.agent_id,
        output=output,
        exit_code=record.exit_code,
        **{k: v for k, v in fields.items() if v is not None},
    )
