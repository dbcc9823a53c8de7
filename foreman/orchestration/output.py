"""
Output Aggregator — ordered, append-only output log per agent.

Worker output arrives as raw chunks from the process pipes (not logical
lines). Each chunk is appended to the record in receipt order; stderr chunks
are tagged so they stay distinguishable in the merged log. For structured
output formats every stdout chunk is also scraped for the worker's session
identifier, which is kept the first time it shows up.

Scraping is best-effort: chunks are frequently partial JSON, so a failed
parse is the normal case and is never reported as an agent error.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog

from foreman.orchestration.models import AgentRecord, OutputFormat

logger = structlog.get_logger(__name__)

STDERR_PREFIX = "[ERROR] "
SPAWN_ERROR_PREFIX = "[SPAWN ERROR] "

# Number of trailing chunks shown in status snapshots.
TAIL_CHUNKS = 5


def parse_json_fragment(fragment: str) -> Optional[Any]:
    """Parse *fragment* as one JSON document, or return None if it is not one."""
    text = fragment.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def scrape_session_id(fragment: str, output_format: OutputFormat) -> Optional[str]:
    """Return the ``session_id`` carried by *fragment*, if any.

    The fragment is first tried as a whole document. Streamed JSON chunks can
    hold several complete lines, so for that format each line is also tried.
    """
    if not output_format.is_structured:
        return None

    candidates = [fragment]
    if output_format is OutputFormat.STREAM_JSON and "\n" in fragment.strip():
        candidates.extend(fragment.splitlines())

    for candidate in candidates:
        parsed = parse_json_fragment(candidate)
        if isinstance(parsed, dict):
            session_id = parsed.get("session_id")
            if isinstance(session_id, str) and session_id:
                return session_id
    return None


class OutputAggregator:
    """Appends worker output to records and extracts fields as they appear.

    Only the process lifecycle controller writes through this class. Readers
    use snapshot()/tail(), which copy the log so concurrent appends are safe.
    """

    def append_stdout(self, record: AgentRecord, fragment: str) -> None:
        record.output.append(fragment)
        if record.session_id is None:
            session_id = scrape_session_id(fragment, record.config.output_format)
            if session_id is not None:
                record.session_id = session_id
                logger.info(
                    "output.session_discovered",
                    agent_id=record.agent_id,
                    session_id=session_id,
                )
        logger.debug("output.stdout", agent_id=record.agent_id, fragment=fragment)

    def append_stderr(self, record: AgentRecord, fragment: str) -> None:
        record.output.append(f"{STDERR_PREFIX}{fragment}")
        logger.warning("output.stderr", agent_id=record.agent_id, stderr=fragment)

    def append_spawn_error(self, record: AgentRecord, message: str) -> None:
        record.output.append(f"{SPAWN_ERROR_PREFIX}{message}")

    @staticmethod
    def snapshot(record: AgentRecord) -> tuple[str, ...]:
        return tuple(record.output)

    @staticmethod
    def tail(record: AgentRecord, chunks: int = TAIL_CHUNKS) -> str:
        return "".join(record.output[-chunks:]) if chunks > 0 else ""
