"""
Shared fixtures for the Foreman test suite.

Workers are real processes: the worker command is the running interpreter in
``-c`` mode, so the arguments the supervisor appends (``-p TASK --output-format
...``) land in the script's ``sys.argv`` and the task sits at ``sys.argv[2]``.
Unless a test passes its own script, the worker sleeps for the number of
seconds given as the task.
"""

from __future__ import annotations

import sys
import textwrap
from typing import Callable, Optional

import pytest
import pytest_asyncio

from foreman.config import StorageConfig, SupervisorConfig
from foreman.orchestration.models import AgentConfig, AgentRecord, OutputFormat
from foreman.orchestration.orchestrator import Orchestrator


# ---------------------------------------------------------------------------
# Worker scripts
# ---------------------------------------------------------------------------

# Sleeps for the number of seconds given as the task, then exits 0.
SLEEP_WORKER = """
import sys, time
time.sleep(float(sys.argv[2]))
"""


def worker_command(script: str) -> list[str]:
    return [sys.executable, "-c", textwrap.dedent(script).strip()]


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def storage_config(tmp_path) -> StorageConfig:
    return StorageConfig(
        VECTOR_DB_PROVIDER="lance",
        LANCE_PATH=tmp_path / "lance",
        CHROMA_URL=None,
        QDRANT_URL=None,
    )


@pytest.fixture()
def make_config(tmp_path) -> Callable[..., SupervisorConfig]:
    """Build a SupervisorConfig that runs *script* as the worker."""

    def _make(script: str = SLEEP_WORKER, **overrides) -> SupervisorConfig:
        values = {
            "FOREMAN_WORKER_COMMAND": worker_command(script),
            "FOREMAN_SIDE_CHANNEL_DIR": tmp_path / "side-channel",
            "AGENT_TERMINATE_GRACE_MS": 200,
            "FOREMAN_DRAIN_TIMEOUT": 2.0,
            "SUB_AGENT_MODEL": "",
        }
        values.update(overrides)
        return SupervisorConfig(**values)

    return _make


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def make_orchestrator(make_config, storage_config):
    """Factory for Orchestrators that are shut down after the test."""
    created: list[Orchestrator] = []

    def _make(script: str = SLEEP_WORKER, **overrides) -> Orchestrator:
        orchestrator = Orchestrator(make_config(script, **overrides), storage_config)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        await orchestrator.shutdown()


# ---------------------------------------------------------------------------
# Record fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_record() -> Callable[..., AgentRecord]:
    """A bare AgentRecord with no process behind it."""

    def _make(
        output_format: OutputFormat = OutputFormat.JSON,
        chunks: Optional[list[str]] = None,
        agent_id: str = "agent-1",
        task: str = "do the thing",
    ) -> AgentRecord:
        record = AgentRecord(
            agent_id=agent_id,
            config=AgentConfig(task=task, output_format=output_format),
        )
        record.output.extend(chunks or [])
        return record

    return _make
