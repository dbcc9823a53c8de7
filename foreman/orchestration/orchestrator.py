"""
Orchestrator — The Central Coordination Engine.

Manages the full lifecycle of worker agents: spawning, monitoring, collecting
results and tearing down. One Orchestrator owns one AgentRegistry and runs on
a single event loop; every mutation of agent state routes through it.

Key responsibilities:
  - Enforce the concurrency ceiling (reject, never queue)
  - Launch workers and supervise them until exit
  - Answer status / list / result queries from current registry state
  - Block callers in wait() until exit or deadline, whichever comes first
  - Terminate running agents and clean up side-channel files on shutdown
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

from foreman.config import StorageConfig, SupervisorConfig
from foreman.orchestration.errors import (
    AgentSpawnError,
    AgentStateError,
    AgentTimeoutError,
)
from foreman.orchestration.models import (
    AgentConfig,
    AgentRecord,
    AgentResult,
    AgentSummary,
    iso_timestamp,
)
from foreman.orchestration.output import OutputAggregator
from foreman.orchestration.process import ProcessController
from foreman.orchestration.registry import AgentRegistry, ConcurrencyGovernor
from foreman.orchestration.results import extract_result

logger = structlog.get_logger(__name__)


class Orchestrator:
    """Manages agent lifecycle: spawn, monitor, collect, terminate."""

    def __init__(
        self,
        config: Optional[SupervisorConfig] = None,
        storage: Optional[StorageConfig] = None,
    ):
        self._config = config if config is not None else SupervisorConfig()
        self._storage = storage if storage is not None else StorageConfig()

        self._registry = AgentRegistry()
        self._governor = ConcurrencyGovernor(
            self._registry, self._config.max_concurrent_agents
        )
        self._aggregator = OutputAggregator()
        self._controller: Optional[ProcessController] = None
        self._owns_side_channel_dir = False

        logger.info(
            "orchestrator.initialized",
            max_concurrent=self._governor.max_concurrent,
            worker_command=self._config.worker_command,
        )

    async def __aenter__(self) -> "Orchestrator":
        self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def config(self) -> SupervisorConfig:
        return self._config

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def governor(self) -> ConcurrencyGovernor:
        return self._governor

    @property
    def side_channel_dir(self) -> Optional[Path]:
        return self._controller.side_channel_dir if self._controller else None

    def initialize(self) -> None:
        """Create the side-channel directory. Idempotent."""
        if self._controller is not None:
            return

        if self._config.side_channel_dir is not None:
            side_channel_dir = Path(self._config.side_channel_dir).expanduser()
            side_channel_dir.mkdir(parents=True, exist_ok=True)
        else:
            side_channel_dir = Path(tempfile.mkdtemp(prefix="foreman-"))
            self._owns_side_channel_dir = True

        self._controller = ProcessController(
            config=self._config,
            storage=self._storage,
            aggregator=self._aggregator,
            side_channel_dir=side_channel_dir,
        )
        logger.info("orchestrator.side_channel_ready", path=str(side_channel_dir))

    # ---- Caller-facing operations ----

    async def spawn(self, config: AgentConfig) -> str:
        """Launch a worker for *config*. Returns the agent identifier.

        Raises AgentCapacityError when the ceiling is reached. A worker that
        the OS refuses to start still gets an identifier; its record is
        errored and carries the failure in its output.
        """
        self.initialize()

        # Check and insert with no suspension point in between.
        self._governor.check()
        record = self._registry.create(config)

        logger.info(
            "orchestration.spawn",
            agent_id=record.agent_id,
            output_format=config.output_format.value,
            task=config.task,
        )

        await self._controller.launch(record)
        return record.agent_id

    async def terminate(self, agent_id: str) -> None:
        """Stop a running agent. Fails for unknown or already-finished agents."""
        record = self._registry.get(agent_id)
        if not record.is_running:
            raise AgentStateError(agent_id, record.status.value)
        if record.stop_requested:
            # Another terminate() is still inside its grace period.
            raise AgentStateError(agent_id, "terminating")
        await self._controller.terminate(record)

    def status(self, agent_id: str) -> dict[str, Any]:
        """Snapshot of one agent's bookkeeping."""
        record = self._registry.get(agent_id)
        return {
            "agentId": record.agent_id,
            "status": record.status.value,
            "startTime": iso_timestamp(record.started_at),
            "endTime": iso_timestamp(record.ended_at),
            "task": record.config.task,
            "sessionId": record.session_id,
            "outputLines": len(record.output),
            "lastOutput": self._aggregator.tail(record),
        }

    def list_agents(self) -> dict[str, Any]:
        """Every known agent plus counts partitioned by status."""
        agents = [
            AgentSummary(
                agent_id=r.agent_id,
                status=r.status,
                started_at=r.started_at,
                task=r.config.task,
            )
            for r in self._registry
        ]
        return {"agents": [a.to_payload() for a in agents], **self._registry.counts()}

    def result(self, agent_id: str) -> AgentResult:
        return extract_result(self._registry.get(agent_id))

    async def wait(self, agent_id: str, timeout_ms: Optional[float] = None) -> AgentResult:
        """Block until the agent exits or *timeout_ms* elapses.

        A timeout only abandons the wait; the agent keeps running.
        """
        record = self._registry.get(agent_id)

        if record.is_running:
            timeout = timeout_ms / 1000.0 if timeout_ms else None
            try:
                await asyncio.wait_for(record.exited.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.info("orchestration.wait_timeout", agent_id=agent_id, timeout_ms=timeout_ms)
                raise AgentTimeoutError(agent_id, timeout_ms) from None

        return self._finished_result(record)

    async def shutdown(self) -> None:
        """Terminate every running agent and remove side-channel files."""
        running = self._registry.running()
        logger.info("orchestrator.shutting_down", running=len(running))

        for record in running:
            try:
                await self.terminate(record.agent_id)
            except Exception:
                logger.error(
                    "orchestrator.terminate_failed",
                    agent_id=record.agent_id,
                    exc_info=True,
                )

        if self._controller is not None:
            await self._controller.aclose()
            for record in self._registry:
                ProcessController.remove_side_channel(record)
            if self._owns_side_channel_dir:
                shutil.rmtree(self._controller.side_channel_dir, ignore_errors=True)
            self._controller = None
            self._owns_side_channel_dir = False

        logger.info("orchestrator.shutdown_complete")

    # ---- Internal Methods ----

    def _finished_result(self, record: AgentRecord) -> AgentResult:
        if record.spawn_error is not None:
            raise AgentSpawnError(record.agent_id, record.spawn_error)
        return extract_result(record)
