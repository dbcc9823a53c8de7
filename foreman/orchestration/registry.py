"""
Agent Registry — the single source of truth for agent state.

The registry is an explicitly owned, in-memory store of AgentRecords keyed by
identifier. Records are never evicted: they stay until the owning
Orchestrator is discarded, so results remain available after an agent exits.

All mutation happens on the event-loop thread that owns the Orchestrator, so
no lock is needed. The ConcurrencyGovernor check and the insertion in
``Orchestrator.spawn`` run back to back without an ``await`` in between, which
makes check-then-insert atomic with respect to other spawns on the same loop.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import Iterator, Optional

import structlog

from foreman.orchestration.errors import AgentCapacityError, AgentNotFoundError
from foreman.orchestration.models import AgentConfig, AgentRecord, AgentStatus

logger = structlog.get_logger(__name__)


class AgentRegistry:
    """Keyed store of AgentRecords."""

    def __init__(self) -> None:
        self._records: dict[str, AgentRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._records

    def __iter__(self) -> Iterator[AgentRecord]:
        return iter(list(self._records.values()))

    def create(self, config: AgentConfig) -> AgentRecord:
        """Insert a fresh RUNNING record under a never-used identifier."""
        agent_id = str(uuid.uuid4())
        while agent_id in self._records:
            agent_id = str(uuid.uuid4())
        record = AgentRecord(agent_id=agent_id, config=config)
        self._records[agent_id] = record
        logger.debug("registry.created", agent_id=agent_id)
        return record

    def find(self, agent_id: str) -> Optional[AgentRecord]:
        return self._records.get(agent_id)

    def get(self, agent_id: str) -> AgentRecord:
        """Look up a record, raising AgentNotFoundError if it does not exist."""
        record = self._records.get(agent_id)
        if record is None:
            raise AgentNotFoundError(agent_id)
        return record

    def running(self) -> list[AgentRecord]:
        return [r for r in self._records.values() if r.status is AgentStatus.RUNNING]

    def running_count(self) -> int:
        return sum(1 for r in self._records.values() if r.status is AgentStatus.RUNNING)

    def counts(self) -> dict[str, int]:
        """Record counts partitioned by status, plus the total."""
        by_status = Counter(r.status for r in self._records.values())
        counts = {"total": len(self._records)}
        for status in AgentStatus:
            counts[status.value] = by_status.get(status, 0)
        return counts


class ConcurrencyGovernor:
    """Gate checked before every spawn.

    Rejects new spawns once the number of RUNNING records reaches the ceiling.
    There is no queue: callers must retry later.
    """

    def __init__(self, registry: AgentRegistry, max_concurrent: int = 5):
        self._registry = registry
        self._max_concurrent = max(1, int(max_concurrent))

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def can_spawn(self) -> bool:
        return self._registry.running_count() < self._max_concurrent

    def check(self) -> None:
        """Raise AgentCapacityError if a spawn would exceed the ceiling."""
        if not self.can_spawn():
            logger.warning(
                "governor.capacity_reached",
                max_concurrent=self._max_concurrent,
            )
            raise AgentCapacityError(self._max_concurrent)
