# foreman/config.py
"""
Configuration for Foreman.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. They are read once when
the config objects are built and never re-read per call.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import structlog
from pydantic import BeforeValidator, Field, model_validator
from pydantic_settings import BaseSettings, NoDecode

logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above foreman/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


def _coerce_str_list(value: object) -> list[str]:
    """Coerce env-var values into a list of stripped, non-empty strings.

    Accepts:
      - A single str         → ["value"]
      - Comma-separated str  → ["a", "b"]
      - JSON array str       → ["a", "b"]
      - An existing list     → passthrough with str coercion
    """
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                return _coerce_str_list(decoded)
        if "," in stripped:
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return [stripped]
    return []


# Annotated type for list[str] fields that accept bare values, comma-separated,
# and JSON arrays from environment variables. NoDecode keeps pydantic-settings
# from JSON-decoding the raw value before the validator sees it.
StrList = Annotated[list[str], NoDecode, BeforeValidator(_coerce_str_list)]


class SupervisorConfig(BaseSettings):
    """Configuration for the sub-agent supervisor core."""

    max_concurrent_agents: int = Field(5, alias="MAX_CONCURRENT_AGENTS")
    sub_agent_model: str = Field("", alias="SUB_AGENT_MODEL")
    worker_command: StrList = Field(
        default_factory=lambda: ["claude"], alias="FOREMAN_WORKER_COMMAND"
    )
    terminate_grace_ms: int = Field(1000, alias="AGENT_TERMINATE_GRACE_MS")
    # Upper bound on how long the exit watcher waits for pipes to drain after
    # the worker exits (grandchildren may keep them open).
    drain_timeout: float = Field(5.0, alias="FOREMAN_DRAIN_TIMEOUT")
    side_channel_dir: Optional[Path] = Field(None, alias="FOREMAN_SIDE_CHANNEL_DIR")
    docs_server_command: str = Field("npx", alias="FOREMAN_DOCS_SERVER_COMMAND")
    docs_server_args: StrList = Field(
        default_factory=lambda: ["-y", "@myjungle/docu-mcp-server"],
        alias="FOREMAN_DOCS_SERVER_ARGS",
    )
    tool_timeout: float = Field(3600.0, alias="FOREMAN_TOOL_TIMEOUT")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "SupervisorConfig":
        self.max_concurrent_agents = max(1, int(self.max_concurrent_agents))
        self.terminate_grace_ms = max(0, int(self.terminate_grace_ms))
        self.drain_timeout = max(0.0, float(self.drain_timeout))
        self.tool_timeout = max(1.0, float(self.tool_timeout))
        if not self.worker_command:
            self.worker_command = ["claude"]
        return self


class StorageConfig(BaseSettings):
    """Storage backend settings every spawned worker must share with the parent.

    The supervisor never talks to the vector store itself; it only forwards
    these values so that all workers and the parent observe the same store.
    """

    vector_db_provider: str = Field("lance", alias="VECTOR_DB_PROVIDER")
    lance_path: Path = Field(
        default_factory=lambda: Path.home() / "lanceDB", alias="LANCE_PATH"
    )
    chroma_url: Optional[str] = Field(None, alias="CHROMA_URL")
    qdrant_url: Optional[str] = Field(None, alias="QDRANT_URL")
    embedding_provider: str = Field("buildin", alias="EMBEDDING_PROVIDER")
    embedding_model: str = Field("all-MiniLM-L6-v2", alias="EMBEDDING_MODEL")
    embedding_dimension: int = Field(384, alias="EMBEDDING_DIMENSION")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    def to_env(self) -> dict[str, str]:
        """Render as the environment variables a worker expects.

        Optional endpoints are omitted when unset rather than exported empty.
        """
        env = {
            "VECTOR_DB_PROVIDER": self.vector_db_provider,
            "LANCE_PATH": str(self.lance_path),
            "EMBEDDING_PROVIDER": self.embedding_provider,
            "EMBEDDING_MODEL": self.embedding_model,
            "EMBEDDING_DIMENSION": str(self.embedding_dimension),
        }
        if self.chroma_url:
            env["CHROMA_URL"] = self.chroma_url
        if self.qdrant_url:
            env["QDRANT_URL"] = self.qdrant_url
        return env


class ForemanConfig:
    """Master configuration that aggregates all subsystem configs."""

    def __init__(self) -> None:
        self.supervisor = SupervisorConfig()
        self.storage = StorageConfig()

        logger.info(
            "config.loaded",
            max_concurrent_agents=self.supervisor.max_concurrent_agents,
            worker_command=self.supervisor.worker_command,
            vector_db_provider=self.storage.vector_db_provider,
        )
