"""
Process Lifecycle Controller — launches worker processes and supervises them.

Translates an AgentConfig into a concrete invocation of the worker program
(the ``claude`` CLI in print mode by default), launches it with its own pipes,
feeds everything it writes into the OutputAggregator, and moves the
AgentRecord to its terminal status when the process exits or cannot be
started at all.

Side-channel configuration:
  - Written per agent to ``agent-<id>.json`` in the supervisor's side-channel
    directory, with owner-only permissions
  - Always carries the documentation server entry wired to the shared store,
    with caller-supplied servers merged over it
  - Removed best-effort once the process exits; failures are only logged
"""

from __future__ import annotations

import asyncio
import codecs
import json
import os
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from foreman.config import StorageConfig, SupervisorConfig
from foreman.orchestration.models import AgentConfig, AgentRecord, AgentStatus, OutputFormat
from foreman.orchestration.output import OutputAggregator

logger = structlog.get_logger(__name__)

DOCS_SERVER_NAME = "docu-mcp"

_READ_CHUNK = 64 * 1024


class ProcessController:
    """Spawns, watches and stops worker processes for AgentRecords."""

    def __init__(
        self,
        config: SupervisorConfig,
        storage: StorageConfig,
        aggregator: OutputAggregator,
        side_channel_dir: Path,
    ):
        self._config = config
        self._storage = storage
        self._aggregator = aggregator
        self._side_channel_dir = side_channel_dir
        # Strong references to reader/watcher tasks until they finish.
        self._tasks: set[asyncio.Task] = set()

    @property
    def side_channel_dir(self) -> Path:
        return self._side_channel_dir

    # ---- Invocation ----

    def build_command(
        self,
        config: AgentConfig,
        side_channel_path: Optional[Path] = None,
    ) -> list[str]:
        """Argument vector for the worker. The task goes in as an argument."""
        args = list(self._config.worker_command)
        args.extend(["-p", config.task])

        model = config.model or self._config.sub_agent_model
        if model:
            args.extend(["--model", model])

        if side_channel_path is not None:
            args.extend(["--mcp-config", str(side_channel_path)])

        args.extend(["--output-format", config.output_format.value])
        if config.output_format is OutputFormat.STREAM_JSON:
            # Print mode refuses streamed JSON without it.
            args.append("--verbose")

        if config.system_prompt:
            args.extend(["--system-prompt", config.system_prompt])
        elif config.append_system_prompt:
            args.extend(["--append-system-prompt", config.append_system_prompt])

        if config.allowed_tools:
            args.extend(["--allowedTools", ",".join(config.allowed_tools)])
        if config.disallowed_tools:
            args.extend(["--disallowedTools", ",".join(config.disallowed_tools)])

        if config.max_turns:
            args.extend(["--max-turns", str(config.max_turns)])

        return args

    def build_environment(self, config: AgentConfig) -> dict[str, str]:
        """Process env, then caller overrides, then the shared-store settings."""
        env = dict(os.environ)
        env.update(config.env)
        env.update(self._storage.to_env())
        return env

    def side_channel_document(self, config: AgentConfig) -> dict[str, Any]:
        servers: dict[str, Any] = {
            DOCS_SERVER_NAME: {
                "command": self._config.docs_server_command,
                "args": list(self._config.docs_server_args),
                "env": self._storage.to_env(),
            },
        }
        servers.update(config.mcp_servers or {})
        return {"mcpServers": servers}

    def write_side_channel(self, agent_id: str, config: AgentConfig) -> Optional[Path]:
        """Materialize the per-agent side-channel file, if the config asks for one."""
        if config.mcp_servers is None:
            return None

        self._side_channel_dir.mkdir(parents=True, exist_ok=True)
        path = self._side_channel_dir / f"agent-{agent_id}.json"
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(self.side_channel_document(config), handle, indent=2)
        return path

    @staticmethod
    def remove_side_channel(record: AgentRecord) -> None:
        path = record.side_channel_path
        if path is None:
            return
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error(
                "process.side_channel_cleanup_failed",
                agent_id=record.agent_id,
                path=str(path),
                error=str(exc),
            )

    # ---- Lifecycle ----

    async def launch(self, record: AgentRecord) -> None:
        """Start the worker for *record*, which must already be registered.

        Never raises for OS-level launch failures: those mark the record as
        errored with a ``[SPAWN ERROR]`` marker in its output.
        """
        config = record.config
        try:
            record.side_channel_path = self.write_side_channel(record.agent_id, config)
            argv = self.build_command(config, record.side_channel_path)
            env = self.build_environment(config)

            logger.info(
                "process.spawning",
                agent_id=record.agent_id,
                command=argv[0],
                args=argv[1:],
                cwd=config.working_directory or os.getcwd(),
                model=config.model or self._config.sub_agent_model or None,
            )

            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=config.working_directory or None,
                env=env,
            )
        except (OSError, ValueError) as exc:
            self._fail_spawn(record, str(exc) or type(exc).__name__)
            return
        except asyncio.CancelledError:
            # The record is already registered; it must not stay RUNNING.
            self._fail_spawn(record, "launch cancelled")
            raise

        record.process = proc
        # One-shot protocol: the task travels as an argument, never on stdin.
        if proc.stdin is not None:
            proc.stdin.close()

        readers = [
            self._track(self._pump(record, proc.stdout, self._aggregator.append_stdout)),
            self._track(self._pump(record, proc.stderr, self._aggregator.append_stderr)),
        ]
        self._track(self._watch_exit(record, proc, readers))

        logger.info("process.spawned", agent_id=record.agent_id, pid=proc.pid)

    async def terminate(self, record: AgentRecord) -> None:
        """SIGTERM, wait out the grace period, then SIGKILL if still alive.

        The record is finalized here rather than by the exit watcher, so the
        caller observes TERMINATED as soon as this returns.
        """
        record.stop_requested = True
        proc = record.process
        if proc is not None and proc.returncode is None:
            grace = self._config.terminate_grace_ms / 1000.0
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(
                    "process.kill_after_grace",
                    agent_id=record.agent_id,
                    grace_ms=self._config.terminate_grace_ms,
                )
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass

        record.finish(AgentStatus.TERMINATED)
        logger.info("process.terminated", agent_id=record.agent_id)

    async def aclose(self) -> None:
        """Give pending reader/watcher tasks one drain period, then cancel them."""
        pending = {t for t in self._tasks if not t.done()}
        if not pending:
            return
        _, pending = await asyncio.wait(pending, timeout=self._config.drain_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- Internal Methods ----

    def _track(self, coro: Any) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _fail_spawn(self, record: AgentRecord, message: str) -> None:
        logger.error("process.spawn_failed", agent_id=record.agent_id, error=message)
        record.spawn_error = message
        self._aggregator.append_spawn_error(record, message)
        record.finish(AgentStatus.ERROR)
        self.remove_side_channel(record)
        record.exited.set()

    async def _pump(
        self,
        record: AgentRecord,
        stream: Optional[asyncio.StreamReader],
        append: Callable[[AgentRecord, str], None],
    ) -> None:
        """Forward raw chunks from one pipe into the record, in receipt order."""
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    append(record, text)
            tail = decoder.decode(b"", final=True)
            if tail:
                append(record, tail)
        except Exception:
            logger.warning("process.stream_error", agent_id=record.agent_id, exc_info=True)

    async def _watch_exit(
        self,
        record: AgentRecord,
        proc: asyncio.subprocess.Process,
        readers: list[asyncio.Task],
    ) -> None:
        try:
            returncode = await proc.wait()

            # Let the pipes drain so results see the final output.
            _, pending = await asyncio.wait(readers, timeout=self._config.drain_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("process.drain_timeout", agent_id=record.agent_id)

            if returncode >= 0:
                record.exit_code = returncode
            else:
                record.exit_signal = -returncode

            if record.stop_requested or returncode == 0:
                status = AgentStatus.TERMINATED
            else:
                status = AgentStatus.ERROR
            record.finish(status)

            logger.info(
                "process.exited",
                agent_id=record.agent_id,
                code=record.exit_code,
                signal=record.exit_signal,
                status=record.status.value,
            )
        finally:
            self.remove_side_channel(record)
            record.exited.set()
