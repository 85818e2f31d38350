"""Layer 2: sandboxed command execution.

Every call gets its own sandbox: a fresh temporary working directory, a
command allow-list, a resource ceiling and a minimal environment. Exactly
one command runs per sandbox, and the sandbox is released on every exit
path, including cancellation by a timeout.
"""

import asyncio
import logging
import os
import shutil
import sys
import tempfile
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from skillcore.config.constants import (
    DEFAULT_ALLOWED_COMMANDS,
    DEFAULT_MAX_CPU_SECONDS,
    DEFAULT_MAX_MEMORY_BYTES,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_SANDBOX_PATHS,
)
from skillcore.exceptions import ExecutionError, ExecutionErrorKind, ValidationError
from skillcore.execution.models import ResourceUsage
from skillcore.skills.models import SkillDefinition

if sys.platform != "win32":
    import resource

logger = logging.getLogger(__name__)

# Commands that reach the network; refused unless network access is enabled
NETWORK_COMMANDS = frozenset(
    {"curl", "wget", "ssh", "scp", "sftp", "nc", "ncat", "telnet", "ftp", "rsync", "ping"}
)

MAX_ARGS = 100
MAX_ARGS_LENGTH = 4096


class SandboxConfig(BaseModel):
    """Limits and permissions applied to a sandbox."""

    allowed_commands: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_COMMANDS))
    allowed_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_SANDBOX_PATHS))
    max_memory_bytes: int | None = DEFAULT_MAX_MEMORY_BYTES
    max_cpu_seconds: int | None = DEFAULT_MAX_CPU_SECONDS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    network_access: bool = False
    environment: dict[str, str] = Field(default_factory=dict)


@dataclass
class CommandResult:
    """Result of a command run inside a sandbox."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: float
    resource_usage: ResourceUsage


@dataclass
class Sandbox:
    """A call-scoped execution environment."""

    id: str
    config: SandboxConfig
    working_directory: Path
    created_at: datetime = field(default_factory=datetime.now)
    process: asyncio.subprocess.Process | None = None
    released: bool = False


def _child_usage() -> tuple[float, int]:
    """CPU seconds and peak RSS (bytes) of terminated children so far."""
    if sys.platform == "win32":
        return 0.0, 0
    usage = resource.getrusage(resource.RUSAGE_CHILDREN)
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    rss = usage.ru_maxrss if sys.platform == "darwin" else usage.ru_maxrss * 1024
    return usage.ru_utime + usage.ru_stime, rss


class SandboxManager:
    """Allocates, runs and releases sandboxes.

    Example:
        >>> manager = SandboxManager()
        >>> async with manager.sandbox() as box:
        ...     result = await manager.run_command(box, "echo", ["hi"])
        >>> result.stdout
        'hi\\n'
    """

    def __init__(self, defaults: SandboxConfig | None = None, base_dir: Path | None = None):
        """Initialize sandbox manager.

        Args:
            defaults: Configuration used when a call does not supply one
            base_dir: Parent directory for sandbox working directories
                (defaults to the system temp dir)
        """
        self.defaults = defaults or SandboxConfig()
        self.base_dir = base_dir
        self._active: dict[str, Sandbox] = {}

    def create_sandbox(self, config: SandboxConfig | None = None) -> Sandbox:
        """Allocate a sandbox with a fresh working directory."""
        sandbox_id = f"sandbox-{uuid4().hex[:12]}"
        workdir = Path(tempfile.mkdtemp(prefix=f"{sandbox_id}-", dir=self.base_dir))
        sandbox = Sandbox(id=sandbox_id, config=config or self.defaults, working_directory=workdir)
        self._active[sandbox_id] = sandbox
        logger.debug(f"Created {sandbox_id} at {workdir}")
        return sandbox

    async def release(self, sandbox: Sandbox) -> None:
        """Kill any running process and remove the working directory. Idempotent."""
        if sandbox.released:
            return
        process = sandbox.process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            logger.debug(f"Killed process {process.pid} in {sandbox.id}")

        shutil.rmtree(sandbox.working_directory, ignore_errors=True)
        sandbox.released = True
        self._active.pop(sandbox.id, None)
        logger.debug(f"Released {sandbox.id}")

    @asynccontextmanager
    async def sandbox(self, config: SandboxConfig | None = None) -> AsyncIterator[Sandbox]:
        """Context manager guaranteeing release on every exit path."""
        box = self.create_sandbox(config)
        try:
            yield box
        finally:
            await self.release(box)

    def active_sandboxes(self) -> list[Sandbox]:
        return list(self._active.values())

    def validate_command(self, sandbox: Sandbox, command: str, args: list[str]) -> None:
        """Check a command against the sandbox policy.

        Raises:
            ExecutionError: permission kind for disallowed commands, paths or network use
            ValidationError: If the arguments exceed the size limits
        """
        if not command or os.sep in command or (os.altsep and os.altsep in command):
            raise ExecutionError(
                f"Command must be a bare program name, got '{command}'",
                error_kind=ExecutionErrorKind.PERMISSION,
            )
        if command not in sandbox.config.allowed_commands:
            raise ExecutionError(
                f"Command not allowed in sandbox: {command}",
                error_kind=ExecutionErrorKind.PERMISSION,
                context={"allowed_commands": sandbox.config.allowed_commands},
                suggestions=[f"Add '{command}' to the allowed commands"],
            )
        if command in NETWORK_COMMANDS and not sandbox.config.network_access:
            raise ExecutionError(
                f"Network access is disabled in sandbox: {command}",
                error_kind=ExecutionErrorKind.PERMISSION,
            )

        if len(args) > MAX_ARGS:
            raise ValidationError(f"Too many arguments: {len(args)} (max {MAX_ARGS})")
        total_length = sum(len(arg) for arg in args)
        if total_length > MAX_ARGS_LENGTH:
            raise ValidationError(
                f"Arguments too large: {total_length} bytes (max {MAX_ARGS_LENGTH})"
            )

        for arg in args:
            if arg.startswith(("/", "~")) or ".." in arg:
                self._check_path(sandbox, arg)

    def _check_path(self, sandbox: Sandbox, arg: str) -> None:
        target = (sandbox.working_directory / Path(arg).expanduser()).resolve()
        roots = [sandbox.working_directory.resolve()] + [
            Path(p).expanduser().resolve() for p in sandbox.config.allowed_paths
        ]
        if not any(target == root or target.is_relative_to(root) for root in roots):
            raise ExecutionError(
                f"Path outside sandbox: {arg}",
                error_kind=ExecutionErrorKind.PERMISSION,
                context={"allowed_paths": sandbox.config.allowed_paths},
            )

    def _environment(self, sandbox: Sandbox, extra: dict[str, str] | None) -> dict[str, str]:
        env = {
            "PATH": os.environ.get("PATH", os.defpath),
            "HOME": str(sandbox.working_directory),
            "TMPDIR": str(sandbox.working_directory),
            "LANG": os.environ.get("LANG", "C.UTF-8"),
        }
        env.update(sandbox.config.environment)
        env.update(extra or {})
        return env

    def _limits(self, config: SandboxConfig) -> Any:
        if sys.platform == "win32":
            return None
        memory, cpu = config.max_memory_bytes, config.max_cpu_seconds
        if memory is None and cpu is None:
            return None

        def apply_limits() -> None:
            if memory is not None:
                resource.setrlimit(resource.RLIMIT_AS, (memory, memory))
            if cpu is not None:
                resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu))

        return apply_limits

    async def run_command(
        self,
        sandbox: Sandbox,
        command: str,
        args: list[str] | None = None,
        environment: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run one command inside a sandbox.

        Raises:
            ExecutionError: permission (policy), resource (output ceiling) or
                runtime (non-zero exit, launch failure)
        """
        if sandbox.released:
            raise ExecutionError(f"{sandbox.id} has been released")
        if sandbox.process is not None:
            raise ExecutionError(f"{sandbox.id} already ran a command")

        args = [str(arg) for arg in (args or [])]
        self.validate_command(sandbox, command, args)

        cpu_before, _ = _child_usage()
        started = time.monotonic()
        try:
            sandbox.process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=sandbox.working_directory,
                env=self._environment(sandbox, environment),
                preexec_fn=self._limits(sandbox.config),
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ExecutionError(
                f"Failed to start '{command}': {e}",
                error_kind=ExecutionErrorKind.DEPENDENCY,
                original_error=e,
            ) from e

        stdout, stderr = await sandbox.process.communicate()
        duration_ms = (time.monotonic() - started) * 1000
        cpu_after, peak_rss = _child_usage()

        usage = ResourceUsage(
            memory_used=peak_rss,
            cpu_time=max(cpu_after - cpu_before, 0.0) * 1000,
            output_bytes=len(stdout) + len(stderr),
        )
        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")

        if len(stdout) > sandbox.config.max_output_bytes:
            raise ExecutionError(
                f"Output exceeded {sandbox.config.max_output_bytes} bytes",
                error_kind=ExecutionErrorKind.RESOURCE,
                context={"output_bytes": len(stdout)},
            )

        exit_code = sandbox.process.returncode or 0
        if exit_code != 0:
            raise ExecutionError(
                f"Command '{command}' failed with exit code {exit_code}",
                error_kind=ExecutionErrorKind.RUNTIME,
                context={"exit_code": exit_code, "stdout": stdout_text, "stderr": stderr_text[-500:]},
            )

        return CommandResult(exit_code, stdout_text, stderr_text, duration_ms, usage)


class Layer2Executor:
    """Executes layer 2 skills in a call-scoped sandbox."""

    def __init__(self, sandboxes: SandboxManager):
        self.sandboxes = sandboxes

    def sandbox_config(self, skill: SkillDefinition) -> SandboxConfig:
        """Derive a sandbox config from the manager defaults and the skill's policy.

        A skill may narrow the allowed commands and paths, never widen them.
        """
        context = skill.execution_context
        defaults = self.sandboxes.defaults
        update: dict[str, Any] = {"environment": {**defaults.environment, **context.environment}}

        security = context.security
        if security and security.allowed_commands:
            update["allowed_commands"] = [
                c for c in security.allowed_commands if c in defaults.allowed_commands
            ]
        if security and security.allowed_paths:
            update["allowed_paths"] = [
                p for p in security.allowed_paths if p in defaults.allowed_paths
            ]

        limits = context.resources
        if limits and limits.max_memory is not None:
            update["max_memory_bytes"] = min(
                limits.max_memory, defaults.max_memory_bytes or limits.max_memory
            )
        if limits and limits.max_cpu is not None:
            cpu = max(int(limits.max_cpu), 1)
            update["max_cpu_seconds"] = min(cpu, defaults.max_cpu_seconds or cpu)
        if limits and limits.max_file_size is not None:
            update["max_output_bytes"] = min(limits.max_file_size, defaults.max_output_bytes)
        return defaults.model_copy(update=update)

    async def execute(
        self,
        skill: SkillDefinition,
        params: dict[str, Any],
        usage: ResourceUsage,
        environment: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        context = skill.execution_context
        command = params.get("command") or context.command
        args = params.get("args", context.args)
        if isinstance(args, str):
            args = [args]

        async with self.sandboxes.sandbox(self.sandbox_config(skill)) as box:
            logger.debug(f"Layer 2 run '{command}' in {box.id} for skill '{skill.id}'")
            result = await self.sandboxes.run_command(box, command, list(args), environment)

        usage.memory_used = max(usage.memory_used, result.resource_usage.memory_used)
        usage.cpu_time += result.resource_usage.cpu_time
        usage.output_bytes += result.resource_usage.output_bytes
        return {
            "exit_code": result.exit_code,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "duration_ms": round(result.duration_ms, 2),
        }
