"""Unit tests for layer 2 sandboxed command execution."""

import asyncio
import sys

import pytest

from skillcore.exceptions import ExecutionError, ExecutionErrorKind, ValidationError
from skillcore.execution.layer2 import (
    MAX_ARGS,
    Layer2Executor,
    SandboxConfig,
    SandboxManager,
)
from skillcore.execution.models import ResourceUsage
from tests.helpers.builders import build_skill

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX commands required")


@pytest.fixture
def manager(tmp_path):
    """Sandbox manager allowing a few harmless commands."""
    config = SandboxConfig(
        allowed_commands=["echo", "cat", "ls", "sleep", "false", "curl"],
        allowed_paths=[str(tmp_path / "shared")],
    )
    return SandboxManager(config, base_dir=tmp_path)


@pytest.mark.unit
@pytest.mark.execution
class TestSandboxManager:
    """Tests for SandboxManager."""

    @pytest.mark.asyncio
    async def test_run_echo(self, manager):
        """Test an allowed command runs and its output is captured."""
        async with manager.sandbox() as box:
            result = await manager.run_command(box, "echo", ["hello", "world"])

        assert result.exit_code == 0
        assert result.stdout == "hello world\n"
        assert result.resource_usage.output_bytes == len("hello world\n")

    @pytest.mark.asyncio
    async def test_sandbox_released_after_context(self, manager):
        """Test the working directory is removed when the context exits."""
        async with manager.sandbox() as box:
            workdir = box.working_directory
            assert workdir.is_dir()
            assert manager.active_sandboxes() == [box]

        assert not workdir.exists()
        assert box.released
        assert manager.active_sandboxes() == []

    @pytest.mark.asyncio
    async def test_one_command_per_sandbox(self, manager):
        """Test a sandbox refuses a second command."""
        async with manager.sandbox() as box:
            await manager.run_command(box, "echo", ["once"])
            with pytest.raises(ExecutionError, match="already ran"):
                await manager.run_command(box, "echo", ["twice"])

    @pytest.mark.asyncio
    async def test_released_sandbox_refuses_commands(self, manager):
        """Test commands cannot run in a released sandbox."""
        box = manager.create_sandbox()
        await manager.release(box)
        await manager.release(box)

        with pytest.raises(ExecutionError, match="released"):
            await manager.run_command(box, "echo")

    @pytest.mark.asyncio
    async def test_disallowed_command(self, manager):
        """Test commands outside the allow-list are a permission failure."""
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError) as exc_info:
                await manager.run_command(box, "rm", ["-rf", "x"])

        assert exc_info.value.error_kind == ExecutionErrorKind.PERMISSION

    @pytest.mark.asyncio
    async def test_command_with_path_rejected(self, manager):
        """Test commands must be bare program names."""
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError) as exc_info:
                await manager.run_command(box, "/bin/echo", ["hi"])

        assert exc_info.value.error_kind == ExecutionErrorKind.PERMISSION

    @pytest.mark.asyncio
    async def test_network_command_needs_network_access(self, manager):
        """Test network tools are refused without network access."""
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError, match="Network access"):
                manager.validate_command(box, "curl", ["https://example.com"])

    @pytest.mark.asyncio
    async def test_path_outside_sandbox_rejected(self, manager):
        """Test absolute path arguments must stay inside allowed roots."""
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError, match="Path outside sandbox"):
                manager.validate_command(box, "cat", ["/etc/passwd"])
            with pytest.raises(ExecutionError, match="Path outside sandbox"):
                manager.validate_command(box, "cat", ["../../secret"])

    @pytest.mark.asyncio
    async def test_allowed_path_accepted(self, manager, tmp_path):
        """Test paths under an allowed root pass validation."""
        async with manager.sandbox() as box:
            manager.validate_command(box, "cat", [str(tmp_path / "shared" / "data.txt")])

    @pytest.mark.asyncio
    async def test_argument_limits(self, manager):
        """Test argument count is bounded."""
        async with manager.sandbox() as box:
            with pytest.raises(ValidationError, match="Too many arguments"):
                manager.validate_command(box, "echo", ["x"] * (MAX_ARGS + 1))

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_runtime_error(self, manager):
        """Test failing commands raise a runtime error with the exit code."""
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError) as exc_info:
                await manager.run_command(box, "false")

        assert exc_info.value.error_kind == ExecutionErrorKind.RUNTIME
        assert exc_info.value.context["exit_code"] != 0

    @pytest.mark.asyncio
    async def test_output_ceiling(self, tmp_path):
        """Test output beyond the ceiling is a resource failure."""
        manager = SandboxManager(
            SandboxConfig(allowed_commands=["echo"], max_output_bytes=4), base_dir=tmp_path
        )
        async with manager.sandbox() as box:
            with pytest.raises(ExecutionError) as exc_info:
                await manager.run_command(box, "echo", ["too long"])

        assert exc_info.value.error_kind == ExecutionErrorKind.RESOURCE

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, manager):
        """Test cancelling a running command releases the sandbox."""

        async def run_sleep():
            async with manager.sandbox() as box:
                await manager.run_command(box, "sleep", ["5"])

        task = asyncio.create_task(run_sleep())
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert manager.active_sandboxes() == []

    @pytest.mark.asyncio
    async def test_environment_is_minimal(self, manager, monkeypatch):
        """Test the host environment does not leak into the sandbox."""
        monkeypatch.setenv("SKILLCORE_SECRET", "hunter2")
        config = manager.defaults.model_copy(update={"allowed_commands": ["env"]})

        async with manager.sandbox(config) as box:
            result = await manager.run_command(box, "env", [], {"EXTRA": "1"})

        assert "SKILLCORE_SECRET" not in result.stdout
        assert "EXTRA=1" in result.stdout
        assert f"HOME={box.working_directory}" in result.stdout


@pytest.mark.unit
@pytest.mark.execution
class TestLayer2Executor:
    """Tests for Layer2Executor."""

    @pytest.mark.asyncio
    async def test_execute_returns_command_output(self, manager, echo_skill):
        """Test the executor returns exit code and output."""
        executor = Layer2Executor(manager)
        usage = ResourceUsage()

        output = await executor.execute(echo_skill, {"args": ["hi"]}, usage)

        assert output["exit_code"] == 0
        assert output["stdout"] == "hi\n"
        assert usage.output_bytes == 3
        assert manager.active_sandboxes() == []

    @pytest.mark.asyncio
    async def test_string_args_accepted(self, manager, echo_skill):
        """Test a single string argument is wrapped in a list."""
        output = await Layer2Executor(manager).execute(echo_skill, {"args": "solo"}, ResourceUsage())

        assert output["stdout"] == "solo\n"

    def test_skill_policy_narrows_defaults(self, manager):
        """Test skills can narrow, never widen, the allowed commands."""
        skill = build_skill(
            "narrow",
            layer=2,
            command="echo",
            security={"sandboxed": True, "allowed_commands": ["echo", "rm"]},
            resources={"max_file_size": 10},
        )

        config = Layer2Executor(manager).sandbox_config(skill)

        assert config.allowed_commands == ["echo"]
        assert config.max_output_bytes == 10
