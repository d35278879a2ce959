"""Tests for the shell executors."""

import sys

import pytest

from project_maker.execution.shell import (
    EXIT_NOT_FOUND,
    CommandOptions,
    MockShellExecutor,
    ScriptedResponse,
    ScriptedShellExecutor,
    SubprocessShellExecutor,
    create_shell_executor,
)


def python(code: str, **kwargs) -> CommandOptions:
    return CommandOptions(args=["-c", code], **kwargs)


class TestSubprocessShellExecutor:
    """Tests for native subprocess execution."""

    @pytest.mark.asyncio
    async def test_streams_stdout_lines(self, tmp_path):
        """Test that each stdout line reaches the callback in order."""
        lines = []
        executor = SubprocessShellExecutor()

        result = await executor.execute(
            sys.executable,
            python("print('one'); print('two')", cwd=str(tmp_path), on_stdout=lines.append),
        )

        assert result.exit_code == 0
        assert result.success is True
        assert lines == ["one", "two"]
        assert result.stdout == "one\ntwo"

    @pytest.mark.asyncio
    async def test_stderr_and_exit_code(self, tmp_path):
        """Test that stderr is captured and the exit code is reported."""
        errors = []
        executor = SubprocessShellExecutor()

        result = await executor.execute(
            sys.executable,
            python(
                "import sys; sys.stderr.write('boom\\n'); sys.exit(3)",
                cwd=str(tmp_path),
                on_stderr=errors.append,
            ),
        )

        assert result.exit_code == 3
        assert result.success is False
        assert errors == ["boom"]

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self, tmp_path):
        """Test that coroutine callbacks are awaited per line."""
        seen = []

        async def on_stdout(line):
            seen.append(line.upper())

        executor = SubprocessShellExecutor()
        await executor.execute(sys.executable, python("print('hi')", cwd=str(tmp_path), on_stdout=on_stdout))

        assert seen == ["HI"]

    @pytest.mark.asyncio
    async def test_missing_program(self, tmp_path):
        """Test that an unknown program reports exit code 127."""
        errors = []
        executor = SubprocessShellExecutor()

        result = await executor.execute(
            "definitely-not-a-real-program-xyz",
            CommandOptions(cwd=str(tmp_path), on_stderr=errors.append),
        )

        assert result.exit_code == EXIT_NOT_FOUND
        assert "definitely-not-a-real-program-xyz" in errors[0]

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, tmp_path):
        """Test that a missing cwd fails with exit code 1 without launching."""
        executor = SubprocessShellExecutor()

        result = await executor.execute(sys.executable, python("print('x')", cwd=str(tmp_path / "missing")))

        assert result.exit_code == 1
        assert "does not exist" in result.stderr
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_environment_overrides(self, tmp_path):
        """Test that env overrides are visible to the child process."""
        executor = SubprocessShellExecutor()

        result = await executor.execute(
            sys.executable,
            python(
                "import os; print(os.environ['PM_TEST_VALUE'])",
                cwd=str(tmp_path),
                env={"PM_TEST_VALUE": "kanban"},
            ),
        )

        assert result.stdout == "kanban"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        """Test that a timed-out command reports no exit code."""
        executor = SubprocessShellExecutor()

        result = await executor.execute(
            sys.executable,
            python("import time; time.sleep(30)", cwd=str(tmp_path), timeout=0.2),
        )

        assert result.exit_code is None
        assert result.timed_out is True
        assert "timed out" in result.stderr


class TestMockShellExecutor:
    """Tests for the simulated executor."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Test the synthetic success path."""
        lines = []
        executor = MockShellExecutor(failure_rate=0.0, min_latency=0, max_latency=0)

        result = await executor.execute("npm", CommandOptions(args=["install"], on_stdout=lines.append))

        assert result.exit_code == 0
        assert lines == ["Mock success: npm install executed successfully."]

    @pytest.mark.asyncio
    async def test_failure(self):
        """Test the synthetic failure path."""
        errors = []
        executor = MockShellExecutor(failure_rate=1.0, min_latency=0, max_latency=0)

        result = await executor.execute("npm", CommandOptions(args=["install"], on_stderr=errors.append))

        assert result.exit_code == 1
        assert errors == ["Mock error: Command 'npm' failed."]

    @pytest.mark.asyncio
    async def test_seed_is_deterministic(self):
        """Test that the same seed yields the same outcomes."""
        first = MockShellExecutor(failure_rate=0.5, min_latency=0, max_latency=0, seed=7)
        second = MockShellExecutor(failure_rate=0.5, min_latency=0, max_latency=0, seed=7)

        codes_a = [(await first.execute("ls")).exit_code for _ in range(10)]
        codes_b = [(await second.execute("ls")).exit_code for _ in range(10)]

        assert codes_a == codes_b


class TestScriptedShellExecutor:
    """Tests for the scripted executor."""

    @pytest.mark.asyncio
    async def test_lookup_order(self):
        """Test full command line first, then program, then default."""
        executor = ScriptedShellExecutor(
            responses={
                "npm test": ScriptedResponse(exit_code=2, stderr=["failing test"]),
                "npm": ScriptedResponse(stdout=["added 1 package"]),
            },
            default=ScriptedResponse(exit_code=5),
        )

        assert (await executor.execute("npm", CommandOptions(args=["test"]))).exit_code == 2
        assert (await executor.execute("npm", CommandOptions(args=["install"]))).stdout == "added 1 package"
        assert (await executor.execute("make")).exit_code == 5

    @pytest.mark.asyncio
    async def test_records_calls_and_emits_lines(self):
        """Test call recording and callback emission."""
        out, err = [], []
        executor = ScriptedShellExecutor(default=ScriptedResponse(stdout=["a", "b"], stderr=["warn"]))

        await executor.execute(
            "git",
            CommandOptions(args=["status"], cwd="/work", on_stdout=out.append, on_stderr=err.append),
        )

        assert executor.calls == [("git", ["status"], "/work")]
        assert executor.command_lines == ["git status"]
        assert out == ["a", "b"]
        assert err == ["warn"]


class TestCreateShellExecutor:
    """Tests for the executor factory."""

    def test_native(self):
        """Test that native mode builds a subprocess executor."""
        assert isinstance(create_shell_executor("native"), SubprocessShellExecutor)

    def test_mock(self):
        """Test that mock mode passes through its parameters."""
        executor = create_shell_executor("mock", failure_rate=0.2, min_latency=0.1, max_latency=0.3)

        assert isinstance(executor, MockShellExecutor)
        assert executor.failure_rate == 0.2
        assert executor.max_latency == 0.3

    def test_unknown_mode(self):
        """Test that an unknown mode raises ValueError."""
        with pytest.raises(ValueError):
            create_shell_executor("docker")
