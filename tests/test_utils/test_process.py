"""
Tests for external command execution.

Tests cover:
- Output capture (stdout and stderr combined)
- Exit codes
- Deadline enforcement and process kill
- Cancellation
- Temporary file cleanup
"""

import asyncio
import os
import sys

import pytest

from w3store.errors.storage import StoreTimeoutError
from w3store.utils.process import CommandResult, run_command, temporary_path


def _python(code: str) -> list:
    return [sys.executable, "-c", code]


# =============================================================================
# run_command Tests
# =============================================================================


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_captures_output(self) -> None:
        """Test stdout and stderr are combined."""
        result = await run_command(
            _python("import sys; print('root CID: bafy'); print('warn', file=sys.stderr)"),
            timeout_ms=10000,
        )

        assert result.ok
        assert "root CID: bafy" in result.output
        assert "warn" in result.output

    @pytest.mark.asyncio
    async def test_exit_code(self) -> None:
        """Test a non-zero exit is reported, not raised."""
        result = await run_command(_python("import sys; sys.exit(3)"), timeout_ms=10000)
        assert result.returncode == 3
        assert not result.ok

    @pytest.mark.asyncio
    async def test_environment(self) -> None:
        """Test the child sees the given environment."""
        env = dict(os.environ, W3_TEST_VALUE="from-parent")
        result = await run_command(
            _python("import os; print(os.environ['W3_TEST_VALUE'])"),
            timeout_ms=10000,
            env=env,
        )
        assert result.output.strip() == "from-parent"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self) -> None:
        """Test the deadline raises StoreTimeoutError."""
        with pytest.raises(StoreTimeoutError) as exc_info:
            await run_command(
                _python("import time; time.sleep(30)"),
                timeout_ms=200,
                operation="sleeper",
            )

        assert exc_info.value.timeout_ms == 200
        assert exc_info.value.operation == "sleeper"
        assert "sleeper timed out after 200ms" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        """Test cancelling the caller cancels the command."""
        task = asyncio.create_task(
            run_command(_python("import time; time.sleep(30)"), timeout_ms=60000)
        )
        await asyncio.sleep(0.2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        """Test a missing binary raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            await run_command(["w3store-no-such-binary"], timeout_ms=1000)


class TestCommandResult:
    """Tests for CommandResult."""

    def test_ok(self) -> None:
        """Test ok reflects the exit code."""
        assert CommandResult(returncode=0, output="").ok
        assert not CommandResult(returncode=1, output="").ok


# =============================================================================
# temporary_path Tests
# =============================================================================


class TestTemporaryPath:
    """Tests for temporary_path."""

    def test_writes_and_removes(self) -> None:
        """Test content is written and the file removed on exit."""
        with temporary_path("w3s-test", b"payload") as path:
            with open(path, "rb") as f:
                assert f.read() == b"payload"
        assert not os.path.exists(path)

    def test_removed_on_error(self) -> None:
        """Test the file is removed when the body raises."""
        with pytest.raises(RuntimeError):
            with temporary_path("w3s-test") as path:
                raise RuntimeError("boom")
        assert not os.path.exists(path)

    def test_tolerates_early_removal(self) -> None:
        """Test a file already removed by the body is not an error."""
        with temporary_path("w3s-test") as path:
            os.remove(path)
        assert not os.path.exists(path)
