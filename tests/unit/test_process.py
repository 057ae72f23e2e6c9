"""Unit tests for external command execution."""

import sys
import time

import pytest

from fleetsync.common.config import CommandSettings
from fleetsync.common.exceptions import (
    CommandFailedError,
    CommandOutputLimitError,
    CommandTimeoutError,
)
from fleetsync.common.process import CommandRunner


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.unit
class TestCommandRunner:
    """Test cases for CommandRunner."""

    @pytest.fixture
    def runner(self):
        return CommandRunner(CommandSettings(timeout_seconds=10.0, max_output_bytes=1024))

    def test_returns_stdout(self, runner):
        assert runner.run(python("print('hello')")).strip() == "hello"

    def test_arguments_are_not_shell_expanded(self, runner):
        output = runner.run(python("import sys; print(sys.argv[1])") + ["$HOME; echo x"])
        assert output.strip() == "$HOME; echo x"

    def test_non_zero_exit(self, runner):
        with pytest.raises(CommandFailedError) as exc_info:
            runner.run(python("import sys; sys.stderr.write('boom'); sys.exit(3)"))

        assert "boom" in exc_info.value.message
        assert exc_info.value.details["returncode"] == 3

    def test_missing_program(self, runner):
        with pytest.raises(CommandFailedError, match="Could not start"):
            runner.run(["fleetsync-no-such-binary"])

    def test_timeout(self):
        runner = CommandRunner(CommandSettings(timeout_seconds=1.0))

        with pytest.raises(CommandTimeoutError):
            runner.run(python("import time; time.sleep(30)"))

    def test_output_limit(self, runner):
        with pytest.raises(CommandOutputLimitError) as exc_info:
            runner.run(python("print('x' * 5000)"))

        assert exc_info.value.details["size"] > 1024

    def test_output_limit_stops_running_program(self, runner):
        started = time.monotonic()

        with pytest.raises(CommandOutputLimitError):
            runner.run(
                python("import sys, time; sys.stdout.write('x' * 5000); sys.stdout.flush(); time.sleep(30)")
            )

        assert time.monotonic() - started < 5

    def test_run_json(self, runner):
        assert runner.run_json(python("print('{\"items\": [1, 2]}')")) == {"items": [1, 2]}

    def test_run_json_rejects_invalid_output(self, runner):
        with pytest.raises(CommandFailedError, match="invalid JSON"):
            runner.run_json(python("print('not json')"))

    def test_settings_are_exposed(self, runner):
        assert runner.timeout_seconds == 10.0
        assert runner.max_output_bytes == 1024
