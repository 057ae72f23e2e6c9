"""Synchronous external command execution.

Runs CLI tools (kubectl, aws) with a hard timeout and an output size cap.
Standard output is spooled to a temporary file whose size is checked
while the command runs, so an oversized response is stopped early and
never read into memory.
"""

import json
import os
import shlex
import subprocess
import tempfile
import time
from collections.abc import Sequence
from typing import Any

from fleetsync.common.config import CommandSettings, get_settings
from fleetsync.common.exceptions import (
    CommandFailedError,
    CommandOutputLimitError,
    CommandTimeoutError,
)
from fleetsync.common.logging import get_logger

logger = get_logger(__name__)

# Enough stderr to explain a failure without dumping a whole log
STDERR_TAIL_BYTES = 4096

# How often a running command's output size is checked
POLL_INTERVAL_SECONDS = 0.1


def _read_tail(handle: Any, limit: int) -> str:
    size = handle.seek(0, os.SEEK_END)
    handle.seek(max(0, size - limit))
    return handle.read().decode("utf-8", errors="replace").strip()


class CommandRunner:
    """Run external commands and capture their standard output."""

    def __init__(self, settings: CommandSettings | None = None) -> None:
        self._settings = settings or get_settings().command

    @property
    def timeout_seconds(self) -> float:
        return self._settings.timeout_seconds

    @property
    def max_output_bytes(self) -> int:
        return self._settings.max_output_bytes

    def run(self, args: Sequence[str]) -> str:
        """Run a command and return its standard output.

        Args:
            args: Program and arguments. Never passed through a shell.

        Returns:
            Decoded standard output.

        Raises:
            CommandFailedError: Program missing or non-zero exit status.
            CommandTimeoutError: Program ran longer than the timeout.
            CommandOutputLimitError: Output exceeded the size cap.
        """
        argv = [str(arg) for arg in args]
        display = shlex.join(argv)
        logger.debug("Running command", command=display, timeout=self.timeout_seconds)

        with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
            try:
                process = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                )
            except OSError as exc:
                raise CommandFailedError(
                    f"Could not start {argv[0]}: {exc}",
                    details={"command": display},
                    cause=exc,
                ) from exc

            try:
                returncode = self._wait(process, out, argv[0], display)
            except BaseException:
                if process.poll() is None:
                    process.kill()
                    process.wait()
                raise

            if returncode != 0:
                stderr = _read_tail(err, STDERR_TAIL_BYTES)
                raise CommandFailedError(
                    f"{argv[0]} exited with status {returncode}: {stderr or 'no error output'}",
                    details={"command": display, "returncode": returncode},
                )

            size = out.seek(0, os.SEEK_END)
            self._check_size(size, argv[0], display)
            out.seek(0)
            return out.read().decode("utf-8", errors="replace")

    def _check_size(self, size: int, program: str, display: str) -> None:
        if size > self.max_output_bytes:
            raise CommandOutputLimitError(
                f"{program} produced {size} bytes, limit is {self.max_output_bytes}",
                details={"command": display, "size": size},
            )

    def _wait(self, process: subprocess.Popen, out: Any, program: str, display: str) -> int:
        """Wait for exit, checking the spooled output size while the program runs."""
        deadline = time.monotonic() + self.timeout_seconds
        while True:
            remaining = deadline - time.monotonic()
            try:
                return process.wait(timeout=min(POLL_INTERVAL_SECONDS, max(remaining, 0)))
            except subprocess.TimeoutExpired as exc:
                self._check_size(os.fstat(out.fileno()).st_size, program, display)
                if time.monotonic() >= deadline:
                    raise CommandTimeoutError(
                        f"{program} timed out after {self.timeout_seconds:g}s",
                        details={"command": display},
                        cause=exc,
                    ) from exc

    def run_json(self, args: Sequence[str]) -> Any:
        """Run a command and parse its standard output as JSON."""
        output = self.run(args)
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise CommandFailedError(
                f"{args[0]} returned invalid JSON: {exc}",
                details={"command": shlex.join(str(arg) for arg in args)},
                cause=exc,
            ) from exc
