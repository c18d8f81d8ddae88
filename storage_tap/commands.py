from __future__ import annotations

import logging
import subprocess

from storage_tap.logging_utils import TRACE_LEVEL

DEFAULT_TIMEOUT_S = 30.0


class CommandError(Exception):
    """A shell command could not be launched or exited non-zero without output."""

    def __init__(self, command: str, message: str, returncode: int | None = None,
                 stderr: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """A shell command ran past its timeout and was killed."""

    def __str__(self) -> str:
        return f"{self.args[0]}: {self.stderr}"


class CommandRunner:
    """Runs shell command lines through bash with a bounded duration.

    Commands are passed as a single string because the vendor tools have to be
    started from their install directory (``cd /opt/lsi/perccli && ./perccli``)
    and some outputs are trimmed through a pipe.
    """

    def __init__(self, timeout_s: float = DEFAULT_TIMEOUT_S, shell: str = "bash") -> None:
        self.timeout_s = timeout_s
        self.shell = shell
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self, command: str) -> str:
        self.logger.debug("Executing command: %s", command)
        try:
            # subprocess.run kills the child before raising TimeoutExpired
            result = subprocess.run(
                [self.shell, "-c", command],
                check=False,
                text=True,
                capture_output=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr or ""
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            raise CommandTimeoutError(
                command,
                f"Command timed out after {self.timeout_s:g} seconds",
                stderr=stderr.strip(),
            ) from exc
        except OSError as exc:
            raise CommandError(command, f"Error starting command: {exc}") from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            # smartctl encodes drive health in its exit bits and still prints the tables
            self.logger.debug("Command failed (%s): %s", result.returncode, command)
            if stderr:
                self.logger.log(TRACE_LEVEL, "stderr: %s", stderr)
            if not result.stdout:
                raise CommandError(
                    command,
                    f"Command exited with status {result.returncode}",
                    returncode=result.returncode,
                    stderr=stderr,
                )
        if result.stdout:
            self.logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
        return result.stdout
