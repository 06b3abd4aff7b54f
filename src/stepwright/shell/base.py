"""Shell execution shared by every adapter."""

from __future__ import annotations

import abc
import locale
import logging
import re
import subprocess
import time
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = 124
NOT_EXECUTABLE_RETURNCODE = 126
NOT_FOUND_RETURNCODE = 127
STDERR_LABEL = "\nWarnings:\n"
TRUNCATION_MARKER = "\n[output truncated]"

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]


@dataclass(slots=True)
class CommandResult:
    """Outcome of one command run through a shell adapter."""

    command: str
    shell: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0
    executed: bool = True

    @property
    def succeeded(self) -> bool:
        return self.executed and not self.timed_out and self.returncode == 0

    def combined_output(self, max_bytes: int | None = None) -> str:
        """Stdout followed by labelled stderr, clipped to ``max_bytes``."""
        output = self.stdout
        if self.stderr:
            output = f"{output}{STDERR_LABEL}{self.stderr}"
        return bound_output(output.strip(), max_bytes)


class ShellAdapter(abc.ABC):
    """Runs one command string through a specific shell executable.

    Subclasses only decide how the command line is built; process
    management and result mapping live here. No failure mode raises:
    timeouts, a missing executable and unrunnable commands all come back
    as a ``CommandResult``.
    """

    executable: str

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly shell adapter name."""

    @abc.abstractmethod
    def build_argv(self, command: str) -> list[str]:
        """Argument vector that hands ``command`` to the shell."""

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.log_request(command, cwd=cwd, timeout=timeout)
        started = self.monotonic_now()
        try:
            process = subprocess.run(
                self.build_argv(command),
                capture_output=True,
                cwd=cwd,
                timeout=timeout,
                check=False,
                text=False,
            )
            result = self._result(
                command,
                started,
                returncode=process.returncode,
                stdout=normalize_output(process.stdout),
                stderr=normalize_output(process.stderr),
            )
        except subprocess.TimeoutExpired as exc:
            result = self._result(
                command,
                started,
                returncode=TIMEOUT_RETURNCODE,
                stdout=normalize_output(exc.stdout),
                stderr=normalize_output(exc.stderr),
                timed_out=True,
            )
        except FileNotFoundError:
            result = self._result(
                command,
                started,
                returncode=NOT_FOUND_RETURNCODE,
                stderr=f"{self.name} executable not found: {self.executable}",
                executed=False,
            )
        except ValueError as exc:
            # embedded NUL bytes never reach the OS
            result = self._result(
                command,
                started,
                returncode=NOT_EXECUTABLE_RETURNCODE,
                stderr=f"Command cannot be executed: {exc}",
                executed=False,
            )

        self.log_result(result)
        return result

    def _result(
        self,
        command: str,
        started: float,
        *,
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        executed: bool = True,
    ) -> CommandResult:
        return CommandResult(
            command=command,
            shell=self.name,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
            duration_seconds=self.monotonic_now() - started,
            executed=executed,
        )

    def log_request(self, command: str, *, cwd: str | None, timeout: float | None) -> None:
        LOGGER.info(
            "command_request",
            extra={
                "shell": self.name,
                "command": self._sanitize_command(command),
                "cwd": cwd,
                "timeout": timeout,
            },
        )

    def log_result(self, result: CommandResult) -> None:
        LOGGER.info(
            "command_result",
            extra={
                "shell": result.shell,
                "returncode": result.returncode,
                "timed_out": result.timed_out,
                "duration_seconds": round(result.duration_seconds, 4),
                "executed": result.executed,
                "stdout_length": len(result.stdout),
                "stderr_length": len(result.stderr),
            },
        )

    @staticmethod
    def monotonic_now() -> float:
        return time.monotonic()

    def _sanitize_command(self, command: str) -> str:
        sanitized = command
        for pattern in _SECRET_PATTERNS:
            sanitized = pattern.sub(r"\1***", sanitized)
        return sanitized


def bound_output(text: str, max_bytes: int | None) -> str:
    if max_bytes is None:
        return text
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= max_bytes:
        return text
    clipped = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return f"{clipped}{TRUNCATION_MARKER}"


def normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    for encoding in ("utf-8", "utf-8-sig", "utf-16", locale.getpreferredencoding(False), "cp1252"):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
