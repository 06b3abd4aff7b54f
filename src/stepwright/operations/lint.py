"""Post-write lint pass for recognized source files."""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from stepwright.shell import ShellAdapter

LOGGER = logging.getLogger(__name__)

MAX_DIAGNOSTIC_CHARS = 4000


class Linter:
    """Checks freshly written files and returns a diagnostic on failure.

    Python sources are always compiled in memory. Other extensions are
    checked only when a command is configured for them, e.g.
    ``{".ts": "npx eslint {path}"}``; the command runs from the project root.
    """

    def __init__(
        self,
        *,
        shell: ShellAdapter | None = None,
        project_root: Path | None = None,
        commands: dict[str, str] | None = None,
        timeout: float | None = 120.0,
        enabled: bool = True,
    ) -> None:
        self.shell = shell
        self.project_root = project_root
        self.commands = {key.lower(): value for key, value in (commands or {}).items()}
        self.timeout = timeout
        self.enabled = enabled

    def check(self, path: Path, content: str) -> str | None:
        if not self.enabled:
            return None
        extension = path.suffix.lower()
        if extension == ".py":
            diagnostic = self._compile_python(path, content)
            if diagnostic:
                return diagnostic
        template = self.commands.get(extension)
        if template and self.shell is not None:
            return self._run_command(self.shell, template, path)
        return None

    @staticmethod
    def _compile_python(path: Path, content: str) -> str | None:
        try:
            compile(content, str(path), "exec")
        except SyntaxError as exc:
            return f"Lint failed for {path.name}: SyntaxError: {exc.msg} (line {exc.lineno})"
        except ValueError as exc:
            return f"Lint failed for {path.name}: {exc}"
        return None

    def _run_command(self, shell: ShellAdapter, template: str, path: Path) -> str | None:
        quoted = shlex.quote(str(path)) if shell.name == "bash" else f'"{path}"'
        command = template.replace("{path}", quoted)
        cwd = str(self.project_root) if self.project_root else None
        result = shell.execute(command, cwd=cwd, timeout=self.timeout)
        if result.succeeded:
            return None

        LOGGER.info(
            "lint_failed",
            extra={"path": str(path), "returncode": result.returncode, "timed_out": result.timed_out},
        )
        output = "\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part)
        if result.timed_out:
            output = f"lint command timed out after {self.timeout}s\n{output}".strip()
        if len(output) > MAX_DIAGNOSTIC_CHARS:
            output = f"{output[:MAX_DIAGNOSTIC_CHARS]}..."
        return f"Lint failed for {path.name} ({command}):\n{output or 'no output'}"
