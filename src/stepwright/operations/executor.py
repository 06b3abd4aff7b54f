"""Filesystem and shell primitives the model can request, one per step."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stepwright.agent.models import Decision, DirectoryEntry, OperationKind, OperationResult
from stepwright.agent.protocol import missing_payload
from stepwright.errors import PathOutsideProjectError
from stepwright.shell import ShellAdapter

from .lint import Linter
from .paths import display_path, expand_braces, is_excluded, normalize_root, resolve_path

LOGGER = logging.getLogger(__name__)

DEFAULT_SCAN_PATTERN = "**/*"
DEPENDENCY_DIRS = frozenset({"node_modules", ".venv", "venv", "vendor", "bower_components"})
VCS_DIRS = frozenset({".git", ".hg", ".svn"})
BUILD_CACHE_DIRS = frozenset(
    {
        ".next",
        ".nuxt",
        ".turbo",
        ".cache",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        "dist",
        "build",
    }
)
EXCLUDED_DIR_NAMES = DEPENDENCY_DIRS | VCS_DIRS | BUILD_CACHE_DIRS


class OperationExecutor:
    """Runs operations against a fixed project root and reports uniform results.

    No primitive raises for resource problems: missing files, failing
    commands, timeouts and paths outside the root all come back as
    ``OperationResult(success=False, error=...)``.
    """

    def __init__(
        self,
        *,
        project_root: str | Path,
        shell: ShellAdapter,
        command_timeout: float | None = 120.0,
        max_output_bytes: int = 10 * 1024 * 1024,
        linter: Linter | None = None,
        excluded_subtrees: tuple[str, ...] = ("components/ui",),
    ) -> None:
        self.project_root = normalize_root(project_root)
        self.shell = shell
        self.command_timeout = command_timeout
        self.max_output_bytes = max_output_bytes
        self.linter = linter if linter is not None else Linter(
            shell=shell,
            project_root=self.project_root,
            timeout=command_timeout,
        )
        self.excluded_subtrees = tuple(item.strip("/") for item in excluded_subtrees if item.strip("/"))

    def resolve(self, path: str) -> Path:
        return resolve_path(self.project_root, path)

    def dispatch(self, decision: Decision) -> OperationResult:
        """Execute the single operation named by ``decision``."""
        operation = decision.operation
        if operation is None:
            return OperationResult.failure("No operation specified", path=decision.path)

        missing = missing_payload(decision)
        if missing:
            LOGGER.warning(
                "operation_payload_missing",
                extra={"operation": operation.value, "error": missing},
            )
            return OperationResult.failure(missing, path=decision.path)

        LOGGER.info("operation_started", extra={"operation": operation.value, "target": decision.path})
        try:
            result = self._dispatch(operation, decision)
        except PathOutsideProjectError as exc:
            result = OperationResult.failure(str(exc), path=decision.path)
        except OSError as exc:
            result = OperationResult.failure(_describe_os_error(exc), path=decision.path)
        except Exception as exc:
            LOGGER.exception("operation_crashed", extra={"operation": operation.value})
            result = OperationResult.failure(
                f"{operation.value} failed: {exc.__class__.__name__}: {exc}",
                path=decision.path,
            )
        LOGGER.info(
            "operation_finished",
            extra={"operation": operation.value, "success": result.success, "error": result.error},
        )
        return result

    def _dispatch(self, operation: OperationKind, decision: Decision) -> OperationResult:
        match operation:
            case OperationKind.READ_FILE:
                return self.read_file(decision.path)
            case OperationKind.WRITE_FILE:
                return self.write_file(decision.path, decision.file_content or "")
            case OperationKind.DELETE_FILE:
                return self.delete_file(decision.path)
            case OperationKind.READ_DIRECTORY:
                return self.list_directory(decision.path)
            case OperationKind.CREATE_DIRECTORY:
                return self.create_directory(decision.path)
            case OperationKind.EXECUTE_COMMAND:
                return self.run_command(decision.command or "", decision.path)
            case OperationKind.SCAN_PROJECT:
                return self.scan_project(decision.path)
        return OperationResult.failure(f"Unknown operation: {operation}", path=decision.path)

    def read_file(self, path: str) -> OperationResult:
        target = self.resolve(path)
        if not target.is_file():
            return OperationResult.failure("File not found", path=path)
        raw = target.read_bytes()
        return OperationResult(
            success=True,
            path=path,
            file_content=raw.decode("utf-8", errors="replace"),
            byte_size=len(raw),
        )

    def write_file(self, path: str, content: str) -> OperationResult:
        target = self.resolve(path)
        try:
            encoded = content.encode("utf-8")
        except UnicodeEncodeError as exc:
            return OperationResult.failure(f"fileContent is not valid UTF-8 text: {exc.reason}", path=path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(encoded)
        written = target.read_bytes().decode("utf-8", errors="replace")
        line_count = len(content.split("\n"))

        diagnostic = self.linter.check(target, written)
        if diagnostic:
            return OperationResult(
                success=False,
                path=path,
                error=diagnostic,
                file_content=written,
                line_count=line_count,
            )
        return OperationResult(success=True, path=path, file_content=written, line_count=line_count)

    def delete_file(self, path: str) -> OperationResult:
        target = self.resolve(path)
        if not target.is_file() and not target.is_symlink():
            return OperationResult.failure("File not found", path=path)
        target.unlink()
        return OperationResult(success=True, path=path)

    def list_directory(self, path: str) -> OperationResult:
        target = self.resolve(path)
        if not target.is_dir():
            return OperationResult.failure("Directory not found", path=path)
        entries = [
            DirectoryEntry(
                path=display_path(self.project_root, child),
                kind="directory" if child.is_dir() else "file",
            )
            for child in sorted(target.iterdir(), key=lambda item: item.name)
        ]
        return OperationResult(success=True, path=path, directory_list=entries)

    def create_directory(self, path: str) -> OperationResult:
        target = self.resolve(path)
        if target.exists() and not target.is_dir():
            return OperationResult.failure("Path exists and is not a directory", path=path)
        target.mkdir(parents=True, exist_ok=True)
        return OperationResult(success=True, path=path)

    def run_command(self, command: str, working_dir: str | None = None) -> OperationResult:
        cwd = self.resolve(working_dir) if working_dir else self.project_root
        if not cwd.is_dir():
            return OperationResult.failure("Working directory not found", path=working_dir)

        result = self.shell.execute(command, cwd=str(cwd), timeout=self.command_timeout)
        output = result.combined_output(self.max_output_bytes)
        if result.timed_out:
            return OperationResult.failure(
                f"Command timed out after {self.command_timeout or 0:g}s",
                path=working_dir,
                command_output=output,
                exit_code=result.returncode,
            )
        if not result.executed:
            return OperationResult.failure(
                result.stderr or f"Command could not be started (code {result.returncode})",
                path=working_dir,
                exit_code=result.returncode,
            )
        if not result.succeeded:
            return OperationResult.failure(
                f"Command exited with code {result.returncode}",
                path=working_dir,
                command_output=output,
                exit_code=result.returncode,
            )
        return OperationResult(
            success=True,
            path=working_dir,
            command_output=output,
            exit_code=result.returncode,
        )

    def scan_project(self, pattern: str | None = None) -> OperationResult:
        requested = (pattern or "").strip()
        if requested in {"", ".", "./"}:
            requested = DEFAULT_SCAN_PATTERN

        patterns = expand_braces(requested)
        for candidate in patterns:
            if Path(candidate).is_absolute() or ".." in Path(candidate).parts:
                return OperationResult.failure(
                    "Scan patterns must be relative to the project root",
                    path=requested,
                )

        seen: dict[str, DirectoryEntry] = {}
        try:
            for candidate in patterns:
                for match in self.project_root.glob(candidate):
                    relative = display_path(self.project_root, match)
                    if relative == "." or relative in seen:
                        continue
                    if is_excluded(relative, EXCLUDED_DIR_NAMES, self.excluded_subtrees):
                        continue
                    seen[relative] = DirectoryEntry(
                        path=relative,
                        kind="directory" if match.is_dir() else "file",
                    )
        except (ValueError, NotImplementedError) as exc:
            return OperationResult.failure(f"Invalid glob pattern: {exc}", path=requested)

        entries = [seen[key] for key in sorted(seen)]
        return OperationResult(success=True, path=requested, directory_list=entries)


def _describe_os_error(exc: OSError) -> str:
    if exc.strerror and exc.filename:
        return f"{exc.strerror}: {os.fsdecode(exc.filename)}"
    return str(exc) or exc.__class__.__name__
