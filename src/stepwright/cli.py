"""Command-line interface for stepwright."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import cast

from .agent.loop import StepEngine
from .agent.models import Decision, OperationResult, RunOutcome, RunStatus
from .agent.session import SessionController
from .config import AppConfig
from .errors import ConfigurationError
from .llm.client import LLMClient
from .operations import Linter, OperationExecutor
from .shell import create_shell_adapter

LOGGER = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit", "q"}
HELP_WORDS = {"help", "?"}
CLEAR_WORDS = {"clear", "cls"}
HISTORY_WORDS = {"history", "h"}
RULE = "-" * 60


class CLIArgs(argparse.Namespace):
    task: str | None
    working_directory: str | None
    max_steps: int | None
    verbose: bool


class ConsoleObserver:
    """Narrates each step on stdout before and after it runs."""

    def task_started(self, task: str) -> None:
        print(RULE)
        print(f"Task: {task}")
        print(RULE)

    def decision_received(self, step: int, decision: Decision) -> None:
        print(f"\n[{step}] Agent: {decision.explanation}")
        if decision.operation is not None:
            print(f"    -> {_describe_operation(decision)}")

    def operation_finished(self, step: int, decision: Decision, result: OperationResult) -> None:
        if result.success:
            print(f"    ok: {_summarize_result(result)}")
            return
        print(f"    failed: {_first_line(result.error or 'unknown error')}")

    def decision_rejected(self, step: int, result: OperationResult) -> None:
        print(f"\n[{step}] Model response rejected: {_first_line(result.error or '')}")

    def retry_scheduled(self, attempt: int, max_attempts: int, error: BaseException, delay: float) -> None:
        print(f"    model call failed ({attempt}/{max_attempts}): {error}; retrying in {delay:g}s")

    def run_finished(self, outcome: RunOutcome) -> None:
        label = {
            RunStatus.COMPLETED: "Completed",
            RunStatus.FAILED: "Failed",
            RunStatus.CAPPED_OUT: "Incomplete",
        }[outcome.status]
        print(f"\n{label}: {outcome.message}")
        print(f"Operations: {outcome.steps}  Time: {outcome.duration_seconds:.1f}s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepwright",
        description="Step-by-step AI agent that implements features in a project",
    )
    parser.add_argument(
        "--cwd",
        dest="working_directory",
        help=(
            "Project root the agent operates on. "
            "Takes precedence over config/env project_root values."
        ),
    )
    parser.add_argument(
        "--max-steps",
        dest="max_steps",
        type=int,
        help="Maximum model decisions per task before the run stops as incomplete.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("task", nargs="?", help="Run a single task and exit")
    return parser


def main() -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args())
    config = AppConfig.from_env()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        api_key = config.require_api_key()
    except ConfigurationError as exc:
        print(f"Fatal: {exc}")
        return 2

    configured_root = (
        args.working_directory if args.working_directory is not None else config.project_root
    )
    project_root = Path(configured_root).expanduser().resolve()
    if not project_root.exists() or not project_root.is_dir():
        print(f"Invalid project root directory: {configured_root}")
        return 1

    session = build_session(config, project_root=project_root, api_key=api_key, max_steps=args.max_steps)
    LOGGER.debug("session_ready", extra={"project_root": str(project_root), "model": config.model})

    if args.task:
        try:
            outcome = session.run_task(args.task)
        except KeyboardInterrupt:
            print()
            return 0
        return 0 if outcome.completed else 1
    return run_repl(session, project_root)


def build_session(
    config: AppConfig,
    *,
    project_root: Path,
    api_key: str,
    max_steps: int | None = None,
) -> SessionController:
    adapter = create_shell_adapter(config.shell)
    log_dir = Path(config.log_dir).expanduser().resolve()
    excluded_subtrees = tuple(config.scan_excludes)
    if log_dir.is_relative_to(project_root.resolve()):
        # session logs must not show up in project scans
        excluded_subtrees += (log_dir.relative_to(project_root.resolve()).as_posix(),)
    linter = Linter(
        shell=adapter,
        project_root=project_root,
        commands=config.lint_commands,
        timeout=config.command_timeout,
        enabled=config.lint_enabled,
    )
    executor = OperationExecutor(
        project_root=project_root,
        shell=adapter,
        command_timeout=config.command_timeout,
        max_output_bytes=config.max_output_bytes,
        linter=linter,
        excluded_subtrees=excluded_subtrees,
    )
    client = LLMClient(
        api_key=api_key,
        model=config.model,
        api_url=config.api_url,
        timeout=config.request_timeout,
        reasoning_effort=config.reasoning_effort,
    )
    engine = StepEngine(
        client=client,
        executor=executor,
        system_instruction=config.system_prompt,
        max_steps=max_steps if max_steps and max_steps > 0 else config.max_steps,
        step_delay=config.step_delay,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        strict_decisions=config.strict_decisions,
        observer=ConsoleObserver(),
        log_dir=log_dir,
    )
    return SessionController(engine, keep_history=config.keep_history)


def run_repl(session: SessionController, project_root: Path) -> int:
    _show_header()
    print('Type "help" for available commands or describe what you need.')
    prompt = f"\nstepwright {project_root.name} > "
    try:
        while True:
            try:
                line = input(prompt)
            except EOFError:
                break
            command = line.strip()
            if not command:
                continue
            if command.lower() in EXIT_WORDS:
                break
            if handle_control_word(command.lower(), session):
                continue
            session.run_task(command)
    except KeyboardInterrupt:
        print()
    print("Goodbye!")
    return 0


def handle_control_word(command: str, session: SessionController) -> bool:
    """Handle REPL control words; returns False when ``command`` is a task."""
    if command in HELP_WORDS:
        _show_help()
        return True
    if command in CLEAR_WORDS:
        print("\033[2J\033[H", end="")
        _show_header()
        return True
    if command in HISTORY_WORDS:
        _show_history(session)
        return True
    return False


def _show_header() -> None:
    print("Stepwright")
    print("Step-by-step feature implementation agent")
    print(RULE)


def _show_help() -> None:
    print("\nAvailable commands:")
    for words, description in (
        ("help, ?", "Show this help message"),
        ("clear, cls", "Clear the screen"),
        ("history, h", "Show recent tasks"),
        ("exit, quit, q", "Exit the application"),
    ):
        print(f"  {words:<15} {description}")
    print("\nAnything else is sent to the agent as a task, for example:")
    print('  "Add a favorites table and an API route to toggle favorites"')


def _show_history(session: SessionController, limit: int = 10) -> None:
    records = session.history()
    if not records:
        print("\nNo task history yet.")
        return
    print("\nTask history:")
    for record in records[-limit:]:
        marker = "+" if record.status is RunStatus.COMPLETED else "x"
        print(f"  {record.timestamp:%H:%M:%S} {marker} {record.task} ({record.status.value})")
    if len(records) > limit:
        print(f"  ... and {len(records) - limit} more")


def _describe_operation(decision: Decision) -> str:
    operation = decision.operation.value if decision.operation else "NONE"
    if decision.command:
        return f"{operation} {decision.command} (in {decision.path})"
    return f"{operation} {decision.path}"


def _summarize_result(result: OperationResult) -> str:
    if result.directory_list is not None:
        directories = sum(1 for entry in result.directory_list if entry.kind == "directory")
        files = len(result.directory_list) - directories
        return f"found {directories} folders and {files} files"
    if result.line_count is not None:
        return f"wrote {result.path} ({result.line_count} lines)"
    if result.byte_size is not None:
        return f"read {result.path} ({_format_size(result.byte_size)})"
    if result.command_output is not None:
        return f"command finished (exit {result.exit_code})"
    return result.path or "done"


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} bytes"
    return f"{size / 1024:.1f} KB"


def _first_line(text: str) -> str:
    stripped = text.strip()
    return stripped.splitlines()[0] if stripped else ""


if __name__ == "__main__":
    raise SystemExit(main())
