"""Decision schema, validation, and payload rules for a single step."""

from __future__ import annotations

import json

from stepwright.agent.models import Decision, OperationKind, OperationResult
from stepwright.errors import DecisionValidationError, ModelResponseError

OPERATION_ALIASES: dict[str, OperationKind] = {
    "readfile": OperationKind.READ_FILE,
    "read_file": OperationKind.READ_FILE,
    "writefile": OperationKind.WRITE_FILE,
    "write_file": OperationKind.WRITE_FILE,
    "deletefile": OperationKind.DELETE_FILE,
    "delete_file": OperationKind.DELETE_FILE,
    "readdir": OperationKind.READ_DIRECTORY,
    "read_directory": OperationKind.READ_DIRECTORY,
    "list_directory": OperationKind.READ_DIRECTORY,
    "writedir": OperationKind.CREATE_DIRECTORY,
    "create_directory": OperationKind.CREATE_DIRECTORY,
    "runcommand": OperationKind.EXECUTE_COMMAND,
    "run_command": OperationKind.EXECUTE_COMMAND,
    "execute_command": OperationKind.EXECUTE_COMMAND,
    "scanproject": OperationKind.SCAN_PROJECT,
    "scan_project": OperationKind.SCAN_PROJECT,
}

ROOT_PATHS = {"", ".", "./"}


def decision_schema() -> dict[str, object]:
    """Strict JSON schema for the model's structured output."""
    return {
        "type": "object",
        "properties": {
            "completed": {"type": "boolean"},
            "operation": {
                "type": ["string", "null"],
                "enum": [*(kind.value for kind in OperationKind), None],
            },
            "path": {"type": "string"},
            "fileContent": {"type": ["string", "null"]},
            "command": {"type": ["string", "null"]},
            "explanation": {"type": "string"},
        },
        "required": ["completed", "operation", "path", "fileContent", "command", "explanation"],
        "additionalProperties": False,
    }


def parse_decision(raw: object) -> Decision:
    """Turn raw model output (JSON text or an object) into a ``Decision``.

    Text that is not JSON at all raises ``ModelResponseError`` so the caller
    can retry the model call. JSON that does not match the schema raises
    ``DecisionValidationError`` so the model can be told what was wrong.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(_strip_code_fence(raw))
        except json.JSONDecodeError as exc:
            raise ModelResponseError(f"Model returned non-JSON output: {exc}") from exc

    if not isinstance(raw, dict):
        raise DecisionValidationError("Decision must be a JSON object", raw=raw)

    completed = raw.get("completed", raw.get("status"))
    if not isinstance(completed, bool):
        raise DecisionValidationError("'completed' must be a boolean", raw=raw)

    explanation = raw.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        raise DecisionValidationError("'explanation' must be a non-empty string", raw=raw)

    operation = parse_operation(raw.get("operation", raw.get("request")), raw=raw)

    path = raw.get("path")
    if path is None:
        path = "."
    if not isinstance(path, str):
        raise DecisionValidationError("'path' must be a string", raw=raw)

    file_content = raw.get("fileContent")
    if file_content is not None and not isinstance(file_content, str):
        raise DecisionValidationError("'fileContent' must be a string or null", raw=raw)

    command = raw.get("command")
    if command is not None and not isinstance(command, str):
        raise DecisionValidationError("'command' must be a string or null", raw=raw)

    return Decision(
        completed=completed,
        explanation=explanation.strip(),
        operation=operation,
        path=path.strip() or ".",
        file_content=file_content,
        command=command if command is None or command.strip() else None,
    )


def parse_operation(value: object, *, raw: object = None) -> OperationKind | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecisionValidationError("'operation' must be a string or null", raw=raw)
    normalized = value.strip()
    if not normalized or normalized.lower() in {"none", "null"}:
        return None
    try:
        return OperationKind(normalized.upper())
    except ValueError:
        pass
    alias = OPERATION_ALIASES.get(normalized.lower())
    if alias is None:
        raise DecisionValidationError(f"Unknown operation: {value}", raw=raw)
    return alias


def missing_payload(decision: Decision) -> str | None:
    """Describe the payload field an operation needs but did not receive."""
    if decision.operation is OperationKind.WRITE_FILE and decision.file_content is None:
        return "fileContent is required for WRITE_FILE operation"
    if decision.operation is OperationKind.EXECUTE_COMMAND and not decision.command:
        return "command is required for EXECUTE_COMMAND operation"
    return None


def implicit_action(decision: Decision) -> OperationResult | None:
    """Reject a decision that carries an action but names no operation."""
    if decision.operation is not None:
        return None
    path = "." if decision.completed else decision.path
    if not _carries_action(path, decision.file_content, decision.command):
        return None
    return OperationResult.failure(
        "No operation specified; set operation to execute the requested "
        "command, path or file content",
        path=decision.path,
    )


def validation_failure(error: DecisionValidationError) -> OperationResult:
    return OperationResult.failure(
        f"Invalid decision: {error}. Respond with JSON matching the decision schema."
    )


def _carries_action(path: str, file_content: str | None, command: str | None) -> bool:
    return bool(command and command.strip()) or file_content is not None or (
        path.strip() not in ROOT_PATHS
    )


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()
