"""Data models used by the step engine."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

Role = Literal["user", "assistant"]
EntryKind = Literal["file", "directory"]


class OperationKind(str, Enum):
    """Closed set of operations a decision may request."""

    READ_FILE = "READ_FILE"
    WRITE_FILE = "WRITE_FILE"
    DELETE_FILE = "DELETE_FILE"
    READ_DIRECTORY = "READ_DIRECTORY"
    CREATE_DIRECTORY = "CREATE_DIRECTORY"
    EXECUTE_COMMAND = "EXECUTE_COMMAND"
    SCAN_PROJECT = "SCAN_PROJECT"


class EngineState(str, Enum):
    IDLE = "idle"
    AWAITING_DECISION = "awaiting_decision"
    DISPATCHING = "dispatching"
    AWAITING_NEXT_STEP = "awaiting_next_step"
    COMPLETED = "completed"
    FAILED = "failed"
    CAPPED_OUT = "capped_out"


class RunStatus(str, Enum):
    """Terminal outcome of one task."""

    COMPLETED = "completed"
    FAILED = "failed"
    CAPPED_OUT = "capped_out"


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class Conversation:
    """Append-only, ordered message history for one run or session."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages) if messages else []

    def append(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_payload(self) -> list[dict[str, str]]:
        return [message.to_payload() for message in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))


@dataclass(slots=True)
class Decision:
    """Structured model output for a single step."""

    completed: bool
    explanation: str
    operation: OperationKind | None = None
    path: str = "."
    file_content: str | None = None
    command: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "completed": self.completed,
            "operation": self.operation.value if self.operation else None,
            "path": self.path,
            "fileContent": self.file_content,
            "command": self.command,
            "explanation": self.explanation,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    path: str
    kind: EntryKind

    def to_payload(self) -> dict[str, str]:
        return {"path": self.path, "kind": self.kind}


@dataclass(slots=True)
class OperationResult:
    """Outcome of one executed operation, returned verbatim to the model."""

    success: bool
    path: str | None = None
    error: str | None = None
    file_content: str | None = None
    directory_list: list[DirectoryEntry] | None = None
    command_output: str | None = None
    byte_size: int | None = None
    line_count: int | None = None
    exit_code: int | None = None

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        path: str | None = None,
        command_output: str | None = None,
        exit_code: int | None = None,
    ) -> OperationResult:
        return cls(
            success=False,
            path=path,
            error=error,
            command_output=command_output,
            exit_code=exit_code,
        )

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": self.success}
        optional: dict[str, object | None] = {
            "path": self.path,
            "error": self.error,
            "fileContent": self.file_content,
            "directoryList": (
                [entry.to_payload() for entry in self.directory_list]
                if self.directory_list is not None
                else None
            ),
            "commandOutput": self.command_output,
            "byteSize": self.byte_size,
            "lineCount": self.line_count,
            "exitCode": self.exit_code,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


@dataclass(slots=True)
class RunState:
    """Mutable bookkeeping owned by one engine run."""

    started_at: float
    step_count: int = 0
    iteration_count: int = 0
    retry_count: int = 0
    state: EngineState = EngineState.IDLE


@dataclass(slots=True)
class RunOutcome:
    status: RunStatus
    steps: int
    message: str
    duration_seconds: float
    conversation: Conversation
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.COMPLETED


@dataclass(slots=True)
class TaskRecord:
    """Display-only summary of a finished task."""

    task: str
    status: RunStatus
    steps: int
    duration_seconds: float
    timestamp: datetime = field(default_factory=datetime.now)
