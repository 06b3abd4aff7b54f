"""Session controller: one engine run per user task."""

from __future__ import annotations

import logging

from stepwright.agent.loop import StepEngine
from stepwright.agent.models import Conversation, RunOutcome, TaskRecord

LOGGER = logging.getLogger(__name__)


class SessionController:
    """Feeds user tasks to the step engine one at a time.

    With ``keep_history`` the same conversation carries over between tasks so
    the model remembers earlier work; otherwise every task starts fresh. The
    task history is kept for display only and never reaches the model.
    """

    def __init__(self, engine: StepEngine, *, keep_history: bool = False, history_limit: int = 100) -> None:
        self.engine = engine
        self.keep_history = keep_history
        self.history_limit = history_limit
        self._records: list[TaskRecord] = []
        self._conversation: Conversation | None = Conversation() if keep_history else None

    def run_task(self, task: str) -> RunOutcome:
        text = task.strip()
        if not text:
            raise ValueError("Task must not be empty")

        conversation = self._conversation if self.keep_history else None
        outcome = self.engine.run(text, conversation=conversation)
        self._records.append(
            TaskRecord(
                task=text,
                status=outcome.status,
                steps=outcome.steps,
                duration_seconds=outcome.duration_seconds,
            )
        )
        if len(self._records) > self.history_limit:
            del self._records[: len(self._records) - self.history_limit]
        LOGGER.info(
            "session_task_finished",
            extra={"status": outcome.status.value, "steps": outcome.steps, "tasks_run": len(self._records)},
        )
        return outcome

    def history(self, limit: int | None = None) -> list[TaskRecord]:
        if limit is None:
            return list(self._records)
        return list(self._records[-limit:]) if limit > 0 else []

    def reset(self) -> None:
        """Drop the carried-over conversation; task history is kept."""
        if self.keep_history:
            self._conversation = Conversation()

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation
