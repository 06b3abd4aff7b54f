from __future__ import annotations

import pytest

from stepwright.agent.models import Conversation, RunOutcome, RunStatus
from stepwright.agent.session import SessionController


class FakeEngine:
    def __init__(self, statuses: list[RunStatus] | None = None) -> None:
        self.statuses = list(statuses or [RunStatus.COMPLETED])
        self.runs: list[tuple[str, Conversation | None]] = []

    def run(self, task: str, conversation: Conversation | None = None) -> RunOutcome:
        self.runs.append((task, conversation))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        used = conversation if conversation is not None else Conversation()
        used.append("user", task)
        return RunOutcome(
            status=status,
            steps=2,
            message="done",
            duration_seconds=0.5,
            conversation=used,
        )


def test_tasks_start_fresh_by_default() -> None:
    engine = FakeEngine()
    session = SessionController(engine)  # type: ignore[arg-type]

    session.run_task("first")
    session.run_task("second")

    assert [conversation for _task, conversation in engine.runs] == [None, None]
    assert session.conversation is None


def test_keep_history_shares_one_conversation() -> None:
    engine = FakeEngine()
    session = SessionController(engine, keep_history=True)  # type: ignore[arg-type]

    session.run_task("first")
    session.run_task("second")

    first_conversation = engine.runs[0][1]
    assert first_conversation is not None
    assert engine.runs[1][1] is first_conversation
    assert [message.content for message in first_conversation] == ["first", "second"]


def test_reset_starts_a_new_conversation_but_keeps_history() -> None:
    engine = FakeEngine()
    session = SessionController(engine, keep_history=True)  # type: ignore[arg-type]
    session.run_task("first")
    before = session.conversation

    session.reset()
    session.run_task("second")

    assert session.conversation is not before
    assert session.conversation is not None
    assert len(session.conversation) == 1
    assert [record.task for record in session.history()] == ["first", "second"]


def test_history_records_outcomes_in_order() -> None:
    engine = FakeEngine([RunStatus.COMPLETED, RunStatus.CAPPED_OUT, RunStatus.FAILED])
    session = SessionController(engine)  # type: ignore[arg-type]

    for task in ("one", "two", "three"):
        session.run_task(f"  {task}  ")

    records = session.history()
    assert [record.task for record in records] == ["one", "two", "three"]
    assert [record.status for record in records] == [
        RunStatus.COMPLETED,
        RunStatus.CAPPED_OUT,
        RunStatus.FAILED,
    ]
    assert records[0].steps == 2
    assert [record.task for record in session.history(limit=2)] == ["two", "three"]
    assert session.history(limit=0) == []


def test_history_is_trimmed_to_limit() -> None:
    session = SessionController(FakeEngine(), history_limit=2)  # type: ignore[arg-type]

    for task in ("a", "b", "c"):
        session.run_task(task)

    assert [record.task for record in session.history()] == ["b", "c"]


def test_blank_task_is_rejected() -> None:
    engine = FakeEngine()
    session = SessionController(engine)  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        session.run_task("   ")
    assert engine.runs == []
