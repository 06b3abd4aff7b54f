"""Step engine: ask the model for one operation, run it, feed the result back."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from stepwright.agent.models import (
    Conversation,
    Decision,
    EngineState,
    Message,
    OperationResult,
    RunOutcome,
    RunState,
    RunStatus,
)
from stepwright.agent.observer import LoggingObserver, StepObserver
from stepwright.agent.protocol import (
    decision_schema,
    implicit_action,
    parse_decision,
    validation_failure,
)
from stepwright.errors import DecisionValidationError, ModelAuthError, ModelError, ModelResponseError
from stepwright.operations import OperationExecutor

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], None]
Clock = Callable[[], float]

CAPPED_OUT_HINT = "Consider breaking the task into smaller parts."


class ModelClient(Protocol):
    def next_decision(
        self,
        conversation: Sequence[Message],
        *,
        system_instruction: str,
        output_schema: dict[str, object],
    ) -> str | dict[str, object]: ...


class StepEngine:
    """Runs the decide/execute/report cycle for one task.

    Each iteration asks the model for exactly one ``Decision``, executes its
    operation, and appends both to the conversation. The run ends when the
    model reports completion, the iteration cap is reached, or the model
    cannot be reached within the retry budget.
    """

    def __init__(
        self,
        *,
        client: ModelClient,
        executor: OperationExecutor,
        system_instruction: str,
        max_steps: int = 50,
        step_delay: float = 1.0,
        max_retries: int = 3,
        retry_delay: float = 10.0,
        strict_decisions: bool = False,
        observer: StepObserver | None = None,
        log_dir: str | Path | None = None,
        sleep: Sleep = time.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self.client = client
        self.executor = executor
        self.system_instruction = system_instruction
        self.max_steps = max_steps
        self.step_delay = step_delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.strict_decisions = strict_decisions
        self.observer: StepObserver = observer or LoggingObserver()
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.sleep = sleep
        self.clock = clock
        self.last_state: RunState | None = None

    def run(self, task: str, conversation: Conversation | None = None) -> RunOutcome:
        conversation = conversation if conversation is not None else Conversation()
        state = RunState(started_at=self.clock())
        self.last_state = state

        conversation.append("user", task)
        self.observer.task_started(task)

        while state.iteration_count < self.max_steps:
            if state.iteration_count and self.step_delay > 0:
                self.sleep(self.step_delay)
            state.iteration_count += 1
            state.state = EngineState.AWAITING_DECISION

            try:
                decision = self._request_decision(conversation, state)
            except ModelAuthError as exc:
                return self._finish(state, conversation, RunStatus.FAILED, str(exc), error=str(exc))
            except ModelError as exc:
                message = f"Model call failed after {self.max_retries + 1} attempts: {exc}"
                return self._finish(state, conversation, RunStatus.FAILED, message, error=str(exc))

            if isinstance(decision, DecisionValidationError):
                rejection = validation_failure(decision)
                conversation.append("assistant", _raw_text(decision.raw))
                conversation.append("user", rejection.to_json())
                self.observer.decision_rejected(state.iteration_count, rejection)
                self._append_log(task, state, None, rejection)
                state.state = EngineState.AWAITING_NEXT_STEP
                continue

            conversation.append("assistant", decision.to_json())
            self.observer.decision_received(state.iteration_count, decision)

            state.state = EngineState.DISPATCHING
            violation = implicit_action(decision)
            result: OperationResult | None = violation
            if violation is None and decision.operation is not None:
                result = self.executor.dispatch(decision)
                state.step_count += 1

            if result is not None:
                conversation.append("user", result.to_json())
                self.observer.operation_finished(state.iteration_count, decision, result)
            self._append_log(task, state, decision, result)

            state.state = EngineState.AWAITING_NEXT_STEP
            if decision.completed and violation is None:
                duration = self.clock() - state.started_at
                message = (
                    f"Task completed in {state.step_count} operations "
                    f"({duration:.1f}s)."
                )
                return self._finish(state, conversation, RunStatus.COMPLETED, message)

        message = (
            f"Maximum iterations ({self.max_steps}) reached before the task was marked "
            f"complete. {CAPPED_OUT_HINT}"
        )
        return self._finish(state, conversation, RunStatus.CAPPED_OUT, message)

    def _request_decision(
        self, conversation: Conversation, state: RunState
    ) -> Decision | DecisionValidationError:
        max_attempts = self.max_retries + 1

        def before_sleep(retry_state: RetryCallState) -> None:
            state.retry_count += 1
            error = retry_state.outcome.exception() if retry_state.outcome else None
            self.observer.retry_scheduled(
                retry_state.attempt_number,
                max_attempts,
                error or ModelError("unknown model error"),
                self.retry_delay,
            )

        retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(ModelError),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._invoke_model(conversation)
        raise ModelError("Model call was not attempted")

    def _invoke_model(self, conversation: Conversation) -> Decision | DecisionValidationError:
        raw = self.client.next_decision(
            conversation.messages,
            system_instruction=self.system_instruction,
            output_schema=decision_schema(),
        )
        try:
            return parse_decision(raw)
        except DecisionValidationError as exc:
            if self.strict_decisions:
                raise ModelResponseError(f"Invalid decision: {exc}") from exc
            if exc.raw is None:
                exc.raw = raw
            return exc

    def _finish(
        self,
        state: RunState,
        conversation: Conversation,
        status: RunStatus,
        message: str,
        *,
        error: str | None = None,
    ) -> RunOutcome:
        state.state = {
            RunStatus.COMPLETED: EngineState.COMPLETED,
            RunStatus.FAILED: EngineState.FAILED,
            RunStatus.CAPPED_OUT: EngineState.CAPPED_OUT,
        }[status]
        outcome = RunOutcome(
            status=status,
            steps=state.step_count,
            message=message,
            duration_seconds=self.clock() - state.started_at,
            conversation=conversation,
            error=error,
        )
        self.observer.run_finished(outcome)
        return outcome

    def _append_log(
        self,
        task: str,
        state: RunState,
        decision: Decision | None,
        result: OperationResult | None,
    ) -> None:
        if self.log_dir is None:
            return
        self.log_dir.mkdir(parents=True, exist_ok=True)
        day_file = self.log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "task": task,
            "model": getattr(self.client, "model", None),
            "project_root": str(self.executor.project_root),
            "iteration": state.iteration_count,
            "step_count": state.step_count,
            "retry_count": state.retry_count,
            "decision": decision.to_payload() if decision else None,
            "result": result.to_payload() if result else None,
        }
        with day_file.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")


def _raw_text(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(raw)
