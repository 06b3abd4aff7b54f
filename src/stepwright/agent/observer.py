"""Narration hooks the step engine calls at each transition."""

from __future__ import annotations

import logging
from typing import Protocol

from stepwright.agent.models import Decision, OperationResult, RunOutcome, RunStatus

LOGGER = logging.getLogger(__name__)


class StepObserver(Protocol):
    def task_started(self, task: str) -> None: ...

    def decision_received(self, step: int, decision: Decision) -> None: ...

    def operation_finished(self, step: int, decision: Decision, result: OperationResult) -> None: ...

    def decision_rejected(self, step: int, result: OperationResult) -> None: ...

    def retry_scheduled(self, attempt: int, max_attempts: int, error: BaseException, delay: float) -> None: ...

    def run_finished(self, outcome: RunOutcome) -> None: ...


class LoggingObserver:
    """Default observer: narrates every transition through ``logging``."""

    def task_started(self, task: str) -> None:
        LOGGER.info("task_started", extra={"task": task})

    def decision_received(self, step: int, decision: Decision) -> None:
        LOGGER.info(
            "decision_received",
            extra={
                "step": step,
                "operation": decision.operation.value if decision.operation else None,
                "target": decision.path,
                "completed": decision.completed,
                "explanation": decision.explanation,
            },
        )

    def operation_finished(self, step: int, decision: Decision, result: OperationResult) -> None:
        level = logging.INFO if result.success else logging.WARNING
        LOGGER.log(
            level,
            "operation_result",
            extra={
                "step": step,
                "operation": decision.operation.value if decision.operation else None,
                "success": result.success,
                "error": result.error,
            },
        )

    def decision_rejected(self, step: int, result: OperationResult) -> None:
        LOGGER.warning("decision_rejected", extra={"step": step, "error": result.error})

    def retry_scheduled(
        self, attempt: int, max_attempts: int, error: BaseException, delay: float
    ) -> None:
        LOGGER.warning(
            "model_retry_scheduled",
            extra={
                "attempt": attempt,
                "max_attempts": max_attempts,
                "error": str(error),
                "delay_seconds": delay,
            },
        )

    def run_finished(self, outcome: RunOutcome) -> None:
        level = logging.ERROR if outcome.status is RunStatus.FAILED else logging.INFO
        LOGGER.log(
            level,
            "run_finished",
            extra={
                "status": outcome.status.value,
                "steps": outcome.steps,
                "duration_seconds": round(outcome.duration_seconds, 3),
                "error": outcome.error,
            },
        )
