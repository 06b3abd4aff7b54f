"""Exception types shared across the agent."""

from __future__ import annotations


class StepwrightError(Exception):
    """Base class for all stepwright errors."""


class ConfigurationError(StepwrightError):
    """Startup configuration is unusable; never retried."""


class ModelError(StepwrightError):
    """Recoverable model invocation failure (transport, throttling, bad output)."""


class ModelResponseError(ModelError):
    """The model answered, but not with parseable structured output."""


class ModelAuthError(StepwrightError):
    """Credentials are missing or rejected; aborts the run immediately."""


class DecisionValidationError(StepwrightError):
    """Structured output does not satisfy the decision schema."""

    def __init__(self, message: str, *, raw: object = None) -> None:
        super().__init__(message)
        self.raw = raw


class PathOutsideProjectError(StepwrightError):
    """A relative path normalized to a location outside the project root."""
