"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from stepwright.errors import ConfigurationError

DEFAULT_SYSTEM_PROMPT = " ".join(
    [
        "You are Stepwright, an expert software engineer working inside an existing project.",
        (
            "Implement the user's requested feature by choosing exactly one operation per"
            " response and waiting for its result before choosing the next one."
        ),
        (
            "Available operations: READ_FILE, WRITE_FILE, DELETE_FILE, READ_DIRECTORY,"
            " CREATE_DIRECTORY, EXECUTE_COMMAND, SCAN_PROJECT."
        ),
        (
            "Start by scanning or reading the project to understand its structure before"
            " changing anything."
        ),
        (
            "Paths are relative to the project root; use path '.' for the root. For"
            " SCAN_PROJECT, path holds a glob pattern such as '**/*.{ts,tsx}'."
        ),
        (
            "WRITE_FILE replaces the whole file, so always send complete file content in"
            " fileContent. EXECUTE_COMMAND requires command and runs in path."
        ),
        (
            "Every operation result comes back as JSON with keys success, path, error,"
            " fileContent, directoryList and commandOutput; fix any reported error"
            " (including lint errors after a write) before moving on."
        ),
        (
            "Always explain the current action in explanation. Set completed to true only"
            " when the entire task is done; use operation null only in that case."
        ),
    ]
)

DEFAULT_API_URL = "https://api.openai.com/v1/responses"
DEFAULT_MODEL = "gpt-4.1"
DEFAULT_GENERATED_SUBTREES = ("components/ui",)


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_key: str | None
    model: str
    api_url: str
    project_root: str
    log_dir: str
    system_prompt: str
    shell: str
    reasoning_effort: str | None = None
    max_steps: int = 50
    step_delay: float = 1.0
    max_retries: int = 3
    retry_delay: float = 10.0
    command_timeout: float = 120.0
    request_timeout: float = 120.0
    max_output_bytes: int = 10 * 1024 * 1024
    lint_enabled: bool = True
    lint_commands: dict[str, str] = field(default_factory=dict)
    scan_excludes: tuple[str, ...] = DEFAULT_GENERATED_SUBTREES
    strict_decisions: bool = False
    keep_history: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        openai_from_file = file_config.get("openai")
        openai_config = openai_from_file if isinstance(openai_from_file, dict) else {}

        return cls(
            api_key=(
                os.getenv("STEPWRIGHT_API_KEY")
                or os.getenv("OPENAI_API_KEY")
                or _to_optional_string(openai_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            model=(
                os.getenv("STEPWRIGHT_MODEL")
                or _to_optional_string(file_config.get("model"))
                or DEFAULT_MODEL
            ),
            api_url=(
                os.getenv("STEPWRIGHT_API_URL")
                or _to_optional_string(openai_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            project_root=(
                os.getenv("STEPWRIGHT_PROJECT_ROOT")
                or _to_optional_string(file_config.get("project_root"))
                or str(Path.cwd())
            ),
            log_dir=(
                os.getenv("STEPWRIGHT_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            system_prompt=(
                os.getenv("STEPWRIGHT_SYSTEM_PROMPT")
                or _to_optional_string(file_config.get("system_prompt"))
                or DEFAULT_SYSTEM_PROMPT
            ),
            shell=_resolve_shell(
                os.getenv("STEPWRIGHT_SHELL") or _to_optional_string(file_config.get("shell"))
            ),
            reasoning_effort=(
                os.getenv("STEPWRIGHT_REASONING_EFFORT")
                or _to_optional_string(file_config.get("reasoning_effort"))
            ),
            max_steps=_to_positive_int(
                os.getenv("STEPWRIGHT_MAX_STEPS") or file_config.get("max_steps"),
                default=50,
            ),
            step_delay=_to_non_negative_float(
                os.getenv("STEPWRIGHT_STEP_DELAY") or file_config.get("step_delay"),
                default=1.0,
            ),
            max_retries=_to_non_negative_int(
                os.getenv("STEPWRIGHT_MAX_RETRIES") or file_config.get("max_retries"),
                default=3,
            ),
            retry_delay=_to_non_negative_float(
                os.getenv("STEPWRIGHT_RETRY_DELAY") or file_config.get("retry_delay"),
                default=10.0,
            ),
            command_timeout=_to_non_negative_float(
                os.getenv("STEPWRIGHT_COMMAND_TIMEOUT") or file_config.get("command_timeout"),
                default=120.0,
            ),
            request_timeout=_to_non_negative_float(
                os.getenv("STEPWRIGHT_REQUEST_TIMEOUT") or file_config.get("request_timeout"),
                default=120.0,
            ),
            max_output_bytes=_to_positive_int(
                os.getenv("STEPWRIGHT_MAX_OUTPUT_BYTES") or file_config.get("max_output_bytes"),
                default=10 * 1024 * 1024,
            ),
            lint_enabled=_to_bool(
                os.getenv("STEPWRIGHT_LINT_ENABLED"),
                default=bool(file_config.get("lint_enabled", True)),
            ),
            lint_commands=_to_string_map(file_config.get("lint_commands")),
            scan_excludes=(
                *DEFAULT_GENERATED_SUBTREES,
                *_to_string_tuple(file_config.get("scan_excludes")),
            ),
            strict_decisions=_to_bool(
                os.getenv("STEPWRIGHT_STRICT_DECISIONS"),
                default=bool(file_config.get("strict_decisions", False)),
            ),
            keep_history=_to_bool(
                os.getenv("STEPWRIGHT_KEEP_HISTORY"),
                default=bool(file_config.get("keep_history", False)),
            ),
            log_level=(
                os.getenv("STEPWRIGHT_LOG_LEVEL")
                or _to_optional_string(file_config.get("log_level"))
                or "WARNING"
            ).upper(),
        )

    def require_api_key(self) -> str:
        """Return the model credential or fail before any operation runs."""
        if not self.api_key:
            msg = "No model API key configured; set STEPWRIGHT_API_KEY or OPENAI_API_KEY."
            raise ConfigurationError(msg)
        return self.api_key


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    mapping: dict[str, str] = {}
    for key, command in value.items():
        if not isinstance(key, str) or not isinstance(command, str) or not command.strip():
            continue
        extension = key.strip().lower()
        if not extension.startswith("."):
            extension = f".{extension}"
        mapping[extension] = command.strip()
    return mapping


def _to_string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item.strip().strip("/") for item in value if isinstance(item, str) and item.strip())


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("STEPWRIGHT_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("stepwright.config.json")
    local_override = _load_file_config("stepwright.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _shell_value(value: str) -> str:
    normalized = value.strip().lower()
    aliases = {
        "powershell": "powershell",
        "pwsh": "powershell",
        "bash": "bash",
        "sh": "sh",
        "shell": "bash",
    }
    return aliases.get(normalized, _default_shell_for_platform())


def _default_shell_for_platform(os_name: str | None = None) -> str:
    platform_name = os.name if os_name is None else os_name
    return "powershell" if platform_name == "nt" else "bash"


def _resolve_shell(value: str | None) -> str:
    if value is None:
        return _default_shell_for_platform()
    return _shell_value(value)


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_non_negative_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value >= 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed >= 0 else default
    return default


def _to_non_negative_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed >= 0 else default
    return default
