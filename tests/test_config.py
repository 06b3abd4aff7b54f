import json
import os

import pytest

from stepwright.config import DEFAULT_MODEL, DEFAULT_SYSTEM_PROMPT, AppConfig, _default_shell_for_platform
from stepwright.errors import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("STEPWRIGHT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_env_or_files(tmp_path) -> None:
    config = AppConfig.from_env()

    assert config.api_key is None
    assert config.model == DEFAULT_MODEL
    assert os.path.samefile(config.project_root, tmp_path)
    assert config.log_dir == "logs"
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
    assert config.max_steps == 50
    assert config.step_delay == 1.0
    assert config.max_retries == 3
    assert config.retry_delay == 10.0
    assert config.command_timeout == 120.0
    assert config.max_output_bytes == 10 * 1024 * 1024
    assert config.scan_excludes == ("components/ui",)
    assert config.strict_decisions is False
    assert config.keep_history is False
    assert config.log_level == "WARNING"


def test_config_file_values_are_loaded(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "custom.json"
    config_path.write_text(
        json.dumps(
            {
                "openai": {"api_key": "file-key", "api_url": "https://example.com/v1/responses"},
                "model": "gpt-5.2",
                "reasoning_effort": "low",
                "max_steps": 12,
                "lint_commands": {"ts": "npx eslint {path}", ".PY": "ruff check {path}"},
                "scan_excludes": ["generated/", ""],
                "keep_history": True,
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("STEPWRIGHT_CONFIG_FILE", str(config_path))

    config = AppConfig.from_env()

    assert config.api_key == "file-key"
    assert config.api_url == "https://example.com/v1/responses"
    assert config.model == "gpt-5.2"
    assert config.reasoning_effort == "low"
    assert config.max_steps == 12
    assert config.lint_commands == {".ts": "npx eslint {path}", ".py": "ruff check {path}"}
    assert config.scan_excludes == ("components/ui", "generated")
    assert config.keep_history is True


def test_local_config_overrides_shared_config(tmp_path) -> None:
    (tmp_path / "stepwright.config.json").write_text(
        json.dumps({"openai": {"api_key": "shared", "api_url": "https://shared"}, "model": "a"}),
        encoding="utf-8",
    )
    (tmp_path / "stepwright.config.local.json").write_text(
        json.dumps({"openai": {"api_key": "local"}}),
        encoding="utf-8",
    )

    config = AppConfig.from_env()

    assert config.api_key == "local"
    assert config.api_url == "https://shared"
    assert config.model == "a"


def test_env_overrides_file_values(tmp_path, monkeypatch) -> None:
    (tmp_path / "stepwright.config.json").write_text(
        json.dumps({"model": "from-file", "max_steps": 12}),
        encoding="utf-8",
    )
    monkeypatch.setenv("STEPWRIGHT_MODEL", "from-env")
    monkeypatch.setenv("STEPWRIGHT_MAX_STEPS", "7")
    monkeypatch.setenv("STEPWRIGHT_STEP_DELAY", "0")
    monkeypatch.setenv("STEPWRIGHT_RETRY_DELAY", "2.5")
    monkeypatch.setenv("STEPWRIGHT_STRICT_DECISIONS", "yes")
    monkeypatch.setenv("STEPWRIGHT_LOG_LEVEL", "debug")

    config = AppConfig.from_env()

    assert config.model == "from-env"
    assert config.max_steps == 7
    assert config.step_delay == 0.0
    assert config.retry_delay == 2.5
    assert config.strict_decisions is True
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("value", ["zero", "-1", "0"])
def test_invalid_step_cap_falls_back_to_default(monkeypatch, value) -> None:
    monkeypatch.setenv("STEPWRIGHT_MAX_STEPS", value)

    assert AppConfig.from_env().max_steps == 50


def test_api_key_precedence(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
    assert AppConfig.from_env().api_key == "openai-key"

    monkeypatch.setenv("STEPWRIGHT_API_KEY", "stepwright-key")
    assert AppConfig.from_env().api_key == "stepwright-key"


def test_require_api_key_raises_when_missing() -> None:
    config = AppConfig.from_env()

    with pytest.raises(ConfigurationError, match="STEPWRIGHT_API_KEY"):
        config.require_api_key()


def test_require_api_key_returns_key(monkeypatch) -> None:
    monkeypatch.setenv("STEPWRIGHT_API_KEY", "k")

    assert AppConfig.from_env().require_api_key() == "k"


def test_shell_aliases(monkeypatch) -> None:
    monkeypatch.setenv("STEPWRIGHT_SHELL", "pwsh")
    assert AppConfig.from_env().shell == "powershell"

    monkeypatch.setenv("STEPWRIGHT_SHELL", "sh")
    assert AppConfig.from_env().shell == "sh"


def test_default_shell_for_platform() -> None:
    assert _default_shell_for_platform("nt") == "powershell"
    assert _default_shell_for_platform("posix") == "bash"


def test_malformed_config_file_is_ignored(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "broken.json"
    config_path.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("STEPWRIGHT_CONFIG_FILE", str(config_path))

    assert AppConfig.from_env().model == DEFAULT_MODEL
