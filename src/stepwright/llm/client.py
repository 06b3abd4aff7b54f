"""Thin model client that requests the next structured decision."""

from __future__ import annotations

import http.client
import json
import logging
from collections.abc import Sequence
from urllib import request
from urllib.error import HTTPError, URLError

from stepwright.agent.models import Message
from stepwright.errors import ModelAuthError, ModelError, ModelResponseError

LOGGER = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = {401, 403}


class LLMClient:
    """Small HTTP client for an OpenAI-compatible Responses endpoint.

    Failures are raised rather than masked: ``ModelAuthError`` for missing
    or rejected credentials, ``ModelError`` for everything the caller may
    retry.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        api_url: str = "https://api.openai.com/v1/responses",
        timeout: float = 120.0,
        reasoning_effort: str | None = None,
        schema_name: str = "agent_step",
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.reasoning_effort = reasoning_effort
        self.schema_name = schema_name

    def next_decision(
        self,
        conversation: Sequence[Message],
        *,
        system_instruction: str,
        output_schema: dict[str, object],
    ) -> str:
        """Return the raw structured-output text for the next step."""
        if not self.api_key:
            raise ModelAuthError("No model API key configured")

        payload = self._build_payload(conversation, system_instruction, output_schema)
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        LOGGER.debug(
            "llm_request_prepared",
            extra={
                "api_url": self.api_url,
                "model": self.model,
                "payload_bytes": len(body),
                "conversation_messages": len(conversation),
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_response = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "llm_request_http_error",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Model request failed with HTTP {exc.code}: {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            if exc.code in AUTH_FAILURE_STATUSES:
                raise ModelAuthError(details) from exc
            raise ModelError(details) from exc
        except URLError as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": str(exc.reason)},
            )
            raise ModelError(f"Model request transport error: {exc.reason}") from exc
        except TimeoutError as exc:
            LOGGER.error(
                "llm_request_timeout",
                extra={"api_url": self.api_url, "model": self.model, "timeout_seconds": self.timeout},
            )
            raise ModelError(f"Model request timed out after {self.timeout:.1f}s") from exc
        except (http.client.HTTPException, OSError) as exc:
            LOGGER.error(
                "llm_request_connection_error",
                extra={"api_url": self.api_url, "model": self.model, "error": repr(exc)},
            )
            raise ModelError(f"Model connection failed: {exc.__class__.__name__}: {exc}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "llm_response_parse_error",
                extra={"api_url": self.api_url, "model": self.model, "error": str(exc)},
            )
            raise ModelResponseError(f"Model response parsing error: {exc}") from exc

        if not isinstance(raw_response, dict):
            raise ModelResponseError("Model response parsing error: expected top-level object")
        return self._extract_output_text(raw_response)

    def _build_payload(
        self,
        conversation: Sequence[Message],
        system_instruction: str,
        output_schema: dict[str, object],
    ) -> dict[str, object]:
        input_messages: list[dict[str, str]] = [{"role": "system", "content": system_instruction}]
        input_messages.extend(message.to_payload() for message in conversation)

        payload: dict[str, object] = {
            "model": self.model,
            "input": input_messages,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": self.schema_name,
                    "strict": True,
                    "schema": output_schema,
                }
            },
        }
        if self.reasoning_effort:
            payload["reasoning"] = {"effort": self.reasoning_effort}
        return payload

    @staticmethod
    def _extract_output_text(payload: dict[str, object]) -> str:
        output_text = payload.get("output_text")
        if isinstance(output_text, str) and output_text.strip():
            return output_text

        output_items = payload.get("output")
        if not isinstance(output_items, list):
            raise ModelResponseError("No structured output returned")

        for item in output_items:
            if not isinstance(item, dict):
                continue
            content_items = item.get("content")
            if not isinstance(content_items, list):
                continue
            for content in content_items:
                if not isinstance(content, dict):
                    continue
                content_type = content.get("type")
                if content_type == "refusal":
                    raise ModelResponseError(f"Model refused: {content.get('refusal')}")
                content_text = content.get("text")
                if content_type == "output_text" and isinstance(content_text, str):
                    return content_text
        raise ModelResponseError("No structured output returned")

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
