"""
OpenAI Responses API client used for the primary turn decision.

One attempt per call, bounded by the configured timeout. Every failure mode
surfaces as ``CompletionError`` so the engine has a single thing to catch.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import aiohttp
import structlog

logger = structlog.get_logger(__name__)


class CompletionError(RuntimeError):
    """The completion provider could not produce usable output text."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


def _make_http_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def extract_output_text(data: Dict[str, Any]) -> str:
    """
    Pull the model's text out of a Responses API body.

    SDK-shaped bodies carry a top-level ``output_text``; raw REST bodies only
    have ``output[].content[]`` items, of which the first ``output_text`` wins.
    """
    text = data.get("output_text")
    if isinstance(text, str) and text.strip():
        return text
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "output_text":
                value = part.get("text")
                if isinstance(value, str) and value.strip():
                    return value
    return ""


class OpenAIResponsesClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout_sec: float = 8.0,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def _ensure_session(self) -> None:
        if self._session and not self._session.closed:
            return
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def complete(self, instructions: str, user_input: str) -> str:
        if not self.available:
            raise CompletionError("openai_not_configured")

        await self._ensure_session()
        assert self._session
        payload = {
            "model": self.model,
            "instructions": instructions,
            "input": user_input,
        }
        url = f"{self._base_url}/responses"

        logger.debug("openai_responses_request", model=self.model)
        try:
            async with self._session.post(
                url, json=payload, headers=_make_http_headers(self._api_key), timeout=self._timeout
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise CompletionError("openai_http_error", f"status={response.status}")
        except asyncio.TimeoutError as exc:
            raise CompletionError("openai_timeout") from exc
        except aiohttp.ClientError as exc:
            raise CompletionError("openai_transport_error", type(exc).__name__) from exc

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise CompletionError("openai_invalid_body") from exc
        if not isinstance(data, dict):
            raise CompletionError("openai_invalid_body")

        text = extract_output_text(data)
        if not text:
            raise CompletionError("openai_empty_output")
        return text
