"""Async client for the OpenAI-compatible chat completion gateway."""
import logging
import time
from typing import Dict, List, Optional

import httpx

from backend.services.config import AssistantConfig
from backend.services.errors import UpstreamError, UpstreamQuotaExhausted, UpstreamRateLimited
from backend.services.runtime import log_event

logger = logging.getLogger("llm_client")


class ChatCompletionClient:
    def __init__(self, config: AssistantConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_base = config.llm_api_base.rstrip("/")
        self._api_key = config.llm_api_key
        self._model = config.llm_model
        self._timeout = httpx.Timeout(
            connect=config.llm_connect_timeout_s,
            read=config.llm_read_timeout_s,
            write=20.0,
            pool=10.0,
        )
        self._transport = transport

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send the messages and return the first choice's content ("" when absent)."""
        payload = {"model": self._model, "messages": messages}
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, http2=True, transport=self._transport) as client:
                resp = await client.post(f"{self._api_base}/chat/completions", headers=headers, json=payload)
        except httpx.HTTPError as exc:
            log_event(logger, logging.WARNING, "assistant_upstream_error", error=type(exc).__name__)
            raise UpstreamError(f"AI gateway unreachable: {type(exc).__name__}") from exc

        if resp.status_code == 429:
            raise UpstreamRateLimited()
        if resp.status_code == 402:
            raise UpstreamQuotaExhausted()
        if resp.is_error:
            log_event(logger, logging.WARNING, "assistant_upstream_error", status=resp.status_code)
            raise UpstreamError(f"AI gateway error: {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError("AI gateway returned invalid JSON") from exc

        log_event(
            logger,
            logging.INFO,
            "assistant_llm_call_ok",
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            message_count=len(messages),
        )
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content if isinstance(content, str) else ""
