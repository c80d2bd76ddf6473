"""
Store assistant pipeline.

message + history -> LLM -> intent -> (query) SELECT gate -> read-only function
-> (on failure) fallback interpreter -> response envelope.

Every stage runs strictly after the previous one; the fallback only runs once
the primary path is known to have failed.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextvars import copy_context
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from backend.services.config import AssistantConfig
from backend.services.errors import PrimaryExecutionFailed
from backend.services.fallback_interpreter import execute_fallback
from backend.services.llm_client import ChatCompletionClient
from backend.services.prompting import build_messages
from backend.services.readonly_executor import ExecutionResult, execute_primary
from backend.services.response_parser import Intent, QueryIntent, parse_intent
from backend.services.runtime import get_foreground_executor, log_event
from backend.services.sql_guard import validate_sql
from backend.services.store import DataStore

logger = logging.getLogger("assistant_pipeline")


class ResponseEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    sql: Optional[str] = None
    explanation: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    results_error: Optional[str] = Field(default=None, alias="resultsError")
    response: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        if self.type == "query":
            keys = {"type", "sql", "explanation", "results", "results_error"}
        else:
            keys = {"type", "response"}
        return self.model_dump(by_alias=True, include=keys)


def build_envelope(intent: Intent, result: Optional[ExecutionResult] = None) -> ResponseEnvelope:
    if isinstance(intent, QueryIntent):
        result = result or ExecutionResult()
        return ResponseEnvelope(
            type="query",
            sql=intent.sql,
            explanation=intent.explanation,
            results=result.rows,
            results_error=result.error,
        )
    return ResponseEnvelope(type=intent.type, response=intent.response)


class AssistantPipeline:
    def __init__(self, config: AssistantConfig, store: DataStore, llm: Any):
        self.config = config
        self.store = store
        self.llm = llm

    @classmethod
    def from_config(cls, config: AssistantConfig) -> "AssistantPipeline":
        config.validate()
        store = DataStore.from_url(config.database_url, config.readonly_function)
        return cls(config, store, ChatCompletionClient(config))

    def run_query(self, sql: str) -> ExecutionResult:
        """Validate then execute; blocking. Never raises for query-level failures."""
        outcome = validate_sql(sql)
        if not outcome.ok:
            log_event(logger, logging.WARNING, "assistant_sql_rejected", reason=outcome.reason, sql_chars=len(sql or ""))
            return ExecutionResult.failed(outcome.reason)
        try:
            return execute_primary(self.store, sql)
        except PrimaryExecutionFailed:
            return execute_fallback(
                self.store,
                sql,
                default_limit=self.config.default_limit,
                max_limit=self.config.max_limit,
            )

    async def answer(self, message: str, history: Sequence[Mapping[str, Any]] = ()) -> ResponseEnvelope:
        started = time.perf_counter()
        log_event(logger, logging.INFO, "assistant_request_start", message_chars=len(message or ""), history_turns=len(history))

        messages = build_messages(
            message,
            history,
            max_turns=self.config.history_turns,
            max_limit=self.config.max_limit,
        )
        # Upstream failures (rate limit, quota, gateway) propagate to the route.
        raw = await self.llm.complete(messages)
        intent = parse_intent(raw)
        log_event(logger, logging.INFO, "assistant_intent_parsed", intent=intent.type)

        result = None
        if isinstance(intent, QueryIntent):
            loop = asyncio.get_running_loop()
            ctx = copy_context()
            result = await loop.run_in_executor(
                get_foreground_executor(),
                lambda: ctx.run(self.run_query, intent.sql),
            )

        envelope = build_envelope(intent, result)
        log_event(
            logger,
            logging.INFO,
            "assistant_request_complete",
            intent=envelope.type,
            row_count=len(envelope.results or []),
            has_error=bool(envelope.results_error),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )
        return envelope
