"""
Turn decision engine.

``decide`` asks the completion provider for exactly one ``NextAction`` and
validates it against the closed union. Anything short of a valid action
(missing key, timeout, transport error, bad status, empty or malformed
output, schema violation) is resolved by the deterministic fallback, so
``decide`` always returns a valid action and never raises for provider
trouble.
"""

import json
import time
from dataclasses import dataclass
from typing import Optional

import structlog
from prometheus_client import Counter, Histogram

from everycall.core.contracts import (
    Extracted,
    NextAction,
    ToolCallAction,
    TurnRequest,
    next_action_adapter,
)
from everycall.decision.completion import CompletionError, OpenAIResponsesClient
from everycall.decision.extraction import extract
from everycall.decision.fallback import fallback_decision
from everycall.decision.tools import AVAILABLE_TOOLS, idempotency_key

logger = structlog.get_logger(__name__)

_DECISIONS = Counter(
    "everycall_decisions_total",
    "Turn decisions by the provider that produced them and action type",
    labelnames=("provider", "action"),
)
_DECISION_LATENCY = Histogram(
    "everycall_decision_seconds",
    "Time to produce a turn decision",
    labelnames=("provider",),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 16.0),
)

BASE_INSTRUCTIONS = """You are the phone receptionist for a local service business.
Decide the single next action for this turn of an inbound call.

Respond with exactly one JSON object and nothing else, in one of these shapes:
  {"type": "speak", "text": "<what to say to the caller>"}
  {"type": "tool_call", "tool_name": "<tool>", "tool_args": {...}, "idempotency_key": "<any>"}
  {"type": "handoff", "reason": "<short_snake_case_reason>"}
  {"type": "end_call", "reason": "<short_snake_case_reason>"}

Rules:
- Hand off with reason "caller_requested_human" when the caller asks for a person.
- End the call with reason "caller_ended_conversation" when the caller says goodbye.
- Keep spoken replies short and conversational; ask one question at a time.
- Only answer business questions from the FAQ below; otherwise collect details.
"""


@dataclass(frozen=True)
class Decision:
    next_action: NextAction
    provider: str
    extracted: Extracted


def build_instructions(request: TurnRequest) -> str:
    profile = request.context.business_profile
    lines = [BASE_INSTRUCTIONS]
    lines.append(f"Business: {profile.name} (timezone {profile.timezone})")
    if request.context.faq_items:
        lines.append("FAQ:")
        for item in request.context.faq_items:
            lines.append(f"  Q: {item.q}\n  A: {item.a}")
    lines.append("Tools available for tool_call:")
    for tool in AVAILABLE_TOOLS:
        lines.append(json.dumps(tool.to_schema()))
    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_next_action(text: str):
    """Parse model output into a NextAction; raises ValueError or ValidationError."""
    data = json.loads(_strip_fences(text))
    return next_action_adapter.validate_python(data)


class DecisionEngine:
    def __init__(self, client: Optional[OpenAIResponsesClient] = None):
        self._client = client

    async def close(self) -> None:
        if self._client:
            await self._client.close()

    async def decide(self, request: TurnRequest) -> Decision:
        started = time.monotonic()
        action = await self._primary(request)
        provider = "openai"
        if action is None:
            action = fallback_decision(request)
            provider = "fallback"

        if isinstance(action, ToolCallAction):
            action = action.model_copy(
                update={"idempotency_key": idempotency_key(request.call_id, request.turn_id, action.tool_name)}
            )

        _DECISIONS.labels(provider=provider, action=action.type).inc()
        _DECISION_LATENCY.labels(provider=provider).observe(time.monotonic() - started)
        logger.info(
            "turn_decided",
            tenant_id=request.tenant_id,
            call_id=request.call_id,
            turn_id=request.turn_id,
            provider=provider,
            action=action.type,
        )
        return Decision(next_action=action, provider=provider, extracted=self._extract(request))

    async def _primary(self, request: TurnRequest):
        """Provider decision, or None when the fallback must decide."""
        if not self._client or not self._client.available:
            return None
        try:
            text = await self._client.complete(build_instructions(request), request.model_dump_json())
            return parse_next_action(text)
        except CompletionError as e:
            logger.warning("decision_provider_failed", code=e.code, call_id=request.call_id)
        except ValueError as e:
            # JSON decode errors and pydantic ValidationError
            logger.warning("decision_output_invalid", code="openai_invalid_action",
                           error_type=type(e).__name__, call_id=request.call_id)
        except Exception as e:
            logger.error("decision_provider_failed", code="openai_unexpected_error",
                         error_type=type(e).__name__, call_id=request.call_id)
        return None

    @staticmethod
    def _extract(request: TurnRequest) -> Extracted:
        try:
            return extract(request)
        except Exception as e:
            logger.warning("extraction_failed", error_type=type(e).__name__, call_id=request.call_id)
            return Extracted()
