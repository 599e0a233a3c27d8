"""
Deterministic fallback decision.

A second, total implementation of ``decide``: pure keyword matching on the
latest caller utterance, no I/O. Signals are checked in priority order and
the first hit wins; text with no signal gets a clarifying ``speak``.

Only the latest utterance is inspected. Urgency established in earlier
turns is not carried forward (callers own conversation state).
"""

import re
from typing import List, Optional, Tuple

from everycall.core.contracts import (
    EndCallAction,
    HandoffAction,
    NextAction,
    SpeakAction,
    ToolCallAction,
    TurnRequest,
)
from everycall.decision.tools import CREATE_LEAD, idempotency_key

HANDOFF_REASON = "caller_requested_human"
END_CALL_REASON = "caller_ended_conversation"
CLARIFYING_PROMPT = "I can help with that. What is the service address?"


def _phrases(*patterns: str) -> re.Pattern:
    """Whole-word alternation; each entry is a regex fragment so inflections can be spelled out."""
    return re.compile(r"\b(?:" + "|".join(patterns) + r")\b", re.IGNORECASE)


HUMAN_SIGNALS = _phrases(
    r"humans?", r"agents?", r"representatives?", r"operators?",
    r"real (?:person|people)", r"someone real",
)
END_SIGNALS = _phrases(r"bye", r"goodbye", r"stop", r"hang(?:ing)? up")
SCHEDULING_SIGNALS = _phrases(
    r"appointments?", r"book(?:s|ed|ing|ings)?", r"(?:re)?schedul(?:e|es|ed|ing)",
)

# Ordered: escalation beats ending beats scheduling
SIGNALS: List[Tuple[str, re.Pattern]] = [
    ("human_handoff", HUMAN_SIGNALS),
    ("end_call", END_SIGNALS),
    ("scheduling", SCHEDULING_SIGNALS),
]


def classify(text: str) -> Optional[str]:
    """Name of the first matching signal, or None."""
    for name, pattern in SIGNALS:
        if pattern.search(text or ""):
            return name
    return None


def fallback_decision(request: TurnRequest) -> NextAction:
    text = request.caller_input.text
    signal = classify(text)

    if signal == "human_handoff":
        return HandoffAction(reason=HANDOFF_REASON)

    if signal == "end_call":
        return EndCallAction(reason=END_CALL_REASON)

    if signal == "scheduling":
        return ToolCallAction(
            tool_name=CREATE_LEAD.name,
            tool_args={"summary": text, "source": "inbound_call"},
            idempotency_key=idempotency_key(request.call_id, request.turn_id, CREATE_LEAD.name),
        )

    return SpeakAction(text=CLARIFYING_PROMPT)
