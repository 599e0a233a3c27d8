"""
Best-effort intent, urgency and entity extraction for the turn response.

Never raises and never affects the chosen action.
"""

import re

from everycall.core.contracts import Extracted, TurnRequest
from everycall.decision.fallback import classify
from everycall.telephony.phone import find_phone_numbers

URGENT_SIGNALS = re.compile(
    r"\b(?:emergency|urgent|urgently|asap|right away|immediately|flood(?:ing|ed)?|leak(?:ing)?|"
    r"burst|no heat|no power|gas smell|smell gas|sparking|fire)\b",
    re.IGNORECASE,
)


def extract(request: TurnRequest) -> Extracted:
    text = request.caller_input.text
    intent = classify(text) or "general_inquiry"
    urgency = "high" if URGENT_SIGNALS.search(text) else "normal"
    entities = {}
    phones = find_phone_numbers(text)
    if phones:
        entities["phone_numbers"] = phones
    return Extracted(intent=intent, urgency=urgency, entities=entities)
