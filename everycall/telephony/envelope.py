"""
Provider webhook envelope decoding.

Form webhooks (Twilio, Telnyx TeXML) and Telnyx Call Control JSON webhooks
carry the same facts under different names and nesting. Decoders reduce
both to a ``CallEnvelope``; ``PayloadError`` means the body could not be
decoded at all, ``ValidationFailure`` means it decoded but required fields
are missing.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

from everycall.errors import PayloadError, ValidationFailure

CALL_INITIATED_EVENTS = {"call.initiated", "call_initiated"}


@dataclass(frozen=True)
class CallEnvelope:
    provider: str
    event_type: str
    provider_call_id: str
    to_number: str
    from_number: str
    call_control_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_call_initiated(self) -> bool:
        return self.event_type in CALL_INITIATED_EVENTS


def _decode_text(raw_body: bytes) -> str:
    try:
        return raw_body.decode("utf-8")
    except UnicodeDecodeError:
        raise PayloadError("body is not valid UTF-8")


def _require(fields: Dict[str, Any], names: List[str]) -> None:
    missing = [name for name in names if not str(fields.get(name) or "").strip()]
    if missing:
        raise ValidationFailure(
            "missing required fields",
            details=[{"field": name, "error": "required"} for name in missing],
        )


def parse_form_envelope(raw_body: bytes, provider: str) -> CallEnvelope:
    """Decode an ``application/x-www-form-urlencoded`` voice webhook."""
    text = _decode_text(raw_body).strip()
    if not text:
        raise PayloadError("empty form body")
    try:
        params = dict(parse_qsl(text, keep_blank_values=True, strict_parsing=True))
    except ValueError:
        raise PayloadError("body is not form-encoded")

    _require(params, ["CallSid", "To", "From"])
    return CallEnvelope(
        provider=provider,
        event_type="call.initiated",
        provider_call_id=params["CallSid"].strip(),
        to_number=params["To"],
        from_number=params["From"],
        extra={
            key: params[key]
            for key in ("CallStatus", "Direction", "AccountSid", "CallerName", "ForwardedFrom")
            if params.get(key)
        },
    )


def parse_call_control_envelope(raw_body: bytes, provider: str = "telnyx") -> CallEnvelope:
    """
    Decode a Call Control JSON webhook.

    Accepts ``{"data": {"event_type", "payload": {...}}}`` as well as flatter
    shapes where the payload sits at the top level.
    """
    text = _decode_text(raw_body)
    try:
        payload = json.loads(text) if text.strip() else None
    except ValueError:
        raise PayloadError("body is not valid JSON")
    if not isinstance(payload, dict):
        raise PayloadError("JSON body must be an object")

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    event_type = str(
        data.get("event_type") or payload.get("event_type") or data.get("eventType") or ""
    )
    event_payload = data.get("payload") or payload.get("payload") or data or payload
    if not isinstance(event_payload, dict):
        raise PayloadError("event payload must be an object")

    if event_type and event_type not in CALL_INITIATED_EVENTS:
        # Other lifecycle events carry no routing obligation
        return CallEnvelope(
            provider=provider,
            event_type=event_type,
            provider_call_id=str(event_payload.get("call_control_id") or event_payload.get("call_session_id") or ""),
            to_number=str(event_payload.get("to") or ""),
            from_number=str(event_payload.get("from") or ""),
        )

    call_control_id = str(event_payload.get("call_control_id") or "").strip()
    provider_call_id = call_control_id or str(event_payload.get("call_session_id") or "").strip()
    fields = {
        "to": event_payload.get("to"),
        "from": event_payload.get("from"),
        "call_control_id": provider_call_id,
    }
    _require(fields, ["to", "from", "call_control_id"])
    return CallEnvelope(
        provider=provider,
        event_type=event_type or "call.initiated",
        provider_call_id=provider_call_id,
        to_number=str(event_payload["to"]),
        from_number=str(event_payload["from"]),
        call_control_id=call_control_id or None,
        extra={
            key: event_payload[key]
            for key in ("direction", "state", "call_session_id", "connection_id")
            if event_payload.get(key)
        },
    )
