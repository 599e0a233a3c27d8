"""
Call ingress: authenticate, parse and route inbound voice webhooks.

Each request walks ``received -> verified -> parsed -> routed -> accepted``.
A failed step raises the matching error from ``everycall.errors`` and no
later step runs. The service establishes trust and routing only; it never
waits on downstream orchestration and has no side effect beyond logging,
so provider retries are safe to reprocess.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

import structlog
from prometheus_client import Counter

from everycall.core.models import InboundCallEvent
from everycall.errors import AuthenticationFailure, EveryCallError, RoutingMiss
from everycall.tenancy.resolver import TenantNumberResolver
from everycall.telephony.envelope import CallEnvelope, parse_call_control_envelope, parse_form_envelope
from everycall.telephony.phone import normalize_phone
from everycall.telephony.signature import SignatureVerifier

logger = structlog.get_logger(__name__)

_WEBHOOKS = Counter(
    "everycall_webhook_requests_total",
    "Inbound voice webhooks by provider and outcome",
    labelnames=("provider", "outcome"),
)

_CALL_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "everycall:inbound-call")


class IngressStage(Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PARSED = "parsed"
    ROUTED = "routed"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class ProviderProfile:
    """How one provider's webhooks are signed and encoded."""
    name: str
    signature_header: str
    timestamp_header: Optional[str]
    parser: Callable[[bytes, str], CallEnvelope]


TWILIO = ProviderProfile("twilio", "X-Twilio-Signature", None, parse_form_envelope)
TELNYX_TEXML = ProviderProfile("telnyx_texml", "telnyx-signature-ed25519", "telnyx-timestamp", parse_form_envelope)
TELNYX = ProviderProfile("telnyx", "telnyx-signature-ed25519", "telnyx-timestamp", parse_call_control_envelope)

PROVIDERS: Dict[str, ProviderProfile] = {p.name: p for p in (TWILIO, TELNYX_TEXML, TELNYX)}


@dataclass(frozen=True)
class IngressResult:
    stage: IngressStage
    envelope: CallEnvelope
    event: Optional[InboundCallEvent] = None

    @property
    def ignored(self) -> bool:
        return self.event is None


def derive_call_id(provider: str, provider_call_id: str) -> str:
    """Stable internal call id; provider retries of one call map to the same id."""
    return f"call_{uuid.uuid5(_CALL_ID_NAMESPACE, f'{provider}:{provider_call_id}').hex}"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lower = name.lower()
    for key, val in headers.items():
        if str(key).lower() == lower:
            return val
    return None


class CallIngressService:
    """
    Runs the ingress state machine for every supported provider.

    Args:
        resolver: Tenant number resolver shared by all requests
        verifiers: Signature verifier per provider name
        on_routing_miss: Optional hook called with the envelope of an
            unroutable call (used to schedule a provider hangup)
    """

    def __init__(
        self,
        resolver: TenantNumberResolver,
        verifiers: Mapping[str, SignatureVerifier],
        on_routing_miss: Optional[Callable[[CallEnvelope], None]] = None,
    ):
        self._resolver = resolver
        self._verifiers = dict(verifiers)
        self._on_routing_miss = on_routing_miss

    def handle(
        self,
        provider: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        url: str,
        trace_id: str,
    ) -> IngressResult:
        profile = PROVIDERS[provider]
        try:
            result = self._run(profile, raw_body, headers, url, trace_id)
        except EveryCallError as e:
            _WEBHOOKS.labels(provider=provider, outcome=e.code).inc()
            raise
        _WEBHOOKS.labels(provider=provider, outcome="ignored" if result.ignored else "accepted").inc()
        return result

    def _run(self, profile, raw_body, headers, url, trace_id) -> IngressResult:
        # received -> verified
        signature = _header(headers, profile.signature_header)
        timestamp = _header(headers, profile.timestamp_header) if profile.timestamp_header else None
        verifier = self._verifiers.get(profile.name)
        if verifier is None or not verifier.verify(raw_body, signature, timestamp, url):
            logger.warning(
                "webhook_signature_invalid",
                provider=profile.name,
                has_signature=bool(signature),
                has_timestamp=bool(timestamp),
            )
            raise AuthenticationFailure()

        # verified -> parsed
        try:
            envelope = profile.parser(raw_body, profile.name)
        except EveryCallError as e:
            logger.warning(
                "webhook_payload_rejected",
                provider=profile.name,
                error_code=e.code,
                reason=str(e),
                body_bytes=len(raw_body),
            )
            raise

        if not envelope.is_call_initiated:
            logger.debug("webhook_event_ignored", provider=profile.name, event_type=envelope.event_type)
            return IngressResult(stage=IngressStage.PARSED, envelope=envelope)

        # parsed -> routed
        to_number = normalize_phone(envelope.to_number)
        from_number = normalize_phone(envelope.from_number)
        routing = self._resolver.resolve(to_number)
        if routing is None:
            logger.info(
                "tenant_not_found_for_number",
                provider=profile.name,
                to_number=to_number,
                provider_call_id=envelope.provider_call_id,
            )
            if self._on_routing_miss is not None:
                self._on_routing_miss(envelope)
            raise RoutingMiss()

        # routed -> accepted
        event = InboundCallEvent(
            trace_id=trace_id,
            call_id=derive_call_id(profile.name, envelope.provider_call_id),
            tenant_id=routing.tenant_id,
            provider=profile.name,
            provider_call_id=envelope.provider_call_id,
            from_number=from_number,
            to_number=to_number,
        )
        logger.info("inbound_call_received", number_id=routing.number_id, **event.to_dict())
        return IngressResult(stage=IngressStage.ACCEPTED, envelope=envelope, event=event)
