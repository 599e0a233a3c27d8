"""
Core data models for EveryCall.

Immutable records handed between the ingress, routing and orchestration
layers. Wire-level request/response schemas live in ``contracts``.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class TenantRouting:
    """One row of the routing table: a phone number owned by a tenant."""
    tenant_id: str
    number_id: str
    phone_number: str  # E.164
    active: bool


@dataclass(frozen=True)
class InboundCallEvent:
    """An authenticated, routed inbound call. Logged, never persisted here."""
    trace_id: str
    call_id: str
    tenant_id: str
    provider: str  # twilio | telnyx_texml | telnyx
    provider_call_id: str
    from_number: str
    to_number: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
