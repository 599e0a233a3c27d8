import base64
import json
import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


class TelnyxSigner:
    """Test-side Ed25519 signer producing Telnyx-style webhook headers."""

    def __init__(self):
        self._private = Ed25519PrivateKey.generate()
        raw = self._private.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.public_key_b64 = base64.b64encode(raw).decode("ascii")
        self.public_key_pem = self._private.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def sign(self, body: bytes, timestamp=None) -> dict:
        ts = str(int(time.time()) if timestamp is None else timestamp)
        signature = self._private.sign(ts.encode("utf-8") + b"|" + body)
        return {
            "telnyx-signature-ed25519": base64.b64encode(signature).decode("ascii"),
            "telnyx-timestamp": ts,
        }


@pytest.fixture
def telnyx_signer():
    return TelnyxSigner()


ROUTING_RECORDS = [
    {"tenantId": "tenant_abc", "numberId": "num_001", "phoneNumber": "+14255550100", "active": True},
    {"tenantId": "tenant_old", "numberId": "num_002", "phoneNumber": "+14255550199", "active": False},
]


@pytest.fixture
def routing_file(tmp_path):
    path = tmp_path / "tenant_routing.json"
    path.write_text(json.dumps(ROUTING_RECORDS))
    return path


@pytest.fixture
def turn_payload():
    def _build(text="Hi, what are your hours?", **overrides):
        payload = {
            "trace_id": "trace_1",
            "tenant_id": "tenant_abc",
            "call_id": "call_1",
            "turn_id": "turn_1",
            "caller_input": {"type": "text", "text": text},
            "context": {
                "from_number": "+12065550123",
                "to_number": "+14255550100",
                "business_profile": {"name": "Acme Plumbing", "timezone": "America/Los_Angeles"},
                "faq_items": [{"q": "Are you open Sundays?", "a": "No, Monday to Saturday."}],
            },
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def synthesis_payload():
    def _build(**overrides):
        payload = {
            "trace_id": "trace_1",
            "tenant_id": "tenant_abc",
            "call_id": "call_1",
            "utterance_id": "utt_1",
            "provider": "elevenlabs",
            "voice": {"voice_id": "voice_123", "stability": 0.4},
            "audio": {"format": "mulaw", "sample_rate_hz": 8000},
            "text": "Thanks for calling Acme Plumbing, how can I help?",
        }
        payload.update(overrides)
        return payload

    return _build
