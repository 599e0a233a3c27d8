"""
Call ingress state machine: received -> verified -> parsed -> routed -> accepted.
"""

import json
from urllib.parse import urlencode

import pytest

from everycall.errors import AuthenticationFailure, PayloadError, RoutingMiss, ValidationFailure
from everycall.tenancy import FileRoutingSource, TenantNumberResolver
from everycall.telephony.ingress import CallIngressService, IngressStage, derive_call_id
from everycall.telephony.signature import Ed25519SignatureVerifier, HmacSignatureVerifier

URL = "https://calls.example.com/v1/twilio/webhooks/voice/inbound"
TOKEN = "twilio-auth-token"


@pytest.fixture
def ingress(routing_file, telnyx_signer):
    misses = []
    telnyx = Ed25519SignatureVerifier(telnyx_signer.public_key_b64)
    service = CallIngressService(
        TenantNumberResolver(FileRoutingSource(str(routing_file))),
        {"twilio": HmacSignatureVerifier(TOKEN), "telnyx_texml": telnyx, "telnyx": telnyx},
        on_routing_miss=misses.append,
    )
    service.misses = misses
    return service


def _twilio_request(to="+14255550100", **extra):
    form = {"CallSid": "CA123", "To": to, "From": "+12065550123"}
    form.update(extra)
    body = urlencode(form).encode()
    signature = HmacSignatureVerifier(TOKEN).expected_signature(URL, form)
    return body, {"X-Twilio-Signature": signature}


def _telnyx_event(to="+14255550100", event_type="call.initiated"):
    return json.dumps({
        "data": {
            "event_type": event_type,
            "payload": {"call_control_id": "v3:abc", "to": to, "from": "+12065550123"},
        }
    }).encode()


def test_twilio_webhook_accepted(ingress):
    body, headers = _twilio_request(to="(425) 555-0100")
    result = ingress.handle("twilio", body, headers, URL, "trace-1")

    assert result.stage is IngressStage.ACCEPTED
    event = result.event
    assert event.tenant_id == "tenant_abc"
    assert event.trace_id == "trace-1"
    assert event.provider == "twilio"
    assert event.provider_call_id == "CA123"
    assert event.to_number == "+14255550100"
    assert event.from_number == "+12065550123"
    assert event.call_id == derive_call_id("twilio", "CA123")


def test_header_lookup_is_case_insensitive(ingress):
    body, headers = _twilio_request()
    lowered = {k.lower(): v for k, v in headers.items()}
    assert ingress.handle("twilio", body, lowered, URL, "t").event.tenant_id == "tenant_abc"


def test_bad_signature_stops_before_parsing(ingress):
    with pytest.raises(AuthenticationFailure) as exc_info:
        ingress.handle("twilio", b"garbage", {"X-Twilio-Signature": "bogus"}, URL, "t")
    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "invalid_signature"


def test_missing_signature_rejected(ingress):
    body, _ = _twilio_request()
    with pytest.raises(AuthenticationFailure):
        ingress.handle("twilio", body, {}, URL, "t")


def test_unknown_verifier_rejects(routing_file):
    service = CallIngressService(TenantNumberResolver(FileRoutingSource(str(routing_file))), {})
    body, headers = _twilio_request()
    with pytest.raises(AuthenticationFailure):
        service.handle("twilio", body, headers, URL, "t")


def test_missing_fields_after_valid_signature(ingress):
    form = {"CallSid": "CA123", "To": "+14255550100"}
    body = urlencode(form).encode()
    headers = {"X-Twilio-Signature": HmacSignatureVerifier(TOKEN).expected_signature(URL, form)}
    with pytest.raises(ValidationFailure) as exc_info:
        ingress.handle("twilio", body, headers, URL, "t")
    assert exc_info.value.details == [{"field": "From", "error": "required"}]


def test_unmapped_number_is_routing_miss(ingress):
    body, headers = _twilio_request(to="+19999999999")
    with pytest.raises(RoutingMiss) as exc_info:
        ingress.handle("twilio", body, headers, URL, "t")
    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "tenant_not_found_for_number"
    assert len(ingress.misses) == 1


def test_inactive_number_is_routing_miss(ingress):
    body, headers = _twilio_request(to="+14255550199")
    with pytest.raises(RoutingMiss):
        ingress.handle("twilio", body, headers, URL, "t")


def test_telnyx_texml_form_accepted(ingress, telnyx_signer):
    body = urlencode({"CallSid": "tx-1", "To": "+14255550100", "From": "+12065550123"}).encode()
    result = ingress.handle("telnyx_texml", body, telnyx_signer.sign(body), "", "t")
    assert result.event.tenant_id == "tenant_abc"
    assert result.event.provider == "telnyx_texml"


def test_telnyx_call_control_accepted(ingress, telnyx_signer):
    body = _telnyx_event()
    result = ingress.handle("telnyx", body, telnyx_signer.sign(body), "", "t")
    assert result.event.tenant_id == "tenant_abc"
    assert result.event.provider_call_id == "v3:abc"


def test_telnyx_other_events_ignored(ingress, telnyx_signer):
    body = _telnyx_event(event_type="call.answered")
    result = ingress.handle("telnyx", body, telnyx_signer.sign(body), "", "t")
    assert result.ignored
    assert result.stage is IngressStage.PARSED
    assert result.envelope.event_type == "call.answered"


def test_telnyx_unroutable_call_reported_to_hook(ingress, telnyx_signer):
    body = _telnyx_event(to="+19999999999")
    with pytest.raises(RoutingMiss):
        ingress.handle("telnyx", body, telnyx_signer.sign(body), "", "t")
    assert ingress.misses[0].call_control_id == "v3:abc"


def test_telnyx_invalid_json_after_valid_signature(ingress, telnyx_signer):
    body = b"{oops"
    with pytest.raises(PayloadError):
        ingress.handle("telnyx", body, telnyx_signer.sign(body), "", "t")


def test_call_id_is_stable_across_retries(ingress):
    body, headers = _twilio_request()
    first = ingress.handle("twilio", body, headers, URL, "t1").event
    retry = ingress.handle("twilio", body, headers, URL, "t2").event
    assert first.call_id == retry.call_id
    assert first.trace_id != retry.trace_id
    assert derive_call_id("twilio", "CA123") != derive_call_id("telnyx", "CA123")
