"""
Call gateway service: inbound voice webhooks for Twilio and Telnyx.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Mapping, Optional, Set

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool

from everycall.api.common import install_common
from everycall.config import AppConfig
from everycall.config.loaders import resolve_config_path
from everycall.tenancy import FileRoutingSource, TenantNumberResolver
from everycall.telephony.commands import TelnyxCallControl
from everycall.telephony.envelope import CallEnvelope
from everycall.telephony.ingress import CallIngressService
from everycall.telephony.signature import (
    AllowAllVerifier,
    Ed25519SignatureVerifier,
    HmacSignatureVerifier,
    SignatureVerifier,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "call-gateway"

TWILIO_INBOUND_PATH = "/v1/twilio/webhooks/voice/inbound"
TELNYX_TEXML_INBOUND_PATH = "/v1/telnyx/texml/inbound"
TELNYX_CALL_CONTROL_INBOUND_PATH = "/v1/telnyx/webhooks/voice/inbound"


def build_verifiers(config: AppConfig) -> Mapping[str, SignatureVerifier]:
    gw = config.gateway
    if not gw.signature_required:
        logger.warning("webhook_signature_verification_disabled")
        allow = AllowAllVerifier()
        return {"twilio": allow, "telnyx_texml": allow, "telnyx": allow}
    telnyx = Ed25519SignatureVerifier(gw.telnyx_public_key, tolerance_sec=gw.signature_tolerance_sec)
    return {
        "twilio": HmacSignatureVerifier(gw.twilio_auth_token),
        "telnyx_texml": telnyx,
        "telnyx": telnyx,
    }


def signed_url(request: Request, public_base_url: Optional[str]) -> str:
    """
    URL the provider signed. Behind a proxy the request URL differs from the
    one configured at the provider, so a configured public base wins.
    """
    if public_base_url:
        url = public_base_url.rstrip("/") + request.url.path
        if request.url.query:
            url += "?" + request.url.query
        return url
    return str(request.url)


def create_gateway_app(
    config: AppConfig,
    *,
    resolver: Optional[TenantNumberResolver] = None,
    verifiers: Optional[Mapping[str, SignatureVerifier]] = None,
    call_control: Optional[TelnyxCallControl] = None,
) -> FastAPI:
    gw = config.gateway
    resolver = resolver or TenantNumberResolver(FileRoutingSource(resolve_config_path(gw.routing_file)))
    call_control = call_control or TelnyxCallControl(
        gw.telnyx_api_key, base_url=gw.telnyx_base_url, timeout_sec=gw.command_timeout_sec
    )
    pending: Set[asyncio.Task] = set()
    serving: Dict[str, asyncio.AbstractEventLoop] = {}

    def _schedule_hangup(call_control_id: str) -> None:
        task = asyncio.get_running_loop().create_task(call_control.hangup_quietly(call_control_id))
        pending.add(task)
        task.add_done_callback(pending.discard)

    def hang_up_unroutable(envelope: CallEnvelope) -> None:
        # Runs on a worker thread; the hangup is handed to the serving loop
        if envelope.provider != "telnyx" or not envelope.call_control_id or not call_control.enabled:
            return
        loop = serving.get("loop")
        if loop is None or loop.is_closed():
            logger.warning("call_hangup_skipped", call_control_id=envelope.call_control_id, reason="loop_not_running")
            return
        loop.call_soon_threadsafe(_schedule_hangup, envelope.call_control_id)

    ingress = CallIngressService(
        resolver,
        verifiers if verifiers is not None else build_verifiers(config),
        on_routing_miss=hang_up_unroutable,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        serving["loop"] = asyncio.get_running_loop()
        resolver.refresh()
        logger.info(
            "call_gateway_started",
            port=gw.port,
            signature_required=gw.signature_required,
            call_control_enabled=call_control.enabled,
        )
        yield
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await call_control.close()

    app = FastAPI(title="EveryCall Call Gateway", lifespan=lifespan)
    app.state.ingress = ingress
    app.state.resolver = resolver
    app.state.call_control = call_control
    app.state.pending_commands = pending
    install_common(app, SERVICE_NAME)

    router = APIRouter()

    async def _handle(provider: str, request: Request):
        raw_body = await request.body()
        # Signature checks and routing-file reads are blocking
        result = await run_in_threadpool(
            ingress.handle,
            provider,
            raw_body,
            request.headers,
            signed_url(request, gw.public_base_url),
            request.state.trace_id,
        )
        if result.ignored:
            return {"ok": True, "ignored": result.envelope.event_type}
        return {"ok": True}

    @router.post(TWILIO_INBOUND_PATH)
    async def twilio_inbound(request: Request):
        return await _handle("twilio", request)

    @router.post(TELNYX_TEXML_INBOUND_PATH)
    async def telnyx_texml_inbound(request: Request):
        return await _handle("telnyx_texml", request)

    @router.post(TELNYX_CALL_CONTROL_INBOUND_PATH)
    async def telnyx_call_control_inbound(request: Request):
        return await _handle("telnyx", request)

    app.include_router(router)
    return app
