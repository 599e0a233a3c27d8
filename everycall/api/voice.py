"""
Voice service: chunked speech synthesis with out-of-band stop.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse

from everycall.api.common import install_common
from everycall.config import AppConfig
from everycall.core.contracts import SynthesisRequest
from everycall.logging_config import set_correlation_id
from everycall.voice import SpeechStreamingService, UtteranceCancellationRegistry
from everycall.voice.elevenlabs import ElevenLabsStreamingClient

logger = structlog.get_logger(__name__)

SERVICE_NAME = "voice-service"


def create_voice_app(config: AppConfig, *, service: Optional[SpeechStreamingService] = None) -> FastAPI:
    vc = config.voice
    if service is None:
        client = ElevenLabsStreamingClient(
            vc.api_key,
            vc.model_id,
            base_url=vc.base_url,
            timeout_sec=vc.timeout_sec,
            chunk_size_bytes=vc.chunk_size_bytes,
            default_voice_id=vc.default_voice_id,
        )
        service = SpeechStreamingService(client, UtteranceCancellationRegistry(ttl_sec=vc.cancellation_ttl_sec))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "voice_service_started",
            port=vc.port,
            elevenlabs_model=vc.model_id,
            elevenlabs_enabled=bool(vc.api_key),
        )
        yield
        await service.close()

    app = FastAPI(title="EveryCall Voice Service", lifespan=lifespan)
    app.state.speech = service
    install_common(app, SERVICE_NAME)

    router = APIRouter()

    @router.post("/v1/voice/synthesize-stream")
    async def synthesize_stream(body: SynthesisRequest):
        set_correlation_id(body.trace_id)
        logger.info(
            "tts_synthesize_started",
            tenant_id=body.tenant_id,
            call_id=body.call_id,
            utterance_id=body.utterance_id,
            requested_provider=body.provider,
        )
        stream = await service.open_stream(body)
        logger.info("tts_synthesize_provider_result", utterance_id=body.utterance_id, provider_used=stream.provider)
        return StreamingResponse(
            stream.chunks,
            media_type=stream.media_type,
            headers={"X-Utterance-Id": body.utterance_id, "X-Provider": stream.provider},
        )

    @router.post("/v1/voice/utterances/{utterance_id}/stop", status_code=202)
    async def stop_utterance(utterance_id: str):
        service.stop(utterance_id)
        return JSONResponse(status_code=202, content={"ok": True, "utterance_id": utterance_id})

    app.include_router(router)
    return app
