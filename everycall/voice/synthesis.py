"""
Speech streaming service.

``open_stream`` commits to a provider before any bytes are sent: the primary
stream is opened and its first chunk fetched up front, so a provider failure
before the first byte still becomes a clean placeholder response. After
that, chunks are forwarded as they arrive, checking the cancellation
registry before each one.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import aiohttp
import structlog
from prometheus_client import Counter

from everycall.core.contracts import SynthesisRequest
from everycall.voice.cancellation import UtteranceCancellationRegistry
from everycall.voice.elevenlabs import (
    ElevenLabsStreamingClient,
    SynthesisProviderError,
    media_type_for,
    select_output_format,
)

logger = structlog.get_logger(__name__)

_SYNTHESES = Counter(
    "everycall_synthesis_total",
    "Synthesis streams opened, by the provider that served them",
    labelnames=("provider",),
)
_CANCELLED = Counter(
    "everycall_synthesis_cancelled_total",
    "Synthesis streams stopped early by a barge-in",
)

FALLBACK_PREFIX = b"AUDIO_FALLBACK:"
FALLBACK_MEDIA_TYPE = "application/octet-stream"


@dataclass
class SynthesisStream:
    provider: str
    media_type: str
    chunks: AsyncIterator[bytes]


def fallback_chunk(text: str) -> bytes:
    return FALLBACK_PREFIX + text[:64].encode("utf-8")


class SpeechStreamingService:
    def __init__(
        self,
        client: Optional[ElevenLabsStreamingClient],
        registry: UtteranceCancellationRegistry,
    ):
        self._client = client
        self._registry = registry

    async def close(self) -> None:
        if self._client:
            await self._client.close()

    async def open_stream(self, request: SynthesisRequest) -> SynthesisStream:
        log = logger.bind(call_id=request.call_id, utterance_id=request.utterance_id)

        if request.provider != "elevenlabs":
            log.info("tts_provider_unsupported", requested_provider=request.provider)
            return self._fallback(request)
        if not self._client or not self._client.available:
            log.info("tts_provider_not_configured", requested_provider=request.provider)
            return self._fallback(request)

        upstream = self._client.stream(request.voice, request.audio, request.text)
        try:
            first = await upstream.__anext__()
        except StopAsyncIteration:
            log.warning("tts_provider_failed", code="elevenlabs_empty_stream")
            return self._fallback(request)
        except SynthesisProviderError as e:
            log.warning("tts_provider_failed", code="elevenlabs_http_error", error=str(e))
            return self._fallback(request)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("tts_provider_failed", code="elevenlabs_transport_error", error_type=type(e).__name__)
            await upstream.aclose()
            return self._fallback(request)
        except Exception as e:
            log.error("tts_provider_failed", code="elevenlabs_unexpected_error", error_type=type(e).__name__)
            await upstream.aclose()
            return self._fallback(request)

        _SYNTHESES.labels(provider="elevenlabs").inc()
        log.info("tts_stream_started", provider="elevenlabs")
        return SynthesisStream(
            provider="elevenlabs",
            media_type=media_type_for(select_output_format(request.audio)),
            chunks=self._forward(request.utterance_id, first, upstream),
        )

    def stop(self, utterance_id: str) -> bool:
        """Mark an utterance for cancellation. Returns whether a stream was in flight."""
        in_flight = self._registry.mark(utterance_id)
        logger.info("tts_utterance_stopped", utterance_id=utterance_id, in_flight=in_flight)
        return in_flight

    def _fallback(self, request: SynthesisRequest) -> SynthesisStream:
        _SYNTHESES.labels(provider="fallback").inc()
        return SynthesisStream(
            provider="fallback",
            media_type=FALLBACK_MEDIA_TYPE,
            chunks=self._fallback_chunks(request.utterance_id, request.text),
        )

    async def _fallback_chunks(self, utterance_id: str, text: str) -> AsyncIterator[bytes]:
        self._registry.begin(utterance_id)
        try:
            if self._registry.consume(utterance_id):
                _CANCELLED.inc()
                return
            yield fallback_chunk(text)
        finally:
            self._registry.finish(utterance_id)

    async def _forward(self, utterance_id: str, first: bytes, upstream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        self._registry.begin(utterance_id)
        sent = 0
        try:
            chunk = first
            while True:
                if self._registry.consume(utterance_id):
                    _CANCELLED.inc()
                    logger.info("tts_stream_cancelled", utterance_id=utterance_id, chunks_sent=sent)
                    break
                yield chunk
                sent += 1
                try:
                    chunk = await upstream.__anext__()
                except StopAsyncIteration:
                    break
                except (aiohttp.ClientError, asyncio.TimeoutError, SynthesisProviderError) as e:
                    # Partial audio already went out; stop forwarding quietly
                    logger.warning(
                        "tts_stream_interrupted",
                        utterance_id=utterance_id,
                        chunks_sent=sent,
                        error_type=type(e).__name__,
                    )
                    break
                except Exception as e:
                    logger.error(
                        "tts_stream_interrupted",
                        code="elevenlabs_unexpected_error",
                        utterance_id=utterance_id,
                        chunks_sent=sent,
                        error_type=type(e).__name__,
                    )
                    break
        finally:
            self._registry.finish(utterance_id)
            await upstream.aclose()
