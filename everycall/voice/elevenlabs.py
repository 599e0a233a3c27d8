"""
ElevenLabs streaming text-to-speech client.
"""

from typing import Any, AsyncIterator, Callable, Dict, Optional

import aiohttp
import structlog

from everycall.core.contracts import AudioParams, VoiceParams

logger = structlog.get_logger(__name__)

# PCM output rates ElevenLabs accepts as ``pcm_<rate>``
SUPPORTED_PCM_RATES = (16000, 22050, 24000, 44100)

MEDIA_TYPES = {
    "ulaw": "audio/basic",
    "pcm": "audio/L16",
    "mp3": "audio/mpeg",
}


class SynthesisProviderError(RuntimeError):
    """The provider rejected the request before any audio was produced."""


def select_output_format(audio: AudioParams) -> str:
    """
    Map the caller's target audio to an ElevenLabs ``output_format``.

    Narrowband targets get 8 kHz mu-law regardless of the requested format.
    """
    if audio.sample_rate_hz <= 8000:
        return "ulaw_8000"
    if audio.format == "pcm16" and audio.sample_rate_hz in SUPPORTED_PCM_RATES:
        return f"pcm_{audio.sample_rate_hz}"
    return "mp3_44100_128"


def media_type_for(output_format: str) -> str:
    return MEDIA_TYPES.get(output_format.split("_", 1)[0], "application/octet-stream")


def build_voice_settings(voice: VoiceParams) -> Dict[str, float]:
    """Only the settings the caller supplied; ElevenLabs defaults fill the rest."""
    settings = {
        "stability": voice.stability,
        "similarity_boost": voice.similarity_boost,
        "style": voice.style,
    }
    return {k: v for k, v in settings.items() if v is not None}


class ElevenLabsStreamingClient:
    def __init__(
        self,
        api_key: Optional[str],
        model_id: str,
        base_url: str = "https://api.elevenlabs.io",
        timeout_sec: float = 15.0,
        chunk_size_bytes: int = 4096,
        default_voice_id: Optional[str] = None,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._api_key = api_key
        self.model_id = model_id
        self._base_url = base_url.rstrip("/")
        self.default_voice_id = default_voice_id
        # Per-read bound only; a stream may run as long as chunks keep arriving
        self._timeout = aiohttp.ClientTimeout(total=None, connect=timeout_sec, sock_read=timeout_sec)
        self._chunk_size = chunk_size_bytes
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def _ensure_session(self) -> None:
        if self._session and not self._session.closed:
            return
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def stream(self, voice: VoiceParams, audio: AudioParams, text: str) -> AsyncIterator[bytes]:
        """
        Yield audio chunks as ElevenLabs produces them.

        Raises ``SynthesisProviderError`` on a non-2xx status and lets aiohttp
        transport errors propagate. Leaving the generator releases the
        provider response.
        """
        await self._ensure_session()
        assert self._session
        voice_id = voice.voice_id or self.default_voice_id
        if not voice_id:
            raise SynthesisProviderError("elevenlabs_voice_unset")
        url = f"{self._base_url}/v1/text-to-speech/{voice_id}/stream"
        output_format = select_output_format(audio)
        payload: Dict[str, Any] = {"model_id": self.model_id, "text": text}
        settings = build_voice_settings(voice)
        if settings:
            payload["voice_settings"] = settings
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": media_type_for(output_format),
        }

        logger.debug("elevenlabs_stream_request", voice_id=voice_id, output_format=output_format)
        async with self._session.post(
            url,
            params={"output_format": output_format},
            json=payload,
            headers=headers,
            timeout=self._timeout,
        ) as response:
            if response.status >= 400:
                body = await response.text()
                raise SynthesisProviderError(f"elevenlabs_http_error:{response.status}:{body[:128]}")
            async for chunk in response.content.iter_chunked(self._chunk_size):
                if chunk:
                    yield chunk
