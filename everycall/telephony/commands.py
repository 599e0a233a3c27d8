"""
Telnyx Call Control command client.

The core does not manage call legs; the only command it issues is a hangup
for a Call Control call that no tenant owns, so the caller is not left
ringing. Commands are fire-and-forget: failures are logged, never raised
into webhook handling.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import aiohttp
import structlog

logger = structlog.get_logger(__name__)


class CallControlCommandError(RuntimeError):
    """A Call Control command returned a non-2xx status."""


class TelnyxCallControl:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.telnyx.com/v2",
        timeout_sec: float = 5.0,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def enabled(self) -> bool:
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

    async def command(self, call_control_id: str, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST ``/calls/{id}/actions/{action}``; raises on transport error or non-2xx."""
        await self._ensure_session()
        assert self._session
        url = f"{self._base_url}/calls/{call_control_id}/actions/{action}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        async with self._session.post(url, json=payload or {}, headers=headers, timeout=self._timeout) as resp:
            body = await resp.text()
            if resp.status >= 400:
                raise CallControlCommandError(f"telnyx_command_failed:{action}:{resp.status}:{body[:200]}")
            try:
                return json.loads(body) if body else {}
            except ValueError:
                return {}

    async def hangup_quietly(self, call_control_id: str) -> bool:
        """Hang up a call, logging instead of raising. Returns True on success."""
        if not self.enabled or not call_control_id:
            return False
        try:
            await self.command(call_control_id, "hangup")
        except (aiohttp.ClientError, asyncio.TimeoutError, CallControlCommandError) as e:
            logger.warning("call_control_hangup_failed", call_control_id=call_control_id, error=str(e))
            return False
        logger.info("call_control_hangup_sent", call_control_id=call_control_id)
        return True
