"""FastAPI application factories, one per service."""

from everycall.api.gateway import create_gateway_app
from everycall.api.orchestrator import create_orchestrator_app
from everycall.api.voice import create_voice_app

__all__ = ["create_gateway_app", "create_orchestrator_app", "create_voice_app"]
