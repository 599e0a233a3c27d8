"""
AI orchestrator service: one decision per conversational turn.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import APIRouter, FastAPI, Response

from everycall.api.common import install_common
from everycall.config import AppConfig
from everycall.core.contracts import TurnRequest, TurnResponse
from everycall.decision import DecisionEngine
from everycall.decision.completion import OpenAIResponsesClient
from everycall.logging_config import set_correlation_id

logger = structlog.get_logger(__name__)

SERVICE_NAME = "ai-orchestrator"


def create_orchestrator_app(config: AppConfig, *, engine: Optional[DecisionEngine] = None) -> FastAPI:
    oc = config.orchestrator
    if engine is None:
        client = OpenAIResponsesClient(oc.api_key, oc.model, base_url=oc.base_url, timeout_sec=oc.timeout_sec)
        engine = DecisionEngine(client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("ai_orchestrator_started", port=oc.port, model=oc.model, openai_enabled=bool(oc.api_key))
        yield
        await engine.close()

    app = FastAPI(title="EveryCall AI Orchestrator", lifespan=lifespan)
    app.state.engine = engine
    install_common(app, SERVICE_NAME)

    router = APIRouter()

    @router.post("/v1/ai/orchestrate-turn", response_model=TurnResponse)
    async def orchestrate_turn(turn: TurnRequest, response: Response):
        set_correlation_id(turn.trace_id)
        decision = await engine.decide(turn)
        response.headers["X-Decision-Provider"] = decision.provider
        return TurnResponse(
            trace_id=turn.trace_id,
            tenant_id=turn.tenant_id,
            call_id=turn.call_id,
            turn_id=turn.turn_id,
            next_action=decision.next_action,
            extracted=decision.extracted,
        )

    app.include_router(router)
    return app
