from contextlib import asynccontextmanager
from typing import Optional
import uuid

import structlog
from fastapi import FastAPI, Request

from teto_agent.application.api.route.agent import router as agent_router
from teto_agent.application.chat_service import ChatService, build_chat_service
from teto_agent.infrastructure.config.settings import Settings
from teto_agent.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, chat_service: Optional[ChatService] = None) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        settings: Configuration, read from the environment when omitted
        chat_service: Prebuilt service; built from settings when omitted
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format, environment=settings.environment)
        owns_service = chat_service is None
        app.state.chat_service = chat_service or build_chat_service(settings)
        logger.info("Teto agent started", environment=settings.environment)
        try:
            yield
        finally:
            if owns_service:
                await app.state.chat_service.aclose()
            logger.info("Teto agent stopped")

    app = FastAPI(title="Teto Agent", lifespan=lifespan)

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        trace_id = request.headers.get("X-Trace-ID") or str(uuid.uuid4())
        with structlog.contextvars.bound_contextvars(trace_id=trace_id):
            response = await call_next(request)
        response.headers["X-Trace-ID"] = trace_id
        return response

    app.include_router(agent_router)
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
