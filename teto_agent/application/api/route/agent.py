from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from teto_agent.application.chat_service import ChatOutcome, ChatRequest, ChatService
from teto_agent.domain.models.conversation_state import Degraded, Fatal
from teto_agent.infrastructure.observability.logging import metrics

router = APIRouter()


class ChatResponse(BaseModel):
    response: str
    status: str  # "ok", "degraded" or "failed"


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def to_response(outcome: ChatOutcome) -> ChatResponse:
    if isinstance(outcome, Fatal):
        return ChatResponse(response=outcome.value, status="failed")
    if isinstance(outcome, Degraded):
        return ChatResponse(response=outcome.value, status="degraded")
    return ChatResponse(response=outcome.value, status="ok")


# Failures are still 200: the reply text is always safe to show
@router.post("/api/v1/agent/chat", response_model=ChatResponse)
async def chat_endpoint(
    request: ChatRequest,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
):
    outcome = await chat_service.respond(request)
    return to_response(outcome)


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/metrics")
async def metrics_snapshot():
    return metrics.snapshot()
