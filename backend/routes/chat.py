"""Store assistant route."""
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend.services.assistant_pipeline import AssistantPipeline
from backend.services.errors import AssistantError, ConfigError
from backend.services.runtime import log_event

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger("chat_route")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role:    Literal["user", "assistant"]
    content: str


class AssistantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message:              str
    conversation_history: Optional[List[ConversationTurn]] = Field(default=None, alias="conversationHistory")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def assistant_error_response(exc: AssistantError) -> JSONResponse:
    log_event(logger, logging.WARNING, "assistant_request_failed", status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def get_pipeline(request: Request) -> AssistantPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        error = getattr(request.app.state, "startup_error", None)
        if isinstance(error, AssistantError):
            raise type(error)(error.message)
        raise ConfigError()
    return pipeline


# ---------------------------------------------------------------------------
# POST /api/chat/assistant
# ---------------------------------------------------------------------------
@router.post("/assistant")
async def assistant(req: AssistantRequest, pipeline: AssistantPipeline = Depends(get_pipeline)):
    try:
        history = [turn.model_dump() for turn in req.conversation_history or []]
        envelope = await pipeline.answer(req.message, history)
    except AssistantError:
        # Mapped to its status code by the handler registered in backend.main
        raise
    except Exception as exc:
        logger.exception("assistant_unhandled_error")
        return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})
    return JSONResponse(content=envelope.to_wire())
