"""
FastAPI backend for the store assistant.
Run with: uvicorn backend.main:app --reload --port 8000
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from backend.routes.chat import assistant_error_response, router as chat_router
from backend.services.assistant_pipeline import AssistantPipeline
from backend.services.config import AssistantConfig
from backend.services.errors import AssistantError
from backend.services.runtime import clear_context, set_request_id, shutdown_shared_executor

logger = logging.getLogger("backend")

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Config is validated exactly once here; a failure leaves the app up but
    # every assistant request answers 500 with the startup error.
    app.state.pipeline = None
    app.state.startup_error = None
    try:
        app.state.pipeline = AssistantPipeline.from_config(AssistantConfig.from_env())
    except AssistantError as exc:
        app.state.startup_error = exc
        logger.error("assistant_startup_failed: %s", exc.message)

    yield

    if app.state.pipeline is not None:
        app.state.pipeline.store.dispose()
    shutdown_shared_executor(wait=False)


app = FastAPI(title="Store Assistant API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id") or str(uuid.uuid4()))
    try:
        if request.method == "OPTIONS":
            response = Response(status_code=200, headers=CORS_HEADERS)
        else:
            response = await call_next(request)
    except Exception:
        logger.exception("request_failed request_id=%s path=%s", request_id, request.url.path)
        raise
    finally:
        clear_context()
    response.headers.update(CORS_HEADERS)
    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(AssistantError)
async def handle_assistant_error(request: Request, exc: AssistantError):
    return assistant_error_response(exc)


@app.exception_handler(RequestValidationError)
async def handle_invalid_body(request: Request, exc: RequestValidationError):
    # Body problems share the {error} shape of every other failure.
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
    )
    logger.warning("invalid_request_body path=%s %s", request.url.path, details)
    return JSONResponse(status_code=500, content={"error": f"Invalid request body: {details}"})


app.include_router(chat_router)


@app.get("/api/health")
def health():
    return {"status": "ok"}
