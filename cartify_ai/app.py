from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .assistant_pipeline import ShoppingAssistantPipeline, build_pipeline
from .config import BASE_DIR, Settings, load_settings
from .errors import AssistantError
from .models import ErrorResponse, HealthResponse

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("cartify").setLevel(log_level)
logger = logging.getLogger("cartify.app")

PipelineBuilder = Callable[[Settings, httpx.Client], ShoppingAssistantPipeline]

app = FastAPI(title="Cartify Shopping Assistant")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS", "GET"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

settings = load_settings()


def get_settings() -> Settings:
    return settings


def get_pipeline_builder() -> PipelineBuilder:
    return build_pipeline


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    """Purpose: Map pipeline errors to {"error": message} with their status code.
    Inputs/Outputs: Inputs are the request and the raised AssistantError; output is
        a JSONResponse.
    Side Effects / State: Logs server-side failures at WARNING.
    Dependencies: Uses ErrorResponse.
    Failure Modes: None.
    If Removed: Auth and input failures would surface as generic 500s.
    Testing Notes: Anonymous token returns 401 {"error": "Not authenticated"}.
    """
    if exc.status_code >= 500:
        logger.warning("request failed status=%d error=%s", exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=exc.message).model_dump())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(status_code=500, content=ErrorResponse(error=str(exc) or "Unknown error").model_dump())


async def read_json_body(request: Request) -> Any:
    """Purpose: Decode the request body as JSON without raising.
    Inputs/Outputs: Input is the request; output is the decoded value or None.
    Side Effects / State: Consumes the request body.
    Dependencies: Uses json.loads.
    Failure Modes: Empty or invalid JSON returns None, which later fails validation.
    If Removed: Malformed bodies would raise 422s with FastAPI's own error shape.
    Testing Notes: Post "not json" and expect 400 {"error": "Invalid messages"}.
    """
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@app.post("/api/assistant")
@app.post("/functions/v1/customer-profile-ai")
async def assistant(
    request: Request,
    current_settings: Settings = Depends(get_settings),
    builder: PipelineBuilder = Depends(get_pipeline_builder),
) -> JSONResponse:
    """Purpose: Handle a chat request and return the augmented model response.
    Inputs/Outputs: Input is the raw request (Authorization header + JSON body);
        output is the provider payload with __web_search and __catalog_context.
    Side Effects / State: Creates a request-scoped httpx.Client; outbound calls.
    Dependencies: Uses the pipeline builder and run_in_threadpool for blocking I/O.
    Failure Modes: AssistantError subclasses are mapped by assistant_error_handler.
    If Removed: The storefront assistant has no backend.
    Testing Notes: Override get_pipeline_builder with fakes and post a message.
    """
    # Collaborators are built per request so nothing is shared across requests.
    body = await read_json_body(request)
    authorization = request.headers.get("authorization")

    def run() -> Any:
        with httpx.Client(timeout=current_settings.http_timeout_seconds, follow_redirects=True) as http:
            pipeline = builder(current_settings, http)
            return pipeline.handle(authorization, body)

    payload = await run_in_threadpool(run)
    return JSONResponse(content=payload)


@app.get("/health", response_model=HealthResponse)
def health(current_settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        collaborators={
            "gemini": bool(current_settings.gemini_api_key),
            "web_search_primary": bool(current_settings.brave_search_api_key),
            "catalog": current_settings.catalog_enabled,
        },
        default_model=current_settings.default_model,
    )
