"""
StreakProof – Onboarding Generation API

This module exposes a FastAPI app that wraps the onboarding pipeline:
behaviour profile summary, starter commitment recommendations, and the
deterministic fallbacks behind both.

The two generation endpoints never fail from the caller's point of view:
any generator problem is answered with the fallback result. Only a request
body that cannot be parsed is reported as an error.

File: api_main.py
"""

import logging
import os
import uuid
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings, resolve_features
from schemas import (
    AnswerPayload,
    GenerationSource,
    OnboardingPlan,
    ProfileSummary,
    RecommendationsRequest,
    RecommendationsResponse,
)
from ai_nodes import recommend_commitments, summarize_profile
from contract import validate_profile_summary
from fallbacks import recommend_fallback, summarize_fallback
from graph_app import build_onboarding_graph, run_onboarding_plan

# --------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

for _name in ("streakproof_api", "streakproof_ai"):
    _logger = logging.getLogger(_name)
    _logger.setLevel(logging.INFO)
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        _logger.addHandler(handler)

logger = logging.getLogger("streakproof_api")

SOURCE_HEADER = "X-Generation-Source"

# --------------------------------------------------------------------
# API Models (Stable Contracts)
# --------------------------------------------------------------------


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
    request_id: Optional[str] = None


class FeaturesResponse(BaseModel):
    free_mode: bool
    features: Dict[str, bool]


# --------------------------------------------------------------------
# FastAPI App
# --------------------------------------------------------------------

app = FastAPI(
    title="StreakProof – Onboarding API",
    description=(
        "Behaviour profile summary and starter commitment recommendations "
        "for StreakProof onboarding, with deterministic fallbacks."
    ),
    version="1.0.0",
)

# CORS – the Expo client calls from device and web origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

onboarding_graph = build_onboarding_graph()

# --------------------------------------------------------------------
# Middleware
# --------------------------------------------------------------------


@app.middleware("http")
async def add_request_id_and_log(request: Request, call_next):
    """Attach a request ID to each request and log basic info."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(f"[{request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception as exc:  # global safety net
        logger.exception(f"[{request_id}] Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                details="Unexpected error",
                request_id=request_id,
            ).model_dump(),
        )

    response.headers["X-Request-ID"] = request_id
    return response


# --------------------------------------------------------------------
# Exception Handlers
# --------------------------------------------------------------------


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = getattr(request.state, "request_id", None)
    logger.warning(f"[{request_id}] HTTPException {exc.status_code}: {exc.detail}")

    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = {**detail, "request_id": request_id}
    else:
        content = ErrorResponse(
            error=str(detail),
            details=None,
            request_id=request_id,
        ).model_dump()

    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Unparseable or mistyped request bodies: the one error class callers see."""
    request_id = getattr(request.state, "request_id", None)
    logger.warning(f"[{request_id}] RequestValidationError: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Invalid request body",
            details=jsonable_encoder(exc.errors()),
            request_id=request_id,
        ).model_dump(),
    )


# --------------------------------------------------------------------
# Basic & Health
# --------------------------------------------------------------------


@app.get("/", tags=["meta"])
def root(settings: Settings = Depends(get_settings)):
    return {
        "message": "StreakProof onboarding API is running.",
        "docs_url": "/docs",
        "environment": settings.env,
        "debug": settings.debug,
    }


@app.get("/health", tags=["meta"])
def health_check(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "openai_key_configured": settings.openai_configured,
        "openai_timeout_ms": settings.openai_timeout_ms,
        "free_mode": settings.free_mode,
        "environment": settings.env,
        "debug": settings.debug,
    }


@app.get(
    "/features",
    response_model=FeaturesResponse,
    tags=["meta"],
    summary="Resolve pro-gated feature flags",
)
def features(pro: bool = False, settings: Settings = Depends(get_settings)):
    """
    FREE_MODE grants every flagged feature; otherwise only subscribers
    (`pro=true`) get them.
    """
    return FeaturesResponse(
        free_mode=settings.free_mode,
        features=resolve_features(settings, has_subscription=pro),
    )


# --------------------------------------------------------------------
# Onboarding: Profile Summary
# --------------------------------------------------------------------


@app.post(
    "/onboarding/summary",
    response_model=ProfileSummary,
    tags=["onboarding"],
    summary="Behaviour profile from onboarding answers (always 200)",
)
async def onboarding_summary(
    payload: AnswerPayload,
    response: Response,
    settings: Settings = Depends(get_settings),
):
    """
    Frontend flow:
    - Once focus domains and change style are answered, the client POSTs the
      AnswerPayload (camelCase legacy names are accepted).
    - Returns a ProfileSummary. `X-Generation-Source` says whether it was
      generated ("server") or the deterministic fallback ("fallback").
    """
    try:
        result = await summarize_profile(payload, settings)
        summary, source = result.value, result.source
    except Exception as e:
        # Still return the fallback, not a 500, to keep onboarding moving
        logger.exception(f"summarize_profile crashed: {e}")
        summary, source = summarize_fallback(payload), GenerationSource.FALLBACK

    response.headers[SOURCE_HEADER] = source.value
    return summary


@app.post(
    "/onboarding/summary-fallback",
    response_model=ProfileSummary,
    tags=["onboarding"],
    summary="Deterministic profile summary (no LLM)",
)
def onboarding_summary_fallback(payload: AnswerPayload, response: Response):
    """
    Useful for:
    - Testing
    - Strict cost control environments
    """
    response.headers[SOURCE_HEADER] = GenerationSource.FALLBACK.value
    return summarize_fallback(payload)


# --------------------------------------------------------------------
# Onboarding: Recommendations
# --------------------------------------------------------------------


def _client_summary(raw: Optional[Dict[str, Any]]) -> Optional[ProfileSummary]:
    """The caller's summary if it meets the contract with no empty section, else None."""
    if raw is None:
        return None
    summary = validate_profile_summary(raw)
    if summary is None or not summary.is_complete():
        logger.warning("client sent an unusable summary, recommendations use the fallback summary")
        return None
    return summary


@app.post(
    "/onboarding/recommendations",
    response_model=RecommendationsResponse,
    tags=["onboarding"],
    summary="Starter commitments from answers + profile (always 200)",
)
async def onboarding_recommendations(
    req: RecommendationsRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
):
    """
    Caller must send:
    - payload: the same AnswerPayload used for the summary
    - summary: the ProfileSummary it currently holds (server or fallback)

    The server does not recompute the summary. Up to 5 commitments come back.
    """
    try:
        summary = _client_summary(req.summary)
        result = await recommend_commitments(req.payload, summary, settings)
        commitments, source = result.value, result.source
    except Exception as e:
        logger.exception(f"recommend_commitments crashed: {e}")
        commitments, source = recommend_fallback(req.payload), GenerationSource.FALLBACK

    response.headers[SOURCE_HEADER] = source.value
    return RecommendationsResponse(commitments=commitments)


@app.post(
    "/onboarding/recommendations-fallback",
    response_model=RecommendationsResponse,
    tags=["onboarding"],
    summary="Deterministic starter commitments (no LLM)",
)
def onboarding_recommendations_fallback(req: RecommendationsRequest, response: Response):
    response.headers[SOURCE_HEADER] = GenerationSource.FALLBACK.value
    return RecommendationsResponse(commitments=recommend_fallback(req.payload))


# --------------------------------------------------------------------
# Onboarding: One-shot plan (summary -> recommendations graph)
# --------------------------------------------------------------------


@app.post(
    "/onboarding/plan",
    response_model=OnboardingPlan,
    tags=["onboarding"],
    summary="Summary and recommendations in one call",
)
async def onboarding_plan(payload: AnswerPayload, settings: Settings = Depends(get_settings)):
    """
    Runs the LangGraph flow server-side:

      summary -> recommendations

    For clients that cannot hide two round-trips behind earlier screens.
    """
    try:
        return await run_onboarding_plan(payload, settings, graph=onboarding_graph)
    except Exception as e:
        logger.exception(f"onboarding graph failed: {e}")
        return OnboardingPlan(
            summary=summarize_fallback(payload),
            commitments=recommend_fallback(payload),
            summary_source=GenerationSource.FALLBACK,
            recommendations_source=GenerationSource.FALLBACK,
        )


# --------------------------------------------------------------------
# Local dev runner
# --------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True,
    )
