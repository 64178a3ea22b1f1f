"""FastAPI app entry."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coachgate.adapters.openai_responses.router import (
    method_not_allowed_response,
    preflight_response,
    router as chat_router,
)
from coachgate.adapters.openai_responses.upstream import close_upstream_async_client
from coachgate.config.settings import settings
from coachgate.util.logger import logger


app = FastAPI(title=settings.app_name)
app.include_router(chat_router)


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    if request.method.upper() == "OPTIONS":
        logger.debug("preflight path=%s", request.url.path)
        return preflight_response()
    if request.url.path == settings.chat_path and request.method.upper() != "POST":
        return method_not_allowed_response(request.method, request.url.path)

    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover - fail-safe
        logger.exception("gateway unhandled exception path=%s", request.url.path)
        response = JSONResponse(
            status_code=500,
            content={"error": "Internal error", "detail": type(exc).__name__},
        )
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@app.get("/health")
def health() -> dict:
    logger.info("health check")
    return {"status": "ok"}


@app.on_event("startup")
async def startup_check() -> None:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; chat requests will fail with 500")
    if not settings.debug_token:
        logger.info("debug token not configured; all callers use the standard tier")


@app.on_event("shutdown")
async def shutdown_cleanup() -> None:
    await close_upstream_async_client()
