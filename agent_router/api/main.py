"""FastAPI application entrypoint and HTTP endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from agent_router.core.errors import InvalidRequestError
from agent_router.core.logging import configure_logging
from agent_router.core.settings import get_settings
from agent_router.models.change_request import ChangeRequest
from agent_router.models.routing_models import AgentOutcome
from agent_router.routing.router import Router, get_router

log = structlog.get_logger(__name__)


class ExplainResponse(BaseModel):
    outcome: AgentOutcome
    explanation: str


@asynccontextmanager
async def lifespan(application: FastAPI):
    """FastAPI lifespan hook: configure logging and build the router.

    A ConfigurationError in the rule table aborts startup.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    application.state.router = Router.from_settings(settings)
    log.info("api_startup_complete", rules=len(application.state.router.rules))
    yield
    log.info("api_shutdown_complete")


app = FastAPI(title="Rails Agent Router API", version="1.0.0", lifespan=lifespan)


def _router(request: Request) -> Router:
    router = getattr(request.app.state, "router", None)
    return router if router is not None else get_router()


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(_request: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.middleware("http")
async def api_key_guard(request: Request, call_next):
    settings = get_settings()
    if settings.API_KEY and request.url.path.startswith("/v1/"):
        provided = request.headers.get(settings.API_KEY_HEADER)
        if provided != settings.API_KEY:
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


@app.post("/v1/route", response_model=AgentOutcome)
async def route_change(request: Request, payload: dict[str, Any] = Body(...)) -> AgentOutcome:
    """Classify a change request and return the assigned agent."""
    change = ChangeRequest.parse(payload)
    return _router(request).route(change)


@app.post("/v1/explain", response_model=ExplainResponse)
async def explain_change(request: Request, payload: dict[str, Any] = Body(...)) -> ExplainResponse:
    """Classify a change request and return the routing trace as text."""
    change = ChangeRequest.parse(payload)
    outcome, explanation = _router(request).route_with_explanation(change)
    return ExplainResponse(outcome=outcome, explanation=explanation)


@app.get("/v1/agents")
async def list_agents(request: Request) -> dict[str, Any]:
    """Agent profile catalogue."""
    registry = _router(request).registry
    return {
        "agents": [
            {
                "agent_id": p.agent_id.value,
                "name": p.name,
                "description": p.description,
                "artefacts": p.artefacts,
                "examples": p.examples,
            }
            for p in registry.get_all()
        ],
    }


@app.get("/v1/rules")
async def list_rules(request: Request) -> dict[str, Any]:
    """Rules in evaluation order."""
    return {"rules": _router(request).rules.describe()}


@app.get("/health")
async def health(request: Request) -> dict[str, Any]:
    return {"status": "healthy", "rules": len(_router(request).rules)}
