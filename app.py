import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from langgraph.graph import StateGraph, START, END
from loguru import logger
from openai import AsyncOpenAI

from delivery.base import ChannelAdapter
from delivery.orchestrator import (
    NO_CHANNELS_CONFIGURED,
    DeliveryOrchestrator,
    build_adapters,
)
from graph.nodes.capture import capture
from graph.nodes.deliver import make_deliver
from graph.state import IntakeState
from intake.chat import ChatAgent
from intake.config import Settings, configure_logging
from intake.errors import ForbiddenOrigin, IntakeError, InvalidPayload
from intake.guard import OriginDecision, OriginGuard

# Load environment variables
load_dotenv()

VERSION = "1.0.0"


# Build the LangGraph workflow
def build_workflow(orchestrator: DeliveryOrchestrator):
    """Build the lead intake workflow: capture (normalize) then deliver."""
    workflow = StateGraph(IntakeState)

    workflow.add_node("capture", capture)
    workflow.add_node("deliver", make_deliver(orchestrator))

    workflow.add_edge(START, "capture")

    # A request-fatal error ends the run before any channel is attempted
    def branch_decision(state: IntakeState) -> str:
        if state.get("error") is not None:
            return "reject"
        return "deliver"

    workflow.add_conditional_edges(
        "capture",
        branch_decision,
        {
            "deliver": "deliver",
            "reject": END,
        }
    )
    workflow.add_edge("deliver", END)

    return workflow.compile()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build long-lived clients once per process and close them on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings)

    http_client: Optional[httpx.AsyncClient] = None
    openai_client: Optional[AsyncOpenAI] = None

    adapters = app.state.adapters
    if adapters is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.channel_timeout))
        adapters = build_adapters(settings, http_client)

    orchestrator = DeliveryOrchestrator(
        adapters,
        timeout=settings.channel_timeout,
        required=settings.required(),
    )
    app.state.orchestrator = orchestrator
    app.state.workflow = build_workflow(orchestrator)

    if app.state.chat_agent is None:
        if settings.openai_api_key and not settings.chat_bypass:
            openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        app.state.chat_agent = ChatAgent(
            openai_client,
            model=settings.openai_model,
            temperature=settings.chat_temperature,
            company_name=settings.company_name,
            bypass=settings.chat_bypass,
        )

    logger.info(
        f"Lead intake ready: allowed={list(app.state.guard.allowlist)} "
        f"channels={orchestrator.channels_configured()}"
    )
    try:
        yield
    finally:
        if http_client is not None:
            await http_client.aclose()
        if openai_client is not None:
            await openai_client.close()


def create_app(
    settings: Optional[Settings] = None,
    adapters: Optional[List[ChannelAdapter]] = None,
    chat_agent: Optional[ChatAgent] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Process configuration (read from the environment if omitted)
        adapters: Delivery channels; built from settings at startup if omitted
        chat_agent: Conversational agent; built from settings at startup if omitted
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Move Lead Intake Relay",
        description="Origin-guarded lead intake with concurrent CRM, email and chat delivery",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.guard = OriginGuard(settings.allowlist())
    app.state.adapters = adapters
    app.state.chat_agent = chat_agent

    def check_origin(request: Request) -> OriginDecision:
        decision = request.app.state.guard.decide(request.headers.get("origin"))
        if not decision.allowed:
            raise ForbiddenOrigin(f"Origin {request.headers.get('origin')!r} is not allowed")
        return decision

    def preflight(request: Request) -> Response:
        decision = request.app.state.guard.decide(request.headers.get("origin"))
        return Response(status_code=204 if decision.allowed else 403, headers=decision.headers)

    @app.options("/intake")
    async def intake_preflight(request: Request):
        """CORS preflight for the intake endpoint."""
        return preflight(request)

    @app.get("/intake")
    async def intake_status(request: Request):
        """Diagnostics: allowlist and channel configuration. No side effects."""
        decision = check_origin(request)
        orchestrator: DeliveryOrchestrator = request.app.state.orchestrator
        return JSONResponse(
            content={
                "ok": True,
                "route": "intake",
                "origin": request.headers.get("origin"),
                "allowed_origins": list(request.app.state.guard.allowlist),
                "channels_configured": orchestrator.channels_configured(),
                "required_channels": sorted(orchestrator.required),
            },
            headers=decision.headers,
        )

    @app.post("/intake")
    async def intake_lead(request: Request):
        """
        Lead intake endpoint.

        Expected payload:
        {
            "lead": {"full_name": "Jane Doe", "phone": "404-555-1234", "move_date": "2025-09-15", ...},
            "utm": {"utm_source": "google", "gclid": "..."},
            "page_url": "https://www.example.com/quote",
            "is_test": false
        }
        """
        start_time = time.time()
        decision = check_origin(request)

        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise InvalidPayload("Body must be a JSON object")

        result = await request.app.state.workflow.ainvoke({"body": body, "error": None})

        error = result.get("error")
        if error is not None:
            raise error

        report = result["report"]
        if report.error == NO_CHANNELS_CONFIGURED:
            status_code = 500
        elif not report.ok:
            status_code = 502
        else:
            status_code = 200

        processing_time = time.time() - start_time
        logger.info(f"Lead intake completed in {processing_time:.2f}s with status {status_code}")

        return JSONResponse(status_code=status_code, content=report.to_response(), headers=decision.headers)

    @app.options("/chat")
    async def chat_preflight(request: Request):
        """CORS preflight for the chat endpoint."""
        return preflight(request)

    @app.get("/chat")
    async def chat_status(request: Request):
        """Diagnostics for the chat widget."""
        decision = check_origin(request)
        agent: ChatAgent = request.app.state.chat_agent
        return JSONResponse(
            content={
                "ok": True,
                "route": "chat",
                "origin": request.headers.get("origin"),
                "allowed_origins": list(request.app.state.guard.allowlist),
                "model": agent.model,
                "bypass": agent.bypass,
            },
            headers=decision.headers,
        )

    @app.post("/chat")
    async def chat(request: Request):
        """Next assistant turn for the chat widget; force_json asks for the lead JSON."""
        decision = check_origin(request)

        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        agent: ChatAgent = request.app.state.chat_agent
        reply = await agent.reply(body.get("history") or [], force_json=bool(body.get("force_json")))
        return JSONResponse(content=reply.to_response(), headers=decision.headers)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": VERSION,
        }

    # Error handlers
    @app.exception_handler(IntakeError)
    async def intake_error_handler(request: Request, exc: IntakeError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.code},
            headers=request.app.state.guard.headers_for(request.headers.get("origin")),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "internal_error"},
            headers=request.app.state.guard.headers_for(request.headers.get("origin")),
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Move Lead Intake Relay")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="info"
    )
