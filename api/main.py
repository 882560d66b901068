"""
FastAPI Application - REST API for the Deskmate agents
- Centralised settings (Pydantic BaseSettings via config.py)
- Dependency Injection with Depends()
- Proper HTTP status codes + global error handlers

Endpoints:
- GET  /                          → Info
- GET  /health                    → Health check
- GET  /agents                    → Agent metadata
- POST /agents/{agent_id}/messages  → Single message entry point
- POST /agents/{agent_id}/documents → Knowledge ingestion
- POST /agents/{agent_id}/facts     → Store a fact
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent.errors import StorageUnavailable, ValidationInputError
from agent.factory import build_services, create_all_agents
from agent.orchestrator import AgentOrchestrator
from api.config import Settings, get_settings
from api.models import (
    AgentInfo,
    DocumentRequest,
    DocumentResponse,
    ErrorResponse,
    FactRequest,
    FactResponse,
    HealthResponse,
    MessageRequest,
    MessageResponse,
)

API_VERSION = "1.0.0"

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Dependency Injection
# Agents are singletons, overridable in tests via app.dependency_overrides

_agents: Dict[str, AgentOrchestrator] | None = None


def get_agents(settings: Settings = Depends(get_settings)) -> Dict[str, AgentOrchestrator]:
    """
    Dependency providing every agent, keyed by agent id.

    Can be overridden in tests via app.dependency_overrides[get_agents].
    """
    global _agents
    if _agents is None:
        logger.info("Initialising agents...")
        _agents = create_all_agents(build_services(settings))
        logger.info(f"Agents ready: {sorted(_agents)}")
    return _agents


def get_agent(
    agent_id: str, agents: Dict[str, AgentOrchestrator] = Depends(get_agents)
) -> AgentOrchestrator:
    agent = agents.get(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=f"No agent registered as '{agent_id}'.")
    return agent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler: builds the agents at startup."""
    logger.info("Deskmate API starting...")
    try:
        settings = get_settings()
        logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
        get_agents(settings)
    except Exception as e:
        logger.error(f"Error initialising agents: {e}")

    yield
    logger.info("Deskmate API shutting down...")


# FastAPI App

app = FastAPI(
    title="Deskmate API",
    description="Conversational agents behind the support desk",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Internal error"},
    },
)

# CORS middleware (development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict to known domains in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status: int, type_: str, title: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(type=type_, title=title, status=status, detail=detail).model_dump(),
    )


# Global Error Handlers


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Pydantic validation errors → 422 as ErrorResponse."""
    return _error(422, "validation_error", "Invalid input", str(exc.errors()))


@app.exception_handler(ValidationInputError)
async def input_exception_handler(request: Request, exc: ValidationInputError):
    return _error(400, "invalid_message", "Invalid message", str(exc))


@app.exception_handler(StorageUnavailable)
async def storage_exception_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"Storage unavailable on {request.url.path}: {exc}")
    return _error(
        503,
        "storage_unavailable",
        "Storage Unavailable",
        "Conversation storage is unavailable. Try again later.",
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException → ErrorResponse with the original status."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, "http_error", "HTTP Error", detail)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Unhandled exception → generic 500.

    Logs the real error but returns a generic message so internal details
    never leak to the client.
    """
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return _error(
        500,
        "internal_error",
        "Internal Error",
        "Internal server error. Try again later.",
    )


# Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": "Deskmate API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "agents": "/agents",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(agents: Dict[str, AgentOrchestrator] = Depends(get_agents)):
    """
    Health check endpoint.

    Checks:
    - Agents loaded
    - Session database reachable
    - Knowledge index configured
    """
    components = {"agents": str(len(agents))}
    overall_status = "healthy" if agents else "unhealthy"

    first = next(iter(agents.values()), None)
    if first is not None:
        try:
            await first.sessions.get_session("__health__")
            components["database"] = "ok"
        except StorageUnavailable:
            components["database"] = "error"
            overall_status = "degraded"

        components["knowledge"] = "ok" if first.knowledge is not None else "disabled"

    return HealthResponse(status=overall_status, version=API_VERSION, components=components)


@app.get("/agents", response_model=List[AgentInfo], tags=["Agents"])
async def list_agents(agents: Dict[str, AgentOrchestrator] = Depends(get_agents)):
    return [AgentInfo(**agent.get_metadata()) for agent in agents.values()]


@app.post(
    "/agents/{agent_id}/messages",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Blank message"},
        404: {"model": ErrorResponse, "description": "Unknown agent"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
    tags=["Messages"],
)
async def post_message(
    request: MessageRequest,
    agent: AgentOrchestrator = Depends(get_agent),
):
    """
    Sends one message to an agent.

    **Errors:**
    - 400: blank message
    - 404: unknown agent
    - 503: the session could not be loaded

    If the reply was built but the session could not be saved, the reply is
    still returned with ``persisted: false``.
    """
    logger.info(f"Message for {agent.agent_id}: {request.message[:50]}...")

    try:
        response = await agent.process_message(
            request.message, session_id=request.session_id, user_id=request.user_id
        )
    except StorageUnavailable as e:
        if e.response is None:
            raise
        logger.error(f"Reply delivered without persistence: {e}")
        return MessageResponse(
            content=e.response.content,
            metadata=e.response.metadata,
            session_id=e.response.metadata.get("session_id", request.session_id or ""),
            persisted=False,
            error=str(e),
        )

    return MessageResponse(
        content=response.content,
        metadata=response.metadata,
        session_id=response.metadata["session_id"],
    )


@app.post(
    "/agents/{agent_id}/documents",
    response_model=DocumentResponse,
    tags=["Knowledge"],
)
async def post_document(
    request: DocumentRequest,
    agent: AgentOrchestrator = Depends(get_agent),
):
    """Ingests (or re-ingests) a knowledge document for the agent."""
    result = await agent.ingest_document(request.model_dump())
    return DocumentResponse(**result)


@app.post("/agents/{agent_id}/facts", response_model=FactResponse, tags=["Memory"])
async def post_fact(
    request: FactRequest,
    agent: AgentOrchestrator = Depends(get_agent),
):
    """Stores a fact in the agent's semantic memory."""
    fact = await agent.remember(request.content, request.metadata)
    return FactResponse(
        id=fact.id,
        agent_id=fact.agent_id,
        content=fact.content,
        metadata=fact.metadata,
        created_at=fact.created_at,
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Unknown endpoint or unknown agent → 404 as ErrorResponse."""
    detail = getattr(exc, "detail", None)
    if isinstance(detail, str) and detail.startswith("No agent registered"):
        return _error(404, "agent_not_found", "Agent Not Found", detail)
    return _error(
        404,
        "not_found",
        "Not Found",
        f"The endpoint '{request.url.path}' does not exist.",
    )


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
