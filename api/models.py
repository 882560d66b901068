"""
Pydantic models for request/response validation.

Typed schemas for every endpoint of the API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Error Response (simplified RFC 7807)


class ErrorResponse(BaseModel):
    """
    Structured error model inspired by RFC 7807.

    Every error handler returns this shape so API consumers get a
    consistent, predictable format.
    """

    type: str = Field(
        ..., description="Error category (e.g. 'validation_error', 'storage_unavailable')"
    )
    title: str = Field(..., description="Short error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human readable description")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "agent_not_found",
                    "title": "Agent Not Found",
                    "status": 404,
                    "detail": "No agent registered as 'billing'.",
                }
            ]
        }
    }


# Request Models


class MessageRequest(BaseModel):
    """A user message for an agent"""

    message: str = Field(..., description="User message", min_length=1, max_length=4000)
    session_id: Optional[str] = Field(
        default=None, description="Existing session id (a new one is created if omitted)"
    )
    user_id: Optional[str] = Field(default=None, description="User sending the message")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "message": "[Task: TSK-123] create a task for John, high priority",
                    "session_id": None,
                    "user_id": "staff-42",
                }
            ]
        }
    }


class DocumentRequest(BaseModel):
    """Knowledge document to ingest for an agent"""

    id: str = Field(..., description="Document id (re-ingesting supersedes it)", min_length=1)
    title: str = Field(default="", description="Document title")
    content: str = Field(..., description="Document text (markdown supported)", min_length=1)
    type: str = Field(default="text", description="Document type")


class FactRequest(BaseModel):
    """Fact to remember for an agent"""

    content: str = Field(..., description="Fact text", min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Response Models


class MessageResponse(BaseModel):
    """Reply of an agent"""

    content: str = Field(..., description="Validated reply text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Reply metadata")
    session_id: str = Field(..., description="Session the turn belongs to")
    persisted: bool = Field(True, description="False if the session could not be saved")
    error: Optional[str] = Field(None, description="Error message if persistence failed")


class DocumentResponse(BaseModel):
    document_id: str
    chunks: int
    embeddings: int


class FactResponse(BaseModel):
    id: int
    agent_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class AgentInfo(BaseModel):
    id: str
    name: str
    version: str
    description: str = ""
    capabilities: List[str] = Field(default_factory=list)
    handlers: List[Dict[str, Any]] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    context_markers: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    components: Dict[str, str] = Field(..., description="Component status")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "version": "1.0.0",
                    "components": {
                        "database": "ok",
                        "agents": "3",
                        "embeddings": "ok",
                    },
                }
            ]
        }
    }
