from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class FunctionTool(BaseModel):
    """Function definition the model may ask the caller to execute."""

    model_config = ConfigDict(extra="allow")

    type: Literal["function"] = "function"
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolOutput(BaseModel):
    call_id: str = Field(..., description="Identifier of the function call being answered")
    output: str = Field(..., description="Result produced by the caller's function")


class ChatRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="The user's prompt")
    temperature: Optional[float] = Field(
        default=None, description="Per-request override of the sampling temperature"
    )
    stream: bool = Field(default=False, description="Stream the reply as JSON fragments")
    tools: Optional[List[FunctionTool]] = None
    tool_outputs: Optional[List[ToolOutput]] = Field(
        default=None,
        description="Results for a pending function call; sent instead of a new user turn",
    )
    supabase_jwt: Optional[str] = Field(
        default=None,
        description="Identity token; may also be supplied as the `t` query parameter",
    )


class ResponseMetadata(BaseModel):
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    status: Literal["success", "error"] = "success"
    error: Optional[str] = None


class ChatResponse(BaseModel):
    output_text: str = ""
    output: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    id: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> ChatResponse:
        return cls(metadata=ResponseMetadata(status="error", error=error))


class HistoryEntry(BaseModel):
    text: str
    direction: Literal["in", "out"]
