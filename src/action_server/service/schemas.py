"""Request / response schemas for the action server REST API.

These models are shared between the service (routes.py) and the HTTP
client (action_server.client). The wire format uses camelCase
``exitCode``; the original ``prompt`` / ``files`` / ``fileName`` /
``data`` field names are accepted on input.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from action_server.sandbox.models import Attachment, InvocationRequest


# ── Ask ──────────────────────────────────────────────────────────────────────

class AttachmentPayload(BaseModel):
    """A file to place in the tool's working directory."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("name", "fileName"),
    )
    content: str = Field(
        ...,
        description="Base64-encoded file content",
        validation_alias=AliasChoices("content", "data"),
    )


class AskRequest(BaseModel):
    """Run the tool with an instruction and optional attachments."""
    model_config = ConfigDict(populate_by_name=True)

    instruction: str = Field(..., validation_alias=AliasChoices("instruction", "prompt"))
    attachments: list[AttachmentPayload] = Field(
        default_factory=list,
        validation_alias=AliasChoices("attachments", "files"),
    )

    @field_validator("instruction")
    @classmethod
    def _instruction_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Instruction is required and must be a non-empty string")
        return value

    def to_invocation(self) -> InvocationRequest:
        return InvocationRequest(
            instruction=self.instruction,
            attachments=tuple(Attachment(a.name, a.content) for a in self.attachments),
        )


class AskResponse(BaseModel):
    """Captured tool output. ``stderr`` and ``error`` are omitted when absent."""
    model_config = ConfigDict(populate_by_name=True)

    output: str
    exit_code: int = Field(..., alias="exitCode")
    stderr: Optional[str] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


# ── Health ───────────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
    running: int = 0
    waiting: int = 0
