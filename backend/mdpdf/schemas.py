from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_FILENAME = "generated.pdf"


class GeneratePdfRequest(BaseModel):
    markdown: str | None = None
    filename: str | None = Field(default=DEFAULT_FILENAME)


class ErrorResponse(BaseModel):
    error: str
    message: str | None = None
    stack: str | None = None


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str
    port: int
    environment: str
    renderer: str
    renderer_ready: bool | None = None
    renderer_error: str | None = None


class ServiceInfo(BaseModel):
    message: str
    status: str
    port: int
    renderer: str
    endpoints: dict[str, str]
