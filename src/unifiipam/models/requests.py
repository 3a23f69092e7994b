"""
Pydantic models for API responses.

Resources themselves (pools, claims, instances, addresses) are served as
their stored models; this module only holds the auxiliary envelopes.

Model Categories:
    - Status Responses: Plain acknowledgements
    - Error Responses: Admission denials with field-level details
    - Health Responses: Server and controller health
    - Secret Responses: Secrets with their values redacted
"""

from pydantic import BaseModel, Field

from unifiipam.models.resources import ObjectMeta


# =============================================================================
# Status Responses
# =============================================================================


class StatusResponse(BaseModel):
    """Acknowledgement of a write that returns no resource."""

    message: str
    kind: str | None = None
    namespace: str | None = None
    name: str | None = None


# =============================================================================
# Error Responses
# =============================================================================


class FieldErrorDetail(BaseModel):
    field: str
    message: str


class FieldErrorResponse(BaseModel):
    """Admission denial with the offending fields."""

    error: str = "Admission Denied"
    kind: str
    name: str
    detail: list[FieldErrorDetail] = Field(default_factory=list)


# =============================================================================
# Health Responses
# =============================================================================


class HealthResponse(BaseModel):
    """Server health check response."""

    status: str
    version: str
    uptime_seconds: float
    controllers_running: bool
    resources: dict[str, int] = Field(
        default_factory=dict,
        description="Stored resource count per kind",
    )


# =============================================================================
# Secret Responses
# =============================================================================


class SecretResponse(BaseModel):
    """A secret with its keys listed and values omitted."""

    metadata: ObjectMeta
    keys: list[str] = Field(default_factory=list)
