"""Common Pydantic models shared across modules."""

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class ServiceInfo(BaseModel):
    """Service information model returned by /api/info."""

    model_config = ConfigDict(use_enum_values=True)

    service_name: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    environment: str = Field(..., description="Deployment environment")
    status: HealthStatus = Field(..., description="Service health status")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    modules: Dict[str, str] = Field(
        default_factory=dict, description="Loaded modules and their type"
    )
