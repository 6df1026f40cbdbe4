# app/schemas/health_schemas.py
from pydantic import BaseModel
from typing import Dict, Optional


class ComponentStatus(BaseModel):
    status: str  # operational | degraded_performance | major_outage
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    service: str
    version: str
    time: str
    indicator: str
    description: str
    components: Dict[str, ComponentStatus]
    risk_cache_entries: int = 0
