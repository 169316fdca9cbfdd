from datetime import datetime

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    uptime: float
    timestamp: datetime
