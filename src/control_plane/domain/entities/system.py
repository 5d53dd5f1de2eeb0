from __future__ import annotations

from pydantic import BaseModel, Field


class MaintenanceRequest(BaseModel):
    enabled: bool
    message: str | None = Field(default=None, max_length=500)
