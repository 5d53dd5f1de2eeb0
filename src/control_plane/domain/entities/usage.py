from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

PRODUCT_KEY_PATTERN = r"^[a-z][a-z0-9-]*[a-z0-9]$"


class Environment(str, Enum):
    DEVELOPMENT = "DEVELOPMENT"
    STAGING = "STAGING"
    PRODUCTION = "PRODUCTION"


class UsageRecordRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    product_key: str
    environment: Environment
    metric_key: str = Field(min_length=1)
    value: int = Field(ge=0)
    period_start: datetime


class UsageMetric(BaseModel):
    product_key: str
    environment: Environment
    metric_key: str
    value: int
    limit: int | None = None
    percentage_used: int | None = None


class UsageSummary(BaseModel):
    tenant_id: str
    period_start: datetime
    period_end: datetime
    metrics: list[UsageMetric] = Field(default_factory=list)
    plan_limits: dict[str, int] = Field(default_factory=dict)


def limit_key(product_key: str, environment: str, metric_key: str) -> str:
    return f"{product_key}_{environment}_{metric_key}"


class UsageGroupBy(str, Enum):
    PRODUCT_KEY = "product_key"
    ENVIRONMENT = "environment"
    TENANT_ID = "tenant_id"
