from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CostRecord(BaseModel):
    """One priced model invocation. Append-only; never mutated after creation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    model: str
    provider: str | None = None
    input_tokens: int = Field(default=0, ge=0, alias="inputTokens")
    output_tokens: int = Field(default=0, ge=0, alias="outputTokens")
    cost: float = Field(default=0.0, ge=0)
    job_id: str | None = Field(default=None, alias="jobId")
    organization_id: str | None = Field(default=None, alias="organizationId")
    tier: str | None = None
    complexity: str | None = None
    success: bool = True
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class OrgBudget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    daily_budget: float = Field(default=10.00, ge=0, alias="dailyBudget")
    single_call_limit: float = Field(default=1.00, ge=0, alias="singleCallLimit")


class BudgetStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    within_budget: bool = Field(alias="withinBudget")
    warnings: list[str] = Field(default_factory=list)
    current_cost: float = Field(default=0.0, alias="currentCost")
    cumulative_cost: float = Field(default=0.0, alias="cumulativeCost")
    daily_budget: float = Field(default=0.0, alias="dailyBudget")
    single_call_limit: float = Field(default=0.0, alias="singleCallLimit")
