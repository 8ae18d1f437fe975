from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Complexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class ModelProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class InvocationTier(str, Enum):
    ORCHESTRATOR = "orchestrator"
    AGENT = "agent"


class PlanStep(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str = ""
    kind: str = Field(default="", alias="type")
    configuration: dict[str, Any] = Field(default_factory=dict)


class PlanConnection(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")


class OrchestrationPlan(BaseModel):
    """Structured process description used as generation input."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    workflow_name: str = Field(default="", alias="workflowName")
    description: str = ""
    triggers: list[PlanStep] = Field(default_factory=list)
    steps: list[PlanStep] = Field(default_factory=list)
    connections: list[PlanConnection] = Field(default_factory=list)
    integrations: list[str] = Field(default_factory=list)
    complexity: Complexity | None = None

    @field_validator("integrations")
    @classmethod
    def dedupe_integrations(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        ordered: list[str] = []
        for item in value:
            key = item.strip()
            if key and key.lower() not in seen:
                seen.add(key.lower())
                ordered.append(key)
        return ordered

    def all_steps(self) -> list[PlanStep]:
        return [*self.triggers, *self.steps]


class OrganizationContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str | None = Field(default=None, alias="organizationId")
    plan_tier: PlanTier = Field(default=PlanTier.FREE, alias="planTier")
    preferred_model_provider: ModelProvider | None = Field(default=None, alias="preferredModelProvider")
    fallback_model_provider: ModelProvider | None = Field(default=None, alias="fallbackModelProvider")
    max_tokens: int | None = Field(default=None, gt=0, alias="maxTokens")
    temperature: float | None = Field(default=None, ge=0, le=2)
    expected_volume: str | None = Field(default=None, alias="expectedVolume")
    industry: str | None = None

    @property
    def workspace_type(self) -> str:
        return "organization" if self.organization_id else "personal"

    @property
    def scope(self) -> str:
        """Human-readable owner used in logs and error messages."""
        return self.organization_id or "Personal"
