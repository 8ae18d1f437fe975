from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from workflowgen.schemas.cost import BudgetStatus, CostRecord, OrgBudget
from workflowgen.schemas.plan import (
    Complexity,
    InvocationTier,
    OrchestrationPlan,
    OrganizationContext,
)
from workflowgen.schemas.workflow import ValidationResult, Workflow


class GenerationState(str, Enum):
    PLANNING = "Planning"
    PROMPTING = "Prompting"
    CALLING = "Calling"
    PARSING = "Parsing"
    BUILDING = "Building"
    AUGMENTING = "Augmenting"
    VALIDATING = "Validating"
    DONE = "Done"
    FAILED = "Failed"


class GenerationOptions(BaseModel):
    """Per-call routing options for the model router."""

    model_config = ConfigDict(populate_by_name=True)

    tier: InvocationTier = InvocationTier.ORCHESTRATOR
    complexity: Complexity = Complexity.SIMPLE
    max_tokens: int | None = Field(default=None, gt=0, alias="maxTokens")
    temperature: float | None = Field(default=None, ge=0, le=2)
    organization: OrganizationContext = Field(default_factory=OrganizationContext)
    job_id: str | None = Field(default=None, alias="jobId")
    budget: OrgBudget | None = None
    timeout_seconds: float | None = Field(default=None, gt=0, alias="timeoutSeconds")
    # Absolute time.monotonic() value after which no further provider call starts.
    deadline: float | None = None


class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: OrchestrationPlan
    organization: OrganizationContext = Field(default_factory=OrganizationContext)
    job_id: str | None = Field(default=None, alias="jobId")
    budget: OrgBudget | None = None
    timeout_seconds: float | None = Field(default=None, gt=0, alias="timeoutSeconds")


class RoutedCompletion(BaseModel):
    text: str
    provider: str
    model: str
    cost_record: CostRecord
    budget_status: BudgetStatus


class GenerationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workflow: Workflow
    validation: ValidationResult
    budget_warnings: list[str] = Field(default_factory=list, alias="budgetWarnings")
    cost_record: CostRecord | None = Field(default=None, alias="costRecord")
    states: list[GenerationState] = Field(default_factory=list)
