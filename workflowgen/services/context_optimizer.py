"""Scale prompt context to the detected workflow type and plan complexity."""
from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

from workflowgen.schemas.plan import Complexity, InvocationTier, OrchestrationPlan, OrganizationContext
from workflowgen.services.complexity import context_budget, detect_complexity
from workflowgen.services.node_registry import NodeKind

MAX_FOCUS_NODES = 10
NODE_COUNT_SCALE: dict[Complexity, float] = {Complexity.SIMPLE: 1.0, Complexity.COMPLEX: 1.5}

# Padding used when a complex plan widens the focus list past its type's core kinds.
SUPPORTING_KINDS = (
    NodeKind.FUNCTION,
    NodeKind.IF,
    NodeKind.SWITCH,
    NodeKind.MERGE,
    NodeKind.SET,
    NodeKind.HTTP_CALL,
    NodeKind.SPLIT_BATCHES,
    NodeKind.RESPOND_WEBHOOK,
)

_API_PATTERN = re.compile(r"\b(api|webhooks?)\b")


class WorkflowType(str, Enum):
    EMAIL_AUTOMATION = "email-automation"
    DATA_SYNC = "data-sync"
    AI_CLASSIFICATION = "ai-classification"
    DOCUMENT_PROCESSING = "document-processing"
    API_INTEGRATION = "api-integration"
    GENERAL_AUTOMATION = "general-automation"


class ContextConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_kinds: tuple[NodeKind, ...]
    focus_areas: tuple[str, ...]
    priority: str


CONTEXT_CONFIGS: dict[WorkflowType, ContextConfig] = {
    WorkflowType.EMAIL_AUTOMATION: ContextConfig(
        node_kinds=(
            NodeKind.EMAIL_TRIGGER,
            NodeKind.EMAIL_SEND,
            NodeKind.GMAIL_TRIGGER,
            NodeKind.GMAIL_SEND,
            NodeKind.AI_GENERATE,
            NodeKind.SWITCH,
        ),
        focus_areas=("email handling", "AI responses", "conditional logic"),
        priority="email processing and AI integration",
    ),
    WorkflowType.DATA_SYNC: ContextConfig(
        node_kinds=(
            NodeKind.GOOGLE_SHEETS,
            NodeKind.AIRTABLE,
            NodeKind.WEBHOOK_TRIGGER,
            NodeKind.FUNCTION,
            NodeKind.MERGE,
            NodeKind.SET,
        ),
        focus_areas=("data transformation", "parallel processing", "error handling"),
        priority="data reliability and sync accuracy",
    ),
    WorkflowType.AI_CLASSIFICATION: ContextConfig(
        node_kinds=(
            NodeKind.AI_CLASSIFY,
            NodeKind.AI_GENERATE,
            NodeKind.FUNCTION,
            NodeKind.SWITCH,
            NodeKind.IF,
            NodeKind.WEBHOOK_TRIGGER,
            NodeKind.HTTP_CALL,
            NodeKind.MERGE,
        ),
        focus_areas=("AI processing", "conditional routing", "decision logic"),
        priority="intelligent decision making and routing",
    ),
    WorkflowType.DOCUMENT_PROCESSING: ContextConfig(
        node_kinds=(
            NodeKind.HTTP_CALL,
            NodeKind.FUNCTION,
            NodeKind.AI_GENERATE,
            NodeKind.GOOGLE_SHEETS,
            NodeKind.SWITCH,
            NodeKind.SPLIT_BATCHES,
        ),
        focus_areas=("file handling", "content extraction", "document analysis"),
        priority="document parsing and processing",
    ),
    WorkflowType.API_INTEGRATION: ContextConfig(
        node_kinds=(
            NodeKind.WEBHOOK_TRIGGER,
            NodeKind.HTTP_CALL,
            NodeKind.FUNCTION,
            NodeKind.SET,
            NodeKind.SWITCH,
        ),
        focus_areas=("API authentication", "error handling", "data transformation"),
        priority="reliable API connectivity and error handling",
    ),
    WorkflowType.GENERAL_AUTOMATION: ContextConfig(
        node_kinds=(NodeKind.WEBHOOK_TRIGGER, NodeKind.FUNCTION, NodeKind.HTTP_CALL, NodeKind.SWITCH),
        focus_areas=("workflow orchestration", "error handling", "general integration"),
        priority="flexible automation patterns",
    ),
}


class ContextProfile(BaseModel):
    workflow_type: WorkflowType
    complexity: Complexity
    node_kinds: list[str]
    focus_areas: list[str]
    priority: str
    input_tokens: int
    output_tokens: int

    @property
    def reasoning(self) -> str:
        return f"Detected {self.workflow_type.value} workflow ({self.complexity.value} complexity)"


def _squash(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def detect_workflow_type(plan: OrchestrationPlan) -> WorkflowType:
    """First matching family wins, checked from most to least specific."""
    text = f"{plan.workflow_name} {plan.description}".lower()
    integrations = {_squash(name) for name in plan.integrations}
    kinds = [step.kind.lower() for step in plan.all_steps()]

    if "email" in text or "gmail" in integrations or any("email" in k or "gmail" in k for k in kinds):
        return WorkflowType.EMAIL_AUTOMATION
    if (
        any(term in text for term in ("sync", "sheets", "airtable"))
        or integrations & {"googlesheets", "airtable"}
        or any(k in ("google-sheets", "airtable") for k in kinds)
    ):
        return WorkflowType.DATA_SYNC
    if any(term in text for term in ("classif", "categoriz", "analysis")) or any(k.startswith("ai-") for k in kinds):
        return WorkflowType.AI_CLASSIFICATION
    if any(term in text for term in ("document", "pdf", "file")):
        return WorkflowType.DOCUMENT_PROCESSING
    if (
        _API_PATTERN.search(text)
        or integrations & {"httprequest", "webhook"}
        or any(k.startswith(("webhook", "http")) for k in kinds)
    ):
        return WorkflowType.API_INTEGRATION
    return WorkflowType.GENERAL_AUTOMATION


def focus_node_count(config: ContextConfig, complexity: Complexity) -> int:
    scaled = int(len(config.node_kinds) * NODE_COUNT_SCALE[complexity] + 0.5)
    return min(MAX_FOCUS_NODES, scaled)


def focus_node_kinds(config: ContextConfig, complexity: Complexity) -> list[str]:
    count = focus_node_count(config, complexity)
    kinds = list(config.node_kinds)
    for extra in SUPPORTING_KINDS:
        if len(kinds) >= count:
            break
        if extra not in kinds:
            kinds.append(extra)
    return [kind.value for kind in kinds[:count]]


class ContextOptimizer:
    def optimize(
        self,
        plan: OrchestrationPlan,
        context: OrganizationContext | None = None,
        complexity: Complexity | None = None,
        tier: InvocationTier = InvocationTier.ORCHESTRATOR,
    ) -> ContextProfile:
        if complexity is None:
            complexity = plan.complexity or detect_complexity(plan, context).complexity
        workflow_type = detect_workflow_type(plan)
        config = CONTEXT_CONFIGS[workflow_type]
        budget = context_budget(complexity, tier)
        return ContextProfile(
            workflow_type=workflow_type,
            complexity=complexity,
            node_kinds=focus_node_kinds(config, complexity),
            focus_areas=list(config.focus_areas),
            priority=config.priority,
            input_tokens=budget["input_tokens"],
            output_tokens=budget["output_tokens"],
        )
