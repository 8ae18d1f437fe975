"""Coarse simple/complex classification of a plan, used for token budgets and model escalation."""
from __future__ import annotations

import re

from pydantic import BaseModel, Field

from workflowgen.schemas.plan import Complexity, InvocationTier, OrchestrationPlan, OrganizationContext

COMPLEX_THRESHOLD = 4
REGULATED_INDUSTRIES = ("finance", "insurance", "healthcare")
HIGH_VOLUME_MARKERS = ("100+", "200+", "high")
CONDITIONAL_KINDS = {"condition", "conditional", "switch", "if"}

_AI_PATTERN = re.compile(r"\b(ai|analysis|analy[sz]e|classif\w*|intelligent)\b", re.IGNORECASE)
_PARALLEL_PATTERN = re.compile(r"\b(parallel|simultaneous\w*)\b", re.IGNORECASE)

CONTEXT_BUDGETS: dict[Complexity, dict[InvocationTier, dict[str, int]]] = {
    Complexity.SIMPLE: {
        InvocationTier.ORCHESTRATOR: {"input_tokens": 8000, "output_tokens": 3000},
        InvocationTier.AGENT: {"input_tokens": 6000, "output_tokens": 2000},
    },
    Complexity.COMPLEX: {
        InvocationTier.ORCHESTRATOR: {"input_tokens": 15000, "output_tokens": 5000},
        InvocationTier.AGENT: {"input_tokens": 10000, "output_tokens": 3000},
    },
}


class ComplexityAnalysis(BaseModel):
    complexity: Complexity
    score: int
    reasoning: list[str] = Field(default_factory=list)


def detect_complexity(
    plan: OrchestrationPlan,
    context: OrganizationContext | None = None,
) -> ComplexityAnalysis:
    score = 0
    reasoning: list[str] = []
    text = f"{plan.workflow_name} {plan.description}"

    step_count = len(plan.steps)
    if step_count >= 5:
        score += 3
        reasoning.append(f"High step count: {step_count} steps")
    elif step_count >= 3:
        score += 1
        reasoning.append(f"Medium step count: {step_count} steps")

    if len(plan.integrations) >= 2:
        score += 2
        reasoning.append(f"Multi-platform integration: {', '.join(plan.integrations)}")

    if _AI_PATTERN.search(text) or any(
        _AI_PATTERN.search(step.kind.replace("-", " ")) for step in plan.steps
    ):
        score += 2
        reasoning.append("AI processing required")

    industry = (context.industry or "").lower() if context else ""
    if any(marker in industry for marker in REGULATED_INDUSTRIES):
        score += 1
        reasoning.append(f"High-compliance industry: {context.industry}")

    volume = (context.expected_volume or "").lower() if context else ""
    if any(marker in volume for marker in HIGH_VOLUME_MARKERS):
        score += 1
        reasoning.append(f"High volume requirements: {context.expected_volume}")

    if any(step.kind.lower() in CONDITIONAL_KINDS for step in plan.steps):
        score += 1
        reasoning.append("Conditional logic required")

    if len(plan.integrations) > 2 or _PARALLEL_PATTERN.search(text):
        score += 2
        reasoning.append("Parallel processing required")

    complexity = Complexity.COMPLEX if score >= COMPLEX_THRESHOLD else Complexity.SIMPLE
    return ComplexityAnalysis(complexity=complexity, score=score, reasoning=reasoning)


def context_budget(complexity: Complexity, tier: InvocationTier) -> dict[str, int]:
    return dict(CONTEXT_BUDGETS[complexity][tier])
