"""Assemble the generation prompt from a plan, org context and pattern analysis."""
from __future__ import annotations

import json
from typing import Iterable

from workflowgen.core.security import redact_secrets, scrub_text
from workflowgen.knowledge.workflow_examples import BestPractice
from workflowgen.prompts.workflow_templates import (
    AUTHENTICATION_GUIDANCE,
    NO_EXAMPLES_TEXT,
    NO_OPTIMIZATIONS_TEXT,
    NO_PRACTICES_TEXT,
    NO_RISKS_TEXT,
    NO_SEQUENCES_TEXT,
    PERFORMANCE_GUIDANCE,
    RESPONSE_SHAPE,
    WORKFLOW_ARCHITECT_PROMPT,
)
from workflowgen.schemas.plan import OrchestrationPlan, OrganizationContext
from workflowgen.services.context_optimizer import ContextOptimizer, ContextProfile
from workflowgen.services.node_registry import allowed_node_keys
from workflowgen.services.pattern_analyzer import (
    CommonSequence,
    Optimization,
    PatternAnalysis,
    Risk,
    SimilarWorkflow,
)

MAX_SEQUENCES = 3


def _percent(value: float | None) -> str:
    return "n/a" if value is None else f"{value * 100:.1f}%"


class PromptBuilder:
    """Pure function of its inputs: same plan, context and analysis give the same prompt."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self.secrets = [s for s in secrets if s]

    def build(
        self,
        plan: OrchestrationPlan,
        context: OrganizationContext,
        analysis: PatternAnalysis,
        profile: ContextProfile | None = None,
    ) -> str:
        profile = profile or ContextOptimizer().optimize(plan, context)
        plan_payload = redact_secrets(plan.model_dump(mode="json", by_alias=True), self.secrets)
        workspace = (
            f"organization workspace ({context.organization_id})"
            if context.organization_id
            else "personal workspace"
        )
        prompt = WORKFLOW_ARCHITECT_PROMPT.format(
            description=plan.description or "Not provided",
            workflow_name=plan.workflow_name or "Custom Automation",
            workspace=workspace,
            plan_tier=context.plan_tier.value,
            expected_volume=context.expected_volume or "Standard",
            industry=context.industry or "General",
            plan_json=json.dumps(plan_payload, indent=2, sort_keys=True),
            examples=self.examples_section(analysis.similar_workflows),
            best_practices=self.best_practices_section(analysis.best_practices),
            risks=self.risks_section(analysis.risks),
            optimizations=self.optimizations_section(analysis.optimizations),
            sequences=self.sequences_section(analysis.common_sequences),
            authentication=AUTHENTICATION_GUIDANCE[context.plan_tier],
            performance=PERFORMANCE_GUIDANCE[context.plan_tier],
            focus=self.focus_section(profile),
            node_types=", ".join(allowed_node_keys()),
            response_shape=RESPONSE_SHAPE,
        )
        return scrub_text(prompt.strip() + "\n", self.secrets)

    @staticmethod
    def examples_section(similar: list[SimilarWorkflow]) -> str:
        if not similar:
            return NO_EXAMPLES_TEXT
        blocks = []
        for index, item in enumerate(similar, start=1):
            example = item.example
            lines = [
                f"### {index}. {example.name}",
                f"**Similarity**: {_percent(item.score)} | **Success Rate**: {_percent(example.success_rate)}"
                f" | **Avg Execution**: {example.avg_execution_seconds:.1f}s",
            ]
            if item.reason:
                lines.append(f"**Match Reason**: {item.reason}")
            if example.node_sequence:
                lines.append(f"**Proven Pattern**: {' -> '.join(example.node_sequence)}")
            if example.error_handling is not None:
                lines.append(f"**Error Handling**: {example.error_handling.strategy}")
            for failure in example.common_failures:
                lines.append(f"- Known failure: {failure.issue} ({failure.cause}); prevent by: {failure.prevention}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    @staticmethod
    def best_practices_section(practices: list[BestPractice]) -> str:
        if not practices:
            return NO_PRACTICES_TEXT
        return "\n".join(
            f"**{p.category}**: {p.practice}\n"
            f"- Implementation: {p.implementation}\n"
            f"- Success Rate: {_percent(p.success_rate)}\n"
            f"- Why: {p.description}"
            for p in practices
        )

    @staticmethod
    def risks_section(risks: list[Risk]) -> str:
        if not risks:
            return NO_RISKS_TEXT
        return "\n".join(
            f"**{r.risk}** ({r.severity.upper()} RISK - {_percent(r.failure_rate)} failure rate)\n"
            f"- Issue: {r.description}\n"
            f"- Prevention: {r.prevention}"
            for r in risks
        )

    @staticmethod
    def optimizations_section(optimizations: list[Optimization]) -> str:
        if not optimizations:
            return NO_OPTIMIZATIONS_TEXT
        return "\n".join(
            f"**{o.type.upper()}**: {o.suggestion} ({o.priority} priority)\n"
            f"- How: {o.implementation}\n"
            f"- Expected Benefit: {o.expected_improvement}"
            for o in optimizations
        )

    @staticmethod
    def sequences_section(sequences: list[CommonSequence]) -> str:
        if not sequences:
            return NO_SEQUENCES_TEXT
        return "\n".join(
            f"{index}. **{' -> '.join(seq.sequence)}**\n"
            f"   - Used in: {', '.join(seq.use_cases)}\n"
            f"   - Success Rate: {_percent(seq.avg_success_rate)}\n"
            f"   - Avg Execution: {seq.avg_execution_seconds:.1f}s"
            for index, seq in enumerate(sequences[:MAX_SEQUENCES], start=1)
        )

    @staticmethod
    def focus_section(profile: ContextProfile) -> str:
        return (
            f"**Detected Type**: {profile.workflow_type.value} ({profile.complexity.value} complexity)\n"
            f"**Primary Focus**: {profile.priority}\n"
            f"**Key Areas**: {', '.join(profile.focus_areas)}\n"
            f"**Preferred Node Types**: {', '.join(profile.node_kinds)}"
        )
