"""Retrieve similar proven workflows, practices and risks for a plan."""
from __future__ import annotations

import logging
import re
from collections import OrderedDict

from pydantic import BaseModel, ConfigDict, Field

from workflowgen.knowledge.workflow_examples import (
    AntiPattern,
    BestPractice,
    KnowledgeBase,
    WorkflowExample,
)
from workflowgen.schemas.plan import OrchestrationPlan

logger = logging.getLogger(__name__)

TERM_WEIGHT = 0.5
KIND_WEIGHT = 0.3
INTEGRATION_WEIGHT = 0.2
STEM_LENGTH = 6
HIGH_SUCCESS_RATE = 0.9

STOP_WORDS = frozenset(
    {
        "the", "and", "but", "for", "with", "from", "into", "onto", "that", "this",
        "then", "than", "when", "each", "every", "all", "any", "are", "was", "were",
        "will", "should", "can", "our", "their", "them", "they", "its", "via", "per",
        "new", "using", "use",
    }
)

_FAMILY_TOKENS = {"ai": "ai", "if": "condition", "db": "storage", "api": "http"}
_FAMILY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("webhook", ("webhook",)),
    ("email", ("email", "gmail", "imap", "smtp", "mail")),
    ("schedule", ("schedule", "cron", "interval", "timer")),
    ("http", ("http", "request", "rest")),
    ("ai", ("openai", "llm", "gpt", "claude", "classif", "generat", "summar")),
    ("condition", ("switch", "condition", "route", "router", "filter", "branch")),
    ("storage", ("database", "postgres", "mysql", "sheet", "airtable", "storage", "csv", "record")),
    ("notification", ("slack", "notif", "teams", "sms", "discord", "alert")),
    ("transform", ("transform", "function", "code", "map", "format", "parse", "set")),
)


class SimilarWorkflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    example: WorkflowExample
    score: float
    matched_terms: list[str] = Field(default_factory=list)
    matched_integrations: list[str] = Field(default_factory=list)
    reason: str = ""


class Risk(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk: str
    description: str
    failure_rate: float
    prevention: str
    severity: str


class Optimization(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    suggestion: str
    implementation: str
    expected_improvement: str
    priority: str


class CommonSequence(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence: list[str]
    frequency: int
    avg_success_rate: float
    avg_execution_seconds: float
    use_cases: list[str]


class PatternAnalysis(BaseModel):
    similar_workflows: list[SimilarWorkflow] = Field(default_factory=list)
    best_practices: list[BestPractice] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    optimizations: list[Optimization] = Field(default_factory=list)
    common_sequences: list[CommonSequence] = Field(default_factory=list)


class PlanFeatures(BaseModel):
    has_http_requests: bool = False
    has_email_operations: bool = False
    has_data_processing: bool = False
    has_webhooks: bool = False
    has_authentication: bool = False
    has_multiple_api_calls: bool = False
    estimated_data_volume: int = 10
    complexity_score: int = 0


def extract_terms(text: str) -> set[str]:
    words = re.findall(r"[a-z0-9]+", text.lower())
    return {w[:STEM_LENGTH] for w in words if len(w) > 2 and w not in STOP_WORDS}


def step_family(kind: str) -> str:
    """Collapse a free-form step kind into a coarse family used for matching."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", kind or "").lower()
    tokens = [t for t in re.split(r"[^a-z0-9]+", spaced) if t]
    for token in tokens:
        if token in _FAMILY_TOKENS:
            return _FAMILY_TOKENS[token]
    joined = "".join(tokens)
    for family, needles in _FAMILY_RULES:
        if any(needle in joined for needle in needles):
            return family
    return joined or "unknown"


def normalize_integration(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def jaccard(left: set[str], right: set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


class PatternAnalyzer:
    """Deterministic retrieval over a read-only knowledge base."""

    def __init__(
        self,
        knowledge_base: KnowledgeBase | None = None,
        limit: int = 3,
        min_score: float = 0.1,
    ) -> None:
        self.knowledge_base = knowledge_base or KnowledgeBase.default()
        self.limit = limit
        self.min_score = min_score

    def analyze(self, plan: OrchestrationPlan) -> PatternAnalysis:
        similar = self.find_similar_workflows(plan, self.limit)
        analysis = PatternAnalysis(
            similar_workflows=similar,
            best_practices=self.get_applicable_best_practices(plan, similar),
            risks=self.identify_risks(plan),
            optimizations=self.generate_optimizations(plan, similar),
            common_sequences=self.extract_common_sequences(),
        )
        logger.info(
            f"Pattern analysis for '{plan.workflow_name or 'unnamed plan'}': "
            f"{len(analysis.similar_workflows)} similar, {len(analysis.risks)} risks"
        )
        return analysis

    def score(self, plan: OrchestrationPlan, example: WorkflowExample) -> SimilarWorkflow:
        plan_terms = extract_terms(f"{plan.workflow_name} {plan.description}")
        example_terms = extract_terms(" ".join([example.name, example.description, *example.tags]))
        matched_terms = plan_terms & example_terms
        coverage = len(matched_terms) / len(example_terms) if example_terms else 0.0

        plan_kinds = {step_family(step.kind) for step in plan.all_steps() if step.kind}
        kind_score = jaccard(plan_kinds, set(example.step_kinds))

        plan_integrations = {normalize_integration(i) for i in plan.integrations}
        example_integrations = {normalize_integration(i) for i in example.integrations}
        matched_integrations = plan_integrations & example_integrations
        integration_score = jaccard(plan_integrations, example_integrations)

        raw = TERM_WEIGHT * coverage + KIND_WEIGHT * kind_score + INTEGRATION_WEIGHT * integration_score
        score = round(min(max(raw, 0.0), 1.0), 6)

        reasons = []
        if matched_terms:
            reasons.append(f"Matched terms: {', '.join(sorted(matched_terms))}")
        if matched_integrations:
            reasons.append(f"Shared integrations: {', '.join(sorted(matched_integrations))}")
        if example.success_rate > HIGH_SUCCESS_RATE:
            reasons.append(f"High success rate ({example.success_rate * 100:.1f}%)")

        return SimilarWorkflow(
            example=example,
            score=score,
            matched_terms=sorted(matched_terms),
            matched_integrations=sorted(matched_integrations),
            reason="; ".join(reasons),
        )

    def find_similar_workflows(self, plan: OrchestrationPlan, limit: int | None = None) -> list[SimilarWorkflow]:
        limit = self.limit if limit is None else limit
        scored = [self.score(plan, example) for example in self.knowledge_base.examples]
        relevant = [item for item in scored if item.score >= self.min_score and item.score > 0]
        relevant.sort(key=lambda item: (-item.score, -item.example.success_rate, item.example.key))
        return relevant[:limit]

    def analyze_features(self, plan: OrchestrationPlan) -> PlanFeatures:
        description = plan.description.lower()
        step_families = [step_family(step.kind) for step in plan.steps]
        trigger_families = [step_family(trigger.kind) for trigger in plan.triggers]
        return PlanFeatures(
            has_http_requests="http" in step_families or "api" in description,
            has_email_operations="email" in step_families + trigger_families or "email" in description,
            has_data_processing=(
                "transform" in step_families or "storage" in step_families or "data" in description
            ),
            has_webhooks="webhook" in trigger_families or "webhook" in description,
            has_authentication="auth" in description or "token" in description,
            has_multiple_api_calls=step_families.count("http") > 1,
            estimated_data_volume=self.estimate_data_volume(description),
            complexity_score=len(plan.steps) + len(plan.triggers),
        )

    @staticmethod
    def estimate_data_volume(description: str) -> int:
        if "thousands" in description or "bulk" in description:
            return 5000
        if "hundreds" in description:
            return 500
        if "many" in description or "multiple" in description:
            return 100
        return 10

    def get_applicable_best_practices(
        self,
        plan: OrchestrationPlan,
        similar: list[SimilarWorkflow] | None = None,
    ) -> list[BestPractice]:
        kb = self.knowledge_base
        features = self.analyze_features(plan)
        practices: list[BestPractice] = []
        if features.has_http_requests:
            practices.extend(kb.practices_for("HTTP Requests"))
        if features.has_email_operations:
            practices.extend(kb.practices_for("Email Operations"))
        if features.has_data_processing:
            practices.extend(kb.practices_for("Large Dataset Processing"))
        if features.has_webhooks:
            practices.extend(kb.practices_for("Webhook Authentication"))

        for item in similar or []:
            example = item.example
            if example.success_rate > HIGH_SUCCESS_RATE and example.error_handling is not None:
                practices.append(
                    BestPractice(
                        group="errorHandling",
                        category="Error Handling",
                        practice=example.error_handling.strategy,
                        implementation=example.error_handling.implementation,
                        success_rate=example.success_rate,
                        description=f"Proven pattern from {example.name}",
                        source="similar_workflow",
                    )
                )

        unique: OrderedDict[tuple[str, str], BestPractice] = OrderedDict()
        for practice in practices:
            unique.setdefault((practice.category, practice.practice), practice)
        return list(unique.values())

    def identify_risks(self, plan: OrchestrationPlan) -> list[Risk]:
        description = plan.description.lower()
        risks = [
            Risk(
                risk=pattern.name,
                description=pattern.description,
                failure_rate=pattern.failure_rate,
                prevention=pattern.prevention,
                severity="high" if pattern.failure_rate > 0.3 else "medium",
            )
            for pattern in self.knowledge_base.anti_patterns
            if self._matches_anti_pattern(description, pattern)
        ]
        if len(plan.steps) > 10:
            risks.append(
                Risk(
                    risk="High Complexity",
                    description="Workflows with many steps are harder to debug and maintain",
                    failure_rate=0.20,
                    prevention="Consider breaking into smaller, focused workflows",
                    severity="medium",
                )
            )
        return risks

    @staticmethod
    def _matches_anti_pattern(description: str, pattern: AntiPattern) -> bool:
        if pattern.present_terms and any(term in description for term in pattern.present_terms):
            return True
        if pattern.absent_terms and not any(term in description for term in pattern.absent_terms):
            return True
        return False

    def generate_optimizations(
        self,
        plan: OrchestrationPlan,
        similar: list[SimilarWorkflow] | None = None,
    ) -> list[Optimization]:
        features = self.analyze_features(plan)
        optimizations: list[Optimization] = []
        if features.has_data_processing and features.estimated_data_volume > 1000:
            optimizations.append(
                Optimization(
                    type="performance",
                    suggestion="Use batch processing for large datasets",
                    implementation="Add SplitInBatches node with batch size 100-500",
                    expected_improvement="60% faster execution",
                    priority="high",
                )
            )
        if features.has_multiple_api_calls:
            optimizations.append(
                Optimization(
                    type="performance",
                    suggestion="Implement parallel processing for independent API calls",
                    implementation="Use parallel execution paths and Merge node",
                    expected_improvement="40% faster execution",
                    priority="medium",
                )
            )
        if features.has_email_operations:
            optimizations.append(
                Optimization(
                    type="reliability",
                    suggestion="Add email delivery confirmation",
                    implementation="Use email delivery status webhooks or read receipts",
                    expected_improvement="95% delivery confirmation",
                    priority="medium",
                )
            )
        if features.has_webhooks and not features.has_authentication:
            optimizations.append(
                Optimization(
                    type="security",
                    suggestion="Add webhook authentication",
                    implementation="Use headerAuth or HMAC signature validation",
                    expected_improvement="Prevents unauthorized access",
                    priority="high",
                )
            )
        return optimizations

    def extract_common_sequences(self, examples: list[WorkflowExample] | None = None) -> list[CommonSequence]:
        """Node sequences shared by at least two high-success examples."""
        pool = self.knowledge_base.examples if examples is None else examples
        grouped: OrderedDict[tuple[str, ...], list[WorkflowExample]] = OrderedDict()
        for example in pool:
            if example.success_rate > HIGH_SUCCESS_RATE and example.node_sequence:
                grouped.setdefault(tuple(example.node_sequence), []).append(example)

        sequences = [
            CommonSequence(
                sequence=list(sequence),
                frequency=len(members),
                avg_success_rate=round(sum(m.success_rate for m in members) / len(members), 6),
                avg_execution_seconds=round(sum(m.avg_execution_seconds for m in members) / len(members), 6),
                use_cases=[m.name for m in members],
            )
            for sequence, members in grouped.items()
            if len(members) >= 2
        ]
        sequences.sort(key=lambda item: (-item.avg_success_rate, item.sequence))
        return sequences
