"""End-to-end generation pipeline: plan in, validated workflow out."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from workflowgen.config import Settings
from workflowgen.core.exceptions import AppError, ParseError
from workflowgen.schemas.generation import (
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    GenerationState,
)
from workflowgen.schemas.plan import InvocationTier, OrganizationContext, PlanTier
from workflowgen.schemas.workflow import RawModelOutput
from workflowgen.services.complexity import detect_complexity
from workflowgen.services.context_optimizer import ContextOptimizer
from workflowgen.services.graph_builder import WorkflowGraphBuilder
from workflowgen.services.graph_validator import validate_workflow
from workflowgen.services.model_router import ModelRouter
from workflowgen.services.pattern_analyzer import PatternAnalyzer
from workflowgen.services.prompt_builder import PromptBuilder
from workflowgen.services.reliability import ReliabilityAugmenter
from workflowgen.services.response_parser import extract_json

logger = logging.getLogger(__name__)

EXECUTION_TIMEOUTS: dict[PlanTier, int] = {
    PlanTier.FREE: 900,
    PlanTier.STARTER: 1800,
    PlanTier.PROFESSIONAL: 3600,
    PlanTier.ENTERPRISE: 7200,
}
SAVE_PROGRESS_TIERS = {PlanTier.PROFESSIONAL, PlanTier.ENTERPRISE}


def execution_settings(context: OrganizationContext) -> dict[str, Any]:
    """Plan-derived execution limits written into the workflow's settings block."""
    settings: dict[str, Any] = {
        "executionOrder": "v1",
        "saveManualExecutions": True,
        "callerPolicy": "workflowsFromSameOwner",
        "executionTimeout": EXECUTION_TIMEOUTS[context.plan_tier],
    }
    if context.plan_tier in SAVE_PROGRESS_TIERS:
        settings["saveExecutionProgress"] = True
    return settings


class WorkflowGenerator:
    """
    Runs Planning -> Prompting -> Calling -> Parsing -> Building -> Augmenting -> Validating.

    Configuration, provider, parse, build and budget errors end in Failed and propagate.
    A structurally invalid graph still ends in Done, with ``validation.valid`` False.
    """

    def __init__(
        self,
        settings: Settings,
        router: ModelRouter,
        analyzer: PatternAnalyzer | None = None,
        prompt_builder: PromptBuilder | None = None,
        builder: WorkflowGraphBuilder | None = None,
        augmenter: ReliabilityAugmenter | None = None,
        context_optimizer: ContextOptimizer | None = None,
    ) -> None:
        secrets = settings.configured_secrets()
        self.settings = settings
        self.router = router
        self.analyzer = analyzer or PatternAnalyzer(
            limit=settings.similar_workflow_limit,
            min_score=settings.similarity_threshold,
        )
        self.prompt_builder = prompt_builder or PromptBuilder(secrets)
        self.builder = builder or WorkflowGraphBuilder()
        self.augmenter = augmenter or ReliabilityAugmenter(secrets)
        self.context_optimizer = context_optimizer or ContextOptimizer()

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        job_id = request.job_id or str(uuid.uuid4())
        context = request.organization
        states: list[GenerationState] = []

        def transition(state: GenerationState) -> None:
            states.append(state)
            logger.info(f"[job {job_id}] [{context.scope}] -> {state.value}")

        try:
            transition(GenerationState.PLANNING)
            plan = request.plan
            complexity = plan.complexity
            if complexity is None:
                detected = detect_complexity(plan, context)
                complexity = detected.complexity
                logger.info(
                    f"[job {job_id}] complexity {complexity.value} (score {detected.score}): "
                    f"{'; '.join(detected.reasoning) or 'no signals'}"
                )
            profile = self.context_optimizer.optimize(plan, context, complexity)
            logger.info(f"[job {job_id}] {profile.reasoning}; focus on {', '.join(profile.node_kinds)}")
            analysis = self.analyzer.analyze(plan)

            transition(GenerationState.PROMPTING)
            prompt = self.prompt_builder.build(plan, context, analysis, profile)

            transition(GenerationState.CALLING)
            timeout = request.timeout_seconds
            max_tokens = profile.output_tokens
            if context.max_tokens:
                max_tokens = min(max_tokens, context.max_tokens)
            options = GenerationOptions(
                tier=InvocationTier.ORCHESTRATOR,
                complexity=complexity,
                max_tokens=max_tokens,
                organization=context,
                job_id=job_id,
                budget=request.budget,
                deadline=time.monotonic() + timeout if timeout else None,
            )
            routed = await self.router.generate_with_usage(self.settings, prompt, options)

            transition(GenerationState.PARSING)
            payload = extract_json(routed.text)
            try:
                raw = RawModelOutput.model_validate(payload)
            except PydanticValidationError as exc:
                raise ParseError(f"Model reply does not match the workflow shape: {exc.error_count()} errors") from exc

            transition(GenerationState.BUILDING)
            workflow = self.builder.build(
                raw,
                context,
                settings=execution_settings(context),
                model=routed.model,
            )

            transition(GenerationState.AUGMENTING)
            nodes = self.augmenter.augment(workflow.nodes, context.plan_tier)
            workflow = workflow.model_copy(update={"nodes": nodes})

            transition(GenerationState.VALIDATING)
            validation = validate_workflow(workflow)
            workflow = workflow.model_copy(update={"validation": validation})
            if not validation.valid:
                logger.warning(f"[job {job_id}] generated workflow failed validation: {validation.errors}")

            transition(GenerationState.DONE)
            return GenerationResult(
                workflow=workflow,
                validation=validation,
                budget_warnings=routed.budget_status.warnings,
                cost_record=routed.cost_record,
                states=states,
            )
        except AppError as exc:
            transition(GenerationState.FAILED)
            logger.error(f"[job {job_id}] generation failed: {exc.__class__.__name__}: {exc}")
            raise
