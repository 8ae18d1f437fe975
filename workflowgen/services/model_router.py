"""Route a prompt through an ordered list of LLM providers with fallback and cost tracking."""
from __future__ import annotations

import asyncio
import logging
import time

from workflowgen.config import Settings
from workflowgen.core.exceptions import (
    BudgetExceededError,
    ConfigurationError,
    IntegrationError,
    ProviderError,
)
from workflowgen.integrations import default_providers
from workflowgen.integrations.base import ProviderAdapter
from workflowgen.schemas.cost import OrgBudget
from workflowgen.schemas.generation import GenerationOptions, RoutedCompletion
from workflowgen.schemas.plan import Complexity, ModelProvider, OrganizationContext, PlanTier
from workflowgen.services.cost_monitor import CostMonitor

logger = logging.getLogger(__name__)

FAILED_MODEL_LABEL = "all_providers"

# Output-token ceilings per model family and complexity.
TOKEN_CEILINGS: dict[str, dict[Complexity, int]] = {
    "claude-3-5-sonnet": {Complexity.SIMPLE: 3000, Complexity.COMPLEX: 4000},
    "claude-3-7-sonnet": {Complexity.SIMPLE: 4000, Complexity.COMPLEX: 5000},
    "gpt-4o-mini": {Complexity.SIMPLE: 3000, Complexity.COMPLEX: 4000},
    "gpt-4o": {Complexity.SIMPLE: 4000, Complexity.COMPLEX: 5000},
}
CONSERVATIVE_CEILING = min(limit for limits in TOKEN_CEILINGS.values() for limit in limits.values())

PLAN_TIER_MODEL_PREFERENCES: dict[PlanTier, dict[str, float]] = {
    PlanTier.FREE: {"max_tokens": 4096, "temperature": 0.7},
    PlanTier.STARTER: {"max_tokens": 8192, "temperature": 0.7},
    PlanTier.PROFESSIONAL: {"max_tokens": 16384, "temperature": 0.5},
    PlanTier.ENTERPRISE: {"max_tokens": 32768, "temperature": 0.3},
}
PERSONAL_MODEL_PREFERENCES: dict[str, float] = {"max_tokens": 8192, "temperature": 0.7}


def model_preferences(organization: OrganizationContext) -> dict[str, float]:
    if not organization.organization_id:
        return dict(PERSONAL_MODEL_PREFERENCES)
    return dict(PLAN_TIER_MODEL_PREFERENCES[organization.plan_tier])


def token_ceiling(model: str, complexity: Complexity) -> int:
    matches = [family for family in TOKEN_CEILINGS if family in model]
    if not matches:
        return CONSERVATIVE_CEILING
    return TOKEN_CEILINGS[max(matches, key=len)][complexity]


class ModelRouter:
    def __init__(
        self,
        cost_monitor: CostMonitor,
        providers: list[ProviderAdapter] | None = None,
    ) -> None:
        self.cost_monitor = cost_monitor
        self.providers = providers if providers is not None else default_providers()

    def provider_order(self, organization: OrganizationContext) -> list[ProviderAdapter]:
        """Preferred then fallback adapter; each provider appears at most once."""
        preferred = organization.preferred_model_provider or ModelProvider.ANTHROPIC
        fallback = organization.fallback_model_provider or (
            ModelProvider.OPENAI if preferred == ModelProvider.ANTHROPIC else ModelProvider.ANTHROPIC
        )
        by_name = {adapter.name: adapter for adapter in self.providers}
        ordered: list[ProviderAdapter] = []
        for name in (preferred, fallback):
            adapter = by_name.get(name)
            if adapter is not None and adapter not in ordered:
                ordered.append(adapter)
        return ordered

    @staticmethod
    def resolve_max_tokens(model: str, options: GenerationOptions) -> int:
        requested = (
            options.max_tokens
            or options.organization.max_tokens
            or int(model_preferences(options.organization)["max_tokens"])
        )
        return min(requested, token_ceiling(model, options.complexity))

    @staticmethod
    def resolve_temperature(options: GenerationOptions) -> float:
        if options.temperature is not None:
            return options.temperature
        if options.organization.temperature is not None:
            return options.organization.temperature
        return float(model_preferences(options.organization)["temperature"])

    @staticmethod
    def call_timeout(env: Settings, options: GenerationOptions) -> float:
        timeout = options.timeout_seconds or env.provider_timeout_seconds
        if options.deadline is not None:
            timeout = min(timeout, options.deadline - time.monotonic())
        return timeout

    def default_budget(self, env: Settings, options: GenerationOptions) -> OrgBudget:
        return options.budget or OrgBudget(
            daily_budget=env.daily_cost_budget,
            single_call_limit=env.single_call_limit,
        )

    async def generate(self, env: Settings, prompt: str, options: GenerationOptions | None = None) -> str:
        routed = await self.generate_with_usage(env, prompt, options)
        return routed.text

    async def generate_with_usage(
        self,
        env: Settings,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> RoutedCompletion:
        options = options or GenerationOptions()
        organization = options.organization
        scope = organization.scope

        candidates = [p for p in self.provider_order(organization) if p.has_credentials(env)]
        if not candidates:
            raise ConfigurationError(
                f"No valid AI API keys found for {scope}. "
                "Configure ANTHROPIC_API_KEY (sk-ant...) or OPENAI_API_KEY (sk-... / org-...)."
            )

        budget = self.default_budget(env, options)
        if env.budget_policy == "block":
            spent = self.cost_monitor.daily_total(organization.organization_id)
            if spent >= budget.daily_budget:
                raise BudgetExceededError(
                    f"Daily budget ${budget.daily_budget:.2f} already spent for {scope} (${spent:.5f})"
                )

        failures: list[IntegrationError] = []
        temperature = self.resolve_temperature(options)
        for provider in candidates:
            model = provider.resolve_model(env, options)
            max_tokens = self.resolve_max_tokens(model, options)
            timeout = self.call_timeout(env, options)
            if timeout <= 0:
                failures.append(IntegrationError(provider.name.value, "deadline expired before call"))
                logger.warning(f"Skipping {provider.name.value} for {scope}: deadline expired")
                continue

            logger.info(
                f"Calling {provider.name.value} model={model} max_tokens={max_tokens} "
                f"tier={options.tier.value} complexity={options.complexity.value} scope={scope}"
            )
            try:
                completion = await asyncio.wait_for(
                    provider.complete(env, prompt, model, max_tokens, temperature, options),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                failure = IntegrationError(provider.name.value, f"timed out after {timeout:.1f}s")
                failures.append(failure)
                logger.warning(f"{failure} for {scope}, trying fallback")
                continue
            except IntegrationError as exc:
                failures.append(exc)
                logger.warning(f"{exc} for {scope}, trying fallback")
                continue

            record = self.cost_monitor.record(
                model,
                completion.input_tokens,
                completion.output_tokens,
                provider=provider.name.value,
                job_id=options.job_id,
                organization_id=organization.organization_id,
                tier=options.tier.value,
                complexity=options.complexity.value,
            )
            status = self.cost_monitor.check_budget(record, budget)
            return RoutedCompletion(
                text=completion.text,
                provider=provider.name.value,
                model=model,
                cost_record=record,
                budget_status=status,
            )

        error = ProviderError(failures, scope=scope)
        logger.error(str(error))
        self.cost_monitor.record(
            FAILED_MODEL_LABEL,
            0,
            0,
            job_id=options.job_id,
            organization_id=organization.organization_id,
            tier=options.tier.value,
            complexity=options.complexity.value,
            success=False,
            error=str(error),
        )
        raise error
