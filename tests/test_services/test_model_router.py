import asyncio
import time

import pytest

from workflowgen.core.exceptions import BudgetExceededError, ConfigurationError, ProviderError
from workflowgen.integrations import AnthropicProvider, OpenAIProvider
from workflowgen.schemas.cost import OrgBudget
from workflowgen.schemas.generation import GenerationOptions
from workflowgen.schemas.plan import Complexity, InvocationTier, ModelProvider, OrganizationContext, PlanTier
from workflowgen.services.model_router import CONSERVATIVE_CEILING, ModelRouter, token_ceiling

ANTHROPIC = ModelProvider.ANTHROPIC
OPENAI = ModelProvider.OPENAI


def test_token_ceiling_by_family():
    assert token_ceiling("claude-3-5-sonnet-20241022", Complexity.SIMPLE) == 3000
    assert token_ceiling("gpt-4o-mini", Complexity.COMPLEX) == 4000
    assert token_ceiling("gpt-4o", Complexity.COMPLEX) == 5000
    assert token_ceiling("unknown-model", Complexity.COMPLEX) == CONSERVATIVE_CEILING == 3000


@pytest.mark.asyncio
async def test_preferred_provider_success_skips_fallback(make_settings, fake_provider, cost_monitor, cost_log):
    anthropic = fake_provider(ANTHROPIC, text="from anthropic")
    openai = fake_provider(OPENAI, text="from openai")
    router = ModelRouter(cost_monitor, [anthropic, openai])

    routed = await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(jobId="job-1"))

    assert routed.text == "from anthropic"
    assert routed.provider == "anthropic"
    assert routed.model == "claude-3-5-sonnet-20241022"
    assert len(anthropic.calls) == 1
    assert openai.calls == []
    assert cost_log.records() == [routed.cost_record]
    assert routed.cost_record.job_id == "job-1"
    assert routed.cost_record.cost > 0
    assert routed.budget_status.within_budget


@pytest.mark.asyncio
async def test_fallback_used_once_after_preferred_fails(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC, fail_with="HTTP 529: overloaded")
    openai = fake_provider(OPENAI, text="from openai")
    router = ModelRouter(cost_monitor, [anthropic, openai])

    routed = await router.generate_with_usage(make_settings(), "prompt", GenerationOptions())

    assert routed.text == "from openai"
    assert routed.model == "gpt-4o-mini"
    assert len(anthropic.calls) == 1
    assert len(openai.calls) == 1


@pytest.mark.asyncio
async def test_org_preference_controls_order(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC)
    openai = fake_provider(OPENAI)
    router = ModelRouter(cost_monitor, [anthropic, openai])
    options = GenerationOptions(organization=OrganizationContext(preferredModelProvider=OPENAI))

    routed = await router.generate_with_usage(make_settings(), "prompt", options)

    assert routed.provider == "openai"
    assert anthropic.calls == []


@pytest.mark.asyncio
async def test_same_preferred_and_fallback_is_tried_once(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC, fail_with="HTTP 500: boom")
    openai = fake_provider(OPENAI)
    router = ModelRouter(cost_monitor, [anthropic, openai])
    organization = OrganizationContext(preferredModelProvider=ANTHROPIC, fallbackModelProvider=ANTHROPIC)

    with pytest.raises(ProviderError):
        await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(organization=organization))
    assert len(anthropic.calls) == 1
    assert openai.calls == []


@pytest.mark.asyncio
async def test_all_providers_failing(make_settings, fake_provider, cost_monitor, cost_log):
    anthropic = fake_provider(ANTHROPIC, fail_with="HTTP 401: invalid x-api-key")
    openai = fake_provider(OPENAI, fail_with="HTTP 401: invalid api key")
    router = ModelRouter(cost_monitor, [anthropic, openai])
    options = GenerationOptions(organization=OrganizationContext(organizationId="org-9"), jobId="job-9")

    with pytest.raises(ProviderError) as exc_info:
        await router.generate_with_usage(make_settings(), "prompt", options)

    message = str(exc_info.value)
    assert "org-9" in message
    assert "anthropic" in message
    assert "openai" in message
    assert [f.provider for f in exc_info.value.failures] == ["anthropic", "openai"]

    failed = cost_log.records()[-1]
    assert not failed.success
    assert failed.model == "all_providers"
    assert failed.cost == 0.0
    assert failed.organization_id == "org-9"
    assert failed.job_id == "job-9"


@pytest.mark.asyncio
async def test_no_credentials_fails_before_any_call(make_settings, fake_provider, cost_monitor, cost_log):
    anthropic = fake_provider(ANTHROPIC, credentialed=False)
    openai = fake_provider(OPENAI, credentialed=False)
    router = ModelRouter(cost_monitor, [anthropic, openai])

    with pytest.raises(ConfigurationError, match="Personal"):
        await router.generate_with_usage(make_settings(), "prompt", GenerationOptions())
    assert anthropic.calls == []
    assert openai.calls == []
    assert cost_log.records() == []


@pytest.mark.asyncio
async def test_malformed_keys_count_as_missing(make_settings, cost_monitor):
    settings = make_settings(ANTHROPIC_API_KEY="not-a-key", OPENAI_API_KEY="also-bad")
    router = ModelRouter(cost_monitor, [AnthropicProvider(), OpenAIProvider()])
    with pytest.raises(ConfigurationError):
        await router.generate_with_usage(settings, "prompt", GenerationOptions())


@pytest.mark.asyncio
async def test_advanced_model_escalation(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC)
    router = ModelRouter(cost_monitor, [anthropic])
    settings = make_settings(ADVANCED_MODEL_ENABLED=True)
    free_org = OrganizationContext(organizationId="org-1", planTier=PlanTier.FREE)

    await router.generate_with_usage(
        settings, "prompt", GenerationOptions(complexity=Complexity.COMPLEX, organization=free_org)
    )
    await router.generate_with_usage(
        settings,
        "prompt",
        GenerationOptions(complexity=Complexity.COMPLEX, tier=InvocationTier.AGENT, organization=free_org),
    )
    await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(complexity=Complexity.COMPLEX))

    escalated, agent, disabled = anthropic.calls
    assert escalated["model"] == "claude-3-7-sonnet-20250219"
    # Free tier asks for 4096, below the 5000 ceiling of the advanced model.
    assert escalated["max_tokens"] == 4096
    assert agent["model"] == "claude-3-5-sonnet-20241022"
    assert disabled["model"] == "claude-3-5-sonnet-20241022"


@pytest.mark.asyncio
async def test_max_tokens_and_temperature(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC)
    router = ModelRouter(cost_monitor, [anthropic])

    await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(maxTokens=100_000))
    await router.generate_with_usage(
        make_settings(ANTHROPIC_MODEL="mystery-model"),
        "prompt",
        GenerationOptions(complexity=Complexity.COMPLEX, temperature=0.1),
    )
    enterprise = OrganizationContext(organizationId="org-e", planTier=PlanTier.ENTERPRISE)
    await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(organization=enterprise))

    capped, unknown, tiered = anthropic.calls
    assert capped["max_tokens"] == 3000
    assert capped["temperature"] == 0.7
    assert unknown["max_tokens"] == 3000
    assert unknown["temperature"] == 0.1
    assert tiered["temperature"] == 0.3


@pytest.mark.asyncio
async def test_timeout_falls_back(make_settings, fake_provider, cost_monitor):
    slow = fake_provider(ANTHROPIC, delay=1.0)
    openai = fake_provider(OPENAI, text="fast")
    router = ModelRouter(cost_monitor, [slow, openai])

    routed = await router.generate_with_usage(make_settings(), "prompt", GenerationOptions(timeoutSeconds=0.05))

    assert routed.text == "fast"
    assert len(slow.calls) == 1


@pytest.mark.asyncio
async def test_expired_deadline_skips_providers(make_settings, fake_provider, cost_monitor):
    anthropic = fake_provider(ANTHROPIC)
    openai = fake_provider(OPENAI)
    router = ModelRouter(cost_monitor, [anthropic, openai])

    with pytest.raises(ProviderError, match="deadline expired"):
        await router.generate_with_usage(
            make_settings(), "prompt", GenerationOptions(deadline=time.monotonic() - 1)
        )
    assert anthropic.calls == []
    assert openai.calls == []


@pytest.mark.asyncio
async def test_cancellation_propagates_without_billing(make_settings, fake_provider, cost_monitor, cost_log):
    slow = fake_provider(ANTHROPIC, delay=10)
    openai = fake_provider(OPENAI)
    router = ModelRouter(cost_monitor, [slow, openai])

    task = asyncio.create_task(router.generate_with_usage(make_settings(), "prompt", GenerationOptions()))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert openai.calls == []
    assert cost_log.records() == []


@pytest.mark.asyncio
async def test_block_policy_rejects_spent_budget(make_settings, fake_provider, cost_monitor, cost_log):
    cost_monitor.record("claude-3-7-sonnet", 0, 100_000, organization_id="org-1")
    anthropic = fake_provider(ANTHROPIC)
    router = ModelRouter(cost_monitor, [anthropic])
    options = GenerationOptions(
        organization=OrganizationContext(organizationId="org-1"),
        budget=OrgBudget(dailyBudget=5.0),
    )

    with pytest.raises(BudgetExceededError):
        await router.generate_with_usage(make_settings(BUDGET_POLICY="block"), "prompt", options)
    assert anthropic.calls == []

    routed = await router.generate_with_usage(make_settings(), "prompt", options)
    assert routed.budget_status.warnings
    assert not routed.budget_status.within_budget


@pytest.mark.asyncio
async def test_generate_returns_text(make_settings, fake_provider, cost_monitor):
    router = ModelRouter(cost_monitor, [fake_provider(ANTHROPIC, text="hello")])
    assert await router.generate(make_settings(), "prompt") == "hello"
