import json
from types import SimpleNamespace

import httpx
import pytest

from workflowgen.core.anthropic_client import build_anthropic_client
from workflowgen.core.exceptions import IntegrationError, ProviderError
from workflowgen.integrations import AnthropicProvider, OpenAIProvider
from workflowgen.integrations.base import estimate_tokens
from workflowgen.schemas.generation import GenerationOptions
from workflowgen.schemas.plan import Complexity, OrganizationContext
from workflowgen.services.model_router import ModelRouter

ANTHROPIC_OK = {
    "id": "msg_01",
    "type": "message",
    "role": "assistant",
    "model": "claude-3-5-sonnet-20241022",
    "content": [{"type": "text", "text": '{"name": "Flow"}'}],
    "stop_reason": "end_turn",
    "stop_sequence": None,
    "usage": {"input_tokens": 321, "output_tokens": 45},
}

OPENAI_OK = {
    "id": "chatcmpl-1",
    "model": "gpt-4o-mini-2024-07-18",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": '{"name": "Flow"}'}}],
    "usage": {"prompt_tokens": 200, "completion_tokens": 30},
}


def anthropic_over(handler):
    def factory(api_key, timeout, api_version):
        return build_anthropic_client(
            api_key, timeout, api_version, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    return AnthropicProvider(client_factory=factory)


class FakeMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.response


def fake_anthropic(response=None, error=None):
    messages = FakeMessages(response, error)
    provider = AnthropicProvider(client_factory=lambda key, timeout, version: SimpleNamespace(messages=messages))
    return provider, messages


def test_key_formats(make_settings):
    anthropic = AnthropicProvider()
    openai = OpenAIProvider()
    assert anthropic.has_credentials(make_settings())
    assert openai.has_credentials(make_settings())
    assert openai.has_credentials(make_settings(OPENAI_API_KEY="org-abc"))
    assert not anthropic.has_credentials(make_settings(ANTHROPIC_API_KEY="sk-openai-style"))
    assert not openai.has_credentials(make_settings(OPENAI_API_KEY="abc"))
    assert not openai.has_credentials(make_settings(OPENAI_API_KEY=""))


@pytest.mark.asyncio
async def test_anthropic_completion_through_sdk(make_settings):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-api-key")
        seen["version"] = request.headers.get("anthropic-version")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=ANTHROPIC_OK)

    provider = anthropic_over(handler)
    completion = await provider.complete(
        make_settings(), "Design a flow", "claude-3-5-sonnet-20241022", 3000, 0.7, GenerationOptions()
    )

    assert completion.text == '{"name": "Flow"}'
    assert (completion.input_tokens, completion.output_tokens) == (321, 45)
    assert completion.usage_reported
    assert seen["url"].endswith("/v1/messages")
    assert seen["key"] == make_settings().anthropic_api_key.get_secret_value()
    assert seen["version"] == "2023-06-01"
    assert seen["body"]["max_tokens"] == 3000
    assert seen["body"]["messages"] == [{"role": "user", "content": "Design a flow"}]


@pytest.mark.asyncio
async def test_anthropic_http_error_becomes_integration_error(make_settings):
    def handler(request):
        return httpx.Response(
            401,
            json={"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}},
        )

    with pytest.raises(IntegrationError) as exc_info:
        await anthropic_over(handler).complete(
            make_settings(), "prompt", "claude-3-5-sonnet-20241022", 100, 0.5, GenerationOptions()
        )
    assert exc_info.value.provider == "anthropic"
    assert "401" in str(exc_info.value)


@pytest.mark.asyncio
async def test_anthropic_missing_usage_is_estimated(make_settings):
    response = SimpleNamespace(content=[SimpleNamespace(text="abcdefgh")], usage=None, model=None)
    provider, messages = fake_anthropic(response)

    completion = await provider.complete(make_settings(), "x" * 41, "claude-3-5-sonnet", 10, 0.2, GenerationOptions())

    assert completion.input_tokens == estimate_tokens("x" * 41) == 11
    assert completion.output_tokens == 2
    assert not completion.usage_reported
    assert completion.model == "claude-3-5-sonnet"
    assert messages.kwargs["temperature"] == 0.2


@pytest.mark.asyncio
async def test_anthropic_malformed_response(make_settings):
    provider, _ = fake_anthropic(SimpleNamespace(content=[], usage=None))
    with pytest.raises(IntegrationError, match="malformed"):
        await provider.complete(make_settings(), "p", "claude-3-5-sonnet", 10, 0.2, GenerationOptions())


@pytest.mark.asyncio
async def test_openai_request_and_usage(make_settings):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=OPENAI_OK)

    provider = OpenAIProvider(transport=httpx.MockTransport(handler))
    options = GenerationOptions(
        complexity=Complexity.COMPLEX,
        organization=OrganizationContext(organizationId="org-5"),
    )
    completion = await provider.complete(make_settings(), "prompt", "gpt-4o-mini", 4000, 0.5, options)

    assert completion.text == '{"name": "Flow"}'
    assert (completion.input_tokens, completion.output_tokens) == (200, 30)
    assert completion.model == "gpt-4o-mini-2024-07-18"
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == f"Bearer {make_settings().openai_api_key.get_secret_value()}"
    assert seen["body"]["max_completion_tokens"] == 4000
    assert seen["body"]["metadata"] == {
        "organizationId": "org-5",
        "workspaceType": "organization",
        "tier": "orchestrator",
        "complexity": "complex",
    }


def test_openai_metadata_values_are_strings():
    body = OpenAIProvider.build_body("p", "gpt-4o-mini", 10, 0.1, GenerationOptions())
    assert all(isinstance(value, str) for value in body["metadata"].values())
    assert body["metadata"]["workspaceType"] == "personal"


@pytest.mark.asyncio
async def test_openai_error_status(make_settings):
    provider = OpenAIProvider(transport=httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited")))
    with pytest.raises(IntegrationError, match="HTTP 429: rate limited"):
        await provider.complete(make_settings(), "p", "gpt-4o-mini", 10, 0.1, GenerationOptions())


@pytest.mark.asyncio
async def test_openai_malformed_body(make_settings):
    provider = OpenAIProvider(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []})))
    with pytest.raises(IntegrationError, match="malformed"):
        await provider.complete(make_settings(), "p", "gpt-4o-mini", 10, 0.1, GenerationOptions())


@pytest.mark.asyncio
async def test_openai_transport_failure(make_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenAIProvider(transport=httpx.MockTransport(handler))
    with pytest.raises(IntegrationError, match="request failed"):
        await provider.complete(make_settings(), "p", "gpt-4o-mini", 10, 0.1, GenerationOptions())


@pytest.mark.asyncio
async def test_both_real_adapters_rejecting_keys(make_settings, cost_monitor, cost_log):
    anthropic = anthropic_over(
        lambda request: httpx.Response(
            401, json={"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
        )
    )
    openai = OpenAIProvider(
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))
    )
    router = ModelRouter(cost_monitor, [anthropic, openai])

    with pytest.raises(ProviderError) as exc_info:
        await router.generate_with_usage(make_settings(), "prompt", GenerationOptions())

    assert "anthropic: HTTP 401" in str(exc_info.value)
    assert "openai: HTTP 401" in str(exc_info.value)
    records = cost_log.records()
    assert len(records) == 1
    assert not records[0].success


@pytest.mark.asyncio
async def test_anthropic_version_header_follows_settings(make_settings):
    versions = []

    def handler(request):
        versions.append(request.headers.get("anthropic-version"))
        return httpx.Response(200, json=ANTHROPIC_OK)

    provider = anthropic_over(handler)
    await provider.complete(
        make_settings(ANTHROPIC_VERSION="2024-10-22"),
        "prompt",
        "claude-3-5-sonnet-20241022",
        100,
        0.5,
        GenerationOptions(),
    )
    assert versions == ["2024-10-22"]
