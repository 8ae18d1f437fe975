"""LLM provider adapters used by the model router."""
from workflowgen.integrations.anthropic_provider import AnthropicProvider
from workflowgen.integrations.base import Completion, ProviderAdapter
from workflowgen.integrations.openai_provider import OpenAIProvider

__all__ = ["AnthropicProvider", "Completion", "OpenAIProvider", "ProviderAdapter", "default_providers"]


def default_providers() -> list[ProviderAdapter]:
    return [AnthropicProvider(), OpenAIProvider()]
