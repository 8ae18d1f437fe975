from __future__ import annotations

import logging
from typing import Any, Callable

import anthropic
from anthropic import AsyncAnthropic

from workflowgen.config import Settings
from workflowgen.core.anthropic_client import build_anthropic_client
from workflowgen.core.exceptions import IntegrationError
from workflowgen.integrations.base import Completion, ProviderAdapter, estimate_tokens
from workflowgen.schemas.generation import GenerationOptions
from workflowgen.schemas.plan import ModelProvider

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, float, str], Any]


class AnthropicProvider(ProviderAdapter):
    name = ModelProvider.ANTHROPIC

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or build_anthropic_client
        self._clients: dict[tuple[str, float, str], AsyncAnthropic] = {}

    def api_key(self, settings: Settings) -> str:
        return settings.anthropic_api_key.get_secret_value()

    def key_is_well_formed(self, key: str) -> bool:
        return key.startswith("sk-ant")

    def standard_model(self, settings: Settings) -> str:
        return settings.anthropic_model

    def advanced_model(self, settings: Settings) -> str:
        return settings.anthropic_advanced_model

    def _client(self, settings: Settings) -> AsyncAnthropic:
        cache_key = (self.api_key(settings), settings.provider_timeout_seconds, settings.anthropic_version)
        if cache_key not in self._clients:
            self._clients[cache_key] = self._client_factory(*cache_key)
        return self._clients[cache_key]

    async def complete(
        self,
        settings: Settings,
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        options: GenerationOptions,
    ) -> Completion:
        client = self._client(settings)
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as exc:
            raise IntegrationError(self.name.value, f"HTTP {exc.status_code}: {exc.message}") from exc
        except anthropic.APIError as exc:
            raise IntegrationError(self.name.value, str(exc) or exc.__class__.__name__) from exc

        content = getattr(response, "content", None) or []
        text = getattr(content[0], "text", None) if content else None
        if not isinstance(text, str):
            raise IntegrationError(self.name.value, "malformed response: missing content[0].text")

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        reported = isinstance(input_tokens, int) and isinstance(output_tokens, int)
        if not reported:
            logger.warning(f"Anthropic response for {model} carried no usage; estimating tokens")
            input_tokens = estimate_tokens(prompt)
            output_tokens = estimate_tokens(text)

        return Completion(
            text=text,
            model=getattr(response, "model", None) or model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            usage_reported=reported,
        )
