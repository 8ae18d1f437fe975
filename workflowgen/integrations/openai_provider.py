from __future__ import annotations

import logging
from typing import Any

import httpx

from workflowgen.config import Settings
from workflowgen.core.exceptions import IntegrationError
from workflowgen.integrations.base import Completion, ProviderAdapter, estimate_tokens
from workflowgen.schemas.generation import GenerationOptions
from workflowgen.schemas.plan import ModelProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(ProviderAdapter):
    name = ModelProvider.OPENAI

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport

    def api_key(self, settings: Settings) -> str:
        return settings.openai_api_key.get_secret_value()

    def key_is_well_formed(self, key: str) -> bool:
        return key.startswith("sk-") or key.startswith("org-")

    def standard_model(self, settings: Settings) -> str:
        return settings.openai_model

    def advanced_model(self, settings: Settings) -> str:
        return settings.openai_advanced_model

    @staticmethod
    def build_body(
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        options: GenerationOptions,
    ) -> dict[str, Any]:
        organization = options.organization
        return {
            "model": model,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            # Metadata values must be strings.
            "metadata": {
                "organizationId": organization.organization_id or "",
                "workspaceType": organization.workspace_type,
                "tier": options.tier.value,
                "complexity": options.complexity.value,
            },
        }

    async def complete(
        self,
        settings: Settings,
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        options: GenerationOptions,
    ) -> Completion:
        url = f"{settings.openai_base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key(settings)}",
            "Content-Type": "application/json",
        }
        body = self.build_body(prompt, model, max_tokens, temperature, options)
        try:
            async with httpx.AsyncClient(
                timeout=settings.provider_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise IntegrationError(self.name.value, f"request failed: {exc.__class__.__name__}: {exc}") from exc

        if not response.is_success:
            raise IntegrationError(self.name.value, f"HTTP {response.status_code}: {response.text[:300]}")

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise IntegrationError(self.name.value, "malformed response: missing choices[0].message.content") from exc
        if not isinstance(text, str):
            raise IntegrationError(self.name.value, "malformed response: content is not text")

        usage = data.get("usage") or {}
        input_tokens = usage.get("prompt_tokens")
        output_tokens = usage.get("completion_tokens")
        reported = isinstance(input_tokens, int) and isinstance(output_tokens, int)
        if not reported:
            logger.warning(f"OpenAI response for {model} carried no usage; estimating tokens")
            input_tokens = estimate_tokens(prompt)
            output_tokens = estimate_tokens(text)

        return Completion(
            text=text,
            model=data.get("model") or model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            usage_reported=reported,
        )
