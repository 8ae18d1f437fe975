from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from workflowgen.config import Settings
from workflowgen.schemas.generation import GenerationOptions
from workflowgen.schemas.plan import Complexity, InvocationTier, ModelProvider

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


@dataclass
class Completion:
    text: str
    model: str
    input_tokens: int
    output_tokens: int
    usage_reported: bool = True


class ProviderAdapter(ABC):
    """One LLM provider behind a single completion capability."""

    name: ModelProvider

    @abstractmethod
    def api_key(self, settings: Settings) -> str:
        raise NotImplementedError

    @abstractmethod
    def key_is_well_formed(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def standard_model(self, settings: Settings) -> str:
        raise NotImplementedError

    @abstractmethod
    def advanced_model(self, settings: Settings) -> str:
        raise NotImplementedError

    @abstractmethod
    async def complete(
        self,
        settings: Settings,
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        options: GenerationOptions,
    ) -> Completion:
        """Return the completion or raise IntegrationError."""
        raise NotImplementedError

    def has_credentials(self, settings: Settings) -> bool:
        key = self.api_key(settings)
        return bool(key) and self.key_is_well_formed(key)

    def resolve_model(self, settings: Settings, options: GenerationOptions) -> str:
        escalate = (
            settings.advanced_model_enabled
            and options.tier == InvocationTier.ORCHESTRATOR
            and options.complexity == Complexity.COMPLEX
        )
        return self.advanced_model(settings) if escalate else self.standard_model(settings)
