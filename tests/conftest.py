import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("COST_LOG_BACKEND", "memory")

from workflowgen.config import Settings  # noqa: E402
from workflowgen.core.exceptions import IntegrationError  # noqa: E402
from workflowgen.integrations.base import Completion, ProviderAdapter  # noqa: E402
from workflowgen.schemas.plan import ModelProvider  # noqa: E402
from workflowgen.services.cost_log import InMemoryCostLog  # noqa: E402
from workflowgen.services.cost_monitor import CostMonitor  # noqa: E402

ANTHROPIC_TEST_KEY = "sk-ant-test-0000000000"
OPENAI_TEST_KEY = "sk-test-1111111111"

# Every value that could leak in from the real environment is pinned here.
BASE_SETTINGS = {
    "APP_ENV": "test",
    "ANTHROPIC_API_KEY": ANTHROPIC_TEST_KEY,
    "OPENAI_API_KEY": OPENAI_TEST_KEY,
    "ANTHROPIC_MODEL": "claude-3-5-sonnet-20241022",
    "ANTHROPIC_ADVANCED_MODEL": "claude-3-7-sonnet-20250219",
    "OPENAI_MODEL": "gpt-4o-mini",
    "OPENAI_ADVANCED_MODEL": "gpt-4o",
    "OPENAI_BASE_URL": "https://api.openai.com/v1",
    "ADVANCED_MODEL_ENABLED": False,
    "PROVIDER_TIMEOUT_SECONDS": 5.0,
    "BUDGET_POLICY": "warn",
    "DAILY_COST_BUDGET": 10.0,
    "SINGLE_CALL_LIMIT": 1.0,
    "COST_LOG_BACKEND": "memory",
    "COST_LOG_DATABASE_URL": "sqlite:///:memory:",
    "COST_LOG_MAX_ENTRIES": None,
    "KNOWLEDGE_CORPUS_PATH": None,
    "SIMILAR_WORKFLOW_LIMIT": 3,
    "SIMILARITY_THRESHOLD": 0.1,
    "CORS_ORIGINS": "http://localhost:3000",
    "API_V1_PREFIX": "/api/v1",
    "LOG_LEVEL": "INFO",
}


class FakeProvider(ProviderAdapter):
    """In-process adapter that records calls and replays a canned reply."""

    def __init__(
        self,
        name: ModelProvider,
        text: str = "{}",
        fail_with: str | None = None,
        delay: float = 0.0,
        credentialed: bool = True,
        usage: tuple[int, int] = (1200, 800),
    ) -> None:
        self.name = name
        self.text = text
        self.fail_with = fail_with
        self.delay = delay
        self.credentialed = credentialed
        self.usage = usage
        self.calls: list[dict] = []

    def api_key(self, settings: Settings) -> str:
        return "valid-key" if self.credentialed else ""

    def key_is_well_formed(self, key: str) -> bool:
        return bool(key)

    def standard_model(self, settings: Settings) -> str:
        if self.name == ModelProvider.ANTHROPIC:
            return settings.anthropic_model
        return settings.openai_model

    def advanced_model(self, settings: Settings) -> str:
        if self.name == ModelProvider.ANTHROPIC:
            return settings.anthropic_advanced_model
        return settings.openai_advanced_model

    async def complete(self, settings, prompt, model, max_tokens, temperature, options) -> Completion:
        self.calls.append(
            {"prompt": prompt, "model": model, "max_tokens": max_tokens, "temperature": temperature}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise IntegrationError(self.name.value, self.fail_with)
        return Completion(
            text=self.text,
            model=model,
            input_tokens=self.usage[0],
            output_tokens=self.usage[1],
        )


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {**BASE_SETTINGS, **overrides}
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def cost_log() -> InMemoryCostLog:
    return InMemoryCostLog()


@pytest.fixture
def cost_monitor(cost_log) -> CostMonitor:
    return CostMonitor(cost_log)
