"""Custom exception types for the generation pipeline and API layers."""


class AppError(Exception):
    """Base app exception."""


class ConfigurationError(AppError):
    """No usable provider credentials; raised before any network call."""


class IntegrationError(AppError):
    """A single external provider call failed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderError(AppError):
    """Every attempted provider failed for one request."""

    def __init__(self, failures: list[IntegrationError], scope: str = "Personal") -> None:
        self.failures = list(failures)
        detail = "; ".join(str(f) for f in self.failures) or "no provider attempted"
        super().__init__(f"All AI providers failed for {scope}: {detail}")


class ParseError(AppError):
    """The model reply contained no extractable JSON."""


class ValidationError(AppError):
    """Validation failure for generated artifacts at build time."""


class BudgetExceededError(AppError):
    """Organization budget already spent while the budget policy is set to block."""
