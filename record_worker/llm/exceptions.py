class LLMError(Exception):
    """Raised when a completion request fails."""


class LLMNetworkError(LLMError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""
