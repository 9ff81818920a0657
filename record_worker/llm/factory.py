from typing import ClassVar

from record_worker.config.settings import Settings
from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.example_client_adapter import ExampleClientAdapter
from record_worker.llm.openai_client_adapter import OpenAIClientAdapter


class CompletionClientFactory:
    """Creates the configured streaming completion client."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
        "groq": "https://api.groq.com/openai/v1",
        "together": "https://api.together.xyz/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "ollama": "http://localhost:11434/v1",
    }

    GEMINI_BASE_URL: ClassVar[str] = "https://generativelanguage.googleapis.com/v1beta/openai/"

    @classmethod
    def create(cls, settings: Settings) -> BaseCompletionClient:
        """Create a configured completion client from application settings."""
        provider = settings.llm_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()
        return OpenAIClientAdapter(
            api_key=cls._resolve_api_key(provider, settings),
            model=cls._resolve_model_name(provider, settings),
            timeout_seconds=settings.llm_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
            temperature=cls._resolve_temperature(provider, settings),
        )

    @classmethod
    def create_gemini(cls, settings: Settings) -> BaseCompletionClient:
        """Create a client for Gemini's OpenAI-compatible endpoint."""
        api_key = settings.gemini_api_key.strip()
        if not api_key:
            raise ValueError("gemini_api_key is required for ocr_provider=gemini")
        return OpenAIClientAdapter(
            api_key=api_key,
            model=settings.gemini_model_name,
            timeout_seconds=settings.llm_timeout_seconds,
            base_url=cls.GEMINI_BASE_URL,
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = (settings.llm_openai_compatible_base_url or "").strip()
            if not url:
                raise ValueError(
                    "llm_openai_compatible_base_url is required for "
                    "llm_provider=openai_compatible"
                )
            return url
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return default_base_url
        supported = [
            "example",
            "openai",
            "openai_compatible",
            *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS),
        ]
        raise ValueError(f"Unknown LLM provider '{provider}'. Choose from: {supported}")

    @classmethod
    def _resolve_api_key(cls, provider: str, settings: Settings) -> str:
        key_map = {
            "openai": settings.llm_openai_api_key,
            "openai_compatible": settings.llm_openai_compatible_api_key,
            "openrouter": settings.llm_openrouter_api_key,
            "groq": settings.llm_groq_api_key,
            "together": settings.llm_together_api_key,
            "deepseek": settings.llm_deepseek_api_key,
            "ollama": settings.llm_ollama_api_key or "ollama",
        }
        return key_map.get(provider, "") or ""

    @classmethod
    def _resolve_model_name(cls, provider: str, settings: Settings) -> str:
        key_map = {
            "openai": settings.llm_openai_model_name,
            "openai_compatible": settings.llm_openai_compatible_model_name,
            "openrouter": settings.llm_openrouter_model_name,
            "groq": settings.llm_groq_model_name,
            "together": settings.llm_together_model_name,
            "deepseek": settings.llm_deepseek_model_name,
            "ollama": settings.llm_ollama_model_name,
        }
        return key_map.get(provider, "") or ""

    @classmethod
    def _resolve_temperature(cls, provider: str, settings: Settings) -> float:
        return max(0.0, min(1.0, settings.llm_temperature))
