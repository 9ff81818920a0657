from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "records"
    db_username: str = "records"
    db_password: str = "secret"

    files_root: Path = Path("/app/data")
    folder_id: int = 1
    poll_interval_seconds: int = 5

    # Empty session_id means a fresh session per process.
    session_id: str = ""
    user_agent: str = "record-worker"

    ocr_provider: str = "llm-paged"
    pdf_engine: str = "pymupdf"
    pdf_max_height: int = 3200
    average_page_tokens: int = 1000

    auto_parse_record: bool = True
    auto_translate_record: bool = False
    translation_language: str = "English"

    recent_update_window_seconds: int = 3600
    lock_stale_seconds: int = 300
    lock_write_every: int = 30
    heartbeat_interval_seconds: int = 1800

    llm_provider: str = "openai"
    llm_timeout_seconds: int = 120
    llm_temperature: float = 0.0

    llm_openai_api_key: str = ""
    llm_openai_model_name: str = "gpt-4o"

    llm_openai_compatible_base_url: str = ""
    llm_openai_compatible_api_key: str = ""
    llm_openai_compatible_model_name: str = ""

    llm_openrouter_api_key: str = ""
    llm_openrouter_model_name: str = ""

    llm_groq_api_key: str = ""
    llm_groq_model_name: str = ""

    llm_together_api_key: str = ""
    llm_together_model_name: str = ""

    llm_deepseek_api_key: str = ""
    llm_deepseek_model_name: str = ""

    llm_ollama_api_key: str = ""
    llm_ollama_model_name: str = ""

    gemini_api_key: str = ""
    gemini_model_name: str = "gemini-2.0-flash"
