from pathlib import Path

from record_worker.llm.exceptions import LLMError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def load_prompt_template(name: str, prompt_dir: Path | None = None) -> str:
    """Load a prompt template by name.

    Args:
        name: Template file name without the ``.txt`` suffix.
        prompt_dir: Directory to read from. Defaults to the bundled prompts.

    Returns:
        The raw template string with ``str.format`` placeholders.

    Raises:
        LLMError: if the file cannot be read.
    """
    path = (prompt_dir or _DEFAULT_PROMPT_DIR) / f"{name}.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LLMError(f"Failed to load prompt template: {exc}") from exc


def render_prompt(name: str, prompt_dir: Path | None = None, **values: object) -> str:
    """Load a template and fill in its placeholders."""
    return load_prompt_template(name, prompt_dir).format(**values)
