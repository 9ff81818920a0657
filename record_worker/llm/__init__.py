from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.factory import CompletionClientFactory
from record_worker.llm.prompt_loader import render_prompt

__all__ = ["BaseCompletionClient", "CompletionClientFactory", "render_prompt"]
