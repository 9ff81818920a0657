from record_worker.config.settings import Settings
from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.factory import CompletionClientFactory
from record_worker.ocr.base import BaseParseProvider
from record_worker.ocr.paged_provider import PagedLLMProvider
from record_worker.ocr.single_shot_provider import SingleShotLLMProvider
from record_worker.ocr.text_layer_provider import TextLayerProvider
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.record_service import RecordService
from record_worker.rendering.page_renderer import PageRenderer


class ParseProviderFactory:
    """Creates the parse provider named by ``settings.ocr_provider``."""

    ADAPTERS: dict[str, type[BaseParseProvider]] = {
        "llm-paged": PagedLLMProvider,
        "llm": SingleShotLLMProvider,
        "chatgpt": SingleShotLLMProvider,
        "gemini": SingleShotLLMProvider,
        "pdf-text": TextLayerProvider,
    }

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        client: BaseCompletionClient,
        records: RecordService,
        reconciler: ProgressReconciler,
        renderer: PageRenderer,
    ) -> BaseParseProvider:
        name = settings.ocr_provider.lower()
        adapter_cls = cls.ADAPTERS.get(name)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown OCR provider '{name}'. Choose from: {list(cls.ADAPTERS)}"
            )
        if name == "gemini":
            client = CompletionClientFactory.create_gemini(settings)
        if adapter_cls is TextLayerProvider:
            return TextLayerProvider(
                client=client,
                records=records,
                reconciler=reconciler,
                renderer=renderer,
                average_page_tokens=settings.average_page_tokens,
            )
        return adapter_cls(
            client=client,
            records=records,
            reconciler=reconciler,
            average_page_tokens=settings.average_page_tokens,
        )
