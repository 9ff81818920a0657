from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence

from record_worker.rendering.base import PageImage


class BaseCompletionClient(ABC):
    """Contract for provider-specific streaming completion clients."""

    @abstractmethod
    def stream_completion(
        self,
        prompt: str,
        images: Sequence[PageImage] = (),
        model: str | None = None,
    ) -> Iterator[str]:
        """Yield the response text as it arrives, one delta at a time.

        Raises:
            LLMError: on any provider failure, possibly mid-stream.
        """

    def call(
        self,
        prompt: str,
        images: Sequence[PageImage] = (),
        model: str | None = None,
    ) -> str:
        """Return the whole response as plain text."""
        return "".join(self.stream_completion(prompt, images, model))
