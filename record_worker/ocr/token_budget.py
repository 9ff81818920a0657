class TokenBudget:
    """Estimates streaming progress in tokens across pages.

    The total starts at ``pages * average_page_tokens``. Each finished page
    replaces its average with the actual count plus the metadata share it
    will likely cost. The total never drops below what was already
    processed, so reported progress never moves backwards.
    """

    def __init__(
        self,
        pages: int,
        average_page_tokens: int = 1000,
        metadata_ratio: float = 0.7,
    ) -> None:
        self._average = average_page_tokens
        self._metadata_ratio = metadata_ratio
        self._total = float(pages * average_page_tokens)
        self._processed = 0

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def total(self) -> int:
        return max(int(self._total), self._processed)

    def consume(self, tokens: int = 1) -> int:
        if tokens > 0:
            self._processed += tokens
        return self._processed

    def complete_page(self, actual_tokens: int) -> int:
        self._total = self._total - self._average + actual_tokens * (1 + self._metadata_ratio)
        self._total = max(self._total, float(self._processed))
        return self.total
