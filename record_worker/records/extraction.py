"""Turns the model's fenced output into extraction items and markdown."""

import json
from dataclasses import dataclass, field
from typing import Any

from record_worker.processing.exceptions import ProcessingError
from record_worker.records.text_blocks import find_code_blocks

_TYPE_FALLBACK = "note"


@dataclass
class ExtractionResult:
    """Structured items and markdown body found in one model response."""

    items: list[dict[str, Any]] = field(default_factory=list)
    markdown: str = ""

    def error_item(self) -> dict[str, Any] | None:
        """Return the first item flagged by the model as not a valid document."""
        for item in self.items:
            if item.get("error"):
                return item
        return None

    def discovered_type(self) -> str:
        if not self.items:
            return _TYPE_FALLBACK
        return ", ".join(
            str(item.get("subtype") or item.get("type") or _TYPE_FALLBACK)
            for item in self.items
        )

    def discovered_event_date(self) -> str | None:
        for date_field in ("test_date", "admission_date"):
            for item in self.items:
                value = item.get(date_field)
                if value:
                    return str(value)
        return None


def has_json_block(text: str) -> bool:
    return "```json" in text


def parse_extraction(text: str) -> ExtractionResult:
    """Collect json items and concatenated markdown from fenced blocks.

    Raises:
        ProcessingError: if a json block does not hold valid JSON.
    """
    result = ExtractionResult()
    for block in find_code_blocks(text.rstrip()):
        if block.syntax == "json":
            result.items.extend(_parse_items(block.code))
        elif block.syntax == "markdown":
            result.markdown += block.code
    return result


def parse_metadata_object(text: str) -> dict[str, Any]:
    """Return the first json object found in a metadata response, or {}."""
    for block in find_code_blocks(text.rstrip()):
        if block.syntax != "json":
            continue
        items = _parse_items(block.code)
        if items:
            return items[0]
    return {}


def _parse_items(code: str) -> list[dict[str, Any]]:
    try:
        parsed = json.loads(code)
    except json.JSONDecodeError as exc:
        raise ProcessingError(f"Invalid JSON block in model output: {exc}") from exc

    if isinstance(parsed, list):
        return [_require_object(item, i) for i, item in enumerate(parsed)]
    return [_require_object(parsed, 0)]


def _require_object(raw: Any, index: int) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ProcessingError(f"Extraction item at index {index} must be an object")
    return raw
