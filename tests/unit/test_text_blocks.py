import pytest

from record_worker.processing.exceptions import ProcessingError
from record_worker.records.extraction import (
    has_json_block,
    parse_extraction,
    parse_metadata_object,
)
from record_worker.records.text_blocks import find_code_blocks, strip_code_fences


class TestStripCodeFences:
    def test_removes_language_fences(self) -> None:
        assert strip_code_fences("```markdown\n# Title\n```") == "# Title\n"

    def test_removes_bare_fences(self) -> None:
        assert strip_code_fences("```\ntext\n``` more") == "text\n more"

    def test_plain_text_unchanged(self) -> None:
        assert strip_code_fences("no fences here") == "no fences here"


class TestFindCodeBlocks:
    def test_finds_blocks_in_order(self) -> None:
        blocks = find_code_blocks('```json\n[1]\n```\n\n```markdown\nbody\n```')
        assert [(b.syntax, b.code) for b in blocks] == [("json", "[1]\n"), ("markdown", "body\n")]

    def test_closes_unterminated_block(self) -> None:
        blocks = find_code_blocks("```markdown\ncut short")
        assert len(blocks) == 1
        assert blocks[0].code == "cut short"


class TestParseExtraction:
    def test_flattens_json_arrays_and_concatenates_markdown(self) -> None:
        text = (
            '```json\n[{"type": "lab"}, {"type": "visit"}]\n```\n'
            '```json\n{"type": "note"}\n```\n'
            "```markdown\nPage one\n```\n```markdown\nPage two\n```"
        )
        result = parse_extraction(text)
        assert [item["type"] for item in result.items] == ["lab", "visit", "note"]
        assert result.markdown == "Page one\nPage two\n"

    def test_discovered_type_prefers_subtype(self) -> None:
        result = parse_extraction('```json\n[{"type": "lab", "subtype": "blood"}, {"type": "visit"}]\n```')
        assert result.discovered_type() == "blood, visit"

    def test_discovered_type_without_items_is_note(self) -> None:
        assert parse_extraction("```markdown\nx\n```").discovered_type() == "note"

    def test_discovered_event_date_prefers_test_date(self) -> None:
        result = parse_extraction(
            '```json\n[{"admission_date": "2024-02-01"}, {"test_date": "2024-01-05"}]\n```'
        )
        assert result.discovered_event_date() == "2024-01-05"

    def test_error_item(self) -> None:
        result = parse_extraction('```json\n[{"error": "not a document"}]\n```')
        assert result.error_item() == {"error": "not a document"}

    def test_invalid_json_raises(self) -> None:
        with pytest.raises(ProcessingError, match="Invalid JSON"):
            parse_extraction("```json\n{not json\n```")

    def test_non_object_item_raises(self) -> None:
        with pytest.raises(ProcessingError, match="must be an object"):
            parse_extraction("```json\n[1, 2]\n```")

    def test_has_json_block(self) -> None:
        assert has_json_block("```json\n{}\n```") is True
        assert has_json_block("plain text") is False


class TestParseMetadataObject:
    def test_returns_first_object(self) -> None:
        assert parse_metadata_object('```json\n{"title": "T"}\n```') == {"title": "T"}

    def test_returns_empty_without_json(self) -> None:
        assert parse_metadata_object("no metadata") == {}
