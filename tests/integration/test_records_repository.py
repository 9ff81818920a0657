import pytest

from record_worker.database.repositories.records_repository import RecordsRepository
from record_worker.processing.exceptions import RecordNotFoundError
from record_worker.records.models import Attachment, Record, RecordExtra


def _make_record(folder_id: int, **fields) -> Record:
    return Record(
        folder_id=folder_id,
        title="Blood panel",
        tags=["lab"],
        json=[{"type": "lab", "title": "Blood panel"}],
        text="Hemoglobin 14",
        extra=[RecordExtra("Page 1 content", "Hemoglobin 14")],
        attachments=[Attachment(id=1, storage_key="blob-1.pdf", display_name="scan.pdf")],
        **fields,
    )


@pytest.mark.integration
class TestRecordsRepositorySave:
    def test_insert_assigns_id_and_timestamps(self, folder_id: int) -> None:
        repo = RecordsRepository()
        record = repo.save(_make_record(folder_id))

        assert record.id is not None
        assert record.created_at is not None
        assert record.updated_at is not None

    def test_round_trips_json_columns(self, folder_id: int) -> None:
        repo = RecordsRepository()
        saved = repo.save(_make_record(folder_id, checksum="abc", checksum_at_last_parse="abc"))

        loaded = repo.find_by_id(saved.id)

        assert loaded.json == [{"type": "lab", "title": "Blood panel"}]
        assert loaded.tags == ["lab"]
        assert loaded.get_extra("Page 1 content") == "Hemoglobin 14"
        assert loaded.attachments[0].storage_key == "blob-1.pdf"
        assert loaded.checksum_at_last_parse == "abc"

    def test_update_bumps_updated_at(self, folder_id: int) -> None:
        repo = RecordsRepository()
        record = repo.save(_make_record(folder_id))
        first = record.updated_at

        record.title = "Renamed"
        repo.save(record)

        assert record.updated_at >= first
        assert repo.find_by_id(record.id).title == "Renamed"

    def test_update_of_deleted_record_raises(self, folder_id: int) -> None:
        repo = RecordsRepository()
        record = repo.save(_make_record(folder_id))
        repo.delete(record.id)

        with pytest.raises(RecordNotFoundError):
            repo.save(record)


@pytest.mark.integration
class TestRecordsRepositoryQueries:
    def test_find_missing_raises(self, folder_id: int) -> None:
        with pytest.raises(RecordNotFoundError):
            RecordsRepository().find_by_id(-1)

    def test_list_by_folder(self, folder_id: int) -> None:
        repo = RecordsRepository()
        first = repo.save(_make_record(folder_id))
        second = repo.save(_make_record(folder_id))

        assert [r.id for r in repo.list_by_folder(folder_id)] == [first.id, second.id]

    def test_last_update_is_newest_record(self, folder_id: int) -> None:
        repo = RecordsRepository()
        assert repo.get_last_update(folder_id) is None

        repo.save(_make_record(folder_id))
        latest = repo.save(_make_record(folder_id))

        last = repo.get_last_update(folder_id)
        assert last.updated_at == latest.updated_at

    def test_delete(self, folder_id: int) -> None:
        repo = RecordsRepository()
        record = repo.save(_make_record(folder_id))

        assert repo.delete(record.id) is True
        assert repo.delete(record.id) is False
