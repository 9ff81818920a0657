from datetime import datetime

from record_worker.records.models import TRANSLATION_LANGUAGE, Record

EVENT_DATE_FIELDS = (
    "test_date",
    "admission_date",
    "visit_date",
    "procedure_date",
    "examination_date",
    "date",
)


def apply_derived_metadata(record: Record) -> Record:
    """Fill title, description, tags and event date from the extraction items.

    Values the user already set are left alone.
    """
    if record.json:
        first = record.json[0]
        if first.get("title") and not record.title:
            record.title = str(first["title"])
        if first.get("summary") and not record.description:
            record.description = str(first["summary"])
        if not record.tags:
            record.tags = _unique_tags(record)

    language = record.get_extra(TRANSLATION_LANGUAGE)
    if language:
        language_tag = f"Language: {language}"
        if language_tag not in record.tags:
            record.tags.append(language_tag)

    record.event_date = discover_event_date(record)
    return record


def discover_event_date(record: Record) -> str | None:
    """Pick the record's event date.

    An existing valid date wins, an unparseable one falls back to creation
    time, otherwise the first known date field in the extraction items is
    used.
    """
    if record.event_date:
        if _parse_date(record.event_date) is None:
            return _created_at(record)
        return record.event_date

    for date_field in EVENT_DATE_FIELDS:
        for item in record.json or []:
            if date_field not in item:
                continue
            parsed = _parse_date(item[date_field])
            if parsed is not None:
                return parsed.isoformat()
            break

    return _created_at(record)


def _unique_tags(record: Record) -> list[str]:
    tags: list[str] = []
    for item in record.json or []:
        item_tags = item.get("tags")
        if not isinstance(item_tags, list):
            continue
        for tag in item_tags:
            if tag not in tags:
                tags.append(tag)
    return tags


def _parse_date(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _created_at(record: Record) -> str | None:
    return record.created_at.isoformat() if record.created_at else None
