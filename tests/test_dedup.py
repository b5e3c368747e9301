"""
Dedup by id, latest update wins
"""
from app.importer.dedup import dedupe_records, record_timestamp


def test_latest_update_wins():
    records = [
        {"id": "1001", "updated_at": "2024-01-01T00:00:00Z", "total": "10.00"},
        {"id": "1001", "updated_at": "2024-01-02T00:00:00Z", "total": "12.00"},
    ]
    result = dedupe_records(records)
    assert len(result) == 1
    assert result[0]["total"] == "12.00"


def test_older_duplicate_does_not_replace():
    records = [
        {"id": "a", "updated_at": "2024-05-02T00:00:00Z", "v": 1},
        {"id": "a", "updated_at": "2024-05-01T00:00:00Z", "v": 2},
    ]
    assert dedupe_records(records)[0]["v"] == 1


def test_tie_keeps_first_seen():
    records = [
        {"id": "a", "updated_at": "2024-05-01T00:00:00Z", "v": 1},
        {"id": "a", "updated_at": "2024-05-01T00:00:00Z", "v": 2},
    ]
    assert dedupe_records(records)[0]["v"] == 1


def test_falls_back_to_created_at_and_keeps_first_appearance_order():
    records = [
        {"id": "b", "created_at": "2024-01-01"},
        {"id": "a"},
        {"id": "b", "created_at": "2024-02-01", "v": "newer"},
    ]
    result = dedupe_records(records)
    assert [r["id"] for r in result] == ["b", "a"]
    assert result[0]["v"] == "newer"


def test_record_timestamp_handles_missing_values():
    assert record_timestamp({"id": "x"}) is None
    assert record_timestamp({"updated_at": "", "created_at": "2024-01-01"}).year == 2024
