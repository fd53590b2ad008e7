import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from backend.app.data.store import ReportStore
from packages.schemas.errors import PersistenceError, ReportNotFoundError
from packages.schemas.types import ReportDraft


def draft(lat=-33.9249, lon=18.4241, **kw):
    fields = dict(category="Hazard", description="Pothole", location="Long St", latitude=lat, longitude=lon)
    fields.update(kw)
    return ReportDraft.build(**fields)


def test_missing_file_reads_as_empty(store):
    assert store.list_all() == []
    assert store.filter_by_bounds(-90, -180, 90, 180) == []


def test_blank_file_reads_as_empty(store):
    store.path.write_text("  \n")
    assert store.list_all() == []


@pytest.mark.parametrize("content", ["{not json", '{"reports": []}', '[{"id": "x"}]'])
def test_corrupt_file_raises(store, content):
    store.path.write_text(content)
    with pytest.raises(PersistenceError):
        store.list_all()


def test_unreadable_storage_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    broken = ReportStore(blocker / "reports.json")
    with pytest.raises(PersistenceError):
        broken.list_all()
    with pytest.raises(PersistenceError):
        broken.append(draft())


def test_append_then_list_round_trip(store):
    first = store.append(draft(description="Broken light"))
    second = store.append(draft())

    stored = store.list_all()
    assert [r.id for r in stored] == [first.id, second.id]
    last = stored[-1]
    assert (last.category, last.description, last.location) == ("Hazard", "Pothole", "Long St")
    assert (last.latitude, last.longitude) == (-33.9249, 18.4241)
    assert last.id > first.id
    assert last.resolved is False and last.resolution_note is None
    assert last.created_at.tzinfo is not None


def test_ids_keep_increasing_past_existing_ids(store):
    future_id = 99_999_999_999_999
    store.path.write_text(json.dumps([{
        "id": future_id, "category": "Crime", "description": "x", "location": "",
        "attachmentName": None, "latitude": 1, "longitude": 1,
        "createdAt": "2025-01-01T00:00:00+00:00", "resolved": False, "resolutionNote": None,
    }]))
    assert store.append(draft()).id == future_id + 1


def test_file_uses_external_field_names(store):
    store.append(draft(attachment_name="photo.jpg"))
    record = json.loads(store.path.read_text())[0]
    assert set(record) == {
        "id", "category", "description", "location", "attachmentName",
        "latitude", "longitude", "createdAt", "resolved", "resolutionNote",
    }
    assert record["attachmentName"] == "photo.jpg"
    assert list(store.path.parent.glob(".reports-*.tmp")) == []


def test_reads_records_from_first_app_version(store):
    store.path.write_text(json.dumps([{
        "id": 1700000000000, "category": "Outage", "description": "No power", "location": "Main St",
        "fileName": "grid.png", "timestamp": "2024-11-14T22:13:20.000Z",
        "latitude": 37.77, "longitude": -122.41,
        "resolved": True, "resolutionDescription": "Restored",
    }]))
    (report,) = store.list_all()
    assert report.attachment_name == "grid.png"
    assert report.resolution_note == "Restored"
    assert report.created_at.year == 2024


def test_filter_by_bounds_matches_brute_force(store):
    points = [(lat, lon) for lat in (-60, -10, 0, 10, 45) for lon in (-170, -20, 0, 20, 170)]
    for lat, lon in points:
        store.append(draft(lat=lat, lon=lon))

    south, west, north, east = -10, -20, 10, 20
    got = {(r.latitude, r.longitude) for r in store.filter_by_bounds(south, west, north, east)}
    expected = {(lat, lon) for lat, lon in points if south <= lat <= north and west <= lon <= east}
    assert got == expected
    assert (10, 20) in got  # edges are inclusive


def test_filter_handles_antimeridian(store):
    store.append(draft(lat=0, lon=175))
    store.append(draft(lat=0, lon=-175))
    store.append(draft(lat=0, lon=0))

    lons = sorted(r.longitude for r in store.filter_by_bounds(-10, 170, 10, -170))
    assert lons == [-175, 175]


def test_latitude_does_not_wrap(store):
    store.append(draft(lat=80, lon=0))
    assert store.filter_by_bounds(70, -10, 60, 10) == []


def test_resolve_unknown_id(store):
    store.append(draft())
    with pytest.raises(ReportNotFoundError):
        store.resolve(12345, "fixed")


def test_resolve_marks_report_and_is_visible_to_readers(store):
    report = store.append(draft())
    resolved = store.resolve(report.id, "Filled in by the city")

    assert resolved.resolved is True
    assert resolved.resolution_note == "Filled in by the city"
    assert (resolved.id, resolved.latitude, resolved.longitude) == (report.id, report.latitude, report.longitude)
    assert store.list_all()[0].resolved is True
    (in_box,) = store.filter_by_bounds(-34, 18, -33, 19)
    assert in_box.resolution_note == "Filled in by the city"


def test_resolve_twice_overwrites_note(store):
    report = store.append(draft())
    store.resolve(report.id, "first")
    again = store.resolve(report.id, "second")
    assert again.resolved is True
    assert store.list_all()[0].resolution_note == "second"


def test_concurrent_appends_lose_nothing(store):
    n = 32
    with ThreadPoolExecutor(max_workers=8) as pool:
        created = list(pool.map(lambda i: store.append(draft(description=f"report {i}")), range(n)))

    stored = store.list_all()
    assert len(stored) == n
    assert len({r.id for r in stored}) == n
    assert {r.id for r in stored} == {r.id for r in created}
    assert [r.id for r in stored] == sorted(r.id for r in stored)
