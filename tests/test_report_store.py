import pytest

from app.domain.report_schema import ReportStatus, ReportType
from app.models.reports import ReportUpdate
from app.services import report_store

from conftest import make_report


def test_create_forces_open_and_timestamps(fake_db):
    report = make_report(id="", status=ReportStatus.RESOLVED, created_at=0)
    stored = report_store.create_report(report)
    assert stored.id
    assert stored.status == ReportStatus.OPEN
    assert stored.created_at > 0
    doc = fake_db.docs()[stored.id]
    assert doc["status"] == "OPEN"
    assert doc["type"] == "LOST"


def test_found_report_needs_an_image(fake_db):
    with pytest.raises(report_store.ReportValidationError):
        report_store.create_report(make_report(id="f1", type=ReportType.FOUND, image_urls=[""]))
    assert fake_db.docs() == {}


def test_get_and_list(fake_db):
    report_store.create_report(make_report(id="a", created_at=1))
    report_store.create_report(make_report(id="b", created_at=3, reporter_id="u2"))
    report_store.create_report(make_report(id="c", type=ReportType.FOUND, image_urls=["http://img/c.jpg"], created_at=2))
    assert report_store.get_report("missing") is None
    assert report_store.get_report("a").title == "Black iPhone 13"
    assert [r.id for r in report_store.list_reports()] == ["b", "c", "a"]
    assert [r.id for r in report_store.list_reports(report_type=ReportType.LOST)] == ["b", "a"]
    assert [r.id for r in report_store.list_reports(reporter_id="u2")] == ["b"]
    assert [r.id for r in report_store.list_reports(limit=1)] == ["b"]


def test_list_skips_malformed_documents(fake_db):
    report_store.create_report(make_report(id="good"))
    fake_db.docs()["broken"] = {"type": "SOMETHING", "title": "x"}
    assert [r.id for r in report_store.list_reports()] == ["good"]


def test_update_by_owner(fake_db):
    report_store.create_report(make_report(id="a"))
    updated = report_store.update_report("a", "u1", ReportUpdate(title="Black iPhone 13 Pro"))
    assert updated.title == "Black iPhone 13 Pro"
    assert updated.status == ReportStatus.OPEN
    assert fake_db.docs()["a"]["title"] == "Black iPhone 13 Pro"


def test_update_rules(fake_db):
    report_store.create_report(make_report(id="f", type=ReportType.FOUND, image_urls=["http://img/f.jpg"]))
    with pytest.raises(report_store.ReportNotFound):
        report_store.update_report("nope", "u1", ReportUpdate(title="x"))
    with pytest.raises(report_store.ReportPermissionError):
        report_store.update_report("f", "intruder", ReportUpdate(title="x"))
    with pytest.raises(report_store.ReportValidationError):
        report_store.update_report("f", "u1", ReportUpdate(image_urls=[]))
    assert fake_db.docs()["f"]["image_urls"] == ["http://img/f.jpg"]


def test_resolve_is_one_way_and_idempotent(fake_db):
    report_store.create_report(make_report(id="a"))
    with pytest.raises(report_store.ReportPermissionError):
        report_store.resolve_report("a", "someone")
    resolved = report_store.resolve_report("a", "u1")
    assert resolved.status == ReportStatus.RESOLVED
    assert report_store.resolve_report("a", "u1").status == ReportStatus.RESOLVED
    assert fake_db.docs()["a"]["status"] == "RESOLVED"


def test_delete(fake_db):
    report_store.create_report(make_report(id="a"))
    with pytest.raises(report_store.ReportPermissionError):
        report_store.delete_report("a", "someone")
    report_store.delete_report("a", "u1")
    assert report_store.get_report("a") is None
    with pytest.raises(report_store.ReportNotFound):
        report_store.delete_report("a", "u1")
