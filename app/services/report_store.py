"""Firestore-backed report collection.

reports/{report_id} -> ItemReport fields

Invariants enforced here:
  - FOUND reports carry at least one image
  - status only moves OPEN -> RESOLVED, and only through resolve_report
  - only the reporter may update, delete or resolve
"""
from __future__ import annotations
from typing import Dict, List, Optional
import time
import uuid

from firebase_admin import firestore

from config import settings
from app.scripts.logging_config import get_logger
from app.domain.report_schema import ReportStatus, ReportType
from app.models.reports import ItemReport, ReportUpdate

logger = get_logger("report_store")

_db = None


def get_db():
    global _db
    if _db is None:
        _db = firestore.client()
    return _db


class ReportStoreError(Exception):
    pass


class ReportNotFound(ReportStoreError):
    pass


class ReportPermissionError(ReportStoreError):
    pass


class ReportValidationError(ReportStoreError):
    pass


def _collection():
    return get_db().collection(settings.REPORTS_COLLECTION)


def check_report_invariants(report: ItemReport) -> None:
    if report.type == ReportType.FOUND and not [u for u in report.image_urls if u]:
        raise ReportValidationError("found_report_requires_image")
    if not report.title.strip():
        raise ReportValidationError("empty_title")


def _to_doc(report: ItemReport) -> Dict:
    return report.model_dump(mode="json")


def _from_doc(doc_id: str, data: Dict) -> ItemReport:
    data = dict(data or {})
    data["id"] = doc_id
    return ItemReport.model_validate(data)


def _load_owned(report_id: str, user_id: str):
    ref = _collection().document(report_id)
    snap = ref.get()
    if not snap.exists:
        raise ReportNotFound(report_id)
    report = _from_doc(report_id, snap.to_dict())
    if report.reporter_id != user_id:
        logger.warning("report.permission_denied id=%s user=%s owner=%s", report_id, user_id, report.reporter_id)
        raise ReportPermissionError(report_id)
    return ref, report


def new_report_id() -> str:
    return uuid.uuid4().hex


def create_report(report: ItemReport) -> ItemReport:
    check_report_invariants(report)
    if not report.id:
        report = report.model_copy(update={"id": new_report_id()})
    if not report.created_at:
        report = report.model_copy(update={"created_at": int(time.time() * 1000)})
    report = report.model_copy(update={"status": ReportStatus.OPEN})
    _collection().document(report.id).set(_to_doc(report))
    logger.info("firestore.write op=set doc=%s/%s type=%s", settings.REPORTS_COLLECTION, report.id, report.type.value)
    return report


def get_report(report_id: str) -> Optional[ItemReport]:
    snap = _collection().document(report_id).get()
    if not snap.exists:
        return None
    return _from_doc(report_id, snap.to_dict())


def list_reports(report_type: Optional[ReportType] = None, status: Optional[ReportStatus] = None,
                 reporter_id: Optional[str] = None, limit: int = 200) -> List[ItemReport]:
    query = _collection()
    if report_type is not None:
        query = query.where("type", "==", report_type.value)
    if status is not None:
        query = query.where("status", "==", status.value)
    if reporter_id:
        query = query.where("reporter_id", "==", reporter_id)
    reports: List[ItemReport] = []
    for doc in query.stream():
        try:
            reports.append(_from_doc(doc.id, doc.to_dict()))
        except ValueError as e:
            logger.warning("report.skip_invalid id=%s err=%s", doc.id, e)
    reports.sort(key=lambda r: r.created_at, reverse=True)
    return reports[:limit]


def update_report(report_id: str, user_id: str, changes: ReportUpdate) -> ItemReport:
    ref, current = _load_owned(report_id, user_id)
    patch = changes.model_dump(exclude_unset=True)
    updated = current.model_copy(update=patch)
    updated = ItemReport.model_validate(updated.model_dump())
    check_report_invariants(updated)
    ref.set(_to_doc(updated))
    logger.info("firestore.write op=update doc=%s/%s fields=%s", settings.REPORTS_COLLECTION, report_id, sorted(patch))
    return updated


def delete_report(report_id: str, user_id: str) -> None:
    ref, _ = _load_owned(report_id, user_id)
    ref.delete()
    logger.info("firestore.write op=delete doc=%s/%s", settings.REPORTS_COLLECTION, report_id)


def resolve_report(report_id: str, user_id: str) -> ItemReport:
    ref, current = _load_owned(report_id, user_id)
    if current.status == ReportStatus.RESOLVED:
        return current
    resolved = current.model_copy(update={"status": ReportStatus.RESOLVED})
    ref.update({"status": ReportStatus.RESOLVED.value})
    logger.info("report.resolved id=%s user=%s", report_id, user_id)
    return resolved
