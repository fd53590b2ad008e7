from __future__ import annotations
import logging, math
from pathlib import PurePath
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile

from packages.schemas.errors import PersistenceError, ReportNotFoundError, ReportValidationError
from packages.schemas.types import BoundingBox, ReportDraft
from ..data.store import ReportStore, get_store

log = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def _parse_bounds(south: Optional[str], west: Optional[str],
                  north: Optional[str], east: Optional[str]) -> Optional[BoundingBox]:
    """All four bounds as finite numbers, or None (caller falls back to the full list)."""
    values = []
    for raw in (south, west, north, east):
        if raw is None or not raw.strip():
            return None
        try:
            v = float(raw)
        except ValueError:
            return None
        if not math.isfinite(v):
            return None
        values.append(v)
    return BoundingBox(*values)


@router.get("")
def list_reports(
    south: Optional[str] = None,
    west: Optional[str] = None,
    north: Optional[str] = None,
    east: Optional[str] = None,
    store: ReportStore = Depends(get_store),
):
    box = _parse_bounds(south, west, north, east)
    try:
        reports = store.filter_by_bounds(*box) if box else store.list_all()
    except PersistenceError:
        log.exception("Failed to fetch reports")
        raise HTTPException(status_code=500, detail="Failed to fetch reports")
    return {"reports": [r.to_json() for r in reports]}


@router.post("")
def create_report(
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    store: ReportStore = Depends(get_store),
):
    # only the name is kept; file bytes are not stored
    attachment = PurePath(file.filename).name if file is not None and file.filename else None
    try:
        draft = ReportDraft.build(
            category=category,
            description=description,
            location=location,
            latitude=latitude,
            longitude=longitude,
            attachment_name=attachment,
        )
    except ReportValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid report: {e}")

    try:
        report = store.append(draft)
    except PersistenceError:
        log.exception("Report submission failed")
        raise HTTPException(status_code=500, detail="Failed to process report")
    return {"success": True, "report": report.to_json()}


@router.post("/{report_id}/resolve")
def resolve_report(
    report_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    store: ReportStore = Depends(get_store),
):
    """
    Body: { "resolutionNote": str? }   ("resolutionDescription" also accepted)
    """
    payload = payload or {}
    note = payload.get("resolutionNote", payload.get("resolutionDescription"))
    if note is not None and not isinstance(note, str):
        raise HTTPException(status_code=400, detail="resolutionNote must be a string")
    try:
        report = store.resolve(report_id, note)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found")
    except PersistenceError:
        log.exception("Failed to resolve report %s", report_id)
        raise HTTPException(status_code=500, detail="Failed to resolve report")
    return {"success": True, "report": report.to_json()}
