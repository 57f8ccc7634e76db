"""Dashboard counters, the admin activity feed, CSV exports and export requests."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlmodel import Session

from .. import models, repositories, services
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_office_user
from ..schemas import ExportDecisionIn, ExportRequestIn
from ..utils.activity import activity_to_dict
from ..utils.export import export_filename, rows_to_csv

router = APIRouter(prefix="/api/admin", tags=["dashboard"])
logger = logging.getLogger("office.dashboard")


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Headline counters. Never fails the page: errors return zeros."""
    try:
        return services.DashboardService(db).stats()
    except Exception as e:
        logger.exception("dashboard_stats_failed")
        db.rollback()
        return {**services.ZERO_DASHBOARD, "error": str(e)}


@router.get("/activity")
def activity(limit: int = 100, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = [activity_to_dict(a) for a in repositories.ActivityRepository(db).list(limit=max(1, min(limit, 500)))]
    return {"activity": rows, "count": len(rows)}


@router.get("/export/{kind}")
def export(kind: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Download users, collections, withdrawals or transactions as CSV."""
    if kind not in services.EXPORT_COLUMNS:
        raise HTTPException(status_code=404, detail=f"unknown export: {kind}")
    rows = services.ExportService(db).rows(kind)
    body = rows_to_csv(rows, services.EXPORT_COLUMNS[kind])
    return _csv_response(body, export_filename(kind, datetime.now(timezone.utc)))


@router.post("/export-requests")
def create_export_request(payload: ExportRequestIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    svc = services.ExportRequestService(db)
    with service_errors():
        req = svc.create(user, payload.export_type, payload.report_title, payload.filename, payload.request_data)
    return {"request": svc.to_dict(req)}


@router.get("/export-requests")
def list_export_requests(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """The approval queue for managers; a requester's own history otherwise."""
    svc = services.ExportRequestService(db)
    return {"requests": svc.to_dicts(svc.list_for(user))}


@router.get("/export-requests/{request_id}")
def get_export_request(request_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    svc = services.ExportRequestService(db)
    with service_errors():
        req = svc.get(request_id)
    return {"request": svc.to_dict(req)}


@router.patch("/export-requests/{request_id}")
def decide_export_request(request_id: str, payload: ExportDecisionIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    svc = services.ExportRequestService(db)
    with service_errors():
        req = svc.decide(request_id, payload.status, payload.rejection_reason, actor=user)
    return {"request": svc.to_dict(req)}


@router.post("/export-requests/{request_id}/execute")
def execute_export_request(request_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Download the CSV an approved request grants, within its hour."""
    with service_errors():
        req, rows = services.ExportRequestService(db).execute(request_id, user)
    filename = req.filename if req.filename.endswith(".csv") else f"{req.filename}.csv"
    return _csv_response(rows_to_csv(rows, services.EXPORT_COLUMNS[req.export_type]), filename)
