"""Green Scholar Fund endpoints.

Public: donations and bursary applications. Authenticated: scholar
summaries. Office roles: PET contributions, fund overview, scholars,
disbursements and application review.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_office_user
from ..schemas import ApplicationIn, ApplicationReviewIn, CollectionIdIn, DisbursementIn, DonationIn, ScholarIn

router = APIRouter(tags=["green-scholar"])


@router.post("/api/green-scholar/pet-bottles-contribution")
def pet_bottles_contribution(payload: CollectionIdIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Record the PET share of a collection in the fund (idempotent)."""
    with service_errors():
        return services.GreenScholarService(db).process_pet_contribution(payload.collection_id, actor=user)


@router.get("/api/green-scholar/{scholar_id}/summary")
def scholar_summary(scholar_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.GreenScholarService(db).summary(scholar_id)


@router.post("/api/green-scholar/donations", status_code=201)
def donate(payload: DonationIn, db: Session = Depends(get_session)):
    with service_errors():
        tx = services.GreenScholarService(db).donate(
            payload.amount, donor_name=payload.donor_name, donor_email=payload.donor_email, description=payload.description,
        )
    return {"success": True, "donation": tx}


@router.post("/api/green-scholar/applications", status_code=201)
def submit_application(payload: ApplicationIn, db: Session = Depends(get_session)):
    with service_errors():
        application = services.GreenScholarService(db).submit_application(**payload.model_dump())
    return {"success": True, "application": application}


@router.get("/api/admin/green-scholar/overview")
def fund_overview(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    return services.GreenScholarService(db).overview()


@router.get("/api/admin/green-scholar/scholars")
def list_scholars(school: Optional[str] = None, grade: Optional[str] = None, region: Optional[str] = None,
                  db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.GreenScholarService(db).list_scholars(school=school, grade=grade, region=region)
    return {"scholars": rows, "count": len(rows)}


@router.post("/api/admin/green-scholar/scholars", status_code=201)
def add_scholar(payload: ScholarIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        scholar = services.GreenScholarService(db).add_scholar(**payload.model_dump())
    return {"success": True, "scholar": scholar}


@router.get("/api/admin/green-scholar/disbursements")
def list_disbursements(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.GreenScholarService(db).list_disbursements()
    return {"disbursements": rows, "count": len(rows)}


@router.post("/api/admin/green-scholar/disbursements", status_code=201)
def add_disbursement(payload: DisbursementIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Pay out of the fund to a scholar; the amount may not exceed the remaining balance."""
    svc = services.GreenScholarService(db)
    with service_errors():
        tx = svc.add_disbursement(payload.scholar_id, payload.amount, payload.purpose, actor=user)
    return {"success": True, "disbursement": tx, "remainingBalance": svc.overview()["remainingBalance"]}


@router.get("/api/admin/green-scholar-applications")
def list_applications(status: Optional[str] = None, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.GreenScholarService(db).list_applications(status)
    return {"applications": rows, "count": len(rows)}


@router.patch("/api/admin/green-scholar-applications/{application_id}")
def review_application(application_id: str, payload: ApplicationReviewIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        application = services.GreenScholarService(db).review_application(
            application_id, payload.status, payload.review_notes, actor=user,
        )
    return {"success": True, "application": application}
