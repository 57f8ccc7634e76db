"""Discover & Earn: community events and the card strip."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .. import models, repositories, services
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_office_user
from ..schemas import DiscoverCardIn, DiscoverCardUpdateIn, EventIn, EventUpdateIn
from . import apply_update, get_or_404

router = APIRouter(tags=["engagement"])
logger = logging.getLogger("office.engagement")

NO_STORE = "no-store, no-cache, must-revalidate, proxy-revalidate"


def _events(db: Session, response: Response, status: Optional[str], from_date: Optional[date], to_date: Optional[date]) -> dict:
    response.headers["Cache-Control"] = NO_STORE
    try:
        rows = services.CommunityEventService(db).list(status, from_date, to_date)
    except SQLAlchemyError as e:
        logger.exception("events_list_failed")
        return {"events": [], "count": 0, "error": str(e)}
    return {"events": rows, "count": len(rows)}


@router.get("/api/community-events")
def public_events(
    response: Response,
    status: str = "upcoming",
    from_date: Optional[date] = Query(default=None, alias="fromDate"),
    to_date: Optional[date] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_session),
):
    """Events for the resident app; upcoming ones unless `status` says otherwise."""
    return _events(db, response, status, from_date, to_date)


@router.get("/api/admin/community-events")
def list_events(
    response: Response,
    status: Optional[str] = None,
    from_date: Optional[date] = Query(default=None, alias="fromDate"),
    to_date: Optional[date] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_session),
    user: models.User = Depends(require_office_user),
):
    return _events(db, response, status, from_date, to_date)


@router.post("/api/admin/community-events", status_code=201)
def create_event(payload: EventIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        event = services.CommunityEventService(db).create(payload.model_dump(), actor=user)
    return {"event": event}


@router.patch("/api/admin/community-events/{event_id}")
def update_event(event_id: str, payload: EventUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        event = services.CommunityEventService(db).update(event_id, payload.model_dump(exclude_unset=True))
    return {"event": event}


@router.delete("/api/admin/community-events/{event_id}")
def delete_event(event_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        services.CommunityEventService(db).delete(event_id)
    return {"success": True}


@router.get("/api/admin/discover-earn")
def list_cards(response: Response, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    response.headers["Cache-Control"] = NO_STORE
    try:
        cards = repositories.DiscoverEarnRepository(db).list()
    except SQLAlchemyError as e:
        logger.exception("discover_cards_list_failed")
        return {"cards": [], "count": 0, "error": str(e)}
    return {"cards": cards, "count": len(cards)}


@router.post("/api/admin/discover-earn", status_code=201)
def upsert_card(payload: DiscoverCardIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Create the card for its `card_type`, replacing any existing one."""
    with service_errors():
        card = services.DiscoverEarnService(db).upsert(payload.model_dump())
    return {"card": card}


@router.patch("/api/admin/discover-earn/{card_id}")
def update_card(card_id: str, payload: DiscoverCardUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.DiscoverEarnRepository(db)
    card = apply_update(get_or_404(repo, card_id, "card"), payload)
    return {"card": repo.save(card)}


@router.delete("/api/admin/discover-earn/{card_id}")
def delete_card(card_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.DiscoverEarnRepository(db)
    repo.delete(get_or_404(repo, card_id, "card"))
    return {"success": True}
