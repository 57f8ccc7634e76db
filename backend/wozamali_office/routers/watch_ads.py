"""Watch-ads endpoints: the video catalogue, watch tracking and stats."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from .. import models, repositories, services
from ..auth import get_current_user
from ..database import get_session
from ..errors import service_errors
from ..permissions import is_office_user, require_office_user
from ..schemas import VideoIn, VideoUpdateIn, WatchProgressIn, WatchStartIn
from . import apply_update, get_or_404

router = APIRouter(tags=["watch-ads"])


def _ensure_self_or_office(user: models.User, user_id: str) -> None:
    if user.id != user_id and not is_office_user(user):
        raise HTTPException(status_code=403, detail="cannot act for another user")


@router.get("/api/watch-ads/videos")
def list_videos(user_id: Optional[str] = Query(default=None, alias="userId"), admin: bool = False, db: Session = Depends(get_session)):
    """Active videos in display order, or every video when `admin=true`.

    With `userId` each video reports whether that user may watch it today.
    """
    rows = services.WatchAdsService(db).list_videos(user_id=user_id, admin_view=admin)
    return {"videos": rows, "count": len(rows)}


@router.post("/api/admin/watch-ads", status_code=201)
def create_video(payload: VideoIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    if not payload.title.strip() or not payload.video_url.strip():
        raise HTTPException(status_code=400, detail="title and video_url are required")
    video = repositories.WatchAdsRepository(db).create(models.WatchAdsVideo(**payload.model_dump()))
    return {"video": video}


@router.patch("/api/admin/watch-ads/{video_id}")
def update_video(video_id: str, payload: VideoUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.WatchAdsRepository(db)
    video = apply_update(get_or_404(repo, video_id, "video"), payload)
    return {"video": repo.save(video)}


@router.delete("/api/admin/watch-ads/{video_id}")
def delete_video(video_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.WatchAdsRepository(db)
    video = get_or_404(repo, video_id, "video")
    if repo.count_watches_for_video(video.id):
        # Watch history keeps its video; retire it instead.
        video.is_active = False
        repo.save(video)
        return {"success": True, "deactivated": True}
    repo.delete(video)
    return {"success": True, "deactivated": False}


@router.post("/api/watch-ads/track", status_code=201)
def start_watch(payload: WatchStartIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    _ensure_self_or_office(user, payload.user_id)
    with service_errors():
        watch = services.WatchAdsService(db).start_watch(
            payload.user_id, payload.video_id, ip_address=payload.ip_address, user_agent=payload.user_agent,
        )
    return {"watch": watch}


@router.put("/api/watch-ads/track")
def update_watch(payload: WatchProgressIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Store watch progress; a completed qualifying watch earns its credits once."""
    watch = repositories.WatchAdsRepository(db).get_watch(payload.watch_id)
    if not watch:
        raise HTTPException(status_code=404, detail="watch not found")
    _ensure_self_or_office(user, watch.user_id)
    with service_errors():
        return services.WatchAdsService(db).update_progress(
            payload.watch_id, payload.watch_duration_seconds, payload.watch_percentage, payload.is_completed,
        )


@router.get("/api/watch-ads/track")
def watch_history(user_id: str = Query(alias="userId"), db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    _ensure_self_or_office(user, user_id)
    rows = services.WatchAdsService(db).history(user_id)
    return {"watches": rows, "count": len(rows)}


@router.get("/api/watch-ads/stats")
def watch_stats(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    return services.WatchAdsService(db).stats()
