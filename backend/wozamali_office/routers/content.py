"""Hero slides, the rewards catalogue and reward redemption."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from .. import models, repositories, services
from ..auth import get_current_user
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_office_user
from ..schemas import HeroSlideIn, HeroSlideUpdateIn, RewardIn, RewardUpdateIn
from . import apply_update, get_or_404

router = APIRouter(tags=["content"])


@router.get("/api/hero-slides")
def public_hero_slides(db: Session = Depends(get_session)):
    """Active slides for the resident app's home screen."""
    return {"slides": repositories.HeroSlideRepository(db).list_active()}


@router.get("/api/admin/hero-slides")
def list_hero_slides(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    return {"slides": repositories.HeroSlideRepository(db).list()}


@router.post("/api/admin/hero-slides", status_code=201)
def create_hero_slide(payload: HeroSlideIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    if not payload.title.strip() or not payload.image_url.strip():
        raise HTTPException(status_code=400, detail="title and image_url are required")
    slide = repositories.HeroSlideRepository(db).create(models.HeroSlide(**payload.model_dump()))
    return {"slide": slide}


@router.patch("/api/admin/hero-slides/{slide_id}")
def update_hero_slide(slide_id: str, payload: HeroSlideUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.HeroSlideRepository(db)
    slide = apply_update(get_or_404(repo, slide_id, "slide"), payload)
    return {"slide": repo.save(slide)}


@router.delete("/api/admin/hero-slides/{slide_id}")
def delete_hero_slide(slide_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.HeroSlideRepository(db)
    repo.delete(get_or_404(repo, slide_id, "slide"))
    return {"success": True}


@router.get("/api/admin/rewards")
def list_rewards(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    return {"rewards": repositories.RewardRepository(db).list()}


@router.post("/api/admin/rewards", status_code=201)
def create_reward(payload: RewardIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="name required")
    reward = repositories.RewardRepository(db).create(models.Reward(**payload.model_dump()))
    return {"reward": reward}


@router.patch("/api/admin/rewards/{reward_id}")
def update_reward(reward_id: str, payload: RewardUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.RewardRepository(db)
    reward = apply_update(get_or_404(repo, reward_id, "reward"), payload)
    return {"reward": repo.save(reward)}


@router.delete("/api/admin/rewards/{reward_id}")
def delete_reward(reward_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.RewardRepository(db)
    repo.delete(get_or_404(repo, reward_id, "reward"))
    return {"success": True}


@router.post("/api/rewards/{reward_id}/redeem")
def redeem_reward(reward_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Spend the caller's points on a reward."""
    with service_errors():
        tx = services.WalletService(db).redeem_reward(user.id, reward_id)
    return {"success": True, "points_spent": -tx.points, "transaction": tx}
