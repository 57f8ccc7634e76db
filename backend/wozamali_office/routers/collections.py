"""Materials, collector submissions and collection review endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .. import models, repositories, services
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_collector, require_office_user, require_super_admin
from ..schemas import CollectionIdIn, CollectionIn, CollectionStatusIn, MaterialIn, MaterialUpdateIn

router = APIRouter(tags=["collections"])


@router.get("/api/admin/materials")
def list_materials(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    return {"materials": repositories.MaterialRepository(db).list()}


@router.post("/api/admin/materials", status_code=201)
def create_material(payload: MaterialIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.MaterialRepository(db)
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name required")
    if repo.get_by_name(name):
        raise HTTPException(status_code=409, detail="material already exists")
    material = repo.create(models.Material(name=name, current_rate=payload.current_rate, category=payload.category))
    return {"material": material}


@router.patch("/api/admin/materials/{material_id}")
def update_material(material_id: str, payload: MaterialUpdateIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    repo = repositories.MaterialRepository(db)
    material = repo.get(material_id)
    if not material:
        raise HTTPException(status_code=404, detail="material not found")
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(material, key, value)
    return {"material": repo.save(material)}


@router.post("/api/collector/collections", status_code=201)
def submit_collection(payload: CollectionIn, db: Session = Depends(get_session), user: models.User = Depends(require_collector)):
    """Record a pickup; value and weight are computed from the material lines."""
    with service_errors():
        collection = services.CollectionService(db).submit(
            payload.customer_id,
            [line.model_dump() for line in payload.materials],
            collector=user,
            notes=payload.notes,
            photo_urls=payload.photo_urls,
        )
    return {"success": True, "collection": collection}


@router.get("/api/admin/pickups")
def list_pickups(status: Optional[str] = "all", db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.CollectionService(db).list(status)
    return {"pickups": rows, "count": len(rows)}


@router.patch("/api/admin/collections/{collection_id}")
def update_collection(collection_id: str, payload: CollectionStatusIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Approve, reject or reopen a collection.

    Approval credits the customer's wallet once and feeds the PET share to
    the Green Scholar Fund.
    """
    with service_errors():
        return services.CollectionService(db).update_status(collection_id, payload.status, payload.admin_notes, actor=user)


@router.post("/api/admin/delete-collection")
def delete_collection(payload: CollectionIdIn, db: Session = Depends(get_session), user: models.User = Depends(require_super_admin)):
    with service_errors():
        result = services.CollectionService(db).delete(payload.collection_id, actor=user)
    if not result["ok"]:
        return JSONResponse(status_code=409, content=result)
    return result
