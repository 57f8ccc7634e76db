"""HTTP routers, one module per office area."""

from datetime import datetime, timezone

from fastapi import HTTPException
from pydantic import BaseModel


def get_or_404(repo, row_id: str, label: str):
    row = repo.get(row_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def apply_update(row, payload: BaseModel):
    """Copy the fields a PATCH body actually set onto `row`."""
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(row, key, value)
    row.updated_at = datetime.now(timezone.utc)
    return row
