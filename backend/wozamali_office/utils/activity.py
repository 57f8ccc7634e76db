"""Structured admin activity recording.

Office actions that move money or change access (approvals, deletions,
withdrawal decisions, role changes) are written to the `admin_activity`
table and echoed to the `office.activity` logger as a JSON line.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlmodel import Session

from .. import models, repositories

_LOGGER = logging.getLogger("office.activity")


def record_activity(
    session: Session,
    action: str,
    *,
    actor: Optional[models.User] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> models.AdminActivity:
    """Persist one activity row and log it."""
    payload = {
        "action": action,
        "actor_id": actor.id if actor else None,
        "actor_email": actor.email if actor else None,
        "target_type": target_type,
        "target_id": target_id,
        "details": details or {},
    }
    entry = models.AdminActivity(
        actor_id=payload["actor_id"],
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=json.dumps(payload["details"], ensure_ascii=True, default=str),
    )
    entry = repositories.ActivityRepository(session).add(entry)
    _LOGGER.info("admin_activity %s", json.dumps(payload, ensure_ascii=True, default=str))
    return entry


def activity_to_dict(entry: models.AdminActivity) -> dict:
    """Render a stored row with its `details` decoded."""
    try:
        details = json.loads(entry.details) if entry.details else {}
    except ValueError:
        details = {"raw": entry.details}
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "action": entry.action,
        "target_type": entry.target_type,
        "target_id": entry.target_id,
        "details": details,
        "created_at": entry.created_at,
    }
