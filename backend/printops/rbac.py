from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models
from .auth import OrganizationContext

# purpose: centralize organization role checks used by the routers
# status: active


def ensure_org_admin(context: OrganizationContext) -> None:
    if not context.user.is_admin:
        raise HTTPException(status_code=403, detail="Organization admin role required")


def get_member(db: Session, context: OrganizationContext, user_id: UUID) -> models.User:
    member = (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.organization_id == context.organization_id)
        .first()
    )
    if member is None:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


def ensure_not_last_admin(db: Session, context: OrganizationContext, member: models.User) -> None:
    """Reject changes that would leave the organization without an admin."""

    if not member.is_admin:
        return
    admins = (
        db.query(models.User)
        .filter(models.User.organization_id == context.organization_id, models.User.role == "admin")
        .count()
    )
    if admins <= 1:
        raise HTTPException(status_code=400, detail="An organization needs at least one admin")
