from uuid import UUID
from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import OrganizationContext, get_organization_context
from ..rbac import ensure_org_admin
from .. import models, schemas, audit

router = APIRouter(prefix="/api/audit", tags=["audit"])


def _member_ids(db: Session, context: OrganizationContext) -> list[UUID]:
    rows = db.query(models.User.id).filter(models.User.organization_id == context.organization_id).all()
    return [r[0] for r in rows]


@router.get("", response_model=list[schemas.AuditLogOut])
async def list_logs(
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    query = db.query(models.AuditLog)
    if user_id and user_id != context.user_id:
        ensure_org_admin(context)
        query = query.filter(models.AuditLog.user_id.in_(_member_ids(db, context)))
        query = query.filter(models.AuditLog.user_id == user_id)
    else:
        query = query.filter(models.AuditLog.user_id == context.user_id)
    return query.order_by(models.AuditLog.created_at.desc()).all()


@router.get("/report", response_model=list[schemas.AuditReportItem])
async def audit_report(
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    return audit.generate_report(db, start, end, _member_ids(db, context))
