from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import func
from . import models


def log_action(
    db: Session,
    user_id: str | UUID,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | int | None = None,
    details: dict | None = None,
    commit: bool = True,
):
    """Record an audit row.

    Pass ``commit=False`` to stage the row inside a caller-owned transaction.
    """
    log = models.AuditLog(
        user_id=UUID(str(user_id)),
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(log)
    if commit:
        db.commit()
        db.refresh(log)
    return log


def generate_report(
    db: Session,
    start: datetime,
    end: datetime,
    user_ids: list[UUID] | None = None,
):
    query = db.query(models.AuditLog).filter(
        models.AuditLog.created_at >= start,
        models.AuditLog.created_at <= end,
    )
    if user_ids is not None:
        query = query.filter(models.AuditLog.user_id.in_(user_ids))
    rows = (
        query.with_entities(models.AuditLog.action, func.count(models.AuditLog.id))
        .group_by(models.AuditLog.action)
        .all()
    )
    return [{"action": r[0], "count": r[1]} for r in rows]
