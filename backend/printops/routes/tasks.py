"""Task API routes."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import OrganizationContext, get_organization_context
from ..database import get_db
from ..services import printer_state, tasks
from ..services.errors import (
    ConflictingAssignment,
    NotFoundError,
    PermissionDenied,
    TaskLifecycleError,
)

# purpose: expose task CRUD and the start/end work session lifecycle
# status: active
# depends_on: printops.services.tasks

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _http_error(db: Session, exc: Exception) -> HTTPException:
    db.rollback()
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionDenied):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ConflictingAssignment):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


@router.post("", response_model=schemas.TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: schemas.TaskCreate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        task, event = tasks.create_task(
            db, context.organization_id, context.user_id, payload, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(task)
    except (NotFoundError, PermissionDenied) as exc:
        raise _http_error(db, exc) from exc
    await tasks.broadcast_task_change(context.organization_id, event)
    return task


@router.get("", response_model=list[schemas.TaskOut])
def list_tasks(
    project_id: str | None = None,
    printer_id: UUID | None = None,
    assignee_id: UUID | None = None,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return tasks.list_tasks(
        db,
        context.organization_id,
        project_id=project_id,
        printer_id=printer_id,
        assignee_id=assignee_id,
    )


@router.get("/{task_id}", response_model=schemas.TaskOut)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        return printer_state.get_task(db, context.organization_id, task_id)
    except NotFoundError as exc:
        raise _http_error(db, exc) from exc


@router.put("/{task_id}", response_model=schemas.TaskOut)
async def update_task(
    task_id: int,
    payload: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        task, event = tasks.update_task(
            db, context.organization_id, context.user_id, task_id, payload, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(task)
    except (NotFoundError, PermissionDenied) as exc:
        raise _http_error(db, exc) from exc
    if event["changes"]:
        await tasks.broadcast_task_change(context.organization_id, event)
    return task


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        event = tasks.delete_task(db, context.organization_id, context.user_id, task_id, datetime.now(timezone.utc))
        db.commit()
    except NotFoundError as exc:
        raise _http_error(db, exc) from exc
    await tasks.broadcast_task_change(context.organization_id, event)
    return Response(status_code=204)


@router.post("/{task_id}/start", response_model=schemas.TaskLifecycleOut)
async def start_task(
    task_id: int,
    payload: schemas.TaskStartRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    printer_id = payload.printer_id if payload else None
    try:
        task, work_log, event = tasks.start_task(
            db,
            context.organization_id,
            context.user,
            task_id,
            datetime.now(timezone.utc),
            printer_id=printer_id,
        )
        db.commit()
        db.refresh(task)
        db.refresh(work_log)
    except (NotFoundError, PermissionDenied, ConflictingAssignment, TaskLifecycleError) as exc:
        raise _http_error(db, exc) from exc
    await tasks.broadcast_task_change(context.organization_id, event)
    return schemas.TaskLifecycleOut(
        task=schemas.TaskOut.model_validate(task),
        work_log=schemas.WorkActivityLogOut.model_validate(work_log),
    )


@router.post("/{task_id}/end", response_model=schemas.TaskLifecycleOut)
async def end_task(
    task_id: int,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        task, work_log, event = tasks.end_task(
            db, context.organization_id, context.user, task_id, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(task)
        db.refresh(work_log)
    except (NotFoundError, TaskLifecycleError) as exc:
        raise _http_error(db, exc) from exc
    await tasks.broadcast_task_change(context.organization_id, event)
    return schemas.TaskLifecycleOut(
        task=schemas.TaskOut.model_validate(task),
        work_log=schemas.WorkActivityLogOut.model_validate(work_log),
    )


@router.get("/{task_id}/work-logs", response_model=list[schemas.WorkActivityLogOut])
def list_work_logs(
    task_id: int,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        printer_state.get_task(db, context.organization_id, task_id)
    except NotFoundError as exc:
        raise _http_error(db, exc) from exc
    return (
        db.query(models.WorkActivityLog)
        .filter(models.WorkActivityLog.task_id == task_id)
        .order_by(models.WorkActivityLog.start.desc())
        .all()
    )
