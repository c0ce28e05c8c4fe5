"""Printer fleet API routes."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..auth import OrganizationContext, get_organization_context
from ..database import get_db
from ..rbac import ensure_org_admin
from ..services import printer_state, tasks
from ..services.errors import ConflictingAssignment, InvalidTransition, NotFoundError
from ..stages import Stage

# purpose: expose printer CRUD plus the status and task binding transitions
# status: active
# depends_on: printops.services.printer_state

router = APIRouter(prefix="/api/printers", tags=["printers"])


def _release_out(release: printer_state.TaskRelease | None) -> schemas.TaskReleaseOut | None:
    if release is None:
        return None
    return schemas.TaskReleaseOut(
        kind=release.kind.value,
        task_id=release.task_id,
        released_at=release.released_at,
        folded_minutes=release.folded_minutes,
    )


def _transition_out(printer: models.Printer, release: printer_state.TaskRelease | None) -> schemas.PrinterTransitionOut:
    return schemas.PrinterTransitionOut(
        printer=schemas.PrinterOut.model_validate(printer),
        release=_release_out(release),
    )


def _release_event(release: printer_state.TaskRelease, printer_id: UUID, context: OrganizationContext) -> dict:
    changes = {
        "release": release.kind.value,
        "actual_production_end_time": {"from": None, "to": release.released_at},
    }
    if release.kind is printer_state.ReleaseKind.FORCED_ON_STATUS_CHANGE:
        changes["status"] = {"from": release.previous_status, "to": Stage.PAUSED.value}
        changes["printer_id"] = {"from": printer_id, "to": None}
    return tasks.task_change_event(
        tasks.TASK_RELEASED, release.task_id, changes, context.user_id, release.released_at
    )


def _get_printer(db: Session, context: OrganizationContext, printer_id: UUID, *, for_update: bool = False):
    try:
        return printer_state.get_printer(db, context.organization_id, printer_id, for_update=for_update)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("", response_model=schemas.PrinterOut, status_code=status.HTTP_201_CREATED)
def create_printer(
    payload: schemas.PrinterCreate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    now = datetime.now(timezone.utc)
    printer = models.Printer(
        organization_id=context.organization_id,
        status_last_updated_at=now,
        created_at=now,
        updated_at=now,
        **payload.model_dump(exclude={"status"}),
        status=payload.status.value,
    )
    db.add(printer)
    db.flush()
    audit.log_action(db, context.user_id, "create_printer", "printer", printer.id, commit=False)
    db.commit()
    db.refresh(printer)
    return printer


@router.get("", response_model=list[schemas.PrinterOut])
def list_printers(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return (
        db.query(models.Printer)
        .filter(models.Printer.organization_id == context.organization_id)
        .order_by(models.Printer.created_at.desc())
        .all()
    )


@router.get("/{printer_id}", response_model=schemas.PrinterOut)
def get_printer(
    printer_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return _get_printer(db, context, printer_id)


@router.patch("/{printer_id}", response_model=schemas.PrinterTransitionOut)
async def update_printer(
    printer_id: UUID,
    payload: schemas.PrinterUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    printer = _get_printer(db, context, printer_id, for_update=True)
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    new_status = data.pop("status", None)
    release = None
    try:
        for key, value in data.items():
            setattr(printer, key, value)
        if new_status is not None:
            previous = printer.status
            release = printer_state.change_printer_status(db, printer, new_status, datetime.now(timezone.utc))
            audit.log_action(
                db,
                context.user_id,
                "printer_status",
                "printer",
                printer.id,
                {"from": previous, "to": printer.status},
                commit=False,
            )
        db.commit()
        db.refresh(printer)
    except InvalidTransition as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if release is not None:
        await tasks.broadcast_task_change(context.organization_id, _release_event(release, printer.id, context))
    return _transition_out(printer, release)


@router.put("/{printer_id}/status", response_model=schemas.PrinterTransitionOut)
async def change_printer_status(
    printer_id: UUID,
    payload: schemas.PrinterStatusUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    printer = _get_printer(db, context, printer_id, for_update=True)
    previous = printer.status
    try:
        release = printer_state.change_printer_status(db, printer, payload.status, datetime.now(timezone.utc))
        audit.log_action(
            db,
            context.user_id,
            "printer_status",
            "printer",
            printer.id,
            {"from": previous, "to": payload.status.value},
            commit=False,
        )
        db.commit()
        db.refresh(printer)
    except InvalidTransition as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if release is not None:
        await tasks.broadcast_task_change(context.organization_id, _release_event(release, printer.id, context))
    return _transition_out(printer, release)


@router.put("/{printer_id}/task", response_model=schemas.PrinterTransitionOut)
async def assign_printer_task(
    printer_id: UUID,
    payload: schemas.PrinterTaskAssign,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    printer = _get_printer(db, context, printer_id, for_update=True)
    now = datetime.now(timezone.utc)
    try:
        release = printer_state.assign_task(db, printer, payload.task_id, now)
        audit.log_action(
            db,
            context.user_id,
            "printer_task",
            "printer",
            printer.id,
            {"task_id": payload.task_id},
            commit=False,
        )
        db.commit()
        db.refresh(printer)
    except NotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConflictingAssignment as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if release is not None:
        await tasks.broadcast_task_change(context.organization_id, _release_event(release, printer.id, context))
    elif payload.task_id is not None:
        event = tasks.task_change_event(
            tasks.TASK_UPDATED,
            payload.task_id,
            {"printer_id": {"from": None, "to": printer.id}},
            context.user_id,
            now,
        )
        await tasks.broadcast_task_change(context.organization_id, event)
    return _transition_out(printer, release)


@router.delete("/{printer_id}")
def delete_printer(
    printer_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    printer = _get_printer(db, context, printer_id, for_update=True)
    printer_state.release_task(db, printer, datetime.now(timezone.utc))
    db.query(models.Task).filter(models.Task.printer_id == printer.id).update(
        {models.Task.printer_id: None}, synchronize_session="fetch"
    )
    audit.log_action(db, context.user_id, "delete_printer", "printer", printer.id, commit=False)
    db.delete(printer)
    db.commit()
    return {"success": True}
