"""Task lifecycle: CRUD, start/end work sessions and change broadcasts."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, pubsub, schemas
from ..stages import Stage, is_completed
from .errors import MaterialNotFound, PermissionDenied, TaskLifecycleError
from .printer_state import assign_task, get_printer, get_task, release_task
from .projects import get_project

# purpose: mutate tasks inside an organization and describe every change as an event
# status: active
# depends_on: printops.services.printer_state, printops.pubsub

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
TASK_UPDATED = "task.updated"
TASK_DELETED = "task.deleted"
TASK_STARTED = "task.started"
TASK_ENDED = "task.ended"
TASK_RELEASED = "task.released"


def task_change_event(
    event_type: str,
    task_id: int,
    changes: dict[str, Any],
    changed_by: UUID | None,
    now: datetime,
) -> dict[str, Any]:
    return {
        "type": event_type,
        "task_id": task_id,
        "changes": changes,
        "changed_by": changed_by,
        "timestamp": now,
    }


async def broadcast_task_change(organization_id: UUID, event: dict[str, Any]) -> bool:
    """Publish ``event`` to the organization channel.

    Returns ``False`` when publishing failed; the mutation it describes is
    already committed and stays that way.
    """

    try:
        await pubsub.publish_organization_event(organization_id, event)
    except Exception:
        logger.exception("failed to broadcast %s for task %s", event.get("type"), event.get("task_id"))
        return False
    return True


def _diff(task: models.Task, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
    changes = {}
    for key, value in data.items():
        previous = getattr(task, key)
        if previous != value:
            changes[key] = {"from": previous, "to": value}
    return changes


def _check_material(db: Session, organization_id: UUID, material_id: UUID | None) -> None:
    if material_id is None:
        return
    found = (
        db.query(models.Material.id)
        .filter(models.Material.id == material_id, models.Material.organization_id == organization_id)
        .first()
    )
    if found is None:
        raise MaterialNotFound(f"material {material_id} not found")


def _set_assignees(db: Session, organization_id: UUID, task: models.Task, user_ids: list[UUID]) -> None:
    wanted = list(dict.fromkeys(user_ids))
    if wanted:
        members = {
            row.id
            for row in db.query(models.User.id).filter(
                models.User.id.in_(wanted), models.User.organization_id == organization_id
            )
        }
        missing = [str(u) for u in wanted if u not in members]
        if missing:
            raise PermissionDenied(f"users are not members of the organization: {', '.join(missing)}")
    existing = {a.user_id: a for a in task.assignees}
    task.assignees = [
        existing.get(user_id) or models.TaskAssignee(task_id=task.id, user_id=user_id) for user_id in wanted
    ]


def _touch_project(task: models.Task, now: datetime) -> None:
    task.project.tasks_last_modified_at = now


def _apply_status(task: models.Task, status: str | None, now: datetime) -> None:
    if status is None:
        return
    task.status = status
    if not is_completed(status):
        task.date_completed = None
    elif task.date_completed is None:
        task.date_completed = now.date()


def _bound_printer(db: Session, task: models.Task) -> models.Printer | None:
    if task.printer_id is None:
        return None
    return (
        db.query(models.Printer)
        .filter(models.Printer.id == task.printer_id, models.Printer.current_task_id == task.id)
        .with_for_update()
        .one_or_none()
    )


def list_tasks(
    db: Session,
    organization_id: UUID,
    project_id: str | None = None,
    printer_id: UUID | None = None,
    assignee_id: UUID | None = None,
) -> list[models.Task]:
    query = (
        db.query(models.Task)
        .join(models.Project, models.Task.project_id == models.Project.id)
        .filter(models.Project.organization_id == organization_id)
    )
    if project_id is not None:
        query = query.filter(models.Task.project_id == project_id)
    if printer_id is not None:
        query = query.filter(models.Task.printer_id == printer_id)
    if assignee_id is not None:
        query = query.join(models.TaskAssignee, models.TaskAssignee.task_id == models.Task.id).filter(
            models.TaskAssignee.user_id == assignee_id
        )
    return query.order_by(models.Task.created_at.desc(), models.Task.id.desc()).all()


def create_task(
    db: Session,
    organization_id: UUID,
    user_id: UUID,
    payload: schemas.TaskCreate,
    now: datetime,
) -> tuple[models.Task, dict[str, Any]]:
    project = get_project(db, organization_id, payload.project_id)
    _check_material(db, organization_id, payload.material_id)
    data = payload.model_dump(exclude={"assignee_ids", "status"})
    task = models.Task(created_by=user_id, created_at=now, updated_at=now, **data)
    task.project = project
    _apply_status(task, payload.status or Stage.PENDING.value, now)
    db.add(task)
    db.flush()
    _set_assignees(db, organization_id, task, payload.assignee_ids)
    _touch_project(task, now)
    db.flush()
    logger.info("task %s created in project %s", task.id, project.id)
    event = task_change_event(TASK_CREATED, task.id, {"status": {"from": None, "to": task.status}}, user_id, now)
    return task, event


def update_task(
    db: Session,
    organization_id: UUID,
    user_id: UUID,
    task_id: int,
    payload: schemas.TaskUpdate,
    now: datetime,
) -> tuple[models.Task, dict[str, Any]]:
    task = get_task(db, organization_id, task_id)
    data = payload.model_dump(exclude_unset=True)
    assignee_ids = data.pop("assignee_ids", None)
    status = data.pop("status", None)
    if "material_id" in data:
        _check_material(db, organization_id, data["material_id"])

    changes = _diff(task, data)
    if status is not None and status != task.status:
        changes["status"] = {"from": task.status, "to": status}
    for key, value in data.items():
        setattr(task, key, value)
    _apply_status(task, status, now)
    if assignee_ids is not None:
        before = sorted(str(u) for u in task.assignee_ids)
        _set_assignees(db, organization_id, task, assignee_ids)
        after = sorted(str(u) for u in dict.fromkeys(assignee_ids))
        if before != after:
            changes["assignee_ids"] = {"from": before, "to": after}
    task.updated_at = now
    _touch_project(task, now)
    db.flush()
    return task, task_change_event(TASK_UPDATED, task.id, changes, user_id, now)


def delete_task(
    db: Session,
    organization_id: UUID,
    user_id: UUID,
    task_id: int,
    now: datetime,
) -> dict[str, Any]:
    task = get_task(db, organization_id, task_id)
    printer = _bound_printer(db, task)
    if printer is not None:
        release_task(db, printer, now)
    db.query(models.WorkActivityLog).filter(models.WorkActivityLog.task_id == task.id).delete(
        synchronize_session=False
    )
    _touch_project(task, now)
    db.delete(task)
    db.flush()
    logger.info("task %s deleted", task_id)
    return task_change_event(TASK_DELETED, task_id, {}, user_id, now)


def open_work_log(db: Session, user_id: UUID, task_id: int | None = None) -> models.WorkActivityLog | None:
    query = db.query(models.WorkActivityLog).filter(
        models.WorkActivityLog.user_id == user_id,
        models.WorkActivityLog.end.is_(None),
    )
    if task_id is not None:
        query = query.filter(models.WorkActivityLog.task_id == task_id)
    return query.first()


def start_task(
    db: Session,
    organization_id: UUID,
    user: models.User,
    task_id: int,
    now: datetime,
    printer_id: UUID | None = None,
) -> tuple[models.Task, models.WorkActivityLog, dict[str, Any]]:
    """Open a work session on ``task_id`` for ``user``.

    Only assignees may start a task; admins are assigned on the fly. When
    ``printer_id`` is given the task is also bound to that printer.
    """

    task = get_task(db, organization_id, task_id)
    if is_completed(task.status):
        raise TaskLifecycleError(f"task {task_id} is already completed")
    if open_work_log(db, user.id) is not None:
        raise TaskLifecycleError("you already have an active task; end it before starting another")
    if user.id not in task.assignee_ids:
        if not user.is_admin:
            raise PermissionDenied(f"you are not assigned to task {task_id}")
        task.assignees.append(models.TaskAssignee(task_id=task.id, user_id=user.id))

    if printer_id is not None:
        printer = get_printer(db, organization_id, printer_id, for_update=True)
        assign_task(db, printer, task.id, now)

    work_log = models.WorkActivityLog(user_id=user.id, task_id=task.id, start=now)
    db.add(work_log)
    changes = {"status": {"from": task.status, "to": Stage.IN_PROGRESS.value}}
    task.status = Stage.IN_PROGRESS.value
    task.updated_at = now
    _touch_project(task, now)
    db.flush()
    logger.info("user %s started task %s", user.id, task.id)
    return task, work_log, task_change_event(TASK_STARTED, task.id, changes, user.id, now)


def end_task(
    db: Session,
    organization_id: UUID,
    user: models.User,
    task_id: int,
    now: datetime,
) -> tuple[models.Task, models.WorkActivityLog, dict[str, Any]]:
    """Close the caller's work session and hand the task over for review.

    A printer still holding the task releases it explicitly, which folds the
    bound time into its work minutes.
    """

    task = get_task(db, organization_id, task_id)
    work_log = open_work_log(db, user.id, task.id)
    if work_log is None:
        raise TaskLifecycleError(f"no active work log for task {task_id}")
    work_log.end = now

    printer = _bound_printer(db, task)
    if printer is not None:
        release_task(db, printer, now)

    changes = {"status": {"from": task.status, "to": Stage.IN_REVIEW.value}}
    task.status = Stage.IN_REVIEW.value
    task.updated_at = now
    _touch_project(task, now)
    db.flush()
    logger.info("user %s ended task %s", user.id, task.id)
    return task, work_log, task_change_event(TASK_ENDED, task.id, changes, user.id, now)
