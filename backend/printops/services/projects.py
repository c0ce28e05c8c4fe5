"""Project and progress-log services."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..stages import Stage, same_stage
from .errors import DuplicateStage, ProgressLogNotFound, ProjectNotFound, TaskNotFound
from .printer_state import as_utc, release_task

# purpose: own project identifiers, stage history and write-through bookkeeping stamps
# status: active
# depends_on: printops.models.Project, printops.models.ProgressLog

logger = logging.getLogger(__name__)

PROJECT_ID_PREFIX = "PRJ"
RECENT_PROJECT_LIMIT = 3
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def next_project_id(db: Session, now: datetime) -> str:
    """Return the next ``PRJ-<year>-<seq>`` identifier for the year of ``now``."""

    prefix = f"{PROJECT_ID_PREFIX}-{now.year}-"
    existing = db.query(models.Project.id).filter(models.Project.id.like(f"{prefix}%")).all()
    highest = 0
    for (project_id,) in existing:
        suffix = project_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"


def get_project(db: Session, organization_id: UUID, project_id: str) -> models.Project:
    project = (
        db.query(models.Project)
        .filter(models.Project.id == project_id, models.Project.organization_id == organization_id)
        .one_or_none()
    )
    if project is None:
        raise ProjectNotFound(f"project {project_id} not found")
    return project


def list_projects(db: Session, organization_id: UUID, status: str | None = None) -> list[models.Project]:
    query = db.query(models.Project).filter(models.Project.organization_id == organization_id)
    projects = query.order_by(models.Project.created_at.desc()).all()
    if status is not None:
        projects = [p for p in projects if same_stage(p.status, status)]
    return projects


def create_project(
    db: Session,
    organization_id: UUID,
    user_id: UUID,
    payload: schemas.ProjectCreate,
    now: datetime,
) -> models.Project:
    data = payload.model_dump(exclude_unset=True)
    data["status"] = data.get("status") or Stage.PENDING.value
    project = models.Project(
        id=next_project_id(db, now),
        organization_id=organization_id,
        created_by=user_id,
        created_at=now,
        updated_at=now,
        **data,
    )
    db.add(project)
    db.flush()
    logger.info("project %s created in organization %s", project.id, organization_id)
    return project


def update_project(
    db: Session,
    organization_id: UUID,
    project_id: str,
    payload: schemas.ProjectUpdate,
) -> models.Project:
    project = get_project(db, organization_id, project_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(project, key, value)
    db.flush()
    return project


def delete_project(db: Session, organization_id: UUID, project_id: str, now: datetime) -> None:
    project = get_project(db, organization_id, project_id)
    task_ids = [task.id for task in project.tasks]
    if task_ids:
        # printers must not keep pointing at tasks that disappear
        bound = (
            db.query(models.Printer)
            .filter(models.Printer.current_task_id.in_(task_ids))
            .with_for_update()
            .all()
        )
        for printer in bound:
            release_task(db, printer, now)
        db.query(models.WorkActivityLog).filter(models.WorkActivityLog.task_id.in_(task_ids)).delete(
            synchronize_session=False
        )
    db.delete(project)
    db.flush()
    logger.info("project %s deleted", project_id)


def _activity_key(project: models.Project) -> datetime:
    stamps = [as_utc(project.updated_at), as_utc(project.progress_log_last_modified_at)]
    return max((s for s in stamps if s is not None), default=_EPOCH)


def recent_projects(db: Session, organization_id: UUID, limit: int = RECENT_PROJECT_LIMIT) -> list[models.Project]:
    """Projects ordered by their latest edit or progress-log change."""

    projects = db.query(models.Project).filter(models.Project.organization_id == organization_id).all()
    projects.sort(key=_activity_key, reverse=True)
    return projects[:limit]


def last_modified(db: Session, organization_id: UUID, project_id: str) -> schemas.ProjectLastModifiedOut:
    project = get_project(db, organization_id, project_id)
    return schemas.ProjectLastModifiedOut(
        project_id=project.id,
        updated_at=project.updated_at,
        progress_log_last_modified_at=project.progress_log_last_modified_at,
        tasks_last_modified_at=project.tasks_last_modified_at,
    )


def _resolve_tasks(db: Session, organization_id: UUID, task_ids: Iterable[int]) -> list[models.Task]:
    wanted = list(dict.fromkeys(task_ids))
    if not wanted:
        return []
    tasks = (
        db.query(models.Task)
        .join(models.Project, models.Task.project_id == models.Project.id)
        .filter(models.Task.id.in_(wanted), models.Project.organization_id == organization_id)
        .all()
    )
    found = {task.id for task in tasks}
    missing = [task_id for task_id in wanted if task_id not in found]
    if missing:
        raise TaskNotFound(f"tasks not found: {', '.join(str(m) for m in missing)}")
    return tasks


def get_progress_log(db: Session, organization_id: UUID, project_id: str, log_id: UUID) -> models.ProgressLog:
    get_project(db, organization_id, project_id)
    log = (
        db.query(models.ProgressLog)
        .filter(models.ProgressLog.id == log_id, models.ProgressLog.project_id == project_id)
        .one_or_none()
    )
    if log is None:
        raise ProgressLogNotFound(f"progress log {log_id} not found")
    return log


def list_progress_logs(
    db: Session,
    organization_id: UUID,
    project_id: str,
    since: datetime | None = None,
) -> list[models.ProgressLog]:
    get_project(db, organization_id, project_id)
    query = db.query(models.ProgressLog).filter(models.ProgressLog.project_id == project_id)
    if since is not None:
        query = query.filter(models.ProgressLog.updated_at >= as_utc(since).astimezone(timezone.utc))
    return query.order_by(models.ProgressLog.start_date).all()


def create_progress_log(
    db: Session,
    organization_id: UUID,
    project_id: str,
    payload: schemas.ProgressLogCreate,
    now: datetime,
) -> models.ProgressLog:
    """Record a new stage for the project and move the project into it."""

    project = get_project(db, organization_id, project_id)
    if same_stage(project.status, payload.status):
        raise DuplicateStage(f"project {project_id} is already in stage {payload.status!r}")

    log = models.ProgressLog(
        project_id=project.id,
        status=payload.status,
        description=payload.description,
        issue=payload.issue,
        start_date=payload.start_date,
        due_date=payload.due_date,
        is_completed=payload.is_completed,
        completed_at=now if payload.is_completed else None,
        created_at=now,
        updated_at=now,
    )
    log.tasks = _resolve_tasks(db, organization_id, payload.task_ids)
    db.add(log)
    project.status = payload.status
    project.progress_log_last_modified_at = now
    db.flush()
    logger.info("project %s entered stage %s", project.id, payload.status)
    return log


def update_progress_log(
    db: Session,
    organization_id: UUID,
    project_id: str,
    log_id: UUID,
    payload: schemas.ProgressLogUpdate,
    now: datetime,
) -> models.ProgressLog:
    log = get_progress_log(db, organization_id, project_id, log_id)
    data = payload.model_dump(exclude_unset=True)
    task_ids = data.pop("task_ids", None)
    if data.get("is_completed") and not log.is_completed:
        log.completed_at = now
    elif data.get("is_completed") is False:
        log.completed_at = None
    for key, value in data.items():
        setattr(log, key, value)
    if task_ids is not None:
        log.tasks = _resolve_tasks(db, organization_id, task_ids)
    log.updated_at = now
    log.project.progress_log_last_modified_at = now
    db.flush()
    return log


def link_tasks(
    db: Session,
    organization_id: UUID,
    project_id: str,
    log_id: UUID,
    task_ids: Iterable[int],
    now: datetime,
) -> models.ProgressLog:
    """Add tasks to a progress log, keeping links that already exist."""

    log = get_progress_log(db, organization_id, project_id, log_id)
    current = {task.id for task in log.tasks}
    for task in _resolve_tasks(db, organization_id, task_ids):
        if task.id not in current:
            log.tasks.append(task)
    log.updated_at = now
    log.project.progress_log_last_modified_at = now
    db.flush()
    return log


def delete_progress_log(db: Session, organization_id: UUID, project_id: str, log_id: UUID, now: datetime) -> None:
    log = get_progress_log(db, organization_id, project_id, log_id)
    project = log.project
    db.delete(log)
    project.progress_log_last_modified_at = now
    db.flush()
