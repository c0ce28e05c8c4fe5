from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import audit, schemas
from ..auth import OrganizationContext, get_organization_context
from ..database import get_db
from ..rbac import ensure_org_admin
from ..services import progress_rate, projects
from ..services.errors import DuplicateStage, NotFoundError

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _not_found(db: Session, exc: Exception) -> HTTPException:
    db.rollback()
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("", response_model=schemas.ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    project = projects.create_project(
        db, context.organization_id, context.user_id, payload, datetime.now(timezone.utc)
    )
    audit.log_action(db, context.user_id, "create_project", "project", project.id, commit=False)
    db.commit()
    db.refresh(project)
    return project


@router.get("", response_model=list[schemas.ProjectOut])
def list_projects(
    status_filter: str | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return projects.list_projects(db, context.organization_id, status_filter)


@router.get("/recent", response_model=list[schemas.ProjectOut])
def recent_projects(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return projects.recent_projects(db, context.organization_id)


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(
    project_id: str,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        return projects.get_project(db, context.organization_id, project_id)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc


@router.put("/{project_id}", response_model=schemas.ProjectOut)
def update_project(
    project_id: str,
    payload: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        project = projects.update_project(db, context.organization_id, project_id, payload)
        db.commit()
        db.refresh(project)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return project


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: str,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    try:
        projects.delete_project(db, context.organization_id, project_id, datetime.now(timezone.utc))
        audit.log_action(db, context.user_id, "delete_project", "project", project_id, commit=False)
        db.commit()
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return Response(status_code=204)


@router.get("/{project_id}/last-modified", response_model=schemas.ProjectLastModifiedOut)
def project_last_modified(
    project_id: str,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        return projects.last_modified(db, context.organization_id, project_id)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc


@router.get("/{project_id}/progress-rate", response_model=schemas.ProjectProgressRateOut)
def project_progress_rate(
    project_id: str,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        rate, stages = progress_rate.project_progress_rate(
            db, context.organization_id, project_id, datetime.now(timezone.utc)
        )
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return schemas.ProjectProgressRateOut(
        project_id=project_id,
        rate=rate,
        stages=[schemas.StageProgressOut.model_validate(stage) for stage in stages],
    )


@router.get("/{project_id}/progress-logs", response_model=list[schemas.ProgressLogOut])
def list_progress_logs(
    project_id: str,
    since: datetime | None = None,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        return projects.list_progress_logs(db, context.organization_id, project_id, since)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc


@router.post(
    "/{project_id}/progress-logs",
    response_model=schemas.ProgressLogOut,
    status_code=status.HTTP_201_CREATED,
)
def create_progress_log(
    project_id: str,
    payload: schemas.ProgressLogCreate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        log = projects.create_progress_log(
            db, context.organization_id, project_id, payload, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(log)
    except DuplicateStage as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return log


@router.put("/{project_id}/progress-logs/{log_id}", response_model=schemas.ProgressLogOut)
def update_progress_log(
    project_id: str,
    log_id: UUID,
    payload: schemas.ProgressLogUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        log = projects.update_progress_log(
            db, context.organization_id, project_id, log_id, payload, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(log)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return log


@router.post("/{project_id}/progress-logs/{log_id}/tasks", response_model=schemas.ProgressLogOut)
def link_progress_log_tasks(
    project_id: str,
    log_id: UUID,
    payload: schemas.ProgressLogTaskLink,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        log = projects.link_tasks(
            db, context.organization_id, project_id, log_id, payload.task_ids, datetime.now(timezone.utc)
        )
        db.commit()
        db.refresh(log)
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return log


@router.delete("/{project_id}/progress-logs/{log_id}", status_code=204)
def delete_progress_log(
    project_id: str,
    log_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    try:
        projects.delete_progress_log(db, context.organization_id, project_id, log_id, datetime.now(timezone.utc))
        db.commit()
    except NotFoundError as exc:
        raise _not_found(db, exc) from exc
    return Response(status_code=204)
