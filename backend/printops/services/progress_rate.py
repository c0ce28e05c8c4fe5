"""Schedule adherence of projects, measured per progress stage."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from .. import models
from ..stages import is_completed
from .errors import ProjectNotFound

# purpose: compare elapsed-time expectation with task completion for each progress log
# status: active
# inputs: progress logs with start/due dates, linked task statuses, evaluation instant
# outputs: rates in [0, 1] per stage, per project and per organization

PROJECT_RATE_PRECISION = int(os.getenv("PROJECT_RATE_PRECISION", "4"))
ORGANIZATION_RATE_PRECISION = int(os.getenv("ORGANIZATION_RATE_PRECISION", "2"))


@dataclass(frozen=True)
class StageProgress:
    progress_log_id: Any
    status: str
    expected: float
    actual: float
    rate: float


def _instant(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def expected_progress(start: date | datetime, due: date | datetime, now: datetime) -> float:
    """Fraction of the stage window that has elapsed at ``now``.

    A zero-length window is fully expected immediately.
    """

    start_at, due_at, now_at = _instant(start), _instant(due), _instant(now)
    total = (due_at - start_at).total_seconds()
    if total <= 0:
        return 1.0
    passed = min(max((now_at - start_at).total_seconds(), 0.0), total)
    return min(passed / total, 1.0)


def actual_progress(task_statuses: Sequence[str | None], log_completed: bool) -> float:
    if task_statuses:
        done = sum(1 for status in task_statuses if is_completed(status))
        return done / len(task_statuses)
    return 1.0 if log_completed else 0.0


def evaluate_progress_log(log: Any, tasks: Iterable[Any], now: datetime) -> StageProgress | None:
    """Return the stage progress of ``log`` or ``None`` when its window is invalid."""

    start, due = _instant(log.start_date), _instant(log.due_date)
    if start is None or due is None or start >= due:
        return None
    expected = expected_progress(start, due, now)
    actual = actual_progress([task.status for task in tasks], bool(log.is_completed))
    rate = 0.0 if expected == 0 else min(actual / expected, 1.0)
    return StageProgress(
        progress_log_id=getattr(log, "id", None),
        status=getattr(log, "status", ""),
        expected=expected,
        actual=actual,
        rate=rate,
    )


def mean_rate(rates: Sequence[float]) -> float:
    if not rates:
        return 0.0
    return sum(rates) / len(rates)


def evaluate_project(project: models.Project, now: datetime) -> list[StageProgress]:
    stages: list[StageProgress] = []
    for log in project.progress_logs or []:
        # only the project's own tasks count towards its stages
        tasks = [task for task in log.tasks if task.project_id == project.id]
        stage = evaluate_progress_log(log, tasks, now)
        if stage is not None:
            stages.append(stage)
    return stages


def _load_projects(db: Session, organization_id: UUID, project_id: str | None = None) -> list[models.Project]:
    query = (
        db.query(models.Project)
        .options(selectinload(models.Project.progress_logs).selectinload(models.ProgressLog.tasks))
        .filter(models.Project.organization_id == organization_id)
    )
    if project_id is not None:
        query = query.filter(models.Project.id == project_id)
    return query.all()


def project_progress_rate(
    db: Session,
    organization_id: UUID,
    project_id: str,
    now: datetime,
    precision: int = PROJECT_RATE_PRECISION,
) -> tuple[float, list[StageProgress]]:
    projects = _load_projects(db, organization_id, project_id)
    if not projects:
        raise ProjectNotFound(f"project {project_id} not found")
    stages = evaluate_project(projects[0], now)
    return round(mean_rate([s.rate for s in stages]), precision), stages


def organization_progress_rate(
    db: Session,
    organization_id: UUID,
    now: datetime,
    precision: int = ORGANIZATION_RATE_PRECISION,
) -> float:
    """Mean of the unrounded project rates across the organization."""

    projects = _load_projects(db, organization_id)
    if not projects:
        return 0.0
    project_rates = [mean_rate([s.rate for s in evaluate_project(p, now)]) for p in projects]
    return round(mean_rate(project_rates), precision)
