"""Printer status and task binding state machine."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models
from ..stages import PrinterStatus, Stage
from .errors import ConflictingAssignment, InvalidTransition, PrinterNotFound, TaskNotFound

# purpose: keep printer status, accumulated minutes and the bound task consistent
# status: active
# depends_on: printops.models.Printer, printops.models.Task

logger = logging.getLogger(__name__)


class ReleaseKind(str, Enum):
    """How a bound task left its printer.

    The two kinds fold time differently: an explicit release adds the bound
    time to ``work_minutes`` while a release forced by a status change only
    clears the binding.
    """

    EXPLICIT = "explicit"
    FORCED_ON_STATUS_CHANGE = "forced_on_status_change"


@dataclass(frozen=True)
class TaskRelease:
    kind: ReleaseKind
    task_id: int
    released_at: datetime
    folded_minutes: int
    previous_status: str | None = None


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes; they are stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_minutes(since: datetime, now: datetime) -> int:
    """Whole minutes between two instants, never negative."""

    seconds = (as_utc(now) - as_utc(since)).total_seconds()
    if seconds <= 0:
        return 0
    return math.floor(seconds / 60)


def coerce_status(value: str | PrinterStatus) -> PrinterStatus:
    try:
        return PrinterStatus(value)
    except ValueError as exc:
        valid = ", ".join(s.value for s in PrinterStatus)
        raise InvalidTransition(f"invalid printer status {value!r}; expected one of: {valid}") from exc


def get_printer(db: Session, organization_id: UUID, printer_id: UUID, *, for_update: bool = False) -> models.Printer:
    """Load a printer inside the organization, locking the row when mutating."""

    query = db.query(models.Printer).filter(
        models.Printer.id == printer_id,
        models.Printer.organization_id == organization_id,
    )
    if for_update:
        query = query.with_for_update()
    printer = query.one_or_none()
    if printer is None:
        raise PrinterNotFound(f"printer {printer_id} not found")
    return printer


def get_task(db: Session, organization_id: UUID, task_id: int) -> models.Task:
    task = (
        db.query(models.Task)
        .join(models.Project, models.Task.project_id == models.Project.id)
        .filter(models.Task.id == task_id, models.Project.organization_id == organization_id)
        .one_or_none()
    )
    if task is None:
        raise TaskNotFound(f"task {task_id} not found")
    return task


def transition_status(
    db: Session,
    printer: models.Printer,
    new_status: str | PrinterStatus,
    now: datetime,
) -> models.Printer:
    """Move ``printer`` to ``new_status``, folding time spent in maintenance."""

    status = coerce_status(new_status)
    folded = 0
    if printer.status == PrinterStatus.MAINTENANCE and printer.status_last_updated_at is not None:
        folded = elapsed_minutes(printer.status_last_updated_at, now)
        printer.maintenance_minutes = (printer.maintenance_minutes or 0) + folded

    previous = printer.status
    printer.status = status.value
    printer.status_last_updated_at = now
    db.flush()
    logger.info(
        "printer %s status %s -> %s (maintenance +%d min)",
        printer.id,
        previous,
        status.value,
        folded,
    )
    return printer


def release_task(db: Session, printer: models.Printer, now: datetime) -> TaskRelease | None:
    """Explicitly unbind the current task and fold the bound time into work minutes."""

    task_id = printer.current_task_id
    if task_id is None:
        printer.task_assigned_at = None
        db.flush()
        return None

    folded = 0
    if printer.task_assigned_at is not None:
        folded = elapsed_minutes(printer.task_assigned_at, now)
        printer.work_minutes = (printer.work_minutes or 0) + folded
    printer.task_assigned_at = None
    printer.current_task_id = None

    # the task keeps printer_id as the printer it was produced on
    task = db.get(models.Task, task_id)
    if task is not None:
        task.actual_production_end_time = now
    db.flush()
    logger.info("printer %s released task %s (work +%d min)", printer.id, task_id, folded)
    return TaskRelease(ReleaseKind.EXPLICIT, task_id, now, folded)


def assign_task(
    db: Session,
    printer: models.Printer,
    task_id: int | None,
    now: datetime,
) -> TaskRelease | None:
    """Bind ``task_id`` to ``printer``, or release the bound task when ``None``.

    A printer holds at most one task. Binding a different task while one is
    bound raises :class:`ConflictingAssignment`; callers release first.
    Returns the release record when a task was unbound.
    """

    if task_id is None:
        return release_task(db, printer, now)

    if printer.current_task_id is not None:
        if printer.current_task_id == task_id:
            return None
        raise ConflictingAssignment(
            f"printer {printer.id} already holds task {printer.current_task_id}; release it first"
        )

    task = get_task(db, printer.organization_id, task_id)
    if task.printer_id is not None and task.printer_id != printer.id:
        bound_elsewhere = (
            db.query(models.Printer)
            .filter(models.Printer.id == task.printer_id, models.Printer.current_task_id == task.id)
            .first()
        )
        if bound_elsewhere is not None:
            raise ConflictingAssignment(f"task {task_id} is running on printer {bound_elsewhere.id}")

    printer.task_assigned_at = now
    printer.current_task_id = task.id
    task.printer_id = printer.id
    if task.actual_production_start_time is None:
        task.actual_production_start_time = now
    db.flush()
    logger.info("printer %s assigned task %s", printer.id, task.id)
    return None


def force_release_on_status_change(db: Session, printer: models.Printer, now: datetime) -> TaskRelease | None:
    """Pause the bound task because its printer is changing status.

    The printer binding is cleared without folding work minutes.
    """

    task_id = printer.current_task_id
    if task_id is None:
        return None

    previous_status = None
    task = db.get(models.Task, task_id)
    if task is not None:
        previous_status = task.status
        task.status = Stage.PAUSED.value
        task.actual_production_end_time = now
        task.printer_id = None
    printer.current_task_id = None
    printer.task_assigned_at = None
    db.flush()
    logger.info("printer %s force-released task %s on status change", printer.id, task_id)
    return TaskRelease(ReleaseKind.FORCED_ON_STATUS_CHANGE, task_id, now, 0, previous_status)


def change_printer_status(
    db: Session,
    printer: models.Printer,
    new_status: str | PrinterStatus,
    now: datetime,
) -> TaskRelease | None:
    """Apply an operator status change, releasing the bound task first if the status moves."""

    status = coerce_status(new_status)
    release = None
    if status.value != printer.status:
        release = force_release_on_status_change(db, printer, now)
    transition_status(db, printer, status, now)
    return release
