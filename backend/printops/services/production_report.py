"""Fleet utilization, downtime and project reports."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..stages import INACTIVE_PROJECT_STAGES, REPORT_STATUS_LABELS, PrinterStatus, Stage, parse_stage
from .time_windows import DateRange, date_range, project_report_range

# purpose: derive read-only production metrics from persisted printer accumulators
# status: active
# depends_on: printops.models.Printer, printops.models.Task, printops.models.ProgressLog
# note: accumulators are "as of the last transition"; nothing here folds live time


def _round(value: float) -> float:
    return round(value, 2)


def effective_work_minutes(printer: models.Printer) -> int:
    return printer.work_minutes or 0


def effective_maintenance_minutes(printer: models.Printer) -> int:
    return printer.maintenance_minutes or 0


def utilization_percentage(work_minutes: int, scheduled_minutes: int | None) -> float:
    if not scheduled_minutes or scheduled_minutes <= 0:
        return 0.0
    return work_minutes / scheduled_minutes * 100


def build_overview(printers: list[models.Printer]) -> schemas.FleetOverview:
    by_status = Counter(p.status for p in printers)
    idle = sum(1 for p in printers if p.status == PrinterStatus.ACTIVE and p.current_task_id is None)
    total_utilization = sum(
        utilization_percentage(effective_work_minutes(p), p.scheduled_minutes) for p in printers
    )
    average = total_utilization / len(printers) if printers else 0.0
    return schemas.FleetOverview(
        total_printers=len(printers),
        active_printers=by_status[PrinterStatus.ACTIVE.value],
        idle_printers=idle,
        paused_printers=by_status[PrinterStatus.PAUSED.value],
        maintenance_printers=by_status[PrinterStatus.MAINTENANCE.value],
        offline_printers=by_status[PrinterStatus.OFFLINE.value],
        average_utilization=_round(average),
    )


def build_printer_utilization(
    printers: Iterable[models.Printer],
    job_counts: Mapping[UUID, int],
) -> list[schemas.PrinterUtilization]:
    """Per-printer utilization, highest first.

    ``total_print_jobs`` is windowed while the minute figures are lifetime
    accumulators.
    """

    rows = []
    for printer in printers:
        utilized = effective_work_minutes(printer)
        active = utilized + effective_maintenance_minutes(printer)
        rows.append(
            schemas.PrinterUtilization(
                printer_id=printer.id,
                name=printer.name or f"Printer {printer.id}",
                status=printer.status,
                total_utilized_hours=_round(utilized / 60),
                total_active_hours=_round(active / 60),
                total_print_jobs=job_counts.get(printer.id, 0),
                utilization_percentage=_round(utilization_percentage(utilized, printer.scheduled_minutes)),
            )
        )
    rows.sort(key=lambda row: row.utilization_percentage, reverse=True)
    return rows


def build_downtime(printers: list[models.Printer]) -> schemas.DowntimeSummary:
    total = sum(effective_maintenance_minutes(p) for p in printers)
    average = total / len(printers) if printers else 0.0
    return schemas.DowntimeSummary(
        total_maintenance_minutes=total,
        total_maintenance_hours=_round(total / 60),
        average_maintenance_per_printer=_round(average),
        average_maintenance_hours_per_printer=_round(average / 60),
    )


def _job_counts(db: Session, organization_id: UUID, window: DateRange) -> dict[UUID, int]:
    utc = window.as_utc()
    rows = (
        db.query(models.Task.printer_id, func.count(models.Task.id))
        .join(models.Project, models.Task.project_id == models.Project.id)
        .filter(
            models.Project.organization_id == organization_id,
            models.Task.printer_id.isnot(None),
            models.Task.created_at >= utc.start,
            models.Task.created_at <= utc.end,
        )
        .group_by(models.Task.printer_id)
        .all()
    )
    return {printer_id: count for printer_id, count in rows}


def generate_production_report(
    db: Session,
    organization_id: UUID,
    period: str,
    now: datetime,
) -> schemas.ProductionReport:
    window = date_range(period, now)
    printers = (
        db.query(models.Printer)
        .filter(models.Printer.organization_id == organization_id)
        .order_by(models.Printer.created_at.desc())
        .all()
    )
    return schemas.ProductionReport(
        period=period,
        generated_at=now,
        range=schemas.ReportRange(start=window.start, end=window.end),
        overview=build_overview(printers),
        printer_utilization=build_printer_utilization(printers, _job_counts(db, organization_id, window)),
        downtime=build_downtime(printers),
    )


def generate_project_report(
    db: Session,
    organization_id: UUID,
    period: str,
    now: datetime,
) -> schemas.ProjectReport:
    window = project_report_range(period, now)
    utc = window.as_utc()
    projects = (
        db.query(models.Project)
        .filter(
            models.Project.organization_id == organization_id,
            models.Project.created_at >= utc.start,
            models.Project.created_at <= utc.end,
        )
        .all()
    )
    stages = [parse_stage(p.status) for p in projects]
    groups = schemas.ProjectGroups(
        active=sum(1 for s in stages if s not in INACTIVE_PROJECT_STAGES),
        completed=sum(1 for s in stages if s is Stage.FINISHED),
        delayed=sum(1 for s in stages if s is Stage.DELAYED),
    )
    distribution = {
        label: sum(1 for s in stages if s is stage) for label, stage in REPORT_STATUS_LABELS.items()
    }

    issue_rows = (
        db.query(models.ProgressLog.issue, func.count(models.ProgressLog.id))
        .join(models.Project, models.ProgressLog.project_id == models.Project.id)
        .filter(
            models.Project.organization_id == organization_id,
            models.ProgressLog.issue.isnot(None),
            models.ProgressLog.start_date >= window.start.date(),
            models.ProgressLog.start_date <= window.end.date(),
        )
        .group_by(models.ProgressLog.issue)
        .all()
    )
    return schemas.ProjectReport(
        period=period,
        generated_at=now,
        range=schemas.ReportRange(start=window.start, end=window.end),
        project_groups=groups,
        status_distribution=distribution,
        issues={issue: count for issue, count in issue_rows},
    )
