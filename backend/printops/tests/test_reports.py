import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from printops import models
from printops.services import production_report
from printops.services.time_windows import InvalidPeriod

from conftest import organization_admin

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def _fleet(db):
    org = models.Organization(name="Fleet")
    db.add(org)
    db.flush()
    busy = models.Printer(
        organization_id=org.id, name="Busy", nickname="B", status="active",
        work_minutes=480, maintenance_minutes=30, scheduled_minutes=480,
    )
    half = models.Printer(
        organization_id=org.id, name="Half", nickname="H", status="maintenance",
        work_minutes=240, maintenance_minutes=90, scheduled_minutes=480,
    )
    unscheduled = models.Printer(
        organization_id=org.id, name="Spare", nickname="S", status="offline",
        work_minutes=100, maintenance_minutes=0, scheduled_minutes=0,
    )
    project = models.Project(id=f"PRJ-F-{uuid.uuid4().hex[:8]}", organization_id=org.id, name="Fleet jobs")
    db.add_all([busy, half, unscheduled, project])
    db.flush()
    db.add_all(
        [
            models.Task(name="today", project=project, printer_id=busy.id, created_at=NOW - timedelta(hours=2)),
            models.Task(name="today 2", project=project, printer_id=busy.id, created_at=NOW - timedelta(hours=1)),
            models.Task(name="last month", project=project, printer_id=busy.id, created_at=NOW - timedelta(days=40)),
            models.Task(name="half", project=project, printer_id=half.id, created_at=NOW - timedelta(hours=3)),
        ]
    )
    db.flush()
    return org, busy, half, unscheduled


def test_production_report_aggregates(db_session):
    org, busy, half, unscheduled = _fleet(db_session)
    report = production_report.generate_production_report(db_session, org.id, "today", NOW)

    assert report.overview.total_printers == 3
    assert report.overview.active_printers == 1
    assert report.overview.idle_printers == 1
    assert report.overview.maintenance_printers == 1
    assert report.overview.offline_printers == 1
    assert report.overview.average_utilization == 50.0

    rows = report.printer_utilization
    assert [r.printer_id for r in rows] == [busy.id, half.id, unscheduled.id]
    assert rows[0].utilization_percentage == 100.0
    assert rows[0].total_utilized_hours == 8.0
    assert rows[0].total_active_hours == 8.5
    assert rows[0].total_print_jobs == 2
    assert rows[1].total_print_jobs == 1
    assert rows[2].utilization_percentage == 0.0

    assert report.downtime.total_maintenance_minutes == 120
    assert report.downtime.total_maintenance_hours == 2.0
    assert report.downtime.average_maintenance_per_printer == 40.0
    assert report.downtime.average_maintenance_hours_per_printer == 0.67


def test_month_window_counts_older_jobs(db_session):
    org, busy, _, _ = _fleet(db_session)
    report = production_report.generate_production_report(db_session, org.id, "thisMonth", NOW)
    by_id = {r.printer_id: r for r in report.printer_utilization}
    assert by_id[busy.id].total_print_jobs == 2


def test_empty_fleet_reports_zeros(db_session):
    report = production_report.generate_production_report(db_session, uuid.uuid4(), "thisWeek", NOW)
    assert report.overview.total_printers == 0
    assert report.overview.average_utilization == 0.0
    assert report.printer_utilization == []
    assert report.downtime.average_maintenance_per_printer == 0.0


def test_invalid_period_raises(db_session):
    with pytest.raises(InvalidPeriod):
        production_report.generate_production_report(db_session, uuid.uuid4(), "yesterday", NOW)


def test_project_report_groups(db_session):
    org = models.Organization(name="Projects")
    db_session.add(org)
    db_session.flush()
    statuses = ["pending", "production", "finished", "delayed", "cancelled", "Finishing"]
    projects = [
        models.Project(
            id=f"PRJ-G-{uuid.uuid4().hex[:8]}",
            organization_id=org.id,
            name=status,
            status=status,
            created_at=NOW - timedelta(days=1),
        )
        for status in statuses
    ]
    old = models.Project(
        id=f"PRJ-G-{uuid.uuid4().hex[:8]}",
        organization_id=org.id,
        name="old",
        status="production",
        created_at=NOW - timedelta(days=200),
    )
    db_session.add_all([*projects, old])
    db_session.flush()
    db_session.add_all(
        [
            models.ProgressLog(project_id=projects[1].id, status="production", issue="ink", start_date=date(2024, 5, 14)),
            models.ProgressLog(project_id=projects[1].id, status="finishing", issue="ink", start_date=date(2024, 5, 15)),
            models.ProgressLog(project_id=projects[3].id, status="delayed", issue="vinyl", start_date=date(2024, 5, 13)),
            models.ProgressLog(project_id=projects[0].id, status="pending", issue="ink", start_date=date(2024, 4, 1)),
        ]
    )
    db_session.flush()

    report = production_report.generate_project_report(db_session, org.id, "thisMonth", NOW)

    assert report.project_groups.active == 4
    assert report.project_groups.completed == 1
    assert report.project_groups.delayed == 1
    assert report.status_distribution == {"planned": 1, "printing": 1, "finishing": 1, "installing": 0}
    assert report.issues == {"ink": 2, "vinyl": 1}
    assert report.range.end == NOW


def test_production_report_endpoint(client):
    headers, _ = organization_admin(client)
    client.post("/api/printers", json={"name": "Roland", "nickname": "R1"}, headers=headers)

    resp = client.get("/api/reports/production", params={"for": "today"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["period"] == "today"
    assert body["overview"]["total_printers"] == 1
    assert body["overview"]["idle_printers"] == 1
    assert body["printer_utilization"][0]["utilization_percentage"] == 0.0


def test_report_period_required(client):
    headers, _ = organization_admin(client)
    assert client.get("/api/reports/production", headers=headers).status_code == 400
    assert client.get("/api/reports/production", params={"for": "decade"}, headers=headers).status_code == 400
    assert client.get("/api/reports/projects", params={"for": "today"}, headers=headers).status_code == 400


def test_project_report_endpoint(client):
    headers, _ = organization_admin(client)
    client.post("/api/projects", json={"name": "Storefront"}, headers=headers)
    resp = client.get("/api/reports/projects", params={"for": "thisYear"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["project_groups"]["active"] == 1
    assert body["status_distribution"]["planned"] == 1


def test_reports_require_organization(client):
    from conftest import register

    headers, _ = register(client)
    resp = client.get("/api/reports/production", params={"for": "today"}, headers=headers)
    assert resp.status_code == 403
