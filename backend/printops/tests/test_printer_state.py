import uuid
from datetime import datetime, timedelta, timezone

import pytest

from printops import models
from printops.services import printer_state
from printops.services.errors import (
    ConflictingAssignment,
    InvalidTransition,
    PrinterNotFound,
    TaskNotFound,
)
from printops.stages import PrinterStatus

T0 = datetime(2024, 5, 15, 10, 0, tzinfo=timezone.utc)


def _seed(db, task_count=2):
    org = models.Organization(name="Shop")
    db.add(org)
    db.flush()
    project = models.Project(id=f"PRJ-T-{uuid.uuid4().hex[:8]}", organization_id=org.id, name="Banner run")
    tasks = [models.Task(name=f"Task {i}", project=project) for i in range(task_count)]
    printer = models.Printer(
        organization_id=org.id,
        name="Roland",
        nickname="R1",
        status=PrinterStatus.ACTIVE.value,
        status_last_updated_at=T0,
    )
    db.add_all([project, printer, *tasks])
    db.flush()
    return org, printer, tasks


def test_elapsed_minutes_floors_and_clamps():
    assert printer_state.elapsed_minutes(T0, T0 + timedelta(minutes=45, seconds=59)) == 45
    assert printer_state.elapsed_minutes(T0, T0 - timedelta(minutes=5)) == 0
    naive = T0.replace(tzinfo=None)
    assert printer_state.elapsed_minutes(naive, T0 + timedelta(minutes=3)) == 3


def test_work_minutes_fold_on_explicit_release(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)
    assert printer.current_task_id == tasks[0].id
    assert printer.task_assigned_at == T0
    assert tasks[0].printer_id == printer.id
    assert tasks[0].actual_production_start_time == T0

    release = printer_state.assign_task(db_session, printer, None, T0 + timedelta(minutes=30))

    assert printer.work_minutes == 30
    assert printer.current_task_id is None
    assert printer.task_assigned_at is None
    assert release.kind is printer_state.ReleaseKind.EXPLICIT
    assert release.folded_minutes == 30
    assert tasks[0].actual_production_end_time == T0 + timedelta(minutes=30)
    # the task remembers where it was produced
    assert tasks[0].printer_id == printer.id


def test_maintenance_minutes_fold_on_transition(db_session):
    _, printer, _ = _seed(db_session)
    nine = T0.replace(hour=9)
    printer_state.transition_status(db_session, printer, PrinterStatus.MAINTENANCE, nine)
    assert printer.maintenance_minutes == 0

    printer_state.transition_status(db_session, printer, "active", nine + timedelta(minutes=45))

    assert printer.maintenance_minutes == 45
    assert printer.status == "active"
    assert printer.status_last_updated_at == nine + timedelta(minutes=45)


def test_maintenance_to_maintenance_keeps_time(db_session):
    _, printer, _ = _seed(db_session)
    printer_state.transition_status(db_session, printer, "maintenance", T0)
    printer_state.transition_status(db_session, printer, "maintenance", T0 + timedelta(minutes=20))
    printer_state.transition_status(db_session, printer, "offline", T0 + timedelta(minutes=50))
    assert printer.maintenance_minutes == 50


def test_clock_skew_never_decreases_accumulators(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.transition_status(db_session, printer, "maintenance", T0)
    printer_state.transition_status(db_session, printer, "active", T0 - timedelta(minutes=10))
    assert printer.maintenance_minutes == 0

    printer_state.assign_task(db_session, printer, tasks[0].id, T0)
    printer_state.assign_task(db_session, printer, None, T0 - timedelta(minutes=10))
    assert printer.work_minutes == 0


def test_invalid_status_rejected_without_change(db_session):
    _, printer, _ = _seed(db_session)
    with pytest.raises(InvalidTransition):
        printer_state.transition_status(db_session, printer, "broken", T0)
    assert printer.status == "active"
    assert printer.status_last_updated_at == T0


def test_assigning_second_task_conflicts(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)

    with pytest.raises(ConflictingAssignment):
        printer_state.assign_task(db_session, printer, tasks[1].id, T0 + timedelta(minutes=5))

    assert printer.current_task_id == tasks[0].id
    assert printer.task_assigned_at == T0
    assert tasks[1].printer_id is None


def test_reassigning_same_task_is_noop(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)
    assert printer_state.assign_task(db_session, printer, tasks[0].id, T0 + timedelta(minutes=9)) is None
    assert printer.task_assigned_at == T0
    assert printer.work_minutes == 0


def test_task_bound_on_another_printer_conflicts(db_session):
    org, printer, tasks = _seed(db_session)
    other = models.Printer(organization_id=org.id, name="Mimaki", nickname="M1")
    db_session.add(other)
    db_session.flush()
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)

    with pytest.raises(ConflictingAssignment):
        printer_state.assign_task(db_session, other, tasks[0].id, T0)
    assert other.current_task_id is None


def test_unknown_task_leaves_printer_unchanged(db_session):
    _, printer, _ = _seed(db_session)
    with pytest.raises(TaskNotFound):
        printer_state.assign_task(db_session, printer, 999999, T0)
    assert printer.current_task_id is None
    assert printer.task_assigned_at is None


def test_task_from_other_organization_not_found(db_session):
    _, printer, _ = _seed(db_session)
    _, _, foreign_tasks = _seed(db_session)
    with pytest.raises(TaskNotFound):
        printer_state.assign_task(db_session, printer, foreign_tasks[0].id, T0)


def test_get_printer_scoped_by_organization(db_session):
    org, printer, _ = _seed(db_session)
    assert printer_state.get_printer(db_session, org.id, printer.id) is printer
    with pytest.raises(PrinterNotFound):
        printer_state.get_printer(db_session, uuid.uuid4(), printer.id)


def test_status_change_forces_release_without_work_fold(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)
    later = T0 + timedelta(minutes=40)

    release = printer_state.change_printer_status(db_session, printer, "maintenance", later)

    assert release.kind is printer_state.ReleaseKind.FORCED_ON_STATUS_CHANGE
    assert release.folded_minutes == 0
    assert printer.work_minutes == 0
    assert printer.current_task_id is None
    assert printer.task_assigned_at is None
    assert printer.status == "maintenance"
    assert tasks[0].status == "paused"
    assert tasks[0].printer_id is None
    assert tasks[0].actual_production_end_time == later


def test_same_status_change_keeps_bound_task(db_session):
    _, printer, tasks = _seed(db_session)
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)
    release = printer_state.change_printer_status(db_session, printer, "active", T0 + timedelta(minutes=5))
    assert release is None
    assert printer.current_task_id == tasks[0].id
    assert printer.status_last_updated_at == T0 + timedelta(minutes=5)


def test_binding_invariant_after_sequence(db_session):
    _, printer, tasks = _seed(db_session, task_count=3)
    now = T0
    for task in tasks:
        printer_state.assign_task(db_session, printer, task.id, now)
        assert (printer.current_task_id is None) == (printer.task_assigned_at is None)
        now += timedelta(minutes=10)
        printer_state.assign_task(db_session, printer, None, now)
        assert (printer.current_task_id is None) == (printer.task_assigned_at is None)
    assert printer.work_minutes == 30


def test_forced_release_records_previous_task_status(db_session):
    _, printer, tasks = _seed(db_session)
    tasks[0].status = "pending"
    printer_state.assign_task(db_session, printer, tasks[0].id, T0)

    release = printer_state.change_printer_status(db_session, printer, "maintenance", T0 + timedelta(minutes=5))

    assert release.previous_status == "pending"
    assert tasks[0].status == "paused"
