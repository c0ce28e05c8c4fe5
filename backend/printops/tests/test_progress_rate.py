import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from printops import models
from printops.services import progress_rate
from printops.services.errors import ProjectNotFound

MONDAY = date(2024, 5, 13)
FRIDAY = date(2024, 5, 17)
WEDNESDAY = datetime(2024, 5, 15, tzinfo=timezone.utc)


def _log(start=MONDAY, due=FRIDAY, is_completed=False, status="production"):
    return SimpleNamespace(id=uuid.uuid4(), start_date=start, due_date=due, is_completed=is_completed, status=status)


def _tasks(*statuses):
    return [SimpleNamespace(status=s) for s in statuses]


def test_expected_half_way():
    assert progress_rate.expected_progress(MONDAY, FRIDAY, WEDNESDAY) == pytest.approx(0.5)


def test_expected_clamped_to_window():
    before = datetime(2024, 5, 1, tzinfo=timezone.utc)
    after = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert progress_rate.expected_progress(MONDAY, FRIDAY, before) == 0.0
    assert progress_rate.expected_progress(MONDAY, FRIDAY, after) == 1.0


def test_zero_duration_window_is_fully_expected():
    assert progress_rate.expected_progress(MONDAY, MONDAY, WEDNESDAY) == 1.0


def test_stage_rate_with_linked_tasks():
    stage = progress_rate.evaluate_progress_log(_log(), _tasks("completed", "in_progress"), WEDNESDAY)
    assert stage.expected == pytest.approx(0.5)
    assert stage.actual == pytest.approx(0.5)
    assert stage.rate == pytest.approx(1.0)


def test_completed_status_matched_case_insensitively():
    stage = progress_rate.evaluate_progress_log(_log(), _tasks("Completed", "COMPLETED"), WEDNESDAY)
    assert stage.actual == 1.0


def test_stage_without_tasks_uses_completion_flag():
    done = progress_rate.evaluate_progress_log(_log(is_completed=True), [], WEDNESDAY)
    open_ = progress_rate.evaluate_progress_log(_log(), [], WEDNESDAY)
    assert done.rate == 1.0
    assert open_.rate == 0.0


def test_rate_zero_before_stage_starts():
    before = datetime(2024, 5, 1, tzinfo=timezone.utc)
    stage = progress_rate.evaluate_progress_log(_log(is_completed=True), [], before)
    assert stage.expected == 0.0
    assert stage.rate == 0.0


def test_invalid_windows_are_skipped():
    assert progress_rate.evaluate_progress_log(_log(due=None), [], WEDNESDAY) is None
    assert progress_rate.evaluate_progress_log(_log(start=FRIDAY, due=MONDAY), [], WEDNESDAY) is None
    assert progress_rate.evaluate_progress_log(_log(start=MONDAY, due=MONDAY), [], WEDNESDAY) is None


@pytest.mark.parametrize(
    "statuses,completed,now",
    [
        ((), False, WEDNESDAY),
        (("completed",), False, WEDNESDAY),
        (("completed", "completed", "pending"), False, datetime(2024, 5, 13, 1, tzinfo=timezone.utc)),
        ((), True, datetime(2024, 5, 20, tzinfo=timezone.utc)),
    ],
)
def test_rate_bounded(statuses, completed, now):
    stage = progress_rate.evaluate_progress_log(_log(is_completed=completed), _tasks(*statuses), now)
    assert 0.0 <= stage.rate <= 1.0


def test_mean_rate_of_nothing_is_zero():
    assert progress_rate.mean_rate([]) == 0.0
    assert round(progress_rate.mean_rate([0.8, 0.4]), 2) == 0.6


def _project(db, org, completed, total=5):
    project = models.Project(id=f"PRJ-R-{uuid.uuid4().hex[:8]}", organization_id=org.id, name="Wrap")
    tasks = [
        models.Task(name=f"t{i}", project=project, status="completed" if i < completed else "pending")
        for i in range(total)
    ]
    log = models.ProgressLog(project=project, status="production", start_date=MONDAY, due_date=FRIDAY)
    log.tasks = tasks
    db.add_all([project, log, *tasks])
    db.flush()
    return project


def test_project_and_organization_rates(db_session):
    org = models.Organization(name="Rates")
    db_session.add(org)
    db_session.flush()
    fast = _project(db_session, org, completed=2)
    slow = _project(db_session, org, completed=1)

    rate, stages = progress_rate.project_progress_rate(db_session, org.id, fast.id, WEDNESDAY)
    assert rate == pytest.approx(0.8)
    assert len(stages) == 1
    rate, _ = progress_rate.project_progress_rate(db_session, org.id, slow.id, WEDNESDAY)
    assert rate == pytest.approx(0.4)

    assert progress_rate.organization_progress_rate(db_session, org.id, WEDNESDAY) == 0.6


def test_project_without_logs_rates_zero(db_session):
    org = models.Organization(name="Empty")
    db_session.add(org)
    db_session.flush()
    project = models.Project(id=f"PRJ-E-{uuid.uuid4().hex[:8]}", organization_id=org.id, name="Idle")
    db_session.add(project)
    db_session.flush()
    assert progress_rate.project_progress_rate(db_session, org.id, project.id, WEDNESDAY) == (0.0, [])


def test_organization_without_projects_rates_zero(db_session):
    assert progress_rate.organization_progress_rate(db_session, uuid.uuid4(), WEDNESDAY) == 0.0


def test_unknown_project_raises(db_session):
    with pytest.raises(ProjectNotFound):
        progress_rate.project_progress_rate(db_session, uuid.uuid4(), "PRJ-0000-000", WEDNESDAY)
