import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Float,
    Table,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base
from .stages import PrinterStatus, Stage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Organization(Base):
    __tablename__ = "organizations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", use_alter=True, name="fk_organizations_created_by"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    members = relationship("User", back_populates="organization", foreign_keys="User.organization_id")


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    # admin: manages projects and printers of the organization
    role = Column(String, default="member", nullable=False)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    organization = relationship("Organization", back_populates="members", foreign_keys=[organization_id])

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Printer(Base):
    __tablename__ = "printers"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    name = Column(String, nullable=False)
    nickname = Column(String, nullable=False)
    location = Column(String)
    max_width = Column(Float)
    print_speed = Column(Float)
    status = Column(String, default=PrinterStatus.ACTIVE.value, nullable=False)
    status_last_updated_at = Column(DateTime(timezone=True), nullable=True)
    # accumulators folded lazily on the next status or task transition
    work_minutes = Column(Integer, default=0, nullable=False)
    maintenance_minutes = Column(Integer, default=0, nullable=False)
    # target minutes for a single day
    scheduled_minutes = Column(Integer, default=480, nullable=False)
    current_task_id = Column(
        Integer,
        ForeignKey("tasks.id", use_alter=True, name="fk_printers_current_task_id"),
        nullable=True,
    )
    task_assigned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    tasks = relationship("Task", back_populates="printer", foreign_keys="Task.printer_id")


progress_log_tasks = Table(
    "progress_log_tasks",
    Base.metadata,
    Column("progress_log_id", UUID(as_uuid=True), ForeignKey("progress_logs.id", ondelete="CASCADE"), primary_key=True),
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
)


class Project(Base):
    __tablename__ = "projects"
    # PRJ-<year>-<sequence>
    id = Column(String, primary_key=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String)
    status = Column(String, default=Stage.PENDING.value, nullable=False)
    priority = Column(Integer, default=0)
    due_date = Column(Date)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    progress_log_last_modified_at = Column(DateTime(timezone=True), nullable=True)
    tasks_last_modified_at = Column(DateTime(timezone=True), nullable=True)

    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    progress_logs = relationship(
        "ProgressLog",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProgressLog.start_date",
    )


class Material(Base):
    __tablename__ = "materials"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    name = Column(String, nullable=False)
    unit = Column(String, default="unit")
    quantity = Column(Float, default=0)
    barcode = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (sa.UniqueConstraint("organization_id", "name"),)


class Task(Base):
    __tablename__ = "tasks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String)
    status = Column(String, default=Stage.PENDING.value, nullable=False)
    priority = Column(Integer, default=1)
    runs = Column(Integer, default=1)
    # estimated production duration in minutes
    production_duration = Column(Integer)
    due_date = Column(DateTime(timezone=True))
    date_completed = Column(Date)
    production_start_time = Column(DateTime(timezone=True))
    actual_production_start_time = Column(DateTime(timezone=True))
    actual_production_end_time = Column(DateTime(timezone=True))
    material_id = Column(UUID(as_uuid=True), ForeignKey("materials.id"), nullable=True)
    printer_id = Column(UUID(as_uuid=True), ForeignKey("printers.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = relationship("Project", back_populates="tasks")
    printer = relationship("Printer", back_populates="tasks", foreign_keys=[printer_id])
    material = relationship("Material")
    progress_logs = relationship("ProgressLog", secondary=progress_log_tasks, back_populates="tasks")
    assignees = relationship("TaskAssignee", cascade="all, delete-orphan")

    @property
    def assignee_ids(self) -> list[uuid.UUID]:
        return [a.user_id for a in self.assignees]

    @property
    def progress_log_ids(self) -> list[uuid.UUID]:
        return [log.id for log in self.progress_logs]


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    added_at = Column(DateTime(timezone=True), default=_utcnow)


class ProgressLog(Base):
    __tablename__ = "progress_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    description = Column(String)
    issue = Column(String)
    start_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = relationship("Project", back_populates="progress_logs")
    tasks = relationship("Task", secondary=progress_log_tasks, back_populates="progress_logs")

    @property
    def task_ids(self) -> list[int]:
        return [task.id for task in self.tasks]


class WorkActivityLog(Base):
    __tablename__ = "work_activity_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    start = Column(DateTime(timezone=True), nullable=False)
    end = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(String)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
