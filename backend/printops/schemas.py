from datetime import date, datetime
from typing import Optional, Dict, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field, model_validator
from uuid import UUID

from .stages import PrinterStatus


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    role: str = "member"
    organization_id: Optional[UUID] = None
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1)


class OrganizationOut(BaseModel):
    id: UUID
    name: str
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class OrganizationMemberAdd(BaseModel):
    email: EmailStr
    role: str = Field(default="member", pattern="^(admin|member)$")


class OrganizationRoleUpdate(BaseModel):
    role: str = Field(pattern="^(admin|member)$")


class PrinterCreate(BaseModel):
    name: str = Field(min_length=1)
    nickname: str = Field(min_length=1)
    location: Optional[str] = None
    status: PrinterStatus = PrinterStatus.ACTIVE
    max_width: Optional[float] = Field(default=None, ge=0)
    print_speed: Optional[float] = Field(default=None, ge=0)
    scheduled_minutes: int = Field(default=480, ge=0)


class PrinterUpdate(BaseModel):
    name: Optional[str] = None
    nickname: Optional[str] = None
    location: Optional[str] = None
    status: Optional[PrinterStatus] = None
    max_width: Optional[float] = Field(default=None, ge=0)
    print_speed: Optional[float] = Field(default=None, ge=0)
    scheduled_minutes: Optional[int] = Field(default=None, ge=0)


class PrinterStatusUpdate(BaseModel):
    status: PrinterStatus


class PrinterTaskAssign(BaseModel):
    # null releases the bound task
    task_id: Optional[int] = None


class PrinterOut(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    nickname: str
    location: Optional[str] = None
    max_width: Optional[float] = None
    print_speed: Optional[float] = None
    status: PrinterStatus
    status_last_updated_at: Optional[datetime] = None
    work_minutes: int = 0
    maintenance_minutes: int = 0
    scheduled_minutes: int = 480
    current_task_id: Optional[int] = None
    task_assigned_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TaskReleaseOut(BaseModel):
    kind: str
    task_id: int
    released_at: datetime
    folded_minutes: int
    model_config = ConfigDict(from_attributes=True)


class PrinterTransitionOut(BaseModel):
    printer: PrinterOut
    release: Optional[TaskReleaseOut] = None


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    status: Optional[str] = None
    priority: int = 0
    due_date: Optional[date] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    due_date: Optional[date] = None


class ProjectOut(BaseModel):
    id: str
    organization_id: UUID
    name: str
    description: Optional[str] = None
    status: str
    priority: Optional[int] = None
    due_date: Optional[date] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    progress_log_last_modified_at: Optional[datetime] = None
    tasks_last_modified_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ProjectLastModifiedOut(BaseModel):
    project_id: str
    updated_at: Optional[datetime] = None
    progress_log_last_modified_at: Optional[datetime] = None
    tasks_last_modified_at: Optional[datetime] = None


class ProgressLogCreate(BaseModel):
    status: str = Field(min_length=1)
    description: Optional[str] = None
    issue: Optional[str] = None
    start_date: date
    due_date: Optional[date] = None
    is_completed: bool = False
    task_ids: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_window(self):
        if self.due_date is not None and self.due_date < self.start_date:
            raise ValueError("due_date must not be before start_date")
        return self


class ProgressLogUpdate(BaseModel):
    status: Optional[str] = None
    description: Optional[str] = None
    issue: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    is_completed: Optional[bool] = None
    task_ids: Optional[List[int]] = None


class ProgressLogTaskLink(BaseModel):
    task_ids: List[int]


class ProgressLogOut(BaseModel):
    id: UUID
    project_id: str
    status: str
    is_completed: bool = False
    description: Optional[str] = None
    issue: Optional[str] = None
    start_date: date
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    task_ids: List[int] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class StageProgressOut(BaseModel):
    progress_log_id: UUID
    status: str
    expected: float
    actual: float
    rate: float
    model_config = ConfigDict(from_attributes=True)


class ProjectProgressRateOut(BaseModel):
    project_id: str
    rate: float
    stages: List[StageProgressOut] = Field(default_factory=list)


class OrganizationProgressRateOut(BaseModel):
    organization_id: UUID
    rate: float


class TaskCreate(BaseModel):
    project_id: str
    name: str = Field(min_length=1)
    description: Optional[str] = None
    status: Optional[str] = None
    priority: int = 1
    runs: int = Field(default=1, ge=1)
    production_duration: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[datetime] = None
    production_start_time: Optional[datetime] = None
    material_id: Optional[UUID] = None
    assignee_ids: List[UUID] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    runs: Optional[int] = Field(default=None, ge=1)
    production_duration: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[datetime] = None
    production_start_time: Optional[datetime] = None
    material_id: Optional[UUID] = None
    assignee_ids: Optional[List[UUID]] = None


class TaskOut(BaseModel):
    id: int
    project_id: str
    name: str
    description: Optional[str] = None
    status: str
    priority: Optional[int] = None
    runs: Optional[int] = None
    production_duration: Optional[int] = None
    due_date: Optional[datetime] = None
    date_completed: Optional[date] = None
    production_start_time: Optional[datetime] = None
    actual_production_start_time: Optional[datetime] = None
    actual_production_end_time: Optional[datetime] = None
    material_id: Optional[UUID] = None
    printer_id: Optional[UUID] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignee_ids: List[UUID] = Field(default_factory=list)
    progress_log_ids: List[UUID] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class TaskStartRequest(BaseModel):
    printer_id: Optional[UUID] = None


class WorkActivityLogOut(BaseModel):
    id: UUID
    user_id: UUID
    task_id: int
    start: datetime
    end: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TaskLifecycleOut(BaseModel):
    task: TaskOut
    work_log: WorkActivityLogOut


class MaterialCreate(BaseModel):
    name: str = Field(min_length=1)
    unit: str = "unit"
    quantity: float = Field(default=0, ge=0)
    barcode: Optional[str] = None


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    barcode: Optional[str] = None


class MaterialOut(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    unit: Optional[str] = None
    quantity: float = 0
    barcode: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ReportRange(BaseModel):
    start: datetime
    end: datetime


class FleetOverview(BaseModel):
    total_printers: int = 0
    active_printers: int = 0
    idle_printers: int = 0
    paused_printers: int = 0
    maintenance_printers: int = 0
    offline_printers: int = 0
    average_utilization: float = 0.0


class PrinterUtilization(BaseModel):
    printer_id: UUID
    name: str
    status: str
    total_utilized_hours: float
    total_active_hours: float
    total_print_jobs: int
    utilization_percentage: float


class DowntimeSummary(BaseModel):
    total_maintenance_minutes: int = 0
    total_maintenance_hours: float = 0.0
    average_maintenance_per_printer: float = 0.0
    average_maintenance_hours_per_printer: float = 0.0


class ProductionReport(BaseModel):
    period: str
    generated_at: datetime
    range: ReportRange
    overview: FleetOverview
    printer_utilization: List[PrinterUtilization] = Field(default_factory=list)
    downtime: DowntimeSummary


class ProjectGroups(BaseModel):
    active: int = 0
    completed: int = 0
    delayed: int = 0


class ProjectReport(BaseModel):
    period: str
    generated_at: datetime
    range: ReportRange
    project_groups: ProjectGroups
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    issues: Dict[str, int] = Field(default_factory=dict)


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    details: Dict = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    count: int
