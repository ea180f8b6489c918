from datetime import date, datetime
from typing import Annotated, Literal, Optional

from ninja import Schema
from pydantic import Field, field_validator

DAYS_PER_WEEK = 7
MAX_DAILY_HOURS = 24

UserRole = Literal["employee", "manager", "admin"]
UserStatus = Literal["active", "inactive"]
ProjectStatus = Literal["active", "completed", "on-hold", "planning"]
TaskPriority = Literal["low", "medium", "high"]
TaskStatus = Literal["pending", "in-progress", "completed"]
TimesheetStatus = Literal["draft", "submitted", "approved", "rejected"]

DayHours = Annotated[float, Field(ge=0, le=MAX_DAILY_HOURS)]
DayProgress = Annotated[int, Field(ge=0, le=100)]


def _blank_notes() -> list[str]:
    return [""] * DAYS_PER_WEEK


def _zero_hours() -> list[float]:
    return [0.0] * DAYS_PER_WEEK


def _zero_progress() -> list[int]:
    return [0] * DAYS_PER_WEEK


# Entities

class User(Schema):
    id: str
    name: str
    email: str
    role: UserRole = "employee"
    department: str = "N/A"
    status: UserStatus = "active"
    join_date: Optional[date] = None
    avatar: Optional[str] = None


class Project(Schema):
    """A client project. ``budget`` and ``spent`` are both measured in hours."""
    id: str
    name: str
    client: str
    status: ProjectStatus = "active"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: float = Field(default=0, ge=0)
    spent: float = Field(default=0, ge=0)
    member_ids: list[str] = []
    color: str = "#4F46E5"
    description: str = ""

    @field_validator("member_ids")
    @classmethod
    def _unique_members(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class Category(Schema):
    """Activity label for tasks. ``count`` is recalculated from the task list on read."""
    id: str
    name: str
    color: str = "#4F46E5"
    count: int = 0


class Task(Schema):
    id: str
    project_id: str
    category_id: str
    name: str
    priority: TaskPriority = "medium"
    estimate: float = Field(default=0, ge=0)
    assigned_to: Optional[str] = None
    status: TaskStatus = "pending"
    due_date: Optional[date] = None


class ProjectFile(Schema):
    """Metadata of a file attached to a project. Contents are never stored."""
    id: str
    project_id: str
    name: str
    type: str = "other"
    size: str = ""
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class TimesheetEntry(Schema):
    """
    One row of a weekly timesheet.

    ``hours``, ``notes`` and ``progress`` are index-aligned to the seven days
    starting at the timesheet's ``week_start`` (Mon..Sun). Rows stored without
    notes or progress get blank ones.
    """
    project_id: str = ""
    task_id: str = ""
    category_id: str = ""
    hours: list[DayHours] = Field(default_factory=_zero_hours, min_length=7, max_length=7)
    notes: list[str] = Field(default_factory=_blank_notes, min_length=7, max_length=7)
    progress: list[DayProgress] = Field(default_factory=_zero_progress, min_length=7, max_length=7)

    @field_validator("project_id", "task_id", "category_id", mode="before")
    @classmethod
    def _none_as_blank(cls, value):
        return "" if value is None else value


class Timesheet(Schema):
    id: str
    user_id: str
    week_start: date
    status: TimesheetStatus = "draft"
    entries: list[TimesheetEntry] = []
    total_hours: float = 0
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    remarks: str = ""
    version: int = 0


class AuditEvent(Schema):
    id: str
    timestamp: datetime
    actor_id: Optional[str] = None
    action: str
    target: str
    details: dict = {}


# Request bodies

class UserIn(Schema):
    name: str
    email: str
    role: UserRole = "employee"
    department: str = "N/A"
    join_date: Optional[date] = None
    avatar: Optional[str] = None


class UserUpdate(Schema):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    avatar: Optional[str] = None


class UserStatusIn(Schema):
    status: UserStatus


class StagedTaskIn(Schema):
    """Task created together with its project."""
    name: str
    category_id: Optional[str] = None
    priority: TaskPriority = "medium"
    assigned_to: Optional[str] = None
    estimate: float = Field(default=0, ge=0)


class ProjectIn(Schema):
    name: str
    client: str
    status: ProjectStatus = "active"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: float = Field(default=0, ge=0)
    member_ids: list[str] = []
    color: str = "#4F46E5"
    description: str = ""
    tasks: list[StagedTaskIn] = []
    created_by: Optional[str] = None


class ProjectUpdate(Schema):
    name: Optional[str] = None
    client: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    member_ids: Optional[list[str]] = None
    color: Optional[str] = None
    description: Optional[str] = None


class CategoryIn(Schema):
    name: str
    color: str = "#4F46E5"


class TaskIn(Schema):
    project_id: str
    category_id: str
    name: str
    priority: TaskPriority = "medium"
    estimate: float = Field(default=0, ge=0)
    assigned_to: Optional[str] = None
    status: TaskStatus = "pending"
    due_date: Optional[date] = None


class TaskUpdate(Schema):
    project_id: Optional[str] = None
    category_id: Optional[str] = None
    name: Optional[str] = None
    priority: Optional[TaskPriority] = None
    estimate: Optional[float] = Field(default=None, ge=0)
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None


class TaskStatusIn(Schema):
    status: TaskStatus


class FileIn(Schema):
    project_id: str
    name: str
    type: str = "other"
    size: str = ""
    uploaded_by: Optional[str] = None


class SaveDraftIn(Schema):
    entries: list[TimesheetEntry]
    total_hours: Optional[float] = None
    user_id: Optional[str] = None
    week_start: Optional[date] = None
    expected_version: Optional[int] = None


class HourCellIn(Schema):
    row: int
    day: int
    value: Optional[str] = None


class ReviewIn(Schema):
    remarks: str = ""
    reviewer_id: Optional[str] = None


# Views and reports

class WeekEditorSchema(Schema):
    """Editable state of one user's week as shown in the weekly grid."""
    timesheet_id: str
    user_id: str
    week_start: date
    status: TimesheetStatus
    editable: bool
    exists: bool
    version: int
    entries: list[TimesheetEntry]
    row_totals: list[float]
    day_totals: list[float]
    grand_total: float


class DailyReviewEntrySchema(Schema):
    """One entry of a submitted timesheet as it falls on a single day."""
    timesheet_id: str
    user_id: str
    week_start: date
    day_index: int
    project_id: str
    task_id: str
    category_id: str
    day_hours: float
    note: str
    progress: int


class ApprovalCountsSchema(Schema):
    all: int
    submitted: int
    approved: int
    rejected: int


class DailySummarySchema(Schema):
    user_id: str
    day: date
    total_hours: float
    target_hours: float
    progress_percent: int
    entries: int


class WeeklySummarySchema(Schema):
    user_id: str
    week_start: date
    status: TimesheetStatus
    editable: bool
    date_columns: list[str]
    daily_hours: dict[str, float]
    row_totals: list[float]
    total_hours: float


class MonthlySummarySchema(Schema):
    user_id: str
    year: int
    month: int
    total_hours: float
    daily_hours: dict[str, float]
    by_project: dict[str, float]
    entries: int


class MemberHoursSchema(Schema):
    user_id: str
    name: str
    logged_hours: float


class ProjectStatsSchema(Schema):
    project_id: str
    total_hours_logged: float
    budget: float
    budget_progress: float
    total_tasks: int
    completed_tasks: int
    members: list[MemberHoursSchema]
    files: list[ProjectFile]


class EmployeeUtilizationSchema(Schema):
    user_id: str
    name: str
    hours: float
    target: float
    rate: float


class TeamUtilizationSchema(Schema):
    """Team KPIs for one calendar month."""
    year: int
    month: int
    employees: list[EmployeeUtilizationSchema]
    utilization_rate: float
    max_daily_load: float
    gini_coefficient: float
    total_hours: float


class DashboardSchema(Schema):
    user_id: str
    role: UserRole
    metrics: dict[str, float]


class ErrorSchema(Schema):
    detail: str
    kind: str
