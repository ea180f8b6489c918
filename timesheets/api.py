from datetime import date
from typing import Literal, Optional

import pydantic
from django.http import HttpRequest
from ninja import NinjaAPI, Swagger

from .errors import TimesheetError
from .schemas import (
    ApprovalCountsSchema, AuditEvent, Category, CategoryIn, DailyReviewEntrySchema,
    DailySummarySchema, DashboardSchema, ErrorSchema, FileIn, HourCellIn,
    MonthlySummarySchema, Project, ProjectFile, ProjectIn, ProjectStatsSchema,
    ProjectUpdate, ReviewIn, SaveDraftIn, Task, TaskIn, TaskStatusIn, TaskUpdate,
    TeamUtilizationSchema, Timesheet, User, UserIn, UserStatusIn, UserUpdate,
    WeekEditorSchema, WeeklySummarySchema,
)
from .services import (
    ApprovalWorkflow, TimesheetEngine, TimesheetService, TimesheetSummaryService,
)
from .store import get_app_state

api = NinjaAPI(title="TimePro API", docs=Swagger(settings={"persistAuthorization": True}))

ERRORS = {400: ErrorSchema, 404: ErrorSchema, 409: ErrorSchema}


@api.exception_handler(TimesheetError)
def timesheet_error(request: HttpRequest, exc: TimesheetError):
    return api.create_response(
        request, {"detail": exc.message, "kind": exc.kind}, status=exc.status_code,
    )


@api.exception_handler(pydantic.ValidationError)
def record_validation_error(request: HttpRequest, exc: pydantic.ValidationError):
    detail = "; ".join(error["msg"] for error in exc.errors())
    return api.create_response(request, {"detail": detail, "kind": "validation_error"}, status=400)


# Users

@api.get("/users", response=list[User])
def list_users(request: HttpRequest, role: Optional[str] = None, status: Optional[str] = None):
    return [
        u for u in get_app_state().users()
        if (role is None or u.role == role) and (status is None or u.status == status)
    ]


@api.post("/users", response={201: User, 400: ErrorSchema})
def add_user(request: HttpRequest, body: UserIn):
    return 201, get_app_state().add_user(body)


@api.put("/users/{user_id}", response={200: User, **ERRORS})
def update_user(request: HttpRequest, user_id: str, body: UserUpdate):
    return get_app_state().update_user(user_id, **body.model_dump(exclude_unset=True))


@api.patch("/users/{user_id}/status", response={200: User, **ERRORS})
def update_user_status(request: HttpRequest, user_id: str, body: UserStatusIn):
    return get_app_state().update_user_status(user_id, body.status)


@api.delete("/users/{user_id}", response={204: None, 404: ErrorSchema})
def remove_user(request: HttpRequest, user_id: str):
    get_app_state().remove_user(user_id)
    return 204, None


# Projects

@api.get("/projects", response=list[Project])
def list_projects(request: HttpRequest, status: Optional[str] = None, member_id: Optional[str] = None):
    return [
        p for p in get_app_state().projects()
        if (status is None or p.status == status) and (member_id is None or member_id in p.member_ids)
    ]


@api.post("/projects", response={201: Project, **ERRORS})
def add_project(request: HttpRequest, body: ProjectIn):
    """Create a project together with any tasks staged in the same form."""
    project = get_app_state().add_project(body, tasks=body.tasks, actor_id=body.created_by)
    return 201, project


@api.put("/projects/{project_id}", response={200: Project, **ERRORS})
def update_project(request: HttpRequest, project_id: str, body: ProjectUpdate):
    return get_app_state().update_project(project_id, **body.model_dump(exclude_unset=True))


@api.get("/projects/{project_id}/stats", response={200: ProjectStatsSchema, 404: ErrorSchema})
def project_stats(request: HttpRequest, project_id: str):
    return TimesheetSummaryService.project_stats(get_app_state(), project_id)


# Categories and tasks

@api.get("/categories", response=list[Category])
def list_categories(request: HttpRequest):
    return get_app_state().categories()


@api.post("/categories", response={201: Category, 400: ErrorSchema})
def add_category(request: HttpRequest, body: CategoryIn):
    return 201, get_app_state().add_category(body)


@api.get("/tasks", response=list[Task])
def list_tasks(request: HttpRequest, project_id: Optional[str] = None, assigned_to: Optional[str] = None):
    return get_app_state().tasks(project_id=project_id, assigned_to=assigned_to)


@api.post("/tasks", response={201: Task, **ERRORS})
def add_task(request: HttpRequest, body: TaskIn):
    return 201, get_app_state().add_task(body)


@api.put("/tasks/{task_id}", response={200: Task, **ERRORS})
def update_task(request: HttpRequest, task_id: str, body: TaskUpdate):
    return get_app_state().update_task(task_id, **body.model_dump(exclude_unset=True))


@api.patch("/tasks/{task_id}/status", response={200: Task, **ERRORS})
def update_task_status(request: HttpRequest, task_id: str, body: TaskStatusIn):
    return get_app_state().update_task_status(task_id, body.status)


@api.delete("/tasks/{task_id}", response={204: None, 404: ErrorSchema})
def remove_task(request: HttpRequest, task_id: str):
    get_app_state().remove_task(task_id)
    return 204, None


# Files

@api.get("/files", response=list[ProjectFile])
def list_files(request: HttpRequest, project_id: Optional[str] = None):
    return get_app_state().files(project_id=project_id)


@api.post("/files", response={201: ProjectFile, **ERRORS})
def add_file(request: HttpRequest, body: FileIn):
    return 201, get_app_state().add_file(body)


# Timesheets

@api.get("/timesheets", response=list[Timesheet])
def list_timesheets(request: HttpRequest, user_id: Optional[str] = None, status: Optional[str] = None):
    state = get_app_state()
    if user_id is not None and status is None:
        return state.user_timesheets(user_id)
    return state.timesheets(user_id=user_id, status=status)


@api.get("/timesheets/week", response={200: WeekEditorSchema, **ERRORS})
def week_editor(request: HttpRequest, user_id: str, week_start: Optional[date] = None):
    """
    Rows of a user's week as the editor shows them: saved rows, then any
    in-progress task not logged yet. Defaults to the current week.
    """
    state = get_app_state()
    if week_start is None:
        week_start = TimesheetEngine.week_start_for(state.now().date())
    return TimesheetService.week_editor(state, user_id, week_start)


@api.get("/timesheets/{timesheet_id}", response={200: Timesheet, 404: ErrorSchema})
def get_timesheet(request: HttpRequest, timesheet_id: str):
    return get_app_state().get_timesheet(timesheet_id)


@api.put("/timesheets/{timesheet_id}", response={200: Timesheet, **ERRORS})
def save_draft(request: HttpRequest, timesheet_id: str, body: SaveDraftIn):
    """Save rows of a draft or rejected timesheet, creating it when needed."""
    state = get_app_state()
    with state.locked():
        if state.has_timesheet(timesheet_id):
            TimesheetEngine.ensure_editable(state.get_timesheet(timesheet_id))
        return TimesheetService.save_draft(
            state,
            timesheet_id,
            body.entries,
            total=body.total_hours,
            user_id=body.user_id,
            week_start=body.week_start,
            expected_version=body.expected_version,
        )


@api.patch("/timesheets/{timesheet_id}/hours", response={200: Timesheet, **ERRORS})
def set_hours(request: HttpRequest, timesheet_id: str, body: HourCellIn):
    return TimesheetService.set_hours(get_app_state(), timesheet_id, body.row, body.day, body.value)


@api.post("/timesheets/{timesheet_id}/submit", response={200: Timesheet, **ERRORS})
def submit_timesheet(request: HttpRequest, timesheet_id: str):
    return ApprovalWorkflow.submit(get_app_state(), timesheet_id)


@api.post("/timesheets/{timesheet_id}/approve", response={200: Timesheet, **ERRORS})
def approve_timesheet(request: HttpRequest, timesheet_id: str, body: ReviewIn):
    return ApprovalWorkflow.approve(get_app_state(), timesheet_id, body.remarks, reviewer_id=body.reviewer_id)


@api.post("/timesheets/{timesheet_id}/reject", response={200: Timesheet, **ERRORS})
def reject_timesheet(request: HttpRequest, timesheet_id: str, body: ReviewIn):
    return ApprovalWorkflow.reject(get_app_state(), timesheet_id, body.remarks, reviewer_id=body.reviewer_id)


# Approval queue

@api.get("/approvals", response={200: list[Timesheet], 400: ErrorSchema})
def approval_queue(
    request: HttpRequest,
    status: Literal["all", "submitted", "approved", "rejected"] = "submitted",
):
    return ApprovalWorkflow.queue(get_app_state(), status)


@api.get("/approvals/counts", response=ApprovalCountsSchema)
def approval_counts(request: HttpRequest):
    return ApprovalWorkflow.counts(get_app_state())


@api.get("/approvals/daily", response=list[DailyReviewEntrySchema])
def daily_review(request: HttpRequest, day: date):
    """Entries of submitted timesheets logged on one day. Decisions still apply to whole weeks."""
    return ApprovalWorkflow.daily_entries_for(day, get_app_state().timesheets(status="submitted"))


# Summaries and reports

@api.get("/summary/daily", response={200: DailySummarySchema, **ERRORS})
def daily_summary(request: HttpRequest, user_id: str, day: date):
    return TimesheetSummaryService.daily_summary(get_app_state(), user_id, day)


@api.get("/summary/weekly", response={200: WeeklySummarySchema, **ERRORS})
def weekly_summary(request: HttpRequest, user_id: str, week_start: date):
    return TimesheetSummaryService.weekly_summary(get_app_state(), user_id, week_start)


@api.get("/summary/monthly", response={200: MonthlySummarySchema, **ERRORS})
def monthly_summary(request: HttpRequest, user_id: str, year: int, month: int):
    return TimesheetSummaryService.monthly_summary(get_app_state(), user_id, year, month)


@api.get("/reports/team-utilization", response={200: TeamUtilizationSchema, 400: ErrorSchema})
def team_utilization(request: HttpRequest, year: int, month: int):
    """
    Monthly hours per employee against target, plus team KPIs.

    KPIs returned:
    - utilization_rate: Total logged hours / sum of monthly targets
    - max_daily_load: Highest single-day total of any employee
    - gini_coefficient: How evenly hours are spread (0 = perfectly equal)
    """
    return TimesheetSummaryService.team_utilization(get_app_state(), year, month)


@api.get("/dashboard/{user_id}", response={200: DashboardSchema, 404: ErrorSchema})
def dashboard(request: HttpRequest, user_id: str):
    return TimesheetSummaryService.dashboard(get_app_state(), user_id)


@api.get("/audit-logs", response=list[AuditEvent])
def audit_logs(request: HttpRequest, search: str = "", role: str = "all"):
    return get_app_state().audit_log(search=search, role=role)
