import calendar
import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import DefaultDict, Iterable, Optional

import numpy as np
import pydantic
from django.conf import settings
from inequality import gini  # type: ignore

from .errors import InvalidStateTransition, NotFound, ValidationError
from .schemas import (
    DAYS_PER_WEEK, MAX_DAILY_HOURS,
    ApprovalCountsSchema, Category, DailyReviewEntrySchema, DailySummarySchema,
    DashboardSchema, EmployeeUtilizationSchema, MemberHoursSchema,
    MonthlySummarySchema, Project, ProjectStatsSchema, Task,
    TeamUtilizationSchema, Timesheet, TimesheetEntry, WeekEditorSchema,
    WeeklySummarySchema,
)
from .store import AppState

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("draft", "rejected")
REVIEW_STATUSES = ("submitted", "approved", "rejected")


def daily_target_hours() -> float:
    return float(getattr(settings, "TIMEPRO_DAILY_TARGET_HOURS", 8))


def timesheet_id_for(user_id: str, week_start: date) -> str:
    return f"ts_{user_id}_{week_start.isoformat()}"


class TimesheetEngine:
    """Pure operations on a week's entries. Inputs are never modified."""

    @staticmethod
    def week_start_for(day: date) -> date:
        """Monday of the week containing ``day``."""
        return day - timedelta(days=day.weekday())

    @staticmethod
    def validate_week_start(week_start: date) -> date:
        if week_start.weekday() != 0:
            raise ValidationError(f"week_start {week_start.isoformat()} is not a Monday")
        return week_start

    @staticmethod
    def week_dates(week_start: date) -> list[date]:
        return [week_start + timedelta(days=i) for i in range(DAYS_PER_WEEK)]

    @staticmethod
    def generate_date_columns(start_date: date, end_date: date) -> list[str]:
        """Generate list of date strings for table columns."""
        date_columns = []
        current_date = start_date
        while current_date <= end_date:
            date_columns.append(current_date.strftime('%d %b'))
            current_date += timedelta(days=1)
        return date_columns

    @staticmethod
    def blank_entry(project_id: str = "") -> TimesheetEntry:
        return TimesheetEntry(project_id=project_id)

    @staticmethod
    def normalize_entry(entry, task_lookup: dict[str, Task], category_ids: set[str]) -> TimesheetEntry:
        """
        Bring a stored entry into the current shape.

        Older rows kept a category id in ``task_id``; those become an
        uncategorized task with that category. Unknown task ids are dropped,
        and an explicit ``category_id`` always wins.
        """
        data = entry.model_dump() if isinstance(entry, TimesheetEntry) else dict(entry)
        stored_task_id = data.get("task_id") or ""
        task_id = ""
        category_id = ""

        if stored_task_id:
            task = task_lookup.get(stored_task_id)
            if task:
                task_id = task.id
                category_id = task.category_id
            elif stored_task_id in category_ids:
                category_id = stored_task_id
        if data.get("category_id"):
            category_id = data["category_id"]

        normalized = {
            "project_id": data.get("project_id") or "",
            "task_id": task_id,
            "category_id": category_id,
            "hours": list(data.get("hours") or [0] * DAYS_PER_WEEK),
        }
        if data.get("notes") is not None:
            normalized["notes"] = list(data["notes"])
        if data.get("progress") is not None:
            normalized["progress"] = list(data["progress"])
        return TimesheetEntry.model_validate(normalized)

    @staticmethod
    def upgrade_legacy_entry(entry: TimesheetEntry, task_ids: set[str], category_ids: set[str]) -> TimesheetEntry:
        """Move a category id stored in ``task_id`` to ``category_id``. Other rows come back as given."""
        if entry.task_id and entry.task_id not in task_ids and entry.task_id in category_ids:
            return entry.model_copy(update={
                "task_id": "",
                "category_id": entry.category_id or entry.task_id,
            })
        return entry

    @classmethod
    def merge_entries(
        cls,
        existing: Optional[Iterable],
        tasks: Iterable[Task],
        user_id: str,
        default_project: Optional[Project] = None,
        categories: Iterable[Category] = (),
    ) -> list[TimesheetEntry]:
        """
        Build the editable rows for a week.

        Saved rows come first, in order, followed by the user's in-progress
        tasks that no row covers yet. A week with neither gets one blank row
        on ``default_project``. No task id appears on two rows.
        """
        tasks = list(tasks)
        task_lookup = {task.id: task for task in tasks}
        category_ids = {category.id for category in categories}

        merged = []
        seen_task_ids = set()
        for entry in existing or []:
            row = cls.normalize_entry(entry, task_lookup, category_ids)
            if row.task_id in seen_task_ids:
                # keep the hours, drop the duplicate task reference
                row = row.model_copy(update={"task_id": ""})
            elif row.task_id:
                seen_task_ids.add(row.task_id)
            merged.append(row)

        for task in tasks:
            if task.assigned_to != user_id or task.status != "in-progress":
                continue
            if task.id in seen_task_ids:
                continue
            seen_task_ids.add(task.id)
            merged.append(TimesheetEntry(
                project_id=task.project_id,
                task_id=task.id,
                category_id=task.category_id or "",
            ))

        if not merged:
            merged.append(cls.blank_entry(default_project.id if default_project else ""))
        return merged

    @staticmethod
    def compute_row_total(entry: TimesheetEntry) -> float:
        return sum(entry.hours)

    @staticmethod
    def compute_day_total(entries: Iterable[TimesheetEntry], day_index: int) -> float:
        return sum(entry.hours[day_index] for entry in entries)

    @classmethod
    def compute_grand_total(cls, entries: Iterable[TimesheetEntry]) -> float:
        return sum(cls.compute_row_total(entry) for entry in entries)

    @staticmethod
    def clamp_hours(raw_value) -> float:
        """Coerce user input to an hour count in [0, 24]; anything unreadable is 0."""
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(value):
            return 0.0
        return min(float(MAX_DAILY_HOURS), max(0.0, value))

    @staticmethod
    def _check_cell(entries: list, row_index: int, day_index: int) -> None:
        if not 0 <= row_index < len(entries):
            raise ValidationError(f"row index {row_index} out of range")
        if not 0 <= day_index < DAYS_PER_WEEK:
            raise ValidationError(f"day index {day_index} out of range")

    @classmethod
    def _replace_cell(cls, entries, row_index: int, day_index: int, field: str, value) -> list[TimesheetEntry]:
        entries = list(entries)
        cls._check_cell(entries, row_index, day_index)
        updated = []
        for i, entry in enumerate(entries):
            entry = entry.model_copy(deep=True)
            if i == row_index:
                getattr(entry, field)[day_index] = value
            updated.append(entry)
        return updated

    @classmethod
    def update_hours(cls, entries, row_index: int, day_index: int, raw_value) -> list[TimesheetEntry]:
        return cls._replace_cell(entries, row_index, day_index, "hours", cls.clamp_hours(raw_value))

    @classmethod
    def update_note(cls, entries, row_index: int, day_index: int, note: str) -> list[TimesheetEntry]:
        return cls._replace_cell(entries, row_index, day_index, "notes", note or "")

    @classmethod
    def update_progress(cls, entries, row_index: int, day_index: int, raw_value) -> list[TimesheetEntry]:
        try:
            value = int(float(raw_value))
        except (TypeError, ValueError, OverflowError):
            value = 0
        return cls._replace_cell(entries, row_index, day_index, "progress", min(100, max(0, value)))

    @classmethod
    def update_entry_task(cls, entries, row_index: int, task_id: str, tasks: Iterable[Task]) -> list[TimesheetEntry]:
        """Point a row at a task; its category follows the task, or clears with it."""
        entries = list(entries)
        cls._check_cell(entries, row_index, 0)
        task = next((t for t in tasks if t.id == task_id), None) if task_id else None
        if task_id and task is None:
            raise NotFound("task", task_id)
        updated = [entry.model_copy(deep=True) for entry in entries]
        updated[row_index] = updated[row_index].model_copy(update={
            "task_id": task.id if task else "",
            "category_id": task.category_id if task else "",
        })
        return updated

    @classmethod
    def add_row(cls, entries, project_id: str = "") -> list[TimesheetEntry]:
        return [entry.model_copy(deep=True) for entry in entries] + [cls.blank_entry(project_id)]

    @staticmethod
    def remove_row(entries, row_index: int) -> list[TimesheetEntry]:
        entries = list(entries)
        if len(entries) <= 1:
            raise ValidationError("a timesheet keeps at least one row")
        if not 0 <= row_index < len(entries):
            raise ValidationError(f"row index {row_index} out of range")
        return [entry.model_copy(deep=True) for i, entry in enumerate(entries) if i != row_index]

    @staticmethod
    def editable(timesheet: Optional[Timesheet]) -> bool:
        """Whether hours, tasks and projects on the timesheet accept edits."""
        status = timesheet.status if timesheet else "draft"
        return status in EDITABLE_STATUSES

    @classmethod
    def ensure_editable(cls, timesheet: Timesheet) -> None:
        if not cls.editable(timesheet):
            raise InvalidStateTransition(
                f"timesheet '{timesheet.id}' is {timesheet.status} and cannot be edited"
            )


class TimesheetService:
    """Reading and saving one user's week against the application state."""

    @staticmethod
    def week_editor(state: AppState, user_id: str, week_start: date) -> WeekEditorSchema:
        """Rows, totals and status for the weekly grid of ``user_id``."""
        TimesheetEngine.validate_week_start(week_start)
        state.get_user(user_id)

        existing = state.find_timesheet(user_id, week_start)
        projects = state.user_projects(user_id)
        entries = TimesheetEngine.merge_entries(
            existing.entries if existing else None,
            state.tasks(),
            user_id,
            projects[0] if projects else None,
            state.categories(),
        )
        return WeekEditorSchema(
            timesheet_id=existing.id if existing else timesheet_id_for(user_id, week_start),
            user_id=user_id,
            week_start=week_start,
            status=existing.status if existing else "draft",
            editable=TimesheetEngine.editable(existing),
            exists=existing is not None,
            version=existing.version if existing else 0,
            entries=entries,
            row_totals=[TimesheetEngine.compute_row_total(e) for e in entries],
            day_totals=[TimesheetEngine.compute_day_total(entries, d) for d in range(DAYS_PER_WEEK)],
            grand_total=TimesheetEngine.compute_grand_total(entries),
        )

    @staticmethod
    def _check_entry_refs(state: AppState, entries: list[TimesheetEntry]) -> None:
        for entry in entries:
            if entry.project_id:
                state.get_project(entry.project_id)
            if entry.task_id:
                state.get_task(entry.task_id)
            if entry.category_id:
                state.get_category(entry.category_id)

    @classmethod
    def save_draft(
        cls,
        state: AppState,
        timesheet_id: str,
        entries: Iterable,
        total: Optional[float] = None,
        user_id: Optional[str] = None,
        week_start: Optional[date] = None,
        expected_version: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> Timesheet:
        """
        Store a week's rows, creating a draft timesheet when none exists.

        The status, timestamps and remarks of an existing timesheet are left
        alone. ``total``, when given, must match the rows.
        """
        try:
            entries = [
                entry.model_copy(deep=True) if isinstance(entry, TimesheetEntry)
                else TimesheetEntry.model_validate(entry)
                for entry in entries
            ]
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid timesheet entry: {exc}") from exc
        computed = TimesheetEngine.compute_grand_total(entries)
        if total is not None and not math.isclose(total, computed, abs_tol=1e-9):
            raise ValidationError(f"total {total} does not match the logged hours {computed}")

        with state.locked():
            task_ids = {task.id for task in state.tasks()}
            category_ids = {category.id for category in state.categories()}
            entries = [TimesheetEngine.upgrade_legacy_entry(e, task_ids, category_ids) for e in entries]
            cls._check_entry_refs(state, entries)
            if state.has_timesheet(timesheet_id):
                current = state.get_timesheet(timesheet_id)
                timesheet = current.model_copy(update={"entries": entries, "total_hours": computed})
                action = "timesheet.saved"
            else:
                if user_id is None or week_start is None:
                    raise ValidationError("a new timesheet needs user_id and week_start")
                state.get_user(user_id)
                TimesheetEngine.validate_week_start(week_start)
                timesheet = Timesheet(
                    id=timesheet_id,
                    user_id=user_id,
                    week_start=week_start,
                    status="draft",
                    entries=entries,
                    total_hours=computed,
                )
                action = "timesheet.created"
            saved = state.put_timesheet(timesheet, expected_version=expected_version)
            state.record(action, f"timesheet {timesheet_id}", actor_id or saved.user_id, total_hours=computed)

        logger.info("Saved timesheet %s (%s, %.2f h)", saved.id, saved.status, computed)
        return saved

    @classmethod
    def set_hours(
        cls,
        state: AppState,
        timesheet_id: str,
        row_index: int,
        day_index: int,
        raw_value,
        expected_version: Optional[int] = None,
    ) -> Timesheet:
        """Change one hour cell of an editable timesheet and save it."""
        with state.locked():
            timesheet = state.get_timesheet(timesheet_id)
            TimesheetEngine.ensure_editable(timesheet)
            entries = TimesheetEngine.update_hours(timesheet.entries, row_index, day_index, raw_value)
            return cls.save_draft(state, timesheet_id, entries, expected_version=expected_version)


class ApprovalWorkflow:
    """Status transitions: draft -> submitted -> approved | rejected, rejected -> submitted."""

    @staticmethod
    def submit(state: AppState, timesheet_id: str, actor_id: Optional[str] = None) -> Timesheet:
        with state.locked():
            timesheet = state.get_timesheet(timesheet_id)
            if timesheet.status not in EDITABLE_STATUSES:
                logger.warning("Refused to submit %s timesheet %s", timesheet.status, timesheet_id)
                raise InvalidStateTransition(
                    f"cannot submit timesheet '{timesheet_id}' while it is {timesheet.status}"
                )
            if TimesheetEngine.compute_grand_total(timesheet.entries) <= 0:
                raise ValidationError("log at least some hours before submitting")

            updated = timesheet.model_copy(update={"status": "submitted", "submitted_at": state.now()})
            saved = state.put_timesheet(updated)
            state.record("timesheet.submitted", f"timesheet {timesheet_id}", actor_id or saved.user_id)

        logger.info("Timesheet %s submitted by %s", timesheet_id, saved.user_id)
        return saved

    @staticmethod
    def _require_submitted(timesheet: Timesheet, action: str) -> None:
        if timesheet.status != "submitted":
            logger.warning("Refused to %s %s timesheet %s", action, timesheet.status, timesheet.id)
            raise InvalidStateTransition(
                f"cannot {action} timesheet '{timesheet.id}' while it is {timesheet.status}"
            )

    @classmethod
    def approve(
        cls,
        state: AppState,
        timesheet_id: str,
        remarks: Optional[str] = "",
        reviewer_id: Optional[str] = None,
    ) -> Timesheet:
        with state.locked():
            timesheet = state.get_timesheet(timesheet_id)
            cls._require_submitted(timesheet, "approve")
            updated = timesheet.model_copy(update={
                "status": "approved",
                "approved_at": state.now(),
                "remarks": remarks or "",
            })
            saved = state.put_timesheet(updated)
            state.record("timesheet.approved", f"timesheet {timesheet_id}", reviewer_id, remarks=saved.remarks)

        logger.info("Timesheet %s approved", timesheet_id)
        return saved

    @classmethod
    def reject(
        cls,
        state: AppState,
        timesheet_id: str,
        remarks: Optional[str],
        reviewer_id: Optional[str] = None,
    ) -> Timesheet:
        if not (remarks or "").strip():
            raise ValidationError("rejection reason required")

        with state.locked():
            timesheet = state.get_timesheet(timesheet_id)
            cls._require_submitted(timesheet, "reject")
            updated = timesheet.model_copy(update={"status": "rejected", "remarks": remarks})
            saved = state.put_timesheet(updated)
            state.record("timesheet.rejected", f"timesheet {timesheet_id}", reviewer_id, remarks=remarks)

        logger.info("Timesheet %s rejected", timesheet_id)
        return saved

    @staticmethod
    def daily_entries_for(day: date, timesheets: Iterable[Timesheet]) -> list[DailyReviewEntrySchema]:
        """
        Entries of submitted timesheets that log hours on ``day``.

        Read-only: any decision taken from this view applies to the whole
        parent timesheet.
        """
        projected = []
        for timesheet in timesheets:
            if timesheet.status != "submitted":
                continue
            day_index = (day - timesheet.week_start).days
            if not 0 <= day_index < DAYS_PER_WEEK:
                continue
            for entry in timesheet.entries:
                day_hours = entry.hours[day_index]
                if day_hours <= 0:
                    continue
                projected.append(DailyReviewEntrySchema(
                    timesheet_id=timesheet.id,
                    user_id=timesheet.user_id,
                    week_start=timesheet.week_start,
                    day_index=day_index,
                    project_id=entry.project_id,
                    task_id=entry.task_id,
                    category_id=entry.category_id,
                    day_hours=day_hours,
                    note=entry.notes[day_index],
                    progress=entry.progress[day_index],
                ))
        return projected

    @staticmethod
    def queue(state: AppState, status: str = "submitted") -> list[Timesheet]:
        """Timesheets in review (drafts are never shown), optionally one status only."""
        if status != "all" and status not in REVIEW_STATUSES:
            raise ValidationError(f"unknown review status '{status}'")
        return [
            t for t in state.timesheets()
            if t.status != "draft" and (status == "all" or t.status == status)
        ]

    @staticmethod
    def counts(state: AppState) -> ApprovalCountsSchema:
        in_review = [t for t in state.timesheets() if t.status != "draft"]
        return ApprovalCountsSchema(
            all=len(in_review),
            submitted=sum(1 for t in in_review if t.status == "submitted"),
            approved=sum(1 for t in in_review if t.status == "approved"),
            rejected=sum(1 for t in in_review if t.status == "rejected"),
        )


class TimesheetSummaryService:
    """Daily, weekly and monthly views plus the project and team reports."""

    @staticmethod
    def daily_summary(state: AppState, user_id: str, day: date) -> DailySummarySchema:
        state.get_user(user_id)
        timesheet = state.find_timesheet(user_id, TimesheetEngine.week_start_for(day))
        entries = timesheet.entries if timesheet else []
        day_index = day.weekday()
        total = TimesheetEngine.compute_day_total(entries, day_index)
        target = daily_target_hours()
        return DailySummarySchema(
            user_id=user_id,
            day=day,
            total_hours=total,
            target_hours=target,
            progress_percent=min(100, round(total / target * 100)) if target > 0 else 0,
            entries=sum(1 for e in entries if e.hours[day_index] > 0),
        )

    @staticmethod
    def weekly_summary(state: AppState, user_id: str, week_start: date) -> WeeklySummarySchema:
        TimesheetEngine.validate_week_start(week_start)
        state.get_user(user_id)
        timesheet = state.find_timesheet(user_id, week_start)
        entries = timesheet.entries if timesheet else []

        date_columns = TimesheetEngine.generate_date_columns(week_start, week_start + timedelta(days=6))
        daily_hours = {
            column: TimesheetEngine.compute_day_total(entries, day_index)
            for day_index, column in enumerate(date_columns)
        }
        return WeeklySummarySchema(
            user_id=user_id,
            week_start=week_start,
            status=timesheet.status if timesheet else "draft",
            editable=TimesheetEngine.editable(timesheet),
            date_columns=date_columns,
            daily_hours=daily_hours,
            row_totals=[TimesheetEngine.compute_row_total(e) for e in entries],
            total_hours=TimesheetEngine.compute_grand_total(entries),
        )

    @staticmethod
    def month_range(year: int, month: int) -> tuple[date, date]:
        if not 1 <= month <= 12:
            raise ValidationError(f"month {month} out of range")
        start = date(year, month, 1)
        if month == 12:
            end = date(year + 1, 1, 1) - timedelta(days=1)
        else:
            end = date(year, month + 1, 1) - timedelta(days=1)
        return start, end

    @classmethod
    def _hours_by_day(cls, timesheets: Iterable[Timesheet], start: date, end: date):
        """Yield (day, row key, entry, hours) for every day with hours between start and end."""
        for timesheet in timesheets:
            for day_index, day in enumerate(TimesheetEngine.week_dates(timesheet.week_start)):
                if not start <= day <= end:
                    continue
                for row_index, entry in enumerate(timesheet.entries):
                    if entry.hours[day_index] > 0:
                        yield day, (timesheet.id, row_index), entry, entry.hours[day_index]

    @classmethod
    def monthly_summary(cls, state: AppState, user_id: str, year: int, month: int) -> MonthlySummarySchema:
        """Hours inside the month only; weeks crossing the month boundary are split."""
        state.get_user(user_id)
        start, end = cls.month_range(year, month)
        date_columns = TimesheetEngine.generate_date_columns(start, end)

        daily_hours: DefaultDict[str, float] = defaultdict(float)
        by_project: DefaultDict[str, float] = defaultdict(float)
        logged_entries = set()
        for day, row_key, entry, hours in cls._hours_by_day(state.timesheets(user_id=user_id), start, end):
            daily_hours[day.strftime('%d %b')] += hours
            by_project[entry.project_id] += hours
            logged_entries.add(row_key)

        return MonthlySummarySchema(
            user_id=user_id,
            year=year,
            month=month,
            total_hours=sum(daily_hours.values()),
            daily_hours={column: daily_hours.get(column, 0.0) for column in date_columns},
            by_project=dict(by_project),
            entries=len(logged_entries),
        )

    @staticmethod
    def project_stats(state: AppState, project_id: str) -> ProjectStatsSchema:
        project = state.get_project(project_id)

        member_hours: DefaultDict[str, float] = defaultdict(float)
        total_logged = 0.0
        for timesheet in state.timesheets():
            hours = sum(
                TimesheetEngine.compute_row_total(e)
                for e in timesheet.entries if e.project_id == project_id
            )
            total_logged += hours
            if hours > 0:
                member_hours[timesheet.user_id] += hours

        members = [
            MemberHoursSchema(user_id=u.id, name=u.name, logged_hours=member_hours.get(u.id, 0.0))
            for u in state.users() if u.id in project.member_ids
        ]
        members.sort(key=lambda m: m.logged_hours, reverse=True)

        project_tasks = state.tasks(project_id=project_id)
        budget_progress = min(total_logged / project.budget * 100, 100) if project.budget > 0 else 0
        return ProjectStatsSchema(
            project_id=project_id,
            total_hours_logged=total_logged,
            budget=project.budget,
            budget_progress=round(budget_progress, 1),
            total_tasks=len(project_tasks),
            completed_tasks=sum(1 for t in project_tasks if t.status == "completed"),
            members=members,
            files=state.files(project_id=project_id),
        )

    @staticmethod
    def weekdays_in_month(year: int, month: int) -> int:
        _, days = calendar.monthrange(year, month)
        return sum(1 for d in range(1, days + 1) if date(year, month, d).weekday() < 5)

    @classmethod
    def team_utilization(cls, state: AppState, year: int, month: int) -> TeamUtilizationSchema:
        """Logged hours against target for every active employee and manager."""
        start, end = cls.month_range(year, month)
        target = cls.weekdays_in_month(year, month) * daily_target_hours()
        people = [u for u in state.users() if u.status == "active" and u.role != "admin"]

        employees = []
        max_daily_load = 0.0
        for person in people:
            per_day: DefaultDict[date, float] = defaultdict(float)
            for day, _, _, hours in cls._hours_by_day(state.timesheets(user_id=person.id), start, end):
                per_day[day] += hours
            hours = sum(per_day.values())
            max_daily_load = max([max_daily_load, *per_day.values()])
            employees.append(EmployeeUtilizationSchema(
                user_id=person.id,
                name=person.name,
                hours=hours,
                target=target,
                rate=round(hours / target, 3) if target else 0.0,
            ))

        total_hours = sum(e.hours for e in employees)
        max_possible_hours = (target * len(employees)) or 1
        return TeamUtilizationSchema(
            year=year,
            month=month,
            employees=employees,
            utilization_rate=round(total_hours / max_possible_hours, 3),
            max_daily_load=max_daily_load,
            gini_coefficient=round(cls._calculate_gini_coefficient([e.hours for e in employees]), 3),
            total_hours=total_hours,
        )

    @staticmethod
    def _calculate_gini_coefficient(values):
        """Calculate Gini coefficient for a list of values."""
        if not values or len(values) == 1 or not any(values):
            return 0.0
        return float(gini.Gini(np.asarray(values, dtype=float)).g)

    @staticmethod
    def dashboard(state: AppState, user_id: str) -> DashboardSchema:
        """Headline numbers for the user's role."""
        user = state.get_user(user_id)
        timesheets = state.timesheets()
        projects = state.projects()
        pending = sum(1 for t in timesheets if t.status == "submitted")
        active_projects = sum(1 for p in projects if p.status == "active")

        if user.role == "employee":
            mine = [t for t in timesheets if t.user_id == user_id]
            this_week = TimesheetEngine.week_start_for(state.now().date())
            current = next((t for t in mine if t.week_start == this_week), None)
            metrics = {
                "week_hours": current.total_hours if current else 0.0,
                "submitted": sum(1 for t in mine if t.status == "submitted"),
                "approved": sum(1 for t in mine if t.status == "approved"),
                "rejected": sum(1 for t in mine if t.status == "rejected"),
                "projects": sum(1 for p in projects if user_id in p.member_ids),
            }
        elif user.role == "manager":
            metrics = {
                "pending_approvals": pending,
                "team_size": sum(1 for u in state.users() if u.role == "employee"),
                "active_projects": active_projects,
            }
        else:
            metrics = {
                "active_users": sum(1 for u in state.users() if u.status == "active"),
                "active_projects": active_projects,
                "pending_approvals": pending,
                "total_hours": sum(t.total_hours for t in timesheets),
            }
        return DashboardSchema(user_id=user_id, role=user.role, metrics=metrics)
