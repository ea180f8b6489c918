import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional

from django.conf import settings

from .errors import NotFound, ValidationError, VersionConflict
from .schemas import (
    AuditEvent, Category, Project, ProjectFile, Task, Timesheet, User,
)

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    """Collision-free record id, e.g. ``task_1f3c9a0b2d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _copy(record):
    return record.model_copy(deep=True)


def _revalidate(model, current, changes: dict):
    # Build the replacement through validation so bad edits never reach the store
    data = current.model_dump()
    data.update(changes)
    data["id"] = current.id
    return model.model_validate(data)


class AppState:
    """
    Process-wide application state: the entity collections plus every
    mutation the view layer may perform on them.

    The state is the only writer of its collections. Mutations validate
    first, then replace whole records under a re-entrant lock, so readers
    never see a half-applied change. Everything handed out is a copy.
    """

    def __init__(
        self,
        users: Iterable[User] = (),
        projects: Iterable[Project] = (),
        categories: Iterable[Category] = (),
        tasks: Iterable[Task] = (),
        timesheets: Iterable[Timesheet] = (),
        files: Iterable[ProjectFile] = (),
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[str], str] = new_id,
    ):
        self._users: dict[str, User] = {u.id: u for u in users}
        self._projects: dict[str, Project] = {p.id: p for p in projects}
        self._categories: dict[str, Category] = {c.id: c for c in categories}
        self._tasks: dict[str, Task] = {t.id: t for t in tasks}
        self._timesheets: dict[str, Timesheet] = {}
        self._files: dict[str, ProjectFile] = {f.id: f for f in files}
        self._audit: list[AuditEvent] = []
        self._lock = threading.RLock()
        self.clock = clock or utcnow
        self.new_id = id_factory

        for timesheet in timesheets:
            self._check_week_unique(timesheet)
            self._timesheets[timesheet.id] = timesheet

    def load_records(self, **collections) -> dict[str, int]:
        """Add fixture records whose ids are not taken yet. Returns how many were added per collection."""
        targets = {
            "users": self._users,
            "projects": self._projects,
            "categories": self._categories,
            "tasks": self._tasks,
            "timesheets": self._timesheets,
            "files": self._files,
        }
        added = {}
        with self._lock:
            for name, records in collections.items():
                target = targets[name]
                added[name] = 0
                for record in records:
                    if record.id in target:
                        continue
                    if name == "timesheets":
                        self._check_week_unique(record)
                    target[record.id] = record
                    added[name] += 1
        return added

    @contextmanager
    def locked(self):
        """Hold the writer lock across a read-validate-write sequence."""
        with self._lock:
            yield self

    def now(self) -> datetime:
        return self.clock()

    # Users

    def users(self) -> list[User]:
        return [_copy(u) for u in self._users.values()]

    def get_user(self, user_id: str) -> User:
        try:
            return _copy(self._users[user_id])
        except KeyError:
            raise NotFound("user", user_id) from None

    def add_user(self, data, actor_id: Optional[str] = None) -> User:
        fields = dict(data) if isinstance(data, dict) else data.model_dump()
        fields.setdefault("join_date", None)
        if fields["join_date"] is None:
            fields["join_date"] = self.now().date()
        with self._lock:
            user = User.model_validate({**fields, "id": self.new_id("u"), "status": "active"})
            self._users[user.id] = user
            self.record("user.added", f"user {user.id}", actor_id, name=user.name, role=user.role)
        logger.info("Added user %s (%s)", user.id, user.role)
        return _copy(user)

    def update_user(self, user_id: str, actor_id: Optional[str] = None, **changes) -> User:
        with self._lock:
            user = _revalidate(User, self._get(self._users, "user", user_id), changes)
            self._users[user_id] = user
            self.record("user.updated", f"user {user_id}", actor_id, fields=sorted(changes))
        return _copy(user)

    def update_user_status(self, user_id: str, status: str, actor_id: Optional[str] = None) -> User:
        return self.update_user(user_id, actor_id=actor_id, status=status)

    def remove_user(self, user_id: str, actor_id: Optional[str] = None) -> None:
        """Delete a user and drop them from every project roster. Timesheets are kept."""
        with self._lock:
            self._get(self._users, "user", user_id)
            del self._users[user_id]
            for project in list(self._projects.values()):
                if user_id in project.member_ids:
                    members = [m for m in project.member_ids if m != user_id]
                    self._projects[project.id] = project.model_copy(update={"member_ids": members})
            self.record("user.removed", f"user {user_id}", actor_id)
        logger.info("Removed user %s", user_id)

    # Projects

    def projects(self) -> list[Project]:
        return [_copy(p) for p in self._projects.values()]

    def get_project(self, project_id: str) -> Project:
        try:
            return _copy(self._projects[project_id])
        except KeyError:
            raise NotFound("project", project_id) from None

    def user_projects(self, user_id: str) -> list[Project]:
        """Active projects the user is a member of, in store order."""
        return [
            _copy(p) for p in self._projects.values()
            if p.status == "active" and user_id in p.member_ids
        ]

    def add_project(self, data, tasks: Iterable = (), actor_id: Optional[str] = None) -> Project:
        """Create a project, plus any tasks staged with it. New projects start with nothing spent."""
        fields = dict(data) if isinstance(data, dict) else data.model_dump()
        fields.pop("tasks", None)
        fields.pop("created_by", None)
        staged = [dict(t) if isinstance(t, dict) else t.model_dump() for t in tasks]
        with self._lock:
            if not fields.get("member_ids") and actor_id:
                fields["member_ids"] = [actor_id]
            project = Project.model_validate({**fields, "id": self.new_id("p"), "spent": 0})
            self._check_members(project.member_ids)
            new_tasks = [
                Task.model_validate({
                    **task,
                    "category_id": task.get("category_id") or self._default_category_id(),
                    "id": self.new_id("task"),
                    "project_id": project.id,
                    "status": "pending",
                    "due_date": project.end_date,
                })
                for task in staged
            ]
            for task in new_tasks:
                self._get(self._categories, "category", task.category_id)
                if task.assigned_to:
                    self._get(self._users, "user", task.assigned_to)

            self._projects[project.id] = project
            self.record("project.added", f"project {project.id}", actor_id, name=project.name)
            for task in new_tasks:
                self._tasks[task.id] = task
                self.record("task.added", f"task {task.id}", actor_id, name=task.name)
        logger.info("Added project %s with %d task(s)", project.id, len(new_tasks))
        return _copy(project)

    def update_project(self, project_id: str, actor_id: Optional[str] = None, **changes) -> Project:
        with self._lock:
            project = _revalidate(Project, self._get(self._projects, "project", project_id), changes)
            self._check_members(project.member_ids)
            self._projects[project_id] = project
            self.record("project.updated", f"project {project_id}", actor_id, fields=sorted(changes))
        return _copy(project)

    def _default_category_id(self) -> str:
        """Category for staged tasks created without one: the first in the store."""
        try:
            return next(iter(self._categories))
        except StopIteration:
            raise ValidationError("no category exists for the staged task") from None

    def _check_members(self, member_ids: list[str]) -> None:
        for member_id in member_ids:
            self._get(self._users, "user", member_id)

    # Categories

    def categories(self) -> list[Category]:
        """Categories with ``count`` recalculated from the current tasks."""
        counts: dict[str, int] = {}
        for task in self._tasks.values():
            counts[task.category_id] = counts.get(task.category_id, 0) + 1
        return [
            c.model_copy(update={"count": counts.get(c.id, 0)})
            for c in self._categories.values()
        ]

    def get_category(self, category_id: str) -> Category:
        self._get(self._categories, "category", category_id)
        return next(c for c in self.categories() if c.id == category_id)

    def add_category(self, data, actor_id: Optional[str] = None) -> Category:
        fields = dict(data) if isinstance(data, dict) else data.model_dump()
        with self._lock:
            category = Category.model_validate({**fields, "id": self.new_id("tc"), "count": 0})
            self._categories[category.id] = category
            self.record("category.added", f"category {category.id}", actor_id, name=category.name)
        return _copy(category)

    # Tasks

    def tasks(self, project_id: Optional[str] = None, assigned_to: Optional[str] = None) -> list[Task]:
        return [
            _copy(t) for t in self._tasks.values()
            if (project_id is None or t.project_id == project_id)
            and (assigned_to is None or t.assigned_to == assigned_to)
        ]

    def get_task(self, task_id: str) -> Task:
        try:
            return _copy(self._tasks[task_id])
        except KeyError:
            raise NotFound("task", task_id) from None

    def add_task(self, data, actor_id: Optional[str] = None) -> Task:
        fields = dict(data) if isinstance(data, dict) else data.model_dump()
        with self._lock:
            task = Task.model_validate({"status": "pending", **fields, "id": self.new_id("task")})
            self._check_task_refs(task)
            self._tasks[task.id] = task
            self.record("task.added", f"task {task.id}", actor_id, name=task.name)
        logger.info("Added task %s to project %s", task.id, task.project_id)
        return _copy(task)

    def update_task(self, task_id: str, actor_id: Optional[str] = None, **changes) -> Task:
        with self._lock:
            task = _revalidate(Task, self._get(self._tasks, "task", task_id), changes)
            self._check_task_refs(task)
            self._tasks[task_id] = task
            self.record("task.updated", f"task {task_id}", actor_id, fields=sorted(changes))
        return _copy(task)

    def update_task_status(self, task_id: str, status: str, actor_id: Optional[str] = None) -> Task:
        return self.update_task(task_id, actor_id=actor_id, status=status)

    def remove_task(self, task_id: str, actor_id: Optional[str] = None) -> None:
        with self._lock:
            self._get(self._tasks, "task", task_id)
            del self._tasks[task_id]
            self.record("task.removed", f"task {task_id}", actor_id)
        logger.info("Removed task %s", task_id)

    def _check_task_refs(self, task: Task) -> None:
        self._get(self._projects, "project", task.project_id)
        self._get(self._categories, "category", task.category_id)
        if task.assigned_to:
            self._get(self._users, "user", task.assigned_to)

    # Files

    def files(self, project_id: Optional[str] = None) -> list[ProjectFile]:
        return [
            _copy(f) for f in self._files.values()
            if project_id is None or f.project_id == project_id
        ]

    def add_file(self, data, actor_id: Optional[str] = None) -> ProjectFile:
        fields = dict(data) if isinstance(data, dict) else data.model_dump()
        with self._lock:
            record = ProjectFile.model_validate({
                **fields, "id": self.new_id("f"), "uploaded_at": self.now(),
            })
            self._get(self._projects, "project", record.project_id)
            self._files[record.id] = record
            self.record("file.added", f"file {record.id}", actor_id or record.uploaded_by, name=record.name)
        return _copy(record)

    # Timesheets

    def timesheets(self, user_id: Optional[str] = None, status: Optional[str] = None) -> list[Timesheet]:
        return [
            _copy(t) for t in self._timesheets.values()
            if (user_id is None or t.user_id == user_id)
            and (status is None or t.status == status)
        ]

    def user_timesheets(self, user_id: str) -> list[Timesheet]:
        """A user's timesheet history, newest week first."""
        return sorted(self.timesheets(user_id=user_id), key=lambda t: t.week_start, reverse=True)

    def get_timesheet(self, timesheet_id: str) -> Timesheet:
        try:
            return _copy(self._timesheets[timesheet_id])
        except KeyError:
            raise NotFound("timesheet", timesheet_id) from None

    def has_timesheet(self, timesheet_id: str) -> bool:
        return timesheet_id in self._timesheets

    def find_timesheet(self, user_id: str, week_start: date) -> Optional[Timesheet]:
        for timesheet in self._timesheets.values():
            if timesheet.user_id == user_id and timesheet.week_start == week_start:
                return _copy(timesheet)
        return None

    def put_timesheet(self, timesheet: Timesheet, expected_version: Optional[int] = None) -> Timesheet:
        """Insert or replace a timesheet, bumping its version."""
        with self._lock:
            current = self._timesheets.get(timesheet.id)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                raise VersionConflict(
                    f"timesheet '{timesheet.id}' is at version {current_version}, "
                    f"expected {expected_version}"
                )
            self._check_week_unique(timesheet)
            stored = timesheet.model_copy(update={"version": current_version + 1}, deep=True)
            self._timesheets[stored.id] = stored
        return _copy(stored)

    def _check_week_unique(self, timesheet: Timesheet) -> None:
        for other in self._timesheets.values():
            if (other.id != timesheet.id and other.user_id == timesheet.user_id
                    and other.week_start == timesheet.week_start):
                raise ValidationError(
                    f"user '{timesheet.user_id}' already has timesheet '{other.id}' "
                    f"for week {timesheet.week_start.isoformat()}"
                )

    # Audit trail

    def record(self, action: str, target: str, actor_id: Optional[str] = None, **details) -> AuditEvent:
        event = AuditEvent(
            id=self.new_id("log"),
            timestamp=self.now(),
            actor_id=actor_id,
            action=action,
            target=target,
            details=details,
        )
        with self._lock:
            self._audit.append(event)
        return event

    def audit_log(self, search: str = "", role: str = "all") -> list[AuditEvent]:
        """Audit events, newest first, matching a search term and the actor's role."""
        term = search.lower()
        events = []
        for event in reversed(self._audit):
            actor = self._users.get(event.actor_id) if event.actor_id else None
            actor_name = actor.name if actor else "System"
            if term and not any(term in text.lower() for text in (actor_name, event.action, event.target)):
                continue
            actor_role = actor.role if actor else "system"
            if role != "all" and actor_role != role:
                continue
            events.append(_copy(event))
        return events

    @staticmethod
    def _get(collection: dict, resource: str, record_id: str):
        try:
            return collection[record_id]
        except KeyError:
            raise NotFound(resource, record_id) from None


_state: Optional[AppState] = None
_state_lock = threading.Lock()


def get_app_state() -> AppState:
    """The application session's state, seeded from ``TIMEPRO_SEED_DIR`` on first use."""
    global _state
    with _state_lock:
        if _state is None:
            from .seed import load_seed_data
            _state = load_seed_data(settings.TIMEPRO_SEED_DIR)
        return _state


def reset_app_state(state: Optional[AppState] = None) -> AppState:
    global _state
    with _state_lock:
        _state = state if state is not None else AppState()
        return _state
