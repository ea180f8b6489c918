class TimesheetError(Exception):
    """Base class for recoverable errors surfaced to the caller."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TimesheetError):
    """Input breaks a business rule (blank rejection reason, zero hours, bad index)."""
    kind = "validation_error"
    status_code = 400


class InvalidStateTransition(TimesheetError):
    """Operation is not allowed from the timesheet's current status."""
    kind = "invalid_state_transition"
    status_code = 409


class VersionConflict(InvalidStateTransition):
    """Timesheet changed since the caller last read it."""
    kind = "version_conflict"


class NotFound(TimesheetError):
    """Referenced user/project/task/category/timesheet does not exist."""
    kind = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} '{resource_id}' not found")
        self.resource = resource
        self.resource_id = resource_id
