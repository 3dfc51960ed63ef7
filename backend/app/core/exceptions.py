class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class UnsatisfiableInstanceError(SchedulerError):
    """Raised when the solver is given no rooms, no time slots or no days."""

class GenerationValidationError(AppError):
    """Raised when a generation request lacks its academic year or semester."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class EmptyScheduleError(AppError):
    """Raised when a run ends without any entry to commit."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class GenerationCancelledError(AppError):
    """Raised when a queued run is cancelled before its schedule is persisted."""
    def __init__(self, job_id: str):
        super().__init__(f"Generation job {job_id} was cancelled before persistence", status_code=409, details={"job_id": job_id})

class ReferenceDataError(AppError):
    """Raised when a stored time slot or lecturer row cannot be used by a run."""
    def __init__(self, resource_type: str, resource_id: str, reason: str):
        super().__init__(
            f"Invalid {resource_type} reference data {resource_id}: {reason}",
            status_code=422,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
