"""Error hierarchy shared by the production services."""


class ProductionError(RuntimeError):
    """Base error for printer, task and project operations."""


class NotFoundError(ProductionError):
    """Raised when an entity is absent from the caller's organization."""


class PrinterNotFound(NotFoundError):
    pass


class TaskNotFound(NotFoundError):
    pass


class ProjectNotFound(NotFoundError):
    pass


class ProgressLogNotFound(NotFoundError):
    pass


class MaterialNotFound(NotFoundError):
    pass


class InvalidTransition(ProductionError):
    """Raised for malformed statuses or inputs; nothing is persisted."""


class ConflictingAssignment(ProductionError):
    """Raised when a printer already holds a different task."""


class TaskLifecycleError(ProductionError):
    """Raised when a task cannot be started or ended in its current state."""


class DuplicateStage(ProductionError):
    """Raised when a progress log repeats the project's current stage."""


class PermissionDenied(ProductionError):
    """Raised when the caller may not act on a task."""
