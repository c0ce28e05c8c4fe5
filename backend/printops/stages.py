"""Status vocabularies shared by printers, tasks and progress logs."""

from __future__ import annotations

from enum import Enum

# purpose: replace ad hoc status string comparisons with enumerated lookups
# status: active


class PrinterStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class Stage(str, Enum):
    """Workflow state of a task, also used as the key of a progress stage.

    Tasks and progress logs persist their status as free text so that
    organizations can introduce their own stages; known values are parsed
    into this enum before any comparison.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    PAUSED = "paused"
    COMPLETED = "completed"
    PRODUCTION = "production"
    FINISHING = "finishing"
    APPLICATION = "application"
    DELAYED = "delayed"
    FINISHED = "finished"
    CANCELLED = "cancelled"


# labels used by the project report, mapped onto the stage they count
REPORT_STATUS_LABELS: dict[str, Stage] = {
    "planned": Stage.PENDING,
    "printing": Stage.PRODUCTION,
    "finishing": Stage.FINISHING,
    "installing": Stage.APPLICATION,
}

INACTIVE_PROJECT_STAGES = frozenset({Stage.CANCELLED, Stage.FINISHED})


def normalize_status(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def parse_stage(value: str | Stage | None) -> Stage | None:
    """Return the known stage for ``value`` or ``None`` for custom stages."""

    if isinstance(value, Stage):
        return value
    try:
        return Stage(normalize_status(value))
    except ValueError:
        return None


def is_completed(value: str | Stage | None) -> bool:
    return parse_stage(value) is Stage.COMPLETED


def same_stage(left: str | None, right: str | None) -> bool:
    """Compare two stored statuses, falling back to text for custom stages."""

    left_stage, right_stage = parse_stage(left), parse_stage(right)
    if left_stage is not None or right_stage is not None:
        return left_stage is right_stage
    return normalize_status(left) == normalize_status(right)
