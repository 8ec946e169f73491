"""
Error codes and cross-record validation for submitted planner data.

Field-level checks are done by the DRF serializers; this module covers what
a single field cannot see (duplicate ids, self-parenting) and can also be
used directly on raw dicts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .prioritization import TASK_LEVELS, TASK_PRIORITIES, TASK_STATUSES, parse_due_date


class ErrorCode(Enum):
    """Error codes returned in API error bodies."""
    SUCCESS = "SUCCESS"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_MISSING_FIELD = "ERR_MISSING_FIELD"
    ERR_INVALID_DATE = "ERR_INVALID_DATE"
    ERR_INVALID_STATUS = "ERR_INVALID_STATUS"
    ERR_INVALID_PRIORITY = "ERR_INVALID_PRIORITY"
    ERR_INVALID_TASK_LEVEL = "ERR_INVALID_TASK_LEVEL"
    ERR_DUPLICATE_ID = "ERR_DUPLICATE_ID"
    ERR_SELF_PARENT = "ERR_SELF_PARENT"
    ERR_EMPTY_TASKS = "ERR_EMPTY_TASKS"
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_RECOMMENDATION_NOT_FOUND = "ERR_RECOMMENDATION_NOT_FOUND"
    ERR_INVALID_TIME_WINDOW = "ERR_INVALID_TIME_WINDOW"


class PlannerError(Exception):
    """Base class for domain errors raised by the planner engines."""
    code = ErrorCode.ERR_INVALID_INPUT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TaskNotFound(PlannerError):
    code = ErrorCode.ERR_TASK_NOT_FOUND


class RecommendationNotFound(PlannerError):
    code = ErrorCode.ERR_RECOMMENDATION_NOT_FOUND


@dataclass
class ValidationError:
    """Structured validation error with code and details."""
    code: ErrorCode
    message: str
    field: Optional[str] = None
    task_id: Optional[str] = None

    def to_dict(self) -> Dict:
        result = {
            'error_code': self.code.value,
            'message': self.message
        }
        if self.field:
            result['field'] = self.field
        if self.task_id is not None:
            result['task_id'] = self.task_id
        return result


def validate_tasks(tasks: List[Dict]) -> List[ValidationError]:
    """
    Validate a list of task records and return any errors found.

    An empty list is valid: the scorer simply has nothing to recommend.
    """
    errors = []
    seen_ids = set()

    for i, task in enumerate(tasks):
        raw_id = task.get('id')
        task_id = str(raw_id) if raw_id is not None else str(i + 1)

        if not str(task.get('title') or '').strip():
            errors.append(ValidationError(
                code=ErrorCode.ERR_MISSING_FIELD,
                message="Task title is required and cannot be empty",
                field='title',
                task_id=task_id
            ))

        status = task.get('status', 'pending')
        if status not in TASK_STATUSES:
            errors.append(ValidationError(
                code=ErrorCode.ERR_INVALID_STATUS,
                message=f"Status must be one of {', '.join(TASK_STATUSES)}",
                field='status',
                task_id=task_id
            ))

        priority = task.get('priority', 'medium')
        if priority not in TASK_PRIORITIES:
            errors.append(ValidationError(
                code=ErrorCode.ERR_INVALID_PRIORITY,
                message=f"Priority must be one of {', '.join(TASK_PRIORITIES)}",
                field='priority',
                task_id=task_id
            ))

        level = task.get('task_level', 1)
        if level not in TASK_LEVELS:
            errors.append(ValidationError(
                code=ErrorCode.ERR_INVALID_TASK_LEVEL,
                message="Task level must be 1 (task), 2 (subtask) or 3 (microtask)",
                field='task_level',
                task_id=task_id
            ))

        try:
            parse_due_date(task.get('due_date'))
        except (TypeError, ValueError):
            errors.append(ValidationError(
                code=ErrorCode.ERR_INVALID_DATE,
                message="Due date must be an ISO date (YYYY-MM-DD) or datetime",
                field='due_date',
                task_id=task_id
            ))

        if raw_id is None:
            continue

        parent_id = task.get('parent_task_id')
        if parent_id is not None and str(parent_id) == str(raw_id):
            errors.append(ValidationError(
                code=ErrorCode.ERR_SELF_PARENT,
                message="A task cannot be its own parent",
                field='parent_task_id',
                task_id=task_id
            ))

        if str(raw_id) in seen_ids:
            errors.append(ValidationError(
                code=ErrorCode.ERR_DUPLICATE_ID,
                message=f"Duplicate task ID: {raw_id}",
                field='id',
                task_id=task_id
            ))
        seen_ids.add(str(raw_id))

    return errors
