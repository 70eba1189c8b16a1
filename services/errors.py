from __future__ import annotations

from typing import Any, Dict, List, Optional

DELETE_BLOCKED_PREFIX = "Cannot delete: "


class CrmError(Exception):
    """Domain failure with a message that is safe to show to the caller."""

    status_code = 400
    code = "crm_error"


class NotFoundError(CrmError):
    status_code = 404
    code = "not_found"


class ValidationError(CrmError):
    code = "validation_error"


class DuplicateError(CrmError):
    status_code = 409
    code = "duplicate"


class DependencyBlockedError(CrmError):
    code = "dependency_blocked"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{DELETE_BLOCKED_PREFIX}{detail}")


class WorkflowStepError(CrmError):
    """
    A workflow stopped part-way. Completed steps are not undone; ``completed``
    lists what was written so the run can be reconciled out of band.
    """

    status_code = 500
    code = "workflow_step_failed"

    def __init__(self, step: str, completed: List[str], written: Optional[Dict[str, Any]] = None) -> None:
        self.step = step
        self.completed = list(completed)
        self.written = dict(written or {})
        super().__init__(f"Workflow stopped at step '{step}' after {len(self.completed)} completed step(s)")


class ProfileGenerationError(CrmError):
    status_code = 502
    code = "profile_generation_failed"


class StoreError(RuntimeError):
    """Malformed range or response from the backing store."""


def is_delete_blocked(error: BaseException) -> bool:
    return str(error).startswith(DELETE_BLOCKED_PREFIX)
