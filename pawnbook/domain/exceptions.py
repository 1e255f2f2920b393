"""Domain-specific exceptions"""

from typing import Dict, List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Missing or invalid input; `errors` maps field name to message"""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class NotFound(DomainException):
    """Stale key, deleted row, or no current version"""

    def __init__(self, entity: str, key: object):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(DomainException):
    """Lost-update race or duplicate identifier; re-read and retry"""

    pass


class TransitionError(DomainException):
    """Illegal loan status change"""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move loan from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class StoreUnavailable(DomainException):
    """Data store could not be reached or failed mid-operation"""

    pass


class SubmissionError(DomainException):
    """A loan submission step failed; the whole submission was rolled back"""

    def __init__(self, step: str, completed_steps: List[str], cause: Exception):
        done = ", ".join(completed_steps) if completed_steps else "none"
        super().__init__(
            f"Loan submission failed at '{step}' (completed before failure: {done}). "
            f"Nothing was saved; correct the problem and submit again without recapturing photos. "
            f"Cause: {cause}"
        )
        self.step = step
        self.completed_steps = list(completed_steps)
        self.cause = cause


class ScreeningProviderError(DomainException):
    """Screening provider returned an error or is unavailable"""

    pass
