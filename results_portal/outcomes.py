# FILE: results_portal/outcomes.py
import enum
from dataclasses import dataclass
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    VALIDATION = 'validation'
    ELIGIBILITY = 'eligibility'
    INTEGRITY = 'integrity'
    CONCURRENCY = 'concurrency'
    NOT_FOUND = 'not_found'


# Stable reason codes callers can branch on instead of message text.
NOT_REGISTERED = 'not_registered'
ALREADY_PASSED = 'already_passed'
NOT_REGISTERED_IN_GROUP = 'not_registered_in_group'
BACKLOG_CAP_REACHED = 'backlog_cap_reached'
BACKLOG_GROUP_REQUIRED = 'backlog_group_required'
NO_FAILED_ATTEMPT = 'no_failed_attempt'
GROUP_CLOSED = 'group_closed'
RESULT_EXISTS = 'result_exists'
HAS_DEPENDENTS = 'has_dependents'


@dataclass(frozen=True)
class Outcome:
    """Either a value or one ErrorKind with a human readable message."""
    value: Any = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, value=None):
        return cls(value=value)

    @classmethod
    def failure(cls, kind, message, reason=None, value=None):
        return cls(value=value, error=ErrorKind(kind), message=message, reason=reason)

    def to_error_dict(self):
        return {'error': self.message, 'kind': self.error.value, 'reason': self.reason}
