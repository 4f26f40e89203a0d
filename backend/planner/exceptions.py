"""Error kinds raised by the planning services.

Every service failure is a ``PlanningError`` subclass carrying a machine
readable ``kind`` so API views, management commands and batch reports can
handle them uniformly.
"""
from typing import Any, Dict, Optional


class PlanningError(Exception):
    kind = 'error'

    def __init__(self, message: str = '', detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def as_dict(self) -> Dict[str, Any]:
        payload = {'kind': self.kind, 'detail': self.message}
        if self.detail:
            payload.update(self.detail)
        return payload


class ValidationError(PlanningError):
    """Input violates a structural or domain rule."""
    kind = 'validation'


class ConflictError(PlanningError):
    """Operation would violate a uniqueness or exclusivity invariant."""
    kind = 'conflict'


class AuthorizationError(PlanningError):
    kind = 'authorization'


class NotFoundError(PlanningError):
    kind = 'not_found'


class PreconditionError(PlanningError):
    """Operation is not legal in the entity's current state."""
    kind = 'precondition'


class ExternalDependencyError(PlanningError):
    """A collaborating service failed or timed out."""
    kind = 'external_dependency'
