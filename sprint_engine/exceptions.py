"""Error taxonomy raised by the sprint engine.

Every engine failure is synchronous and terminal for the call that raised it.
The HTTP layer maps ``status_code`` straight onto the response.
"""

from __future__ import annotations


class SprintEngineError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500
    kind: str = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SprintEngineError):
    """Malformed input or an illegal lifecycle transition."""

    status_code = 400
    kind = "validation"


class NotFoundError(SprintEngineError):
    """A referenced sprint or story does not exist."""

    status_code = 404
    kind = "not_found"


class ConflictError(SprintEngineError):
    """Overlapping dates, a second active sprint, or a lost store race."""

    status_code = 409
    kind = "conflict"
