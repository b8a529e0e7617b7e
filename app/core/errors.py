"""
Scheduling Error Taxonomy.

Every failure the conversation layer can see is one of these. The engine
maps each family to a distinct, recoverable response; only
ConfigurationError is allowed to stop the process (at startup).
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ConfigurationError(SchedulingError):
    """Bad deployment configuration (unknown zone, missing credential)."""
    pass


class NotConnectedError(ConfigurationError):
    """No calendar refresh credential has been provisioned yet."""
    pass


class ExternalCallError(SchedulingError):
    """A collaborator (calendar, CRM, mail, network) call failed."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(ExternalCallError):
    """Stale or revoked calendar credential; needs re-authorization."""
    pass


class ConflictOrQuotaError(ExternalCallError):
    """Calendar rejected the write (conflict, quota, rate limit)."""
    pass


class ValidationError(SchedulingError):
    """Malformed user input, rejected before any external call."""

    def __init__(self, message: str = "", field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RaceError(SchedulingError):
    """Slot became busy between presentation and booking."""
    pass
