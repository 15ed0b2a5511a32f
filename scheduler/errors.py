"""
Error taxonomy for the scheduling core.

Business-rule failures are returned as results, not raised.
These exceptions cover infrastructure faults and integrity breaches.
"""


class SchedulingError(Exception):
    """Base class for all scheduler errors."""


class RepositoryError(SchedulingError):
    """A storage collaborator failed (lookup, write or query)."""


class AuditIntegrityError(SchedulingError):
    """Raised on any attempt to alter or remove recorded audit history."""


class TeamRuleError(SchedulingError):
    """A team roster change would break a roster rule."""
