"""
Error taxonomy.

FetchError and AuthError/ConfigError abort a unit of work (one source, one
target). ParseError, ValidationError and PersistenceError are caught per
record and turned into warnings or ERROR outcomes. ConflictError is never
raised out of the resolver; it is attached to the resolution it describes.
"""


class ShowSyncError(Exception):
    pass


class FetchError(ShowSyncError):
    """Network failure or timeout reaching a source. Retryable."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ParseError(ShowSyncError):
    """Malformed markup or data for a single event."""


class ValidationError(ShowSyncError):
    """A canonical record is missing a required field."""


class ConflictError(ShowSyncError):
    """More than one existing record matches equally well."""

    def __init__(self, what: str, candidate_ids: list[int]):
        ids = ", ".join(f"#{i}" for i in candidate_ids)
        super().__init__(f"{what} matches {len(candidate_ids)} records ({ids}); using #{min(candidate_ids)}")
        self.candidate_ids = candidate_ids


class ConfigError(ShowSyncError):
    """Missing or invalid configuration for a target or source."""


class AuthError(ConfigError):
    """Missing or rejected credential for a target environment."""

    def __init__(self, target: str, message: str = "no credential configured"):
        super().__init__(f"{target}: {message}")
        self.target = target


class PersistenceError(ShowSyncError):
    """A write against a target failed (constraint violation, connectivity)."""
