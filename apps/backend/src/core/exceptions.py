class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class SessionNotFoundError(DomainError):
    """Exception raised when a client session id is unknown."""

    pass


class JobNotFoundError(DomainError):
    """Exception raised when a job is not present in the job store."""

    pass
