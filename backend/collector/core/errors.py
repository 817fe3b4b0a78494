"""Error taxonomy for the collector.

Validation failures are raised by pydantic/FastAPI and mapped to 400 in
``collector.main``; the classes below cover the server-side failures.
"""


class CollectorError(Exception):
    """Base class for collector failures surfaced to HTTP callers."""
    
    status_code = 500
    
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PersistenceError(CollectorError):
    """The relational store or the balance history file failed a write."""


class UpstreamError(CollectorError):
    """An outbound collaborator was unreachable, timed out or returned junk."""
    
    status_code = 502
