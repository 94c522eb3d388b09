"""Exception types raised by memoir services."""


class MemoirError(Exception):
    """Base class for memoir errors."""
    pass


class InvalidRequestError(MemoirError):
    """Raised when a request is missing a required identifier."""
    pass


class JobNotFoundError(MemoirError):
    """Raised when a memory job does not exist."""

    def __init__(self, job_id):
        super().__init__(f"Memory job not found: {job_id}")
        self.job_id = job_id


class CompletionError(MemoirError):
    """Raised when the completion service returns no usable text."""
    pass


class SummaryGenerationError(MemoirError):
    """Raised when an AI summary cannot be produced for a profile."""
    pass
