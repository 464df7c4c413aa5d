"""
Error taxonomy for the orchestration core.

Every whole-operation failure raised by the core is a LeadflowError carrying
the HTTP status the API layer responds with. Per-item agent failures are never
raised; they travel inside AgentResult.
"""


class LeadflowError(Exception):
    """Base class for errors surfaced to callers."""

    status_code = 500

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or "Unknown error"
        super().__init__(self.message)


class ValidationError(LeadflowError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(LeadflowError):
    """Referenced resource does not exist."""

    status_code = 404


class ForbiddenError(LeadflowError):
    """Operation is not permitted for this target."""

    status_code = 403


class InvalidStateError(LeadflowError):
    """Resource is not in a state that allows this transition."""

    status_code = 409


class WorkflowExecutionError(LeadflowError):
    """The workflow executor failed; the queue item stays approved."""

    status_code = 500


class TransientError(LeadflowError):
    """A network-class failure that is safe to retry."""

    status_code = 503

    def __init__(self, message: str = None, code: str = None):
        super().__init__(message)
        self.code = code
