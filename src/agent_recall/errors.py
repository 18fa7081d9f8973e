"""
Error Taxonomy

Exceptions shared across the memory, knowledge and queue subsystems.
Best-effort side channels (vector indexing, observability) catch these and
log; the generation/delivery path lets them propagate.
"""


class AgentRecallError(Exception):
    """Base class for all agent_recall errors."""
    pass


class InvalidInputError(AgentRecallError, ValueError):
    """A required identifier or input was empty or missing."""
    pass


class DuplicateSkipped(AgentRecallError):
    """
    Not a real failure: the record already exists or is unchanged.

    Used as the reason in skip log lines; never raised to callers.
    """
    pass


class UpstreamTimeoutError(AgentRecallError, TimeoutError):
    """A queued task exceeded its deadline. Never retried by the queue."""
    pass


class UpstreamTransientError(AgentRecallError):
    """Rate limit, network blip or 5xx reported by an upstream API. Safe to retry."""

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.code = code


class QueueClosedError(AgentRecallError):
    """The request queue was closed while the task was still pending."""
    pass


class VectorWriteError(AgentRecallError):
    """Embedding or index failure while persisting a vector."""
    pass


class PartialBatchFailure(AgentRecallError):
    """One or more items of a batch ingestion failed; reported, not raised."""

    def __init__(self, failed: list):
        super().__init__(f"{len(failed)} item(s) failed to process")
        self.failed = failed
