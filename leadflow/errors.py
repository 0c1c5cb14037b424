"""
Error taxonomy for the scraping pipeline.

Every error carries an HTTP status and a short classification string so the
routes can turn any of them into the same JSON error shape.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""
    http_status = 500
    classification = 'error'

    def __init__(self, message: str = '', run_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.run_id = run_id

    def to_dict(self) -> dict:
        payload = {'error': self.message or self.__class__.__name__,
                   'classification': self.classification}
        if self.run_id:
            payload['runId'] = self.run_id
        return payload


class ValidationError(PipelineError):
    """Malformed or missing caller input. Raised before any provider call."""
    http_status = 400
    classification = 'invalid'


class NotFoundError(ValidationError):
    http_status = 404
    classification = 'not-found'


class ProviderError(PipelineError):
    """Submission, poll or fetch failure reported by a provider adapter."""
    http_status = 502
    classification = 'failed'


class RunFailedError(ProviderError):
    """The provider finished the run with a non-successful terminal status."""

    def __init__(self, message: str, run_id: Optional[str] = None,
                 status: str = 'FAILED', classification: str = 'failed'):
        super().__init__(message, run_id=run_id)
        self.status = status
        self.classification = classification
        if classification == 'timed-out':
            self.http_status = 504


class RateLimitError(ProviderError):
    """Provider answered 429. Never retried without the caller opting in."""
    http_status = 429
    classification = 'rate-limited'

    def __init__(self, message: str = 'Rate limit reached', run_id: Optional[str] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, run_id=run_id)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload['retryAfter'] = self.retry_after
        return payload


class RunTimeoutError(PipelineError):
    """Polling ceiling exceeded. Callers treat it like a provider TIMED-OUT."""
    http_status = 504
    classification = 'timed-out'

    def __init__(self, message: str, run_id: Optional[str] = None,
                 elapsed: float = 0.0, attempts: int = 0, last_status: Optional[str] = None):
        super().__init__(message, run_id=run_id)
        self.elapsed = elapsed
        self.attempts = attempts
        self.last_status = last_status


class MappingError(PipelineError):
    """A single result item could not be normalized. Counted, never fatal."""
    classification = 'mapping'
