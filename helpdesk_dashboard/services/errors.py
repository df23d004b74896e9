"""
Freshservice error types
"""
from typing import Optional


class FreshserviceError(Exception):
    """Base error for Freshservice integration failures"""


class RateLimitedError(FreshserviceError):
    """
    Call refused because the rate budget is exhausted

    Raised for upstream 429 responses and for local admission refusals
    (`local=True`).

    Attributes:
        retry_after: Server-hinted or locally computed wait in seconds
        local: True when the refusal came from the local admission controller
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        local: bool = False
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.local = local


class RetriesExhaustedError(RateLimitedError):
    """Throttling persisted through every retry attempt"""

    def __init__(self, attempts: int, retry_after: Optional[float] = None):
        super().__init__(
            f"Rate limit persisted after {attempts} attempts",
            retry_after=retry_after
        )
        self.attempts = attempts
