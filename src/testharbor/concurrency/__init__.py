from .cancellation import CancellationToken
from .retry import UNLIMITED, retry_with_exponential_backoff

__all__ = [
    "CancellationToken",
    "UNLIMITED",
    "retry_with_exponential_backoff",
]
