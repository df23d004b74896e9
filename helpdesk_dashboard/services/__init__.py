"""
Business Logic Services
"""
from .cache import TTLCache
from .dashboard import DashboardService
from .errors import FreshserviceError, RateLimitedError, RetriesExhaustedError
from .fetcher import DataFetcher
from .freshservice import FreshserviceClient, Page
from .rate_limiter import RateLimitTracker

__all__ = [
    "TTLCache",
    "DashboardService",
    "FreshserviceError",
    "RateLimitedError",
    "RetriesExhaustedError",
    "DataFetcher",
    "FreshserviceClient",
    "Page",
    "RateLimitTracker",
]
