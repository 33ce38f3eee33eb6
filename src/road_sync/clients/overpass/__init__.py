from .overpass_client import OverpassClient
from .rate_limiter import RateLimiter

__all__ = ["OverpassClient", "RateLimiter"]
