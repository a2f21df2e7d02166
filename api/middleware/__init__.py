"""
API Middleware.
"""

from .auth import api_key_auth
from .metrics import MetricsMiddleware, metrics_endpoint
from .rate_limit import RateLimitMiddleware

__all__ = ["api_key_auth", "MetricsMiddleware", "metrics_endpoint", "RateLimitMiddleware"]
