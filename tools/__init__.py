from .rate_limiter import RateLimitedQueue
from .http_tools import ApiError, AuthenticationError, RequestSpec, execute
from .time_utils import (
    day_bounds, epoch_millis, format_log_date, from_epoch_millis, to_local, to_utc,
)

__all__ = [
    "RateLimitedQueue",
    "ApiError", "AuthenticationError", "RequestSpec", "execute",
    "day_bounds", "epoch_millis", "format_log_date", "from_epoch_millis", "to_local", "to_utc",
]
