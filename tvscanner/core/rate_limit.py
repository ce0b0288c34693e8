"""
PURPOSE: Rate limiting configuration for TV Scanner using slowapi.

Provides a shared Limiter instance keyed by client IP address. The read
endpoints use READ_LIMIT; the inbound alert endpoints are not limited.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared limiter instance, keyed by client IP
limiter = Limiter(key_func=get_remote_address)

READ_LIMIT = "60/minute"
