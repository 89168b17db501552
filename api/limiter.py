"""
api/limiter.py -- slowapi rate limiter for the login endpoint.

The only limit in the service is LOGIN_RATE_LIMIT on POST /api/v1/auth/login,
applied per client address. It complements the lockout counter in AuthCore:
the counter locks the account, this stops one address hammering the endpoint.

api/main.py attaches the instance to app.state and mounts SlowAPIMiddleware;
api/routes/v1/auth.py decorates the login route with it. Counters live in
process memory and reset on restart.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
