"""Shared rate limiter for the account status service.

Uses slowapi (Starlette-compatible rate limiting). The Limiter instance is
shared between:
  - blockgate/server/router.py  (route decorators)
  - blockgate/server/main.py    (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Admin block/unblock toggles
ADMIN_ACTION_RATE_LIMIT = "20/minute"

# Logout calls (the gate's sign-out may be retried by an impatient user)
LOGOUT_RATE_LIMIT = "30/minute"
