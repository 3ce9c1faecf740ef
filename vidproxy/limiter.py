"""Shared rate limiter for the /probe and /download endpoints.

Uses slowapi (Starlette-compatible rate limiting) keyed on the client address.
Every probe or download makes the server open an outbound connection on the
caller's behalf, so both routes share one per-client budget.

The Limiter instance is created here and shared between:
  - vidproxy/proxy/router.py (route decorators)
  - vidproxy/main.py         (app.state.limiter + 429 exception handler)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from vidproxy.constants import PROXY_RATE_LIMIT

# Module-level limiter, imported by main.py and proxy/router.py
limiter = Limiter(key_func=get_remote_address)

__all__ = ["limiter", "PROXY_RATE_LIMIT"]
