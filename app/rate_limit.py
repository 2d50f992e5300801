"""
Rate limiting configuration using slowapi.

Three tiers:
  • strict  – 5/min  (endpoints that send an OTP email)
  • auth    – 10/min (OTP verification and login – slows brute-force)
  • default – 60/min (everything else)

The limiter keys on client IP by default.  Per-email OTP limits
(cooldown, spam lock, lockouts) live in app.services.otp and are
enforced regardless of IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

# Named rate strings for use in @limiter.limit() decorators
STRICT = "5/minute"     # register / forgot-password (email sending)
AUTH = "10/minute"       # OTP verification, login
DEFAULT = "60/minute"    # general API
