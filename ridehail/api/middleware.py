"""Request rate limiting (per client address)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

DEFAULT_LIMIT = "100/minute"
# location samples arrive about once per second per driver
LOCATION_LIMIT = "120/minute"
