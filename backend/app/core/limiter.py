"""Rate limiter singleton: import from here to avoid circular deps."""
from slowapi import Limiter
from slowapi.util import get_remote_address

# Uploads are parsed in-process; cap how often one client can trigger that.
limiter = Limiter(key_func=get_remote_address, headers_enabled=False)
