"""License key generation.

Keys are a placeholder format, not a security mechanism: a UTC timestamp
(``YYYYMMDDHHMMSS``) followed by a short random suffix so that keys
minted within the same second stay distinct.
"""

import secrets
from datetime import datetime, timezone

KEY_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
SUFFIX_BYTES = 3


def generate_license_key(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime(KEY_TIMESTAMP_FORMAT)}-{secrets.token_hex(SUFFIX_BYTES).upper()}"
