import secrets
import string
import time
from datetime import datetime, timezone

_ALPHABET = string.digits + string.ascii_lowercase


def generate_file_id() -> str:
    """Ids look like ``file_1712345678901_k3j9x0a1b``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"file_{int(time.time() * 1000)}_{suffix}"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
