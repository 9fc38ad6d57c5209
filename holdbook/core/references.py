import secrets
import string
from datetime import datetime

_DIGITS = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


def new_reference(prefix: str, now: datetime, random_bytes: int = 4) -> str:
    """Time-ordered reference such as ``TKTMB3X9Q1A2F9C04E1``.

    Millisecond timestamp in base36 followed by random hex; uniqueness is
    still enforced by the store.
    """
    millis = int(now.timestamp() * 1000)
    return f"{prefix}{_base36(millis)}{secrets.token_hex(random_bytes).upper()}"
