"""Reference numbers, display codes and access codes for appointments."""

import secrets
import string
from datetime import datetime, timezone

from campus_access.core import config

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference_number(now: datetime) -> str:
    """``APT-<epoch ms>-<0..9999>``; the random suffix separates same-millisecond requests."""
    epoch_ms = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return f"APT-{epoch_ms}-{secrets.randbelow(10000)}"


def generate_access_code(length: int | None = None) -> str:
    size = length or config.APT_CODE_LENGTH
    return "APT-" + "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(size))


def display_code_for(appointment_id: int, now: datetime) -> str:
    return f"APT{now:%y}{appointment_id:06d}"
