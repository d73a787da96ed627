"""Stable identity metadata: UUID v4 plus creation / modification timestamps."""

import re
import uuid
from datetime import datetime, timezone

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_uuid(value: object) -> bool:
    """True for a UUID v4 string."""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def generate_uuid() -> str:
    return str(uuid.uuid4())


def generate_timestamp() -> str:
    """Current UTC time, ISO-8601 with milliseconds, e.g. ``2024-05-01T12:00:00.000Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def extract_uuid(custom: dict | None) -> str | None:
    """Return ``custom["uuid"]`` if it is a valid UUID v4, else None."""
    if not custom:
        return None
    value = custom.get("uuid")
    return value if is_valid_uuid(value) else None


def ensure_custom_metadata(custom: dict | None) -> dict:
    """Return a copy of ``custom`` guaranteed to hold ``uuid``, ``created_at``
    and ``timestamp``.

    Existing keys keep their position and value; anything missing is
    appended. An invalid ``uuid`` is replaced in place. A record that only
    carries the legacy ``timestamp`` field has it promoted to ``created_at``.
    The clock and the random source are only touched for missing fields, so
    already-normalised metadata comes back unchanged.
    """
    result = dict(custom or {})

    if extract_uuid(result) is None:
        result["uuid"] = generate_uuid()

    if not result.get("created_at"):
        # Legacy records stored only a single timestamp
        result["created_at"] = result.get("timestamp") or generate_timestamp()

    if not result.get("timestamp"):
        result["timestamp"] = result["created_at"]

    return result
