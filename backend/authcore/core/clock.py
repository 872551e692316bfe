"""Time and token-value sources, injectable for deterministic tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


class SystemClock:
    """Wall clock returning naive UTC datetimes (the storage convention)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


def new_token_value() -> str:
    """Opaque 128-bit random identifier in canonical UUID form (36 chars)."""
    return str(uuid.uuid4())


system_clock = SystemClock()
