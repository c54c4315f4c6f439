"""Clock / TTL policy for recovery codes.

Pure functions only: every caller passes ``now`` explicitly so the same rules
apply to the in-memory and the Redis-backed stores.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

CODE_TTL_SECONDS = 600  # 10 minutes
RESEND_COOLDOWN_SECONDS = 60
# An undelivered code older than this is presumed abandoned
IN_FLIGHT_WINDOW_SECONDS = 30


@dataclass(frozen=True)
class RecoveryPolicy:
    """Timing rules applied by the coordinator."""

    code_ttl: float = CODE_TTL_SECONDS
    resend_cooldown: float = RESEND_COOLDOWN_SECONDS
    in_flight_window: float = IN_FLIGHT_WINDOW_SECONDS

    def is_valid(self, issued_at: float, now: float) -> bool:
        return is_code_valid(issued_at, now, self.code_ttl)

    def is_abandoned(self, issued_at: float, delivered: bool, now: float) -> bool:
        return is_abandoned(issued_at, delivered, now, self.in_flight_window)

    def cooldown_remaining(self, last_issued_at: float | None, now: float) -> int:
        return cooldown_remaining(last_issued_at, now, self.resend_cooldown)


def is_code_valid(issued_at: float, now: float, ttl: float = CODE_TTL_SECONDS) -> bool:
    """Return ``True`` while the code is younger than *ttl* seconds."""
    return now - issued_at < ttl


def is_abandoned(
    issued_at: float,
    delivered: bool,
    now: float,
    window: float = IN_FLIGHT_WINDOW_SECONDS,
) -> bool:
    """An undelivered record that outlived the in-flight window was never confirmed."""
    return not delivered and now - issued_at >= window


def cooldown_remaining(
    last_issued_at: float | None,
    now: float,
    cooldown: float = RESEND_COOLDOWN_SECONDS,
) -> int:
    """Whole seconds (rounded up) until a new code may be issued; ``0`` if not blocked."""
    if last_issued_at is None:
        return 0
    elapsed = now - last_issued_at
    if elapsed >= cooldown:
        return 0
    return max(1, math.ceil(cooldown - elapsed))
