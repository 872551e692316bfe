"""Origin fingerprint comparison for refresh-token exchange."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

FLEXIBLE = "flexible"
STRICT = "strict"


@dataclass(frozen=True)
class OriginFingerprint:
    """Network address and client signature (User-Agent) of a request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def of(cls, ip_address: Optional[str], user_agent: Optional[str]) -> "OriginFingerprint":
        ip = ip_address.strip()[:45] if ip_address and ip_address.strip() else None
        agent = user_agent.strip()[:255] if user_agent and user_agent.strip() else None
        return cls(ip_address=ip, user_agent=agent)


def _same(recorded: Optional[str], presented: Optional[str]) -> bool:
    # A component missing on either side cannot count as a divergence.
    return recorded is None or presented is None or recorded == presented


class OriginGuard:
    """
    Decide whether a refresh request comes from the origin its token was issued to.

    flexible (default): match unless both address and signature are present
    and both differ. Mobile clients change address routinely, so address
    alone is never enough to flag a request.

    strict: address and signature must each match.
    """

    def __init__(self, mode: str = FLEXIBLE) -> None:
        mode = (mode or FLEXIBLE).lower()
        if mode not in (FLEXIBLE, STRICT):
            raise ValueError(f"Unknown origin match mode: {mode}")
        self.mode = mode

    def matches(self, record, fingerprint: OriginFingerprint) -> bool:
        same_ip = _same(record.ip_address, fingerprint.ip_address)
        same_agent = _same(record.user_agent, fingerprint.user_agent)
        if self.mode == STRICT:
            return same_ip and same_agent
        return same_ip or same_agent
