import math
from typing import Dict, Iterable, Optional


class PresenceTracker:
    """Last frame timestamp at which each identity was matched."""

    def __init__(self) -> None:
        self._last_seen: Dict[str, float] = {}

    def record_seen(self, identity_ids: Iterable[str], now: float) -> None:
        for identity_id in identity_ids:
            self._last_seen[identity_id] = now

    def last_seen(self, identity_id: str) -> Optional[float]:
        return self._last_seen.get(identity_id)

    def time_since_seen(self, identity_id: str, now: float) -> float:
        last = self._last_seen.get(identity_id)
        if last is None:
            return math.inf
        return now - last
