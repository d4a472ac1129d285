from typing import Dict, Iterable, Optional, Protocol

from .config import GREETING_COOLDOWN_SECONDS, OUT_OF_FRAME_RESET_SECONDS
from .face_types import GreetingDecision, GreetingQueueItem, GreetingState, MatchResult
from .logger import setup_logger
from .presence import PresenceTracker


class GreetingSink(Protocol):
    def __contains__(self, identity_id: object) -> bool: ...

    def enqueue(self, item: GreetingQueueItem) -> bool: ...


class GreetingScheduler:
    """Decides, per matched identity and frame, whether a greeting is queued.

    ``last_greeted`` is stamped at enqueue time, not when playback finishes,
    and before control returns to the event loop. A person missing
    from frames for longer than ``out_of_frame_reset_seconds`` counts as
    newly arrived and loses their cooldown.
    """

    def __init__(
        self,
        presence: PresenceTracker,
        queue: GreetingSink,
        cooldown_seconds: float = GREETING_COOLDOWN_SECONDS,
        out_of_frame_reset_seconds: float = OUT_OF_FRAME_RESET_SECONDS,
    ):
        self.presence = presence
        self.queue = queue
        self.cooldown_seconds = cooldown_seconds
        self.out_of_frame_reset_seconds = out_of_frame_reset_seconds
        self.logger = setup_logger(self.__class__.__name__)
        self._last_greeted: Dict[str, float] = {}

    def process_frame(self, matches: Iterable[MatchResult], now: float) -> Dict[str, GreetingDecision]:
        names: Dict[str, str] = {}
        for match in matches:
            names.setdefault(match.identity_id, match.name)

        for identity_id in names:
            gap = self.presence.time_since_seen(identity_id, now)
            if gap > self.out_of_frame_reset_seconds and self._last_greeted.pop(identity_id, None) is not None:
                self.logger.info("%s re-entered after %.1fs away, cooldown reset", identity_id, gap)

        self.presence.record_seen(names.keys(), now)

        return {identity_id: self._decide(identity_id, name, now) for identity_id, name in names.items()}

    def on_match(self, match: MatchResult, now: float) -> GreetingDecision:
        return self.process_frame([match], now)[match.identity_id]

    def _decide(self, identity_id: str, name: str, now: float) -> GreetingDecision:
        last = self._last_greeted.get(identity_id)
        if last is not None and now - last < self.cooldown_seconds:
            return GreetingDecision.COOLING

        if identity_id in self.queue:
            return GreetingDecision.ALREADY_QUEUED

        self._last_greeted[identity_id] = now
        self.queue.enqueue(GreetingQueueItem(identity_id=identity_id, display_name=name, enqueued_at=now))
        self.logger.info("Greeting queued for %s (%s)", name, identity_id)
        return GreetingDecision.ENQUEUED

    def last_greeted(self, identity_id: str) -> Optional[float]:
        return self._last_greeted.get(identity_id)

    def state_of(self, identity_id: str, now: float) -> GreetingState:
        last = self._last_greeted.get(identity_id)
        if last is None:
            return GreetingState.NEVER_GREETED
        if now - last < self.cooldown_seconds:
            return GreetingState.COOLING
        return GreetingState.ELIGIBLE
