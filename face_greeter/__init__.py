from .face_types import Detection, FrameReport, GreetingDecision, GreetingQueueItem, Identity, MatchResult
from .gallery import Gallery
from .matcher import FaceMatcher, find_best_match
from .presence import PresenceTracker
from .scheduler import GreetingScheduler

__all__ = [
    "Detection",
    "FaceMatcher",
    "FrameReport",
    "Gallery",
    "GreetingDecision",
    "GreetingQueueItem",
    "GreetingScheduler",
    "Identity",
    "MatchResult",
    "PresenceTracker",
    "find_best_match",
]
