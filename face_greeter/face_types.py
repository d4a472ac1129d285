from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Protocol, Sequence

import numpy as np

from .exceptions import EnrollmentError


@dataclass
class Detection:
    region: tuple[int, int, int, int]
    landmarks: list[tuple[int, int]]
    embedding: np.ndarray
    score: float = 1.0


@dataclass
class Identity:
    identity_id: str
    name: str
    embeddings: list[np.ndarray]
    date_of_birth: Optional[date] = None
    cached_greeting_audio: Optional[bytes] = None
    registered_at: str = ""

    @property
    def embedding_dim(self) -> int:
        return int(self.embeddings[0].shape[0])

    @property
    def has_cached_greeting(self) -> bool:
        return bool(self.cached_greeting_audio)

    def age(self, today: Optional[date] = None) -> Optional[int]:
        """Whole years since date_of_birth, or None when it is unknown."""
        if self.date_of_birth is None:
            return None
        today = today or date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


@dataclass
class MatchResult:
    identity_id: str
    name: str
    distance: float
    confidence_percent: int


@dataclass
class GreetingQueueItem:
    identity_id: str
    display_name: str
    enqueued_at: float


class GreetingDecision(str, Enum):
    ENQUEUED = "enqueued"
    COOLING = "cooling"
    ALREADY_QUEUED = "already_queued"


class GreetingState(str, Enum):
    NEVER_GREETED = "never_greeted"
    COOLING = "cooling"
    ELIGIBLE = "eligible"


@dataclass
class FrameReport:
    timestamp: float
    matches: list[MatchResult] = field(default_factory=list)
    unknown_count: int = 0
    decisions: dict[str, GreetingDecision] = field(default_factory=dict)


class FaceDetector(Protocol):
    def detect_all(self, frame: np.ndarray) -> list[Detection]: ...


class IdentityStore(Protocol):
    def get(self, identity_id: str) -> Optional[Identity]: ...

    def get_all(self) -> list[Identity]: ...

    def count(self) -> int: ...

    def put(self, identity: Identity) -> None: ...

    def delete(self, identity_id: str) -> bool: ...

    def get_setting(self, key: str) -> Any: ...

    def set_setting(self, key: str, value: Any) -> None: ...


class AudioPlayer(Protocol):
    def play(self, audio: bytes) -> None: ...


def normalize_embeddings(raw: Any) -> list[np.ndarray]:
    """Coerce stored or captured embeddings into a non-empty list of 1-D vectors.

    A single flat vector (the legacy one-descriptor layout) becomes a
    one-element list. All vectors must share one dimensionality.
    """
    if raw is None:
        raise EnrollmentError("At least one embedding is required.")

    if isinstance(raw, np.ndarray):
        array = np.asarray(raw, dtype=np.float32)
        if array.ndim == 1:
            vectors = [array]
        elif array.ndim == 2:
            vectors = [row for row in array]
        else:
            raise EnrollmentError(f"Unsupported embedding array rank: {array.ndim}.")
    else:
        items: Sequence[Any] = list(raw)
        if items and np.isscalar(items[0]):
            vectors = [np.asarray(items, dtype=np.float32)]
        else:
            vectors = [np.asarray(item, dtype=np.float32) for item in items]

    if not vectors:
        raise EnrollmentError("At least one embedding is required.")

    dim = vectors[0].shape[0] if vectors[0].ndim == 1 else -1
    for vector in vectors:
        if vector.ndim != 1 or vector.size == 0:
            raise EnrollmentError("Each embedding must be a non-empty 1D vector.")
        if vector.shape[0] != dim:
            raise EnrollmentError(
                f"Embedding dimension mismatch: expected {dim}, got {vector.shape[0]}."
            )
        if not np.all(np.isfinite(vector)):
            raise EnrollmentError("Embeddings must contain only finite values.")

    return [vector.copy() for vector in vectors]
