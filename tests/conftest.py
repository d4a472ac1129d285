import threading
from typing import List, Optional

import numpy as np
import pytest

from face_greeter.config import RecognitionSettings
from face_greeter.database import GreeterDatabase
from face_greeter.exceptions import PlaybackError, SynthesisError
from face_greeter.face_types import Detection, Identity

DIM = 128


def vector(*head: float, dim: int = DIM) -> np.ndarray:
    out = np.zeros(dim, dtype=np.float32)
    out[: len(head)] = head
    return out


def make_identity(identity_id: str, *embeddings: np.ndarray, name: Optional[str] = None) -> Identity:
    return Identity(identity_id=identity_id, name=name or identity_id, embeddings=list(embeddings))


class FakeSynthesizer:
    def __init__(self, payload: bytes = b"P", fail: bool = False):
        self.payload = payload
        self.fail = fail
        self.calls: List[tuple] = []

    def synthesize(self, text, voice, api_key) -> bytes:
        self.calls.append((text, voice, api_key))
        if self.fail:
            raise SynthesisError("provider returned HTTP 500")
        return self.payload


class FakePlayer:
    def __init__(self, fail: bool = False, gate: Optional[threading.Event] = None):
        self.fail = fail
        self.gate = gate
        self.played: List[bytes] = []

    def play(self, audio: bytes) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.played.append(audio)
        if self.fail:
            raise PlaybackError("device busy")


class FakeDetector:
    def __init__(self, frames: Optional[List[List[Detection]]] = None, error: Optional[Exception] = None):
        self.frames = list(frames or [])
        self.error = error
        self.calls = 0

    def detect_all(self, frame) -> List[Detection]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if not self.frames:
            return []
        return self.frames.pop(0)


def detection(embedding: np.ndarray) -> Detection:
    return Detection(region=(10, 10, 110, 110), landmarks=[(40, 50), (80, 50)], embedding=embedding)


@pytest.fixture
def store(tmp_path) -> GreeterDatabase:
    return GreeterDatabase(tmp_path / "greeter.db")


@pytest.fixture
def keyed_store(store) -> GreeterDatabase:
    store.set_setting("googleApiKey", "test-key")
    return store


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def fast_settings() -> RecognitionSettings:
    return RecognitionSettings(
        distance_threshold=0.58,
        confidence_threshold_percent=60,
        greeting_cooldown_seconds=5.0,
        out_of_frame_reset_seconds=1_000.0,
        queue_item_delay_seconds=0.0,
        missing_person_retry_seconds=0.0,
        frame_interval_seconds=0.0,
        gallery_refresh_seconds=0.0,
    )
