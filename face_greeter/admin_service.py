import asyncio
from typing import List, Tuple

from .config import (
    API_KEY_SETTING,
    CONFIDENCE_THRESHOLD_SETTING,
    DISTANCE_THRESHOLD_SETTING,
    RecognitionSettings,
)
from .exceptions import GreeterError
from .face_types import AudioPlayer, Identity, IdentityStore
from .greeting_cache import GreetingCache


class AdminService:
    def __init__(self, store: IdentityStore, cache: GreetingCache, player: AudioPlayer):
        self.store = store
        self.cache = cache
        self.player = player

    def list_people(self) -> List[Identity]:
        return self.store.get_all()

    def delete_person(self, identity_id: str) -> None:
        removed = self.store.delete(identity_id.strip())
        if not removed:
            raise GreeterError(f"Person {identity_id} not found.")

    def set_api_key(self, api_key: str) -> None:
        api_key = api_key.strip()
        if not api_key:
            raise GreeterError("API key cannot be empty.")
        self.store.set_setting(API_KEY_SETTING, api_key)

    def save_thresholds(self, distance_threshold: float, confidence_threshold_percent: int) -> None:
        try:
            RecognitionSettings(
                distance_threshold=distance_threshold,
                confidence_threshold_percent=confidence_threshold_percent,
            )
        except ValueError as exc:
            raise GreeterError(str(exc)) from exc

        self.store.set_setting(DISTANCE_THRESHOLD_SETTING, float(distance_threshold))
        self.store.set_setting(CONFIDENCE_THRESHOLD_SETTING, int(confidence_threshold_percent))

    def load_thresholds(self) -> Tuple[float, int]:
        settings = RecognitionSettings.load(self.store)
        return settings.distance_threshold, settings.confidence_threshold_percent

    def prepare_greeting(self, identity_id: str) -> bytes:
        """Synthesize and cache the greeting for a person without playing it."""
        return asyncio.run(self.cache.resolve(self._require(identity_id)))

    def preview_greeting(self, identity_id: str) -> None:
        self.player.play(self.prepare_greeting(identity_id))

    def _require(self, identity_id: str) -> Identity:
        identity = self.store.get(identity_id.strip())
        if identity is None:
            raise GreeterError(f"Person {identity_id} not found.")
        return identity
