import io
import os
import time

from .config import PLAYBACK_FREQUENCY
from .exceptions import PlaybackError

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

try:
    import pygame
except Exception:  # pragma: no cover - runtime dependency guard
    pygame = None


class PygameAudioPlayer:
    """Plays an encoded clip through the pygame mixer and blocks until it ends."""

    def __init__(self, frequency: int = PLAYBACK_FREQUENCY, poll_seconds: float = 0.05):
        self.frequency = frequency
        self.poll_seconds = poll_seconds

    def play(self, audio: bytes) -> None:
        if pygame is None:
            raise PlaybackError("pygame is required for audio playback.")
        if not audio:
            raise PlaybackError("No audio to play.")

        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init(frequency=self.frequency)

            pygame.mixer.music.load(io.BytesIO(audio))
            pygame.mixer.music.play()
            while pygame.mixer.music.get_busy():
                time.sleep(self.poll_seconds)
            pygame.mixer.music.unload()
        except pygame.error as exc:
            raise PlaybackError(f"Audio playback failed: {exc}") from exc
