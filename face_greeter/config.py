import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .exceptions import GreeterError


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _optional_float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
LOG_DIR = BASE_DIR / "logs"
DB_PATH = Path(_str_env("GREETER_DB_PATH", str(DATA_DIR / "greeter.db")))

# Webcam settings
CAMERA_INDEX = _int_env("GREETER_CAMERA_INDEX", 0)
FRAME_WIDTH = _int_env("GREETER_FRAME_WIDTH", 1280)
FRAME_HEIGHT = _int_env("GREETER_FRAME_HEIGHT", 720)
FRAME_FPS = _int_env("GREETER_FRAME_FPS", 30)

# Face engine settings
FACE_DEVICE = _str_env("GREETER_DEVICE", "auto")
FACE_DETECTION_THRESHOLD = _float_env("GREETER_FACE_DETECTION_THRESHOLD", 0.5)
MIN_FACE_SIZE = _int_env("GREETER_MIN_FACE_SIZE", 60)

# Enrollment settings
ENROLLMENT_SAMPLES = _int_env("GREETER_ENROLLMENT_SAMPLES", 5)
SAMPLE_EVERY_N_FRAMES = _int_env("GREETER_SAMPLE_EVERY_N_FRAMES", 4)

# Recognition settings
DISTANCE_THRESHOLD = _float_env("GREETER_DISTANCE_THRESHOLD", 0.58)
CONFIDENCE_THRESHOLD_PERCENT = _int_env("GREETER_CONFIDENCE_THRESHOLD", 60)
FRAME_INTERVAL_SECONDS = _float_env("GREETER_FRAME_INTERVAL_SECONDS", 0.1)
GALLERY_REFRESH_SECONDS = _float_env("GREETER_GALLERY_REFRESH_SECONDS", 5.0)

# Greeting settings
GREETING_COOLDOWN_SECONDS = _float_env("GREETER_COOLDOWN_SECONDS", 15.0)
OUT_OF_FRAME_RESET_SECONDS = _float_env("GREETER_OUT_OF_FRAME_RESET_SECONDS", 86_400.0)
QUEUE_ITEM_DELAY_SECONDS = _float_env("GREETER_QUEUE_ITEM_DELAY_SECONDS", 0.5)
MISSING_PERSON_RETRY_SECONDS = _float_env("GREETER_MISSING_PERSON_RETRY_SECONDS", 1.0)
GREETING_TEMPLATE = _str_env("GREETER_GREETING_TEMPLATE", "Xin chào bạn {name}")

# Speech synthesis settings
API_KEY_SETTING = "googleApiKey"
GOOGLE_API_KEY = os.getenv("GREETER_GOOGLE_API_KEY")
TTS_ENDPOINT = _str_env(
    "GREETER_TTS_ENDPOINT",
    "https://texttospeech.googleapis.com/v1/text:synthesize",
)
# None means no timeout; a stalled request holds the greeting queue.
TTS_TIMEOUT_SECONDS = _optional_float_env("GREETER_TTS_TIMEOUT_SECONDS")
TTS_LANGUAGE_CODE = _str_env("GREETER_TTS_LANGUAGE", "vi-VN")
TTS_VOICE_NAME = _str_env("GREETER_TTS_VOICE", "vi-VN-Wavenet-A")
TTS_AUDIO_ENCODING = _str_env("GREETER_TTS_ENCODING", "MP3")
TTS_SPEAKING_RATE = _float_env("GREETER_TTS_SPEAKING_RATE", 1.0)
TTS_PITCH = _float_env("GREETER_TTS_PITCH", 0.0)

# Playback settings
PLAYBACK_FREQUENCY = _int_env("GREETER_PLAYBACK_FREQUENCY", 24000)

# Keys written by the admin surface.
DISTANCE_THRESHOLD_SETTING = "distanceThreshold"
CONFIDENCE_THRESHOLD_SETTING = "confidenceThreshold"


@dataclass
class RecognitionSettings:
    distance_threshold: float = DISTANCE_THRESHOLD
    confidence_threshold_percent: int = CONFIDENCE_THRESHOLD_PERCENT
    greeting_cooldown_seconds: float = GREETING_COOLDOWN_SECONDS
    out_of_frame_reset_seconds: float = OUT_OF_FRAME_RESET_SECONDS
    queue_item_delay_seconds: float = QUEUE_ITEM_DELAY_SECONDS
    missing_person_retry_seconds: float = MISSING_PERSON_RETRY_SECONDS
    frame_interval_seconds: float = FRAME_INTERVAL_SECONDS
    gallery_refresh_seconds: float = GALLERY_REFRESH_SECONDS

    def __post_init__(self) -> None:
        if self.distance_threshold <= 0.0:
            raise ValueError("distance_threshold must be positive.")
        if not 0 <= self.confidence_threshold_percent <= 100:
            raise ValueError("confidence_threshold_percent must be within 0..100.")
        if self.greeting_cooldown_seconds < 0 or self.out_of_frame_reset_seconds < 0:
            raise ValueError("Greeting timings cannot be negative.")

    @classmethod
    def load(cls, store: Any) -> "RecognitionSettings":
        """Environment defaults overlaid with thresholds saved in the store."""
        distance = store.get_setting(DISTANCE_THRESHOLD_SETTING)
        confidence = store.get_setting(CONFIDENCE_THRESHOLD_SETTING)
        settings = cls()
        try:
            if distance is not None:
                settings.distance_threshold = float(distance)
            if confidence is not None:
                settings.confidence_threshold_percent = int(confidence)
            settings.__post_init__()
        except (TypeError, ValueError) as exc:
            raise GreeterError(
                f"Invalid stored thresholds ({DISTANCE_THRESHOLD_SETTING}={distance!r}, "
                f"{CONFIDENCE_THRESHOLD_SETTING}={confidence!r}): {exc}"
            ) from exc
        return settings
