from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from .config import (
    TTS_AUDIO_ENCODING,
    TTS_ENDPOINT,
    TTS_LANGUAGE_CODE,
    TTS_PITCH,
    TTS_SPEAKING_RATE,
    TTS_TIMEOUT_SECONDS,
    TTS_VOICE_NAME,
)
from .exceptions import SynthesisError, SynthesisUnavailableError


@dataclass(frozen=True)
class VoiceConfig:
    language_code: str = TTS_LANGUAGE_CODE
    voice_name: str = TTS_VOICE_NAME
    audio_encoding: str = TTS_AUDIO_ENCODING
    speaking_rate: float = TTS_SPEAKING_RATE
    pitch: float = TTS_PITCH


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str, voice: VoiceConfig, api_key: str) -> bytes: ...


class GoogleSpeechSynthesizer:
    """Google Cloud Text-to-Speech over its REST endpoint."""

    def __init__(self, endpoint: str = TTS_ENDPOINT, timeout_seconds: Optional[float] = TTS_TIMEOUT_SECONDS):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.session = requests.Session()

    def synthesize(self, text: str, voice: VoiceConfig, api_key: str) -> bytes:
        if not api_key:
            raise SynthesisUnavailableError("Speech synthesis API key is not configured.")
        if not text.strip():
            raise SynthesisError("Cannot synthesize empty text.")

        try:
            resp = self.session.post(
                self.endpoint,
                params={"key": api_key},
                json=self._request_body(text, voice),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise SynthesisError(f"Speech synthesis request failed: {exc}") from exc

        if not resp.ok:
            raise SynthesisError(f"Speech synthesis returned HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            content = resp.json()["audioContent"]
            audio = base64.b64decode(content, validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise SynthesisError(f"Malformed speech synthesis response: {exc}") from exc

        if not audio:
            raise SynthesisError("Speech synthesis returned empty audio.")
        return audio

    @staticmethod
    def _request_body(text: str, voice: VoiceConfig) -> dict[str, Any]:
        return {
            "input": {"text": text},
            "voice": {
                "languageCode": voice.language_code,
                "name": voice.voice_name,
            },
            "audioConfig": {
                "audioEncoding": voice.audio_encoding,
                "pitch": voice.pitch,
                "speakingRate": voice.speaking_rate,
            },
        }
