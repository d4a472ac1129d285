import asyncio
from typing import Optional

from .config import API_KEY_SETTING, GOOGLE_API_KEY, GREETING_TEMPLATE
from .exceptions import DatabaseError, SynthesisUnavailableError
from .face_types import Identity, IdentityStore
from .logger import setup_logger
from .synthesis import SpeechSynthesizer, VoiceConfig


class GreetingCache:
    """Write-through cache of synthesized greetings stored on the identity record.

    Audio is synthesized the first time a person needs it and kept on the
    record for good; entries are never invalidated or expired.
    """

    def __init__(
        self,
        store: IdentityStore,
        synthesizer: SpeechSynthesizer,
        voice: Optional[VoiceConfig] = None,
        template: str = GREETING_TEMPLATE,
        fallback_api_key: Optional[str] = GOOGLE_API_KEY,
    ):
        self.store = store
        self.synthesizer = synthesizer
        self.voice = voice or VoiceConfig()
        self.template = template
        self.fallback_api_key = fallback_api_key
        self.logger = setup_logger(self.__class__.__name__)

    def greeting_text(self, name: str) -> str:
        return self.template.format(name=name)

    def api_key(self) -> Optional[str]:
        stored = self.store.get_setting(API_KEY_SETTING)
        if stored:
            return str(stored)
        return self.fallback_api_key or None

    async def resolve(self, identity: Identity) -> bytes:
        if identity.cached_greeting_audio:
            return identity.cached_greeting_audio

        api_key = self.api_key()
        if not api_key:
            raise SynthesisUnavailableError("Speech synthesis API key is not configured.")

        text = self.greeting_text(identity.name)
        audio = await asyncio.to_thread(self.synthesizer.synthesize, text, self.voice, api_key)

        identity.cached_greeting_audio = audio
        try:
            self.store.put(identity)
            self.logger.info("Greeting audio cached for %s (%s)", identity.name, identity.identity_id)
        except DatabaseError as exc:
            self.logger.warning("Greeting audio for %s kept in memory only: %s", identity.identity_id, exc)
        return audio
