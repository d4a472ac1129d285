import asyncio
from collections import deque
from typing import Deque, Optional, Set

from .config import MISSING_PERSON_RETRY_SECONDS, QUEUE_ITEM_DELAY_SECONDS
from .exceptions import DatabaseError, PlaybackError, SynthesisError, SynthesisUnavailableError
from .face_types import AudioPlayer, GreetingQueueItem, Identity, IdentityStore
from .gallery import Gallery
from .greeting_cache import GreetingCache
from .logger import setup_logger


class GreetingQueue:
    """FIFO of pending greetings drained by one worker task at a time.

    An identity is pending from enqueue until its item has been handled,
    and is never queued twice. Items are dropped on failure, not retried.
    There is no timeout on synthesis or playback: a call that never returns
    holds up every item behind it.
    """

    def __init__(
        self,
        store: IdentityStore,
        cache: GreetingCache,
        player: AudioPlayer,
        gallery: Optional[Gallery] = None,
        item_delay_seconds: float = QUEUE_ITEM_DELAY_SECONDS,
        missing_person_retry_seconds: float = MISSING_PERSON_RETRY_SECONDS,
    ):
        self.store = store
        self.cache = cache
        self.player = player
        self.gallery = gallery
        self.item_delay_seconds = item_delay_seconds
        self.missing_person_retry_seconds = missing_person_retry_seconds
        self.logger = setup_logger(self.__class__.__name__)

        self._items: Deque[GreetingQueueItem] = deque()
        self._queued_ids: Set[str] = set()
        self._active_id: Optional[str] = None
        self._worker: Optional[asyncio.Task] = None

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._queued_ids or identity_id == self._active_id

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, item: GreetingQueueItem) -> bool:
        if item.identity_id in self:
            return False

        self._items.append(item)
        self._queued_ids.add(item.identity_id)
        self._ensure_worker()
        return True

    async def join(self) -> None:
        """Wait until every queued greeting has been handled."""
        self._ensure_worker()
        while self._worker is not None and not self._worker.done():
            await self._worker
            self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self.is_processing or not self._items:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by the next enqueue or join() made from inside the loop.
            return
        self._worker = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._items:
            item = self._items.popleft()
            self._queued_ids.discard(item.identity_id)
            self._active_id = item.identity_id
            try:
                found = await self._handle(item)
            except Exception:
                self.logger.exception("Greeting for %s failed unexpectedly", item.identity_id)
                found = True
            finally:
                self._active_id = None

            delay = self.item_delay_seconds if found else self.missing_person_retry_seconds
            await asyncio.sleep(delay)

    async def _handle(self, item: GreetingQueueItem) -> bool:
        try:
            identity = self._resolve(item.identity_id)
        except DatabaseError as exc:
            self.logger.warning("Could not load %s for greeting: %s", item.identity_id, exc)
            return True

        if identity is None:
            self.logger.warning("Person %s (%s) not found, greeting skipped", item.display_name, item.identity_id)
            return False

        try:
            audio = await self.cache.resolve(identity)
        except SynthesisUnavailableError as exc:
            self.logger.info("Greeting for %s skipped: %s", identity.name, exc)
            return True
        except SynthesisError as exc:
            self.logger.warning("Greeting synthesis for %s failed: %s", identity.name, exc)
            return True
        except DatabaseError as exc:
            self.logger.warning("Greeting for %s skipped, store unavailable: %s", identity.name, exc)
            return True

        try:
            await asyncio.to_thread(self.player.play, audio)
            self.logger.info("Greeted %s", identity.name)
        except PlaybackError as exc:
            self.logger.warning("Greeting playback for %s failed: %s", identity.name, exc)
        except Exception:
            self.logger.exception("Unexpected playback error for %s", identity.name)
        return True

    def _resolve(self, identity_id: str) -> Optional[Identity]:
        record = self.store.get(identity_id)
        if record is None:
            return None

        snapshot = self.gallery.get(identity_id) if self.gallery is not None else None
        if snapshot is None:
            return record
        if record.cached_greeting_audio and not snapshot.cached_greeting_audio:
            snapshot.cached_greeting_audio = record.cached_greeting_audio
        return snapshot
