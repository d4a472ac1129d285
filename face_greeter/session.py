import asyncio
import time
from typing import Callable, Iterable, List, Optional

import numpy as np

from .config import RecognitionSettings
from .exceptions import DatabaseError, FaceEngineError
from .face_types import AudioPlayer, Detection, FaceDetector, FrameReport, IdentityStore, MatchResult
from .gallery import Gallery
from .greeting_cache import GreetingCache
from .greeting_queue import GreetingQueue
from .logger import setup_logger
from .matcher import FaceMatcher
from .presence import PresenceTracker
from .scheduler import GreetingScheduler
from .synthesis import SpeechSynthesizer, VoiceConfig


class RecognitionSession:
    """Owns the gallery, presence and greeting state for one recognition run."""

    def __init__(
        self,
        store: IdentityStore,
        detector: FaceDetector,
        synthesizer: SpeechSynthesizer,
        player: AudioPlayer,
        settings: Optional[RecognitionSettings] = None,
        voice: Optional[VoiceConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.detector = detector
        self.settings = settings or RecognitionSettings.load(store)
        self.clock = clock
        self.logger = setup_logger(self.__class__.__name__)

        self.gallery = Gallery()
        self.matcher = FaceMatcher(
            distance_threshold=self.settings.distance_threshold,
            confidence_threshold_percent=self.settings.confidence_threshold_percent,
        )
        self.presence = PresenceTracker()
        self.cache = GreetingCache(store, synthesizer, voice=voice)
        self.queue = GreetingQueue(
            store,
            self.cache,
            player,
            gallery=self.gallery,
            item_delay_seconds=self.settings.queue_item_delay_seconds,
            missing_person_retry_seconds=self.settings.missing_person_retry_seconds,
        )
        self.scheduler = GreetingScheduler(
            self.presence,
            self.queue,
            cooldown_seconds=self.settings.greeting_cooldown_seconds,
            out_of_frame_reset_seconds=self.settings.out_of_frame_reset_seconds,
        )
        self._last_refresh: Optional[float] = None

    def start(self) -> int:
        loaded = self.gallery.load(self.store)
        self._last_refresh = self.clock()
        if not loaded:
            self.logger.warning("No enrolled people found; every face will be unknown")
        return loaded

    def refresh_gallery_if_changed(self) -> bool:
        self._last_refresh = self.clock()
        try:
            return self.gallery.refresh_if_changed(self.store)
        except DatabaseError as exc:
            self.logger.warning("Gallery refresh failed: %s", exc)
            return False

    async def process_frame(self, frame: np.ndarray, now: Optional[float] = None) -> FrameReport:
        try:
            detections = await asyncio.to_thread(self.detector.detect_all, frame)
        except FaceEngineError as exc:
            self.logger.warning("Detection error: %s", exc)
            return FrameReport(timestamp=self.clock() if now is None else now)

        return self.process_detections(detections, self.clock() if now is None else now)

    def process_detections(self, detections: Iterable[Detection], now: float) -> FrameReport:
        matches: List[MatchResult] = []
        unknown = 0
        for detection in detections:
            match = self.matcher.match(detection.embedding, self.gallery)
            if match is None:
                unknown += 1
                continue
            matches.append(match)

        decisions = self.scheduler.process_frame(matches, now)
        return FrameReport(timestamp=now, matches=matches, unknown_count=unknown, decisions=decisions)

    async def run(self, frames: Iterable[np.ndarray], stop_event: Optional[asyncio.Event] = None) -> int:
        """Drive the frame loop until the source ends or ``stop_event`` is set.

        Greetings already queued are allowed to finish before returning.
        """
        if self._last_refresh is None:
            self.start()

        processed = 0
        source = iter(frames)
        self.logger.info("Starting recognition loop with %d enrolled people", len(self.gallery))

        while stop_event is None or not stop_event.is_set():
            frame = await asyncio.to_thread(next, source, None)
            if frame is None:
                break

            started = self.clock()
            if started - self._last_refresh >= self.settings.gallery_refresh_seconds:
                self.refresh_gallery_if_changed()

            report = await self.process_frame(frame, started)
            processed += 1
            for match in report.matches:
                self.logger.debug(
                    "Matched %s distance=%.3f confidence=%d%%",
                    match.name,
                    match.distance,
                    match.confidence_percent,
                )

            elapsed = self.clock() - started
            await asyncio.sleep(max(0.0, self.settings.frame_interval_seconds - elapsed))

        self.logger.info("Recognition loop stopped after %d frames", processed)
        await self.queue.join()
        return processed
