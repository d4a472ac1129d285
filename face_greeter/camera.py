import os
import threading
import time
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from .config import FRAME_FPS, FRAME_HEIGHT, FRAME_WIDTH
from .exceptions import CameraError


def capture_backends() -> List[Tuple[str, Optional[int]]]:
    names = ["DirectShow", "Media Foundation", "Auto"] if os.name == "nt" else ["Auto", "V4L2"]
    backend_map = {
        "Auto": getattr(cv2, "CAP_ANY", None),
        "DirectShow": getattr(cv2, "CAP_DSHOW", None),
        "Media Foundation": getattr(cv2, "CAP_MSMF", None),
        "V4L2": getattr(cv2, "CAP_V4L2", None),
    }
    candidates: List[Tuple[str, Optional[int]]] = []
    seen: set[Optional[int]] = set()
    for name in names:
        backend = backend_map[name]
        if backend in seen:
            continue
        seen.add(backend)
        candidates.append((name, backend))
    return candidates


def open_camera_capture(camera_index: int) -> Tuple[cv2.VideoCapture, str]:
    attempted: List[str] = []

    for backend_name, backend in capture_backends():
        attempted.append(backend_name)
        cap = cv2.VideoCapture(camera_index) if backend is None else cv2.VideoCapture(camera_index, backend)

        if cap.isOpened():
            # Some backends report opened but never deliver frames.
            for _ in range(6):
                ok, frame = cap.read()
                if ok and frame is not None:
                    return cap, backend_name
                time.sleep(0.03)
        cap.release()

    tried = ", ".join(attempted) if attempted else "default backend"
    raise CameraError(f"Unable to open webcam index {camera_index}. Tried backends: {tried}.")


class CameraStream:
    def __init__(self, camera_index: int = 0):
        self.camera_index = camera_index
        self.cap: Optional[cv2.VideoCapture] = None
        self.backend_name: Optional[str] = None

    def __enter__(self) -> "CameraStream":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        self.cap, self.backend_name = open_camera_capture(self.camera_index)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, FRAME_WIDTH)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, FRAME_HEIGHT)
        self.cap.set(cv2.CAP_PROP_FPS, FRAME_FPS)

    def read(self) -> np.ndarray:
        if self.cap is None:
            raise CameraError("Webcam stream is not initialized.")

        success, frame = self.cap.read()
        if not success or frame is None:
            raise CameraError("Failed to read frame from webcam.")
        return frame

    def iter_frames(self, stop_event: Optional[threading.Event] = None) -> Iterator[np.ndarray]:
        while stop_event is None or not stop_event.is_set():
            yield self.read()

    def close(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
