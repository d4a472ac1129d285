import time
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

import cv2
import numpy as np

from .camera import CameraStream
from .config import ENROLLMENT_SAMPLES, SAMPLE_EVERY_N_FRAMES
from .exceptions import EnrollmentError, GreeterError
from .face_types import FaceDetector, Identity, IdentityStore, normalize_embeddings
from .logger import setup_logger


class EnrollmentService:
    def __init__(self, store: IdentityStore, detector: Optional[FaceDetector] = None):
        self.store = store
        self.detector = detector
        self.logger = setup_logger(self.__class__.__name__)

    def enroll(
        self,
        name: str,
        embeddings: Sequence[np.ndarray],
        date_of_birth: Optional[date] = None,
        identity_id: Optional[str] = None,
    ) -> Identity:
        name = name.strip()
        if not name:
            raise EnrollmentError("Name cannot be empty.")

        vectors = normalize_embeddings(embeddings)
        self._validate_dimension(vectors[0].shape[0])

        identity = Identity(
            identity_id=(identity_id or self._new_identity_id()).strip(),
            name=name,
            embeddings=vectors,
            date_of_birth=date_of_birth,
            registered_at=datetime.now().isoformat(timespec="seconds"),
        )
        if not identity.identity_id:
            raise EnrollmentError("Identity id cannot be empty.")

        self.store.put(identity)
        self.logger.info(
            "Enrolled %s (%s) with %d embedding(s)",
            identity.name,
            identity.identity_id,
            len(identity.embeddings),
        )
        return identity

    def capture_embeddings(
        self,
        camera_index: int = 0,
        target_samples: int = ENROLLMENT_SAMPLES,
        sample_every_n_frames: int = SAMPLE_EVERY_N_FRAMES,
    ) -> List[np.ndarray]:
        if self.detector is None:
            raise EnrollmentError("A face detector is required to capture embeddings.")
        if target_samples < 1:
            raise EnrollmentError("target_samples should be at least 1.")

        collected: List[np.ndarray] = []
        frame_index = 0
        window_name = "Enrollment - Press Q to cancel"

        with CameraStream(camera_index) as cam:
            try:
                while len(collected) < target_samples:
                    frame = cam.read()
                    frame_index += 1

                    try:
                        detections = self.detector.detect_all(frame)
                    except GreeterError:
                        raise
                    except Exception as exc:
                        self.logger.exception("Face extraction error during enrollment.")
                        raise EnrollmentError(f"Enrollment failed due to face extraction error: {exc}") from exc

                    if len(detections) == 1:
                        if frame_index % max(1, sample_every_n_frames) == 0:
                            collected.append(detections[0].embedding)
                            status = f"Captured sample {len(collected)}/{target_samples}"
                        else:
                            status = "Hold still..."
                    elif len(detections) > 1:
                        status = "Only one face should be visible"
                    else:
                        status = "No face detected"

                    for detection in detections:
                        x1, y1, x2, y2 = detection.region
                        cv2.rectangle(frame, (x1, y1), (x2, y2), (0, 180, 0), 2)
                    cv2.putText(frame, status, (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (20, 20, 240), 2, cv2.LINE_AA)
                    cv2.imshow(window_name, frame)

                    if cv2.waitKey(1) & 0xFF == ord("q"):
                        raise EnrollmentError("Enrollment cancelled by user.")
            finally:
                cv2.destroyAllWindows()

        return collected

    def embeddings_from_images(self, paths: Sequence[Union[str, Path]]) -> List[np.ndarray]:
        """One embedding per image that shows exactly one face; other images are skipped."""
        if self.detector is None:
            raise EnrollmentError("A face detector is required to read embeddings from images.")

        collected: List[np.ndarray] = []
        for path in paths:
            image = cv2.imread(str(path))
            if image is None:
                self.logger.warning("Skipping %s: file could not be read as an image", path)
                continue

            detections = self.detector.detect_all(image)
            if len(detections) != 1:
                self.logger.warning("Skipping %s: expected one face, found %d", path, len(detections))
                continue
            collected.append(detections[0].embedding)

        if not collected:
            raise EnrollmentError("None of the images contained exactly one face.")
        self.logger.info("Read %d embedding(s) from %d image(s)", len(collected), len(paths))
        return collected

    def enroll_from_images(
        self,
        name: str,
        paths: Sequence[Union[str, Path]],
        date_of_birth: Optional[date] = None,
    ) -> Identity:
        embeddings = self.embeddings_from_images(paths)
        return self.enroll(name=name, embeddings=embeddings, date_of_birth=date_of_birth)

    def enroll_from_camera(
        self,
        name: str,
        date_of_birth: Optional[date] = None,
        camera_index: int = 0,
        target_samples: int = ENROLLMENT_SAMPLES,
    ) -> Identity:
        started = time.monotonic()
        self.logger.info("Starting enrollment for %s", name)
        embeddings = self.capture_embeddings(camera_index=camera_index, target_samples=target_samples)
        identity = self.enroll(name=name, embeddings=embeddings, date_of_birth=date_of_birth)
        self.logger.info("Enrollment for %s finished in %.1fs", name, time.monotonic() - started)
        return identity

    def _validate_dimension(self, dim: int) -> None:
        enrolled = self.store.get_all()
        if enrolled and enrolled[0].embedding_dim != dim:
            raise EnrollmentError(
                f"Embedding dimension {dim} does not match the enrolled gallery ({enrolled[0].embedding_dim})."
            )

    def _new_identity_id(self) -> str:
        candidate = int(time.time() * 1000)
        while self.store.get(str(candidate)) is not None:
            candidate += 1
        return str(candidate)
