class GreeterError(Exception):
    """Base exception for the greeter system."""


class CameraError(GreeterError):
    """Raised when webcam access fails."""


class FaceEngineError(GreeterError):
    """Raised when face detection or embedding generation fails."""


class DatabaseError(GreeterError):
    """Raised when database operations fail."""


class EnrollmentError(GreeterError):
    """Raised when enrollment data is malformed or incomplete."""


class SynthesisError(GreeterError):
    """Raised when the speech synthesis provider returns a failure."""


class SynthesisUnavailableError(SynthesisError):
    """Raised when speech synthesis is not configured."""


class PlaybackError(GreeterError):
    """Raised when greeting audio cannot be played."""
