"""Shared error codes and user-facing messages."""

from __future__ import annotations

from models import RecognitionErrorKind

CAMERA_UNSUPPORTED = "CAMERA_UNSUPPORTED"
CAMERA_PERMISSION_DENIED = "CAMERA_PERMISSION_DENIED"
CAMERA_NOT_FOUND = "CAMERA_NOT_FOUND"
CAMERA_BUSY = "CAMERA_BUSY"
CAMERA_TIMEOUT = "CAMERA_TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
DESCRIBE_FAILED = "DESCRIBE_FAILED"
ASSISTANT_FAILED = "ASSISTANT_FAILED"
RECOGNITION_FAILED = "RECOGNITION_FAILED"

ERROR_MESSAGES = {
    CAMERA_UNSUPPORTED: "Camera not supported on this device.",
    CAMERA_PERMISSION_DENIED: "Camera permission denied. Please enable it in system settings.",
    CAMERA_NOT_FOUND: "No camera found. Ensure a camera is connected and enabled.",
    CAMERA_BUSY: "Camera is already in use or a hardware error occurred.",
    CAMERA_TIMEOUT: "Camera timed out. Please try again.",
    NETWORK_ERROR: "Network problem. Please check your connection.",
    AUTH_FAILED: "The service key is invalid. Please check the settings.",
    EMPTY_RESPONSE: "I'm sorry, I didn't quite understand that. Could you please rephrase?",
    DESCRIBE_FAILED: "Could not identify objects.",
    ASSISTANT_FAILED: "Sorry, I couldn't process that. Please try again.",
    RECOGNITION_FAILED: "Speech recognition keeps failing. Tap and hold to try again.",
}

RECOGNITION_MESSAGES = {
    RecognitionErrorKind.NO_SPEECH: "Didn't catch that. Tap and hold to try again.",
    RecognitionErrorKind.AUDIO_CAPTURE: "No microphone found or microphone is not working.",
    RecognitionErrorKind.PERMISSION_DENIED: (
        "Microphone permission denied. Please enable it in system settings."
    ),
    RecognitionErrorKind.NETWORK: (
        "Network error during speech recognition. Please check your connection. "
        "Please try again."
    ),
    RecognitionErrorKind.OTHER: "Speech recognition had a problem. Please try again.",
}

WELCOME = (
    "Welcome to Assistive Visions. Double tap the screen to identify objects. "
    "Tap and hold to speak to your personal assistant."
)
CAMERA_STARTING = "Initializing camera..."
CAMERA_ON = "Camera active. Point to objects. Double tap to stop."
CAMERA_OFF = "Camera off. Double tap for camera, tap & hold for assistant."
ASSISTANT_OFF = "Assistant off. Double tap for camera, tap & hold for assistant."
STOP_CAMERA_FIRST = "Please stop the camera first before using the assistant."
STOP_ASSISTANT_FIRST = "Please stop the assistant first before using the camera."
LISTENING = "Listening..."
PROCESSING = "Processing your request..."
HEARD = 'Heard: "{text}"...'


class AssistiveError(Exception):
    """Base error carrying one of the codes above."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, ERROR_MESSAGES[ASSISTANT_FAILED])


class CameraError(AssistiveError):
    pass


class CollaboratorError(AssistiveError):
    pass


class RecognitionFailure(Exception):
    def __init__(self, kind: RecognitionErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message


def error_code_of(exc: BaseException, default: str) -> str:
    """Return the classified code of ``exc`` or ``default`` for foreign errors."""
    if isinstance(exc, AssistiveError):
        return exc.code
    return default
