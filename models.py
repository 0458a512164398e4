"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ApplicationMode(str, Enum):
    IDLE = "IDLE"
    CAMERA = "CAMERA"
    ASSISTANT = "ASSISTANT"


class GestureKind(str, Enum):
    SINGLE_TAP = "single-tap"
    DOUBLE_TAP = "double-tap"
    LONG_PRESS_START = "long-press-start"
    LONG_PRESS_CANCEL = "long-press-cancel"
    SWIPE_UP = "swipe-up"


@dataclass(frozen=True)
class GestureEvent:
    kind: GestureKind
    timestamp: float = 0.0


class RecognitionErrorKind(str, Enum):
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    PERMISSION_DENIED = "not-allowed"
    NETWORK = "network"
    OTHER = "other"


@dataclass
class RecognitionError:
    kind: RecognitionErrorKind
    message: str = ""

    @property
    def is_fatal(self) -> bool:
        return self.kind in (
            RecognitionErrorKind.AUDIO_CAPTURE,
            RecognitionErrorKind.PERMISSION_DENIED,
        )


class TurnPhase(str, Enum):
    STOPPED = "STOPPED"
    LISTENING = "LISTENING"
    QUERYING = "QUERYING"
    SPEAKING = "SPEAKING"


@dataclass
class SpeechTurn:
    """One listen -> query -> speak cycle of the assistant."""

    transcript: str = ""
    is_final: bool = False
    request_text: str = ""
    location_hint: Optional[str] = None
    response_text: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class DetectedObject:
    label: str
    confidence: float
    bbox: tuple[float, float, float, float]  # x, y, w, h

    @property
    def center(self) -> tuple[float, float]:
        x, y, w, h = self.bbox
        return x + w / 2, y + h / 2


@dataclass
class DetectionFrame:
    timestamp: float
    objects: list[DetectedObject] = field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return [obj.label for obj in self.objects]


@dataclass
class DescriptionRequest:
    image: Any
    previous_description: Optional[str] = None
    objects: list[DetectedObject] = field(default_factory=list)


@dataclass
class SceneDescription:
    description: str


@dataclass
class AssistantRequest:
    speech: str
    location_hint: Optional[str] = None


@dataclass
class AssistantReply:
    response: str


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0
    level: float = 0.0
