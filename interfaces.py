"""Protocol interfaces used by the mode controller and its coordinators."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, TypeVar

from config import AppSettings
from models import (
    AssistantReply,
    AssistantRequest,
    DescriptionRequest,
    DetectedObject,
    RecognitionError,
    SceneDescription,
)

T = TypeVar("T")

ResultCallback = Callable[[str, bool], None]
RecognitionErrorCallback = Callable[[RecognitionError], None]
DoneCallback = Callable[[Any, Optional[BaseException]], None]


class RecognitionSession(Protocol):
    def stop(self) -> None: ...

    def abort(self) -> None: ...


class SpeechIO(Protocol):
    def speak(self, text: str, on_complete: Optional[Callable[[], None]] = None) -> None: ...

    def cancel_speech(self) -> None: ...

    def start_recognition(
        self,
        on_result: ResultCallback,
        on_error: RecognitionErrorCallback,
        on_end: Optional[Callable[[], None]] = None,
    ) -> Optional[RecognitionSession]: ...


class VideoStream(Protocol):
    def read(self) -> Any: ...

    def release(self) -> None: ...


class CameraSource(Protocol):
    def open(self) -> VideoStream: ...


class ObjectDetector(Protocol):
    def detect(self, frame: Any) -> list[DetectedObject]: ...


class SceneDescriber(Protocol):
    def describe(self, request: DescriptionRequest) -> SceneDescription: ...


class AssistantClient(Protocol):
    def ask(self, request: AssistantRequest) -> AssistantReply: ...


class LocationProvider(Protocol):
    def locate(self, timeout_s: float) -> Optional[str]: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def run_in_background(self, work: Callable[[], T], on_done: DoneCallback) -> None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def load_settings(self) -> AppSettings: ...

    def save_settings(self, settings: AppSettings) -> None: ...
