"""State-machine based mode orchestration.

The controller owns the single application mode (idle, camera, assistant)
and is the only place that acquires or releases the camera stream and the
microphone. Gestures are mapped onto mode transitions here.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from assistant import AssistantTurnCoordinator, TranscriptCallback
from config import AppSettings
from detection_loop import DescriptionCallback, DetectionLoop, FrameCallback
from errors import (
    ASSISTANT_OFF,
    CAMERA_BUSY,
    CAMERA_OFF,
    CAMERA_ON,
    CAMERA_STARTING,
    ERROR_MESSAGES,
    STOP_ASSISTANT_FIRST,
    STOP_CAMERA_FIRST,
    WELCOME,
    CameraError,
)
from interfaces import (
    AssistantClient,
    CameraSource,
    LocationProvider,
    ObjectDetector,
    SceneDescriber,
    Scheduler,
    SpeechIO,
    VideoStream,
)
from models import ApplicationMode, GestureEvent, GestureKind
from speaker import Speaker, StatusCallback

logger = logging.getLogger(__name__)

ModeCallback = Callable[[ApplicationMode, ApplicationMode], None]


class ModeController:
    def __init__(
        self,
        speech: SpeechIO,
        camera: CameraSource,
        detector: ObjectDetector,
        describer: SceneDescriber,
        assistant: AssistantClient,
        scheduler: Scheduler,
        location: Optional[LocationProvider] = None,
        settings: Optional[AppSettings] = None,
        on_mode_change: Optional[ModeCallback] = None,
        on_status: Optional[StatusCallback] = None,
        on_frame: Optional[FrameCallback] = None,
        on_description: Optional[DescriptionCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
    ) -> None:
        settings = settings or AppSettings()
        self._camera = camera
        self._on_mode_change = on_mode_change

        self._mode = ApplicationMode.IDLE
        self._stream: Optional[VideoStream] = None

        self.speaker = Speaker(speech, on_status=on_status)
        self.detection = DetectionLoop(
            detector=detector,
            describer=describer,
            speaker=self.speaker,
            scheduler=scheduler,
            interval_s=settings.detection_interval_s,
            on_frame=on_frame,
            on_description=on_description,
        )
        self.assistant = AssistantTurnCoordinator(
            speech=speech,
            speaker=self.speaker,
            assistant=assistant,
            scheduler=scheduler,
            location=location,
            location_timeout_s=settings.location_timeout_s,
            max_retries=settings.max_recognition_retries,
            on_finished=self._on_assistant_finished,
            on_transcript=on_transcript,
        )

    @property
    def mode(self) -> ApplicationMode:
        return self._mode

    @property
    def is_speaking(self) -> bool:
        return self.speaker.is_speaking

    @property
    def has_camera_stream(self) -> bool:
        return self._stream is not None

    def welcome(self) -> None:
        self.speaker.say(WELCOME)

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def handle_gesture(self, event: GestureEvent) -> None:
        kind = event.kind
        if kind == GestureKind.DOUBLE_TAP:
            self.toggle_camera()
        elif kind == GestureKind.LONG_PRESS_START:
            self.toggle_assistant()
        elif kind in (GestureKind.SINGLE_TAP, GestureKind.SWIPE_UP):
            self._interrupt_speech()

    def toggle_camera(self) -> None:
        if self._mode == ApplicationMode.CAMERA:
            self.stop()
        else:
            self.request_camera()

    def toggle_assistant(self) -> None:
        if self._mode == ApplicationMode.ASSISTANT:
            self.stop()
        else:
            self.request_assistant()

    def _interrupt_speech(self) -> None:
        if self._mode == ApplicationMode.ASSISTANT:
            self.assistant.interrupt()
        else:
            self.speaker.interrupt()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_camera(self) -> bool:
        if self._mode == ApplicationMode.CAMERA:
            return True
        if self._mode == ApplicationMode.ASSISTANT:
            self._reject(STOP_ASSISTANT_FIRST)
            return False

        self.speaker.show(CAMERA_STARTING)
        try:
            stream = self._camera.open()
        except CameraError as exc:
            logger.warning("Camera unavailable (%s): %s", exc.code, exc)
            self.speaker.say(exc.user_message)
            return False
        except Exception:
            logger.exception("Unexpected camera failure")
            self.speaker.say(ERROR_MESSAGES[CAMERA_BUSY])
            return False

        self._stream = stream
        self._transition(ApplicationMode.CAMERA)
        self.speaker.say(CAMERA_ON)
        self.detection.start(stream)
        return True

    def request_assistant(self) -> bool:
        if self._mode == ApplicationMode.ASSISTANT:
            return True
        if self._mode == ApplicationMode.CAMERA:
            self._reject(STOP_CAMERA_FIRST)
            return False
        self._transition(ApplicationMode.ASSISTANT)
        self.assistant.start()
        return self._mode == ApplicationMode.ASSISTANT

    def stop(self) -> None:
        if self._mode == ApplicationMode.CAMERA:
            self._leave_camera()
            self._transition(ApplicationMode.IDLE)
            self.speaker.say(CAMERA_OFF)
        elif self._mode == ApplicationMode.ASSISTANT:
            self.assistant.stop()
            self._transition(ApplicationMode.IDLE)
            self.speaker.say(ASSISTANT_OFF)

    def shutdown(self) -> None:
        if self._mode == ApplicationMode.CAMERA:
            self._leave_camera()
        elif self._mode == ApplicationMode.ASSISTANT:
            self.assistant.stop()
        self._transition(ApplicationMode.IDLE)
        self.speaker.interrupt()

    def _leave_camera(self) -> None:
        self.detection.stop()
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.release()
            except Exception as exc:
                logger.warning("Failed to release camera stream: %s", exc)

    def _on_assistant_finished(self) -> None:
        if self._mode == ApplicationMode.ASSISTANT:
            self._transition(ApplicationMode.IDLE)

    def _reject(self, message: str) -> None:
        logger.info("Rejected cross-mode request in %s: %s", self._mode.value, message)
        if self._mode == ApplicationMode.ASSISTANT:
            self.assistant.notify(message)
        else:
            self.speaker.say(message)

    def _transition(self, to_mode: ApplicationMode) -> None:
        from_mode = self._mode
        if from_mode == to_mode:
            return
        self._mode = to_mode
        logger.info("Mode %s -> %s", from_mode.value, to_mode.value)
        if self._on_mode_change:
            self._on_mode_change(from_mode, to_mode)


def describe_mode(mode: ApplicationMode) -> str:
    return {
        ApplicationMode.IDLE: "Ready",
        ApplicationMode.CAMERA: "Camera",
        ApplicationMode.ASSISTANT: "Assistant",
    }[mode]
