"""Periodic detect-and-describe loop that runs while the camera is on."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from errors import AUTH_FAILED, DESCRIBE_FAILED, ERROR_MESSAGES, NETWORK_ERROR, error_code_of
from interfaces import ObjectDetector, SceneDescriber, Scheduler, TimerHandle, VideoStream
from models import DescriptionRequest, DetectedObject, DetectionFrame, SceneDescription
from speaker import Speaker

logger = logging.getLogger(__name__)

FrameCallback = Callable[[Any, Optional[DetectionFrame]], None]
DescriptionCallback = Callable[[str], None]


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().casefold()


class DetectionLoop:
    def __init__(
        self,
        detector: ObjectDetector,
        describer: SceneDescriber,
        speaker: Speaker,
        scheduler: Scheduler,
        interval_s: float = 2.5,
        on_frame: Optional[FrameCallback] = None,
        on_description: Optional[DescriptionCallback] = None,
    ) -> None:
        self._detector = detector
        self._describer = describer
        self._speaker = speaker
        self._scheduler = scheduler
        self._interval_s = interval_s
        self._on_frame = on_frame
        self._on_description = on_description

        self._stream: Optional[VideoStream] = None
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._detecting = False
        self._describing = False
        self._last_spoken = ""
        self._previous_description = ""

    @property
    def active(self) -> bool:
        return self._stream is not None

    @property
    def describing(self) -> bool:
        return self._describing

    @property
    def last_spoken(self) -> str:
        return self._last_spoken

    def set_describer(self, describer: SceneDescriber) -> None:
        """Takes effect from the next description request."""
        self._describer = describer

    def start(self, stream: VideoStream) -> None:
        self.stop()
        self._generation += 1
        self._stream = stream
        self._detecting = False
        self._describing = False
        self._last_spoken = ""
        self._previous_description = ""
        logger.info("Detection loop started (every %.1fs)", self._interval_s)
        self._tick()

    def stop(self) -> None:
        if self._stream is None:
            return
        self._generation += 1
        self._stream = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._detecting = False
        self._describing = False
        if self._on_frame:
            self._on_frame(None, None)
        logger.info("Detection loop stopped")

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def _tick(self) -> None:
        self._timer = None
        if self._stream is None:
            return
        self._timer = self._scheduler.call_later(self._interval_s, self._tick)

        if self._detecting:
            logger.debug("Previous detection still running, skipping tick")
            return
        try:
            frame = self._stream.read()
        except Exception as exc:
            logger.warning("Frame capture failed: %s", exc)
            return
        if frame is None:
            logger.debug("No frame available yet")
            return

        self._detecting = True
        generation = self._generation
        self._scheduler.run_in_background(
            lambda: self._detector.detect(frame),
            lambda result, error: self._on_detected(generation, frame, result, error),
        )

    def _on_detected(
        self,
        generation: int,
        frame: Any,
        result: Optional[list[DetectedObject]],
        error: Optional[BaseException],
    ) -> None:
        if generation != self._generation:
            logger.debug("Discarding detections from a stopped camera session")
            return
        self._detecting = False
        if error is not None:
            logger.warning("Object detection failed: %s", error)
        objects = list(result or [])
        detection = DetectionFrame(timestamp=self._scheduler.now(), objects=objects)
        if self._on_frame:
            self._on_frame(frame, detection)

        if self._describing:
            logger.debug("Scene description still in flight, not requesting another")
            return
        self._describing = True
        request = DescriptionRequest(
            image=frame,
            previous_description=self._previous_description or None,
            objects=objects,
        )
        self._scheduler.run_in_background(
            lambda: self._describer.describe(request),
            lambda reply, err: self._on_described(generation, reply, err),
        )

    def _on_described(
        self,
        generation: int,
        reply: Optional[SceneDescription],
        error: Optional[BaseException],
    ) -> None:
        if generation != self._generation:
            logger.debug("Discarding scene description from a stopped camera session")
            return
        self._describing = False

        if error is not None:
            code = error_code_of(error, DESCRIBE_FAILED)
            logger.warning("Scene description failed (%s): %s", code, error)
            self._report_failure(code)
            return

        text = (reply.description if reply is not None else "").strip()
        if not text:
            return
        if self._on_description:
            self._on_description(text)
        if self._announce(text):
            self._previous_description = text

    def _report_failure(self, code: str) -> None:
        # every failure is spoken, even a repeat of the previous one
        message = ERROR_MESSAGES[code if code in (AUTH_FAILED, NETWORK_ERROR) else DESCRIBE_FAILED]
        self._speaker.say(message)

    def _announce(self, text: str) -> bool:
        if _normalize(text) == _normalize(self._last_spoken):
            return False
        if self._speaker.is_speaking:
            # shown now, spoken on a later tick if it is still new
            self._speaker.show(text)
            return False
        self._last_spoken = text
        self._speaker.say(text)
        return True
