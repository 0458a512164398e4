"""OpenCV camera access and frame helpers."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Optional, Sequence

from errors import (
    CAMERA_BUSY,
    CAMERA_NOT_FOUND,
    CAMERA_PERMISSION_DENIED,
    CAMERA_TIMEOUT,
    CAMERA_UNSUPPORTED,
    CameraError,
)
from models import DetectedObject

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

logger = logging.getLogger(__name__)

# BGR versions of the overlay palette: red, green, blue, orange, purple
BOX_COLORS = [
    (48, 59, 255),
    (89, 199, 52),
    (255, 122, 0),
    (0, 149, 255),
    (214, 86, 88),
]


def _classify_open_error(exc: Exception) -> str:
    low = str(exc).lower()
    if isinstance(exc, PermissionError) or "permission" in low or "not authorized" in low:
        return CAMERA_PERMISSION_DENIED
    return CAMERA_BUSY


class OpenCVStream:
    def __init__(self, capture: Any) -> None:
        self._capture = capture

    def read(self) -> Optional[Any]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return frame

    def release(self) -> None:
        capture = self._capture
        self._capture = None
        if capture is not None:
            capture.release()


class OpenCVCamera:
    def __init__(
        self,
        device: int = 0,
        width: int = 640,
        height: int = 480,
        warmup_s: float = 10.0,
        poll_s: float = 0.1,
    ) -> None:
        self._device = device
        self._width = width
        self._height = height
        self._warmup_s = warmup_s
        self._poll_s = poll_s

    def open(self) -> OpenCVStream:
        """Open the device and wait until it delivers a first frame."""
        if cv2 is None:
            raise CameraError(CAMERA_UNSUPPORTED, "opencv is not installed")
        try:
            capture = cv2.VideoCapture(self._device)
        except Exception as exc:
            raise CameraError(_classify_open_error(exc), str(exc)) from exc

        if not capture.isOpened():
            capture.release()
            raise CameraError(CAMERA_NOT_FOUND, f"camera {self._device} could not be opened")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)

        deadline = time.monotonic() + self._warmup_s
        while True:
            try:
                ok, frame = capture.read()
            except Exception as exc:
                capture.release()
                raise CameraError(_classify_open_error(exc), str(exc)) from exc
            if ok and frame is not None:
                break
            if time.monotonic() >= deadline:
                capture.release()
                raise CameraError(CAMERA_TIMEOUT, f"no frame within {self._warmup_s:.0f}s")
            time.sleep(self._poll_s)

        logger.info("Camera %s opened", self._device)
        return OpenCVStream(capture)


def encode_jpeg_data_uri(frame: Any, quality: int = 80) -> str:
    """Encode a BGR frame as a ``data:image/jpeg;base64,...`` URI."""
    if cv2 is None:
        raise RuntimeError("opencv is not installed")
    ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("could not encode frame as JPEG")
    return "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


def draw_detections(
    frame: Any,
    objects: Sequence[DetectedObject],
    thickness: int = 2,
    font_scale: float = 0.55,
) -> Any:
    """Return a copy of ``frame`` with labelled boxes for ``objects``."""
    if cv2 is None:
        return frame
    frame = frame.copy()
    for index, obj in enumerate(objects):
        color = BOX_COLORS[index % len(BOX_COLORS)]
        x, y, w, h = (int(v) for v in obj.bbox)
        cv2.rectangle(frame, (x, y), (x + w, y + h), color, thickness)

        label = f"{obj.label} {round(obj.confidence * 100)}%"
        (label_w, label_h), baseline = cv2.getTextSize(
            label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 1
        )
        box_h = label_h + baseline + 4
        top = y - box_h if y > box_h else y
        cv2.rectangle(frame, (x, top), (x + label_w + 8, top + box_h), color, -1)
        cv2.putText(
            frame,
            label,
            (x + 4, top + label_h + 2),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            1,
        )
    return frame
