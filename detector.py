"""Object detection collaborator and an offline scene describer."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from models import DescriptionRequest, DetectedObject, SceneDescription

logger = logging.getLogger(__name__)


class YoloDetector:
    def __init__(
        self,
        model_path: str = "yolov8n.pt",
        confidence: float = 0.5,
        iou_threshold: float = 0.45,
        device: str = "cpu",
    ) -> None:
        self.model_path = model_path
        self.confidence = confidence
        self.iou_threshold = iou_threshold
        self.device = device
        self.model: Any = None
        self.class_names: dict[int, str] = {}
        self._load_lock = threading.Lock()

    def load(self) -> bool:
        with self._load_lock:
            if self.model is not None:
                return True
            try:
                from ultralytics import YOLO

                model = YOLO(self.model_path)
            except Exception as exc:
                logger.error("Failed to load YOLO model %s: %s", self.model_path, exc)
                return False
            self.class_names = dict(model.names)
            self.model = model
            logger.info("Loaded %s with %d classes", self.model_path, len(self.class_names))
            return True

    def detect(self, frame: Any) -> list[DetectedObject]:
        if self.model is None and not self.load():
            raise RuntimeError(f"object detection model {self.model_path} is unavailable")

        results = self.model(
            frame,
            conf=self.confidence,
            iou=self.iou_threshold,
            device=self.device,
            verbose=False,
        )

        objects: list[DetectedObject] = []
        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue
            for box in boxes:
                score = float(box.conf[0])
                if score < self.confidence:
                    continue
                class_id = int(box.cls[0])
                x1, y1, x2, y2 = (float(v) for v in box.xyxy[0])
                objects.append(
                    DetectedObject(
                        label=self.class_names.get(class_id, str(class_id)),
                        confidence=score,
                        bbox=(x1, y1, x2 - x1, y2 - y1),
                    )
                )
        objects.sort(key=lambda obj: obj.confidence, reverse=True)
        return objects


def _position(obj: DetectedObject, frame_width: Optional[float]) -> str:
    if not frame_width:
        return ""
    cx, _ = obj.center
    if cx < frame_width / 3:
        return "on the left"
    if cx > frame_width * 2 / 3:
        return "on the right"
    return "in the center"


def _join(parts: list[str]) -> str:
    if len(parts) <= 1:
        return "".join(parts)
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def _article(label: str) -> str:
    return "an" if label[:1].lower() in "aeiou" else "a"


class DetectionSummaryDescriber:
    """Builds a short sentence from the detections, without any network call.

    Each label is mentioned once (its most confident box decides the
    position). An empty frame yields an empty description so nothing is
    spoken.
    """

    def __init__(self, max_objects: int = 5) -> None:
        self.max_objects = max_objects

    def describe(self, request: DescriptionRequest) -> SceneDescription:
        best: dict[str, DetectedObject] = {}
        for obj in request.objects:
            current = best.get(obj.label)
            if current is None or obj.confidence > current.confidence:
                best[obj.label] = obj
        if not best:
            return SceneDescription(description="")

        frame_width = None
        shape = getattr(request.image, "shape", None)
        if shape is not None and len(shape) >= 2:
            frame_width = float(shape[1])

        ranked = sorted(best.values(), key=lambda obj: obj.confidence, reverse=True)
        parts = []
        for obj in ranked[: self.max_objects]:
            phrase = f"{_article(obj.label)} {obj.label}"
            position = _position(obj, frame_width)
            parts.append(f"{phrase} {position}" if position else phrase)
        return SceneDescription(description=f"I see {_join(parts)}.")
