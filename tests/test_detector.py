from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from detector import DetectionSummaryDescriber, YoloDetector
from models import DescriptionRequest, DetectedObject


def _box(class_id: int, conf: float, xyxy: tuple[float, float, float, float]) -> SimpleNamespace:
    return SimpleNamespace(cls=[class_id], conf=[conf], xyxy=[list(xyxy)])


def _detector_with(boxes: list[SimpleNamespace], confidence: float = 0.5) -> tuple[YoloDetector, MagicMock]:
    detector = YoloDetector(confidence=confidence)
    model = MagicMock(return_value=[SimpleNamespace(boxes=boxes)])
    detector.model = model
    detector.class_names = {0: "person", 41: "cup"}
    return detector, model


# ---------------------------------------------------------------
# YoloDetector
# ---------------------------------------------------------------

def test_detect_converts_boxes_and_sorts_by_confidence() -> None:
    detector, model = _detector_with(
        [
            _box(41, 0.61, (10, 20, 50, 80)),
            _box(0, 0.93, (100, 0, 300, 400)),
        ]
    )

    objects = detector.detect("frame")

    assert [obj.label for obj in objects] == ["person", "cup"]
    assert objects[1].bbox == (10.0, 20.0, 40.0, 60.0)
    assert model.call_args.kwargs["conf"] == 0.5
    assert model.call_args.kwargs["verbose"] is False


def test_detect_filters_low_confidence_and_unknown_classes() -> None:
    detector, _ = _detector_with(
        [
            _box(41, 0.2, (0, 0, 10, 10)),
            _box(77, 0.8, (0, 0, 10, 10)),
        ]
    )

    objects = detector.detect("frame")

    assert [obj.label for obj in objects] == ["77"]


def test_detect_handles_results_without_boxes() -> None:
    detector = YoloDetector()
    detector.model = MagicMock(return_value=[SimpleNamespace(boxes=None)])

    assert detector.detect("frame") == []


def test_detect_raises_when_model_cannot_load(monkeypatch: pytest.MonkeyPatch) -> None:
    detector = YoloDetector(model_path="missing.pt")
    monkeypatch.setattr(detector, "load", lambda: False)

    with pytest.raises(RuntimeError, match="missing.pt"):
        detector.detect("frame")


# ---------------------------------------------------------------
# DetectionSummaryDescriber
# ---------------------------------------------------------------

def test_summary_mentions_each_label_once_with_position() -> None:
    image = np.zeros((480, 600, 3), dtype=np.uint8)
    objects = [
        DetectedObject("cup", 0.9, (20, 100, 60, 60)),
        DetectedObject("laptop", 0.8, (250, 100, 100, 80)),
        DetectedObject("cup", 0.5, (500, 100, 60, 60)),
    ]

    result = DetectionSummaryDescriber().describe(DescriptionRequest(image=image, objects=objects))

    assert result.description == "I see a cup on the left and a laptop in the center."


def test_summary_uses_an_before_vowels_and_caps_length() -> None:
    objects = [DetectedObject(label, 0.9 - i * 0.1, (0, 0, 1, 1)) for i, label in enumerate(["apple", "book", "chair"])]

    result = DetectionSummaryDescriber(max_objects=2).describe(DescriptionRequest(image="data:x", objects=objects))

    assert result.description == "I see an apple and a book."


def test_summary_of_empty_frame_is_empty() -> None:
    result = DetectionSummaryDescriber().describe(DescriptionRequest(image=None, objects=[]))

    assert result.description == ""
