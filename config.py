"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path


_TRUE_WORDS = ("true", "yes", "on", "1")
_FALSE_WORDS = ("false", "no", "off", "0")


def _coerce(value: object, expected: type) -> object:
    if expected is bool:
        if isinstance(value, bool):
            return value
        word = str(value).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(value, bool):
        raise TypeError(f"unexpected boolean for {expected.__name__}")
    return value if isinstance(value, expected) else expected(value)


@dataclass
class AppSettings:
    long_press_s: float = 0.7
    double_tap_s: float = 0.3
    swipe_min_dy: float = 50.0
    swipe_max_dx: float = 75.0
    detection_interval_s: float = 2.5
    location_timeout_s: float = 5.0
    max_recognition_retries: int = 3
    no_speech_timeout_s: float = 8.0
    end_silence_s: float = 1.0
    speech_level: float = 500.0
    camera_device: int = 0
    camera_warmup_s: float = 10.0
    detector_model: str = "yolov8n.pt"
    detection_confidence: float = 0.5
    describe_model: str = "qwen-vl-plus"
    assistant_model: str = "qwen-plus"
    recognition_model: str = "qwen3-asr-flash"
    use_scene_model: bool = True
    speech_rate: int = 170

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        known = {f.name for f in fields(cls)}
        defaults = asdict(cls())
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            expected = type(defaults[key])
            try:
                values[key] = _coerce(value, expected)
            except (TypeError, ValueError):
                continue
        return cls(**values)


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "assistive_visions" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", "Key.f8"))

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        data["hotkey"] = hotkey
        self._write_all(data)

    def load_settings(self) -> AppSettings:
        stored = self._read_all().get("settings", {})
        if not isinstance(stored, dict):
            return AppSettings()
        return AppSettings.from_dict(stored)

    def save_settings(self, settings: AppSettings) -> None:
        data = self._read_all()
        data["settings"] = asdict(settings)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
