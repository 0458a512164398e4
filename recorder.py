"""Microphone recorder adapter and utterance endpointing."""

from __future__ import annotations

import threading
import time
from enum import Enum
from queue import Full, Queue
from typing import Any

from errors import RecognitionFailure
from models import AudioFrame, RecognitionErrorKind

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


def _classify_device_error(exc: Exception) -> RecognitionErrorKind:
    low = str(exc).lower()
    if isinstance(exc, PermissionError) or "permission" in low or "not allowed" in low:
        return RecognitionErrorKind.PERMISSION_DENIED
    return RecognitionErrorKind.AUDIO_CAPTURE


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None or np is None:
                raise RecognitionFailure(
                    RecognitionErrorKind.AUDIO_CAPTURE, "sounddevice is not installed"
                )
            self._audio_queue = audio_queue
            self.dropped_chunks = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                raise RecognitionFailure(_classify_device_error(exc), str(exc)) from exc
            self._running = True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            if self._stream is not None:
                try:
                    self._stream.stop()
                    self._stream.close()
                finally:
                    self._stream = None
            self._emit_sentinel()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        samples = np.asarray(indata, dtype=np.int16)
        level = float(np.sqrt(np.mean(np.square(samples.astype(np.float32))))) if samples.size else 0.0
        frame = AudioFrame(
            pcm16_bytes=samples.tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
            level=level,
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _emit_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            pass


class EndpointState(str, Enum):
    WAITING = "waiting"
    SPEAKING = "speaking"
    ENDED = "ended"
    NO_SPEECH = "no-speech"


class Endpointer:
    """Energy based end-of-utterance detection for single-shot listening."""

    def __init__(
        self,
        speech_level: float = 500.0,
        end_silence_s: float = 1.0,
        no_speech_timeout_s: float = 8.0,
        max_utterance_s: float = 15.0,
    ) -> None:
        self.speech_level = speech_level
        self.end_silence_s = end_silence_s
        self.no_speech_timeout_s = no_speech_timeout_s
        self.max_utterance_s = max_utterance_s
        self.state = EndpointState.WAITING
        self._elapsed_s = 0.0
        self._silence_s = 0.0

    @property
    def heard_speech(self) -> bool:
        return self.state in (EndpointState.SPEAKING, EndpointState.ENDED)

    def feed(self, frame: AudioFrame) -> EndpointState:
        if self.state in (EndpointState.ENDED, EndpointState.NO_SPEECH):
            return self.state
        bytes_per_second = 2 * frame.channels * frame.sample_rate
        duration = len(frame.pcm16_bytes) / bytes_per_second if bytes_per_second else 0.0
        self._elapsed_s += duration
        loud = frame.level >= self.speech_level

        if self.state == EndpointState.WAITING:
            if loud:
                self.state = EndpointState.SPEAKING
                self._silence_s = 0.0
            elif self._elapsed_s >= self.no_speech_timeout_s:
                self.state = EndpointState.NO_SPEECH
            return self.state

        self._silence_s = 0.0 if loud else self._silence_s + duration
        if self._silence_s >= self.end_silence_s or self._elapsed_s >= self.max_utterance_s:
            self.state = EndpointState.ENDED
        return self.state
