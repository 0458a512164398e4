"""Tests for DashscopeRecognitionSession."""

from __future__ import annotations

import base64
import time
from queue import Queue
from typing import Callable, Optional
from unittest.mock import MagicMock, patch

import pytest

from errors import RecognitionFailure
from models import AudioFrame, RecognitionError, RecognitionErrorKind
from recorder import Endpointer
from recognizer import (
    DashscopeRecognitionFactory,
    DashscopeRecognitionSession,
    _pcm_to_wav_base64,
    classify_recognition_error,
)


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _frame(level: float, n_samples: int = 1600) -> AudioFrame:
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples, level=level)


def _speech_frames() -> list[AudioFrame]:
    return [_frame(1000.0)] * 3 + [_frame(0.0)] * 3


class FakeRecorder:
    def __init__(self, frames: Optional[list[AudioFrame]] = None, error: Optional[Exception] = None) -> None:
        self.frames = frames or []
        self.error = error
        self.stop_calls = 0
        self.queue: Optional[Queue] = None

    def start(self, audio_queue: Queue) -> None:
        if self.error is not None:
            raise self.error
        self.queue = audio_queue
        for frame in self.frames:
            audio_queue.put(frame)

    def stop(self) -> None:
        self.stop_calls += 1
        if self.queue is not None:
            self.queue.put_nowait(None)


class Events:
    def __init__(self) -> None:
        self.results: list[tuple[str, bool]] = []
        self.errors: list[RecognitionError] = []
        self.ended = 0

    def on_result(self, text: str, is_final: bool) -> None:
        self.results.append((text, is_final))

    def on_error(self, error: RecognitionError) -> None:
        self.errors.append(error)

    def on_end(self) -> None:
        self.ended += 1


def _session(recorder: FakeRecorder, events: Events, api_key: str = "test-key") -> DashscopeRecognitionSession:
    return DashscopeRecognitionSession(
        recorder=recorder,  # type: ignore[arg-type]
        api_key=api_key,
        on_result=events.on_result,
        on_error=events.on_error,
        on_end=events.on_end,
        endpointer=Endpointer(speech_level=500, end_silence_s=0.2, no_speech_timeout_s=0.5),
    )


def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.02)


def _fake_streaming_response():
    yield {"output": {"choices": [{"message": {"content": [{"text": "what"}]}}]}}
    yield {"output": {"choices": [{"message": {"content": [{"text": "what time"}]}}]}}
    yield {"output": {"choices": [{"message": {"content": [{"text": "what time is it"}]}}]}}


# ---------------------------------------------------------------
# _pcm_to_wav_base64
# ---------------------------------------------------------------

def test_pcm_to_wav_base64_produces_valid_base64() -> None:
    pcm = b"\x00\x00" * 1600
    result = _pcm_to_wav_base64(pcm, sample_rate=16000, channels=1)
    decoded = base64.b64decode(result)
    assert decoded[:4] == b"RIFF"


# ---------------------------------------------------------------
# Streaming recognition
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_successful_streaming_emits_partials_then_final_then_end(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _fake_streaming_response()
    events = Events()
    recorder = FakeRecorder(_speech_frames())

    session = _session(recorder, events)
    session.start()
    _wait_until(lambda: events.ended > 0)

    assert events.results == [
        ("what", False),
        ("what time", False),
        ("what time is it", False),
        ("what time is it", True),
    ]
    assert events.errors == []
    assert events.ended == 1
    assert recorder.stop_calls >= 1
    assert not session.is_running
    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["model"] == "qwen3-asr-flash"
    assert kwargs["stream"] is True


@patch("recognizer.dashscope")
def test_silence_reports_no_speech_without_calling_service(mock_ds: MagicMock) -> None:
    events = Events()
    session = _session(FakeRecorder([_frame(0.0)] * 8), events)

    session.start()
    _wait_until(lambda: events.ended > 0)

    assert [e.kind for e in events.errors] == [RecognitionErrorKind.NO_SPEECH]
    assert events.results == []
    mock_ds.MultiModalConversation.call.assert_not_called()


@patch("recognizer.dashscope")
def test_graceful_stop_before_speech_is_no_speech(mock_ds: MagicMock) -> None:
    events = Events()
    session = _session(FakeRecorder(), events)

    session.start()
    session.stop()
    _wait_until(lambda: events.ended > 0)

    assert [e.kind for e in events.errors] == [RecognitionErrorKind.NO_SPEECH]
    assert events.ended == 1


@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_emits_error() -> None:
    events = Events()
    session = _session(FakeRecorder(_speech_frames()), events, api_key="")

    session.start()
    _wait_until(lambda: events.ended > 0)

    assert len(events.errors) == 1
    assert events.errors[0].kind == RecognitionErrorKind.OTHER
    assert "API key" in events.errors[0].message


@patch("recognizer.dashscope")
def test_network_error_maps_correctly(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = ConnectionError("network timeout")
    events = Events()
    session = _session(FakeRecorder(_speech_frames()), events)

    session.start()
    _wait_until(lambda: events.ended > 0)

    assert [e.kind for e in events.errors] == [RecognitionErrorKind.NETWORK]
    assert events.results == []


@patch("recognizer.dashscope", None)
def test_dashscope_not_installed_emits_error() -> None:
    events = Events()
    session = _session(FakeRecorder(_speech_frames()), events)

    session.start()
    _wait_until(lambda: events.ended > 0)

    assert len(events.errors) == 1
    assert "not installed" in events.errors[0].message


@patch("recognizer.dashscope")
def test_abort_during_streaming_suppresses_callbacks(mock_ds: MagicMock) -> None:
    def slow_response():
        yield {"output": {"choices": [{"message": {"content": [{"text": "hello"}]}}]}}
        time.sleep(1.0)
        yield {"output": {"choices": [{"message": {"content": [{"text": "hello world"}]}}]}}

    mock_ds.MultiModalConversation.call.return_value = slow_response()
    events = Events()
    session = _session(FakeRecorder(_speech_frames()), events)

    session.start()
    _wait_until(lambda: bool(events.results))
    session.abort()
    assert not session.is_running
    time.sleep(1.3)

    assert events.results == [("hello", False)]
    assert events.ended == 0


def test_start_failure_propagates() -> None:
    events = Events()
    recorder = FakeRecorder(error=RecognitionFailure(RecognitionErrorKind.AUDIO_CAPTURE, "no device"))
    session = _session(recorder, events)

    with pytest.raises(RecognitionFailure):
        session.start()
    assert not session.is_running


# ---------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------

def test_classify_recognition_error() -> None:
    assert classify_recognition_error(TimeoutError("slow")).kind == RecognitionErrorKind.NETWORK
    assert classify_recognition_error(Exception("Connection reset")).kind == RecognitionErrorKind.NETWORK
    assert classify_recognition_error(Exception("401 invalid api key")).kind == RecognitionErrorKind.OTHER


def test_factory_builds_independent_sessions() -> None:
    recorders: list[FakeRecorder] = []

    def _make_recorder() -> FakeRecorder:
        recorders.append(FakeRecorder())
        return recorders[-1]

    factory = DashscopeRecognitionFactory(api_key="k", recorder_factory=_make_recorder)  # type: ignore[arg-type]
    events = Events()

    first = factory(events.on_result, events.on_error, events.on_end)
    second = factory(events.on_result, events.on_error)

    assert first is not second
    assert len(recorders) == 2
