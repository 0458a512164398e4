"""Tests for SoundDeviceRecorder and Endpointer."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import RecognitionFailure
from models import AudioFrame, RecognitionErrorKind
from recorder import EndpointState, Endpointer, SoundDeviceRecorder


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _make_fake_audio_data(n_samples: int = 1600, amplitude: int = 0) -> np.ndarray:
    """Block shaped like what the sounddevice callback provides."""
    return np.full((n_samples, 1), amplitude, dtype=np.int16)


def _frame(level: float, n_samples: int = 1600) -> AudioFrame:
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples, level=level)


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_runs(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    mock_sd.InputStream.assert_called_once()
    assert mock_sd.InputStream.call_args.kwargs["blocksize"] == 1600
    mock_stream.start.assert_called_once()
    assert recorder.running

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()

    # Should have emitted sentinel
    assert q.get_nowait() is None


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    recorder.stop()

    assert q.get_nowait() is None
    assert q.empty()


# ---------------------------------------------------------------
# Audio callback pushes frames to queue
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_audio_frames_with_level(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    recorder.start(q)

    recorder._on_audio(_make_fake_audio_data(1600, amplitude=1000), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert frame.channels == 1
    assert len(frame.pcm16_bytes) == 1600 * 2  # 16-bit = 2 bytes per sample
    assert frame.level == pytest.approx(1000.0)

    recorder.stop()


@patch("recorder.sd")
def test_silent_block_has_zero_level(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    recorder._on_audio(_make_fake_audio_data(1600), frames=1600, time_info=None, status=None)

    assert q.get_nowait().level == 0.0
    recorder.stop()


# ---------------------------------------------------------------
# Queue full - dropped chunks counting
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_queue_full_increments_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    fake_data = _make_fake_audio_data(1600)

    # Fill the queue
    recorder._on_audio(fake_data, frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 0

    # This should be dropped
    recorder._on_audio(fake_data, frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 1

    recorder.stop()


# ---------------------------------------------------------------
# Device failures
# ---------------------------------------------------------------

def test_start_raises_without_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    with pytest.raises(RecognitionFailure, match="sounddevice is not installed") as excinfo:
        recorder.start(q)
    assert excinfo.value.kind == RecognitionErrorKind.AUDIO_CAPTURE


@patch("recorder.sd")
def test_device_error_maps_to_audio_capture(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = Exception("Error querying device -1")

    recorder = SoundDeviceRecorder()
    with pytest.raises(RecognitionFailure) as excinfo:
        recorder.start(Queue())

    assert excinfo.value.kind == RecognitionErrorKind.AUDIO_CAPTURE
    assert not recorder.running


@patch("recorder.sd")
def test_permission_error_maps_to_permission_denied(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = PermissionError("microphone access not allowed")

    recorder = SoundDeviceRecorder()
    with pytest.raises(RecognitionFailure) as excinfo:
        recorder.start(Queue())

    assert excinfo.value.kind == RecognitionErrorKind.PERMISSION_DENIED


# ---------------------------------------------------------------
# Callback after stop is a no-op
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()

    # Drain sentinel
    q.get_nowait()

    recorder._on_audio(_make_fake_audio_data(1600), frames=1600, time_info=None, status=None)
    assert q.empty()


# ---------------------------------------------------------------
# Endpointer
# ---------------------------------------------------------------

def test_endpointer_waits_then_ends_after_trailing_silence() -> None:
    ep = Endpointer(speech_level=500, end_silence_s=0.3, no_speech_timeout_s=5)

    assert ep.feed(_frame(10)) == EndpointState.WAITING
    assert ep.feed(_frame(800)) == EndpointState.SPEAKING
    assert ep.feed(_frame(0)) == EndpointState.SPEAKING
    assert ep.feed(_frame(900)) == EndpointState.SPEAKING  # silence counter resets
    for _ in range(2):
        assert ep.feed(_frame(0)) == EndpointState.SPEAKING
    assert ep.feed(_frame(0)) == EndpointState.ENDED
    assert ep.heard_speech


def test_endpointer_gives_up_without_speech() -> None:
    ep = Endpointer(speech_level=500, no_speech_timeout_s=0.35)

    states = [ep.feed(_frame(100)) for _ in range(4)]

    assert states[-1] == EndpointState.NO_SPEECH
    assert not ep.heard_speech
    assert ep.feed(_frame(1000)) == EndpointState.NO_SPEECH


def test_endpointer_caps_utterance_length() -> None:
    ep = Endpointer(speech_level=500, end_silence_s=5, max_utterance_s=0.45)

    states = [ep.feed(_frame(1000)) for _ in range(5)]

    assert states[-1] == EndpointState.ENDED
