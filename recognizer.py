"""Single-utterance speech recognition sessions backed by DashScope.

A session opens the microphone, buffers PCM until the endpointer decides the
user has finished talking (or gave up before speaking), then sends the WAV
clip to ``qwen3-asr-flash`` with ``stream=True``. Partial transcripts are
reported as interim results and the last one becomes the final result.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from models import AudioFrame, RecognitionError, RecognitionErrorKind
from recorder import EndpointState, Endpointer, SoundDeviceRecorder

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[RecognitionError], None]


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def classify_recognition_error(exc: Exception) -> RecognitionError:
    """Map an SDK/network exception onto a recognition error kind."""
    message = str(exc)
    low = message.lower()
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(
        word in low for word in ("timeout", "timed out", "network", "connection")
    ):
        return RecognitionError(RecognitionErrorKind.NETWORK, message)
    return RecognitionError(RecognitionErrorKind.OTHER, message)


class DashscopeRecognitionSession:
    def __init__(
        self,
        recorder: SoundDeviceRecorder,
        api_key: str,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: Optional[Callable[[], None]] = None,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        endpointer: Optional[Endpointer] = None,
        queue_maxsize: int = 200,
    ) -> None:
        self._recorder = recorder
        self._api_key = api_key
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._endpointer = endpointer or Endpointer()
        self._audio_queue: Queue[AudioFrame | None] = Queue(maxsize=queue_maxsize)
        self._thread: Optional[threading.Thread] = None
        self._aborted = threading.Event()
        self._finished = threading.Event()

    @property
    def is_running(self) -> bool:
        if self._thread is None or self._aborted.is_set():
            return False
        return not self._finished.is_set()

    def start(self) -> None:
        """Open the microphone and begin listening.

        Raises ``RecognitionFailure`` when the capture device cannot be opened.
        """
        if self._thread is not None:
            return
        self._recorder.start(self._audio_queue)
        self._thread = threading.Thread(target=self._worker, name="recognition", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop capturing and recognise whatever was heard so far."""
        self._recorder.stop()

    def abort(self) -> None:
        """Stop immediately; no further callbacks are delivered."""
        self._aborted.set()
        self._recorder.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        try:
            self._listen_and_recognise()
        finally:
            self._finished.set()

    def _listen_and_recognise(self) -> None:
        pcm = bytearray()
        sample_rate = 16000
        channels = 1

        while not self._aborted.is_set():
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels
            state = self._endpointer.feed(frame)
            if state in (EndpointState.ENDED, EndpointState.NO_SPEECH):
                self._recorder.stop()
                break

        if self._aborted.is_set():
            return
        if not pcm or not self._endpointer.heard_speech:
            logger.info("No speech detected")
            self._emit_error(RecognitionError(RecognitionErrorKind.NO_SPEECH, "no speech detected"))
            self._emit_end()
            return

        self._recognize_stream(_pcm_to_wav_base64(bytes(pcm), sample_rate, channels))
        self._emit_end()

    def _recognize_stream(self, wav_base64: str) -> None:
        if dashscope is None:
            self._emit_error(RecognitionError(RecognitionErrorKind.OTHER, "dashscope is not installed"))
            return

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit_error(RecognitionError(RecognitionErrorKind.OTHER, "No API key configured"))
            return

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_base64}]},
                ],
                result_format="message",
                asr_options={"enable_itn": True},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            logger.warning("Recognition request failed: %s", exc)
            self._emit_error(classify_recognition_error(exc))
            return

        latest_text = ""
        try:
            for chunk in response:
                if self._aborted.is_set():
                    return
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    self._emit_result(text, False)
        except Exception as exc:
            logger.warning("Recognition stream failed: %s", exc)
            self._emit_error(classify_recognition_error(exc))
            return

        self._emit_result(latest_text, True)

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            content = (choices[0].get("message") or {}).get("content") or []
            if content and isinstance(content[0], dict):
                return str(content[0].get("text", ""))
        return ""

    def _emit_result(self, text: str, is_final: bool) -> None:
        if not self._aborted.is_set():
            self._on_result(text, is_final)

    def _emit_error(self, error: RecognitionError) -> None:
        if not self._aborted.is_set():
            self._on_error(error)

    def _emit_end(self) -> None:
        if not self._aborted.is_set() and self._on_end:
            self._on_end()


class DashscopeRecognitionFactory:
    """Builds one recognition session per listening turn."""

    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        speech_level: float = 500.0,
        end_silence_s: float = 1.0,
        no_speech_timeout_s: float = 8.0,
        recorder_factory: Callable[[], SoundDeviceRecorder] = SoundDeviceRecorder,
    ) -> None:
        self.api_key = api_key
        self._model = model
        self._speech_level = speech_level
        self._end_silence_s = end_silence_s
        self._no_speech_timeout_s = no_speech_timeout_s
        self._recorder_factory = recorder_factory

    def __call__(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: Optional[Callable[[], None]] = None,
    ) -> DashscopeRecognitionSession:
        return DashscopeRecognitionSession(
            recorder=self._recorder_factory(),
            api_key=self.api_key,
            on_result=on_result,
            on_error=on_error,
            on_end=on_end,
            model=self._model,
            endpointer=Endpointer(
                speech_level=self._speech_level,
                end_silence_s=self._end_silence_s,
                no_speech_timeout_s=self._no_speech_timeout_s,
            ),
        )


