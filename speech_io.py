"""Speech synthesis and recognition adapter used by the coordinators."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from errors import RecognitionFailure
from models import RecognitionError, RecognitionErrorKind
from recognizer import DashscopeRecognitionSession

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., DashscopeRecognitionSession]
Dispatch = Callable[..., None]


class _Utterance:
    def __init__(self, text: str, on_complete: Optional[Callable[[], None]]) -> None:
        self.text = text
        self.cancelled = False
        self._on_complete = on_complete
        self._done = False
        self._lock = threading.Lock()

    def finish(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        if self._on_complete:
            self._on_complete()


class Pyttsx3Synthesizer:
    """Plays one utterance at a time on a worker thread.

    Completion fires exactly once per ``speak`` call, whether the utterance
    played to the end, failed, or was cancelled. Without a working TTS
    engine every utterance completes immediately.
    """

    def __init__(self, rate: int = 170, volume: float = 1.0) -> None:
        self._rate = rate
        self._volume = volume
        self._engine: Any = None
        self._engine_failed = False
        self._engine_lock = threading.Lock()
        self._lock = threading.Lock()
        self._current: Optional[_Utterance] = None

    @property
    def available(self) -> bool:
        return self._ensure_engine() is not None

    def speak(self, text: str, on_complete: Optional[Callable[[], None]] = None) -> None:
        self.cancel()
        utterance = _Utterance(text, on_complete)
        logger.info("[SPEAK] %s", text)
        if self._ensure_engine() is None:
            utterance.finish()
            return
        with self._lock:
            self._current = utterance
        threading.Thread(target=self._run, args=(utterance,), daemon=True).start()

    def cancel(self) -> None:
        with self._lock:
            utterance = self._current
            self._current = None
        if utterance is None:
            return
        utterance.cancelled = True
        engine = self._engine
        if engine is not None:
            try:
                engine.stop()
            except Exception as exc:
                logger.debug("TTS stop failed: %s", exc)
        utterance.finish()

    def _ensure_engine(self) -> Any:
        if self._engine is not None or self._engine_failed:
            return self._engine
        if pyttsx3 is None:
            self._engine_failed = True
            logger.warning("pyttsx3 is not installed, speech output disabled")
            return None
        try:
            engine = pyttsx3.init()
            engine.setProperty("rate", self._rate)
            engine.setProperty("volume", self._volume)
        except Exception as exc:
            self._engine_failed = True
            logger.warning("TTS initialization failed: %s", exc)
            return None
        self._engine = engine
        return engine

    def _run(self, utterance: _Utterance) -> None:
        with self._engine_lock:
            if not utterance.cancelled:
                try:
                    self._engine.say(utterance.text)
                    self._engine.runAndWait()
                except Exception as exc:
                    logger.warning("TTS error: %s", exc)
        with self._lock:
            if self._current is utterance:
                self._current = None
        utterance.finish()


class LocalSpeechIO:
    """Pairs the synthesizer with DashScope recognition sessions.

    Every callback handed out to the coordinators is routed through
    ``dispatch`` so that it runs on the event loop thread.
    """

    def __init__(
        self,
        synthesizer: Pyttsx3Synthesizer,
        session_factory: Optional[SessionFactory] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._session_factory = session_factory
        self._dispatch = dispatch
        self._live: Optional[DashscopeRecognitionSession] = None

    def speak(self, text: str, on_complete: Optional[Callable[[], None]] = None) -> None:
        self._synthesizer.speak(text, self._deliver(on_complete))

    def cancel_speech(self) -> None:
        self._synthesizer.cancel()

    def start_recognition(
        self,
        on_result: Callable[[str, bool], None],
        on_error: Callable[[RecognitionError], None],
        on_end: Optional[Callable[[], None]] = None,
    ) -> Optional[DashscopeRecognitionSession]:
        if self._session_factory is None:
            on_error(RecognitionError(RecognitionErrorKind.AUDIO_CAPTURE, "speech recognition is not supported"))
            return None
        if self._live is not None and self._live.is_running:
            logger.warning("Recognition already running, rejecting a second start")
            on_error(RecognitionError(RecognitionErrorKind.OTHER, "recognition already running"))
            return None

        session = self._session_factory(
            self._deliver(on_result),
            self._deliver(on_error),
            self._deliver(on_end),
        )
        try:
            session.start()
        except RecognitionFailure as exc:
            logger.warning("Could not start recognition (%s): %s", exc.kind.value, exc.message)
            on_error(RecognitionError(exc.kind, exc.message))
            return None
        self._live = session
        return session

    def _deliver(self, callback: Optional[Callable[..., None]]) -> Optional[Callable[..., None]]:
        if callback is None or self._dispatch is None:
            return callback
        dispatch = self._dispatch

        def _posted(*args: Any) -> None:
            dispatch(callback, *args)

        return _posted
