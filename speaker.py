"""Speech output gate shared by the camera and assistant coordinators."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from interfaces import SpeechIO

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class Speaker:
    """Owns the speaking flag and the on-screen status line.

    Every utterance gets a token; a completion callback only counts when its
    token is still the current one, so a superseded or interrupted utterance
    can never clear the flag or resume a coordinator late.
    """

    def __init__(self, speech: SpeechIO, on_status: Optional[StatusCallback] = None) -> None:
        self._speech = speech
        self._on_status = on_status
        self._utterance_id = 0
        self._speaking = False
        self._status = ""

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def status(self) -> str:
        return self._status

    def show(self, text: str) -> None:
        self._status = text
        if self._on_status:
            self._on_status(text)

    def say(self, text: str, on_complete: Optional[Callable[[], None]] = None) -> None:
        self.show(text)
        self._utterance_id += 1
        token = self._utterance_id

        def _done() -> None:
            if token != self._utterance_id:
                return
            self._speaking = False
            if on_complete:
                on_complete()

        self._speaking = True
        self._speech.speak(text, _done)

    def interrupt(self) -> bool:
        """Cancel the utterance in flight. Its completion is suppressed."""
        if not self._speaking:
            return False
        self._utterance_id += 1
        self._speaking = False
        logger.debug("Speech interrupted")
        self._speech.cancel_speech()
        return True
