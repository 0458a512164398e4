"""Voice-assistant turn coordinator.

Runs ``listen -> query -> speak -> listen`` while the assistant mode is
active. Recognition and synthesis strictly take turns: a new recognition
session is only started after the previous one was released and the last
utterance completed (or was interrupted).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import (
    ASSISTANT_FAILED,
    AUTH_FAILED,
    EMPTY_RESPONSE,
    ERROR_MESSAGES,
    HEARD,
    LISTENING,
    NETWORK_ERROR,
    PROCESSING,
    RECOGNITION_FAILED,
    RECOGNITION_MESSAGES,
    error_code_of,
)
from interfaces import AssistantClient, LocationProvider, RecognitionSession, Scheduler, SpeechIO
from models import (
    AssistantReply,
    AssistantRequest,
    RecognitionError,
    RecognitionErrorKind,
    SpeechTurn,
    TurnPhase,
)
from speaker import Speaker

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str, bool], None]

_OWN_MESSAGE_CODES = (EMPTY_RESPONSE, AUTH_FAILED, NETWORK_ERROR)


class AssistantTurnCoordinator:
    def __init__(
        self,
        speech: SpeechIO,
        speaker: Speaker,
        assistant: AssistantClient,
        scheduler: Scheduler,
        location: Optional[LocationProvider] = None,
        location_timeout_s: float = 5.0,
        max_retries: int = 3,
        on_finished: Optional[Callable[[], None]] = None,
        on_transcript: Optional[TranscriptCallback] = None,
    ) -> None:
        self._speech = speech
        self._speaker = speaker
        self._assistant = assistant
        self._scheduler = scheduler
        self._location = location
        self._location_timeout_s = location_timeout_s
        self._max_retries = max_retries
        self._on_finished = on_finished
        self._on_transcript = on_transcript

        self._active = False
        self._phase = TurnPhase.STOPPED
        self._generation = 0
        self._session: Optional[RecognitionSession] = None
        self._session_token = 0
        self._retries = 0
        self._turn: Optional[SpeechTurn] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def phase(self) -> TurnPhase:
        return self._phase

    @property
    def turn(self) -> Optional[SpeechTurn]:
        return self._turn

    @property
    def has_live_session(self) -> bool:
        return self._session is not None

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._generation += 1
        self._retries = 0
        self._turn = None
        self._phase = TurnPhase.SPEAKING
        generation = self._generation
        self._speaker.say(LISTENING, on_complete=lambda: self._resume(generation))

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._generation += 1
        self._session_token += 1
        self._release_session()
        self._speaker.interrupt()
        self._phase = TurnPhase.STOPPED
        self._turn = None
        logger.info("Assistant stopped")

    def interrupt(self) -> bool:
        """Cut the current utterance short and go straight back to listening."""
        if not self._active or not self._speaker.is_speaking:
            return False
        logger.info("Assistant speech interrupted by user")
        self._speaker.interrupt()
        if self._phase == TurnPhase.QUERYING:
            return True
        self._turn = None
        self._retries = 0
        self._listen()
        return True

    def notify(self, message: str) -> None:
        """Speak ``message`` without breaking turn-taking."""
        if not self._active:
            self._speaker.say(message)
            return
        if self._phase == TurnPhase.QUERYING:
            # the reply will supersede this and resume listening afterwards
            self._speaker.say(message)
            return
        self._session_token += 1
        self._release_session()
        self._phase = TurnPhase.SPEAKING
        self._turn = None
        generation = self._generation
        self._speaker.say(message, on_complete=lambda: self._resume(generation))

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    def _resume(self, generation: int) -> None:
        if generation != self._generation or not self._active:
            return
        self._listen()

    def _listen(self) -> None:
        if not self._active:
            return
        self._release_session()
        self._phase = TurnPhase.LISTENING
        self._session_token += 1
        token = self._session_token
        self._speaker.show(LISTENING)
        session = self._speech.start_recognition(
            lambda text, is_final: self._on_result(token, text, is_final),
            lambda error: self._on_recognition_error(token, error),
            lambda: self._on_session_end(token),
        )
        if session is None:
            return
        if token == self._session_token and self._active:
            self._session = session
        else:
            # an error delivered during start already moved us on
            session.abort()

    def _release_session(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            try:
                session.abort()
            except Exception as exc:
                logger.warning("Failed to abort recognition session: %s", exc)

    def _on_result(self, token: int, text: str, is_final: bool) -> None:
        if token != self._session_token or not self._active:
            return
        if self._turn is None:
            self._turn = SpeechTurn()
        self._turn.transcript = text
        self._turn.is_final = is_final
        if self._on_transcript:
            self._on_transcript(text, is_final)
        if not is_final:
            self._speaker.show(HEARD.format(text=text))
            return

        self._session_token += 1
        self._release_session()
        request_text = text.strip()
        if not request_text:
            logger.debug("Empty final transcript, listening again")
            self._turn = None
            self._listen()
            return

        self._retries = 0
        turn = self._turn
        turn.request_text = request_text
        self._phase = TurnPhase.QUERYING
        self._speaker.show(PROCESSING)
        self._resolve_location(self._generation, turn)

    def _on_session_end(self, token: int) -> None:
        if token != self._session_token or not self._active:
            return
        self._session = None
        if self._phase != TurnPhase.LISTENING:
            return
        logger.debug("Recognition ended without a result")
        self._retry_or_finish(RecognitionError(RecognitionErrorKind.OTHER, "ended without result"))

    def _on_recognition_error(self, token: int, error: RecognitionError) -> None:
        if token != self._session_token or not self._active:
            return
        self._session_token += 1
        self._release_session()
        logger.warning("Speech recognition error: %s %s", error.kind.value, error.message)

        if error.kind == RecognitionErrorKind.NO_SPEECH or error.is_fatal:
            self._finish(RECOGNITION_MESSAGES[error.kind])
            return
        self._retry_or_finish(error)

    def _retry_or_finish(self, error: RecognitionError) -> None:
        self._retries += 1
        if self._retries > self._max_retries:
            self._finish(ERROR_MESSAGES[RECOGNITION_FAILED])
            return
        self._session_token += 1
        self._phase = TurnPhase.SPEAKING
        self._turn = None
        generation = self._generation
        message = RECOGNITION_MESSAGES.get(error.kind, RECOGNITION_MESSAGES[RecognitionErrorKind.OTHER])
        self._speaker.say(message, on_complete=lambda: self._resume(generation))

    def _finish(self, message: str) -> None:
        self.stop()
        self._speaker.say(message)
        if self._on_finished:
            self._on_finished()

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def _resolve_location(self, generation: int, turn: SpeechTurn) -> None:
        if self._location is None:
            self._query(generation, turn)
            return
        location = self._location
        self._scheduler.run_in_background(
            lambda: location.locate(self._location_timeout_s),
            lambda hint, error: self._on_location(generation, turn, hint, error),
        )

    def _on_location(
        self,
        generation: int,
        turn: SpeechTurn,
        hint: Optional[str],
        error: Optional[BaseException],
    ) -> None:
        if generation != self._generation or not self._active:
            return
        if error is not None:
            logger.info("Could not get location, proceeding without it: %s", error)
            hint = None
        turn.location_hint = hint or None
        self._query(generation, turn)

    def _query(self, generation: int, turn: SpeechTurn) -> None:
        request = AssistantRequest(speech=turn.request_text, location_hint=turn.location_hint)
        self._scheduler.run_in_background(
            lambda: self._assistant.ask(request),
            lambda reply, error: self._on_reply(generation, turn, reply, error),
        )

    def _on_reply(
        self,
        generation: int,
        turn: SpeechTurn,
        reply: Optional[AssistantReply],
        error: Optional[BaseException],
    ) -> None:
        if generation != self._generation or not self._active:
            logger.debug("Discarding assistant reply for an abandoned turn")
            return
        if error is not None:
            turn.error_code = error_code_of(error, ASSISTANT_FAILED)
            logger.warning("Assistant query failed (%s): %s", turn.error_code, error)
            spoken_code = turn.error_code if turn.error_code in _OWN_MESSAGE_CODES else ASSISTANT_FAILED
            text = ERROR_MESSAGES[spoken_code]
        else:
            text = (reply.response if reply is not None else "").strip()
            if not text:
                turn.error_code = EMPTY_RESPONSE
                text = ERROR_MESSAGES[EMPTY_RESPONSE]
        turn.response_text = text
        self._phase = TurnPhase.SPEAKING
        self._speaker.say(text, on_complete=lambda: self._after_turn(generation))

    def _after_turn(self, generation: int) -> None:
        if generation != self._generation or not self._active:
            return
        self._turn = None
        self._listen()
