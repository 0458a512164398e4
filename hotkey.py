"""Global hotkey that acts as a pointer held on the interaction surface."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


def key_name(key: object) -> str:
    """Normalise a pynput key into the config format (``Key.f8`` or ``a``)."""
    char = getattr(key, "char", None)
    if char:
        return str(char).lower()
    return str(key)


class GlobalHotkeyPointer:
    """Press and release of the hotkey become pointer down and pointer up.

    Auto-repeat is folded into a single press, so holding the key behaves
    like holding a finger on the screen.
    """

    def __init__(self, hotkey_name: str = "Key.f8") -> None:
        self._hotkey_name = hotkey_name.lower() if len(hotkey_name) == 1 else hotkey_name
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()

    @property
    def hotkey_name(self) -> str:
        return self._hotkey_name

    def handle_press(self, key: object, on_down: Callable[[], None]) -> None:
        if key_name(key) != self._hotkey_name:
            return
        with self._lock:
            if self._pressed:
                return
            self._pressed = True
        on_down()

    def handle_release(self, key: object, on_up: Callable[[], None]) -> None:
        if key_name(key) != self._hotkey_name:
            return
        with self._lock:
            if not self._pressed:
                return
            self._pressed = False
        on_up()

    def start(self, on_down: Callable[[], None], on_up: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._listener = keyboard.Listener(
            on_press=lambda key: self.handle_press(key, on_down),
            on_release=lambda key: self.handle_release(key, on_up),
        )
        self._listener.start()
        logger.info("Hotkey %s bound to the interaction surface", self._hotkey_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        self._pressed = False
