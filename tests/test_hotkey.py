from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from hotkey import GlobalHotkeyPointer, key_name


class _SpecialKey:
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name


def test_key_name_normalises_chars_and_special_keys() -> None:
    assert key_name(SimpleNamespace(char="A")) == "a"
    assert key_name(_SpecialKey("Key.f8")) == "Key.f8"


def test_press_and_release_become_pointer_down_and_up() -> None:
    pointer = GlobalHotkeyPointer("Key.f8")
    events: list[str] = []
    f8 = _SpecialKey("Key.f8")

    pointer.handle_press(f8, lambda: events.append("down"))
    pointer.handle_release(f8, lambda: events.append("up"))

    assert events == ["down", "up"]


def test_auto_repeat_is_folded_into_one_press() -> None:
    pointer = GlobalHotkeyPointer("Key.f8")
    events: list[str] = []
    f8 = _SpecialKey("Key.f8")

    for _ in range(5):
        pointer.handle_press(f8, lambda: events.append("down"))
    pointer.handle_release(f8, lambda: events.append("up"))
    pointer.handle_release(f8, lambda: events.append("up"))

    assert events == ["down", "up"]


def test_other_keys_are_ignored() -> None:
    pointer = GlobalHotkeyPointer("Key.f8")
    events: list[str] = []

    pointer.handle_press(_SpecialKey("Key.f9"), lambda: events.append("down"))
    pointer.handle_release(SimpleNamespace(char="x"), lambda: events.append("up"))

    assert events == []


def test_character_hotkey_is_case_insensitive() -> None:
    pointer = GlobalHotkeyPointer("V")
    events: list[str] = []

    pointer.handle_press(SimpleNamespace(char="v"), lambda: events.append("down"))

    assert pointer.hotkey_name == "v"
    assert events == ["down"]


@patch("hotkey.keyboard")
def test_start_and_stop_manage_listener(mock_keyboard: MagicMock) -> None:
    pointer = GlobalHotkeyPointer()

    pointer.start(lambda: None, lambda: None)
    listener = mock_keyboard.Listener.return_value
    listener.start.assert_called_once()

    pointer.stop()
    listener.stop.assert_called_once()


@patch("hotkey.keyboard", None)
def test_start_without_pynput_raises() -> None:
    with pytest.raises(RuntimeError, match="pynput"):
        GlobalHotkeyPointer().start(lambda: None, lambda: None)
