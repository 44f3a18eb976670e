"""Tests for chord parsing, hotkey capture and the global hotkey registrar."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from simpletimer.capture import PLACEHOLDER, HotkeyCapture, KeyEvent, chord_from_event
from simpletimer.hotkeys import (
    HotkeyBackend,
    default_hotkeys,
    human_combo_label,
    is_valid_chord,
    normalize_combo_string,
    parse_combo_string,
)


class TestChordStrings:
    def test_normalize_orders_modifiers(self) -> None:
        assert normalize_combo_string("Shift+Ctrl+S", "linux") == "ctrl+shift+s"

    def test_legacy_accelerator_maps_to_primary(self) -> None:
        assert normalize_combo_string("CommandOrControl+Shift+S", "linux") == "ctrl+shift+s"
        assert normalize_combo_string("CommandOrControl+Shift+S", "darwin") == "cmd+shift+s"

    def test_key_aliases(self) -> None:
        assert normalize_combo_string("Ctrl+ArrowUp", "linux") == "ctrl+up"
        assert normalize_combo_string("Alt+PgDown", "linux") == "alt+page_down"
        assert normalize_combo_string("Ctrl+Return", "linux") == "ctrl+enter"

    def test_parse(self) -> None:
        assert parse_combo_string("Ctrl+Shift+S", "linux") == (frozenset({"ctrl", "shift"}), "s")

    def test_parse_rejects_modifiers_only(self) -> None:
        assert parse_combo_string("Ctrl+Shift", "linux") is None
        assert parse_combo_string("", "linux") is None

    def test_valid_chord_needs_modifier(self) -> None:
        assert is_valid_chord("Ctrl+S", "linux")
        assert not is_valid_chord("S", "linux")
        assert not is_valid_chord("Shift", "linux")

    def test_human_label(self) -> None:
        assert human_combo_label("CommandOrControl+Shift+S", "linux") == "Ctrl+Shift+S"
        assert human_combo_label("Ctrl+Alt+F5", "win32") == "Ctrl+Alt+F5"
        assert human_combo_label("Cmd+Shift+S", "darwin") == "⌘⇧S"

    def test_default_hotkeys_use_host_primary(self) -> None:
        assert default_hotkeys("linux") == {"start": "Ctrl+Shift+S", "stop": "Ctrl+Shift+P", "reset": "Ctrl+Shift+R"}
        assert default_hotkeys("darwin")["start"] == "Cmd+Shift+S"


class TestChordFromEvent:
    def test_ctrl_shift_s(self) -> None:
        event = KeyEvent(key="s", ctrl=True, shift=True)
        assert chord_from_event(event, "linux") == "Ctrl+Shift+S"

    def test_meta_is_primary_on_macos(self) -> None:
        event = KeyEvent(key="s", meta=True, shift=True)
        assert chord_from_event(event, "darwin") == "Cmd+Shift+S"

    def test_modifier_order(self) -> None:
        event = KeyEvent(key="x", ctrl=True, alt=True, shift=True)
        assert chord_from_event(event, "linux") == "Ctrl+Alt+Shift+X"

    def test_space_and_named_keys(self) -> None:
        assert chord_from_event(KeyEvent(key=" ", alt=True), "linux") == "Alt+Space"
        assert chord_from_event(KeyEvent(key="F5", ctrl=True), "linux") == "Ctrl+F5"

    def test_pure_modifier_press(self) -> None:
        assert chord_from_event(KeyEvent(key="Shift", shift=True), "linux") is None
        assert chord_from_event(KeyEvent(key="Control", ctrl=True, shift=True), "linux") is None

    def test_bare_key_rejected(self) -> None:
        assert chord_from_event(KeyEvent(key="s"), "linux") is None


class TestHotkeyCapture:
    def test_session_lifecycle(self) -> None:
        on_confirm = Mock()
        capture = HotkeyCapture(on_confirm, platform="linux")
        capture.open("start")
        assert capture.is_open
        assert capture.captured is None
        assert capture.preview_text == PLACEHOLDER
        assert not capture.can_confirm

        assert capture.feed(KeyEvent(key="s", ctrl=True, shift=True)) is True
        assert capture.preview_text == "Ctrl+Shift+S"
        assert capture.can_confirm

        assert capture.confirm() == "Ctrl+Shift+S"
        on_confirm.assert_called_once_with("start", "Ctrl+Shift+S")
        assert not capture.is_open

    def test_only_shift_does_not_complete(self) -> None:
        capture = HotkeyCapture(Mock(), platform="linux")
        capture.open("stop")
        assert capture.feed(KeyEvent(key="Shift", shift=True)) is False
        assert capture.captured is None
        assert not capture.can_confirm
        assert capture.confirm() is None

    def test_last_event_wins(self) -> None:
        on_confirm = Mock()
        capture = HotkeyCapture(on_confirm, platform="linux")
        capture.open("reset")
        capture.feed(KeyEvent(key="a", ctrl=True))
        capture.feed(KeyEvent(key="b", alt=True))
        capture.feed(KeyEvent(key="Alt", alt=True))
        capture.confirm()
        on_confirm.assert_called_once_with("reset", "Alt+B")

    def test_cancel_discards(self) -> None:
        on_confirm = Mock()
        capture = HotkeyCapture(on_confirm, platform="linux")
        capture.open("start")
        capture.feed(KeyEvent(key="s", ctrl=True))
        capture.cancel()
        assert not capture.is_open
        assert capture.captured is None
        on_confirm.assert_not_called()

    def test_focus_lost_discards_captured_chord(self) -> None:
        on_confirm = Mock()
        capture = HotkeyCapture(on_confirm, platform="linux")
        capture.open("stop")
        capture.feed(KeyEvent(key="p", ctrl=True, shift=True))
        capture.focus_lost()
        assert not capture.is_open
        assert capture.preview_text == PLACEHOLDER
        assert capture.confirm() is None
        on_confirm.assert_not_called()

    def test_events_ignored_when_closed(self) -> None:
        capture = HotkeyCapture(Mock(), platform="linux")
        assert capture.feed(KeyEvent(key="s", ctrl=True)) is False

    def test_unknown_action(self) -> None:
        capture = HotkeyCapture(Mock(), platform="linux")
        with pytest.raises(ValueError):
            capture.open("pause")


class TestHotkeyBackend:
    def make_backend(self, hotkeys=None):
        on_action = Mock()
        backend = HotkeyBackend(on_action, hotkeys or {"start": "Ctrl+Shift+S", "stop": "Ctrl+Shift+P", "reset": "Ctrl+Shift+R"})
        return backend, on_action

    def test_bindings_parsed(self) -> None:
        backend, _ = self.make_backend()
        assert backend.bindings["start"] == (frozenset({"ctrl", "shift"}), "s")
        assert set(backend.bindings) == {"start", "stop", "reset"}

    def test_invalid_binding_skipped(self) -> None:
        backend, _ = self.make_backend({"start": "Ctrl+Shift", "stop": "Ctrl+P", "reset": "Ctrl+R"})
        assert "start" not in backend.bindings
        assert "stop" in backend.bindings

    def test_press_sequence_fires_action(self) -> None:
        backend, on_action = self.make_backend()
        backend.handle_press("ctrl", None)
        backend.handle_press("shift", None)
        assert backend.handle_press(None, "s") == "start"
        on_action.assert_called_once_with("start")

    def test_held_key_fires_once(self) -> None:
        backend, on_action = self.make_backend()
        backend.handle_press("ctrl", None)
        backend.handle_press("shift", None)
        backend.handle_press(None, "p")
        backend.handle_press(None, "p")
        on_action.assert_called_once_with("stop")

    def test_modifiers_must_match_exactly(self) -> None:
        backend, on_action = self.make_backend()
        backend.handle_press("ctrl", None)
        assert backend.handle_press(None, "s") is None
        on_action.assert_not_called()

    def test_reload_replaces_all_bindings(self) -> None:
        backend, on_action = self.make_backend()
        backend.reload_bindings({"start": "Alt+1", "stop": "Alt+2", "reset": "Alt+3"})
        assert backend.bindings["reset"] == (frozenset({"alt"}), "3")
        backend.handle_press("alt", None)
        assert backend.handle_press(None, "3") == "reset"
        on_action.assert_called_once_with("reset")

    def test_release_clears_fired_keys(self) -> None:
        backend, on_action = self.make_backend()
        backend.handle_press("ctrl", None)
        backend.handle_press("shift", None)
        backend.handle_press(None, "r")
        backend.handle_release(None, "r")
        backend.handle_release("shift", None)
        backend.handle_release("ctrl", None)
        assert backend.handle_press(None, "r") is None
        on_action.assert_called_once_with("reset")


class FakeKeyCode:
    def __init__(self, char=None, vk=None) -> None:
        self.char = char
        self.vk = vk


class TestKeyToken:
    keyboard = SimpleNamespace(KeyCode=FakeKeyCode)

    def token(self, **kwargs):
        backend = HotkeyBackend(Mock(), default_hotkeys("linux"))
        return backend._key_token(FakeKeyCode(**kwargs), self.keyboard)

    def test_char_is_lowercased(self) -> None:
        assert self.token(char="S") == "s"

    def test_control_character_maps_to_letter(self) -> None:
        assert self.token(char="\x13") == "s"

    def test_letter_from_virtual_key(self) -> None:
        assert self.token(vk=83) == "s"

    @pytest.mark.parametrize("vk, expected", [(48, "0"), (49, "1"), (57, "9")])
    def test_digit_from_virtual_key(self, vk, expected) -> None:
        assert self.token(vk=vk) == expected

    def test_unmapped_virtual_key(self) -> None:
        assert self.token(vk=112) is None

    def test_digit_chord_fires_without_char(self) -> None:
        on_action = Mock()
        backend = HotkeyBackend(on_action, {"start": "Ctrl+Alt+1", "stop": "Ctrl+Alt+2", "reset": "Ctrl+Alt+3"})
        backend.handle_press("ctrl", None)
        backend.handle_press("alt", None)
        token = backend._key_token(FakeKeyCode(vk=49), self.keyboard)
        assert backend.handle_press(None, token) == "start"
        on_action.assert_called_once_with("start")
