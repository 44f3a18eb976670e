from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
import logging

from .hotkeys import ACTION_ORDER, human_combo_label, primary_modifier_label


PLACEHOLDER = "Press keys..."

MODIFIER_KEY_NAMES = frozenset({"Control", "Ctrl", "Alt", "Shift", "Meta", "Cmd", "Command", "Option", "AltGr"})


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False
    alt: bool = False
    shift: bool = False


def chord_from_event(event: KeyEvent, platform: str | None = None) -> str | None:
    """Translate one key event into a chord descriptor such as ``Ctrl+Shift+S``.

    Returns ``None`` unless the event carries at least one modifier and a
    non-modifier key.
    """
    tokens: list[str] = []
    if event.ctrl or event.meta:
        tokens.append(primary_modifier_label(platform))
    if event.alt:
        tokens.append("Alt")
    if event.shift:
        tokens.append("Shift")
    if not tokens:
        return None

    key = event.key
    if not key or key in MODIFIER_KEY_NAMES:
        return None
    if key == " ":
        key = "Space"
    elif len(key) == 1:
        key = key.upper()
    tokens.append(key)
    return "+".join(tokens)


class HotkeyCapture:
    """One capture session at a time, opened for a single action."""

    def __init__(self, on_confirm: Callable[[str, str], None], platform: str | None = None) -> None:
        self.on_confirm = on_confirm
        self.platform = platform
        self.log = logging.getLogger("simpletimer.hotkeys")
        self.action: str | None = None
        self.captured: str | None = None

    @property
    def is_open(self) -> bool:
        return self.action is not None

    @property
    def can_confirm(self) -> bool:
        return self.is_open and self.captured is not None

    @property
    def preview_text(self) -> str:
        if self.captured is None:
            return PLACEHOLDER
        return human_combo_label(self.captured, self.platform)

    def open(self, action: str) -> None:
        if action not in ACTION_ORDER:
            raise ValueError(f"unknown hotkey action: {action!r}")
        self.action = action
        self.captured = None
        self.log.info("hotkey_capture_opened action=%s", action)

    def feed(self, event: KeyEvent) -> bool:
        if not self.is_open:
            return False
        chord = chord_from_event(event, self.platform)
        if chord is None:
            return False
        self.captured = chord
        return True

    def confirm(self) -> str | None:
        if not self.can_confirm:
            return None
        action, chord = self.action, self.captured
        self.close()
        self.log.info("hotkey_capture_confirmed action=%s chord=%s", action, chord)
        self.on_confirm(action, chord)
        return chord

    def cancel(self) -> None:
        if self.is_open:
            self.log.info("hotkey_capture_cancelled action=%s", self.action)
        self.close()

    def focus_lost(self) -> None:
        if self.is_open:
            self.log.info("hotkey_capture_focus_lost action=%s discarded=%s", self.action, self.captured)
        self.close()

    def close(self) -> None:
        self.action = None
        self.captured = None
