from __future__ import annotations

import logging
from typing import Callable
import sys
import time


HotkeyHandler = Callable[[str], None]
ParsedCombo = tuple[frozenset[str], str]

ACTION_ORDER = ("start", "stop", "reset")

ACTION_TITLES = {
    "start": "Start",
    "stop": "Stop",
    "reset": "Reset",
}

MODIFIER_ORDER = ("cmd", "ctrl", "alt", "shift")

_TOKEN_ALIASES = {
    "command": "cmd",
    "meta": "cmd",
    "super": "cmd",
    "option": "alt",
    "control": "ctrl",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
    "return": "enter",
    "escape": "esc",
    "pageup": "page_up",
    "pgup": "page_up",
    "pagedown": "page_down",
    "pgdown": "page_down",
    "del": "delete",
    "ins": "insert",
}


def primary_modifier(platform: str | None = None) -> str:
    platform = sys.platform if platform is None else platform
    return "cmd" if platform == "darwin" else "ctrl"


def primary_modifier_label(platform: str | None = None) -> str:
    return "Cmd" if primary_modifier(platform) == "cmd" else "Ctrl"


def default_hotkeys(platform: str | None = None) -> dict[str, str]:
    primary = primary_modifier_label(platform)
    return {
        "start": f"{primary}+Shift+S",
        "stop": f"{primary}+Shift+P",
        "reset": f"{primary}+Shift+R",
    }


def normalize_combo_string(combo: str, platform: str | None = None) -> str:
    parts = [p.strip().lower() for p in str(combo).split("+") if p.strip()]
    if not parts:
        return ""
    mods: list[str] = []
    key = ""
    for part in parts:
        if part in {"commandorcontrol", "cmdorctrl"}:
            p = primary_modifier(platform)
        else:
            p = _TOKEN_ALIASES.get(part, part)
        if p in MODIFIER_ORDER:
            if p not in mods:
                mods.append(p)
        else:
            key = p
    mods.sort(key=MODIFIER_ORDER.index)
    if not key:
        return "+".join(mods)
    return "+".join([*mods, key])


def parse_combo_string(combo: str, platform: str | None = None) -> ParsedCombo | None:
    norm = normalize_combo_string(combo, platform)
    if not norm:
        return None
    parts = norm.split("+")
    key = parts[-1]
    if key in MODIFIER_ORDER:
        return None
    mods = [p for p in parts[:-1] if p]
    return frozenset(mods), key


def is_valid_chord(combo: str, platform: str | None = None) -> bool:
    parsed = parse_combo_string(combo, platform)
    return parsed is not None and bool(parsed[0])


def human_combo_label(combo: str, platform: str | None = None) -> str:
    platform = sys.platform if platform is None else platform
    norm = normalize_combo_string(combo, platform)
    if not norm:
        return ""
    parts = norm.split("+")
    out: list[str] = []
    for p in parts:
        if platform == "darwin":
            out.append({"cmd": "⌘", "alt": "⌥", "ctrl": "⌃", "shift": "⇧"}.get(p, _key_label(p)))
        else:
            out.append({"cmd": "Win", "alt": "Alt", "ctrl": "Ctrl", "shift": "Shift"}.get(p, _key_label(p)))
    return "".join(out) if platform == "darwin" else "+".join(out)


def _key_label(token: str) -> str:
    if len(token) == 1:
        return token.upper()
    return "_".join(part.title() for part in token.split("_"))


class HotkeyBackend:
    """Global hotkey registrar backed by a pynput keyboard listener.

    The listener runs on its own thread; ``on_action`` is called from that thread,
    so callers hand the action over to their event loop (the Qt view pushes it
    onto a queue drained by a ``QTimer``).
    """

    def __init__(self, on_action: HotkeyHandler, hotkeys: dict[str, str], enabled: bool = True) -> None:
        self.on_action = on_action
        self._listener = None
        self.available = False
        self.error: str | None = None
        self.log = logging.getLogger("simpletimer.hotkeys")
        self._pressed_mods: set[str] = set()
        self._fired_keys: set[str] = set()
        self._last_action_at: dict[str, float] = {}
        self._repeat_guard_ms = 700
        self.enabled = bool(enabled)
        self.hotkeys = dict(hotkeys)
        self._parsed_bindings: dict[str, ParsedCombo] = {}
        self._reload_parsed_bindings()

    @property
    def bindings(self) -> dict[str, ParsedCombo]:
        return dict(self._parsed_bindings)

    def start(self) -> None:
        if not self.enabled:
            self.available = False
            self.error = "global hotkeys disabled"
            self.log.info("hotkeys_disabled")
            return
        try:
            from pynput import keyboard  # type: ignore
        except Exception as exc:  # pragma: no cover
            self.error = f"pynput unavailable: {exc}"
            self.available = False
            self.log.warning("hotkeys_backend_unavailable error=%s", exc)
            return

        self.log.info("hotkeys_backend_start platform=%s", sys.platform)
        self.log.info("hotkeys_bindings %s", self.hotkeys)

        try:
            self._listener = keyboard.Listener(
                on_press=self._make_on_press(keyboard),
                on_release=self._make_on_release(keyboard),
            )
            self._listener.start()
            self.available = True
        except Exception as exc:  # pragma: no cover
            self.error = f"global hotkeys unavailable: {exc}"
            self.log.exception("hotkeys_backend_failed")
            self.available = False

    def reload_bindings(self, hotkeys: dict[str, str]) -> None:
        # All actions are re-registered together; there is no per-action update.
        self.hotkeys = dict(hotkeys)
        self._pressed_mods.clear()
        self._fired_keys.clear()
        self._reload_parsed_bindings()
        self.log.info("hotkeys_bindings_reloaded %s", self.hotkeys)

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
        self.available = False

    def _reload_parsed_bindings(self) -> None:
        parsed: dict[str, ParsedCombo] = {}
        for action in ACTION_ORDER:
            combo = self.hotkeys.get(action, "")
            p = parse_combo_string(combo)
            if p is None:
                self.log.warning("hotkey_binding_invalid action=%s combo=%r", action, combo)
                continue
            parsed[action] = p
        self._parsed_bindings = parsed

    def _modifier_name(self, key: object, keyboard_module: object) -> str | None:
        Key = getattr(keyboard_module, "Key")
        if key in {Key.cmd, Key.cmd_l, Key.cmd_r}:
            return "cmd"
        if key in {Key.alt, Key.alt_l, Key.alt_r, getattr(Key, "alt_gr", None)}:
            return "alt"
        if key in {Key.ctrl, Key.ctrl_l, Key.ctrl_r}:
            return "ctrl"
        if key in {Key.shift, Key.shift_l, Key.shift_r}:
            return "shift"
        return None

    def _key_token(self, key: object, keyboard_module: object) -> str | None:
        KeyCode = getattr(keyboard_module, "KeyCode")
        if isinstance(key, KeyCode):
            ch = getattr(key, "char", None)
            if ch and ord(ch[0]) < 32:
                # Ctrl+letter arrives as a control character on some platforms.
                return chr(ord(ch[0]) + 96)
            if ch:
                return str(ch).lower()
            vk = getattr(key, "vk", None)
            # Digits and letters share their ASCII codes with the virtual-key codes.
            if vk is not None and (48 <= vk <= 57 or 65 <= vk <= 90):
                return chr(vk).lower()
            return None

        key_name = getattr(key, "name", None)
        if key_name:
            return str(key_name).lower()
        return None

    def handle_press(self, mod: str | None, token: str | None) -> str | None:
        if mod:
            self._pressed_mods.add(mod)
            return None
        if not token or token in self._fired_keys:
            return None
        for action, (req_mods, req_key) in self._parsed_bindings.items():
            if req_key == token and req_mods == frozenset(self._pressed_mods):
                self._fired_keys.add(token)
                if self._should_throttle_action(action):
                    self.log.info(
                        "hotkey_throttled key=%s mods=%s action=%s repeat_guard_ms=%s",
                        token,
                        sorted(self._pressed_mods),
                        action,
                        self._repeat_guard_ms,
                    )
                    return None
                self.log.info("hotkey_matched key=%s mods=%s action=%s", token, sorted(self._pressed_mods), action)
                self.on_action(action)
                return action
        return None

    def handle_release(self, mod: str | None, token: str | None) -> None:
        if mod:
            self._pressed_mods.discard(mod)
            if not self._pressed_mods:
                self._fired_keys.clear()
            return
        if token:
            self._fired_keys.discard(token)

    def _make_on_press(self, keyboard_module: object):
        def _on_press(key: object) -> None:
            mod = self._modifier_name(key, keyboard_module)
            token = None if mod else self._key_token(key, keyboard_module)
            self.handle_press(mod, token)

        return _on_press

    def _make_on_release(self, keyboard_module: object):
        def _on_release(key: object) -> None:
            mod = self._modifier_name(key, keyboard_module)
            token = None if mod else self._key_token(key, keyboard_module)
            self.handle_release(mod, token)

        return _on_release

    def _should_throttle_action(self, action: str) -> bool:
        now = time.monotonic()
        last = self._last_action_at.get(action)
        self._last_action_at[action] = now
        if last is None:
            return False
        return (now - last) * 1000 < self._repeat_guard_ms
