from __future__ import annotations

from typing import Callable
import logging

from .core import TimerStateMachine
from .hotkeys import ACTION_ORDER
from .settings import SETTING_KEYS, Settings, SettingsStore


HotkeyRegistrar = Callable[[dict[str, str]], None]


class SettingsSyncBridge:
    """Keeps the in-memory ``Settings`` record, the timer and the store in step.

    Every user edit is written through to the store as a single key. Hotkey edits
    always rewrite the whole mapping and ask the registrar to re-register all
    actions.
    """

    def __init__(
        self,
        store: SettingsStore,
        timer: TimerStateMachine,
        registrar: HotkeyRegistrar,
        render: Callable[[], None] | None = None,
    ) -> None:
        self.store = store
        self.timer = timer
        self.registrar = registrar
        self.render = render or (lambda: None)
        self.log = logging.getLogger("simpletimer.settings")
        self.settings = Settings()

    def load(self) -> Settings:
        self.settings = self.store.settings()
        self.timer.set_timer_length(self.settings.timer_length)
        self.log.info("settings_applied %s", self.settings)
        self.render()
        return self.settings

    def update(self, key: str, value: object) -> bool:
        if key == "hotkeys":
            if not isinstance(value, dict):
                raise TypeError("hotkeys must be a mapping of action to chord")
            return self.set_hotkeys(value)
        if key not in SETTING_KEYS:
            raise KeyError(key)

        if key == "timer_length":
            if self.timer.is_running:
                self.log.info("timer_length_edit_ignored value=%r reason=running", value)
                self.render()
                return False
            minutes = int(value)  # type: ignore[arg-type]
            if minutes <= 0:
                self.log.warning("timer_length_edit_rejected value=%r", value)
                self.render()
                return False
            self.store.set(key, minutes)
            self.settings.timer_length = minutes
            self.timer.set_timer_length(minutes)
        else:
            self.store.set(key, value)
            setattr(self.settings, key, self.store.get(key))
        self.render()
        return True

    def set_hotkey(self, action: str, chord: str) -> bool:
        if action not in ACTION_ORDER:
            raise ValueError(f"unknown hotkey action: {action!r}")
        hotkeys = dict(self.settings.hotkeys)
        hotkeys[action] = chord
        return self.set_hotkeys(hotkeys)

    def set_hotkeys(self, hotkeys: dict[str, str]) -> bool:
        merged = dict(self.settings.hotkeys)
        merged.update({action: hotkeys[action] for action in ACTION_ORDER if action in hotkeys})
        self.store.set("hotkeys", merged)
        self.settings.hotkeys = self.store.get("hotkeys")  # type: ignore[assignment]
        self.log.info("hotkeys_updated %s", self.settings.hotkeys)
        self.registrar(dict(self.settings.hotkeys))
        self.render()
        return True

    def save_window_bounds(self, bounds: dict[str, int]) -> None:
        self.store.set("window_bounds", bounds)
        self.settings.window_bounds = self.store.get("window_bounds")  # type: ignore[assignment]
