from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import copy
import json
import logging

from .hotkeys import ACTION_ORDER, default_hotkeys, is_valid_chord


DEFAULT_WINDOW_BOUNDS = {"width": 400, "height": 300}

SETTING_KEYS = (
    "timer_length",
    "hotkeys",
    "disable_hotkeys_when_running",
    "popup_on_end",
    "sound_on_end",
    "window_bounds",
)

_BOOL_KEYS = ("disable_hotkeys_when_running", "popup_on_end", "sound_on_end")


def default_settings_path() -> Path:
    return Path.home() / ".simpletimer" / "settings.json"


def default_settings_data() -> dict[str, object]:
    return {
        "timer_length": 10,
        "hotkeys": default_hotkeys(),
        "disable_hotkeys_when_running": False,
        "popup_on_end": True,
        "sound_on_end": True,
        "window_bounds": dict(DEFAULT_WINDOW_BOUNDS),
    }


@dataclass
class Settings:
    timer_length: int = 10
    hotkeys: dict[str, str] = field(default_factory=default_hotkeys)
    disable_hotkeys_when_running: bool = False
    popup_on_end: bool = True
    sound_on_end: bool = True
    window_bounds: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WINDOW_BOUNDS))

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> "Settings":
        return cls(**{key: copy.deepcopy(raw[key]) for key in SETTING_KEYS if key in raw})


def _clean_timer_length(value: object) -> int | None:
    if isinstance(value, bool) or isinstance(value, float):
        return None
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return minutes if minutes > 0 else None


def _clean_hotkeys(value: object, log: logging.Logger) -> dict[str, str]:
    defaults = default_hotkeys()
    raw = value if isinstance(value, dict) else {}
    hotkeys: dict[str, str] = {}
    for action in ACTION_ORDER:
        combo = raw.get(action)
        if isinstance(combo, str) and is_valid_chord(combo):
            hotkeys[action] = combo
        else:
            if combo is not None:
                log.warning("settings_hotkey_invalid action=%s combo=%r fallback=%s", action, combo, defaults[action])
            hotkeys[action] = defaults[action]
    return hotkeys


def _clean_window_bounds(value: object) -> dict[str, int] | None:
    if not isinstance(value, dict):
        return None
    try:
        bounds = {"width": int(value["width"]), "height": int(value["height"])}
        if "x" in value and "y" in value:
            bounds["x"] = int(value["x"])
            bounds["y"] = int(value["y"])
    except (KeyError, TypeError, ValueError):
        return None
    if bounds["width"] <= 0 or bounds["height"] <= 0:
        return None
    return bounds


def clean_setting(key: str, value: object, log: logging.Logger | None = None) -> object:
    """Validate one value, falling back to that key's default when it is unusable."""
    logger = log or logging.getLogger("simpletimer.settings")
    defaults = default_settings_data()
    if key == "timer_length":
        cleaned: object = _clean_timer_length(value)
    elif key == "hotkeys":
        return _clean_hotkeys(value, logger)
    elif key == "window_bounds":
        cleaned = _clean_window_bounds(value)
    elif key in _BOOL_KEYS:
        cleaned = value if isinstance(value, bool) else None
    else:
        return value
    if cleaned is None:
        logger.warning("settings_value_invalid key=%s value=%r fallback=%r", key, value, defaults[key])
        return defaults[key]
    return cleaned


class SettingsStore:
    """Flat key-value settings persisted as JSON, with every key backed by a default."""

    def __init__(self, path: Path, log: logging.Logger | None = None) -> None:
        self.path = Path(path)
        self.log = log or logging.getLogger("simpletimer.settings")
        self._data: dict[str, object] = {}
        self.load()

    def load(self) -> None:
        defaults = default_settings_data()
        if not self.path.exists():
            self._data = defaults
            self._write()
            self.log.info("settings_created path=%s", self.path)
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.log.warning("settings_unreadable path=%s error=%s fallback=defaults", self.path, exc)
            raw = {}
        if not isinstance(raw, dict):
            self.log.warning("settings_not_an_object path=%s fallback=defaults", self.path)
            raw = {}

        data = dict(raw)
        for key in SETTING_KEYS:
            if key in raw:
                data[key] = clean_setting(key, raw[key], self.log)
            else:
                data[key] = defaults[key]
        self._data = data
        self.log.info(
            "settings_loaded path=%s timer_length=%s hotkeys=%s",
            self.path,
            data["timer_length"],
            data["hotkeys"],
        )

    def get(self, key: str, default: object = None) -> object:
        if key in self._data:
            return copy.deepcopy(self._data[key])
        if default is not None:
            return default
        return copy.deepcopy(default_settings_data().get(key))

    def set(self, key: str, value: object) -> None:
        self._data[key] = clean_setting(key, value, self.log)
        self._write()
        self.log.info("setting_saved key=%s value=%r", key, self._data[key])

    def as_dict(self) -> dict[str, object]:
        return copy.deepcopy(self._data)

    def settings(self) -> Settings:
        return Settings.from_dict(self._data)

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        except OSError:
            self.log.exception("settings_write_failed path=%s", self.path)
