from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol
import logging

from .hotkeys import ACTION_ORDER
from .settings import SettingsStore


APP_TITLE = "Simple Timer"
POPUP_ON_TOP_MS = 3000


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    silent: bool


def build_end_notification(timer_length: int, sound_on_end: bool) -> Notification:
    return Notification(
        title="Timer Finished!",
        body=f"Your {timer_length} minute timer has ended.",
        silent=not sound_on_end,
    )


class WindowHandle(Protocol):
    def show_and_focus(self) -> None: ...

    def set_stay_on_top(self, on_top: bool) -> None: ...

    def is_alive(self) -> bool: ...


class TrayHandle(Protocol):
    def set_tooltip(self, text: str) -> None: ...


class Notifier(Protocol):
    def is_supported(self) -> bool: ...

    def show(self, notification: Notification) -> None: ...


class HotkeyRegistrar(Protocol):
    def reload_bindings(self, hotkeys: dict[str, str]) -> None: ...


Scheduler = Callable[[int, Callable[[], None]], None]
ActionSink = Callable[[str, str], None]


class ShellIntegration:
    """OS-facing side of the app: tray status, notifications, popup and hotkey gating.

    Window, tray, notifier and scheduler are injected so the same logic drives the
    Qt widgets at runtime and plain fakes under test.
    """

    def __init__(
        self,
        store: SettingsStore,
        hotkeys: HotkeyRegistrar,
        notifier: Notifier | None = None,
        window: WindowHandle | None = None,
        tray: TrayHandle | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.store = store
        self.hotkeys = hotkeys
        self.notifier = notifier
        self.window = window
        self.tray = tray
        self.scheduler = scheduler
        self.log = logging.getLogger("simpletimer.shell")
        self.is_timer_running = False
        self.request_action: ActionSink = lambda action, source: None

    def should_allow_hotkey(self) -> bool:
        return not (bool(self.store.get("disable_hotkeys_when_running")) and self.is_timer_running)

    def on_global_hotkey(self, action: str) -> bool:
        if not self.should_allow_hotkey():
            self.log.info("hotkey_suppressed action=%s reason=running", action)
            return False
        return self._deliver(action, "global_hotkey")

    def on_tray_action(self, action: str) -> bool:
        return self._deliver(action, "tray")

    def _deliver(self, action: str, source: str) -> bool:
        if action not in ACTION_ORDER:
            self.log.warning("action_unknown source=%s action=%r", source, action)
            return False
        self.request_action(action, source)
        return True

    def report_run_status(self, running: bool) -> None:
        self.is_timer_running = bool(running)
        self.log.info("run_status running=%s", self.is_timer_running)
        if self.tray is not None:
            self.tray.set_tooltip(f"{APP_TITLE} - Running" if running else f"{APP_TITLE} - Stopped")

    def report_timer_ended(self) -> Notification:
        timer_length = self.store.get("timer_length")
        notification = build_end_notification(int(timer_length), bool(self.store.get("sound_on_end")))  # type: ignore[arg-type]
        if self.notifier is not None and self.notifier.is_supported():
            self.notifier.show(notification)
            self.log.info("notification_shown body=%r silent=%s", notification.body, notification.silent)
        else:
            self.log.info("notification_unsupported skipped=true")

        if self.store.get("popup_on_end") and self.window is not None:
            self.popup_window()
        return notification

    def popup_window(self) -> None:
        window = self.window
        if window is None:
            return
        window.show_and_focus()
        window.set_stay_on_top(True)
        self.log.info("window_popup on_top_ms=%s", POPUP_ON_TOP_MS)

        def _clear_on_top() -> None:
            if window.is_alive():
                window.set_stay_on_top(False)

        if self.scheduler is not None:
            self.scheduler(POPUP_ON_TOP_MS, _clear_on_top)
        else:
            _clear_on_top()

    def reregister_hotkeys(self, hotkeys: dict[str, str]) -> None:
        try:
            self.hotkeys.reload_bindings(hotkeys)
        except Exception:
            # Registration problems are logged, never surfaced.
            self.log.exception("hotkeys_reregister_failed")
