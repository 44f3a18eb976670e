from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
import logging

from .core import Action, Phase, TickFactory, TimerStateMachine
from .hotkeys import ACTION_ORDER, human_combo_label
from .settings import SettingsStore
from .shell import ShellIntegration
from .sound import SoundPlayer
from .sync import SettingsSyncBridge


PHASE_TITLES = {
    Phase.IDLE: "Idle",
    Phase.RUNNING: "Running",
    Phase.FINISHED: "Finished",
}


@dataclass
class ViewState:
    display: str
    phase: Phase
    is_running: bool
    finished: bool
    timer_length: int
    hotkey_labels: dict[str, str] = field(default_factory=dict)
    disable_hotkeys_when_running: bool = False
    popup_on_end: bool = True
    sound_on_end: bool = True
    status: str = ""

    @property
    def phase_title(self) -> str:
        return PHASE_TITLES[self.phase]


Renderer = Callable[[ViewState], None]


class AppContext:
    """Everything the running app shares, built once at startup.

    Buttons, tray items and global hotkeys all end up in ``handle_action``; timer
    events fan out to the shell and to the view's renderer.
    """

    def __init__(
        self,
        store: SettingsStore,
        shell: ShellIntegration,
        tick_factory: TickFactory,
        sound: SoundPlayer | None = None,
    ) -> None:
        self.log = logging.getLogger("simpletimer")
        self.store = store
        self.shell = shell
        self.sound = sound
        self.renderers: list[Renderer] = []
        self.status = ""
        self.timer = TimerStateMachine(int(store.get("timer_length")), tick_factory)  # type: ignore[arg-type]
        self.bridge = SettingsSyncBridge(store, self.timer, shell.reregister_hotkeys, render=self.render)

        self.timer.status_handlers.append(shell.report_run_status)
        self.timer.finished_handlers.append(self._on_finished)
        self.timer.change_handlers.append(self.render)
        shell.request_action = self.handle_action

    def load(self) -> None:
        self.bridge.load()

    def handle_action(self, action: str, source: str = "unknown") -> bool:
        self.log.info("action_received source=%s action=%s", source, action)
        if action not in ACTION_ORDER:
            self.log.warning("action_unknown source=%s action=%r", source, action)
            return False
        changed = self.timer.dispatch(Action(action))
        if action == "start" and changed:
            self.status = "Timer running"
        elif action == "stop" and changed:
            self.status = "Timer stopped"
        elif action == "reset":
            self.status = "Timer reset"
        self.render()
        self.log.info(
            "action_applied source=%s action=%s phase=%s remaining=%s",
            source,
            action,
            self.timer.phase.value,
            self.timer.time_remaining,
        )
        return changed

    def _on_finished(self) -> None:
        self.status = "Time's up!"
        self.shell.report_timer_ended()
        if self.store.get("sound_on_end") and self.sound is not None:
            self.sound.play_alert()

    def view_state(self) -> ViewState:
        settings = self.bridge.settings
        return ViewState(
            display=self.timer.formatted_remaining(),
            phase=self.timer.phase,
            is_running=self.timer.is_running,
            finished=self.timer.is_finished,
            timer_length=self.timer.timer_length,
            hotkey_labels={action: human_combo_label(settings.hotkeys.get(action, "")) for action in ACTION_ORDER},
            disable_hotkeys_when_running=settings.disable_hotkeys_when_running,
            popup_on_end=settings.popup_on_end,
            sound_on_end=settings.sound_on_end,
            status=self.status,
        )

    def render(self) -> None:
        if not self.renderers:
            return
        state = self.view_state()
        for renderer in list(self.renderers):
            renderer(state)

    def close(self) -> None:
        if self.timer.is_running:
            self.timer.stop()
        if self.sound is not None:
            self.sound.close()
        self.log.info("app_context_closed")
