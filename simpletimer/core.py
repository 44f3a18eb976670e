from __future__ import annotations

from enum import Enum
from typing import Callable, Protocol
import logging


TICK_INTERVAL_MS = 1000


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


class Action(str, Enum):
    START = "start"
    STOP = "stop"
    RESET = "reset"


class TickSource(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


TickFactory = Callable[[Callable[[], None]], TickSource]
StatusHandler = Callable[[bool], None]


def format_mmss(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


class TimerStateMachine:
    """Countdown with Idle / Running / Finished phases.

    The machine owns at most one tick source. ``tick_factory`` is called with the
    tick callback each time the timer starts and must return an object with
    ``start()`` and ``stop()``; the Qt view passes a ``QTimer`` wrapper, tests pass
    a fake they can fire by hand.
    """

    def __init__(
        self,
        timer_length: int,
        tick_factory: TickFactory,
        time_remaining: int | None = None,
    ) -> None:
        self.log = logging.getLogger("simpletimer.timer")
        self._tick_factory = tick_factory
        self._timer_length = int(timer_length)
        self._time_remaining = self._timer_length * 60 if time_remaining is None else max(int(time_remaining), 0)
        self._phase = Phase.IDLE
        self._tick_source: TickSource | None = None
        self._generation = 0
        self.status_handlers: list[StatusHandler] = []
        self.finished_handlers: list[Callable[[], None]] = []
        self.change_handlers: list[Callable[[], None]] = []

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._phase is Phase.RUNNING

    @property
    def is_finished(self) -> bool:
        return self._phase is Phase.FINISHED

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def timer_length(self) -> int:
        return self._timer_length

    @property
    def has_tick_source(self) -> bool:
        return self._tick_source is not None

    def formatted_remaining(self) -> str:
        return format_mmss(self._time_remaining)

    def dispatch(self, action: Action | str) -> bool:
        try:
            action = Action(action)
        except ValueError:
            self.log.warning("timer_action_unknown action=%r", action)
            return False
        if action is Action.START:
            return self.start()
        if action is Action.STOP:
            return self.stop()
        self.reset()
        return True

    def start(self) -> bool:
        if self._phase is not Phase.IDLE:
            self.log.info("timer_start_ignored phase=%s", self._phase.value)
            return False
        if self._time_remaining <= 0:
            self._phase = Phase.RUNNING
            self._emit_status(True)
            self._finish()
            return True

        self._phase = Phase.RUNNING
        self._generation += 1
        generation = self._generation
        self._tick_source = self._tick_factory(lambda: self._on_tick(generation))
        self._tick_source.start()
        self.log.info("timer_started remaining=%s", self._time_remaining)
        self._emit_status(True)
        self._emit_change()
        return True

    def stop(self) -> bool:
        if self._phase is not Phase.RUNNING:
            return False
        self._cancel_tick_source()
        self._phase = Phase.IDLE
        self.log.info("timer_stopped remaining=%s", self._time_remaining)
        self._emit_status(False)
        self._emit_change()
        return True

    def reset(self) -> None:
        was_running = self._phase is Phase.RUNNING
        self._cancel_tick_source()
        self._time_remaining = self._timer_length * 60
        self._phase = Phase.IDLE
        self.log.info("timer_reset remaining=%s was_running=%s", self._time_remaining, was_running)
        if was_running:
            self._emit_status(False)
        self._emit_change()

    def set_timer_length(self, minutes: int) -> bool:
        if self._phase is Phase.RUNNING:
            self.log.info("timer_length_edit_ignored minutes=%s reason=running", minutes)
            return False
        minutes = int(minutes)
        if minutes <= 0:
            raise ValueError(f"timer length must be positive, got {minutes}")
        self._timer_length = minutes
        self.reset()
        return True

    def tick(self) -> None:
        self._on_tick(self._generation)

    def _on_tick(self, generation: int) -> None:
        # A tick scheduled before the last stop/reset must never land.
        if generation != self._generation or self._phase is not Phase.RUNNING:
            self.log.debug("timer_tick_dropped generation=%s current=%s", generation, self._generation)
            return
        self._time_remaining = max(self._time_remaining - 1, 0)
        if self._time_remaining <= 0:
            self._finish()
            return
        self._emit_change()

    def _finish(self) -> None:
        self._cancel_tick_source()
        self._phase = Phase.FINISHED
        self.log.info("timer_finished timer_length=%s", self._timer_length)
        self._emit_status(False)
        for handler in list(self.finished_handlers):
            handler()
        self._emit_change()

    def _cancel_tick_source(self) -> None:
        self._generation += 1
        if self._tick_source is not None:
            self._tick_source.stop()
            self._tick_source = None

    def _emit_status(self, running: bool) -> None:
        for handler in list(self.status_handlers):
            handler(running)

    def _emit_change(self) -> None:
        for handler in list(self.change_handlers):
            handler()
