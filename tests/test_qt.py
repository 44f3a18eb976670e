"""Headless Qt tests: single instance hand-off, window bounds and the tray notifier."""

from __future__ import annotations

import logging
import os
import time
from types import SimpleNamespace
from unittest.mock import Mock
from uuid import uuid4

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PySide6.QtWidgets")
QtCore = pytest.importorskip("PySide6.QtCore")

from simpletimer.capture import KeyEvent  # noqa: E402
from simpletimer.shell import Notification  # noqa: E402
from simpletimer.single_instance import SingleInstanceGuard  # noqa: E402
from simpletimer.ui_qt import QtNotifier, SimpleTimerQtApp  # noqa: E402


@pytest.fixture(scope="module")
def qt_app():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


def _process_until(qt_app, predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        qt_app.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_app(qt_app):
    apps: list[SimpleTimerQtApp] = []

    def _make(path) -> SimpleTimerQtApp:
        app = SimpleTimerQtApp(path, single_instance=False)
        apps.append(app)
        return app

    yield _make
    for app in apps:
        app.queue_timer.stop()
        app.window.close()
        app.window.deleteLater()
    qt_app.processEvents()


class TestSingleInstanceGuard:
    def test_second_launch_activates_first(self, qt_app) -> None:
        key = f"simpletimer-test-{uuid4().hex}"
        on_activate = Mock()
        first = SingleInstanceGuard(on_activate, key=key)
        second = SingleInstanceGuard(Mock(), key=key)
        try:
            assert first.acquire() is True
            assert second.acquire() is False
            assert _process_until(qt_app, lambda: on_activate.called)
            on_activate.assert_called_once_with()
        finally:
            second.release()
            first.release()

    def test_released_key_can_be_reacquired(self, qt_app) -> None:
        key = f"simpletimer-test-{uuid4().hex}"
        first = SingleInstanceGuard(Mock(), key=key)
        assert first.acquire() is True
        first.release()
        again = SingleInstanceGuard(Mock(), key=key)
        try:
            assert again.acquire() is True
        finally:
            again.release()


class TestWindowBounds:
    def test_bounds_persist_across_restart(self, make_app, settings_path) -> None:
        app = make_app(settings_path)
        app.window.resize(520, 360)
        app.window.move(40, 50)
        app._on_about_to_quit()
        assert app.store.get("window_bounds") == {"width": 520, "height": 360, "x": 40, "y": 50}

        restored = make_app(settings_path)
        assert restored.window.size().width() == 520
        assert restored.window.size().height() == 360
        assert restored.window.pos().x() == 40
        assert restored.window.pos().y() == 50

    def test_position_comes_from_frame_not_client_area(self) -> None:
        window = Mock()
        window.size.return_value = SimpleNamespace(width=lambda: 400, height=lambda: 300)
        window.pos.return_value = SimpleNamespace(x=lambda: 100, y=lambda: 80)
        window.geometry.return_value = SimpleNamespace(
            width=lambda: 400, height=lambda: 300, x=lambda: 108, y=lambda: 111
        )
        bounds = SimpleTimerQtApp._current_bounds(SimpleNamespace(window=window))
        assert bounds == {"width": 400, "height": 300, "x": 100, "y": 80}

    def test_first_run_uses_default_size(self, make_app, settings_path) -> None:
        app = make_app(settings_path)
        assert app.window.size().width() == 400
        assert app.window.size().height() == 300


class TestHotkeyDialog:
    def test_focus_loss_closes_dialog_and_discards_chord(self, make_app, settings_path, qt_app, caplog) -> None:
        caplog.set_level(logging.INFO, logger="simpletimer.hotkeys")
        app = make_app(settings_path)
        before = app.store.get("hotkeys")

        def _lose_focus() -> None:
            app.capture.feed(KeyEvent(key="x", ctrl=True, alt=True))
            qt_app.focusChanged.emit(None, None)

        def _fallback_close() -> None:
            dialog = qt_app.activeModalWidget()
            if dialog is not None:
                dialog.reject()

        QtCore.QTimer.singleShot(0, _lose_focus)
        QtCore.QTimer.singleShot(3000, _fallback_close)
        app._open_hotkey_dialog("start")

        assert not app.capture.is_open
        assert "hotkey_capture_focus_lost" in caplog.text
        assert app.store.get("hotkeys") == before


class TestQtNotifier:
    def test_silent_notification_keeps_information_icon(self) -> None:
        tray = Mock()
        notifier = QtNotifier(QtWidgets.QSystemTrayIcon, tray)
        notifier.show(Notification("Timer Finished!", "Your 5 minute timer has ended.", silent=True))
        tray.showMessage.assert_called_once_with(
            "Timer Finished!",
            "Your 5 minute timer has ended.",
            QtWidgets.QSystemTrayIcon.Information,
            5000,
        )

    def test_show_failure_is_logged(self, caplog) -> None:
        tray = Mock()
        tray.showMessage.side_effect = RuntimeError("no tray")
        notifier = QtNotifier(QtWidgets.QSystemTrayIcon, tray)
        notifier.show(Notification("t", "b", silent=False))
        assert "notification_show_failed" in caplog.text
