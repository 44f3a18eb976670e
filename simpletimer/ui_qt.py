from __future__ import annotations

import logging
from pathlib import Path
from queue import Empty, Queue
import sys

from .app import AppContext, ViewState
from .capture import KeyEvent, HotkeyCapture
from .core import TICK_INTERVAL_MS, Phase
from .hotkeys import ACTION_ORDER, ACTION_TITLES, HotkeyBackend
from .settings import SettingsStore
from .shell import APP_TITLE, Notification, ShellIntegration
from .single_instance import SingleInstanceGuard
from .sound import SoundPlayer


MIN_WIDTH = 350
MIN_HEIGHT = 250


def _qt_imports():
    from PySide6.QtCore import QTimer, Qt
    from PySide6.QtGui import QAction, QKeySequence
    from PySide6.QtWidgets import (
        QApplication,
        QCheckBox,
        QDialog,
        QFrame,
        QGridLayout,
        QHBoxLayout,
        QKeySequenceEdit,
        QLabel,
        QMenu,
        QPushButton,
        QSpinBox,
        QStyle,
        QSystemTrayIcon,
        QVBoxLayout,
        QWidget,
    )

    return {
        "QAction": QAction,
        "QApplication": QApplication,
        "QCheckBox": QCheckBox,
        "QDialog": QDialog,
        "QFrame": QFrame,
        "QGridLayout": QGridLayout,
        "QHBoxLayout": QHBoxLayout,
        "QKeySequence": QKeySequence,
        "QKeySequenceEdit": QKeySequenceEdit,
        "QLabel": QLabel,
        "QMenu": QMenu,
        "QPushButton": QPushButton,
        "QSpinBox": QSpinBox,
        "QStyle": QStyle,
        "QSystemTrayIcon": QSystemTrayIcon,
        "QTimer": QTimer,
        "Qt": Qt,
        "QVBoxLayout": QVBoxLayout,
        "QWidget": QWidget,
    }


class QtTickSource:
    def __init__(self, QTimer, parent, callback) -> None:
        self._timer = QTimer(parent)
        self._timer.setInterval(TICK_INTERVAL_MS)
        self._timer.timeout.connect(callback)  # type: ignore[attr-defined]

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()
        self._timer.deleteLater()


class QtWindowHandle:
    def __init__(self, app: "SimpleTimerQtApp") -> None:
        self.app = app

    def show_and_focus(self) -> None:
        self.app.show_window()

    def set_stay_on_top(self, on_top: bool) -> None:
        window = self.app.window
        visible = window.isVisible()
        window.setWindowFlag(self.app.Qt.WindowStaysOnTopHint, on_top)
        # Changing window flags hides the window.
        if visible:
            window.show()

    def is_alive(self) -> bool:
        return not self.app.quitting


class QtTrayHandle:
    def __init__(self, tray) -> None:
        self.tray = tray

    def set_tooltip(self, text: str) -> None:
        self.tray.setToolTip(text)


class QtNotifier:
    def __init__(self, QSystemTrayIcon, tray) -> None:
        self.QSystemTrayIcon = QSystemTrayIcon
        self.tray = tray
        self.log = logging.getLogger("simpletimer.shell")

    def is_supported(self) -> bool:
        return self.tray is not None and bool(self.QSystemTrayIcon.supportsMessages())

    def show(self, notification: Notification) -> None:
        # Qt tray messages expose no sound switch; the platform decides whether one plays.
        self.log.info("notification_show silent=%s", notification.silent)
        try:
            self.tray.showMessage(notification.title, notification.body, self.QSystemTrayIcon.Information, 5000)
        except Exception:
            self.log.exception("notification_show_failed")


class SimpleTimerQtApp:
    def __init__(
        self,
        settings_path: Path,
        minutes: int | None = None,
        autostart: bool = False,
        single_instance: bool = True,
    ) -> None:
        self.qt = _qt_imports()
        self.QTimer = self.qt["QTimer"]
        self.Qt = self.qt["Qt"]
        self.QApplication = self.qt["QApplication"]
        self.QWidget = self.qt["QWidget"]
        self.QAction = self.qt["QAction"]
        self.QVBoxLayout = self.qt["QVBoxLayout"]
        self.QHBoxLayout = self.qt["QHBoxLayout"]
        self.QGridLayout = self.qt["QGridLayout"]
        self.QFrame = self.qt["QFrame"]
        self.QLabel = self.qt["QLabel"]
        self.QPushButton = self.qt["QPushButton"]
        self.QKeySequence = self.qt["QKeySequence"]
        self.QKeySequenceEdit = self.qt["QKeySequenceEdit"]
        self.QDialog = self.qt["QDialog"]
        self.QCheckBox = self.qt["QCheckBox"]
        self.QMenu = self.qt["QMenu"]
        self.QSpinBox = self.qt["QSpinBox"]
        self.QStyle = self.qt["QStyle"]
        self.QSystemTrayIcon = self.qt["QSystemTrayIcon"]

        self.log = logging.getLogger("simpletimer")
        self.autostart = autostart
        self.quitting = False
        self.command_queue: Queue[tuple[str, str]] = Queue()

        self.qt_app = self.QApplication.instance() or self.QApplication(sys.argv)
        self.qt_app.setApplicationName(APP_TITLE)

        self.guard: SingleInstanceGuard | None = None
        self.is_primary = True
        if single_instance:
            self.guard = SingleInstanceGuard(lambda: self.command_queue.put(("single_instance", "show")))
            self.is_primary = self.guard.acquire()
        if not self.is_primary:
            return

        self.store = SettingsStore(settings_path)
        if minutes is not None:
            self.store.set("timer_length", minutes)
        self.hotkeys = HotkeyBackend(
            lambda action: self.command_queue.put(("global_hotkey", action)),
            self.store.get("hotkeys"),  # type: ignore[arg-type]
        )

        self.window = self.QWidget()
        self.window.setWindowTitle(APP_TITLE)
        self.window.setObjectName("MainWindow")
        self.window.setMinimumSize(MIN_WIDTH, MIN_HEIGHT)

        self._tray = None
        self._build_theme()
        self._build_ui()
        self._setup_tray()

        self.shell = ShellIntegration(
            self.store,
            self.hotkeys,
            notifier=QtNotifier(self.QSystemTrayIcon, self._tray),
            window=QtWindowHandle(self),
            tray=QtTrayHandle(self._tray) if self._tray is not None else None,
            scheduler=lambda ms, fn: self.QTimer.singleShot(ms, fn),
        )
        self.context = AppContext(
            self.store,
            self.shell,
            lambda callback: QtTickSource(self.QTimer, self.window, callback),
            sound=SoundPlayer(),
        )
        self.capture = HotkeyCapture(self.context.bridge.set_hotkey)
        self.context.renderers.append(self.render)
        self.context.load()
        self.shell.report_run_status(False)
        self._restore_bounds()

        self.qt_app.aboutToQuit.connect(self._on_about_to_quit)  # type: ignore[attr-defined]

        self.queue_timer = self.QTimer(self.window)
        self.queue_timer.timeout.connect(self._drain_queue)  # type: ignore[attr-defined]
        self.queue_timer.start(100)

    def _build_theme(self) -> None:
        self.window.setStyleSheet(
            """
            QWidget#MainWindow { background: #F3F3F3; color: #1F1F1F; }
            QFrame#TimerCard { background: #FFFFFF; border: 1px solid #DADADA; border-radius: 8px; }
            QLabel#Timer { color: #111111; font-size: 48px; font-weight: 700; }
            QLabel#Timer[phase="running"] { color: #107C41; }
            QLabel#Timer[phase="finished"] { color: #C42B1C; }
            QLabel#StateChip { border-radius: 8px; padding: 4px 10px; font-weight: 600; background: #F3F2F1; }
            QLabel#Meta { color: #5F5F5F; }
            QLabel#Status { color: #5F5F5F; }
            QPushButton { padding: 6px 10px; border-radius: 4px; border: 1px solid #CFCFCF; background: #FFFFFF; }
            QPushButton:hover { background: #F8F8F8; }
            QPushButton#Primary { background: #0078D4; color: white; border-color: #006CBE; }
            QPushButton#Primary:hover { background: #106EBE; }
            QPushButton#Danger { background: #C42B1C; color: white; border-color: #AA2418; }
            QPushButton#Danger:hover { background: #A4262C; }
            QPushButton:disabled { color: #8A8886; background: #F3F2F1; border-color: #E1DFDD; }
            QDialog { background: #F3F3F3; }
            """
        )

    def _build_ui(self) -> None:
        vbox = self.QVBoxLayout(self.window)
        vbox.setContentsMargins(16, 16, 16, 16)
        vbox.setSpacing(12)

        self.timer_card = self.QFrame()
        self.timer_card.setObjectName("TimerCard")
        timer_layout = self.QVBoxLayout(self.timer_card)
        timer_layout.setContentsMargins(16, 16, 16, 16)
        timer_layout.setSpacing(8)
        vbox.addWidget(self.timer_card)

        self.timer_label = self.QLabel("00:00")
        self.timer_label.setObjectName("Timer")
        self.timer_label.setAlignment(self.Qt.AlignCenter)
        timer_layout.addWidget(self.timer_label)

        self.state_chip = self.QLabel("Idle")
        self.state_chip.setObjectName("StateChip")
        timer_layout.addWidget(self.state_chip, 0, self.Qt.AlignHCenter)

        buttons = self.QHBoxLayout()
        buttons.setSpacing(8)
        self.btn_start = self.QPushButton("Start")
        self.btn_start.setObjectName("Primary")
        self.btn_start.clicked.connect(lambda: self.handle_action("start", "button"))  # type: ignore[attr-defined]
        buttons.addWidget(self.btn_start)
        self.btn_stop = self.QPushButton("Stop")
        self.btn_stop.setObjectName("Danger")
        self.btn_stop.clicked.connect(lambda: self.handle_action("stop", "button"))  # type: ignore[attr-defined]
        buttons.addWidget(self.btn_stop)
        self.btn_reset = self.QPushButton("Reset")
        self.btn_reset.clicked.connect(lambda: self.handle_action("reset", "button"))  # type: ignore[attr-defined]
        buttons.addWidget(self.btn_reset)
        vbox.addLayout(buttons)

        grid = self.QGridLayout()
        grid.setVerticalSpacing(8)
        grid.setHorizontalSpacing(12)
        grid.setColumnStretch(1, 1)
        vbox.addLayout(grid)

        grid.addWidget(self.QLabel("Timer length (minutes)"), 0, 0)
        self.length_spin = self.QSpinBox()
        self.length_spin.setRange(1, 999)
        self.length_spin.setKeyboardTracking(False)
        self.length_spin.valueChanged.connect(self._on_length_changed)  # type: ignore[attr-defined]
        grid.addWidget(self.length_spin, 0, 1, 1, 2)

        self.popup_cb = self.QCheckBox("Bring window to front when timer ends")
        self.popup_cb.toggled.connect(lambda checked: self._on_setting_toggled("popup_on_end", checked))  # type: ignore[attr-defined]
        grid.addWidget(self.popup_cb, 1, 0, 1, 3)
        self.sound_cb = self.QCheckBox("Play sound when timer ends")
        self.sound_cb.toggled.connect(lambda checked: self._on_setting_toggled("sound_on_end", checked))  # type: ignore[attr-defined]
        grid.addWidget(self.sound_cb, 2, 0, 1, 3)
        self.disable_hotkeys_cb = self.QCheckBox("Disable global hotkeys while running")
        self.disable_hotkeys_cb.toggled.connect(  # type: ignore[attr-defined]
            lambda checked: self._on_setting_toggled("disable_hotkeys_when_running", checked)
        )
        grid.addWidget(self.disable_hotkeys_cb, 3, 0, 1, 3)

        self.hotkey_labels: dict[str, object] = {}
        for row, action in enumerate(ACTION_ORDER, start=4):
            grid.addWidget(self.QLabel(f"{ACTION_TITLES[action]} hotkey"), row, 0)
            label = self.QLabel()
            label.setObjectName("Meta")
            grid.addWidget(label, row, 1)
            self.hotkey_labels[action] = label
            btn = self.QPushButton("Change")
            btn.clicked.connect(lambda _checked=False, a=action: self._open_hotkey_dialog(a))  # type: ignore[attr-defined]
            grid.addWidget(btn, row, 2)

        self.status_label = self.QLabel()
        self.status_label.setObjectName("Status")
        self.status_label.setWordWrap(True)
        vbox.addWidget(self.status_label)
        vbox.addStretch(1)

    def _setup_tray(self) -> None:
        try:
            if not self.QSystemTrayIcon.isSystemTrayAvailable():
                self.log.warning("system_tray_unavailable")
                return
            icon = self.window.windowIcon()
            if icon.isNull():
                icon = self.qt_app.style().standardIcon(self.QStyle.SP_ComputerIcon)
            tray = self.QSystemTrayIcon(icon, self.window)
            tray.setToolTip(APP_TITLE)

            menu = self.QMenu()
            act_show = self.QAction("Show Timer", menu)
            act_start = self.QAction("Start Timer", menu)
            act_stop = self.QAction("Stop Timer", menu)
            act_reset = self.QAction("Reset Timer", menu)
            act_quit = self.QAction("Quit", menu)
            act_show.triggered.connect(self.show_window)  # type: ignore[attr-defined]
            act_start.triggered.connect(lambda: self.shell.on_tray_action("start"))  # type: ignore[attr-defined]
            act_stop.triggered.connect(lambda: self.shell.on_tray_action("stop"))  # type: ignore[attr-defined]
            act_reset.triggered.connect(lambda: self.shell.on_tray_action("reset"))  # type: ignore[attr-defined]
            act_quit.triggered.connect(self._quit_from_tray)  # type: ignore[attr-defined]
            menu.addAction(act_show)
            menu.addAction(act_start)
            menu.addAction(act_stop)
            menu.addAction(act_reset)
            menu.addSeparator()
            menu.addAction(act_quit)
            tray.setContextMenu(menu)
            tray.activated.connect(self._on_tray_activated)  # type: ignore[attr-defined]
            tray.show()
            self._tray_menu = menu
            self._tray = tray
            self.log.info("system_tray_enabled")
        except Exception:
            self.log.exception("system_tray_setup_failed")
            self._tray = None

    def show_window(self) -> None:
        try:
            if self.window.isMinimized():
                self.window.showNormal()
            self.window.show()
            self.window.raise_()
            self.window.activateWindow()
            self.log.info("window_shown")
        except Exception:
            self.log.exception("window_show_failed")

    def _on_tray_activated(self, reason) -> None:
        # Trigger/DoubleClick behavior varies by OS; accept both.
        try:
            if reason in (self.QSystemTrayIcon.Trigger, self.QSystemTrayIcon.DoubleClick):
                self.show_window()
        except Exception:
            self.log.exception("tray_activate_handler_failed")

    def _quit_from_tray(self) -> None:
        self.log.info("quit_requested_from_tray")
        self.qt_app.quit()

    def _restore_bounds(self) -> None:
        bounds = self.store.get("window_bounds")
        if not isinstance(bounds, dict):
            return
        self.window.resize(max(bounds["width"], MIN_WIDTH), max(bounds["height"], MIN_HEIGHT))
        if "x" in bounds and "y" in bounds:
            self.window.move(bounds["x"], bounds["y"])

    def _current_bounds(self) -> dict[str, int]:
        # move() takes frame coordinates, so the position comes from pos() not geometry().
        size = self.window.size()
        pos = self.window.pos()
        return {"width": size.width(), "height": size.height(), "x": pos.x(), "y": pos.y()}

    def _on_about_to_quit(self) -> None:
        self.quitting = True
        try:
            self.context.bridge.save_window_bounds(self._current_bounds())
        except Exception:
            self.log.exception("window_bounds_save_failed")

    def render(self, state: ViewState) -> None:
        self.timer_label.setText(state.display)
        self.timer_label.setProperty("phase", state.phase.value)
        self.timer_label.style().unpolish(self.timer_label)
        self.timer_label.style().polish(self.timer_label)
        self.state_chip.setText(state.phase_title)

        self.btn_start.setEnabled(state.phase is Phase.IDLE)
        self.btn_stop.setEnabled(state.is_running)
        self.length_spin.setEnabled(not state.is_running)

        for widget, value in (
            (self.length_spin, state.timer_length),
            (self.popup_cb, state.popup_on_end),
            (self.sound_cb, state.sound_on_end),
            (self.disable_hotkeys_cb, state.disable_hotkeys_when_running),
        ):
            widget.blockSignals(True)
            if widget is self.length_spin:
                widget.setValue(value)
            else:
                widget.setChecked(value)
            widget.blockSignals(False)

        for action, label in self.hotkey_labels.items():
            label.setText(state.hotkey_labels.get(action, ""))
        if state.status:
            self.status_label.setText(state.status)

    def _on_length_changed(self, value: int) -> None:
        self.context.bridge.update("timer_length", int(value))

    def _on_setting_toggled(self, key: str, checked: bool) -> None:
        self.context.bridge.update(key, bool(checked))

    def _event_from_key_sequence(self, seq) -> KeyEvent | None:
        if seq.isEmpty():
            return None
        combo = seq[0]
        text = self.QKeySequence(combo).toString(self.QKeySequence.PortableText)
        if not text:
            return None
        key = "+" if text.endswith("++") else text.split("+")[-1]
        mods = combo.keyboardModifiers()
        return KeyEvent(
            key=key,
            ctrl=bool(mods & self.Qt.ControlModifier),
            meta=bool(mods & self.Qt.MetaModifier),
            alt=bool(mods & self.Qt.AltModifier),
            shift=bool(mods & self.Qt.ShiftModifier),
        )

    def _open_hotkey_dialog(self, action: str) -> None:
        self.capture.open(action)
        dlg = self.QDialog(self.window)
        dlg.setWindowTitle(f"Change {ACTION_TITLES[action]} hotkey")
        dlg.setModal(True)

        layout = self.QVBoxLayout(dlg)
        layout.setContentsMargins(20, 16, 20, 16)
        layout.setSpacing(12)
        layout.addWidget(self.QLabel("Press the new key combination (modifier + key)."))

        preview = self.QLabel(self.capture.preview_text)
        preview.setObjectName("Timer")
        preview.setStyleSheet("font-size: 20px; font-weight: 600;")
        preview.setAlignment(self.Qt.AlignCenter)
        layout.addWidget(preview)

        key_edit = self.QKeySequenceEdit()
        layout.addWidget(key_edit)

        btn_row = self.QHBoxLayout()
        btn_row.addStretch(1)
        btn_cancel = self.QPushButton("Cancel")
        btn_cancel.clicked.connect(dlg.reject)  # type: ignore[attr-defined]
        btn_row.addWidget(btn_cancel)
        btn_save = self.QPushButton("Save")
        btn_save.setObjectName("Primary")
        btn_save.setEnabled(False)
        btn_row.addWidget(btn_save)
        layout.addLayout(btn_row)

        def _on_sequence(seq) -> None:
            event = self._event_from_key_sequence(seq)
            if event is not None:
                self.capture.feed(event)
            preview.setText(self.capture.preview_text)
            btn_save.setEnabled(self.capture.can_confirm)
            if not seq.isEmpty():
                key_edit.blockSignals(True)
                key_edit.clear()
                key_edit.blockSignals(False)

        def _save() -> None:
            chord = self.capture.confirm()
            if chord is not None:
                self.status_label.setText(f"{ACTION_TITLES[action]} hotkey saved.")
            dlg.accept()

        def _on_focus_changed(old, now) -> None:
            if not dlg.isVisible() or not self.capture.is_open:
                return
            if now is None or (now is not dlg and not dlg.isAncestorOf(now)):
                self.capture.focus_lost()
                dlg.reject()

        key_edit.keySequenceChanged.connect(_on_sequence)  # type: ignore[attr-defined]
        btn_save.clicked.connect(_save)  # type: ignore[attr-defined]
        dlg.rejected.connect(self.capture.cancel)  # type: ignore[attr-defined]
        self.qt_app.focusChanged.connect(_on_focus_changed)  # type: ignore[attr-defined]
        key_edit.setFocus()
        try:
            dlg.exec()
        finally:
            self.qt_app.focusChanged.disconnect(_on_focus_changed)  # type: ignore[attr-defined]

    def handle_action(self, action: str, source: str = "unknown") -> None:
        self.context.handle_action(action, source)

    def _drain_queue(self) -> None:
        while True:
            try:
                source, action = self.command_queue.get_nowait()
            except Empty:
                break
            if source == "global_hotkey":
                self.shell.on_global_hotkey(action)
            elif source == "single_instance":
                self.show_window()

    def run(self) -> int:
        if not self.is_primary:
            self.log.info("second_instance_exit")
            return 0
        self.hotkeys.start()
        if self.hotkeys.available:
            self.status_label.setText("Global hotkeys active.")
        elif self.hotkeys.error:
            self.status_label.setText(f"{self.hotkeys.error} (window buttons still work)")
            self.log.warning("global_hotkeys_unavailable error=%s", self.hotkeys.error)

        self.window.show()
        if self.autostart:
            self.handle_action("start", "cli")
        try:
            return int(self.qt_app.exec())
        finally:
            self.context.close()
            if self._tray is not None:
                try:
                    self._tray.hide()
                except Exception:
                    self.log.exception("system_tray_hide_failed")
            self.hotkeys.stop()
            if self.guard is not None:
                self.guard.release()
