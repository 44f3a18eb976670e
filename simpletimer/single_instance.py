from __future__ import annotations

from typing import Callable
import getpass
import logging


ACTIVATE_MESSAGE = b"activate"


def instance_key() -> str:
    try:
        user = getpass.getuser()
    except Exception:
        user = "default"
    return f"simpletimer-{user}"


class SingleInstanceGuard:
    """Named local socket shared by every launch of the app for one user.

    The first process listens; later launches connect, ask it to bring its window
    forward and then exit. Needs a ``QApplication`` (or ``QCoreApplication``) to
    exist before ``acquire`` is called.
    """

    def __init__(self, on_activate: Callable[[], None], key: str | None = None, timeout_ms: int = 500) -> None:
        from PySide6.QtNetwork import QLocalServer, QLocalSocket

        self.QLocalServer = QLocalServer
        self.QLocalSocket = QLocalSocket
        self.on_activate = on_activate
        self.key = key or instance_key()
        self.timeout_ms = timeout_ms
        self.log = logging.getLogger("simpletimer.single_instance")
        self._server = None

    def acquire(self) -> bool:
        socket = self.QLocalSocket()
        socket.connectToServer(self.key)
        if socket.waitForConnected(self.timeout_ms):
            socket.write(ACTIVATE_MESSAGE)
            socket.flush()
            socket.waitForBytesWritten(self.timeout_ms)
            socket.disconnectFromServer()
            self.log.info("single_instance_existing key=%s activate_sent=true", self.key)
            return False

        # A crashed first instance can leave a stale socket file behind.
        self.QLocalServer.removeServer(self.key)
        server = self.QLocalServer()
        if not server.listen(self.key):
            self.log.warning("single_instance_listen_failed key=%s error=%s", self.key, server.errorString())
            return True
        server.newConnection.connect(self._on_new_connection)  # type: ignore[attr-defined]
        self._server = server
        self.log.info("single_instance_acquired key=%s", self.key)
        return True

    def _on_new_connection(self) -> None:
        if self._server is None:
            return
        while self._server.hasPendingConnections():
            conn = self._server.nextPendingConnection()
            conn.waitForReadyRead(self.timeout_ms)
            data = bytes(conn.readAll().data())
            conn.disconnectFromServer()
            if data.startswith(ACTIVATE_MESSAGE):
                self.log.info("single_instance_activate_requested")
                self.on_activate()

    def release(self) -> None:
        if self._server is not None:
            self._server.close()
            self._server = None
