from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QTimer


class QtTicker:
    """Drives ``TimerEngine.tick`` from the Qt event loop."""

    def __init__(self, interval_ms: int = 1000, parent=None) -> None:
        self._timer = QTimer(parent)
        self._timer.setInterval(interval_ms)
        self._callback: Callable[[], None] | None = None
        self._timer.timeout.connect(self._on_timeout)

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()
        self._callback = None

    def is_active(self) -> bool:
        return self._timer.isActive()

    def _on_timeout(self) -> None:
        if self._callback is not None:
            self._callback()
