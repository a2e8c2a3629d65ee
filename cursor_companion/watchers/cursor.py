import threading
import time
from collections.abc import Callable
from typing import Any

from cursor_companion.model.models import Point, PositionReading
from cursor_companion.watchers.logger import logger

DEFAULT_POLL_INTERVAL = 0.5

ReadingHandler = Callable[[PositionReading], None]

_controller: Any = None


def get_cursor_position() -> Point | None:
    """現在のカーソル位置を取得. 取得できない場合はNone."""
    global _controller  # noqa: PLW0603
    try:
        if _controller is None:
            # X11/Quartz backends are resolved on import
            from pynput import mouse

            _controller = mouse.Controller()
        x, y = _controller.position
    except Exception as e:  # noqa: BLE001
        logger.warning("Cursor position unavailable: %s", e)
        return None
    return Point(float(x), float(y))


class CursorSampler:
    """一定間隔でカーソル位置を読み取り、ハンドラーへ渡すクラス."""

    def __init__(
        self,
        handler: ReadingHandler,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        position_source: Callable[[], Point | None] = get_cursor_position,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.handler = handler
        self.poll_interval = poll_interval
        self._position_source = position_source
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="cursor-sampler", daemon=True
        )
        self._thread.start()
        logger.info("Cursor sampler started | interval=%.2fs", self.poll_interval)

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval * 4)
            logger.info("Cursor sampler stopped")

    def sample_once(self) -> PositionReading | None:
        location = self._position_source()
        if location is None:
            return None
        reading = PositionReading(location=location, timestamp=self._clock())
        self.handler(reading)
        return reading

    def _run(self) -> None:
        while not self._stop.is_set():
            started = time.monotonic()
            self.sample_once()
            elapsed = time.monotonic() - started
            self._stop.wait(max(0.0, self.poll_interval - elapsed))
