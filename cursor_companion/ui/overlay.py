import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cursor_companion.model.models import Point, Size
from cursor_companion.watchers.logger import logger

AnchorProvider = Callable[[Size], Point]

MIN_WIDTH = 220.0
MAX_WIDTH = 320.0
MIN_HEIGHT = 100.0
MAX_HEIGHT = 180.0
H_PADDING = 32.0
V_PADDING = 24.0
CHAR_WIDTH = 7.5
LINE_HEIGHT = 18.0
HIDE_AFTER_SECONDS = 5.0
HISTORY_LIMIT = 100


def bubble_size_for(text: str) -> Size:
    """テキスト量から吹き出しサイズを見積もる."""
    max_text_width = MAX_WIDTH - H_PADDING
    chars_per_line = max(1, int(max_text_width // CHAR_WIDTH))
    lines = 0
    longest = 0
    for paragraph in text.splitlines() or [""]:
        length = len(paragraph)
        lines += max(1, -(-length // chars_per_line))
        longest = max(longest, min(length, chars_per_line))
    width = min(max(longest * CHAR_WIDTH + H_PADDING, MIN_WIDTH), MAX_WIDTH)
    height = min(max(lines * LINE_HEIGHT + V_PADDING, MIN_HEIGHT), MAX_HEIGHT)
    return Size(width, height)


@dataclass(frozen=True)
class Bubble:
    text: str
    origin: Point
    size: Size
    shown_at: float

    @property
    def expires_at(self) -> float:
        return self.shown_at + HIDE_AFTER_SECONDS


class OverlayPresenter:
    """吹き出しの表示位置を決めて記録するプレゼンター.

    描画はホスト側のUIに任せ、ここでは配置と表示状態だけを扱う。
    """

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self.current: Bubble | None = None
        self._history: deque[Bubble] = deque(maxlen=HISTORY_LIMIT)
        self.speaking = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value
        if not value:
            self.hide()

    def show_message(self, text: str, anchor_provider: AnchorProvider) -> Bubble | None:
        """テキストを吹き出しで表示する. 無効時は何もしない."""
        if not self._enabled:
            return None
        size = bubble_size_for(text)
        origin = anchor_provider(size)
        bubble = Bubble(text=text, origin=origin, size=size, shown_at=time.time())
        self.current = bubble
        self._history.append(bubble)
        logger.info(
            "Overlay bubble at (%.0f, %.0f) size=%.0fx%.0f",
            origin.x,
            origin.y,
            size.width,
            size.height,
        )
        return bubble

    def begin_speaking(self) -> None:
        self.speaking = True

    def end_speaking(self) -> None:
        self.speaking = False

    def hide(self) -> None:
        self.current = None
        self.speaking = False

    def expire(self, now: float | None = None) -> None:
        """表示期限を過ぎた吹き出しを消す. 読み上げ中は残す."""
        if self.current is None or self.speaking:
            return
        if (now if now is not None else time.time()) >= self.current.expires_at:
            self.hide()

    def get_history(self) -> list[dict[str, Any]]:
        return [
            {
                "text": b.text,
                "x": b.origin.x,
                "y": b.origin.y,
                "width": b.size.width,
                "height": b.size.height,
                "shown_at": b.shown_at,
            }
            for b in self._history
        ]
