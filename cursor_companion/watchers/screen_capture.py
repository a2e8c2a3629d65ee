from dataclasses import dataclass
from io import BytesIO
from typing import cast

import mss  # pyright: ignore[reportMissingImports]
from mss.exception import ScreenShotError  # pyright: ignore[reportMissingImports]
from PIL import Image  # pyright: ignore[reportMissingImports]

from cursor_companion.model.models import Display, Point, Rect, Size
from cursor_companion.watchers.logger import logger

DEFAULT_CROP_SIZE = Size(900, 650)


class ScreenCaptureError(Exception):
    """スクリーンキャプチャまたはPNGエンコードの失敗."""


@dataclass(frozen=True)
class CaptureArtifact:
    image: Image.Image
    png_bytes: bytes
    screen_rect: Rect


def _monitor_rect(monitor: dict[str, int]) -> Rect:
    return Rect(
        float(monitor["left"]),
        float(monitor["top"]),
        float(monitor["width"]),
        float(monitor["height"]),
    )


def crop_rect_around(location: Point, frame: Rect, crop_size: Size | None) -> Rect:
    """カーソル中心の切り出し矩形を、モニター内に収まるようにずらして返す."""
    if crop_size is None:
        return frame
    width = min(crop_size.width, frame.width)
    height = min(crop_size.height, frame.height)
    x = location.x - width / 2
    y = location.y - height / 2
    x = min(max(x, frame.min_x), frame.max_x - width)
    y = min(max(y, frame.min_y), frame.max_y - height)
    return Rect(x, y, width, height)


class ScreenCapture:
    """mssでカーソル周辺のスクリーンキャプチャを取得するクラス."""

    def __init__(self, crop_size: Size | None = DEFAULT_CROP_SIZE) -> None:
        self.crop_size = crop_size

    def displays(self) -> list[Display]:
        """全モニターを返す (プライマリが先頭)."""
        try:
            with mss.mss() as sct:
                monitors = cast("list[dict[str, int]]", sct.monitors)
        except ScreenShotError as e:
            logger.error("Failed to enumerate monitors: %s", e)
            return []

        # monitors[0] is the union of all screens
        physical = monitors[1:] if len(monitors) > 1 else monitors
        # mss reports no work area, so the visible frame is the full monitor
        return [Display(frame=_monitor_rect(m), visible_frame=_monitor_rect(m)) for m in physical]

    def capture_around(self, location: Point) -> CaptureArtifact:
        """指定位置を含むモニターから切り出してPNG化する.

        Raises:
            ScreenCaptureError: キャプチャに失敗した場合

        """
        displays = self.displays()
        if not displays:
            msg = "no monitors available"
            raise ScreenCaptureError(msg)
        frame = next(
            (d.frame for d in displays if d.frame.contains(location)), displays[0].frame
        )
        screen_rect = crop_rect_around(location, frame, self.crop_size)
        bbox = {
            "left": int(screen_rect.x),
            "top": int(screen_rect.y),
            "width": int(screen_rect.width),
            "height": int(screen_rect.height),
        }

        try:
            with mss.mss() as sct:
                screenshot = sct.grab(bbox)
                image = Image.frombytes(
                    "RGB", screenshot.size, screenshot.bgra, "raw", "BGRX"
                )
            buffer = BytesIO()
            image.save(buffer, format="PNG")
        except (ScreenShotError, OSError, ValueError) as e:
            logger.exception("Screen capture failed | bbox=%s", bbox)
            msg = f"{type(e).__name__}: {e} | bbox={bbox}"
            raise ScreenCaptureError(msg) from e

        return CaptureArtifact(
            image=image, png_bytes=buffer.getvalue(), screen_rect=screen_rect
        )

    def probe(self) -> bool:
        """1x1の取得を試してキャプチャ可能かを返す."""
        try:
            with mss.mss() as sct:
                sct.grab({"left": 0, "top": 0, "width": 1, "height": 1})
        except ScreenShotError as e:
            logger.warning("Screen capture probe failed: %s", e)
            return False
        return True
