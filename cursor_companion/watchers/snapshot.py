import time
from collections.abc import Callable

from cursor_companion.model.models import CaptureSnapshot, ForegroundContext, Point
from cursor_companion.watchers.active_window import get_active_app
from cursor_companion.watchers.screen_capture import ScreenCapture
from cursor_companion.watchers.text_regions import TextRegionDetector


class SnapshotSource:
    """画像・前面アプリ情報・テキスト領域をまとめて取得するクラス."""

    def __init__(
        self,
        capture: ScreenCapture | None = None,
        detector: TextRegionDetector | None = None,
        foreground: Callable[[], ForegroundContext] = get_active_app,
    ) -> None:
        self.capture = capture or ScreenCapture()
        self.detector = detector or TextRegionDetector()
        self._foreground = foreground

    def foreground(self) -> ForegroundContext:
        return self._foreground()

    def snapshot(self, location: Point) -> CaptureSnapshot:
        """カーソル周辺のスナップショットを作る.

        Raises:
            ScreenCaptureError: キャプチャに失敗した場合

        """
        artifact = self.capture.capture_around(location)
        context = self._foreground()
        regions = self.detector.detect(artifact.image, artifact.screen_rect)
        return CaptureSnapshot(
            png_bytes=artifact.png_bytes,
            cursor=location,
            timestamp=time.time(),
            screen_rect=artifact.screen_rect,
            foreground=context,
            text_regions=tuple(regions),
        )
