from collections.abc import Callable

from cursor_companion.model.models import PermissionStatus, Point
from cursor_companion.watchers.cursor import get_cursor_position
from cursor_companion.watchers.logger import logger
from cursor_companion.watchers.screen_capture import ScreenCapture


class PermissionManager:
    """キャプチャとカーソル取得が可能かを確認するクラス."""

    def __init__(
        self,
        capture: ScreenCapture | None = None,
        cursor_source: Callable[[], Point | None] = get_cursor_position,
    ) -> None:
        self._capture = capture or ScreenCapture()
        self._cursor_source = cursor_source

    def current_status(self) -> PermissionStatus:
        return PermissionStatus(
            screen_capture_granted=self._capture.probe(),
            cursor_access_granted=self._cursor_source() is not None,
        )

    def request_missing_permissions(self) -> PermissionStatus:
        """再確認する. OS側の許可ダイアログはユーザー操作待ち."""
        status = self.current_status()
        if not status.screen_capture_granted:
            logger.warning("Screen capture permission denied or pending user approval.")
        if not status.cursor_access_granted:
            logger.warning("Cursor access denied or pending user approval.")
        return status


def permission_reminder_text(status: PermissionStatus) -> str:
    lines: list[str] = []
    if not status.screen_capture_granted:
        lines.append("- Allow screen capture for this app (screen recording permission).")
    if not status.cursor_access_granted:
        lines.append("- Allow input monitoring so the cursor position can be read.")
    return "\n".join(lines)
