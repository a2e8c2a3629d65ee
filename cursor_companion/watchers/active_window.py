import sys
import time
from typing import Any, cast

import psutil

from cursor_companion.model.models import ForegroundContext, Rect

if sys.platform == "win32":
    import pywintypes  # pyright: ignore[reportMissingImports]
    import win32gui  # pyright: ignore[reportMissingImports]
    import win32process  # pyright: ignore[reportMissingImports]
else:  # pragma: no cover
    pywintypes = cast("Any", None)
    win32gui = cast("Any", None)
    win32process = cast("Any", None)


def _window_bounds(hwnd: int) -> Rect | None:
    try:
        left, top, right, bottom = win32gui.GetWindowRect(hwnd)
    except pywintypes.error:
        return None
    if right <= left or bottom <= top:
        return None
    return Rect(float(left), float(top), float(right - left), float(bottom - top))


def get_active_app() -> ForegroundContext:
    """前面ウィンドウのアプリ名・タイトル・PID・位置を取得 (Windowsのみ)."""
    if sys.platform != "win32":
        return ForegroundContext()

    hwnd = win32gui.GetForegroundWindow()
    if not hwnd:
        return ForegroundContext()

    try:
        title = win32gui.GetWindowText(hwnd)
        _, pid = win32process.GetWindowThreadProcessId(hwnd)
    except pywintypes.error:
        return ForegroundContext()

    try:
        process_name = psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return ForegroundContext()

    return ForegroundContext(
        active_app=process_name,
        title=title,
        pid=pid,
        bounds=_window_bounds(hwnd),
    )


if __name__ == "__main__":  # pragma: no cover
    for _ in range(3):
        print(get_active_app())  # noqa: T201
        time.sleep(1)
