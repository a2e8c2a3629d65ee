from collections.abc import Callable
from typing import Any

from cursor_companion.watchers.logger import logger

TOGGLE_HOTKEY = "<ctrl>+<alt>+c"


def start_hotkeys(toggle: Callable[[], None]) -> Any:
    """
    Global hotkey:
    - Ctrl+Alt+C: Toggle the capture session

    Returns the running ``pynput.keyboard.GlobalHotKeys`` listener.
    """
    # X11/Quartz backends are resolved on import
    from pynput import keyboard

    def on_toggle() -> None:
        logger.info("Toggle hotkey pressed (%s)", TOGGLE_HOTKEY)
        toggle()

    listener = keyboard.GlobalHotKeys({TOGGLE_HOTKEY: on_toggle})
    listener.daemon = True
    listener.start()
    return listener
