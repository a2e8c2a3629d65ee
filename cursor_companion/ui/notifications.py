import platform
import sys
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cursor_companion.model.models import PermissionStatus
from cursor_companion.watchers.logger import logger
from cursor_companion.watchers.permissions import permission_reminder_text

if sys.platform == "win32":
    from win10toast import ToastNotifier  # type: ignore[import-untyped, unused-ignore]

APP_TITLE = "Cursor Companion"
HISTORY_LIMIT = 100


class NotificationLevel(Enum):
    """Notification severity levels used by the service."""

    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"


@dataclass
class NotificationConfig:
    """Configuration for :class:`NotificationService`."""

    enabled: bool = True
    duration: int = 5


class NotificationService:
    """Notification sink with history tracking."""

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self.platform = platform.system()
        self.config = config or NotificationConfig()
        self._history: deque[dict[str, Any]] = deque(maxlen=HISTORY_LIMIT)

    def notify(
        self,
        title: str,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        force: bool = False,
    ) -> bool:
        """Display a notification and record it.

        Toasts are shown on Windows only. Elsewhere the notification is recorded
        and reported as undelivered (``False``). ``force`` ignores
        ``config.enabled``, which the interaction mode switches off.
        """
        enabled = self.config.enabled or force
        delivered = False
        if enabled and self.platform == "Windows":
            notifier = ToastNotifier()
            delivered = bool(
                notifier.show_toast(  # pyright: ignore[reportUnknownMemberType]
                    title, message, duration=self.config.duration, threaded=True
                )
            )
        elif not enabled:
            logger.info("Notification suppressed: %s", title)
        self._history.append(
            {
                "title": title,
                "message": message,
                "level": level.value,
                "timestamp": time.time(),
                "delivered": delivered,
            },
        )
        return delivered

    def get_notification_history(self) -> list[dict[str, Any]]:
        """Return a copy of the notification history."""
        return list(self._history)


def notify_commentary(service: NotificationService, text: str) -> bool:
    """便利関数: コメントを通知."""
    return service.notify(APP_TITLE, text, NotificationLevel.INFO)


def notify_failure(service: NotificationService, error: Exception) -> bool:
    """便利関数: 解析失敗を通知."""
    return service.notify(
        APP_TITLE, f"Commentary failed: {error}", NotificationLevel.WARNING
    )


def notify_permission_reminder(
    service: NotificationService, status: PermissionStatus
) -> bool:
    """便利関数: 権限不足のリマインダー. モードの通知設定に関わらず表示する."""
    return service.notify(
        "Permissions Needed",
        permission_reminder_text(status),
        NotificationLevel.URGENT,
        force=True,
    )
