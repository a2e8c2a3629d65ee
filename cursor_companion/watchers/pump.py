"""Pump thread: feeds cursor readings and commands to the session coordinator."""

import argparse
import queue
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from cursor_companion.api.services.llm import AnalysisProvider, create_analysis_service
from cursor_companion.api.services.session import SessionCoordinator
from cursor_companion.model.models import (
    CommentaryResult,
    InteractionMode,
    PermissionStatus,
    PositionReading,
    SessionState,
    StatusModel,
    UsageStats,
)
from cursor_companion.settings import (
    AppConfiguration,
    load_configuration,
    presentation_policy_for,
    save_configuration,
)
from cursor_companion.ui.hotkeys import start_hotkeys
from cursor_companion.ui.notifications import (
    NotificationService,
    notify_commentary,
    notify_failure,
    notify_permission_reminder,
)
from cursor_companion.ui.overlay import OverlayPresenter
from cursor_companion.ui.placement import PlacementEngine
from cursor_companion.ui.voice import VoiceOutput
from cursor_companion.watchers.cursor import DEFAULT_POLL_INTERVAL, CursorSampler
from cursor_companion.watchers.logger import logger
from cursor_companion.watchers.permissions import PermissionManager
from cursor_companion.watchers.snapshot import SnapshotSource

Command = Callable[[], None]
_STOP = object()


class CompanionRuntime:
    """受信キューを1スレッドで処理し、コーディネーターの状態を直列に更新するクラス.

    カーソルの読み取り、解析完了の通知、APIからの操作はすべてキューに
    積まれ、ポンプスレッド上で順に実行される。
    """

    def __init__(
        self,
        config: AppConfiguration,
        snapshots: SnapshotSource | None = None,
        provider: AnalysisProvider | None = None,
        permissions: PermissionManager | None = None,
        notifications: NotificationService | None = None,
        voice: VoiceOutput | None = None,
        overlay: OverlayPresenter | None = None,
    ) -> None:
        self.config = config
        self.inbox: queue.Queue[Any] = queue.Queue()
        self.snapshots = snapshots or SnapshotSource()
        self.provider = provider or create_analysis_service(config)
        self.notifications = notifications or NotificationService()
        self.voice = voice or VoiceOutput(config.voice_identifier, config.voice_rate)
        self.overlay = overlay or OverlayPresenter()
        self.last_result: CommentaryResult | None = None
        self.usage: UsageStats | None = None

        self._analysis_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analysis")
        self._speech_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="speech")
        self._thread: threading.Thread | None = None
        self._hotkeys: Any = None

        self.coordinator = SessionCoordinator(
            snapshots=self.snapshots,
            provider=self.provider,
            placement=PlacementEngine(self.snapshots.capture.displays),
            executor=self._analysis_pool,
            post=self.post,
            permissions=permissions or PermissionManager(self.snapshots.capture),
            mode=config.resolved_mode,
        )
        self.coordinator.result_handler = self._on_result
        self.coordinator.state_handler = self._on_state
        self.coordinator.mode_handler = self._on_mode
        self.coordinator.usage_handler = self._on_usage
        self.coordinator.reminder_handler = self._on_reminder
        self._apply_policy(self.coordinator.mode)

        self.sampler = CursorSampler(
            handler=self._on_reading,
            poll_interval=config.poll_interval or DEFAULT_POLL_INTERVAL,
        )

    # ------------------------------------------------------------------
    # Thread plumbing

    def post(self, command: Command) -> None:
        """ポンプスレッドで実行する処理を積む (どのスレッドからでも可)."""
        self.inbox.put(command)

    def call(self, command: Callable[[], Any], timeout: float = 5.0) -> Any:
        """ポンプスレッドで実行し、結果を待つ."""
        if not self.running or threading.current_thread() is self._thread:
            return command()
        done = threading.Event()
        box: dict[str, Any] = {}

        def run() -> None:
            try:
                box["value"] = command()
            except Exception as e:  # noqa: BLE001
                box["error"] = e
            finally:
                done.set()

        self.post(run)
        if not done.wait(timeout):
            msg = "pump thread did not respond"
            raise TimeoutError(msg)
        if "error" in box:
            raise box["error"]
        return box.get("value")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_pending(self, block: bool = False, timeout: float | None = None) -> int:
        """キューに溜まった処理を実行する. 実行件数を返す."""
        handled = 0
        while True:
            try:
                item = self.inbox.get(block=block and handled == 0, timeout=timeout)
            except queue.Empty:
                return handled
            if item is _STOP:
                self.inbox.put(_STOP)
                return handled
            item()
            handled += 1

    def _loop(self) -> None:
        while True:
            item = self.inbox.get()
            if item is _STOP:
                return
            try:
                item()
            except Exception:
                logger.exception("Pump command failed")
            self.overlay.expire()

    def run_forever(self, hotkeys: bool = True) -> None:
        """ポンプスレッドを起動してセッションを開始する."""
        if self.running:
            return
        self._thread = threading.Thread(target=self._loop, name="pump", daemon=True)
        self._thread.start()
        if hotkeys:
            self._hotkeys = start_hotkeys(lambda: self.post(self.coordinator.toggle))
        self.call(self.coordinator.start)

    def shutdown(self) -> None:
        if self._hotkeys is not None:
            self._hotkeys.stop()
            self._hotkeys = None
        self.sampler.stop()
        if self.running:
            self.call(self.coordinator.stop)
            self.inbox.put(_STOP)
            if self._thread is not None:
                self._thread.join(timeout=5)
        self._thread = None
        self._analysis_pool.shutdown(wait=False)
        self._speech_pool.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Public commands (thread-safe)

    def start_session(self) -> bool:
        return bool(self.call(self.coordinator.start))

    def stop_session(self) -> None:
        self.call(self.coordinator.stop)

    def toggle_session(self) -> bool:
        return bool(self.call(self.coordinator.toggle))

    def change_mode(self, mode: InteractionMode) -> bool:
        return bool(self.call(lambda: self.coordinator.set_mode(mode)))

    def set_overlay_enabled(self, enabled: bool) -> None:
        def apply() -> None:
            self.overlay.enabled = enabled

        self.call(apply)

    def status(self) -> StatusModel:
        return self.call(
            lambda: self.coordinator.status(overlay_enabled=self.overlay.enabled)
        )

    # ------------------------------------------------------------------
    # Handlers (pump thread)

    def _on_reading(self, reading: PositionReading) -> None:
        self.post(lambda: self.coordinator.handle_reading(reading))

    def _on_state(self, state: SessionState) -> None:
        logger.info("Session state -> %s", state.value)
        if state is SessionState.ACTIVE:
            self.sampler.start()
        elif state is SessionState.STOPPED:
            self.sampler.stop()
            self.overlay.hide()

    def _on_mode(self, mode: InteractionMode) -> None:
        self._apply_policy(mode)
        self.config.interaction_mode = mode
        save_configuration(self.config)

    def _on_usage(self, stats: UsageStats | None) -> None:
        self.usage = stats
        if stats is not None:
            logger.info(
                "Token usage | total=%s prompt=%s completion=%s",
                stats.total_tokens,
                stats.total_prompt_tokens,
                stats.total_completion_tokens,
            )

    def _on_reminder(self, status: PermissionStatus) -> None:
        notify_permission_reminder(self.notifications, status)

    def _apply_policy(self, mode: InteractionMode) -> None:
        policy = presentation_policy_for(mode)
        self.overlay.enabled = policy.overlay
        self.voice.set_enabled(policy.voice)
        if not policy.voice:
            # the pyttsx3 engine is only touched from the speech thread
            self._speech_pool.submit(self.voice.stop)
        self.notifications.config.enabled = policy.notification

    def _on_result(self, result: CommentaryResult) -> None:
        self.last_result = result
        anchor = self.coordinator.placement_callback(result.snapshot)
        if result.ok and result.response is not None:
            text = result.response.text
            logger.info("AI Commentary: %s", text)
            self.overlay.show_message(text, anchor)
            if self.voice.enabled:
                self.overlay.begin_speaking()
                future = self._speech_pool.submit(self.voice.speak, text)
                future.add_done_callback(lambda _f: self.post(self.overlay.end_speaking))
            notify_commentary(self.notifications, text)
            return

        error = result.error or RuntimeError("unknown error")
        notify_failure(self.notifications, error)
        self.overlay.show_message(f"Oops, I hit a snag: {error}", anchor)


def main() -> None:
    """ヘッドレスで起動する."""
    parser = argparse.ArgumentParser(description="Cursor Companion pump")
    parser.add_argument(
        "--mode", choices=[m.value for m in InteractionMode], help="interaction mode"
    )
    parser.add_argument("--interval", type=float, help="cursor poll interval (seconds)")
    parser.add_argument(
        "--no-hotkey", action="store_true", help="do not register the toggle hotkey"
    )
    args = parser.parse_args()

    config = load_configuration()
    if args.mode:
        config.interaction_mode = InteractionMode(args.mode)
    if args.interval:
        config.poll_interval = args.interval

    runtime = CompanionRuntime(config)
    logger.info("Provider: %s", runtime.provider.description)
    runtime.run_forever(hotkeys=not args.no_hotkey)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
