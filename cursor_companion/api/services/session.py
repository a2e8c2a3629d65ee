"""Session coordination: gate readings, keep one analysis request in flight.

Every public method of :class:`SessionCoordinator` must be called from the
same thread (the pump thread). The analysis call itself runs on the supplied
executor; its completion is handed back through ``post`` so that the
in-flight token is only ever touched from the pump thread.
"""

import itertools
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from functools import partial
from typing import Protocol

from cursor_companion.api.services.llm import AnalysisProvider
from cursor_companion.model.models import (
    CaptureSnapshot,
    CommentaryResult,
    ForegroundContext,
    InteractionMode,
    PermissionStatus,
    Point,
    PositionReading,
    SessionState,
    Size,
    StatusModel,
    TokenUsage,
    UsageStats,
)
from cursor_companion.settings import gate_config_for
from cursor_companion.ui.placement import PlacementEngine
from cursor_companion.watchers.gate import CaptureGate
from cursor_companion.watchers.logger import logger
from cursor_companion.watchers.screen_capture import ScreenCaptureError

Post = Callable[[Callable[[], None]], None]


class SnapshotProvider(Protocol):
    def foreground(self) -> ForegroundContext: ...

    def snapshot(self, location: Point) -> CaptureSnapshot: ...


class PermissionChecker(Protocol):
    def current_status(self) -> PermissionStatus: ...

    def request_missing_permissions(self) -> PermissionStatus: ...


@dataclass(frozen=True)
class RequestTicket:
    """実行中の解析リクエストを表すトークン."""

    request_id: int
    mode: InteractionMode
    issued_at: float


class UsageAccumulator:
    """トークン使用量の累計."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.last: TokenUsage | None = None
        self.total_prompt = 0
        self.total_completion = 0
        self.total_tokens = 0

    def record(self, usage: TokenUsage | None) -> bool:
        if usage is None:
            return False
        self.last = usage
        self.total_prompt += usage.prompt_tokens
        self.total_completion += usage.completion_tokens
        self.total_tokens += usage.total_tokens
        return True

    @property
    def stats(self) -> UsageStats | None:
        if self.total_tokens <= 0:
            return None
        return UsageStats(
            last=self.last,
            total_prompt_tokens=self.total_prompt,
            total_completion_tokens=self.total_completion,
            total_tokens=self.total_tokens,
        )


class SessionCoordinator:
    """CaptureGateとPlacementEngineを束ね、解析リクエストを1件ずつ流すクラス."""

    def __init__(
        self,
        snapshots: SnapshotProvider,
        provider: AnalysisProvider,
        placement: PlacementEngine,
        executor: Executor,
        post: Post,
        permissions: PermissionChecker,
        mode: InteractionMode = InteractionMode.CASUAL,
    ) -> None:
        self._snapshots = snapshots
        self._provider = provider
        self._executor = executor
        self._post = post
        self._permissions = permissions
        self._ticket_ids = itertools.count(1)

        self.placement = placement
        self.mode = mode
        self.gate = CaptureGate(gate_config_for(mode))
        self.usage = UsageAccumulator()
        self.state = SessionState.STOPPED
        self.in_flight: RequestTicket | None = None
        self.last_cursor: Point | None = None
        self.last_snapshot: CaptureSnapshot | None = None
        self._last_foreground: tuple[str | None, int | None] | None = None
        self._reminder_shown = False

        self.result_handler: Callable[[CommentaryResult], None] | None = None
        self.state_handler: Callable[[SessionState], None] | None = None
        self.mode_handler: Callable[[InteractionMode], None] | None = None
        self.usage_handler: Callable[[UsageStats | None], None] | None = None
        self.reminder_handler: Callable[[PermissionStatus], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def start(self) -> bool:
        """セッションを開始する. 権限がなければStoppedのままFalse."""
        if self.state is not SessionState.STOPPED:
            return self.is_active
        logger.info("Starting capture pipeline.")
        self._set_state(SessionState.STARTING)

        status = self._permissions.current_status()
        if not status.all_granted:
            status = self._permissions.request_missing_permissions()
            if not status.all_granted:
                self._present_reminder(status)
                logger.warning(
                    "Required permissions missing; capture pipeline remains inactive."
                )
                self._set_state(SessionState.STOPPED)
                return False

        self.gate.reset()
        self._last_foreground = self._snapshots.foreground().identity
        self._set_state(SessionState.ACTIVE)
        return True

    def stop(self) -> None:
        if not self.is_active:
            return
        logger.info("Stopping capture pipeline.")
        self.gate.reset()
        self.in_flight = None
        self._set_state(SessionState.STOPPED)

    def toggle(self) -> bool:
        if self.is_active:
            self.stop()
        else:
            self.start()
        return self.is_active

    def set_mode(self, mode: InteractionMode) -> bool:
        """モードを切り替え、ゲート状態と使用量をリセットする."""
        if mode is self.mode:
            return False
        self.mode = mode
        self.gate = CaptureGate(gate_config_for(mode))
        self.usage.reset()
        logger.info("Interaction mode switched to %s.", mode.value)
        if self.usage_handler:
            self.usage_handler(None)
        if self.mode_handler:
            self.mode_handler(mode)
        return True

    # ------------------------------------------------------------------
    # Sampling path

    def note_foreground(self, context: ForegroundContext) -> None:
        """前面アプリが変わったらゲート状態をリセットする."""
        identity = context.identity
        if identity != self._last_foreground:
            if self._last_foreground is not None:
                logger.info("Foreground app changed to %s; resetting gate.", context.active_app)
            self.gate.reset()
            self._last_foreground = identity

    def handle_reading(self, reading: PositionReading) -> bool:
        """読み取り1件を処理する. 解析リクエストを出したらTrue."""
        if not self.is_active:
            return False
        self.last_cursor = reading.location
        self.note_foreground(self._snapshots.foreground())

        if not self.gate.evaluate(reading):
            return False
        if self.in_flight is not None:
            logger.info("Skipping capture; a previous request is still processing.")
            return False

        ticket = RequestTicket(
            request_id=next(self._ticket_ids), mode=self.mode, issued_at=time.time()
        )
        self.in_flight = ticket

        try:
            snapshot = self._snapshots.snapshot(reading.location)
            future = self._executor.submit(self._provider.analyze, snapshot, ticket.mode)
        except ScreenCaptureError as e:
            logger.error("Capture failed: %s", e)
            self._abandon(ticket, e)
            return False
        except Exception as e:
            logger.exception("Request %s could not be dispatched", ticket.request_id)
            self._abandon(ticket, e)
            return False

        self.last_snapshot = snapshot
        future.add_done_callback(
            lambda f: self._post(partial(self._settle, ticket, snapshot, f))
        )
        return True

    def _abandon(self, ticket: RequestTicket, error: Exception) -> None:
        if self.in_flight == ticket:
            self.in_flight = None
        self._deliver(CommentaryResult(error=error))

    def _settle(
        self,
        ticket: RequestTicket,
        snapshot: CaptureSnapshot,
        future: "Future[object]",
    ) -> None:
        # stop() forgets the ticket, so a mismatch means the request outlived its session
        stale = self.in_flight != ticket
        if not stale:
            self.in_flight = None

        error = future.exception()
        if error is not None:
            logger.error("AI commentary failed: %s", error)
            result = CommentaryResult(error=error, snapshot=snapshot)
        else:
            response = future.result()
            if ticket.mode is self.mode and self.usage.record(response.usage):
                if self.usage_handler:
                    self.usage_handler(self.usage.stats)
            result = CommentaryResult(response=response, snapshot=snapshot)

        if stale or not self.is_active:
            logger.info(
                "Dropping commentary for request %s; its session has ended.",
                ticket.request_id,
            )
            return
        self._deliver(result)

    # ------------------------------------------------------------------
    # Placement

    def anchor_for(
        self, bubble_size: Size, snapshot: CaptureSnapshot | None = None
    ) -> Point:
        """吹き出しの配置コールバック. オーバーレイから呼ばれる."""
        context = snapshot or self.last_snapshot
        if context is None:
            return self.placement.place(bubble_size, cursor=self.last_cursor)
        return self.placement.place(
            bubble_size,
            cursor=self.last_cursor,
            focus_bounds=context.foreground.bounds,
            text_regions=context.text_regions,
        )

    def placement_callback(
        self, snapshot: CaptureSnapshot | None = None
    ) -> Callable[[Size], Point]:
        return partial(self.anchor_for, snapshot=snapshot)

    # ------------------------------------------------------------------
    # Readout

    def status(self, provider: str = "", overlay_enabled: bool = True) -> StatusModel:
        stats = self.usage.stats
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "provider": provider or getattr(self._provider, "description", ""),
            "request_in_flight": self.in_flight is not None,
            "overlay_enabled": overlay_enabled,
            "usage": None
            if stats is None
            else {
                "last_total_tokens": stats.last.total_tokens if stats.last else None,
                "total_prompt_tokens": stats.total_prompt_tokens,
                "total_completion_tokens": stats.total_completion_tokens,
                "total_tokens": stats.total_tokens,
            },
        }

    # ------------------------------------------------------------------
    # Internals

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        self.state = state
        if self.state_handler:
            self.state_handler(state)

    def _present_reminder(self, status: PermissionStatus) -> None:
        if self._reminder_shown:
            return
        self._reminder_shown = True
        if self.reminder_handler:
            self.reminder_handler(status)

    def _deliver(self, result: CommentaryResult) -> None:
        if self.result_handler:
            self.result_handler(result)
