import random
from concurrent.futures import Executor, Future
from unittest.mock import Mock

import pytest

from cursor_companion.model.models import (
    AnalysisResponse,
    CaptureSnapshot,
    Display,
    ForegroundContext,
    PermissionStatus,
    Point,
    Rect,
    TextRegion,
    TokenUsage,
)


class SyncExecutor(Executor):
    """submitした関数をその場で実行するExecutor."""

    def __init__(self) -> None:
        self.calls = 0

    def submit(self, fn, /, *args, **kwargs):
        self.calls += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:  # noqa: BLE001
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """submitしたFutureを保留し、テストから完了させるExecutor."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, object, tuple]] = []

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def complete_next(self) -> None:
        future, fn, args = self.pending.pop(0)
        try:
            future.set_result(fn(*args))
        except Exception as e:  # noqa: BLE001
            future.set_exception(e)


class FakeSnapshots:
    """SnapshotSourceの代わり."""

    def __init__(self, foreground: ForegroundContext | None = None) -> None:
        self.context = foreground or ForegroundContext(active_app="Code.exe", pid=42)
        self.captured: list[Point] = []
        self.error: Exception | None = None
        self.text_regions: tuple[TextRegion, ...] = ()

    def foreground(self) -> ForegroundContext:
        return self.context

    def snapshot(self, location: Point) -> CaptureSnapshot:
        if self.error is not None:
            raise self.error
        self.captured.append(location)
        return CaptureSnapshot(
            png_bytes=b"\x89PNG",
            cursor=location,
            timestamp=0.0,
            screen_rect=Rect(0, 0, 900, 650),
            foreground=self.context,
            text_regions=self.text_regions,
        )


class FakePermissions:
    def __init__(self, granted: bool = True) -> None:
        self.status = PermissionStatus(
            screen_capture_granted=granted, cursor_access_granted=granted
        )
        self.requests = 0

    def current_status(self) -> PermissionStatus:
        return self.status

    def request_missing_permissions(self) -> PermissionStatus:
        self.requests += 1
        return self.status


@pytest.fixture
def displays():
    """1920x1080のモニター1枚."""
    frame = Rect(0, 0, 1920, 1080)
    return [Display(frame=frame, visible_frame=frame)]


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def fake_snapshots():
    return FakeSnapshots()


@pytest.fixture
def fake_permissions():
    return FakePermissions()


@pytest.fixture
def mock_provider():
    """解析プロバイダーのモック"""
    mock = Mock()
    mock.description = "Mock provider"
    mock.analyze = Mock(
        return_value=AnalysisResponse(
            text="Nice diagram!",
            usage=TokenUsage(prompt_tokens=100, completion_tokens=20, total_tokens=120),
        )
    )
    return mock


@pytest.fixture
def sample_snapshot():
    return CaptureSnapshot(
        png_bytes=b"\x89PNG\r\n",
        cursor=Point(400, 300),
        timestamp=1234567890.0,
        screen_rect=Rect(0, 0, 900, 650),
        foreground=ForegroundContext(
            active_app="chrome.exe", title="Docs - Google Chrome", pid=7
        ),
        text_regions=(
            TextRegion("Quarterly report", Rect(10, 10, 200, 30), 0.95),
            TextRegion("Revenue", Rect(10, 60, 80, 20), 0.9),
        ),
    )


@pytest.fixture
def denied_permissions():
    return FakePermissions(granted=False)


@pytest.fixture
def sync_executor():
    return SyncExecutor()


@pytest.fixture
def deferred_executor():
    return DeferredExecutor()
