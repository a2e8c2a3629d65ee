from unittest.mock import Mock

import pytest
from PIL import Image

from cursor_companion.model.models import ForegroundContext, Point, Rect, TextRegion
from cursor_companion.watchers.screen_capture import CaptureArtifact, ScreenCaptureError
from cursor_companion.watchers.snapshot import SnapshotSource


@pytest.fixture
def capture():
    mock = Mock()
    mock.capture_around.return_value = CaptureArtifact(
        image=Image.new("RGB", (900, 650)),
        png_bytes=b"\x89PNG-fake",
        screen_rect=Rect(10, 20, 900, 650),
    )
    return mock


class TestSnapshotSource:
    def test_snapshot_combines_capture_context_and_regions(self, capture):
        region = TextRegion("Inbox", Rect(50, 60, 40, 12), 0.88)
        detector = Mock()
        detector.detect.return_value = [region]
        context = ForegroundContext(active_app="outlook.exe", title="Inbox", pid=3)
        source = SnapshotSource(capture=capture, detector=detector, foreground=lambda: context)

        snapshot = source.snapshot(Point(400, 300))

        capture.capture_around.assert_called_once_with(Point(400, 300))
        detector.detect.assert_called_once()
        assert snapshot.png_bytes == b"\x89PNG-fake"
        assert snapshot.cursor == Point(400, 300)
        assert snapshot.screen_rect == Rect(10, 20, 900, 650)
        assert snapshot.foreground is context
        assert snapshot.text_regions == (region,)

    def test_capture_error_propagates(self, capture):
        capture.capture_around.side_effect = ScreenCaptureError("denied")
        source = SnapshotSource(capture=capture, detector=Mock(), foreground=ForegroundContext)

        with pytest.raises(ScreenCaptureError):
            source.snapshot(Point(0, 0))

    def test_hint_mentions_app_title_and_text(self, sample_snapshot):
        hint = sample_snapshot.contextual_hint()

        assert "chrome.exe" in hint
        assert "Docs - Google Chrome" in hint
        assert '"Quarterly report", "Revenue"' in hint
