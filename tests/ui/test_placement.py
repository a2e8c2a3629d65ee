import random

import pytest

from cursor_companion.model.models import Display, Point, Rect, Size, TextRegion
from cursor_companion.ui.placement import (
    FALLBACK_ORIGIN,
    NORMALIZED_ANCHORS,
    SCREEN_MARGIN,
    PlacementEngine,
    focus_anchor_centers,
)

BUBBLE = Size(300, 120)


def grid_centers(frame: Rect) -> list[Point]:
    return [
        Point(frame.x + nx * frame.width, frame.y + ny * frame.height)
        for nx, ny in NORMALIZED_ANCHORS
    ]


class TestPlacementEngine:
    """PlacementEngineの配置テスト"""

    @pytest.fixture
    def engine(self, displays, rng):
        return PlacementEngine(lambda: displays, rng=rng)

    @pytest.fixture
    def still_engine(self, displays):
        """ジッターなしのエンジン"""
        return PlacementEngine(lambda: displays, rng=random.Random(0), jitter=0)

    def test_no_displays_returns_fallback(self, rng):
        engine = PlacementEngine(lambda: [], rng=rng)

        assert engine.place(BUBBLE, cursor=Point(10, 10)) == FALLBACK_ORIGIN

    def test_highest_confidence_region_wins(self, still_engine):
        """信頼度0.95の領域が0.9より優先される"""
        low = TextRegion("low", Rect(500, 500, 400, 100), 0.9)
        high = TextRegion("high", Rect(560, 520, 40, 20), 0.95)

        origin = still_engine.place(BUBBLE, text_regions=[low, high])

        assert still_engine.state.last_anchor_center == high.bounds.center
        assert origin == Point(
            high.bounds.mid_x - BUBBLE.width / 2, high.bounds.mid_y - BUBBLE.height / 2
        )

    def test_equal_confidence_prefers_larger_area(self, still_engine):
        small = TextRegion("small", Rect(100, 100, 20, 10), 0.8)
        large = TextRegion("large", Rect(900, 600, 300, 50), 0.8)

        still_engine.place(BUBBLE, text_regions=[small, large])

        assert still_engine.state.last_anchor_center == large.bounds.center

    def test_region_near_previous_anchor_is_skipped(self, still_engine):
        first = TextRegion("first", Rect(400, 400, 100, 20), 0.99)
        neighbour = TextRegion("neighbour", Rect(450, 450, 100, 20), 0.95)
        far = TextRegion("far", Rect(1400, 800, 100, 20), 0.5)

        still_engine.place(BUBBLE, text_regions=[first])
        still_engine.place(BUBBLE, text_regions=[first, neighbour, far])

        assert still_engine.state.last_anchor_center == far.bounds.center

    def test_only_top_five_regions_are_considered(self, still_engine):
        still_engine.state.last_anchor_center = Point(500, 500)
        crowded = [
            TextRegion(f"r{i}", Rect(490 + i, 490, 20, 20), 0.9 - i * 0.01) for i in range(5)
        ]
        distant = TextRegion("distant", Rect(1500, 900, 20, 20), 0.1)
        focus = Rect(200, 200, 400, 300)

        still_engine.place(BUBBLE, focus_bounds=focus, text_regions=[*crowded, distant])

        # 上位5件が全て近すぎるので、フォーカス矩形に切り替わる
        assert still_engine.state.last_anchor_center in focus_anchor_centers(focus)

    def test_focus_anchor_farthest_from_previous(self, still_engine):
        focus = Rect(800, 400, 200, 200)
        still_engine.state.last_anchor_center = Point(1100, 500)  # 右側付近

        still_engine.place(BUBBLE, focus_bounds=focus)

        # 右の候補(1072, 500)から最も遠いのは左の候補
        assert still_engine.state.last_anchor_center == Point(728, 500)

    def test_focus_anchor_alternates_sides(self, still_engine):
        focus = Rect(800, 400, 200, 200)

        first = still_engine.place(BUBBLE, focus_bounds=focus)
        second = still_engine.place(BUBBLE, focus_bounds=focus)

        assert first != second

    def test_grid_never_repeats_with_cursor(self, engine):
        cursor = Point(480, 810)
        chosen: list[int | None] = []
        for _ in range(10):
            engine.place(BUBBLE, cursor=cursor)
            chosen.append(engine.state.last_anchor_index)

        for previous, current in zip(chosen, chosen[1:]):
            assert previous != current

    def test_grid_picks_farthest_from_cursor(self, still_engine, displays):
        frame = displays[0].visible_frame
        centers = grid_centers(frame)
        cursor = centers[0]

        still_engine.place(BUBBLE, cursor=cursor)

        expected = max(range(5), key=lambda i: centers[i].distance_squared(cursor))
        assert still_engine.state.last_anchor_index == expected

    def test_grid_round_robin_without_cursor(self, still_engine):
        indices = []
        for _ in range(6):
            still_engine.place(BUBBLE)
            indices.append(still_engine.state.last_anchor_index)

        assert indices == [0, 1, 2, 3, 4, 0]

    def test_non_grid_branches_advance_rotation(self, still_engine):
        still_engine.place(BUBBLE, focus_bounds=Rect(800, 400, 200, 200))
        still_engine.place(BUBBLE)

        assert still_engine.state.last_anchor_index == 1

    def test_grid_uses_display_under_cursor(self, rng):
        left = Display(frame=Rect(0, 0, 1920, 1080), visible_frame=Rect(0, 0, 1920, 1040))
        right = Display(
            frame=Rect(1920, 0, 1280, 1024), visible_frame=Rect(1920, 0, 1280, 1024)
        )
        engine = PlacementEngine(lambda: [left, right], rng=rng, jitter=0)

        origin = engine.place(BUBBLE, cursor=Point(2000, 100))

        assert origin.x >= right.visible_frame.min_x + SCREEN_MARGIN

    @pytest.mark.parametrize("seed", range(20))
    def test_origin_stays_inside_visible_frame(self, displays, seed):
        engine = PlacementEngine(lambda: displays, rng=random.Random(seed))
        bounds = displays[0].visible_frame
        edge_regions = [TextRegion("edge", Rect(1900, 1070, 10, 5), 0.9)]
        cases = [
            {"cursor": Point(0, 0)},
            {"cursor": Point(1919, 1079)},
            {"focus_bounds": Rect(0, 0, 1920, 1080)},
            {"text_regions": edge_regions},
            {"focus_bounds": Rect(-500, -500, 100, 100)},
        ]
        for kwargs in cases:
            origin = engine.place(BUBBLE, **kwargs)
            assert origin.x >= bounds.min_x + SCREEN_MARGIN
            assert origin.x + BUBBLE.width <= bounds.max_x - SCREEN_MARGIN
            assert origin.y >= bounds.min_y + SCREEN_MARGIN
            assert origin.y + BUBBLE.height <= bounds.max_y - SCREEN_MARGIN

    def test_oversized_bubble_pinned_to_margin(self, engine, displays):
        huge = Size(4000, 3000)

        origin = engine.place(huge, cursor=Point(100, 100))

        assert origin == Point(SCREEN_MARGIN, SCREEN_MARGIN)

    def test_jitter_is_bounded(self, displays):
        engine = PlacementEngine(lambda: displays, rng=random.Random(99))
        region = TextRegion("center", Rect(900, 500, 120, 80), 0.9)
        base = Point(
            region.bounds.mid_x - BUBBLE.width / 2, region.bounds.mid_y - BUBBLE.height / 2
        )
        for _ in range(50):
            engine.state.last_anchor_center = None
            origin = engine.place(BUBBLE, text_regions=[region])
            assert abs(origin.x - base.x) <= engine.jitter
            assert abs(origin.y - base.y) <= engine.jitter


def test_focus_anchor_centers_order():
    rect = Rect(100, 100, 200, 100)

    assert focus_anchor_centers(rect) == [
        Point(372, 150),
        Point(200, 272),
        Point(28, 150),
        Point(200, 28),
    ]
