"""Choose where a transient message bubble should appear on screen.

The engine walks three strategies in order and takes the first that yields a
target center:

1. text regions recognised in the latest capture (highest confidence first,
   skipping any too close to the previous anchor),
2. the four edges of the focused window, preferring the one farthest from the
   previous anchor,
3. a fixed grid of five normalized positions on the active display, preferring
   the one farthest from the cursor and never repeating the last index.

The center is turned into an origin, jittered, and clamped to the visible
frame of the display that contains it.
"""

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from cursor_companion.model.models import Display, Point, Rect, Size, TextRegion

NORMALIZED_ANCHORS: tuple[tuple[float, float], ...] = (
    (0.25, 0.75),
    (0.75, 0.75),
    (0.5, 0.55),
    (0.25, 0.35),
    (0.75, 0.35),
)
MAX_TEXT_CANDIDATES = 5
MIN_REANCHOR_DISTANCE_SQ = 200.0 * 200.0
FOCUS_EDGE_OFFSET = 72.0
JITTER = 16.0
SCREEN_MARGIN = 20.0
FALLBACK_ORIGIN = Point(60.0, 60.0)

DisplayProvider = Callable[[], Sequence[Display]]


@dataclass
class PlacementState:
    last_anchor_index: int | None = None
    rotation_index: int = 0
    last_anchor_center: Point | None = None


class PlacementEngine:
    """重複しない吹き出し位置を決めるクラス.

    Args:
        displays: 表示可能なモニター一覧を返す関数 (先頭がプライマリ)
        rng: ジッター用の乱数生成器 (テストではシード固定)
        jitter: 原点に加える一様ジッターの幅

    """

    def __init__(
        self,
        displays: DisplayProvider,
        rng: random.Random | None = None,
        jitter: float = JITTER,
    ) -> None:
        self._displays = displays
        self._rng = rng or random.Random()
        self.jitter = jitter
        self.state = PlacementState()

    def place(
        self,
        bubble_size: Size,
        cursor: Point | None = None,
        focus_bounds: Rect | None = None,
        text_regions: Sequence[TextRegion] = (),
    ) -> Point:
        """吹き出しの左上座標を返す. 例外は投げない."""
        displays = list(self._displays())
        if not displays:
            return FALLBACK_ORIGIN

        center = self._text_region_anchor(text_regions)
        if center is None and focus_bounds is not None:
            center = self._focus_anchor(focus_bounds)

        if center is None:
            center = self._grid_anchor(displays, cursor)
        else:
            self.state.rotation_index = (self.state.rotation_index + 1) % len(
                NORMALIZED_ANCHORS
            )

        self.state.last_anchor_center = center
        origin = self._to_origin(center, bubble_size)
        return self._clamp(origin, bubble_size, _display_for(displays, center))

    # ------------------------------------------------------------------
    # Strategies

    def _text_region_anchor(self, text_regions: Sequence[TextRegion]) -> Point | None:
        ranked = sorted(
            text_regions,
            key=lambda region: (region.confidence, region.bounds.area),
            reverse=True,
        )
        last = self.state.last_anchor_center
        for region in ranked[:MAX_TEXT_CANDIDATES]:
            center = region.bounds.center
            if last is not None and center.distance_squared(last) < MIN_REANCHOR_DISTANCE_SQ:
                continue
            return center
        return None

    def _focus_anchor(self, focus_bounds: Rect) -> Point:
        candidates = focus_anchor_centers(focus_bounds)
        last = self.state.last_anchor_center
        if last is None:
            return candidates[0]
        # max() keeps the first of equally distant candidates
        return max(candidates, key=lambda c: c.distance_squared(last))

    def _grid_anchor(self, displays: Sequence[Display], cursor: Point | None) -> Point:
        screen = _display_for(displays, cursor).visible_frame
        centers = [
            Point(screen.min_x + nx * screen.width, screen.min_y + ny * screen.height)
            for nx, ny in NORMALIZED_ANCHORS
        ]

        chosen: int | None = None
        if cursor is not None:
            best_distance = float("-inf")
            for index, center in enumerate(centers):
                if index == self.state.last_anchor_index:
                    continue
                distance = center.distance_squared(cursor)
                if distance > best_distance:
                    best_distance = distance
                    chosen = index

        if chosen is None:
            chosen = self.state.rotation_index
            if chosen == self.state.last_anchor_index:
                chosen = (chosen + 1) % len(centers)

        self.state.rotation_index = (chosen + 1) % len(centers)
        self.state.last_anchor_index = chosen
        return centers[chosen]

    # ------------------------------------------------------------------
    # Geometry

    def _to_origin(self, center: Point, bubble_size: Size) -> Point:
        return Point(
            center.x - bubble_size.width / 2 + self._rng.uniform(-self.jitter, self.jitter),
            center.y - bubble_size.height / 2 + self._rng.uniform(-self.jitter, self.jitter),
        )

    @staticmethod
    def _clamp(origin: Point, bubble_size: Size, display: Display) -> Point:
        bounds = display.visible_frame
        min_x = bounds.min_x + SCREEN_MARGIN
        max_x = bounds.max_x - bubble_size.width - SCREEN_MARGIN
        min_y = bounds.min_y + SCREEN_MARGIN
        max_y = bounds.max_y - bubble_size.height - SCREEN_MARGIN
        # max() last: an oversized bubble is pinned to the near margin
        return Point(
            max(min_x, min(origin.x, max_x)),
            max(min_y, min(origin.y, max_y)),
        )


def focus_anchor_centers(rect: Rect) -> list[Point]:
    """フォーカス矩形の右・下・左・上の外側に候補点を作る."""
    return [
        Point(rect.max_x + FOCUS_EDGE_OFFSET, rect.mid_y),
        Point(rect.mid_x, rect.max_y + FOCUS_EDGE_OFFSET),
        Point(rect.min_x - FOCUS_EDGE_OFFSET, rect.mid_y),
        Point(rect.mid_x, rect.min_y - FOCUS_EDGE_OFFSET),
    ]


def _display_for(displays: Sequence[Display], point: Point | None) -> Display:
    if point is not None:
        for display in displays:
            if display.frame.contains(point):
                return display
    return displays[0]
